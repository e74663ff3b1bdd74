"""
Clone every missing node and wait for all clone tasks together.

Clones are issued back to back without waiting on each one; vSphere runs
them in parallel. Completion is observed by polling the endpoint's recent
task feed until every tracked task key shows a terminal state.
"""

import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

from vmcluster.config import Config
from vmcluster.errors import StalledError
from vmcluster.models import Node, TaskHandle, TaskState
from vmcluster.vsphere_api import VSphereClient

logger = logging.getLogger(__name__)

Pending = Dict[str, TaskHandle]


def terminal_keys(snapshot: Iterable[Tuple[str, str]]) -> frozenset:
    """Task keys in the snapshot whose state is terminal."""
    keys = set()
    for key, state in snapshot:
        try:
            if TaskState(state).is_terminal:
                keys.add(key)
        except ValueError:
            logger.debug(f"Ignoring task {key} in unknown state {state!r}")
    return frozenset(keys)


def reduce_pending(pending: Pending, snapshot: Iterable[Tuple[str, str]]) -> Pending:
    """Return the handles still pending after observing a task-state snapshot."""
    finished = terminal_keys(snapshot)
    return {key: handle for key, handle in pending.items() if key not in finished}


class TaskTracker:
    """Issues clone tasks for absent nodes and awaits them all."""

    def __init__(
        self,
        client: VSphereClient,
        poll_interval: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.client = client
        self.poll_interval = Config.TASK_POLL_INTERVAL if poll_interval is None else poll_interval
        self.timeout = timeout

    def create_missing(
        self,
        nodes: List[Node],
        template: Any,
        folder: Any,
        pool: Any,
        datastore: Any,
        host: Optional[Any] = None,
    ) -> Pending:
        """
        Issue one clone per node that does not exist yet.

        Args:
            nodes: Nodes to provision, in input order
            template: Resolved template VM
            folder: Destination VM folder
            pool: Resource pool for the new VMs
            datastore: Target datastore
            host: Target host, or None when placing into a cluster pool

        Returns:
            Pending handles keyed by task key; empty when every node exists

        Raises:
            OperationError: If vSphere refuses to start a clone
        """
        existing = self.client.existing_vm_names()
        pending: Pending = {}

        for node in nodes:
            if node.name in existing:
                print(f"✅ VM {node.name!r} already exists, skipping.")
                continue

            print(f"🆕 Cloning {template.name!r} into {node.name!r}")
            task = self.client.clone_vm(template, node.name, folder, pool, datastore, host=host)
            handle = TaskHandle(key=task.info.key, node_name=node.name)
            pending[handle.key] = handle
            logger.debug(f"Tracking clone task {handle.key} for {node.name}")

        return pending

    def await_all(self, pending: Pending) -> None:
        """
        Poll the task feed until no handle is pending.

        Raises:
            StalledError: If a timeout is set and clones are still running when it elapses
        """
        deadline = None if self.timeout is None else time.time() + self.timeout

        while pending:
            pending = reduce_pending(pending, self.client.task_snapshot())
            if not pending:
                break

            waiting = sorted(handle.node_name for handle in pending.values())
            if deadline is not None and time.time() >= deadline:
                raise StalledError(f"Clone tasks did not finish within {self.timeout:g}s: {', '.join(waiting)}")

            print(f"⏳ Waiting on {len(pending)} clone task(s): {', '.join(waiting)}")
            time.sleep(self.poll_interval)

        logger.info("All clone tasks reached a terminal state")
