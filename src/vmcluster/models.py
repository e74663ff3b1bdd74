"""Data models for cluster provisioning."""

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Optional

from vmcluster.errors import PreconditionError


class PowerState(Enum):
    """vSphere VM power states (``vm.runtime.powerState``)."""

    POWERED_ON = "poweredOn"
    POWERED_OFF = "poweredOff"
    SUSPENDED = "suspended"


class ToolsStatus(Enum):
    """Guest tools running status (``vm.guest.toolsRunningStatus``)."""

    NOT_RUNNING = "guestToolsNotRunning"
    RUNNING = "guestToolsRunning"
    EXECUTING_SCRIPTS = "guestToolsExecutingScripts"


class TaskState(Enum):
    """vSphere task states (``task.info.state``)."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        """A terminal task never changes state again."""
        return self in (TaskState.SUCCESS, TaskState.ERROR)


@dataclass(frozen=True)
class Node:
    """A cluster member: one VM cloned from the template."""

    name: str
    address: str
    template: str
    datastore: Optional[str] = None
    datastore_cluster: Optional[str] = None
    host: Optional[str] = None
    cluster: Optional[str] = None


@dataclass(frozen=True)
class TaskHandle:
    """An issued clone operation, keyed by the vSphere task key."""

    key: str
    node_name: str


@dataclass(frozen=True)
class NodeStatus:
    """What vSphere currently reports about a node's VM."""

    name: str
    exists: bool
    power_state: Optional[str] = None
    tools_status: Optional[str] = None
    hostname: Optional[str] = None
    address: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return (
            self.power_state == PowerState.POWERED_ON.value
            and self.tools_status is not None
            and self.tools_status != ToolsStatus.NOT_RUNNING.value
        )


@dataclass
class DeploymentRequest:
    """Everything a single ``deploy`` run needs, as supplied by the caller."""

    names: List[str]
    addresses: List[str]
    gateway: str
    dns: str
    server: str
    template: str
    host: Optional[str] = None
    cluster: Optional[str] = None
    datastore: Optional[str] = None
    datastore_cluster: Optional[str] = None
    cloud_config: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)

    def validate(self) -> None:
        """
        Check the parameter combinations before anything touches vSphere.

        Raises:
            PreconditionError: If placement, storage or node/address lists are invalid
        """
        if not self.host and not self.cluster:
            raise PreconditionError("A host or a cluster must be specified")
        if self.host and self.cluster:
            raise PreconditionError("Specify either a host or a cluster, not both")
        if not self.datastore and not self.datastore_cluster:
            raise PreconditionError("A datastore or a datastore cluster must be specified")
        if self.datastore and self.datastore_cluster:
            raise PreconditionError("Specify either a datastore or a datastore cluster, not both")
        if not self.names:
            raise PreconditionError("At least one node name is required")
        if len(self.names) != len(self.addresses):
            raise PreconditionError(
                f"Got {len(self.names)} node names but {len(self.addresses)} addresses; "
                "every node needs exactly one address"
            )
        duplicates = self.duplicate_names()
        if duplicates:
            raise PreconditionError(f"Duplicate node names: {', '.join(sorted(duplicates))}")
        for address in self.addresses:
            try:
                ipaddress.ip_interface(address)
            except ValueError:
                raise PreconditionError(f"Invalid address {address!r}, expected CIDR notation like 10.0.0.5/24")

    def duplicate_names(self) -> FrozenSet[str]:
        seen = set()
        dupes = set()
        for name in self.names:
            if name in seen:
                dupes.add(name)
            seen.add(name)
        return frozenset(dupes)

    def nodes(self) -> List[Node]:
        """Pair every name with its address in input order."""
        return [
            Node(
                name=name,
                address=address,
                template=self.template,
                datastore=self.datastore,
                datastore_cluster=self.datastore_cluster,
                host=self.host,
                cluster=self.cluster,
            )
            for name, address in zip(self.names, self.addresses)
        ]
