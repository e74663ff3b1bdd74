"""Sequences provisioning of the whole cluster, failing fast on any error."""

import logging
from typing import Any, Callable, Dict, List, Optional

from vmcluster.config import Config
from vmcluster.config_injector import ConfigInjector
from vmcluster.datastore import MountTable
from vmcluster.models import DeploymentRequest, NodeStatus
from vmcluster.property_bag import PropertyBagBuilder
from vmcluster.readiness import ReadinessPoller
from vmcluster.task_tracker import TaskTracker
from vmcluster.vsphere_api import VSphereClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[..., VSphereClient]


class ClusterOrchestrator:
    """Clone, configure and boot every node of a deployment request."""

    def __init__(self, request: DeploymentRequest, client_factory: ClientFactory = VSphereClient) -> None:
        self.request = request
        self.client_factory = client_factory

    def connect(self) -> VSphereClient:
        return self.client_factory(self.request.server, user=self.request.user, password=self.request.password)

    def deploy(self) -> List[str]:
        """
        Run the full provisioning sequence.

        Any failure aborts the run; nodes after the failing one are not touched
        and nothing already done is rolled back.

        Returns:
            Names of the nodes brought to a ready state, in input order

        Raises:
            ProvisioningError: On the first failure of any stage
        """
        request = self.request

        # Phase 0: everything that can fail without touching vSphere
        request.validate()
        nodes = request.nodes()
        bags = PropertyBagBuilder.build_all(
            request.names, request.addresses, request.gateway, request.dns, request.cloud_config
        )

        completed: List[str] = []
        with self.connect() as client:
            print(f"🔗 Connected to {request.server}")

            template = client.resolve_template(request.template)
            pool, host = client.resolve_placement(host=request.host, cluster=request.cluster)
            datastore = client.resolve_storage(
                datastore=request.datastore, datastore_cluster=request.datastore_cluster
            )
            folder = client.datacenter_of(template).vmFolder

            # Phase 1: create missing VMs, all clones in flight at once
            print("\n🖥️  Phase 1: VM Creation")
            tracker = TaskTracker(client, timeout=Config.task_timeout())
            pending = tracker.create_missing(nodes, template, folder, pool, datastore, host=host)
            tracker.await_all(pending)

            # Phase 2: configure and boot one node at a time
            print("\n🔧 Phase 2: Configuration")
            injector = ConfigInjector(client, mounts=MountTable())
            poller = ReadinessPoller(timeout=Config.readiness_timeout())
            for node in nodes:
                injector.inject(node, bags[node.name])
                poller.wait_until_ready(client.require_vm(node.name), node.name)
                completed.append(node.name)

        logger.info(f"Deployment finished for {len(completed)} node(s)")
        return completed

    @staticmethod
    def node_status(client: VSphereClient, name: str, namespace: Optional[str] = None) -> NodeStatus:
        namespace = namespace or Config.GUESTINFO_NAMESPACE
        vm = client.find_vm(name)
        if vm is None:
            return NodeStatus(name=name, exists=False)

        extra: Dict[str, Any] = {}
        if vm.config is not None:
            extra = {option.key: option.value for option in vm.config.extraConfig}
        return NodeStatus(
            name=name,
            exists=True,
            power_state=str(vm.runtime.powerState),
            tools_status=vm.guest.toolsRunningStatus if vm.guest is not None else None,
            hostname=extra.get(f"{namespace}.hostname"),
            address=extra.get(f"{namespace}.interface.0.ip.0.address"),
        )

    @staticmethod
    def collect_status(
        server: str,
        names: List[str],
        user: Optional[str] = None,
        password: Optional[str] = None,
        client_factory: ClientFactory = VSphereClient,
    ) -> List[NodeStatus]:
        """Report what vSphere knows about each named node. Read-only."""
        with client_factory(server, user=user, password=password) as client:
            return [ClusterOrchestrator.node_status(client, name) for name in names]
