import logging
import ssl
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from pyVim.connect import Disconnect, SmartConnect
from pyVmomi import vim, vmodl

from vmcluster.config import Config
from vmcluster.errors import ConnectionFailure, InventoryError, OperationError

logger = logging.getLogger(__name__)


def sizeof_fmt(num: float) -> str:
    """Human readable version of a byte count."""
    for unit in ["bytes", "KB", "MB", "GB"]:
        if num < 1024.0:
            return f"{num:3.1f}{unit}"
        num /= 1024.0
    return f"{num:3.1f}TB"


class VSphereClient:
    """Wrapper around a pyVmomi service instance for inventory lookups and tasks."""

    def __init__(
        self,
        server: str,
        user: Optional[str] = None,
        password: Optional[str] = None,
        port: Optional[int] = None,
        verify_ssl: Optional[bool] = None,
    ) -> None:
        self.server = server
        self.port = port or Config.VCENTER_PORT
        self.verify_ssl = Config.VERIFY_SSL if verify_ssl is None else verify_ssl
        user = user or Config.VCENTER_USER
        password = password or Config.VCENTER_PASSWORD

        if not user or not password:
            raise ConnectionFailure(f"No credentials supplied for {server}; set VCENTER_USER and VCENTER_PASSWORD")

        context = ssl.create_default_context()
        if not self.verify_ssl:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        logger.info(f"Connecting to vSphere endpoint {server}:{self.port} as {user}")
        try:
            self.si = SmartConnect(host=server, user=user, pwd=password, port=self.port, sslContext=context)
        except vim.fault.InvalidLogin as e:
            raise ConnectionFailure(f"Login to {server} rejected: {e.msg}")
        except (OSError, vmodl.MethodFault) as e:
            raise ConnectionFailure(f"Unable to connect to {server}: {e}")

    def __enter__(self) -> "VSphereClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.disconnect()

    def disconnect(self) -> None:
        if self.si is None:
            return
        logger.info(f"Disconnecting from {self.server}")
        Disconnect(self.si)
        self.si = None

    @property
    def content(self) -> Any:
        return self.si.RetrieveContent()

    @contextmanager
    def container_view(self, vimtype: List[Any]) -> Iterator[Any]:
        """Container view over the whole inventory, destroyed on exit."""
        container = None
        try:
            container = self.content.viewManager.CreateContainerView(self.content.rootFolder, vimtype, True)
            yield container
        except vmodl.MethodFault as e:
            raise OperationError(f"Inventory query on {self.server} failed: {e.msg}")
        finally:
            if container is not None:
                container.Destroy()

    def get_obj(self, vimtype: List[Any], name: str) -> Optional[Any]:
        """Get the vSphere object of the given type with an exact name match."""
        with self.container_view(vimtype) as container:
            for obj in container.view:
                if obj.name == name:
                    return obj
            return None

    def get_all_names(self, vimtype: List[Any]) -> Set[str]:
        """Names of every vSphere object of the given type."""
        with self.container_view(vimtype) as container:
            return {obj.name for obj in container.view}

    def require(self, vimtype: List[Any], name: str, kind: str) -> Any:
        obj = self.get_obj(vimtype, name)
        if obj is None:
            raise InventoryError(f"{kind} {name!r} not found on {self.server}")
        return obj

    def existing_vm_names(self) -> Set[str]:
        return self.get_all_names([vim.VirtualMachine])

    def find_vm(self, name: str) -> Optional[Any]:
        return self.get_obj([vim.VirtualMachine], name)

    def require_vm(self, name: str) -> Any:
        return self.require([vim.VirtualMachine], name, "VM")

    def resolve_template(self, name: str) -> Any:
        return self.require([vim.VirtualMachine], name, "Template")

    def resolve_placement(self, host: Optional[str] = None, cluster: Optional[str] = None) -> Tuple[Any, Optional[Any]]:
        """
        Resolve the resource pool (and host, if host-scoped) for new VMs.

        Returns:
            (resource_pool, host_system) where host_system is None for clusters
        """
        if host:
            host_system = self.require([vim.HostSystem], host, "Host")
            return host_system.parent.resourcePool, host_system
        if cluster:
            cluster_obj = self.require([vim.ClusterComputeResource], cluster, "Cluster")
            return cluster_obj.resourcePool, None
        raise InventoryError("No host or cluster given for VM placement")

    def resolve_storage(self, datastore: Optional[str] = None, datastore_cluster: Optional[str] = None) -> Any:
        """
        Resolve the target datastore.

        For a datastore cluster, the member datastore with the most free space is used.
        """
        if datastore:
            return self.require([vim.Datastore], datastore, "Datastore")
        if datastore_cluster:
            pod = self.require([vim.StoragePod], datastore_cluster, "Datastore cluster")
            return self.choose_datastore(pod.childEntity, datastore_cluster)
        raise InventoryError("No datastore or datastore cluster given for VM storage")

    @staticmethod
    def choose_datastore(datastores: List[Any], pod_name: str) -> Any:
        """Pick the datastore with the most free space."""
        if not datastores:
            raise InventoryError(f"Datastore cluster {pod_name!r} has no datastores")

        selected = None
        for datastore in datastores:
            logger.debug(f"Datastore {datastore.summary.name}: {sizeof_fmt(datastore.summary.freeSpace)} free")
            if selected is None or datastore.summary.freeSpace > selected.summary.freeSpace:
                selected = datastore
        logger.info(f"Datastore {selected.summary.name} has the most free space in {pod_name}")
        return selected

    @staticmethod
    def datacenter_of(obj: Any) -> Any:
        """Walk up the inventory tree to the owning datacenter."""
        parent = obj.parent
        while parent is not None:
            if isinstance(parent, vim.Datacenter):
                return parent
            parent = parent.parent
        raise InventoryError(f"{obj.name!r} is not inside a datacenter")

    def clone_vm(
        self,
        template: Any,
        name: str,
        folder: Any,
        pool: Any,
        datastore: Any,
        host: Optional[Any] = None,
    ) -> Any:
        """Issue an asynchronous clone of the template; returns the vSphere task."""
        relocate_spec = vim.vm.RelocateSpec(pool=pool, datastore=datastore)
        if host is not None:
            relocate_spec.host = host
        clone_spec = vim.vm.CloneSpec(powerOn=False, template=False, location=relocate_spec)
        try:
            return template.CloneVM_Task(folder=folder, name=name, spec=clone_spec)
        except vmodl.MethodFault as e:
            raise OperationError(f"Unable to clone {template.name!r} into {name!r}: {e.msg}")

    def task_snapshot(self) -> List[Tuple[str, str]]:
        """Return (task key, state) for every task in the recent-task feed."""
        try:
            tasks = self.content.taskManager.recentTask
        except vmodl.MethodFault as e:
            raise OperationError(f"Reading recent tasks on {self.server} failed: {e.msg}")

        snapshot = []
        for task in tasks:
            try:
                info = task.info
            except vmodl.fault.ManagedObjectNotFound:
                # purged between the list read and the info read
                logger.debug(f"Task {task} left the feed before it could be read")
                continue
            snapshot.append((info.key, str(info.state)))
        return snapshot

    @staticmethod
    def wait_for_task(task: Any, action: str = "task", interval: float = 2) -> Any:
        """
        Block until a single vSphere task finishes.

        Raises:
            OperationError: If the task ends in the error state
        """
        while task.info.state in (vim.TaskInfo.State.queued, vim.TaskInfo.State.running):
            time.sleep(interval)

        if task.info.state == vim.TaskInfo.State.error:
            error = task.info.error
            message = getattr(error, "msg", None) or str(error)
            raise OperationError(f"{action} failed: {message}")

        return task.info.result

    def session_cookie(self) -> Dict[str, str]:
        """The SOAP session cookie, reusable for datastore HTTP transfers."""
        raw = self.si._stub.cookie
        name, _, rest = raw.partition("=")
        value = rest.split(";", 1)[0]
        return {name.strip(): value.strip()}
