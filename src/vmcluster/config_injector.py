#!/usr/bin/env python3
"""
src/vmcluster/config_injector.py

Install a guestinfo property bag into a VM's .vmx file.

The VM is powered off for the whole edit so that a running VMX process never
holds a stale copy of the file, then powered back on.
"""

import logging
from pathlib import Path
from typing import Any, Optional

from pyVmomi import vmodl

from vmcluster.config import Config
from vmcluster.control_file import inject_properties, read_properties
from vmcluster.datastore import DatastoreMount, MountTable, parse_datastore_path
from vmcluster.errors import OperationError
from vmcluster.models import Node, PowerState
from vmcluster.property_bag import PropertyBag, PropertyBagBuilder
from vmcluster.vsphere_api import VSphereClient

logger = logging.getLogger(__name__)


class ConfigInjector:
    """Power-cycles a VM around a rewrite of its guestinfo block."""

    def __init__(
        self,
        client: VSphereClient,
        mounts: Optional[MountTable] = None,
        namespace: Optional[str] = None,
        work_dir: Optional[str] = None,
        mount_name: Optional[str] = None,
    ) -> None:
        self.client = client
        self.mounts = mounts if mounts is not None else MountTable()
        self.namespace = namespace or Config.GUESTINFO_NAMESPACE
        self.work_dir = Path(work_dir or Config.WORK_DIR)
        self.mount_name = mount_name or Config.MOUNT_NAME

    def power_off(self, vm: Any, name: str) -> None:
        if vm.runtime.powerState == PowerState.POWERED_ON.value:
            print(f"⏹️  Powering off VM {name!r}")
            try:
                task = vm.PowerOffVM_Task()
            except vmodl.MethodFault as e:
                raise OperationError(f"Power off {name} failed: {e.msg}")
            self.client.wait_for_task(task, f"Power off {name}")

    def power_on(self, vm: Any, name: str) -> None:
        print(f"▶️  Powering on VM {name!r}")
        try:
            task = vm.PowerOnVM_Task()
        except vmodl.MethodFault as e:
            raise OperationError(f"Power on {name} failed: {e.msg}")
        self.client.wait_for_task(task, f"Power on {name}")

    def mount_for(self, vm: Any, datastore: str) -> DatastoreMount:
        datacenter = self.client.datacenter_of(vm)
        return DatastoreMount(
            name=self.mount_name,
            server=self.client.server,
            datacenter=datacenter.name,
            datastore=datastore,
            cookies=self.client.session_cookie(),
            verify_ssl=self.client.verify_ssl,
            port=self.client.port,
        )

    def patch(self, text: str, node: Node, properties: PropertyBag) -> str:
        """Return the control file text with the node's guestinfo block installed."""
        merged = PropertyBagBuilder.merge(properties, {"hostname": node.name})
        previous = read_properties(text, self.namespace)
        if previous:
            logger.info(f"{node.name}: replacing {len(previous)} existing {self.namespace} keys")
        return inject_properties(text, merged, self.namespace)

    def inject(self, node: Node, properties: PropertyBag) -> None:
        """
        Rewrite the node's .vmx with the given properties.

        Args:
            node: The node whose VM is reconfigured
            properties: Merged property bag for the node

        Raises:
            InventoryError: If the VM or its datacenter cannot be found
            OperationError: If a power task or a file transfer fails
        """
        vm = self.client.require_vm(node.name)
        print(f"🔧 Injecting {len(properties)} {self.namespace} properties into {node.name!r}")

        # 1) Stop the VM so the .vmx can be replaced safely
        self.power_off(vm, node.name)

        # 2) Locate the .vmx on its datastore
        datastore, vmx_path = parse_datastore_path(vm.config.files.vmPathName)
        local_path = self.work_dir / f"{node.name}.vmx"

        with self.mounts.mounted(self.mount_for(vm, datastore)) as mount:
            # 3) Fetch a working copy
            mount.download(vmx_path, local_path)

            # 4-6) Replace the guestinfo block
            try:
                with open(local_path, encoding="utf-8", newline="") as f:
                    original = f.read()
                patched = self.patch(original, node, properties)

                with open(local_path, "w", encoding="utf-8", newline="") as f:
                    f.write(patched)
            except (OSError, UnicodeError) as e:
                raise OperationError(f"Cannot rewrite working copy {local_path}: {e}")

            # 7) Publish the working copy over the remote file
            mount.upload(local_path, vmx_path)

        # 8) Boot with the new configuration
        self.power_on(vm, node.name)
