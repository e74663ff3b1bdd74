"""Shared test fixtures and configuration for vmcluster tests."""

from typing import Optional
from unittest import mock

import pytest


def make_vm(
    name: str,
    power_state: str = "poweredOn",
    tools_status: Optional[str] = "guestToolsRunning",
    vmx_path: Optional[str] = None,
) -> mock.MagicMock:
    """Build a fake vim.VirtualMachine."""
    vm = mock.MagicMock()
    # MagicMock(name=...) only names the mock, it does not set .name
    vm.name = name
    vm.runtime.powerState = power_state
    vm.guest.toolsRunningStatus = tools_status
    vm.config.files.vmPathName = vmx_path or f"[datastore1] {name}/{name}.vmx"
    vm.config.extraConfig = []
    return vm


def make_task(key: str, state: str = "running") -> mock.MagicMock:
    """Build a fake vim.Task."""
    task = mock.MagicMock()
    task.info.key = key
    task.info.state = state
    return task


@pytest.fixture
def vm_factory():
    return make_vm


@pytest.fixture
def task_factory():
    return make_task


@pytest.fixture
def mock_client():
    """Mock VSphereClient with an empty inventory."""
    client = mock.MagicMock()
    client.server = "vcenter.example.com"
    client.verify_ssl = False
    client.port = 443
    client.existing_vm_names.return_value = set()
    client.task_snapshot.return_value = []
    client.session_cookie.return_value = {"vmware_soap_session": "abc123"}

    datacenter = mock.MagicMock()
    datacenter.name = "dc1"
    client.datacenter_of.return_value = datacenter

    template = mock.MagicMock()
    template.name = "coreos-template"
    client.resolve_template.return_value = template
    client.resolve_placement.return_value = (mock.MagicMock(), None)
    client.resolve_storage.return_value = mock.MagicMock()

    client.__enter__.return_value = client
    client.__exit__.return_value = False
    return client


@pytest.fixture
def mock_env(monkeypatch, tmp_path):
    """Set up vSphere environment variables."""
    env_vars = {
        "VCENTER_SERVER": "vcenter.example.com",
        "VCENTER_USER": "administrator@vsphere.local",
        "VCENTER_PASSWORD": "secret",
        "WORK_DIR": str(tmp_path),
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv("TASK_TIMEOUT", raising=False)
    monkeypatch.delenv("READINESS_TIMEOUT", raising=False)
    return env_vars


@pytest.fixture
def sample_vmx() -> str:
    """A trimmed .vmx as ESXi writes it, with guestinfo from an earlier run."""
    return (
        '.encoding = "UTF-8"\n'
        'config.version = "8"\n'
        'virtualHW.version = "13"\n'
        'displayName = "core-1"\n'
        'guestinfo.hostname = "old-name"\n'
        'guestinfo.interface.0.ip.0.address = "192.168.1.9/24"\n'
        'guestOS = "other3xlinux-64"\n'
        '\n'
        '\n'
    )


@pytest.fixture
def cloud_config_file(tmp_path):
    """A small cloud-config payload on disk."""
    path = tmp_path / "cloud-config.yml"
    path.write_text("#cloud-config\ncoreos:\n  units:\n    - name: etcd2.service\n      command: start\n")
    return path
