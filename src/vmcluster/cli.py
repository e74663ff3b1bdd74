#!/usr/bin/env python3
"""
vmcluster CLI - clone, configure and boot a small VM cluster on vSphere.

    vmcluster deploy -n core-1 -a 10.0.0.5/24 -n core-2 -a 10.0.0.6/24 \\
        --gateway 10.0.0.1 --dns 10.0.0.2 --template coreos \\
        --cluster prod --datastore-cluster gold --cloud-config config/cloud-config.yml
    vmcluster status -n core-1 -n core-2
"""

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from vmcluster.errors import PreconditionError, ProvisioningError
from vmcluster.models import DeploymentRequest
from vmcluster.orchestrator import ClusterOrchestrator

# Initialize CLI app and console
app = typer.Typer(
    name="vmcluster",
    help="Template-based VM cluster provisioning for vSphere",
    add_completion=False
)
console = Console()
logger = logging.getLogger(__name__)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)8s] %(name)s: %(message)s"
    )


@app.command("deploy")
def deploy(
    names: List[str] = typer.Option(..., "--name", "-n", help="Node name (repeat for each node)"),
    addresses: List[str] = typer.Option(..., "--address", "-a", help="Node address in CIDR notation, same order as --name"),
    gateway: str = typer.Option(..., "--gateway", help="Default gateway for every node"),
    dns: str = typer.Option(..., "--dns", help="DNS server for every node"),
    template: str = typer.Option(..., "--template", "-t", help="Template VM to clone"),
    cloud_config: Optional[Path] = typer.Option(None, "--cloud-config", help="Cloud-config payload to inject"),
    server: Optional[str] = typer.Option(None, "--server", "-s", envvar="VCENTER_SERVER", help="vCenter/ESXi endpoint"),
    host: Optional[str] = typer.Option(None, "--host", help="Target ESXi host"),
    cluster: Optional[str] = typer.Option(None, "--cluster", help="Target compute cluster"),
    datastore: Optional[str] = typer.Option(None, "--datastore", help="Target datastore"),
    datastore_cluster: Optional[str] = typer.Option(None, "--datastore-cluster", help="Target datastore cluster"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="vSphere user (default: VCENTER_USER)"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="vSphere password (default: VCENTER_PASSWORD)"),
) -> None:
    """Create missing VMs, inject their guestinfo configuration and wait for each to boot."""
    try:
        if not server:
            raise PreconditionError("No endpoint given; pass --server or set VCENTER_SERVER")

        request = DeploymentRequest(
            names=names,
            addresses=addresses,
            gateway=gateway,
            dns=dns,
            server=server,
            template=template,
            host=host,
            cluster=cluster,
            datastore=datastore,
            datastore_cluster=datastore_cluster,
            cloud_config=str(cloud_config) if cloud_config else None,
            user=user,
            password=password,
        )
        completed = ClusterOrchestrator(request).deploy()

    except ProvisioningError as e:
        console.print(f"❌ Deployment failed: {e}")
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"❌ Deployment failed: {e}")
        logger.exception("Deployment error")
        raise typer.Exit(1)

    console.print(f"✅ Cluster deployment complete: {', '.join(completed)}")


@app.command("status")
def status(
    names: List[str] = typer.Option(..., "--name", "-n", help="Node name (repeat for each node)"),
    server: Optional[str] = typer.Option(None, "--server", "-s", envvar="VCENTER_SERVER", help="vCenter/ESXi endpoint"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="vSphere user (default: VCENTER_USER)"),
    password: Optional[str] = typer.Option(None, "--password", "-p", help="vSphere password (default: VCENTER_PASSWORD)"),
) -> None:
    """Show power, guest tools and guestinfo state of each node."""
    if not server:
        console.print("❌ No endpoint given; pass --server or set VCENTER_SERVER")
        raise typer.Exit(1)

    try:
        statuses = ClusterOrchestrator.collect_status(server, names, user=user, password=password)
    except ProvisioningError as e:
        console.print(f"❌ Status check failed: {e}")
        raise typer.Exit(1)
    except Exception as e:
        console.print(f"❌ Status check failed: {e}")
        logger.exception("Status error")
        raise typer.Exit(1)

    table = Table(title=f"Cluster Status ({server})")
    table.add_column("Node", style="cyan")
    table.add_column("Power")
    table.add_column("Guest Tools")
    table.add_column("Hostname")
    table.add_column("Address")
    table.add_column("Ready")

    for node in statuses:
        if not node.exists:
            table.add_row(node.name, "[red]missing[/red]", "-", "-", "-", "❌")
            continue
        table.add_row(
            node.name,
            node.power_state or "-",
            node.tools_status or "-",
            node.hostname or "-",
            node.address or "-",
            "✅" if node.is_ready else "⏳",
        )

    console.print(table)


if __name__ == "__main__":
    app()
