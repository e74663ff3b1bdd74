"""
Builds the guestinfo property bags injected into each node's .vmx file.

A bag is merged from three layers, later layers winning on collision:

    global   network settings shared by every node (DNS, gateway, route)
    payload  optional base64-encoded cloud-config
    node     hostname and static address of one node
"""

import base64
import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from vmcluster.config import Config
from vmcluster.errors import PreconditionError

logger = logging.getLogger(__name__)

DEFAULT_ROUTE = "0.0.0.0/0"
PAYLOAD_KEY = "coreos.config.data"
PAYLOAD_ENCODING_KEY = "coreos.config.data.encoding"
PAYLOAD_ENCODING = "base64"

PropertyBag = Dict[str, str]


class PropertyBagBuilder:
    """Assembles cluster-wide and per-node guestinfo properties."""

    @staticmethod
    def global_properties(gateway: str, dns: str) -> PropertyBag:
        """Network properties shared by every node."""
        return {
            "dns.server.0": dns,
            "interface.0.route.0.destination": DEFAULT_ROUTE,
            "interface.0.route.0.gateway": gateway,
            "interface.0.name": Config.PRIMARY_INTERFACE,
            "interface.0.role": Config.INTERFACE_ROLE,
            # the static address comes from the node layer
            "interface.0.dhcp": "no",
        }

    @staticmethod
    def payload_properties(cloud_config: Optional[str]) -> PropertyBag:
        """
        Encode a cloud-config file for transport through guestinfo.

        Args:
            cloud_config: Path to the payload, or None

        Returns:
            The payload and its encoding marker, or an empty dict when no
            payload was requested or the path names no file

        Raises:
            PreconditionError: If the payload cannot be read, or a #cloud-config
                payload is not valid UTF-8 YAML
        """
        if not cloud_config:
            return {}

        path = Path(cloud_config).expanduser()
        if not path.is_file():
            logger.warning(f"Cloud-config {path} not found, deploying without a payload")
            return {}

        try:
            payload = path.read_bytes()
        except OSError as e:
            raise PreconditionError(f"Cannot read cloud-config {path}: {e}")

        if payload.lstrip().startswith(b"#cloud-config"):
            try:
                yaml.safe_load(payload.decode("utf-8"))
            except UnicodeDecodeError as e:
                raise PreconditionError(f"Cloud-config {path} is not valid UTF-8: {e}")
            except yaml.YAMLError as e:
                raise PreconditionError(f"Cloud-config {path} is not valid YAML: {e}")

        encoded = base64.b64encode(payload).decode("ascii")
        logger.debug(f"Encoded {len(payload)} bytes of cloud-config from {path}")
        return {
            PAYLOAD_KEY: encoded,
            PAYLOAD_ENCODING_KEY: PAYLOAD_ENCODING,
        }

    @staticmethod
    def shared_properties(gateway: str, dns: str, cloud_config: Optional[str] = None) -> PropertyBag:
        """Global layer plus the optional payload layer."""
        properties = PropertyBagBuilder.global_properties(gateway, dns)
        properties.update(PropertyBagBuilder.payload_properties(cloud_config))
        return properties

    @staticmethod
    def node_properties(name: str, address: str) -> PropertyBag:
        """Properties that belong to exactly one node."""
        return {
            "hostname": name,
            "interface.0.ip.0.address": address,
        }

    @staticmethod
    def merge(shared: PropertyBag, node: PropertyBag) -> PropertyBag:
        """Merge layers; node values override shared ones."""
        merged = dict(shared)
        merged.update(node)
        return merged

    @staticmethod
    def build_all(
        names: List[str],
        addresses: List[str],
        gateway: str,
        dns: str,
        cloud_config: Optional[str] = None,
    ) -> Dict[str, PropertyBag]:
        """
        Build one merged bag per node, keyed by node name.

        Raises:
            PreconditionError: If names and addresses differ in length
        """
        if len(names) != len(addresses):
            raise PreconditionError(
                f"Got {len(names)} node names but {len(addresses)} addresses"
            )

        shared = PropertyBagBuilder.shared_properties(gateway, dns, cloud_config)
        return {
            name: PropertyBagBuilder.merge(shared, PropertyBagBuilder.node_properties(name, address))
            for name, address in zip(names, addresses)
        }
