"""
Datastore file access over the vSphere HTTP file service.

A DatastoreMount is a named reference to one datastore of one datacenter,
authenticated with the SOAP session of the VSphereClient. Mounts live in a
MountTable keyed by name; mounting a name that is already present drops the
stale mount first.
"""

import logging
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple
from urllib.parse import quote

import requests

from vmcluster.errors import OperationError

logger = logging.getLogger(__name__)

_DATASTORE_PATH = re.compile(r"^\[(?P<datastore>[^\]]+)\]\s*(?P<path>.+)$")


def parse_datastore_path(datastore_path: str) -> Tuple[str, str]:
    """
    Split "[datastore1] node-a/node-a.vmx" into ("datastore1", "node-a/node-a.vmx").

    Raises:
        OperationError: If the path is not in datastore notation
    """
    match = _DATASTORE_PATH.match(datastore_path.strip())
    if match is None:
        raise OperationError(f"Cannot parse datastore path {datastore_path!r}")
    return match.group("datastore"), match.group("path").strip()


class DatastoreMount:
    """HTTP session bound to a single datastore."""

    def __init__(
        self,
        name: str,
        server: str,
        datacenter: str,
        datastore: str,
        cookies: Dict[str, str],
        verify_ssl: bool = False,
        port: int = 443,
    ) -> None:
        self.name = name
        self.server = server
        self.port = port
        self.datacenter = datacenter
        self.datastore = datastore
        self.session: Optional[requests.Session] = requests.Session()
        self.session.verify = verify_ssl
        for key, value in cookies.items():
            self.session.cookies.set(key, value)

    def __repr__(self) -> str:
        return f"DatastoreMount({self.name!r} -> [{self.datastore}] in {self.datacenter})"

    @property
    def is_open(self) -> bool:
        return self.session is not None

    def url(self, path: str) -> str:
        return f"https://{self.server}:{self.port}/folder/{quote(path.lstrip('/'))}"

    @property
    def params(self) -> Dict[str, str]:
        return {"dcPath": self.datacenter, "dsName": self.datastore}

    def _session(self) -> requests.Session:
        if self.session is None:
            raise OperationError(f"Datastore mount {self.name!r} is closed")
        return self.session

    def download(self, remote_path: str, local_path: Path) -> None:
        """Copy a datastore file to a local path."""
        logger.info(f"Downloading [{self.datastore}] {remote_path} -> {local_path}")
        try:
            response = self._session().get(self.url(remote_path), params=self.params, stream=True)
            response.raise_for_status()
            local_path.parent.mkdir(parents=True, exist_ok=True)
            with open(local_path, "wb") as local_file:
                for chunk in response.iter_content(chunk_size=8192):
                    if chunk:
                        local_file.write(chunk)
        except requests.RequestException as e:
            raise OperationError(f"Download of [{self.datastore}] {remote_path} failed: {e}")
        except OSError as e:
            raise OperationError(f"Cannot write working copy {local_path}: {e}")

    def upload(self, local_path: Path, remote_path: str) -> None:
        """Copy a local file over a datastore file, replacing it."""
        logger.info(f"Uploading {local_path} -> [{self.datastore}] {remote_path}")
        try:
            with open(local_path, "rb") as local_file:
                response = self._session().put(
                    self.url(remote_path),
                    params=self.params,
                    data=local_file,
                    headers={"Content-Type": "application/octet-stream"},
                )
            response.raise_for_status()
        except requests.RequestException as e:
            raise OperationError(f"Upload to [{self.datastore}] {remote_path} failed: {e}")
        except OSError as e:
            raise OperationError(f"Cannot read working copy {local_path}: {e}")

    def close(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None


class MountTable:
    """Named datastore mounts held by the current run."""

    def __init__(self) -> None:
        self._mounts: Dict[str, DatastoreMount] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._mounts

    def __len__(self) -> int:
        return len(self._mounts)

    def remove(self, name: str) -> None:
        mount = self._mounts.pop(name, None)
        if mount is not None:
            logger.debug(f"Removing {mount!r}")
            mount.close()

    def add(self, mount: DatastoreMount) -> DatastoreMount:
        if mount.name in self._mounts:
            logger.warning(f"Replacing stale datastore mount {mount.name!r}")
            self.remove(mount.name)
        self._mounts[mount.name] = mount
        return mount

    @contextmanager
    def mounted(self, mount: DatastoreMount) -> Iterator[DatastoreMount]:
        """Hold a mount for the duration of the block; it is removed on every exit path."""
        self.add(mount)
        try:
            yield mount
        finally:
            self.remove(mount.name)
