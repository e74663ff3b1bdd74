"""Wait for guest tools to come up after a VM is powered on."""

import logging
import time
from typing import Any, Optional

from vmcluster.config import Config
from vmcluster.errors import StalledError
from vmcluster.models import ToolsStatus

logger = logging.getLogger(__name__)


class ReadinessPoller:
    """Polls ``guest.toolsRunningStatus`` until it is no longer "not running"."""

    def __init__(self, interval: Optional[float] = None, timeout: Optional[float] = None) -> None:
        self.interval = Config.READINESS_POLL_INTERVAL if interval is None else interval
        self.timeout = timeout

    @staticmethod
    def is_ready(vm: Any) -> bool:
        guest = vm.guest
        status = guest.toolsRunningStatus if guest is not None else None
        return status is not None and status != ToolsStatus.NOT_RUNNING.value

    def wait_until_ready(self, vm: Any, name: str) -> None:
        """
        Block until the guest reports running tools.

        Raises:
            StalledError: If a timeout is set and the guest is still not ready when it elapses
        """
        deadline = None if self.timeout is None else time.time() + self.timeout

        while not self.is_ready(vm):
            if deadline is not None and time.time() >= deadline:
                raise StalledError(f"VM {name!r} did not report running guest tools within {self.timeout:g}s")
            time.sleep(self.interval)

        print(f"✅ VM {name!r} is ready.")
        logger.debug(f"{name}: toolsRunningStatus={vm.guest.toolsRunningStatus}")
