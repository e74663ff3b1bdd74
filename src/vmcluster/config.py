import os
import tempfile
from typing import Optional

from dotenv import load_dotenv


class Config:
    """Loads and manages configuration from environment variables."""

    load_dotenv()

    VCENTER_SERVER = os.getenv("VCENTER_SERVER")
    VCENTER_USER = os.getenv("VCENTER_USER")
    VCENTER_PASSWORD = os.getenv("VCENTER_PASSWORD")
    VCENTER_PORT = int(os.getenv("VCENTER_PORT", "443"))
    VERIFY_SSL = os.getenv("VERIFY_SSL", "false").strip().lower() in ("1", "true", "yes")

    # Prefix of every key written into the .vmx control file
    GUESTINFO_NAMESPACE = os.getenv("GUESTINFO_NAMESPACE", "guestinfo")
    PRIMARY_INTERFACE = os.getenv("PRIMARY_INTERFACE", "ens192")
    INTERFACE_ROLE = os.getenv("INTERFACE_ROLE", "private")

    MOUNT_NAME = os.getenv("MOUNT_NAME", "vmcluster-ds")
    WORK_DIR = os.getenv("WORK_DIR", tempfile.gettempdir())

    TASK_POLL_INTERVAL = float(os.getenv("TASK_POLL_INTERVAL", "15"))
    READINESS_POLL_INTERVAL = float(os.getenv("READINESS_POLL_INTERVAL", "1"))

    @staticmethod
    def get_timeout(name: str) -> Optional[float]:
        """
        Read an optional timeout (in seconds) from the environment.

        Unset or empty values mean "wait forever" and return None.
        """
        raw = os.getenv(name, "").strip()
        if not raw:
            return None
        return float(raw)

    @classmethod
    def task_timeout(cls) -> Optional[float]:
        return cls.get_timeout("TASK_TIMEOUT")

    @classmethod
    def readiness_timeout(cls) -> Optional[float]:
        return cls.get_timeout("READINESS_TIMEOUT")
