"""Failure taxonomy for cluster provisioning runs.

Every error is terminal for the whole run; nothing here is retried.
"""


class ProvisioningError(Exception):
    """Base exception for provisioning errors."""

    pass


class PreconditionError(ProvisioningError):
    """Raised when the requested parameters cannot describe a valid run."""

    pass


class ConnectionFailure(ProvisioningError):
    """Raised when the vSphere endpoint cannot be reached or rejects the login."""

    pass


class InventoryError(ProvisioningError):
    """Raised when a template, host, cluster, datastore or VM cannot be found."""

    pass


class OperationError(ProvisioningError):
    """Raised when a vSphere task or datastore file transfer fails."""

    pass


class StalledError(ProvisioningError):
    """Raised when a configured wait timeout elapses."""

    pass
