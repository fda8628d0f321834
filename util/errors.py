class ProvisioningError(RuntimeError):
    """Base for errors raised while declaring the resource graph."""


class ConfigurationError(ProvisioningError):
    """Bad configuration, or a resource requested out of order. Halts the run."""


class NotInitializedError(ProvisioningError):
    """An accessor was called before the resource behind it was created."""
