"""Domain errors and failure typing."""


class LifecycleError(Exception):
    """Base class for lifecycle engine failures."""

    error_code = "LIFECYCLE_ERROR"


class ConfigError(LifecycleError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class PersistenceError(LifecycleError):
    """Raised when the organisation store itself cannot be read or written."""

    error_code = "PERSISTENCE_ERROR"


class TransientError(LifecycleError):
    """Raised for network or service unavailability; retried on the next run."""

    error_code = "TRANSIENT_ERROR"


class NotFoundError(LifecycleError):
    """Raised when an organisation is absent at write time."""

    error_code = "NOT_FOUND"


class ConcurrencyError(LifecycleError):
    """Raised when stored state changed between scan and write."""

    error_code = "CONCURRENCY_ERROR"


class ValidationError(LifecycleError):
    """Raised for malformed administrator or email data."""

    error_code = "VALIDATION_ERROR"
