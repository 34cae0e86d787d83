"""Exception types for dbzip."""


class DbZipError(Exception):
    """Base exception for dbzip errors."""


class ConfigError(DbZipError):
    """Raised when the configuration file is missing required values or is invalid."""


class LockTimeout(DbZipError):
    """Raised when the named lock is held elsewhere and the wait policy gave up."""


class LockUnavailable(DbZipError):
    """Raised when the lock directory or lock file cannot be created or opened."""


class ProductionError(DbZipError):
    """Raised when the backup producer fails to create an artifact."""


class CompressionError(DbZipError):
    """Raised when the archiver fails to compress an artifact."""


class VerificationError(DbZipError):
    """Raised when an archive cannot be verified."""


class LifecycleError(DbZipError):
    """Raised on an illegal artifact state transition."""


class StageTransitionError(DbZipError):
    """Raised on an illegal pipeline stage transition."""


class DeletionWarning(UserWarning):
    """Original artifact could not be deleted after a verified archive was written."""
