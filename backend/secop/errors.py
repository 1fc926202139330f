"""
Exception hierarchy for the SECOP loader.

Fatal errors (missing source, unreachable store) abort the run; batch
failures are caught by the batch coordinator, rolled back and counted.
"""


class IngestError(Exception):
    """Base class for loader errors."""
    error_code: str = "INGEST_ERROR"
    fatal: bool = False

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(IngestError):
    """Invalid loader setting."""
    error_code = "INVALID_CONFIG"
    fatal = True


class SourceFileNotFoundError(IngestError):
    """The CSV to import does not exist."""
    error_code = "SOURCE_NOT_FOUND"
    fatal = True


class StoreUnavailableError(IngestError):
    """The database cannot be opened or cannot run transactions."""
    error_code = "STORE_UNAVAILABLE"
    fatal = True


class BatchFailedError(IngestError):
    """A batch transaction failed and was rolled back."""
    error_code = "BATCH_FAILED"

    def __init__(self, batch_number: int, batch_size: int, cause: Exception):
        super().__init__(
            f"Batch {batch_number} failed: {cause}",
            details={"batch": batch_number, "size": batch_size},
        )
        self.batch_number = batch_number
        self.batch_size = batch_size
        self.__cause__ = cause


class PoolClosedError(IngestError):
    """A session was requested from a closed connection pool."""
    error_code = "POOL_CLOSED"
    fatal = True
