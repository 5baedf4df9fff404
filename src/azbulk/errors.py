"""Error kinds for bulk orchestration.

Only configuration and caller errors are fatal. Submission and polling
errors are recorded per batch and aggregated; partial failure is raised
only when the caller asks for it.
"""


class BulkOpsError(Exception):
    """Base class for azbulk errors."""

    pass


class ConfigError(BulkOpsError):
    """Raised when configuration is missing or invalid."""

    pass


class InvalidArgumentError(BulkOpsError, ValueError):
    """Raised when a caller passes an invalid argument."""

    pass


class SubmissionError(BulkOpsError):
    """A batch's bulk-action request was rejected or failed."""

    def __init__(self, message: str, correlation_id: str | None = None):
        super().__init__(message)
        self.correlation_id = correlation_id


class PollingError(BulkOpsError):
    """Querying operation status failed for one poll cycle."""

    pass


class PartialFailureError(BulkOpsError):
    """Some identifiers did not reach a successful terminal state."""

    def __init__(self, message: str, failed_ids: list[str]):
        super().__init__(message)
        self.failed_ids = failed_ids


__all__ = [
    "BulkOpsError",
    "ConfigError",
    "InvalidArgumentError",
    "PartialFailureError",
    "PollingError",
    "SubmissionError",
]
