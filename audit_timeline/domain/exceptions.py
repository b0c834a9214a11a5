"""Custom exception hierarchy for the audit timeline engine.

Following error taxonomy: retryable, non-retryable, validation.
"""


class AuditTimelineError(Exception):
    """Base exception for all application errors."""

    pass


class RetryableError(AuditTimelineError):
    """Errors that can be retried (temporary storage failures)."""

    pass


class NonRetryableError(AuditTimelineError):
    """Errors that should not be retried (validation, logic errors)."""

    pass


class ValidationError(NonRetryableError):
    """Invalid input to the audit write path."""

    pass


class MalformedEventError(NonRetryableError):
    """Event-like record that cannot be turned into a RawEvent."""

    def __init__(self, message: str, position: int | None = None) -> None:
        """Initialize with optional input position of the bad record."""
        self.position = position
        super().__init__(message)


class RepositoryError(RetryableError):
    """Database/storage errors."""

    pass
