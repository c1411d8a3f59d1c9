"""Exception types shared across the import pipeline."""

from typing import List, Optional


class LedgerlineError(Exception):
    """Base class for application errors."""


class OracleError(LedgerlineError):
    """A single call to the classification oracle failed.

    Attributes:
        status_code: HTTP-style status, or None for network/timeout failures.
        retry_after: Seconds the service asked us to wait, if it said so.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        """Rate limits, server errors and network failures are worth retrying."""
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class OracleUnavailableError(LedgerlineError):
    """Every deployment was tried and none produced a response."""

    def __init__(self, message: str, last_error: Optional[OracleError] = None):
        super().__init__(message)
        self.last_error = last_error


class PayloadParseError(LedgerlineError):
    """The oracle replied, but nothing usable could be recovered from the text."""


class ImportCancelledError(LedgerlineError):
    """The caller asked the import to stop between chunks.

    Attributes:
        completed: Records fully classified before the stop; they remain valid.
    """

    def __init__(self, completed: Optional[List] = None):
        super().__init__("Import cancelled by user")
        self.completed = completed or []


class TransferMatchError(LedgerlineError):
    """A requested link between two records is not allowed."""
