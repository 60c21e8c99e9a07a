"""Exceptions raised by the linking pipeline."""

from typing import Any


class LinkingError(Exception):
    """Base class for linking pipeline errors."""


class SetupError(LinkingError):
    """The pipeline cannot start: judges or cases are unreadable."""


class CaseSourceError(LinkingError):
    """A case page could not be fetched; the run is aborted.

    ``summary`` carries the partial run summary when the failure
    happened after some batches were already written.
    """

    def __init__(self, message: str, summary: Any = None):
        super().__init__(message)
        self.summary = summary


class RetryExhaustedError(LinkingError):
    """Every attempt of a retried operation failed."""

    def __init__(self, attempts: int, last_error: BaseException | None):
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error
