"""Error types raised by the Kubernetes backend."""

from __future__ import annotations

from typing import Mapping, TYPE_CHECKING

if TYPE_CHECKING:
    from .monitor import JobStatus


class BackendError(RuntimeError):
    """Base class for backend errors."""


class SetupError(BackendError):
    """Raised when the namespace or the credentials secret cannot be provisioned."""


class SubmissionError(BackendError):
    """Raised when a job cannot be created; earlier jobs keep running."""

    def __init__(self, message: str, *, repo: str, submitted: list[str]) -> None:
        super().__init__(message)
        self.repo = repo
        self.submitted = list(submitted)


class MonitorError(BackendError):
    """Base class for wait outcomes that are not a success."""

    def __init__(self, message: str, statuses: Mapping[str, "JobStatus"]) -> None:
        super().__init__(message)
        self.statuses = dict(statuses)


class JobsFailedError(MonitorError):
    """Raised when every job finished and at least one of them failed."""

    @property
    def failed(self) -> list[str]:
        return [name for name, status in self.statuses.items() if status.value == "Failed"]


class JobsTimeoutError(MonitorError):
    """Raised when the wait deadline passed before every job finished."""


__all__ = [
    "BackendError",
    "JobsFailedError",
    "JobsTimeoutError",
    "MonitorError",
    "SetupError",
    "SubmissionError",
]
