"""Kubernetes execution backend."""

from .credentials import CredentialError, collect_credentials, delivery_for
from .errors import (
    BackendError,
    JobsFailedError,
    JobsTimeoutError,
    MonitorError,
    SetupError,
    SubmissionError,
)
from .jobspec import ExecutionUnitSpec, JobBuilder, Stage
from .kubernetes import ApplyResult, KubernetesBackend
from .monitor import JobMonitor, JobStatus, MonitorState
from .naming import derive_name, sanitize_label

__all__ = [
    "ApplyResult",
    "BackendError",
    "CredentialError",
    "ExecutionUnitSpec",
    "JobBuilder",
    "JobMonitor",
    "JobStatus",
    "JobsFailedError",
    "JobsTimeoutError",
    "KubernetesBackend",
    "MonitorError",
    "MonitorState",
    "SetupError",
    "Stage",
    "SubmissionError",
    "collect_credentials",
    "delivery_for",
    "derive_name",
    "sanitize_label",
]
