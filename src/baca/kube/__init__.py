"""kubectl orchestration utilities."""

from .runner import (
    ClusterConfig,
    FakeKubectlRunner,
    KubectlError,
    KubectlExecutionResult,
    KubectlNotFoundError,
    KubectlRunner,
    KubectlRunnerError,
)

__all__ = [
    "ClusterConfig",
    "FakeKubectlRunner",
    "KubectlError",
    "KubectlExecutionResult",
    "KubectlNotFoundError",
    "KubectlRunner",
    "KubectlRunnerError",
]
