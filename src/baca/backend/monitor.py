"""Poll submitted jobs until they finish or the wait deadline passes."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence

from ..kube import KubectlRunner, KubectlRunnerError
from .diagnostics import LogPrinter
from .errors import JobsFailedError, JobsTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_WAIT_TIMEOUT = 30 * 60.0


class JobStatus(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETE = "Complete"
    FAILED = "Failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.FAILED)


def job_status(job: Mapping[str, Any]) -> JobStatus:
    """Derive the status of a Job object from its conditions and active count."""

    status = job.get("status") or {}
    for condition in status.get("conditions") or []:
        if condition.get("status") != "True":
            continue
        if condition.get("type") == "Complete":
            return JobStatus.COMPLETE
        if condition.get("type") == "Failed":
            return JobStatus.FAILED
    if (status.get("active") or 0) > 0:
        return JobStatus.RUNNING
    return JobStatus.PENDING


@dataclass(slots=True)
class MonitorState:
    """Last observed status per job, plus the jobs whose logs were printed."""

    statuses: dict[str, JobStatus] = field(default_factory=dict)
    logged: set[str] = field(default_factory=set)

    def is_terminal(self, job_name: str) -> bool:
        status = self.statuses.get(job_name)
        return status is not None and status.terminal

    def all_terminal(self, job_names: Sequence[str]) -> bool:
        return all(self.is_terminal(name) for name in job_names)

    @property
    def any_failed(self) -> bool:
        return JobStatus.FAILED in self.statuses.values()


class JobMonitor:
    """Wait for a set of jobs and reduce their outcomes to one verdict."""

    def __init__(
        self,
        client: KubectlRunner,
        namespace: str,
        *,
        diagnostics: LogPrinter | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float = DEFAULT_WAIT_TIMEOUT,
    ) -> None:
        self._client = client
        self._namespace = namespace
        self._diagnostics = diagnostics
        self._poll_interval = poll_interval
        self._timeout = timeout

    async def get_status(self, job_name: str) -> JobStatus:
        job = await self._client.get("job", job_name, namespace=self._namespace)
        return job_status(job)

    async def wait(self, job_names: Sequence[str]) -> dict[str, JobStatus]:
        """Return the final statuses once every job succeeded.

        Raises :class:`JobsFailedError` when all jobs finished but some failed and
        :class:`JobsTimeoutError` when the deadline passes first.
        """

        state = MonitorState()
        logger.info("monitoring jobs", extra={"count": len(job_names)})
        try:
            return await asyncio.wait_for(self._poll(list(job_names), state), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("timeout waiting for jobs to complete after %.0fs", self._timeout)
            self._log_summary(state)
            raise JobsTimeoutError("timeout waiting for jobs to complete", state.statuses) from exc

    async def _poll(self, job_names: list[str], state: MonitorState) -> dict[str, JobStatus]:
        while True:
            await asyncio.sleep(self._poll_interval)
            await self._tick(job_names, state)
            if state.all_terminal(job_names):
                break

        if state.any_failed:
            logger.error("some jobs failed")
            self._log_summary(state)
            raise JobsFailedError("some jobs failed", state.statuses)

        logger.info("all jobs completed successfully")
        self._log_summary(state)
        return dict(state.statuses)

    async def _tick(self, job_names: list[str], state: MonitorState) -> None:
        for name in job_names:
            if state.is_terminal(name):
                continue

            try:
                status = await self.get_status(name)
            except (KubectlRunnerError, ValueError) as exc:
                logger.error("failed to get job status for %s: %s", name, exc)
                continue

            if status != state.statuses.get(name):
                logger.info(
                    "job status changed: %s -> %s",
                    name,
                    status.value,
                    extra={"job": name, "status": status.value},
                )
                state.statuses[name] = status

            if status.terminal and name not in state.logged:
                state.logged.add(name)
                if self._diagnostics is not None:
                    await self._diagnostics.emit_logs(name)

    @staticmethod
    def _log_summary(state: MonitorState) -> None:
        logger.info("job summary")
        for name, status in state.statuses.items():
            logger.info("job status: %s %s", name, status.value)


__all__ = [
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_WAIT_TIMEOUT",
    "JobMonitor",
    "JobStatus",
    "MonitorState",
    "job_status",
]
