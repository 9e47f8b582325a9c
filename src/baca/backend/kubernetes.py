"""Kubernetes backend for running coding agent jobs."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, TextIO

from ..change import Change
from ..config import DEFAULT_IMAGE, BacaSettings
from ..kube import KubectlError, KubectlRunner
from .diagnostics import LogPrinter
from .errors import SubmissionError
from .jobspec import JobBuilder
from .monitor import DEFAULT_POLL_INTERVAL, DEFAULT_WAIT_TIMEOUT, JobMonitor, JobStatus
from .provisioner import CredentialProvisioner

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ApplyResult:
    """Outcome of a successful apply: submitted job names and, after a wait, their statuses."""

    job_names: list[str]
    statuses: dict[str, JobStatus] = field(default_factory=dict)


class KubernetesBackend:
    """Submit one Job per repository of a change and optionally wait for them."""

    def __init__(
        self,
        client: KubectlRunner,
        namespace: str,
        *,
        image: str = DEFAULT_IMAGE,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        wait_timeout: float = DEFAULT_WAIT_TIMEOUT,
        log_stream: TextIO | None = None,
    ) -> None:
        self._client = client
        self._namespace = namespace
        self._builder = JobBuilder(namespace, default_image=image)
        self._provisioner = CredentialProvisioner(client, namespace)
        self._monitor = JobMonitor(
            client,
            namespace,
            diagnostics=LogPrinter(client, namespace, stream=log_stream),
            poll_interval=poll_interval,
            timeout=wait_timeout,
        )

    @classmethod
    def from_settings(
        cls,
        client: KubectlRunner,
        settings: BacaSettings,
        *,
        namespace: str | None = None,
    ) -> "KubernetesBackend":
        return cls(
            client,
            namespace or settings.namespace,
            image=settings.image,
            poll_interval=settings.poll_interval,
            wait_timeout=settings.wait_timeout,
        )

    @property
    def namespace(self) -> str:
        return self._namespace

    async def setup(self, credentials: Mapping[str, str]) -> None:
        await self._provisioner.setup(credentials)

    async def apply_change(
        self,
        change: Change,
        *,
        wait: bool = True,
        retries: int = 0,
        fork_org: str = "",
        fork: bool = True,
    ) -> ApplyResult:
        """Create one job per repository; with ``wait`` block until all finish.

        A failed submission stops the loop and raises :class:`SubmissionError`;
        jobs created before it are left running.
        """

        spec = change.spec
        logger.info("applying change", extra={"repos": len(spec.repos), "fork_org": fork_org})

        job_names: list[str] = []
        for repo in spec.repos:
            logger.info("creating job for repository %s", repo)
            unit = self._builder.build(spec, repo, retries=retries, fork_org=fork_org, fork=fork)
            try:
                await self._client.create(unit.to_manifest())
            except KubectlError as exc:
                logger.error("failed to create job in kubernetes for %s: %s", repo, exc)
                raise SubmissionError(
                    f"failed to create kubernetes job for {repo}: {exc}",
                    repo=repo,
                    submitted=job_names,
                ) from exc

            logger.info("job created: %s", unit.name, extra={"repo": repo, "job": unit.name})
            job_names.append(unit.name)

        if not wait:
            return ApplyResult(job_names=job_names)

        statuses = await self._monitor.wait(job_names)
        return ApplyResult(job_names=job_names, statuses=statuses)


__all__ = ["ApplyResult", "KubernetesBackend"]
