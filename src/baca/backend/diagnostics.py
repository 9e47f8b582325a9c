"""Print the logs of a finished job to the console."""

from __future__ import annotations

import logging
import sys
from typing import TextIO

from ..kube import KubectlRunner, KubectlRunnerError

logger = logging.getLogger(__name__)

# Label the job controller puts on every pod it creates.
JOB_NAME_LABEL = "job-name"


class LogPrinter:
    """Stream every container's log of a job's pod, init containers first.

    Problems are logged as warnings; nothing here raises to the caller.
    """

    def __init__(self, client: KubectlRunner, namespace: str, *, stream: TextIO | None = None) -> None:
        self._client = client
        self._namespace = namespace
        self._stream = stream

    async def emit_logs(self, job_name: str) -> None:
        try:
            pods = await self._client.list("pod", namespace=self._namespace, selector={JOB_NAME_LABEL: job_name})
        except (KubectlRunnerError, ValueError) as exc:
            logger.warning("failed to list pods for job %s: %s", job_name, exc)
            return

        if not pods:
            logger.warning("no pods found for job %s", job_name)
            return

        pod = pods[0]
        pod_name = pod["metadata"]["name"]
        spec = pod.get("spec", {})
        logger.info("=== Pod logs for job %s (pod %s) ===", job_name, pod_name)

        for container in spec.get("initContainers") or []:
            await self._print_container_logs(pod_name, container["name"], "init-container")
        for container in spec.get("containers") or []:
            await self._print_container_logs(pod_name, container["name"], "container")

        logger.info("=== End of logs for job %s ===", job_name)

    async def _print_container_logs(self, pod_name: str, container: str, container_type: str) -> None:
        stream = self._stream or sys.stdout
        logger.info("--- Logs from %s %s ---", container_type, container)
        try:
            async for line in self._client.stream_logs(pod_name, container=container, namespace=self._namespace):
                print(line, file=stream)
        except (KubectlRunnerError, ValueError) as exc:
            logger.warning(
                "failed to get logs from %s %s of pod %s: %s", container_type, container, pod_name, exc
            )


__all__ = ["JOB_NAME_LABEL", "LogPrinter"]
