"""Async runner for the kubectl CLI."""

from __future__ import annotations

import asyncio
import base64
import copy
import json
import re
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Iterable, Mapping

from .utils import kubectl_environment

_REASON_PATTERN = re.compile(r"Error from server \((?P<reason>[A-Za-z]+)\)")

# Kinds that live outside any namespace.
_CLUSTER_SCOPED = {"namespace"}


class KubectlRunnerError(RuntimeError):
    """Base class for kubectl runner errors."""


class KubectlNotFoundError(KubectlRunnerError):
    """Raised when the kubectl executable cannot be located."""


@dataclass(slots=True)
class KubectlExecutionResult:
    """Holds the outcome of a kubectl invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def payload(self) -> dict[str, Any]:
        return json.loads(self.stdout) if self.stdout.strip() else {}


class KubectlError(KubectlRunnerError):
    """Raised when kubectl exits non-zero; carries the full result."""

    def __init__(self, result: KubectlExecutionResult) -> None:
        self.result = result
        message = result.stderr.strip() or f"kubectl exited with code {result.returncode}"
        super().__init__(message)

    @property
    def reason(self) -> str | None:
        """API server status reason, e.g. ``AlreadyExists`` or ``NotFound``."""

        match = _REASON_PATTERN.search(self.result.stderr)
        return match.group("reason") if match else None

    @property
    def already_exists(self) -> bool:
        return self.reason == "AlreadyExists"

    @property
    def not_found(self) -> bool:
        return self.reason == "NotFound"


@dataclass(frozen=True, slots=True)
class ClusterConfig:
    """Connection descriptor for the target cluster, built once per process."""

    kubeconfig: Path | None = None
    context: str | None = None

    def flags(self) -> list[str]:
        flags: list[str] = []
        if self.kubeconfig is not None:
            flags.extend(["--kubeconfig", str(self.kubeconfig)])
        if self.context:
            flags.extend(["--context", self.context])
        return flags


def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:  # pragma: no cover - exited between checks
            pass


async def _read_lines(stream: asyncio.StreamReader) -> AsyncIterator[bytes]:
    """Yield newline-terminated chunks of any length from ``stream``."""

    pending = bytearray()
    while True:
        try:
            chunk = await stream.readuntil(b"\n")
        except asyncio.LimitOverrunError as exc:
            # Line longer than the reader buffer: drain what is buffered and keep going.
            pending += await stream.readexactly(exc.consumed)
            continue
        except asyncio.IncompleteReadError as exc:
            pending += exc.partial
            if pending:
                yield bytes(pending)
            return
        yield bytes(pending + chunk)
        pending.clear()


def _namespace_flags(namespace: str | None) -> list[str]:
    return ["-n", namespace] if namespace else []


class KubectlRunner:
    """Execute kubectl commands asynchronously against one cluster."""

    def __init__(self, executable: Path | None = None, *, cluster: ClusterConfig | None = None) -> None:
        self._executable_path = self._resolve_executable(executable)
        self._cluster = cluster or ClusterConfig()

    @staticmethod
    def _resolve_executable(explicit: Path | None) -> Path:
        if explicit is not None:
            candidate = Path(explicit)
            if candidate.exists() and candidate.is_file():
                return candidate
            raise KubectlNotFoundError(f"kubectl executable not found at {candidate}")

        binary = shutil.which("kubectl")
        if binary is None:
            raise KubectlNotFoundError("kubectl executable not found on PATH")
        return Path(binary)

    @property
    def executable(self) -> Path:
        return self._executable_path

    @property
    def cluster(self) -> ClusterConfig:
        return self._cluster

    async def create(self, manifest: Mapping[str, Any]) -> dict[str, Any]:
        result = await self._invoke("create", "-f", "-", "-o", "json", input=json.dumps(manifest))
        return self._checked(result).payload()

    async def replace(self, manifest: Mapping[str, Any]) -> dict[str, Any]:
        result = await self._invoke("replace", "-f", "-", "-o", "json", input=json.dumps(manifest))
        return self._checked(result).payload()

    async def get(self, kind: str, name: str, *, namespace: str | None = None) -> dict[str, Any]:
        result = await self._invoke("get", kind, name, *_namespace_flags(namespace), "-o", "json")
        return self._checked(result).payload()

    async def list(
        self,
        kind: str,
        *,
        namespace: str | None = None,
        selector: Mapping[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        args = ["get", kind, *_namespace_flags(namespace)]
        if selector:
            args.extend(["-l", ",".join(f"{key}={value}" for key, value in selector.items())])
        result = await self._invoke(*args, "-o", "json")
        return list(self._checked(result).payload().get("items", []))

    async def stream_logs(self, pod: str, *, container: str, namespace: str) -> AsyncIterator[str]:
        """Yield the log lines of one container as kubectl produces them."""

        cmd = [
            str(self._executable_path),
            *self._cluster.flags(),
            "logs",
            pod,
            "-c",
            container,
            *_namespace_flags(namespace),
        ]
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=kubectl_environment(self._cluster.kubeconfig),
        )
        assert process.stdout is not None and process.stderr is not None
        try:
            async for raw in _read_lines(process.stdout):
                yield raw.decode("utf-8", errors="replace").rstrip("\r\n")
            stderr_bytes = await process.stderr.read()
            returncode = await process.wait()
        finally:
            _kill(process)

        if returncode != 0:
            raise KubectlError(
                KubectlExecutionResult(
                    args=tuple(cmd),
                    returncode=returncode,
                    stdout="",
                    stderr=stderr_bytes.decode("utf-8", errors="replace"),
                )
            )

    @staticmethod
    def _checked(result: KubectlExecutionResult) -> KubectlExecutionResult:
        if not result.ok:
            raise KubectlError(result)
        return result

    async def _invoke(self, *args: str, input: str | None = None) -> KubectlExecutionResult:
        cmd = [str(self._executable_path), *self._cluster.flags(), *args]
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=kubectl_environment(self._cluster.kubeconfig),
        )
        try:
            stdout_bytes, stderr_bytes = await process.communicate(
                input.encode("utf-8") if input is not None else None
            )
        except asyncio.CancelledError:
            _kill(process)
            raise
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return KubectlExecutionResult(args=tuple(cmd), returncode=process.returncode, stdout=stdout, stderr=stderr)


class FakeKubectlRunner(KubectlRunner):
    """Test double that keeps cluster objects in memory.

    ``job_statuses`` maps a job's ``repo`` label to the sequence of ``status``
    blocks returned by successive reads; the last entry repeats. ``pod_logs``
    maps a container name to the lines its log stream yields.
    """

    def __init__(  # type: ignore[override]
        self,
        *,
        cluster: ClusterConfig | None = None,
        job_statuses: Mapping[str, Iterable[dict[str, Any]]] | None = None,
        pod_logs: Mapping[str, Iterable[str]] | None = None,
    ) -> None:
        self._executable_path = Path("/tmp/fake-kubectl")
        self._cluster = cluster or ClusterConfig()
        self._job_statuses = {key: list(values) for key, values in (job_statuses or {}).items()}
        self._pod_logs = {key: list(values) for key, values in (pod_logs or {}).items()}
        self._invocations: list[tuple[str, ...]] = []
        self.objects: dict[tuple[str, str | None, str], dict[str, Any]] = {}

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations

    def objects_of(self, kind: str) -> list[dict[str, Any]]:
        return [obj for (obj_kind, _, _), obj in self.objects.items() if obj_kind == kind.lower()]

    @staticmethod
    def _key(kind: str, name: str, namespace: str | None) -> tuple[str, str | None, str]:
        kind = kind.lower()
        return (kind, None if kind in _CLUSTER_SCOPED else namespace, name)

    def _error(self, verb: str, reason: str, message: str) -> KubectlError:
        return KubectlError(
            KubectlExecutionResult(
                args=(verb,),
                returncode=1,
                stdout="",
                stderr=f"Error from server ({reason}): {message}",
            )
        )

    @staticmethod
    def _fold_string_data(obj: dict[str, Any]) -> None:
        string_data = obj.pop("stringData", None) or {}
        data = dict(obj.get("data") or {})
        for key, value in string_data.items():
            data[key] = base64.b64encode(value.encode("utf-8")).decode("ascii")
        obj["data"] = data

    def _spawn_pod(self, job: dict[str, Any]) -> None:
        name = job["metadata"]["name"]
        namespace = job["metadata"].get("namespace")
        pod_name = f"{name}-{uuid.uuid4().hex[:5]}"
        template = job["spec"]["template"]
        self.objects[self._key("pod", pod_name, namespace)] = {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": {
                "name": pod_name,
                "namespace": namespace,
                "labels": {"job-name": name, **(template.get("metadata", {}).get("labels") or {})},
            },
            "spec": copy.deepcopy(template["spec"]),
        }

    async def create(self, manifest: Mapping[str, Any]) -> dict[str, Any]:  # type: ignore[override]
        obj = copy.deepcopy(dict(manifest))
        metadata = obj.setdefault("metadata", {})
        kind = obj["kind"]
        self._invocations.append(("create", kind, metadata["name"]))
        key = self._key(kind, metadata["name"], metadata.get("namespace"))
        if key in self.objects:
            raise self._error("create", "AlreadyExists", f'{kind.lower()}s "{metadata["name"]}" already exists')
        metadata["resourceVersion"] = "1"
        if key[0] == "secret":
            self._fold_string_data(obj)
        if key[0] == "job":
            obj["status"] = {}
            self._spawn_pod(obj)
        self.objects[key] = obj
        return copy.deepcopy(obj)

    async def replace(self, manifest: Mapping[str, Any]) -> dict[str, Any]:  # type: ignore[override]
        obj = copy.deepcopy(dict(manifest))
        metadata = obj["metadata"]
        kind = obj["kind"]
        self._invocations.append(("replace", kind, metadata["name"]))
        key = self._key(kind, metadata["name"], metadata.get("namespace"))
        if key not in self.objects:
            raise self._error("replace", "NotFound", f'{kind.lower()}s "{metadata["name"]}" not found')
        metadata["resourceVersion"] = str(int(self.objects[key]["metadata"].get("resourceVersion", "1")) + 1)
        if key[0] == "secret":
            self._fold_string_data(obj)
        self.objects[key] = obj
        return copy.deepcopy(obj)

    async def get(self, kind: str, name: str, *, namespace: str | None = None) -> dict[str, Any]:  # type: ignore[override]
        self._invocations.append(("get", kind, name))
        key = self._key(kind, name, namespace)
        obj = self.objects.get(key)
        if obj is None:
            raise self._error("get", "NotFound", f'{kind.lower()}s "{name}" not found')
        if key[0] == "job":
            plan = self._job_statuses.get(obj["metadata"].get("labels", {}).get("repo", ""))
            if plan:
                obj["status"] = plan.pop(0) if len(plan) > 1 else plan[0]
        return copy.deepcopy(obj)

    async def list(  # type: ignore[override]
        self,
        kind: str,
        *,
        namespace: str | None = None,
        selector: Mapping[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        self._invocations.append(("list", kind, ",".join(f"{k}={v}" for k, v in (selector or {}).items())))
        items = []
        for (obj_kind, obj_namespace, _), obj in self.objects.items():
            if obj_kind != kind.lower() or (namespace and obj_namespace != namespace):
                continue
            labels = obj["metadata"].get("labels") or {}
            if all(labels.get(key) == value for key, value in (selector or {}).items()):
                items.append(copy.deepcopy(obj))
        return items

    async def stream_logs(self, pod: str, *, container: str, namespace: str) -> AsyncIterator[str]:  # type: ignore[override]
        self._invocations.append(("logs", pod, container))
        for line in self._pod_logs.get(container, []):
            yield line

