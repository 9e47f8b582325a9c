"""Build the Kubernetes Job that applies a change to one repository.

Every job runs three containers that share an emptyDir mounted at
``/workspace``:

``fork-setup`` (init)
    Finds or creates a fork of the repository and writes its clone URL, one
    line, to ``/workspace/fork-url.txt``.
``git-clone`` (init)
    Reads that file and clones the fork into ``/workspace/repo``. Without
    forking it clones the original URL instead.
``runner``
    Runs the coding agent in ``/workspace/repo``.

A non-zero exit in an init container fails the pod before later stages run.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from importlib import resources
from typing import Any

from ..change import ChangeSpec
from ..config import DEFAULT_IMAGE
from .credentials import delivery_for, secret_env_from
from .naming import derive_name, sanitize_label

WORKSPACE_VOLUME = "workspace"
WORKSPACE_PATH = "/workspace"
FORK_URL_FILE = f"{WORKSPACE_PATH}/fork-url.txt"
REPO_DIR = f"{WORKSPACE_PATH}/repo"
DEFAULT_BRANCH = "main"
TTL_SECONDS_AFTER_FINISHED = 300

BASE_LABELS = {
    "app": "background-automated-code-agent",
    "app.kubernetes.io/name": "baca",
    "app.kubernetes.io/component": "job",
    "app.kubernetes.io/managed-by": "baca-cli",
}


def load_script(name: str) -> str:
    """Return the text of a bundled stage script."""

    return (resources.files(__package__) / "scripts" / name).read_text(encoding="utf-8")


@dataclass(slots=True)
class Stage:
    """One container of the job's pod."""

    name: str
    command: list[str]
    env: dict[str, str] = field(default_factory=dict)
    volume_mounts: list[dict[str, Any]] = field(default_factory=list)

    def to_container(self, image: str) -> dict[str, Any]:
        return {
            "name": self.name,
            "image": image,
            "imagePullPolicy": "IfNotPresent",
            "command": list(self.command),
            "env": [{"name": key, "value": value} for key, value in self.env.items()],
            "envFrom": secret_env_from(),
            "volumeMounts": [dict(mount) for mount in self.volume_mounts],
        }


@dataclass(slots=True)
class ExecutionUnitSpec:
    """Everything needed to submit the job for one repository."""

    name: str
    namespace: str
    repo_url: str
    labels: dict[str, str]
    image: str
    init_stages: list[Stage]
    main_stage: Stage
    volumes: list[dict[str, Any]]
    backoff_limit: int
    ttl_seconds_after_finished: int = TTL_SECONDS_AFTER_FINISHED

    @property
    def stages(self) -> list[Stage]:
        return [*self.init_stages, self.main_stage]

    def to_manifest(self) -> dict[str, Any]:
        return {
            "apiVersion": "batch/v1",
            "kind": "Job",
            "metadata": {
                "name": self.name,
                "namespace": self.namespace,
                "labels": dict(self.labels),
            },
            "spec": {
                "ttlSecondsAfterFinished": self.ttl_seconds_after_finished,
                "backoffLimit": self.backoff_limit,
                "template": {
                    "spec": {
                        "restartPolicy": "Never",
                        "initContainers": [stage.to_container(self.image) for stage in self.init_stages],
                        "containers": [self.main_stage.to_container(self.image)],
                        "volumes": [dict(volume) for volume in self.volumes],
                    }
                },
            },
        }


class JobBuilder:
    """Translate a change and a repository URL into an :class:`ExecutionUnitSpec`."""

    def __init__(self, namespace: str, *, default_image: str = DEFAULT_IMAGE) -> None:
        self._namespace = namespace
        self._default_image = default_image
        self._fork_setup_script = load_script("fork-setup.sh")
        self._job_script = load_script("job-runner.sh")

    @property
    def namespace(self) -> str:
        return self._namespace

    def build(
        self,
        change: ChangeSpec,
        repo_url: str,
        *,
        retries: int = 0,
        fork_org: str = "",
        fork: bool = True,
    ) -> ExecutionUnitSpec:
        workspace_mount = {"name": WORKSPACE_VOLUME, "mountPath": WORKSPACE_PATH}
        delivery = delivery_for(change.agent)

        init_stages: list[Stage] = []
        if fork:
            init_stages.append(
                Stage(
                    name="fork-setup",
                    command=["sh", "-c", self._fork_setup_script],
                    env={"ORIGINAL_REPO_URL": repo_url, "FORK_ORG": fork_org},
                    volume_mounts=[workspace_mount],
                )
            )
        init_stages.append(self._clone_stage(change, repo_url, fork=fork, mount=workspace_mount))

        main_stage = Stage(
            name="runner",
            command=["bash", "-c", self._job_script],
            env={
                "CONFIG": change.to_config_json(),
                "REPO_URL": repo_url,
                "ORIGINAL_REPO_URL": repo_url,
                "PROMPT": change.prompt,
            },
            volume_mounts=[workspace_mount, *delivery.volume_mounts()],
        )

        volumes = [{"name": WORKSPACE_VOLUME, "emptyDir": {}}, *delivery.volumes()]

        return ExecutionUnitSpec(
            name=derive_name(repo_url),
            namespace=self._namespace,
            repo_url=repo_url,
            labels={**BASE_LABELS, "repo": sanitize_label(repo_url)},
            image=change.image or self._default_image,
            init_stages=init_stages,
            main_stage=main_stage,
            volumes=volumes,
            backoff_limit=retries,
        )

    @staticmethod
    def _clone_stage(change: ChangeSpec, repo_url: str, *, fork: bool, mount: dict[str, Any]) -> Stage:
        branch = shlex.quote(change.branch or DEFAULT_BRANCH)
        if fork:
            script = (
                f'FORK_URL=$(cat {FORK_URL_FILE}); '
                f'fleet gitcloner --branch {branch} "$FORK_URL" {REPO_DIR}'
            )
            env: dict[str, str] = {}
        else:
            script = f'fleet gitcloner --branch {branch} "$ORIGINAL_REPO_URL" {REPO_DIR}'
            env = {"ORIGINAL_REPO_URL": repo_url}
        return Stage(name="git-clone", command=["sh", "-c", script], env=env, volume_mounts=[mount])


__all__ = [
    "BASE_LABELS",
    "DEFAULT_BRANCH",
    "ExecutionUnitSpec",
    "FORK_URL_FILE",
    "JobBuilder",
    "Stage",
    "WORKSPACE_PATH",
    "load_script",
]
