from __future__ import annotations

import base64
import json
from pathlib import Path

import pytest
import yaml

from baca import cli
from baca.backend.naming import sanitize_label
from baca.config import BacaSettings
from baca.kube import FakeKubectlRunner

REPO = "https://github.com/example/repo1"
COMPLETE = {"conditions": [{"type": "Complete", "status": "True"}]}
FAILED = {"conditions": [{"type": "Failed", "status": "True"}]}


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> BacaSettings:
    monkeypatch.chdir(tmp_path)
    value = BacaSettings(BACA_NAMESPACE="agents", BACA_POLL_INTERVAL=0.01, BACA_WAIT_TIMEOUT=2.0)
    monkeypatch.setattr(cli, "get_settings", lambda: value)
    return value


def install_fake(monkeypatch: pytest.MonkeyPatch, fake: FakeKubectlRunner) -> None:
    monkeypatch.setattr(cli, "build_client", lambda settings, args: fake)


def write_change(tmp_path: Path) -> Path:
    path = tmp_path / "change.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "kind": "Change",
                "apiVersion": "v1",
                "spec": {"prompt": "Bump dependencies", "repos": [REPO], "agent": "copilot-cli"},
            }
        ),
        encoding="utf-8",
    )
    return path


def test_setup_stores_tokens_from_flags(monkeypatch: pytest.MonkeyPatch, settings: BacaSettings) -> None:
    monkeypatch.delenv("COPILOT_TOKEN", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    fake = FakeKubectlRunner()
    install_fake(monkeypatch, fake)

    cli.main(["k8s", "setup", "--github-token", "gh-token"])

    [secret] = fake.objects_of("secret")
    assert secret["metadata"]["namespace"] == "agents"
    assert base64.b64decode(secret["data"]["GITHUB_TOKEN"]).decode() == "gh-token"
    assert fake.objects_of("namespace")[0]["metadata"]["name"] == "agents"


def test_setup_without_github_token_exits_non_zero(
    monkeypatch: pytest.MonkeyPatch, settings: BacaSettings
) -> None:
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    fake = FakeKubectlRunner()
    install_fake(monkeypatch, fake)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["k8s", "setup"])

    assert excinfo.value.code == 1
    assert fake.invocations == []


def test_apply_waits_and_succeeds(
    monkeypatch: pytest.MonkeyPatch, settings: BacaSettings, tmp_path: Path
) -> None:
    fake = FakeKubectlRunner(job_statuses={sanitize_label(REPO): [COMPLETE]})
    install_fake(monkeypatch, fake)

    cli.main(["apply", str(write_change(tmp_path))])

    [job] = fake.objects_of("job")
    assert job["metadata"]["namespace"] == "agents"


def test_apply_failure_exits_non_zero(
    monkeypatch: pytest.MonkeyPatch, settings: BacaSettings, tmp_path: Path
) -> None:
    fake = FakeKubectlRunner(job_statuses={sanitize_label(REPO): [FAILED]})
    install_fake(monkeypatch, fake)

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["apply", str(write_change(tmp_path)), "--retries", "2"])

    assert excinfo.value.code == 1
    [job] = fake.objects_of("job")
    assert job["spec"]["backoffLimit"] == 2


def test_apply_no_wait_and_no_fork(
    monkeypatch: pytest.MonkeyPatch, settings: BacaSettings, tmp_path: Path
) -> None:
    fake = FakeKubectlRunner()
    install_fake(monkeypatch, fake)

    cli.main(["apply", str(write_change(tmp_path)), "--no-wait", "--no-fork", "--namespace", "other"])

    [job] = fake.objects_of("job")
    assert job["metadata"]["namespace"] == "other"
    init_names = [c["name"] for c in job["spec"]["template"]["spec"]["initContainers"]]
    assert init_names == ["git-clone"]
    assert not any(call[0] == "get" for call in fake.invocations)


def test_apply_rejects_invalid_change_file(
    monkeypatch: pytest.MonkeyPatch, settings: BacaSettings, tmp_path: Path
) -> None:
    fake = FakeKubectlRunner()
    install_fake(monkeypatch, fake)
    path = tmp_path / "broken.yaml"
    path.write_text("kind: Change\nspec:\n  repos: []\n", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["apply", str(path)])

    assert excinfo.value.code == 1
    assert fake.invocations == []


def test_build_client_prefers_flags_over_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    kubectl = tmp_path / "kubectl"
    kubectl.write_text("#!/bin/sh\n", encoding="utf-8")
    settings = BacaSettings(KUBECTL_PATH=str(kubectl), BACA_CONTEXT="from-settings")
    args = cli.build_parser().parse_args(
        ["apply", "change.yaml", "--kubeconfig", str(tmp_path / "kc"), "--context", "kind-dev"]
    )

    client = cli.build_client(settings, args)

    assert client.executable == kubectl
    assert client.cluster.flags() == ["--kubeconfig", str(tmp_path / "kc"), "--context", "kind-dev"]


class GarbledOutputRunner(FakeKubectlRunner):
    """kubectl succeeded but printed something other than JSON."""

    async def create(self, manifest):  # type: ignore[override]
        raise json.JSONDecodeError("Expecting value", "Warning: deprecated", 0)


def test_setup_unparsable_kubectl_output_exits_non_zero(
    monkeypatch: pytest.MonkeyPatch, settings: BacaSettings
) -> None:
    install_fake(monkeypatch, GarbledOutputRunner())

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["k8s", "setup", "--github-token", "gh-token"])

    assert excinfo.value.code == 1


def test_apply_unparsable_kubectl_output_exits_non_zero(
    monkeypatch: pytest.MonkeyPatch, settings: BacaSettings, tmp_path: Path
) -> None:
    install_fake(monkeypatch, GarbledOutputRunner())

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["apply", str(write_change(tmp_path))])

    assert excinfo.value.code == 1
