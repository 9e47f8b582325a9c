from __future__ import annotations

import json

from baca.backend.jobspec import FORK_URL_FILE, JobBuilder, load_script
from baca.backend.naming import sanitize_label
from baca.change import ChangeSpec

REPO = "https://github.com/example/repo1"


def make_change(**overrides) -> ChangeSpec:
    fields = {
        "agentsmd": "https://example.com/agents.md",
        "prompt": "Add error handling",
        "repos": [REPO],
        "agent": "copilot-cli",
    }
    fields.update(overrides)
    return ChangeSpec.model_validate(fields)


def env_of(container: dict) -> dict[str, str]:
    return {item["name"]: item["value"] for item in container["env"]}


def test_job_metadata_and_lifecycle_fields() -> None:
    unit = JobBuilder("agents").build(make_change(), REPO, retries=2)
    manifest = unit.to_manifest()

    assert manifest["kind"] == "Job"
    assert manifest["metadata"]["name"] == unit.name
    assert manifest["metadata"]["namespace"] == "agents"
    assert manifest["metadata"]["labels"] == {
        "app": "background-automated-code-agent",
        "app.kubernetes.io/name": "baca",
        "app.kubernetes.io/component": "job",
        "app.kubernetes.io/managed-by": "baca-cli",
        "repo": sanitize_label(REPO),
    }
    assert manifest["spec"]["backoffLimit"] == 2
    assert manifest["spec"]["ttlSecondsAfterFinished"] == 300
    assert manifest["spec"]["template"]["spec"]["restartPolicy"] == "Never"


def test_stages_are_ordered_and_share_the_workspace() -> None:
    unit = JobBuilder("agents").build(make_change(), REPO, fork_org="my-org")
    pod = unit.to_manifest()["spec"]["template"]["spec"]

    assert [c["name"] for c in pod["initContainers"]] == ["fork-setup", "git-clone"]
    assert [c["name"] for c in pod["containers"]] == ["runner"]
    assert pod["volumes"] == [{"name": "workspace", "emptyDir": {}}]
    for container in pod["initContainers"] + pod["containers"]:
        assert {"name": "workspace", "mountPath": "/workspace"} in container["volumeMounts"]
        assert container["envFrom"] == [{"secretRef": {"name": "baca-credentials"}}]

    fork_setup, clone = pod["initContainers"]
    assert env_of(fork_setup) == {"ORIGINAL_REPO_URL": REPO, "FORK_ORG": "my-org"}
    assert fork_setup["command"] == ["sh", "-c", load_script("fork-setup.sh")]
    assert FORK_URL_FILE in load_script("fork-setup.sh")
    assert FORK_URL_FILE in clone["command"][2]
    assert "--branch main" in clone["command"][2]


def test_runner_receives_change_and_prompt() -> None:
    change = make_change(branch="develop")
    unit = JobBuilder("agents").build(change, REPO)
    runner = unit.to_manifest()["spec"]["template"]["spec"]["containers"][0]
    env = env_of(runner)

    assert json.loads(env["CONFIG"])["prompt"] == "Add error handling"
    assert env["REPO_URL"] == REPO
    assert env["ORIGINAL_REPO_URL"] == REPO
    assert env["PROMPT"] == "Add error handling"
    assert runner["command"][:2] == ["bash", "-c"]
    assert "--branch develop" in unit.init_stages[-1].command[2]


def test_image_defaults_and_overrides() -> None:
    builder = JobBuilder("agents", default_image="registry.local/runner:1")

    assert builder.build(make_change(), REPO).image == "registry.local/runner:1"
    assert builder.build(make_change(image="ghcr.io/example/runner:latest"), REPO).image == (
        "ghcr.io/example/runner:latest"
    )
    manifest = builder.build(make_change(), REPO).to_manifest()
    images = {c["image"] for c in manifest["spec"]["template"]["spec"]["initContainers"]}
    assert images == {"registry.local/runner:1"}


def test_gemini_mounts_optional_oauth_files() -> None:
    unit = JobBuilder("agents").build(make_change(agent="gemini-cli"), REPO)
    pod = unit.to_manifest()["spec"]["template"]["spec"]

    oauth_volume = next(volume for volume in pod["volumes"] if volume["name"] == "gemini-oauth")
    assert oauth_volume["secret"]["secretName"] == "baca-credentials"
    assert oauth_volume["secret"]["optional"] is True
    assert {item["mode"] for item in oauth_volume["secret"]["items"]} == {0o600}
    assert {"name": "gemini-oauth", "mountPath": "/root/.gemini", "readOnly": True} in (
        pod["containers"][0]["volumeMounts"]
    )
    for container in pod["initContainers"]:
        assert all(mount["name"] != "gemini-oauth" for mount in container["volumeMounts"])


def test_api_key_agents_get_no_extra_volumes() -> None:
    pod = JobBuilder("agents").build(make_change(), REPO).to_manifest()["spec"]["template"]["spec"]

    assert [volume["name"] for volume in pod["volumes"]] == ["workspace"]


def test_without_fork_clone_reads_original_url() -> None:
    unit = JobBuilder("agents").build(make_change(), REPO, fork=False)

    assert [stage.name for stage in unit.stages] == ["git-clone", "runner"]
    clone = unit.init_stages[0]
    assert clone.env == {"ORIGINAL_REPO_URL": REPO}
    assert FORK_URL_FILE not in clone.command[2]


def test_each_build_gets_a_new_name() -> None:
    builder = JobBuilder("agents")

    assert builder.build(make_change(), REPO).name != builder.build(make_change(), REPO).name
