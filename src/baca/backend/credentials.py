"""Credential bundle collection and per-agent credential delivery."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

SECRET_NAME = "baca-credentials"

GITHUB_TOKEN = "GITHUB_TOKEN"
COPILOT_TOKEN = "COPILOT_TOKEN"
GEMINI_API_KEY = "GEMINI_API_KEY"

# Files gemini-cli keeps under ~/.gemini; stored as GEMINI_<file> in the secret.
GEMINI_OAUTH_FILES = (
    "oauth_creds.json",
    "google_accounts.json",
    "installation_id",
    "settings.json",
)
GEMINI_OAUTH_PREFIX = "GEMINI_"

logger = logging.getLogger(__name__)


class CredentialError(RuntimeError):
    """Raised when the credential bundle cannot be assembled."""


def secret_env_from() -> list[dict[str, Any]]:
    """envFrom entry exposing every bundle key as an environment variable."""

    return [{"secretRef": {"name": SECRET_NAME}}]


@dataclass(frozen=True, slots=True)
class ApiKeyEnv:
    """Credentials reach the agent through environment variables only."""

    def volumes(self) -> list[dict[str, Any]]:
        return []

    def volume_mounts(self) -> list[dict[str, Any]]:
        return []


@dataclass(frozen=True, slots=True)
class OAuthFilesMount:
    """Credentials reach the agent as files projected from the secret.

    The volume is optional so units still start when the bundle carries an
    API key instead of the OAuth files.
    """

    volume_name: str
    mount_path: str
    items: tuple[tuple[str, str], ...]
    mode: int = 0o600

    def volumes(self) -> list[dict[str, Any]]:
        return [
            {
                "name": self.volume_name,
                "secret": {
                    "secretName": SECRET_NAME,
                    "items": [
                        {"key": key, "path": path, "mode": self.mode} for key, path in self.items
                    ],
                    "optional": True,
                },
            }
        ]

    def volume_mounts(self) -> list[dict[str, Any]]:
        return [{"name": self.volume_name, "mountPath": self.mount_path, "readOnly": True}]


CredentialDelivery = ApiKeyEnv | OAuthFilesMount

GEMINI_OAUTH = OAuthFilesMount(
    volume_name="gemini-oauth",
    mount_path="/root/.gemini",
    items=tuple((GEMINI_OAUTH_PREFIX + name, name) for name in GEMINI_OAUTH_FILES),
)


# Agents not listed here get credentials through the environment only.
AGENT_DELIVERIES: dict[str, CredentialDelivery] = {
    "gemini-cli": GEMINI_OAUTH,
}


def delivery_for(agent: str) -> CredentialDelivery:
    """Return the credential delivery strategy for ``agent``."""

    return AGENT_DELIVERIES.get(agent, ApiKeyEnv())


def collect_credentials(
    *,
    github_token: str | None = None,
    copilot_token: str | None = None,
    gemini_api_key: str | None = None,
    gemini_oauth: bool = False,
    gemini_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Build the credential bundle from explicit values and the environment."""

    env = os.environ if environ is None else environ
    github_token = github_token or env.get(GITHUB_TOKEN)
    copilot_token = copilot_token or env.get(COPILOT_TOKEN)
    gemini_api_key = gemini_api_key or env.get(GEMINI_API_KEY)

    if not github_token:
        raise CredentialError(
            "github token is required: use --github-token flag or GITHUB_TOKEN env var"
        )

    credentials = {GITHUB_TOKEN: github_token}

    if copilot_token:
        credentials[COPILOT_TOKEN] = copilot_token
        logger.info("using separate copilot token")
    else:
        logger.info("copilot will use GITHUB_TOKEN (ensure it has Copilot Requests permission)")

    if gemini_api_key and gemini_oauth:
        raise CredentialError("choose either API key or OAuth authentication for gemini-cli")

    if gemini_api_key:
        credentials[GEMINI_API_KEY] = gemini_api_key
        logger.info("using gemini api key authentication")

    if gemini_oauth:
        directory = gemini_dir or Path.home() / ".gemini"
        for name in GEMINI_OAUTH_FILES:
            path = directory / name
            try:
                credentials[GEMINI_OAUTH_PREFIX + name] = path.read_text(encoding="utf-8")
            except OSError as exc:
                raise CredentialError(
                    f"failed to read {path}: {exc} (ensure gemini-cli is authenticated)"
                ) from exc
        logger.info("using gemini oauth authentication", extra={"files": len(GEMINI_OAUTH_FILES)})

    return credentials


__all__ = [
    "AGENT_DELIVERIES",
    "ApiKeyEnv",
    "CredentialDelivery",
    "CredentialError",
    "OAuthFilesMount",
    "SECRET_NAME",
    "collect_credentials",
    "delivery_for",
    "secret_env_from",
]
