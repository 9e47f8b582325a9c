"""Change document models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChangeSpec(BaseModel):
    """What to do and where: the agent, its prompt and the target repositories."""

    model_config = ConfigDict(populate_by_name=True)

    agents_md: str = Field(
        default="",
        alias="agentsmd",
        description="URL of an AGENTS.md style document handed to the agent.",
    )
    resources: list[str] = Field(
        default_factory=list,
        description="Additional documents downloaded next to the repository.",
    )
    prompt: str = Field(..., description="Instructions for the coding agent.")
    repos: list[str] = Field(..., description="Repository URLs the change is applied to.")
    agent: str = Field(..., description="Coding agent identifier, e.g. gemini-cli.")
    image: str | None = Field(default=None, description="Runner image override.")
    branch: str | None = Field(default=None, description="Branch to check out (default: main).")

    @field_validator("prompt", "agent")
    @classmethod
    def _require_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("must not be empty")
        return normalized

    @field_validator("repos")
    @classmethod
    def _require_repos(cls, value: list[str]) -> list[str]:
        repos = [repo.strip() for repo in value if repo and repo.strip()]
        if not repos:
            raise ValueError("must contain at least one repository")
        return repos

    @field_validator("resources", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):  # type: ignore[override]
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return list(value)
        raise TypeError("resources must be a sequence of URLs")

    def to_config_json(self) -> str:
        """Serialize for the runner stage's CONFIG variable."""

        return self.model_dump_json(by_alias=True, exclude_none=True)


class Change(BaseModel):
    """A Change document as written in YAML."""

    model_config = ConfigDict(populate_by_name=True)

    kind: str = Field(..., description="Document kind; must be 'Change'.")
    api_version: str = Field(default="v1", alias="apiVersion")
    spec: ChangeSpec

    @field_validator("kind")
    @classmethod
    def _require_change_kind(cls, value: str) -> str:
        if value != "Change":
            raise ValueError(f"kind must be 'Change', got '{value}'")
        return value


__all__ = ["Change", "ChangeSpec"]
