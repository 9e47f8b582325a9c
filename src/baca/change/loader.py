"""Change file loading."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import Change


class ChangeLoadError(RuntimeError):
    """Raised when a change file cannot be read, parsed or validated."""


def load_change(path: Path | str) -> Change:
    """Read and validate a Change definition from a YAML file."""

    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ChangeLoadError(f"Failed to read change file {path}: {exc}") from exc

    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ChangeLoadError(f"Failed to parse change file {path}: {exc}") from exc

    if not isinstance(document, dict):
        raise ChangeLoadError(f"Invalid change definition in {path}: expected a mapping")

    try:
        return Change.model_validate(document)
    except ValidationError as exc:
        raise ChangeLoadError(f"Invalid change definition in {path}: {exc}") from exc


__all__ = ["ChangeLoadError", "load_change"]
