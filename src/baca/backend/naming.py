"""Job names and labels derived from repository URLs."""

from __future__ import annotations

import re
import secrets
from urllib.parse import urlparse

NAME_PREFIX = "baca"
MAX_NAME_LENGTH = 63
SUFFIX_LENGTH = 8

_INVALID_NAME_CHARS = re.compile(r"[^a-z0-9-]")
_INVALID_LABEL_CHARS = re.compile(r"[^a-z0-9_-]")
_SCHEME = re.compile(r"^[a-z][a-z0-9+.-]*://")


def random_suffix() -> str:
    return secrets.token_hex(SUFFIX_LENGTH // 2)


def derive_name(repo_url: str) -> str:
    """Return a unique, DNS-label-safe job name for ``repo_url``.

    Unparsable or schemeless URLs fall back to ``baca-job-<suffix>``.
    """

    try:
        parsed = urlparse(repo_url)
    except ValueError:
        parsed = None
    if parsed is None or not parsed.scheme:
        return f"{NAME_PREFIX}-job-{random_suffix()}"

    path = parsed.path.removeprefix("/").removesuffix(".git")
    path = _INVALID_NAME_CHARS.sub("-", path.lower())

    max_path_length = MAX_NAME_LENGTH - len(NAME_PREFIX) - 2 - SUFFIX_LENGTH
    path = path[:max_path_length]

    return f"{NAME_PREFIX}-{path}-{random_suffix()}"


def sanitize_label(repo_url: str) -> str:
    """Return a label value identifying the repository; not unique."""

    value = _SCHEME.sub("", repo_url.strip().lower())
    value = _INVALID_LABEL_CHARS.sub("-", value)
    # Label values must start and end with an alphanumeric character.
    return value[:MAX_NAME_LENGTH].strip("-_")


__all__ = ["MAX_NAME_LENGTH", "NAME_PREFIX", "derive_name", "random_suffix", "sanitize_label"]
