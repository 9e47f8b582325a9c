"""Environment helpers for spawning kubectl."""

from __future__ import annotations

import os
from pathlib import Path

# Interpreter settings of the calling process must not leak into exec
# credential plugins (gcloud, aws) that kubectl spawns.
_SANITIZED_VARS = {
    "PYTHONHOME",
    "PYTHONPATH",
    "VIRTUAL_ENV",
    "PIP_RESPECT_VIRTUALENV",
}


def kubectl_environment(kubeconfig: Path | None = None) -> dict[str, str]:
    """Return the environment for a kubectl child process.

    Exec credential plugins read ``KUBECONFIG`` rather than the ``--kubeconfig``
    flag, so an explicit kubeconfig is exported as well.
    """

    env = {key: value for key, value in os.environ.items() if key not in _SANITIZED_VARS}
    if kubeconfig is not None:
        env["KUBECONFIG"] = str(kubeconfig)
    return env


__all__ = ["kubectl_environment"]
