"""Namespace and credential secret provisioning."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from ..kube import KubectlError, KubectlRunner
from .credentials import SECRET_NAME
from .errors import SetupError

logger = logging.getLogger(__name__)


class CredentialProvisioner:
    """Ensure the namespace and the shared credentials secret exist.

    Repeated calls merge: keys passed later overwrite earlier values, keys not
    passed keep whatever the secret already holds.
    """

    def __init__(self, client: KubectlRunner, namespace: str) -> None:
        self._client = client
        self._namespace = namespace

    async def setup(self, credentials: Mapping[str, str]) -> None:
        logger.info("setting up kubernetes backend", extra={"namespace": self._namespace})
        await self._ensure_namespace()
        await self._store_credentials(dict(credentials))

    async def _ensure_namespace(self) -> None:
        manifest = {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": self._namespace}}
        try:
            await self._client.create(manifest)
        except KubectlError as exc:
            if not exc.already_exists:
                raise SetupError(f"failed to create namespace {self._namespace}: {exc}") from exc
            try:
                await self._client.get("namespace", self._namespace)
            except KubectlError as get_exc:
                raise SetupError(f"failed to get namespace {self._namespace}: {get_exc}") from get_exc
            logger.info("namespace already exists: %s", self._namespace)
        else:
            logger.info("namespace created: %s", self._namespace)

    async def _store_credentials(self, credentials: dict[str, str]) -> None:
        manifest: dict[str, Any] = {
            "apiVersion": "v1",
            "kind": "Secret",
            "type": "Opaque",
            "metadata": {"name": SECRET_NAME, "namespace": self._namespace},
            "stringData": credentials,
        }
        logger.info("storing credentials", extra={"count": len(credentials)})

        try:
            await self._client.create(manifest)
        except KubectlError as exc:
            if not exc.already_exists:
                raise SetupError(f"failed to create secret {SECRET_NAME}: {exc}") from exc
        else:
            logger.info("secret created: %s", SECRET_NAME)
            return

        # Lost the create race or the secret predates this call: merge into it.
        try:
            existing = await self._client.get("secret", SECRET_NAME, namespace=self._namespace)
        except KubectlError as exc:
            raise SetupError(f"failed to get secret {SECRET_NAME}: {exc}") from exc

        existing["stringData"] = credentials
        try:
            await self._client.replace(existing)
        except KubectlError as exc:
            raise SetupError(f"failed to update secret {SECRET_NAME}: {exc}") from exc
        logger.info("secret updated: %s", SECRET_NAME)


__all__ = ["CredentialProvisioner"]
