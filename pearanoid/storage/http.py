"""HttpStorage: the encrypted blob on a remote vault API (GET/POST /vault)."""

from __future__ import annotations

import logging

import httpx

from pearanoid.config import Config
from pearanoid.errors import NotFoundError, TransportError
from pearanoid.storage.backend import VaultStorage

logger = logging.getLogger("pearanoid.storage.http")


class HttpStorage(VaultStorage):
    """Remote store speaking ``{base_url}/vault`` with an opaque octet-stream body."""

    def __init__(
        self,
        base_url: str = Config.DEFAULT_API_URL,
        token: str | None = None,
        timeout: float = Config.HTTP_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        headers = {"Accept": "application/octet-stream"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def fetch_encrypted_vault(self) -> bytes:
        try:
            r = self._client.get("/vault")
        except httpx.HTTPError as exc:
            logger.warning("Vault fetch failed: %s", type(exc).__name__)
            raise TransportError(f"Could not reach vault store: {exc}") from exc

        if r.status_code in (404, 204):
            raise NotFoundError("Vault not found")
        if r.status_code >= 400:
            raise TransportError(f"Vault fetch failed: HTTP {r.status_code}")
        if not r.content:
            raise NotFoundError("Vault not found")
        if r.headers.get("content-type", "").startswith("application/json"):
            # Servers without a stored blob may answer with an empty JSON vault
            logger.info("Vault store returned a JSON placeholder; treating as no vault")
            raise NotFoundError("Vault not found")
        if len(r.content) > Config.MAX_VAULT_SIZE:
            raise TransportError(f"Vault too large: {len(r.content)} bytes")
        logger.debug("Fetched vault (%d bytes)", len(r.content))
        return r.content

    def save_encrypted_vault(self, blob: bytes) -> None:
        try:
            r = self._client.post(
                "/vault",
                content=blob,
                headers={"Content-Type": "application/octet-stream"},
            )
        except httpx.HTTPError as exc:
            logger.warning("Vault save failed: %s", type(exc).__name__)
            raise TransportError(f"Could not reach vault store: {exc}") from exc

        if r.status_code >= 400:
            raise TransportError(f"Vault save failed: HTTP {r.status_code}")
        logger.info("Vault saved remotely (%d bytes)", len(blob))

    def health(self) -> bool:
        """True when ``{base_url}/health`` answers ``{"status": "ok"}``."""
        try:
            r = self._client.get("/health", headers={"Accept": "application/json"})
            if r.status_code != 200:
                return False
            data = r.json()
            return isinstance(data, dict) and data.get("status") == "ok"
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Health check failed: %s", exc)
            return False

    def close(self) -> None:
        self._client.close()
