"""Ledger client speaking to a key/value service over HTTP."""
from __future__ import annotations

import hashlib
import logging
from urllib.parse import quote, urlparse

import httpx

from oralhistory.core.errors import RemoteCallFailed

logger = logging.getLogger(__name__)


class HttpLedgerClient:
    """Async client for a key/value ledger exposing ``/health`` and ``/kv/{key}``."""

    def __init__(
        self,
        api_base: str,
        *,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        parsed = urlparse(api_base)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("api_base must include scheme and host")

        self._base_url = api_base.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _key_url(self, key: str) -> str:
        return f"{self._base_url}/kv/{quote(key, safe='')}"

    @staticmethod
    def _etag(value: bytes) -> str:
        return f'"{hashlib.sha256(value).hexdigest()}"'

    @staticmethod
    def _raise_for_status(response: httpx.Response, method: str, key: str) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = response.text.strip()[:200] or response.reason_phrase
            raise RemoteCallFailed(f"{method} {key} returned {response.status_code}: {detail}") from exc

    async def _send(self, method: str, key: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, self._key_url(key), **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteCallFailed(f"{method} {key} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def is_available(self) -> bool:
        try:
            response = await self._client.get(f"{self._base_url}/health")
        except httpx.HTTPError as exc:
            logger.warning("Ledger health check failed: %s", exc)
            return False
        return response.is_success

    async def get(self, key: str) -> bytes:
        response = await self._send("GET", key)
        if response.status_code == 404:
            return b""
        self._raise_for_status(response, "GET", key)
        return response.content

    async def put(self, key: str, value: bytes) -> None:
        response = await self._send(
            "PUT",
            key,
            content=value,
            headers={"Content-Type": "application/octet-stream"},
        )
        self._raise_for_status(response, "PUT", key)

    async def put_if_match(self, key: str, value: bytes, expected: bytes) -> bool:
        headers = {"Content-Type": "application/octet-stream"}
        if expected:
            headers["If-Match"] = self._etag(expected)
        else:
            headers["If-None-Match"] = "*"
        response = await self._send("PUT", key, content=value, headers=headers)
        if response.status_code == 412:
            return False
        self._raise_for_status(response, "PUT", key)
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["HttpLedgerClient"]
