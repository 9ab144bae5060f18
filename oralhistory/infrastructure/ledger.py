"""Ledger client contract and an in-memory implementation.

The ledger is a flat key/value store with per-key last-write-wins semantics.
Absent keys read back as empty bytes.  Ledgers that can perform a
conditional write expose ``put_if_match``; the hardened index relies on it.
"""
from __future__ import annotations

import asyncio
from typing import Literal, Protocol, runtime_checkable

from oralhistory.core.errors import RemoteCallFailed

Operation = Literal["get", "put"]


class LedgerClient(Protocol):
    """Contract for ledger integrations."""

    async def is_available(self) -> bool:
        """Liveness probe checked before listing."""

    async def get(self, key: str) -> bytes:
        """Return the stored bytes, or ``b""`` when the key is absent."""

    async def put(self, key: str, value: bytes) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""


@runtime_checkable
class ConditionalLedgerClient(LedgerClient, Protocol):
    async def put_if_match(self, key: str, value: bytes, expected: bytes) -> bool:
        """Store ``value`` only if the key currently holds ``expected``.

        ``expected == b""`` means the key must be absent.  Returns ``False``
        when the stored value changed in the meantime.
        """


def supports_conditional_put(ledger: object) -> bool:
    return callable(getattr(ledger, "put_if_match", None))


class InMemoryLedger:
    """Process-local ledger used for development and tests.

    ``latency`` suspends every call for the given number of seconds (zero
    still yields to the event loop), which makes interleavings between
    concurrent callers reproducible.
    """

    def __init__(self, *, latency: float = 0.0, available: bool = True) -> None:
        self._data: dict[str, bytes] = {}
        self._latency = latency
        self._failures: set[tuple[Operation, str | None]] = set()
        self.available = available
        self.calls: list[tuple[Operation, str]] = []

    # ------------------------------------------------------------------
    # test helpers
    # ------------------------------------------------------------------
    def seed(self, key: str, value: bytes) -> None:
        self._data[key] = value

    def peek(self, key: str) -> bytes:
        return self._data.get(key, b"")

    def keys(self) -> list[str]:
        return list(self._data)

    def fail_on(self, operation: Operation, key: str | None = None) -> None:
        """Make ``operation`` fail for ``key`` (or for every key when ``None``)."""

        self._failures.add((operation, key))

    def clear_failures(self) -> None:
        self._failures.clear()

    def reset(self) -> None:
        self._data.clear()
        self._failures.clear()
        self.calls.clear()
        self.available = True

    # ------------------------------------------------------------------
    # ledger API
    # ------------------------------------------------------------------
    async def is_available(self) -> bool:
        await asyncio.sleep(self._latency)
        return self.available

    async def get(self, key: str) -> bytes:
        await self._enter("get", key)
        return self._data.get(key, b"")

    async def put(self, key: str, value: bytes) -> None:
        await self._enter("put", key)
        self._data[key] = bytes(value)

    async def put_if_match(self, key: str, value: bytes, expected: bytes) -> bool:
        await self._enter("put", key)
        # no suspension between the comparison and the write
        if self._data.get(key, b"") != expected:
            return False
        self._data[key] = bytes(value)
        return True

    async def _enter(self, operation: Operation, key: str) -> None:
        self.calls.append((operation, key))
        await asyncio.sleep(self._latency)
        if (operation, key) in self._failures or (operation, None) in self._failures:
            raise RemoteCallFailed(f"simulated {operation} failure for {key}")


__all__ = [
    "ConditionalLedgerClient",
    "InMemoryLedger",
    "LedgerClient",
    "supports_conditional_put",
]
