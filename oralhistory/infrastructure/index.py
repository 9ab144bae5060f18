"""Index of record ids stored as a single ledger value."""
from __future__ import annotations

import logging
from typing import cast

from tenacity import AsyncRetrying, RetryError, before_sleep_log, retry_if_result, stop_after_attempt

from oralhistory.core.codec import decode_index, encode_index
from oralhistory.core.errors import DecodeError, RemoteCallFailed
from oralhistory.infrastructure.ledger import ConditionalLedgerClient, LedgerClient, supports_conditional_put

logger = logging.getLogger(__name__)


class IndexManager:
    """Read-modify-write index.

    ``append_id`` reads the whole index, appends and writes it back with one
    put.  Concurrent appenders can overwrite each other; the last writer wins
    and nothing is retried.
    """

    def __init__(self, ledger: LedgerClient, index_key: str = "oral_history_keys") -> None:
        self._ledger = ledger
        self._index_key = index_key

    @property
    def index_key(self) -> str:
        return self._index_key

    def _decode(self, raw: bytes) -> list[str]:
        if not raw:
            return []
        try:
            return decode_index(raw)
        except DecodeError as exc:
            logger.error("Error parsing record keys under %s: %s", self._index_key, exc)
            return []

    async def read_index(self) -> list[str]:
        raw = await self._ledger.get(self._index_key)
        return self._decode(raw)

    async def append_id(self, record_id: str) -> None:
        ids = await self.read_index()
        if record_id in ids:
            return
        ids.append(record_id)
        await self._ledger.put(self._index_key, encode_index(ids))


class ConditionalIndexManager(IndexManager):
    """Index whose appends are conditional writes retried on conflict."""

    def __init__(
        self,
        ledger: LedgerClient,
        index_key: str = "oral_history_keys",
        *,
        max_attempts: int = 5,
    ) -> None:
        if not supports_conditional_put(ledger):
            raise TypeError(f"{type(ledger).__name__} does not support conditional writes")
        super().__init__(ledger, index_key)
        self._conditional_ledger = cast(ConditionalLedgerClient, ledger)
        self._max_attempts = max_attempts

    async def _try_append(self, record_id: str) -> bool:
        """One read plus conditional write; ``False`` means the index changed underneath."""

        raw = await self._ledger.get(self._index_key)
        ids = self._decode(raw)
        if record_id in ids:
            return True
        ids.append(record_id)
        return await self._conditional_ledger.put_if_match(self._index_key, encode_index(ids), raw)

    async def append_id(self, record_id: str) -> None:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            retry=retry_if_result(lambda appended: appended is False),
            before_sleep=before_sleep_log(logger, logging.INFO),
        )
        try:
            await retrying(self._try_append, record_id)
        except RetryError as exc:
            raise RemoteCallFailed(
                f"could not append {record_id} to the index after {self._max_attempts} attempts"
            ) from exc


__all__ = ["ConditionalIndexManager", "IndexManager"]
