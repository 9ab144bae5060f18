"""Record persistence on top of the flat ledger."""
from __future__ import annotations

import logging
from typing import Protocol

from oralhistory.core.codec import decode_record, encode_record
from oralhistory.core.errors import DecodeError, NotFound, RemoteCallFailed, RemoteUnavailable
from oralhistory.domain import Record
from oralhistory.infrastructure.index import IndexManager
from oralhistory.infrastructure.ledger import LedgerClient

logger = logging.getLogger(__name__)


class RecordRepository(Protocol):
    """Persistence contract for records."""

    async def list_records(self) -> list[Record]: ...

    async def get_record(self, record_id: str) -> Record: ...

    async def exists(self, record_id: str) -> bool: ...

    async def create_record(self, record: Record) -> Record: ...

    async def update_record(self, record: Record) -> Record: ...

    async def aclose(self) -> None: ...

class LedgerRecordStore:
    """Simulates a record collection with one blob per record plus an index."""

    def __init__(
        self,
        ledger: LedgerClient,
        index: IndexManager,
        *,
        record_prefix: str = "oral_history_",
    ) -> None:
        self._ledger = ledger
        self._index = index
        self._record_prefix = record_prefix

    @property
    def ledger(self) -> LedgerClient:
        return self._ledger

    def record_key(self, record_id: str) -> str:
        return f"{self._record_prefix}{record_id}"

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    async def list_records(self) -> list[Record]:
        """Return every recoverable record, newest first.

        An unavailable ledger yields an empty list.  Entries whose blob is
        missing, unreadable or malformed are logged and left out.
        """

        try:
            await self.ensure_available()
        except RemoteUnavailable as exc:
            logger.error("%s; skipping record listing", exc)
            return []

        try:
            ids = await self._index.read_index()
        except RemoteCallFailed as exc:
            logger.error("Error loading record index: %s", exc)
            return []

        records: list[Record] = []
        seen: set[str] = set()
        for record_id in ids:
            if record_id in seen:
                continue
            seen.add(record_id)
            try:
                raw = await self._ledger.get(self.record_key(record_id))
            except RemoteCallFailed as exc:
                logger.warning("Error loading record %s: %s", record_id, exc)
                continue
            if not raw:
                logger.warning("Index references record %s but no blob exists", record_id)
                continue
            try:
                records.append(decode_record(raw, record_id))
            except DecodeError as exc:
                logger.warning("Error parsing record data for %s: %s", record_id, exc)

        records.sort(key=lambda record: record.created_at, reverse=True)
        return records

    async def ensure_available(self) -> None:
        if not await self._ledger.is_available():
            raise RemoteUnavailable("Ledger is not available")

    async def get_record(self, record_id: str) -> Record:
        raw = await self._ledger.get(self.record_key(record_id))
        if not raw:
            raise NotFound(f"record {record_id} not found")
        return decode_record(raw, record_id)

    async def exists(self, record_id: str) -> bool:
        return bool(await self._ledger.get(self.record_key(record_id)))

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------
    async def create_record(self, record: Record) -> Record:
        # blob before index: a torn create leaves an unreferenced blob,
        # never an index entry pointing at nothing
        await self._ledger.put(self.record_key(record.id), encode_record(record))
        await self._index.append_id(record.id)
        return record

    async def update_record(self, record: Record) -> Record:
        await self._ledger.put(self.record_key(record.id), encode_record(record))
        return record

    async def aclose(self) -> None:
        close = getattr(self._ledger, "aclose", None)
        if close is not None:
            await close()


__all__ = ["LedgerRecordStore", "RecordRepository"]
