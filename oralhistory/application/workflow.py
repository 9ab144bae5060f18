"""Application service coordinating the record lifecycle."""
from __future__ import annotations

import logging
import random
import string
import time
from collections import Counter
from dataclasses import replace
from typing import Awaitable, Callable, Iterable, TypeVar

from tenacity import AsyncRetrying, RetryError, retry_if_result, stop_after_attempt

from oralhistory.core.config import Settings, load_settings
from oralhistory.core.errors import LedgerError, PreconditionFailed, RemoteCallFailed, Unauthorized
from oralhistory.core.status import OperationStatusTracker
from oralhistory.domain import AnalysisResult, Record, RecordStatus, RecordSummary, RiskLevel
from oralhistory.infrastructure import (
    Analyzer,
    ConditionalIndexManager,
    Encryptor,
    HttpLedgerClient,
    IndexManager,
    InMemoryLedger,
    LedgerClient,
    LedgerRecordStore,
    RecordRepository,
    SimulatedAnalyzer,
    SimulatedEncryptor,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ID_ALPHABET = string.digits + string.ascii_lowercase
ID_SUFFIX_LENGTH = 7
MAX_ID_ATTEMPTS = 3
USER_REJECTED_MARKER = "user rejected transaction"


def generate_record_id(now: float, rng: random.Random) -> str:
    """Time-based prefix plus a random base-36 suffix."""

    suffix = "".join(rng.choice(ID_ALPHABET) for _ in range(ID_SUFFIX_LENGTH))
    return f"{int(now * 1000)}-{suffix}"


class RecordWorkflow:
    """Coordinates record use cases and narrates them through the status tracker.

    Records start ``pending`` and move exactly once, to ``analyzed`` or to
    ``rejected``.  Every mutation reports a pending message, then a success
    or an error outcome; failures are re-raised after being reported.
    """

    def __init__(
        self,
        store: RecordRepository,
        *,
        encryptor: Encryptor,
        analyzer: Analyzer,
        tracker: OperationStatusTracker,
        enforce_owner: bool = True,
        clock: Callable[[], float] = time.time,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._encryptor = encryptor
        self._analyzer = analyzer
        self._tracker = tracker
        self._enforce_owner = enforce_owner
        self._clock = clock
        self._rng = rng or random.Random()

    @property
    def tracker(self) -> OperationStatusTracker:
        return self._tracker

    @property
    def store(self) -> RecordRepository:
        return self._store

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------
    async def list_records(self) -> list[Record]:
        return await self._store.list_records()

    async def get_record(self, record_id: str) -> Record:
        return await self._store.get_record(record_id)

    @staticmethod
    def summarize(records: Iterable[Record]) -> RecordSummary:
        items = list(records)
        status_counter = Counter(record.status.value for record in items)
        analyzed = [record.analysis for record in items if record.analysis is not None]
        sentiment = Counter(
            "positive" if analysis.sentiment > 0 else "negative" if analysis.sentiment < 0 else "neutral"
            for analysis in analyzed
        )
        risk = Counter(analysis.risk_level.value for analysis in analyzed)
        return RecordSummary(
            total=len(items),
            by_status={status.value: status_counter.get(status.value, 0) for status in RecordStatus},
            sentiment={key: sentiment.get(key, 0) for key in ("positive", "neutral", "negative")},
            risk={level.value: risk.get(level.value, 0) for level in RiskLevel},
        )

    # ------------------------------------------------------------------
    # mutations
    # ------------------------------------------------------------------
    async def create_record(
        self,
        owner: str | None,
        category: str,
        raw_content: str,
        description: str = "",
    ) -> Record:
        async def operation() -> Record:
            if not owner:
                raise Unauthorized("Please connect an identity first")
            if not (category or "").strip():
                raise PreconditionFailed("category is required")
            if not (raw_content or "").strip():
                raise PreconditionFailed("content is required")

            payload = await self._encrypt(
                {"category": category, "description": description or "", "sensitiveContent": raw_content}
            )
            now = self._clock()
            record = Record(
                id=await self._allocate_id(now),
                payload=payload,
                created_at=int(now),
                owner=owner,
                category=category,
                status=RecordStatus.PENDING,
            )
            await self._store.create_record(record)
            logger.info("Created record %s (category=%s)", record.id, record.category)
            return record

        return await self._narrate(
            "Encrypting sensitive content with FHE...",
            "Encrypted oral history submitted securely!",
            "Upload failed",
            operation,
        )

    async def analyze_record(self, record_id: str, caller: str | None) -> Record:
        return await self._narrate(
            "Processing encrypted data with FHE analysis...",
            "FHE analysis completed successfully!",
            "Analysis failed",
            lambda: self._transition(record_id, caller, RecordStatus.ANALYZED),
        )

    async def reject_record(self, record_id: str, caller: str | None) -> Record:
        return await self._narrate(
            "Processing encrypted data with FHE...",
            "Record rejection completed successfully!",
            "Rejection failed",
            lambda: self._transition(record_id, caller, RecordStatus.REJECTED),
        )

    async def aclose(self) -> None:
        await self._store.aclose()

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    async def _narrate(
        self,
        pending: str,
        success: str,
        failure_prefix: str,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        self._tracker.begin(pending)
        try:
            result = await operation()
        except Exception as exc:
            self._tracker.fail(self._failure_message(failure_prefix, exc))
            raise
        self._tracker.succeed(success)
        return result

    @staticmethod
    def _failure_message(prefix: str, exc: Exception) -> str:
        reason = str(exc)
        if USER_REJECTED_MARKER in reason.lower():
            return "Transaction rejected by user"
        if not reason and isinstance(exc, LedgerError):
            reason = exc.label
        return f"{prefix}: {reason or 'Unknown error'}"

    async def _propose_id(self, now: float) -> str | None:
        record_id = generate_record_id(now, self._rng)
        if await self._store.exists(record_id):
            logger.warning("Generated record id %s already exists; regenerating", record_id)
            return None
        return record_id

    async def _allocate_id(self, now: float) -> str:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(MAX_ID_ATTEMPTS),
            retry=retry_if_result(lambda record_id: record_id is None),
        )
        try:
            return await retrying(self._propose_id, now)
        except RetryError as exc:
            raise PreconditionFailed("could not allocate a unique record id") from exc

    def _authorize(self, record: Record, caller: str | None) -> None:
        if not caller:
            raise Unauthorized("Please connect an identity first")
        if self._enforce_owner and not record.is_owned_by(caller):
            raise Unauthorized(f"{caller} does not own record {record.id}")

    async def _transition(self, record_id: str, caller: str | None, target: RecordStatus) -> Record:
        record = await self._store.get_record(record_id)
        self._authorize(record, caller)
        if record.status is not RecordStatus.PENDING:
            raise PreconditionFailed(f"record {record_id} is already {record.status.value}")

        if target is RecordStatus.ANALYZED:
            updated = replace(record, status=target, analysis=await self._analyze(record))
        else:
            updated = replace(record, status=target, analysis=None)

        await self._store.update_record(updated)
        logger.info("Record %s moved from %s to %s", record_id, record.status.value, target.value)
        return updated

    async def _encrypt(self, fields: dict[str, str]) -> str:
        try:
            return await self._encryptor.encrypt(fields)
        except LedgerError:
            raise
        except Exception as exc:
            raise RemoteCallFailed(f"encryption failed: {exc}") from exc

    async def _analyze(self, record: Record) -> AnalysisResult:
        try:
            return await self._analyzer.analyze(record.payload)
        except LedgerError:
            raise
        except Exception as exc:
            raise RemoteCallFailed(f"analysis failed: {exc}") from exc


# ----------------------------------------------------------------------
# wiring
# ----------------------------------------------------------------------
def build_ledger(settings: Settings) -> LedgerClient:
    if settings.ledger_url:
        return HttpLedgerClient(settings.ledger_url, timeout=settings.ledger_timeout)
    logger.info("No ledger URL configured; using the in-memory ledger")
    return InMemoryLedger()


def build_workflow(
    settings: Settings,
    *,
    ledger: LedgerClient | None = None,
    encryptor: Encryptor | None = None,
    analyzer: Analyzer | None = None,
    tracker: OperationStatusTracker | None = None,
    clock: Callable[[], float] = time.time,
    rng: random.Random | None = None,
) -> RecordWorkflow:
    """Assemble a workflow from settings; collaborators may be overridden."""

    ledger = ledger or build_ledger(settings)
    if settings.index_mode == "conditional":
        index: IndexManager = ConditionalIndexManager(
            ledger, settings.index_key, max_attempts=settings.index_max_attempts
        )
    else:
        index = IndexManager(ledger, settings.index_key)
    store = LedgerRecordStore(ledger, index, record_prefix=settings.record_prefix)
    return RecordWorkflow(
        store,
        encryptor=encryptor or SimulatedEncryptor(),
        analyzer=analyzer or SimulatedAnalyzer(delay=settings.analysis_delay, rng=rng),
        tracker=tracker
        or OperationStatusTracker(
            success_clear_ms=settings.success_clear_ms,
            error_clear_ms=settings.error_clear_ms,
        ),
        enforce_owner=settings.enforce_owner,
        clock=clock,
        rng=rng,
    )


_service: RecordWorkflow | None = None


def get_workflow_service() -> RecordWorkflow:
    """Return the workflow service for the process, building it on first use."""

    global _service
    if _service is None:
        _service = build_workflow(load_settings())
    return _service


def configure_workflow_service(service: RecordWorkflow) -> None:
    global _service
    _service = service


async def close_workflow_service() -> None:
    global _service
    if _service is not None:
        await _service.aclose()
        _service = None


def reset_workflow_state() -> None:
    """Drop the process-wide service (used in tests)."""

    global _service
    _service = None
