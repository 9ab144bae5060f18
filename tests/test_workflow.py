from __future__ import annotations

import asyncio
import json
import random
from pathlib import Path
import sys

sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest

from oralhistory.application import RecordWorkflow, build_workflow, generate_record_id
from oralhistory.application.workflow import MAX_ID_ATTEMPTS
from oralhistory.core.codec import decode_index, encode_index
from oralhistory.core.config import Settings
from oralhistory.core.errors import NotFound, PreconditionFailed, RemoteCallFailed, RemoteUnavailable, Unauthorized
from oralhistory.core.status import OperationStatusTracker
from oralhistory.domain import AnalysisResult, Record, RecordStatus, RiskLevel
from oralhistory.infrastructure import InMemoryLedger, SimulatedEncryptor

INDEX_KEY = "oral_history_keys"


class StepClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        self.now += 1.0
        return self.now


class FailingEncryptor:
    async def encrypt(self, fields):
        raise OSError("key material unavailable")


class FixedAnalyzer:
    def __init__(self) -> None:
        self.payloads: list[str] = []

    async def analyze(self, payload: str) -> AnalysisResult:
        self.payloads.append(payload)
        return AnalysisResult(sentiment=0.25, topics=["identity"], risk_level=RiskLevel.MEDIUM)


class RejectingLedger(InMemoryLedger):
    async def put(self, key: str, value: bytes) -> None:
        raise RemoteCallFailed("user rejected transaction (action=signTransaction)")


@pytest.fixture()
def ledger():
    return InMemoryLedger()


def _workflow(ledger, **overrides):
    settings = Settings(analysis_delay=0.0, index_mode=overrides.pop("index_mode", "append"),
                        enforce_owner=overrides.pop("enforce_owner", True))
    overrides.setdefault("clock", StepClock())
    overrides.setdefault("rng", random.Random(42))
    return build_workflow(settings, ledger=ledger, **overrides)


@pytest.fixture()
def workflow(ledger):
    return _workflow(ledger)


def test_create_then_list_returns_pending_record(workflow):
    async def scenario():
        created = await workflow.create_record("0xA", "Trauma", "x")
        return created, await workflow.list_records()

    created, records = asyncio.run(scenario())

    assert records == [created]
    assert created.status is RecordStatus.PENDING
    assert created.analysis is None
    assert created.owner == "0xA"
    assert created.payload.startswith("FHE-")
    status = workflow.tracker.status
    assert status.visible and status.phase == "success"
    assert status.message == "Encrypted oral history submitted securely!"


def test_create_writes_blob_before_index(workflow, ledger):
    record = asyncio.run(workflow.create_record("0xA", "Trauma", "x"))

    puts = [key for operation, key in ledger.calls if operation == "put"]
    assert puts == [f"oral_history_{record.id}", INDEX_KEY]


def test_record_ids_are_time_prefixed(workflow):
    record = asyncio.run(workflow.create_record("0xA", "Trauma", "x"))

    prefix, suffix = record.id.split("-")
    assert int(prefix) == record.created_at * 1000
    assert len(suffix) == 7 and suffix.isalnum()


@pytest.mark.parametrize("category, content", [("", "x"), ("   ", "x"), ("Trauma", ""), ("Trauma", "  ")])
def test_create_requires_category_and_content(workflow, ledger, category, content):
    with pytest.raises(PreconditionFailed):
        asyncio.run(workflow.create_record("0xA", category, content))

    assert ledger.keys() == []
    status = workflow.tracker.status
    assert status.phase == "error"
    assert status.message.startswith("Upload failed: ")


def test_create_requires_identity(workflow):
    with pytest.raises(Unauthorized):
        asyncio.run(workflow.create_record("", "Trauma", "x"))


def test_analyze_pending_record(ledger):
    analyzer = FixedAnalyzer()
    workflow = _workflow(ledger, analyzer=analyzer)

    async def scenario():
        created = await workflow.create_record("0xA", "Trauma", "x")
        analyzed = await workflow.analyze_record(created.id, "0xA")
        return created, analyzed, await workflow.get_record(created.id)

    created, analyzed, stored = asyncio.run(scenario())

    assert analyzed.status is RecordStatus.ANALYZED
    assert analyzed.analysis == AnalysisResult(sentiment=0.25, topics=["identity"], risk_level=RiskLevel.MEDIUM)
    assert stored == analyzed
    assert analyzer.payloads == [created.payload]
    for field in ("id", "payload", "created_at", "owner", "category"):
        assert getattr(stored, field) == getattr(created, field)
    assert workflow.tracker.status.message == "FHE analysis completed successfully!"


def test_simulated_analysis_stays_in_range(workflow):
    async def scenario():
        created = await workflow.create_record("0xA", "Trauma", "x")
        return await workflow.analyze_record(created.id, "0xA")

    analyzed = asyncio.run(scenario())

    assert -1.0 <= analyzed.analysis.sentiment <= 1.0
    assert analyzed.analysis.risk_level in set(RiskLevel)
    assert analyzed.analysis.topics == ["trauma", "resistance", "identity"]


def test_analyze_twice_does_not_retransition(workflow):
    async def scenario():
        created = await workflow.create_record("0xA", "Trauma", "x")
        first = await workflow.analyze_record(created.id, "0xA")
        with pytest.raises(PreconditionFailed):
            await workflow.analyze_record(created.id, "0xA")
        return first, await workflow.get_record(created.id)

    first, stored = asyncio.run(scenario())

    assert stored == first
    assert workflow.tracker.status.phase == "error"
    assert workflow.tracker.status.message.startswith("Analysis failed: ")


def test_reject_is_terminal(workflow):
    async def scenario():
        created = await workflow.create_record("0xA", "Trauma", "x")
        rejected = await workflow.reject_record(created.id, "0xA")
        with pytest.raises(PreconditionFailed):
            await workflow.analyze_record(created.id, "0xA")
        with pytest.raises(PreconditionFailed):
            await workflow.reject_record(created.id, "0xA")
        return rejected, await workflow.get_record(created.id)

    rejected, stored = asyncio.run(scenario())

    assert rejected.status is RecordStatus.REJECTED
    assert rejected.analysis is None
    assert stored == rejected


def test_transitions_keep_envelope_keys_written_by_other_clients(ledger):
    workflow = _workflow(ledger, analyzer=FixedAnalyzer())
    legacy = {
        "data": "FHE-x",
        "timestamp": 1690000000,
        "owner": "0xA",
        "category": "c",
        "status": "pending",
        "description": "kept by original",
    }
    for record_id in ("k1", "k2"):
        ledger.seed(f"oral_history_{record_id}", json.dumps(legacy).encode("utf-8"))
    ledger.seed(INDEX_KEY, encode_index(["k1", "k2"]))

    async def scenario():
        await workflow.reject_record("k1", "0xA")
        await workflow.analyze_record("k2", "0xA")

    asyncio.run(scenario())

    rejected = json.loads(ledger.peek("oral_history_k1"))
    analyzed = json.loads(ledger.peek("oral_history_k2"))
    assert rejected["status"] == "rejected"
    assert rejected["description"] == "kept by original"
    assert analyzed["status"] == "analyzed"
    assert analyzed["description"] == "kept by original"
    assert analyzed["analysisResult"]["riskLevel"] == "medium"


def test_transitions_on_missing_record_raise_not_found(workflow):
    with pytest.raises(NotFound):
        asyncio.run(workflow.analyze_record("missing", "0xA"))
    with pytest.raises(NotFound):
        asyncio.run(workflow.reject_record("missing", "0xA"))
    assert workflow.tracker.status.message.startswith("Rejection failed: ")


def test_only_owner_may_transition(workflow):
    async def scenario():
        created = await workflow.create_record("0xAbC", "Trauma", "x")
        with pytest.raises(Unauthorized):
            await workflow.analyze_record(created.id, "0xDEF")
        with pytest.raises(Unauthorized):
            await workflow.reject_record(created.id, None)
        return await workflow.reject_record(created.id, "0XABC")

    assert asyncio.run(scenario()).status is RecordStatus.REJECTED


def test_owner_check_can_be_disabled(ledger):
    workflow = _workflow(ledger, enforce_owner=False)

    async def scenario():
        created = await workflow.create_record("0xA", "Trauma", "x")
        return await workflow.reject_record(created.id, "0xB")

    assert asyncio.run(scenario()).status is RecordStatus.REJECTED


def test_list_is_sorted_newest_first_and_idempotent(workflow):
    async def scenario():
        for category in ("one", "two", "three"):
            await workflow.create_record("0xA", category, "x")
        return await workflow.list_records(), await workflow.list_records()

    first, second = asyncio.run(scenario())

    assert [record.category for record in first] == ["three", "two", "one"]
    assert first == second


def test_list_returns_empty_when_ledger_unavailable(workflow, ledger):
    asyncio.run(workflow.create_record("0xA", "Trauma", "x"))
    ledger.available = False

    assert asyncio.run(workflow.list_records()) == []


def test_list_skips_corrupt_missing_and_unreadable_entries(workflow, ledger):
    async def scenario():
        good = await workflow.create_record("0xA", "Trauma", "x")
        other = await workflow.create_record("0xA", "Exile", "y")
        return good, other

    good, other = asyncio.run(scenario())
    ids = [good.id, "corrupt", "missing", other.id, "unreadable", good.id]
    ledger.seed(INDEX_KEY, encode_index(ids))
    ledger.seed("oral_history_corrupt", b"{\"data\": ")
    ledger.seed("oral_history_unreadable", b"{}")
    ledger.fail_on("get", "oral_history_unreadable")

    records = asyncio.run(workflow.list_records())

    assert [record.id for record in records] == [other.id, good.id]


def test_list_returns_empty_when_index_unreadable(workflow, ledger):
    asyncio.run(workflow.create_record("0xA", "Trauma", "x"))
    ledger.fail_on("get", INDEX_KEY)

    assert asyncio.run(workflow.list_records()) == []


def test_failed_index_append_leaves_unreferenced_blob(workflow, ledger):
    ledger.fail_on("put", INDEX_KEY)

    with pytest.raises(RemoteCallFailed):
        asyncio.run(workflow.create_record("0xA", "Trauma", "x"))

    blobs = [key for key in ledger.keys() if key != INDEX_KEY]
    assert len(blobs) == 1
    assert ledger.peek(INDEX_KEY) == b""
    ledger.clear_failures()
    assert asyncio.run(workflow.list_records()) == []
    assert workflow.tracker.status.phase == "error"


def test_ledger_failure_during_analysis_is_reported(workflow, ledger):
    record = asyncio.run(workflow.create_record("0xA", "Trauma", "x"))
    ledger.fail_on("get", f"oral_history_{record.id}")

    with pytest.raises(RemoteCallFailed):
        asyncio.run(workflow.analyze_record(record.id, "0xA"))

    assert workflow.tracker.status.message.startswith("Analysis failed: simulated get failure")


def test_collaborator_failures_surface_as_remote_call_failed(ledger):
    workflow = _workflow(ledger, encryptor=FailingEncryptor())

    with pytest.raises(RemoteCallFailed):
        asyncio.run(workflow.create_record("0xA", "Trauma", "x"))

    assert workflow.tracker.status.message == "Upload failed: encryption failed: key material unavailable"
    assert ledger.keys() == []


def test_user_rejected_transaction_message():
    workflow = _workflow(RejectingLedger())

    with pytest.raises(RemoteCallFailed):
        asyncio.run(workflow.create_record("0xA", "Trauma", "x"))

    assert workflow.tracker.status.message == "Transaction rejected by user"


def test_generated_id_collision_is_regenerated(ledger):
    clock_value = 1_700_000_000.5
    colliding = generate_record_id(clock_value, random.Random(3))
    ledger.seed(f"oral_history_{colliding}", b"{}")
    workflow = _workflow(ledger, clock=lambda: clock_value, rng=random.Random(3))

    record = asyncio.run(workflow.create_record("0xA", "Trauma", "x"))

    assert record.id != colliding
    assert record.id.startswith("1700000000500-")


def test_concurrent_creates_survive_with_conditional_index(ledger):
    workflow = _workflow(ledger, index_mode="conditional")

    async def scenario():
        created = await asyncio.gather(
            workflow.create_record("0xA", "one", "x"),
            workflow.create_record("0xB", "two", "y"),
        )
        return created, await workflow.list_records()

    created, records = asyncio.run(scenario())

    assert {record.id for record in records} == {record.id for record in created}


def test_concurrent_creates_lose_an_index_entry_with_read_modify_write(ledger):
    workflow = _workflow(ledger)

    async def scenario():
        created = await asyncio.gather(
            workflow.create_record("0xA", "one", "x"),
            workflow.create_record("0xB", "two", "y"),
        )
        return created, await workflow.list_records()

    created, records = asyncio.run(scenario())

    blobs = {key for key in ledger.keys() if key != INDEX_KEY}
    assert blobs == {f"oral_history_{record.id}" for record in created}
    assert len(decode_index(ledger.peek(INDEX_KEY))) == 1
    assert len(records) == 1
    assert records[0].id in {record.id for record in created}


def test_id_allocation_gives_up_after_repeated_collisions(ledger):
    clock_value = 1_700_000_000.5
    proposals = random.Random(3)
    for _ in range(MAX_ID_ATTEMPTS):
        ledger.seed(f"oral_history_{generate_record_id(clock_value, proposals)}", b"{}")
    workflow = _workflow(ledger, clock=lambda: clock_value, rng=random.Random(3))

    with pytest.raises(PreconditionFailed):
        asyncio.run(workflow.create_record("0xA", "Trauma", "x"))

    assert ledger.peek(INDEX_KEY) == b""
    assert workflow.tracker.status.message == "Upload failed: could not allocate a unique record id"


class DictRecordStore:
    """Record repository without a ledger underneath."""

    def __init__(self) -> None:
        self.records: dict[str, Record] = {}
        self.closed = False

    async def list_records(self) -> list[Record]:
        return sorted(self.records.values(), key=lambda record: record.created_at, reverse=True)

    async def get_record(self, record_id: str) -> Record:
        try:
            return self.records[record_id]
        except KeyError:
            raise NotFound(record_id) from None

    async def exists(self, record_id: str) -> bool:
        return record_id in self.records

    async def create_record(self, record: Record) -> Record:
        self.records[record.id] = record
        return record

    async def update_record(self, record: Record) -> Record:
        self.records[record.id] = record
        return record

    async def aclose(self) -> None:
        self.closed = True


def test_workflow_runs_on_any_record_repository():
    store = DictRecordStore()
    workflow = RecordWorkflow(
        store,
        encryptor=SimulatedEncryptor(),
        analyzer=FixedAnalyzer(),
        tracker=OperationStatusTracker(),
        clock=StepClock(),
        rng=random.Random(7),
    )

    async def scenario():
        created = await workflow.create_record("0xA", "Trauma", "x")
        analyzed = await workflow.analyze_record(created.id, "0xA")
        listed = await workflow.list_records()
        await workflow.aclose()
        return analyzed, listed

    analyzed, listed = asyncio.run(scenario())

    assert listed == [analyzed]
    assert store.records[analyzed.id].status is RecordStatus.ANALYZED
    assert store.closed


def test_store_reports_unavailable_ledger(workflow, ledger):
    ledger.available = False

    with pytest.raises(RemoteUnavailable):
        asyncio.run(workflow.store.ensure_available())

    assert asyncio.run(workflow.store.list_records()) == []
    assert ("get", INDEX_KEY) not in ledger.calls


def test_summarize_counts(workflow):
    async def scenario():
        first = await workflow.create_record("0xA", "one", "x")
        second = await workflow.create_record("0xA", "two", "x")
        await workflow.create_record("0xA", "three", "x")
        await workflow.analyze_record(first.id, "0xA")
        await workflow.reject_record(second.id, "0xA")
        return await workflow.list_records()

    records = asyncio.run(scenario())
    summary = workflow.summarize(records)

    assert summary.total == 3
    assert summary.by_status == {"pending": 1, "analyzed": 1, "rejected": 1}
    assert sum(summary.sentiment.values()) == 1
    assert sum(summary.risk.values()) == 1
    assert set(summary.risk) == {"low", "medium", "high"}
