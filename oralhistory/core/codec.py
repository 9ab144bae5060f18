"""Byte codec for record envelopes and the record index.

Both shapes are stored in the ledger as UTF-8 JSON so that data written by
earlier clients stays readable.  Decoding never raises anything but
:class:`~oralhistory.core.errors.DecodeError`; callers decide whether a
malformed entry aborts an operation or is merely skipped.
"""
from __future__ import annotations

import json
from typing import Any, Iterable

from pydantic import ValidationError

from oralhistory.core.errors import DecodeError
from oralhistory.core.schema import SCHEMA_VERSION, AnalysisEnvelope, IndexEnvelope, RecordEnvelope
from oralhistory.domain import AnalysisResult, Record, RecordStatus, RiskLevel


def _to_envelope(record: Record) -> RecordEnvelope:
    analysis = None
    if record.analysis is not None:
        analysis = AnalysisEnvelope(
            sentiment=record.analysis.sentiment,
            topics=list(record.analysis.topics),
            risk_level=record.analysis.risk_level.value,
        )
    values: dict[str, Any] = dict(record.extra)
    values.update(
        version=SCHEMA_VERSION,
        id=record.id,
        data=record.payload,
        timestamp=record.created_at,
        owner=record.owner,
        category=record.category,
        status=record.status.value,
        analysisResult=analysis,
    )
    return RecordEnvelope.model_validate(values)


def _from_envelope(envelope: RecordEnvelope, record_id: str) -> Record:
    analysis = None
    if envelope.analysis_result is not None:
        analysis = AnalysisResult(
            sentiment=envelope.analysis_result.sentiment,
            topics=list(envelope.analysis_result.topics),
            risk_level=RiskLevel(envelope.analysis_result.risk_level),
        )
    return Record(
        id=record_id,
        payload=envelope.data,
        created_at=envelope.timestamp,
        owner=envelope.owner,
        category=envelope.category,
        status=RecordStatus(envelope.status),
        analysis=analysis,
        extra=dict(envelope.model_extra or {}),
    )


def encode_record(record: Record) -> bytes:
    envelope = _to_envelope(record)
    # unknown keys keep their stored value, null included
    exclude = {"analysis_result"} if envelope.analysis_result is None else None
    return envelope.model_dump_json(by_alias=True, exclude=exclude).encode("utf-8")


def decode_record(data: bytes, record_id: str | None = None) -> Record:
    """Decode a stored envelope.

    ``record_id`` is the id derived from the ledger key; it fills in the id of
    legacy envelopes that do not carry one and must agree with the envelope
    otherwise.
    """

    try:
        envelope = RecordEnvelope.model_validate_json(data.decode("utf-8"))
    except (UnicodeDecodeError, ValidationError) as exc:
        raise DecodeError(f"invalid record envelope: {exc}") from exc

    resolved_id = envelope.id or record_id
    if not resolved_id:
        raise DecodeError("record envelope carries no id")
    if record_id and envelope.id and envelope.id != record_id:
        raise DecodeError(f"envelope id {envelope.id!r} does not match key id {record_id!r}")

    try:
        return _from_envelope(envelope, resolved_id)
    except ValueError as exc:  # pragma: no cover - the envelope validators reject these first
        raise DecodeError(str(exc)) from exc


def encode_index(ids: Iterable[str]) -> bytes:
    return json.dumps(list(ids)).encode("utf-8")


def decode_index(data: bytes) -> list[str]:
    try:
        return IndexEnvelope.validate_json(data.decode("utf-8"))
    except (UnicodeDecodeError, ValidationError) as exc:
        raise DecodeError(f"invalid record index: {exc}") from exc


__all__ = ["decode_index", "decode_record", "encode_index", "encode_record"]
