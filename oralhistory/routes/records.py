from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Header, HTTPException

from oralhistory.application import get_workflow_service
from oralhistory.core.errors import (
    DecodeError,
    LedgerError,
    NotFound,
    PreconditionFailed,
    RemoteCallFailed,
    Unauthorized,
)
from oralhistory.domain import Record

router = APIRouter(tags=["records"])

_STATUS_CODES: dict[type[LedgerError], int] = {
    NotFound: 404,
    PreconditionFailed: 409,
    Unauthorized: 403,
    RemoteCallFailed: 502,
    DecodeError: 502,
}


def _http_error(exc: LedgerError) -> HTTPException:
    status_code = next((code for kind, code in _STATUS_CODES.items() if isinstance(exc, kind)), 500)
    return HTTPException(status_code=status_code, detail=str(exc) or exc.label)


def _serialise_record(record: Record) -> dict[str, Any]:
    item: dict[str, Any] = {
        "id": record.id,
        "encryptedData": record.payload,
        "timestamp": record.created_at,
        "owner": record.owner,
        "category": record.category,
        "status": record.status.value,
    }
    if record.analysis is not None:
        item["analysisResult"] = {
            "sentiment": record.analysis.sentiment,
            "topics": list(record.analysis.topics),
            "riskLevel": record.analysis.risk_level.value,
        }
    return item


@router.get("/records")
async def list_records() -> dict:
    service = get_workflow_service()
    records = await service.list_records()
    return {"items": [_serialise_record(record) for record in records]}


@router.get("/records/stats")
async def get_record_stats() -> dict:
    service = get_workflow_service()
    summary = service.summarize(await service.list_records())
    return {
        "total": summary.total,
        "by_status": summary.by_status,
        "sentiment": summary.sentiment,
        "risk": summary.risk,
    }


@router.get("/records/{record_id}")
async def get_record(record_id: str) -> dict:
    service = get_workflow_service()
    try:
        record = await service.get_record(record_id)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return _serialise_record(record)


@router.post("/records")
async def create_record(
    payload: dict,
    caller: str | None = Header(default=None, alias="X-Caller-Identity"),
) -> dict:
    category = str(payload.get("category") or "").strip()
    content = str(payload.get("sensitiveContent") or payload.get("content") or "")
    if not category:
        raise HTTPException(status_code=400, detail="category is required")
    if not content.strip():
        raise HTTPException(status_code=400, detail="sensitiveContent is required")

    service = get_workflow_service()
    try:
        record = await service.create_record(
            caller,
            category,
            content,
            description=str(payload.get("description") or ""),
        )
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return _serialise_record(record)


@router.post("/records/{record_id}/analyze")
async def analyze_record(
    record_id: str,
    caller: str | None = Header(default=None, alias="X-Caller-Identity"),
) -> dict:
    service = get_workflow_service()
    try:
        record = await service.analyze_record(record_id, caller)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return _serialise_record(record)


@router.post("/records/{record_id}/reject")
async def reject_record(
    record_id: str,
    caller: str | None = Header(default=None, alias="X-Caller-Identity"),
) -> dict:
    service = get_workflow_service()
    try:
        record = await service.reject_record(record_id, caller)
    except LedgerError as exc:
        raise _http_error(exc) from exc
    return _serialise_record(record)


@router.get("/status")
async def get_operation_status() -> dict:
    status = get_workflow_service().tracker.status
    return {"visible": status.visible, "status": status.phase, "message": status.message}


@router.delete("/status")
async def dismiss_operation_status() -> dict:
    tracker = get_workflow_service().tracker
    tracker.dismiss()
    status = tracker.status
    return {"visible": status.visible, "status": status.phase, "message": status.message}
