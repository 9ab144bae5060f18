"""Domain entities for oral history records."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RecordStatus(str, Enum):
    """Lifecycle states of a record."""

    PENDING = "pending"
    ANALYZED = "analyzed"
    REJECTED = "rejected"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(slots=True)
class AnalysisResult:
    """Derived metadata produced when a record is analyzed."""

    sentiment: float
    topics: list[str] = field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.LOW

    def __post_init__(self) -> None:
        if not -1.0 <= self.sentiment <= 1.0:
            raise ValueError("sentiment must lie in [-1, 1]")
        self.risk_level = RiskLevel(self.risk_level)


@dataclass(slots=True)
class Record:
    """A submitted record whose payload is an opaque encrypted blob."""

    id: str
    payload: str
    created_at: int
    owner: str
    category: str
    status: RecordStatus = RecordStatus.PENDING
    analysis: AnalysisResult | None = None
    # stored envelope keys this client does not interpret, written back untouched
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.status = RecordStatus(self.status)
        if self.status is RecordStatus.ANALYZED and self.analysis is None:
            raise ValueError("analyzed records must carry an analysis result")
        if self.status is not RecordStatus.ANALYZED and self.analysis is not None:
            raise ValueError("only analyzed records may carry an analysis result")

    def is_owned_by(self, identity: str | None) -> bool:
        if not identity:
            return False
        return self.owner.lower() == identity.lower()


@dataclass(slots=True)
class RecordSummary:
    """Dashboard counters over a set of records."""

    total: int = 0
    by_status: dict[str, int] = field(default_factory=dict)
    sentiment: dict[str, int] = field(default_factory=dict)
    risk: dict[str, int] = field(default_factory=dict)
