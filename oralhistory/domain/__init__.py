"""Domain layer definitions."""

from .records import AnalysisResult, Record, RecordStatus, RecordSummary, RiskLevel

__all__ = [
    "AnalysisResult",
    "Record",
    "RecordStatus",
    "RecordSummary",
    "RiskLevel",
]
