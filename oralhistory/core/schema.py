from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

SCHEMA_VERSION = 1


class AnalysisEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sentiment: float = Field(ge=-1.0, le=1.0)
    topics: list[str] = Field(default_factory=list)
    risk_level: Literal["low", "medium", "high"] = Field(alias="riskLevel")


class RecordEnvelope(BaseModel):
    """Serialized form of a record as stored under its ledger key.

    Keys written by other clients are kept in ``model_extra``.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    version: int = Field(default=SCHEMA_VERSION, ge=1, le=SCHEMA_VERSION)
    id: str | None = None
    data: str
    timestamp: int
    owner: str
    category: str
    status: Literal["pending", "analyzed", "rejected"] = "pending"
    analysis_result: AnalysisEnvelope | None = Field(default=None, alias="analysisResult")

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value: object) -> object:
        # envelopes written before the lifecycle existed carry no status
        if value is None or value == "":
            return "pending"
        return value

    @model_validator(mode="after")
    def _check_analysis(self) -> "RecordEnvelope":
        if self.status == "analyzed" and self.analysis_result is None:
            raise ValueError("analyzed envelope is missing analysisResult")
        if self.status != "analyzed" and self.analysis_result is not None:
            raise ValueError("analysisResult is only valid on analyzed envelopes")
        return self


IndexEnvelope = TypeAdapter(list[str])
