"""Encryption and analysis collaborators.

Neither a confidential-computation scheme nor a real analysis model is wired
in yet.  The simulated implementations below reproduce the observable shape of
their outputs so the surrounding workflow can be exercised; a genuine
integration only needs to satisfy the protocols and be passed to
:func:`oralhistory.application.build_workflow`.
"""
from __future__ import annotations

import asyncio
import base64
import json
import random
from typing import Mapping, Protocol

from oralhistory.domain import AnalysisResult, RiskLevel

DEFAULT_TOPICS = ("trauma", "resistance", "identity")


class Encryptor(Protocol):
    async def encrypt(self, fields: Mapping[str, str]) -> str:
        """Return an opaque payload for the given plain fields."""


class Analyzer(Protocol):
    async def analyze(self, payload: str) -> AnalysisResult:
        """Derive analysis metadata from an opaque payload."""


class SimulatedEncryptor:
    """Stand-in that base64-encodes the fields behind an ``FHE-`` marker."""

    prefix = "FHE-"

    async def encrypt(self, fields: Mapping[str, str]) -> str:
        serialised = json.dumps(dict(fields), separators=(",", ":"), ensure_ascii=False)
        return self.prefix + base64.b64encode(serialised.encode("utf-8")).decode("ascii")


class SimulatedAnalyzer:
    """Stand-in producing random sentiment and risk after a fixed delay."""

    def __init__(
        self,
        *,
        delay: float = 3.0,
        topics: tuple[str, ...] = DEFAULT_TOPICS,
        rng: random.Random | None = None,
    ) -> None:
        self._delay = delay
        self._topics = topics
        self._rng = rng or random.Random()

    async def analyze(self, payload: str) -> AnalysisResult:
        await asyncio.sleep(self._delay)
        return AnalysisResult(
            sentiment=self._rng.uniform(-1.0, 1.0),
            topics=list(self._topics),
            risk_level=self._rng.choice(list(RiskLevel)),
        )


__all__ = ["Analyzer", "Encryptor", "SimulatedAnalyzer", "SimulatedEncryptor"]
