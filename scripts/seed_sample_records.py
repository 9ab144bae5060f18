#!/usr/bin/env python
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from oralhistory.application import build_workflow
from oralhistory.core.config import Settings, load_settings
from oralhistory.infrastructure import LedgerClient

SAMPLES = [
    ("Trauma", "Displacement", "We left the village before the harvest."),
    ("Resistance", "Underground press", "The leaflets were printed at night."),
    ("Identity", "Language", "My grandmother only spoke the old dialect at home."),
]


async def _seed(settings: Settings, owner: str, analyze: bool, ledger: LedgerClient | None = None) -> list[str]:
    settings.analysis_delay = 0.0
    workflow = build_workflow(settings, ledger=ledger)
    lines = []
    try:
        for category, description, content in SAMPLES:
            record = await workflow.create_record(owner, category, content, description=description)
            if analyze:
                record = await workflow.analyze_record(record.id, owner)
            lines.append(f"{record.id}\t{record.category}\t{record.status.value}")
    finally:
        await workflow.aclose()
    return lines


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Seed a ledger with sample oral history records")
    parser.add_argument("--owner", required=True, help="Identity recorded as the owner")
    parser.add_argument(
        "--ledger-url",
        default=None,
        help="Ledger base URL (defaults to ORAL_HISTORY_LEDGER_URL or ledger.yaml)",
    )
    parser.add_argument("--analyze", action="store_true", help="Run the simulated analysis on each record")
    args = parser.parse_args(argv)

    settings = load_settings()
    if args.ledger_url:
        settings.ledger_url = args.ledger_url
    if not settings.ledger_url:
        # the in-memory ledger would be discarded on exit
        parser.error("a ledger URL is required (--ledger-url or ORAL_HISTORY_LEDGER_URL)")

    for line in asyncio.run(_seed(settings, args.owner, args.analyze)):
        print(line)


if __name__ == "__main__":
    main()
