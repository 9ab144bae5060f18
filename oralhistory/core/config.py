from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"

INDEX_MODES = ("append", "conditional")


@dataclass(slots=True)
class Settings:
    ledger_url: str | None = None
    ledger_timeout: float = 30.0
    index_key: str = "oral_history_keys"
    record_prefix: str = "oral_history_"
    index_mode: str = "append"
    index_max_attempts: int = 5
    enforce_owner: bool = True
    analysis_delay: float = 3.0
    success_clear_ms: int = 2000
    error_clear_ms: int = 3000
    cors_origins: list[str] = field(default_factory=list)
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.index_mode not in INDEX_MODES:
            raise ValueError(f"index_mode must be one of {', '.join(INDEX_MODES)}")
        if self.index_max_attempts < 1:
            raise ValueError("index_max_attempts must be at least 1")


def _load_defaults(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fp:
        return yaml.safe_load(fp) or {}


def _as_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_settings(path: Path | None = None) -> Settings:
    """Build settings from the YAML defaults, overridden by environment variables."""

    raw = _load_defaults(path or CONFIG_DIR / "ledger.yaml")
    ledger = raw.get("ledger") or {}
    keys = raw.get("keys") or {}
    index = raw.get("index") or {}
    workflow = raw.get("workflow") or {}
    status = raw.get("status") or {}

    values: dict[str, Any] = {
        "ledger_url": ledger.get("url"),
        "ledger_timeout": float(ledger.get("timeout", 30.0)),
        "index_key": str(keys.get("index", "oral_history_keys")),
        "record_prefix": str(keys.get("record_prefix", "oral_history_")),
        "index_mode": str(index.get("mode", "append")),
        "index_max_attempts": int(index.get("max_attempts", 5)),
        "enforce_owner": bool(workflow.get("enforce_owner", True)),
        "analysis_delay": float(workflow.get("analysis_delay", 3.0)),
        "success_clear_ms": int(status.get("success_clear_ms", 2000)),
        "error_clear_ms": int(status.get("error_clear_ms", 3000)),
    }

    if url := os.getenv("ORAL_HISTORY_LEDGER_URL"):
        values["ledger_url"] = url
    if timeout := os.getenv("ORAL_HISTORY_LEDGER_TIMEOUT"):
        values["ledger_timeout"] = float(timeout)
    if index_key := os.getenv("ORAL_HISTORY_INDEX_KEY"):
        values["index_key"] = index_key
    if prefix := os.getenv("ORAL_HISTORY_RECORD_PREFIX"):
        values["record_prefix"] = prefix
    if mode := os.getenv("ORAL_HISTORY_INDEX_MODE"):
        values["index_mode"] = mode.strip().lower()
    if enforce := os.getenv("ORAL_HISTORY_ENFORCE_OWNER"):
        values["enforce_owner"] = _as_bool(enforce)
    if delay := os.getenv("ORAL_HISTORY_ANALYSIS_DELAY"):
        values["analysis_delay"] = float(delay)

    origins_env = os.getenv("API_CORS_ORIGINS", "")
    origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
    if not origins:
        origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
    values["cors_origins"] = origins
    values["log_level"] = os.getenv("LOG_LEVEL", "INFO").upper()

    return Settings(**values)
