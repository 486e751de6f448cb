from __future__ import annotations

import os
from dataclasses import dataclass

from janus.config.paths import default_db_path

DEFAULT_STATEMENT_WORKSHEETS = ("CASH OPERATION HISTORY",)
DEFAULT_STOOQ_BASE_URL = "https://stooq.com/q/l/"


def _env_int(name: str, default: int) -> int:
    raw = str(os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = str(os.getenv(name, "") or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_labels(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    labels = tuple(part.strip() for part in raw.split(",") if part.strip())
    return labels or default


def _env_decimal_separator(name: str) -> str | None:
    raw = str(os.getenv(name, "") or "").strip().lower()
    if raw in {",", "comma"}:
        return ","
    if raw in {".", "dot", "period"}:
        return "."
    return None


@dataclass(frozen=True)
class Settings:
    database_url: str
    log_level: str
    statement_worksheets: tuple[str, ...]
    header_scan_rows: int
    decimal_separator: str | None
    stooq_base_url: str
    stooq_timeout_seconds: float


def get_settings() -> Settings:
    db_default = f"sqlite:///{default_db_path().as_posix()}"
    return Settings(
        database_url=os.getenv("DATABASE_URL", db_default),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        statement_worksheets=_env_labels(
            "JANUS_STATEMENT_WORKSHEETS", DEFAULT_STATEMENT_WORKSHEETS
        ),
        header_scan_rows=max(_env_int("JANUS_HEADER_SCAN_ROWS", 40), 1),
        decimal_separator=_env_decimal_separator("JANUS_DECIMAL_SEPARATOR"),
        stooq_base_url=os.getenv("STOOQ_BASE_URL", DEFAULT_STOOQ_BASE_URL),
        stooq_timeout_seconds=_env_float("STOOQ_TIMEOUT_SECONDS", 10.0),
    )
