"""Path helpers for local-first storage."""

from __future__ import annotations

import os
from pathlib import Path


ROOT_DIR = Path(__file__).resolve().parents[3]
DATA_DIR = Path(os.getenv("JANUS_DATA_DIR", str(ROOT_DIR / "data"))).expanduser()
IMPORTS_DIR = DATA_DIR / "imports"


def ensure_data_dirs() -> None:
    for directory in (DATA_DIR, IMPORTS_DIR):
        directory.mkdir(parents=True, exist_ok=True)


def default_db_path() -> Path:
    return DATA_DIR / "janus.sqlite"
