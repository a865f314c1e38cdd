"""Optional YAML and conf.d file sources for Pydantic Settings.

Files are a local/dev convenience; environment variables win over them.

Directory structure:
    conf/
    ├── nestedset.yaml     # Tree options (column names, root mode)
    ├── nestedset.d/       # Overrides, merged in file-name order
    ├── db.yaml            # Engine URL and flags
    └── logging.yaml       # Logging config

Environment variables to override config directories:
    NESTEDSET_CONFIG_DIR, DB_CONFIG_DIR, LOGGING_CONFIG_DIR
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import yaml


def _load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file if it exists."""
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    return data if isinstance(data, dict) else {}


def _load_conf_d(dir_path: Path) -> dict[str, Any]:
    """Load and merge all YAML/JSON files from a conf.d directory."""
    if not dir_path.exists():
        return {}

    merged: dict[str, Any] = {}
    files = sorted(
        [p for p in dir_path.iterdir() if p.suffix in {".yml", ".yaml", ".json"}]
    )

    for p in files:
        if p.suffix in {".yml", ".yaml"}:
            part = _load_yaml(p)
        else:
            part = json.loads(p.read_text(encoding="utf-8"))

        if isinstance(part, dict):
            merged.update(part)

    return merged


def nested_set_source() -> dict[str, Any]:
    """Load nested-set settings from YAML files."""
    base = Path(os.getenv("NESTEDSET_CONFIG_DIR", "conf"))
    return {**_load_yaml(base / "nestedset.yaml"), **_load_conf_d(base / "nestedset.d")}


def db_source() -> dict[str, Any]:
    """Load database settings from YAML files."""
    base = Path(os.getenv("DB_CONFIG_DIR", "conf"))
    return {**_load_yaml(base / "db.yaml"), **_load_conf_d(base / "db.d")}


def logging_source() -> dict[str, Any]:
    """Load logging settings from YAML files."""
    base = Path(os.getenv("LOGGING_CONFIG_DIR", "conf"))
    return {**_load_yaml(base / "logging.yaml"), **_load_conf_d(base / "logging.d")}
