"""
Configuration Loader (``plan_config.loader``).

Responsibility
--------------
Reads a YAML settings file and parses it into the frozen dataclasses in
``plan_config.schema``.  Runtime code goes through
``plan_config.get_active_config()`` rather than calling this directly.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``database.url``  -> ``KeyError``.
* Unknown keys in a section  -> ``ValueError`` naming the keys.
"""

from __future__ import annotations

import hashlib
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from plan_config.schema import (
    DatabaseSettings,
    LoggingSettings,
    PlanLedgerSettings,
    QuarantineSettings,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _parse_section(cls, data: dict[str, Any] | None, section: str):
    data = data or {}
    allowed = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValueError(f"Unknown keys in '{section}': {', '.join(unknown)}")
    return cls(**data)


def parse_settings(
    data: dict[str, Any],
    source: str | None = None,
    database_url: str | None = None,
) -> PlanLedgerSettings:
    """
    Build ``PlanLedgerSettings`` from a parsed YAML mapping.

    Args:
        data: Parsed YAML.
        source: Where the data came from (kept on the result for tracing).
        database_url: Overrides ``database.url`` when given.
    """
    database = dict(data.get("database") or {})
    if database_url:
        database["url"] = database_url
    if "url" not in database:
        raise KeyError("database.url is required")

    return PlanLedgerSettings(
        database=_parse_section(DatabaseSettings, database, "database"),
        logging=_parse_section(LoggingSettings, data.get("logging"), "logging"),
        quarantine=_parse_section(
            QuarantineSettings, data.get("quarantine"), "quarantine"
        ),
        source=source,
    )


def load_settings(path: Path, database_url: str | None = None) -> PlanLedgerSettings:
    """Load and parse one settings file."""
    return parse_settings(load_yaml_file(path), source=str(path), database_url=database_url)


def compute_checksum(path: Path) -> str:
    """SHA-256 of the raw settings file, for change detection."""
    return hashlib.sha256(Path(path).read_bytes()).hexdigest()
