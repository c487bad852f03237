"""
Configuration Schema (``plan_config.schema``).

Frozen dataclasses describing every runtime setting the reservation ledger
reads.  Parsed from YAML by ``plan_config.loader``; never mutated after
construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings passed to ``init_engine_from_url``."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30


@dataclass(frozen=True)
class LoggingSettings:
    """Level for the ``plan_kernel`` logger hierarchy."""

    level: str = "INFO"


@dataclass(frozen=True)
class QuarantineSettings:
    """Knobs for the quarantine lifecycle and the agreement deriver."""

    threshold_percent: int = 80
    max_concurrency_retries: int = 3
    max_notes_length: int = 2000
    max_support_item_code_length: int = 50
    audit_resource: str = "fund-quarantine"


@dataclass(frozen=True)
class PlanLedgerSettings:
    """Root of the configuration tree."""

    database: DatabaseSettings
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    quarantine: QuarantineSettings = field(default_factory=QuarantineSettings)
    source: str | None = None
