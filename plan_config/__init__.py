"""
Plan ledger configuration (``plan_config``).

The ONLY public configuration entry point is ``get_active_config()``.  No
other component reads settings files or environment variables.

Resolution order:
    1. ``config_path`` argument, else ``PLAN_LEDGER_CONFIG``, else the
       bundled ``defaults.yaml``.
    2. ``DATABASE_URL`` (if set) replaces ``database.url``.
"""

from __future__ import annotations

import os
from pathlib import Path

from plan_config.loader import load_settings
from plan_config.schema import (
    DatabaseSettings,
    LoggingSettings,
    PlanLedgerSettings,
    QuarantineSettings,
)
from plan_kernel.db.engine import init_engine_from_url
from plan_kernel.logging_config import configure_logging, get_logger

__all__ = [
    "DEFAULTS_PATH",
    "DatabaseSettings",
    "LoggingSettings",
    "PlanLedgerSettings",
    "QuarantineSettings",
    "bootstrap",
    "get_active_config",
]

logger = get_logger("config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(config_path: Path | str | None = None) -> PlanLedgerSettings:
    """
    Resolve and load the active settings.

    Args:
        config_path: Explicit settings file.  Overrides PLAN_LEDGER_CONFIG.

    Returns:
        Frozen ``PlanLedgerSettings``.
    """
    path = Path(
        config_path
        or os.environ.get("PLAN_LEDGER_CONFIG")
        or DEFAULTS_PATH
    )
    settings = load_settings(path, database_url=os.environ.get("DATABASE_URL"))
    logger.info(
        "config_loaded",
        extra={
            "source": settings.source,
            "threshold_percent": settings.quarantine.threshold_percent,
            "max_concurrency_retries": settings.quarantine.max_concurrency_retries,
        },
    )
    return settings


def bootstrap(settings: PlanLedgerSettings | None = None):
    """
    Apply settings to the process: logging level first, then the engine.

    Returns the initialised SQLAlchemy engine.
    """
    settings = settings or get_active_config()
    configure_logging(level=settings.logging.level)
    db = settings.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
    )
