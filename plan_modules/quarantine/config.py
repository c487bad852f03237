"""
Fund Quarantine Configuration Schema.
"""

from dataclasses import dataclass
from typing import Self

from plan_config.schema import QuarantineSettings
from plan_kernel.logging_config import get_logger

logger = get_logger("modules.quarantine.config")


@dataclass
class QuarantineConfig:
    """Configuration schema for the fund quarantine module."""

    threshold_percent: int = 80
    max_concurrency_retries: int = 3
    max_notes_length: int = 2000
    max_support_item_code_length: int = 50
    audit_resource: str = "fund-quarantine"

    def __post_init__(self):
        if not 0 < self.threshold_percent <= 100:
            raise ValueError("threshold_percent must be between 1 and 100")
        if self.max_concurrency_retries < 0:
            raise ValueError("max_concurrency_retries cannot be negative")
        if self.max_notes_length <= 0 or self.max_support_item_code_length <= 0:
            raise ValueError("field length limits must be positive")
        logger.info("quarantine_config_initialized", extra={
            "threshold_percent": self.threshold_percent,
            "max_concurrency_retries": self.max_concurrency_retries,
        })

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_settings(cls, settings: QuarantineSettings) -> Self:
        return cls(
            threshold_percent=settings.threshold_percent,
            max_concurrency_retries=settings.max_concurrency_retries,
            max_notes_length=settings.max_notes_length,
            max_support_item_code_length=settings.max_support_item_code_length,
            audit_resource=settings.audit_resource,
        )
