"""
AuditLogEntry model -- append-only, hash-chained audit trail.

Responsibility:
    One row per audited action (``fund-quarantine.created`` and friends).
    Each row carries the SHA-256 of its before/after payload and a link to
    the previous row's hash, so any edit to history breaks the chain.

Invariants enforced:
    - Append-only: ORM listeners in db/immutability.py reject UPDATE and
      DELETE on this table.
    - seq is strictly increasing, allocated from a locked counter row.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from plan_kernel.db.base import Base


class AuditLogEntry(Base):
    """A single audit trail record."""

    __tablename__ = "core_audit_log"

    __table_args__ = (
        Index("idx_audit_log_resource", "resource", "resource_id"),
        Index("idx_audit_log_user", "user_id"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    user_id: Mapped[UUID] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    resource: Mapped[str] = mapped_column(String(100), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(64), nullable=False)
    before: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    after: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLogEntry #{self.seq} {self.action} {self.resource}/{self.resource_id}>"
