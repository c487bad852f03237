"""
SQLAlchemy ORM persistence model for the Fund Quarantine module.

Responsibility
--------------
Database-backed persistence for ``Quarantine`` reservations.

Architecture position
---------------------
**Modules layer** -- consumed by ``QuarantineService``,
``AgreementQuarantineDeriver``, ``CapacityChecker`` and
``QuarantineSelector``.  Inherits from ``TrackedBase`` (kernel db layer).

Invariants enforced
-------------------
* ``0 <= used_cents <= quarantined_cents`` and ``quarantined_cents > 0`` as
  CHECK constraints.
* One reservation per (budget_line_id, provider_id, support_item_code).
* ``version`` is the ORM version counter: an UPDATE whose version no longer
  matches raises ``StaleDataError``.
* Status stored as String(20) (``QuarantineStatus`` value).
* Terminal rows are protected by listeners in ``plan_kernel.db.immutability``.
"""

from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from plan_kernel.db.base import TrackedBase
from plan_modules.quarantine.models import Quarantine, QuarantineStatus


class QuarantineModel(TrackedBase):
    """
    A fund reservation on a budget line.

    Maps to the ``Quarantine`` DTO in ``plan_modules.quarantine.models``.
    """

    __tablename__ = "fq_quarantines"

    __table_args__ = (
        UniqueConstraint(
            "budget_line_id", "provider_id", "support_item_code",
            name="uq_quarantine_line_provider_item",
        ),
        CheckConstraint("quarantined_cents > 0", name="ck_quarantine_positive"),
        CheckConstraint(
            "used_cents >= 0 AND used_cents <= quarantined_cents",
            name="ck_quarantine_used_within_ceiling",
        ),
        Index("idx_quarantine_budget_line", "budget_line_id"),
        Index("idx_quarantine_provider", "provider_id"),
        Index("idx_quarantine_status", "status"),
    )

    budget_line_id: Mapped[UUID] = mapped_column(
        ForeignKey("plan_budget_lines.id"),
        nullable=False,
    )
    provider_id: Mapped[UUID] = mapped_column(
        ForeignKey("crm_providers.id"),
        nullable=False,
    )
    service_agreement_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("sa_service_agreements.id"),
        nullable=True,
    )
    funding_period_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("plan_funding_periods.id"),
        nullable=True,
    )
    support_item_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    quarantined_cents: Mapped[int] = mapped_column(nullable=False)
    used_cents: Mapped[int] = mapped_column(nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=QuarantineStatus.ACTIVE.value,
    )
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self) -> Quarantine:
        return Quarantine(
            id=self.id,
            budget_line_id=self.budget_line_id,
            provider_id=self.provider_id,
            service_agreement_id=self.service_agreement_id,
            funding_period_id=self.funding_period_id,
            support_item_code=self.support_item_code,
            quarantined_cents=self.quarantined_cents,
            used_cents=self.used_cents,
            status=QuarantineStatus(self.status),
            notes=self.notes,
            created_by_id=self.created_by_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            version=self.version,
        )

    def __repr__(self) -> str:
        return (
            f"<QuarantineModel {self.id} {self.status} "
            f"{self.used_cents}/{self.quarantined_cents}>"
        )
