"""
ServiceAgreement and RateLine models.

A service agreement binds a participant to a provider at agreed rates.  Each
rate line names a support category (matched to a budget line by
category_code), an optional support item, a per-unit rate in cents and an
optional maximum quantity.  The agreement deriver turns these into
reservations; nothing in this package edits them.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from plan_kernel.db.base import TrackedBase


class ServiceAgreementStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    TERMINATED = "TERMINATED"


class ServiceAgreement(TrackedBase):
    """Provider <-> participant agreement."""

    __tablename__ = "sa_service_agreements"

    __table_args__ = (
        Index("idx_service_agreement_participant", "participant_id"),
        Index("idx_service_agreement_provider", "provider_id"),
    )

    agreement_ref: Mapped[str] = mapped_column(String(50), nullable=False)
    participant_id: Mapped[UUID] = mapped_column(nullable=False)
    provider_id: Mapped[UUID] = mapped_column(
        ForeignKey("crm_providers.id"),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ServiceAgreementStatus.DRAFT.value,
    )
    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    rate_lines: Mapped[list["RateLine"]] = relationship(
        back_populates="agreement",
        order_by="RateLine.category_code",
    )

    def __repr__(self) -> str:
        return f"<ServiceAgreement {self.agreement_ref} {self.status}>"


class RateLine(TrackedBase):
    """One agreed rate within a service agreement."""

    __tablename__ = "sa_rate_lines"

    __table_args__ = (
        Index("idx_rate_line_agreement", "agreement_id"),
    )

    agreement_id: Mapped[UUID] = mapped_column(
        ForeignKey("sa_service_agreements.id"),
        nullable=False,
    )
    category_code: Mapped[str] = mapped_column(String(50), nullable=False)
    category_name: Mapped[str] = mapped_column(String(200), nullable=False)
    support_item_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    support_item_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    agreed_rate_cents: Mapped[int] = mapped_column(nullable=False)
    max_quantity: Mapped[Decimal | None] = mapped_column(nullable=True)
    unit_type: Mapped[str | None] = mapped_column(String(20), nullable=True)

    agreement: Mapped["ServiceAgreement"] = relationship(back_populates="rate_lines")

    def __repr__(self) -> str:
        return (
            f"<RateLine {self.category_code}/{self.support_item_code} "
            f"{self.agreed_rate_cents}>"
        )
