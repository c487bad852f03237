"""
Plan, BudgetLine, FundingPeriod and PeriodBudget models.

Responsibility:
    The participant plan and the per-category budget lines that funds are
    reserved against.  Funding periods split a plan in time; period budgets
    sub-allocate a budget line to one period.

Architecture position:
    Kernel > Models.  Imported by the quarantine module ORM (foreign keys),
    the capacity checker (locked reads) and selectors.

Invariants enforced:
    - One budget line per (plan_id, category_code).
    - allocated_cents and spent_cents are non-negative integer cents.
    - reservation_version only ever increases.  Every capacity-changing
      reservation bumps it with a compare-and-swap UPDATE.

Non-goals:
    spent_cents is maintained by invoice approval, which lives outside this
    package.  Nothing here writes it.
"""

from datetime import date
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from plan_kernel.db.base import TrackedBase


class PlanStatus(str, Enum):
    """Lifecycle states of a participant plan."""

    ACTIVE = "ACTIVE"
    EXPIRING_SOON = "EXPIRING_SOON"
    EXPIRED = "EXPIRED"
    UNDER_REVIEW = "UNDER_REVIEW"
    INACTIVE = "INACTIVE"


class Plan(TrackedBase):
    """A participant's funded plan."""

    __tablename__ = "plan_plans"

    __table_args__ = (
        Index("idx_plan_participant", "participant_id"),
        Index("idx_plan_status", "status"),
    )

    participant_id: Mapped[UUID] = mapped_column(nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PlanStatus.ACTIVE.value,
    )

    budget_lines: Mapped[list["BudgetLine"]] = relationship(
        back_populates="plan",
        order_by="BudgetLine.category_code",
    )
    funding_periods: Mapped[list["FundingPeriod"]] = relationship(
        back_populates="plan",
        order_by="FundingPeriod.start_date",
    )

    def __repr__(self) -> str:
        return f"<Plan {self.id} {self.status}>"


class BudgetLine(TrackedBase):
    """
    Allocated funding for one support category within a plan.

    Guarantees:
        - (plan_id, category_code) is unique.
        - reservation_version is the optimistic counter the reservation
          ledger compare-and-swaps on every capacity change.
    """

    __tablename__ = "plan_budget_lines"

    __table_args__ = (
        UniqueConstraint(
            "plan_id", "category_code",
            name="uq_budget_line_plan_category",
        ),
        CheckConstraint("allocated_cents >= 0", name="ck_budget_line_allocated_nonneg"),
        CheckConstraint("spent_cents >= 0", name="ck_budget_line_spent_nonneg"),
        Index("idx_budget_line_plan", "plan_id"),
    )

    plan_id: Mapped[UUID] = mapped_column(ForeignKey("plan_plans.id"), nullable=False)
    category_code: Mapped[str] = mapped_column(String(50), nullable=False)
    category_name: Mapped[str] = mapped_column(String(200), nullable=False)
    allocated_cents: Mapped[int] = mapped_column(nullable=False)
    spent_cents: Mapped[int] = mapped_column(nullable=False, default=0)
    reservation_version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    plan: Mapped["Plan"] = relationship(back_populates="budget_lines")

    def __repr__(self) -> str:
        return (
            f"<BudgetLine {self.category_code} "
            f"allocated={self.allocated_cents} spent={self.spent_cents}>"
        )


class FundingPeriod(TrackedBase):
    """A time slice of a plan that carries its own period budgets."""

    __tablename__ = "plan_funding_periods"

    __table_args__ = (
        Index("idx_funding_period_plan", "plan_id"),
    )

    plan_id: Mapped[UUID] = mapped_column(ForeignKey("plan_plans.id"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    label: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    plan: Mapped["Plan"] = relationship(back_populates="funding_periods")
    period_budgets: Mapped[list["PeriodBudget"]] = relationship(
        back_populates="funding_period",
    )

    def __repr__(self) -> str:
        return f"<FundingPeriod {self.label or self.id} {self.start_date}..{self.end_date}>"


class PeriodBudget(TrackedBase):
    """Sub-allocation of a budget line to one funding period."""

    __tablename__ = "plan_period_budgets"

    __table_args__ = (
        UniqueConstraint(
            "funding_period_id", "budget_line_id",
            name="uq_period_budget_period_line",
        ),
    )

    funding_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("plan_funding_periods.id"),
        nullable=False,
    )
    budget_line_id: Mapped[UUID] = mapped_column(
        ForeignKey("plan_budget_lines.id"),
        nullable=False,
    )
    allocated_cents: Mapped[int] = mapped_column(nullable=False)

    funding_period: Mapped["FundingPeriod"] = relationship(back_populates="period_budgets")

    def __repr__(self) -> str:
        return f"<PeriodBudget {self.budget_line_id} {self.allocated_cents}>"
