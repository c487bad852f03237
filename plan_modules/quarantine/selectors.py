"""
Quarantine read queries (``plan_modules.quarantine.selectors``).

Read-only access to reservations for listing screens and capacity
summaries.  Returns ``Quarantine`` / ``CapacitySnapshot`` DTOs.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select

from plan_kernel.exceptions import QuarantineNotFoundError
from plan_kernel.models.plan import BudgetLine
from plan_kernel.selectors.base import BaseSelector
from plan_modules.quarantine.capacity import compute_available
from plan_modules.quarantine.models import CapacitySnapshot, Quarantine, QuarantineStatus
from plan_modules.quarantine.orm import QuarantineModel


def remaining(quarantine: Quarantine) -> int:
    """Cents still available to draw from a reservation."""
    return quarantine.quarantined_cents - quarantine.used_cents


class QuarantineSelector(BaseSelector[QuarantineModel]):
    """Queries over fund quarantines."""

    def get(self, quarantine_id: UUID) -> Quarantine:
        """
        Raises:
            QuarantineNotFoundError: If the id is unknown.
        """
        model = self.session.execute(
            select(QuarantineModel)
            .where(QuarantineModel.id == quarantine_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise QuarantineNotFoundError(str(quarantine_id))
        return model.to_dto()

    def list(
        self,
        budget_line_id: UUID | None = None,
        provider_id: UUID | None = None,
        service_agreement_id: UUID | None = None,
        status: QuarantineStatus | None = None,
    ) -> list[Quarantine]:
        """Quarantines matching every given filter, newest first."""
        stmt = select(QuarantineModel)
        if budget_line_id is not None:
            stmt = stmt.where(QuarantineModel.budget_line_id == budget_line_id)
        if provider_id is not None:
            stmt = stmt.where(QuarantineModel.provider_id == provider_id)
        if service_agreement_id is not None:
            stmt = stmt.where(QuarantineModel.service_agreement_id == service_agreement_id)
        if status is not None:
            stmt = stmt.where(QuarantineModel.status == QuarantineStatus(status).value)
        stmt = stmt.order_by(QuarantineModel.created_at.desc(), QuarantineModel.id.desc())
        return [
            model.to_dto()
            for model in self.session.execute(
                stmt.execution_options(populate_existing=True)
            ).scalars()
        ]

    def list_for_plan_grouped_by_provider(
        self,
        plan_id: UUID,
        status: QuarantineStatus | None = None,
    ) -> dict[UUID, list[Quarantine]]:
        """All quarantines on a plan's budget lines, keyed by provider."""
        stmt = (
            select(QuarantineModel)
            .join(BudgetLine, BudgetLine.id == QuarantineModel.budget_line_id)
            .where(BudgetLine.plan_id == plan_id)
        )
        if status is not None:
            stmt = stmt.where(QuarantineModel.status == QuarantineStatus(status).value)
        stmt = stmt.order_by(QuarantineModel.created_at.desc(), QuarantineModel.id.desc())

        grouped: dict[UUID, list[Quarantine]] = {}
        for model in self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalars():
            grouped.setdefault(model.provider_id, []).append(model.to_dto())
        return grouped

    def capacity_summary(self, plan_id: UUID) -> list[CapacitySnapshot]:
        """One snapshot per budget line of the plan, ordered by category code."""
        reserved = (
            select(
                QuarantineModel.budget_line_id.label("budget_line_id"),
                func.sum(QuarantineModel.quarantined_cents).label("reserved_cents"),
            )
            .where(QuarantineModel.status == QuarantineStatus.ACTIVE.value)
            .group_by(QuarantineModel.budget_line_id)
            .subquery()
        )
        rows = self.session.execute(
            select(BudgetLine, func.coalesce(reserved.c.reserved_cents, 0))
            .outerjoin(reserved, reserved.c.budget_line_id == BudgetLine.id)
            .where(BudgetLine.plan_id == plan_id)
            .order_by(BudgetLine.category_code)
            .execution_options(populate_existing=True)
        ).all()

        return [
            CapacitySnapshot(
                budget_line_id=line.id,
                category_code=line.category_code,
                allocated_cents=line.allocated_cents,
                spent_cents=line.spent_cents,
                reserved_cents=int(reserved_cents),
                available_cents=compute_available(
                    line.allocated_cents, line.spent_cents, int(reserved_cents)
                ),
                reservation_version=line.reservation_version,
            )
            for line, reserved_cents in rows
        ]

    def remaining(self, quarantine: Quarantine) -> int:
        return remaining(quarantine)
