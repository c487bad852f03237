"""
Capacity checker (``plan_modules.quarantine.capacity``).

Responsibility
--------------
Answers "can this budget line take another ``proposed_cents`` of
reservation?" against fresh database state, and owns the compare-and-swap
on ``BudgetLine.reservation_version`` that every capacity-changing write
finishes with.

    available = allocated - spent - sum(quarantined_cents of ACTIVE
                                        reservations on the line,
                                        excluding the given id)

Invariants enforced
-------------------
* Integer cents only; aggregation is a plain integer sum.
* Never cached: every call re-reads the line and the aggregate.
* ``lock=True`` reads the budget line with ``SELECT ... FOR UPDATE`` so the
  check and the caller's subsequent write happen under one row lock.

Failure modes
-------------
* ``BudgetLineNotFoundError`` -- unknown budget line id.
* ``InsufficientCapacityError`` -- proposed amount exceeds headroom.
* ``QuarantineValidationError`` -- proposed amount is not a non-negative int.
* ``OptimisticLockError`` -- reservation_version moved under us.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from plan_kernel.db.types import is_cents
from plan_kernel.exceptions import (
    BudgetLineNotFoundError,
    InsufficientCapacityError,
    OptimisticLockError,
    QuarantineValidationError,
)
from plan_kernel.logging_config import get_logger
from plan_kernel.models.plan import BudgetLine
from plan_modules.quarantine.models import CapacitySnapshot, QuarantineStatus
from plan_modules.quarantine.orm import QuarantineModel

logger = get_logger("modules.quarantine.capacity")


def compute_available(allocated_cents: int, spent_cents: int, reserved_cents: int) -> int:
    """Headroom left on a line.  May be negative if spend overtook reservations."""
    return allocated_cents - spent_cents - reserved_cents


@dataclass(frozen=True)
class CapacityDecision:
    """Outcome of a pure capacity evaluation."""

    accepted: bool
    requested_cents: int
    available_cents: int


def evaluate_capacity(
    allocated_cents: int,
    spent_cents: int,
    reserved_cents: int,
    proposed_cents: int,
) -> CapacityDecision:
    """
    Accept iff ``available >= proposed``.

    Example:
        evaluate_capacity(10000, 0, 0, 10000).accepted  -> True
        evaluate_capacity(10000, 0, 0, 10001).accepted  -> False
    """
    available = compute_available(allocated_cents, spent_cents, reserved_cents)
    return CapacityDecision(
        accepted=available >= proposed_cents,
        requested_cents=proposed_cents,
        available_cents=available,
    )


class CapacityChecker:
    """
    Database-backed capacity checks for budget lines.

    Contract:
        Reads only, except ``bump_reservation_version``.  Runs inside the
        caller's transaction and never commits.

    Non-goals:
        - Does NOT look at draw-down; ``used_cents`` never affects capacity.
    """

    def __init__(self, session: Session):
        self._session = session

    def load_budget_line(self, budget_line_id: UUID, lock: bool = False) -> BudgetLine:
        """
        Fetch a budget line fresh from the database.

        Raises:
            BudgetLineNotFoundError: If the id is unknown.
        """
        stmt = select(BudgetLine).where(BudgetLine.id == budget_line_id)
        if lock:
            stmt = stmt.with_for_update()
        line = self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if line is None:
            raise BudgetLineNotFoundError(str(budget_line_id))
        return line

    def reserved_cents(
        self,
        budget_line_id: UUID,
        exclude_quarantine_id: UUID | None = None,
    ) -> int:
        """Sum of ACTIVE reservations on the line, optionally excluding one."""
        stmt = select(
            func.coalesce(func.sum(QuarantineModel.quarantined_cents), 0)
        ).where(
            QuarantineModel.budget_line_id == budget_line_id,
            QuarantineModel.status == QuarantineStatus.ACTIVE.value,
        )
        if exclude_quarantine_id is not None:
            stmt = stmt.where(QuarantineModel.id != exclude_quarantine_id)
        return int(self._session.execute(stmt).scalar_one())

    def snapshot(
        self,
        budget_line_id: UUID,
        exclude_quarantine_id: UUID | None = None,
        lock: bool = False,
    ) -> CapacitySnapshot:
        """Current allocated / spent / reserved / available for one line."""
        line = self.load_budget_line(budget_line_id, lock=lock)
        return self._snapshot_for(line, exclude_quarantine_id)

    def _snapshot_for(
        self,
        line: BudgetLine,
        exclude_quarantine_id: UUID | None,
    ) -> CapacitySnapshot:
        reserved = self.reserved_cents(line.id, exclude_quarantine_id)
        return CapacitySnapshot(
            budget_line_id=line.id,
            category_code=line.category_code,
            allocated_cents=line.allocated_cents,
            spent_cents=line.spent_cents,
            reserved_cents=reserved,
            available_cents=compute_available(
                line.allocated_cents, line.spent_cents, reserved
            ),
            reservation_version=line.reservation_version,
        )

    def assert_capacity(
        self,
        budget_line_id: UUID,
        proposed_cents: int,
        exclude_quarantine_id: UUID | None = None,
        lock: bool = True,
    ) -> CapacitySnapshot:
        """
        Raise unless the line can take ``proposed_cents`` more reservation.

        Preconditions:
            - ``proposed_cents`` is a non-negative int.
        Postconditions:
            - Returns the snapshot the decision was made on; its
              ``reservation_version`` is what the caller must CAS against.

        Raises:
            QuarantineValidationError: Bad ``proposed_cents``.
            BudgetLineNotFoundError: Unknown line.
            InsufficientCapacityError: ``available < proposed``.
        """
        if not is_cents(proposed_cents) or proposed_cents < 0:
            raise QuarantineValidationError(
                "proposed_cents", "must be a non-negative integer number of cents"
            )

        snapshot = self.snapshot(
            budget_line_id,
            exclude_quarantine_id=exclude_quarantine_id,
            lock=lock,
        )
        decision = evaluate_capacity(
            snapshot.allocated_cents,
            snapshot.spent_cents,
            snapshot.reserved_cents,
            proposed_cents,
        )
        if not decision.accepted:
            logger.info(
                "capacity_rejected",
                extra={
                    "budget_line_id": str(budget_line_id),
                    "requested_cents": proposed_cents,
                    "available_cents": decision.available_cents,
                },
            )
            raise InsufficientCapacityError(
                str(budget_line_id), proposed_cents, decision.available_cents
            )

        logger.debug(
            "capacity_accepted",
            extra={
                "budget_line_id": str(budget_line_id),
                "requested_cents": proposed_cents,
                "available_cents": decision.available_cents,
            },
        )
        return snapshot

    def bump_reservation_version(self, budget_line_id: UUID, seen_version: int) -> int:
        """
        Compare-and-swap ``reservation_version`` from ``seen_version`` to
        ``seen_version + 1``.

        Raises:
            OptimisticLockError: If another transaction already moved it.
        """
        result = self._session.execute(
            update(BudgetLine)
            .where(
                BudgetLine.id == budget_line_id,
                BudgetLine.reservation_version == seen_version,
            )
            .values(reservation_version=seen_version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "reservation_version_conflict",
                extra={
                    "budget_line_id": str(budget_line_id),
                    "seen_version": seen_version,
                },
            )
            raise OptimisticLockError("BudgetLine", str(budget_line_id))
        return seen_version + 1
