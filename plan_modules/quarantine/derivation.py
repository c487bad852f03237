"""
Agreement-driven quarantine derivation (``plan_modules.quarantine.derivation``).

Responsibility
--------------
Turns the rate lines of a service agreement into reservations on a plan's
budget lines: one quarantine per rate line whose category exists in the
plan and fits the line's headroom.

Per rate line:
    1. Resolve the budget line by (plan_id, category_code), else
       SKIPPED_NO_CATEGORY.
    2. amount = round_half_up((max_quantity or 1) * agreed_rate_cents).
       A non-positive amount is SKIPPED_INVALID_AMOUNT.
    3. Create through ``QuarantineService.create_derived`` -- same locking,
       same capacity check, same ``quarantine.created`` event.
       Insufficient headroom is SKIPPED_INSUFFICIENT_CAPACITY, an existing
       (line, provider, support item) reservation is SKIPPED_DUPLICATE, a
       request the service rejects (e.g. an over-long support item code) is
       SKIPPED_INVALID_REQUEST, and a conflict still present after the
       service's retries is SKIPPED_CONFLICT.

A blank support item code on a rate line means "no support item".

Each created reservation commits on its own.  A failure on one line never
rolls back earlier lines.  The call as a whole fails only when the
agreement does not exist.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from plan_kernel.db.types import round_cents
from plan_kernel.exceptions import (
    DuplicateQuarantineError,
    InsufficientCapacityError,
    OptimisticLockError,
    QuarantineValidationError,
    ServiceAgreementNotFoundError,
)
from plan_kernel.logging_config import LogContext, get_logger
from plan_kernel.models.plan import BudgetLine
from plan_kernel.models.service_agreement import RateLine, ServiceAgreement
from plan_modules.quarantine.models import (
    CreateQuarantineRequest,
    DerivationLineResult,
    DerivationOutcome,
    DerivationResult,
)
from plan_modules.quarantine.service import QuarantineService

logger = get_logger("modules.quarantine.derivation")


def derive_amount_cents(agreed_rate_cents: int, max_quantity: Decimal | None) -> int:
    """
    Reservation amount for one rate line.

    Example:
        derive_amount_cents(5_000, Decimal("2.5"))   -> 12_500
        derive_amount_cents(333, Decimal("1.5"))     -> 500  (499.5 rounds up)
        derive_amount_cents(5_000, None)             -> 5_000
    """
    quantity = max_quantity or Decimal(1)
    return round_cents(Decimal(quantity) * Decimal(agreed_rate_cents))


def _normalise_code(code: str | None) -> str | None:
    if code is None or not code.strip():
        return None
    return code


class AgreementQuarantineDeriver:
    """
    Batch creation of reservations from a service agreement.

    Contract:
        ``derive()`` returns one ``DerivationLineResult`` per rate line in
        deterministic order (category code, then support item code).

    Non-goals:
        - Does NOT update or release reservations from earlier derivations.
    """

    def __init__(self, session: Session, quarantine_service: QuarantineService):
        self._session = session
        self._quarantines = quarantine_service

    def _rate_lines(self, service_agreement_id: UUID) -> list[RateLine]:
        return list(
            self._session.execute(
                select(RateLine)
                .where(RateLine.agreement_id == service_agreement_id)
                .order_by(
                    RateLine.category_code,
                    RateLine.support_item_code.nulls_first(),
                    RateLine.id,
                )
            ).scalars()
        )

    def _budget_line_id(self, plan_id: UUID, category_code: str) -> UUID | None:
        return self._session.execute(
            select(BudgetLine.id).where(
                BudgetLine.plan_id == plan_id,
                BudgetLine.category_code == category_code,
            )
        ).scalar_one_or_none()

    def derive(
        self,
        service_agreement_id: UUID,
        plan_id: UUID,
        actor_id: UUID,
    ) -> DerivationResult:
        """
        Create reservations for every eligible rate line of an agreement.

        Owns the session's transaction: any pending work on the session is
        committed together with the rate-line read, and every created
        reservation commits on its own.

        Raises:
            ServiceAgreementNotFoundError: If the agreement does not exist.
        """
        with LogContext.bind(actor_id=actor_id, service_agreement_id=service_agreement_id):
            agreement = self._session.get(ServiceAgreement, service_agreement_id)
            if agreement is None:
                raise ServiceAgreementNotFoundError(str(service_agreement_id))

            provider_id = agreement.provider_id
            rate_lines = [
                (rl.id, rl.category_code, _normalise_code(rl.support_item_code),
                 derive_amount_cents(rl.agreed_rate_cents, rl.max_quantity))
                for rl in self._rate_lines(service_agreement_id)
            ]
            # Per-line writes each run in their own transaction.
            self._session.commit()

            results = tuple(
                self._derive_line(
                    service_agreement_id, plan_id, provider_id, actor_id,
                    rate_line_id, category_code, support_item_code, amount,
                )
                for rate_line_id, category_code, support_item_code, amount in rate_lines
            )
            result = DerivationResult(
                service_agreement_id=service_agreement_id,
                plan_id=plan_id,
                lines=results,
            )

            logger.info(
                "agreement_derivation_completed",
                extra={
                    "plan_id": str(plan_id),
                    "rate_line_count": len(results),
                    "created_count": result.count(DerivationOutcome.CREATED),
                    "skipped_count": len(result.skipped),
                },
            )
            return result

    def _derive_line(
        self,
        service_agreement_id: UUID,
        plan_id: UUID,
        provider_id: UUID,
        actor_id: UUID,
        rate_line_id: UUID,
        category_code: str,
        support_item_code: str | None,
        amount: int,
    ) -> DerivationLineResult:
        def outcome(kind: DerivationOutcome, **kwargs) -> DerivationLineResult:
            if kind is not DerivationOutcome.CREATED:
                logger.info(
                    "rate_line_skipped",
                    extra={
                        "rate_line_id": str(rate_line_id),
                        "category_code": category_code,
                        "outcome": kind.value,
                        "amount_cents": amount,
                    },
                )
            return DerivationLineResult(
                rate_line_id=rate_line_id,
                category_code=category_code,
                support_item_code=support_item_code,
                amount_cents=amount,
                outcome=kind,
                **kwargs,
            )

        budget_line_id = self._budget_line_id(plan_id, category_code)
        if budget_line_id is None:
            self._session.rollback()
            return outcome(DerivationOutcome.SKIPPED_NO_CATEGORY)

        if amount <= 0:
            self._session.rollback()
            return outcome(DerivationOutcome.SKIPPED_INVALID_AMOUNT, budget_line_id=budget_line_id)

        request = CreateQuarantineRequest(
            budget_line_id=budget_line_id,
            provider_id=provider_id,
            quarantined_cents=amount,
            service_agreement_id=service_agreement_id,
            support_item_code=support_item_code,
        )
        try:
            quarantine = self._quarantines.create_derived(request, actor_id)
        except InsufficientCapacityError as exc:
            return outcome(
                DerivationOutcome.SKIPPED_INSUFFICIENT_CAPACITY,
                budget_line_id=budget_line_id,
                available_cents=exc.available_cents,
            )
        except DuplicateQuarantineError:
            return outcome(DerivationOutcome.SKIPPED_DUPLICATE, budget_line_id=budget_line_id)
        except QuarantineValidationError:
            self._session.rollback()
            return outcome(DerivationOutcome.SKIPPED_INVALID_REQUEST, budget_line_id=budget_line_id)
        except OptimisticLockError:
            return outcome(DerivationOutcome.SKIPPED_CONFLICT, budget_line_id=budget_line_id)

        return outcome(
            DerivationOutcome.CREATED,
            budget_line_id=budget_line_id,
            quarantine=quarantine,
        )
