"""
Fund Quarantine Service (``plan_modules.quarantine.service``).

Responsibility
--------------
Orchestrates the reservation lifecycle -- create, update, release and
draw-down -- for funds earmarked on a budget line for one provider.  Each
public method is one unit of work: validate, lock, check, write, commit,
then emit the audit entry and automation event.

Architecture position
---------------------
**Modules layer** -- service facade over the kernel models.  Capacity math
lives in ``CapacityChecker``; audit in ``AuditorService``; events go to any
``EventPublisher``.

Invariants enforced
-------------------
* ``0 <= used_cents <= quarantined_cents`` on every write.
* ``sum(ACTIVE quarantined_cents) <= allocated - spent`` after every create
  or resize.  The check and the write share one transaction holding the
  budget line row lock, and the transaction ends with a compare-and-swap on
  ``reservation_version``.
* RELEASED / EXPIRED are terminal; nothing but ACTIVE is ever mutated.
* Transaction boundary owned by this service: commit on success, rollback
  on any exception.

Failure modes
-------------
* ``QuarantineNotFoundError`` / ``BudgetLineNotFoundError`` /
  ``ProviderNotFoundError`` / ``FundingPeriodNotFoundError`` /
  ``ServiceAgreementNotFoundError`` -- referenced record missing.
* ``QuarantineNotActiveError`` -- target is RELEASED or EXPIRED.
* ``InsufficientCapacityError`` -- create or resize exceeds headroom.
* ``DrawDownExceedsQuarantineError`` -- draw-down passes the ceiling.
* ``DuplicateQuarantineError`` -- same line + provider + support item.
* ``QuarantineValidationError`` -- malformed request.
* ``OptimisticLockError`` -- still conflicting after
  ``max_concurrency_retries`` retries.

Audit relevance
---------------
Every successful mutation appends one ``fund-quarantine.*`` audit entry.
Audit and event delivery run after the primary commit and are best effort:
a failure is logged (``audit_append_failed`` / ``event_publish_failed``)
and never undoes the reservation.
"""

from collections.abc import Callable
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from plan_kernel.db.types import is_cents, percent_of
from plan_kernel.domain.clock import Clock, SystemClock
from plan_kernel.exceptions import (
    DrawDownExceedsQuarantineError,
    DuplicateQuarantineError,
    FundingPeriodNotFoundError,
    OptimisticLockError,
    ProviderNotFoundError,
    QuarantineNotActiveError,
    QuarantineNotFoundError,
    QuarantineValidationError,
    ServiceAgreementNotFoundError,
)
from plan_kernel.logging_config import LogContext, get_logger
from plan_kernel.models.plan import BudgetLine, FundingPeriod
from plan_kernel.models.provider import Provider
from plan_kernel.models.service_agreement import ServiceAgreement
from plan_kernel.services.auditor_service import AuditorService
from plan_kernel.services.base import BaseService
from plan_kernel.services.event_bus import EventPublisher, InMemoryEventBus
from plan_modules.quarantine.capacity import CapacityChecker
from plan_modules.quarantine.config import QuarantineConfig
from plan_modules.quarantine.models import (
    UNSET,
    CreateQuarantineRequest,
    Quarantine,
    QuarantineStatus,
    UpdateQuarantineRequest,
)
from plan_modules.quarantine.orm import QuarantineModel

logger = get_logger("modules.quarantine.service")

T = TypeVar("T")

AUDIT_CREATED = "fund-quarantine.created"
AUDIT_UPDATED = "fund-quarantine.updated"
AUDIT_RELEASED = "fund-quarantine.released"
AUDIT_DRAW_DOWN = "fund-quarantine.draw-down"
AUDIT_AUTO_CREATED = "fund-quarantine.auto-created"

EVENT_CREATED = "quarantine.created"
EVENT_RELEASED = "quarantine.released"
EVENT_THRESHOLD_REACHED = "quarantine.threshold-reached"

AUTO_CREATE_SOURCE = "auto-create-from-sa"


class QuarantineService(BaseService[QuarantineModel]):
    """
    Reservation lifecycle manager.

    Contract:
        Every public method commits its own transaction (or rolls back and
        raises) and returns a frozen ``Quarantine`` DTO.

    Guarantees:
        - A concurrent writer that changed the same budget line or
          quarantine first forces a rollback and a full re-run against
          fresh state, up to ``config.max_concurrency_retries`` times.
        - Side effects happen only after the primary commit.

    Non-goals:
        - Does NOT check permissions; ``actor_id`` is already authenticated.
        - Does NOT move quarantines to EXPIRED.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService | None = None,
        event_publisher: EventPublisher | None = None,
        config: QuarantineConfig | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._auditor = auditor if auditor is not None else AuditorService(session, self._clock)
        self._events = event_publisher if event_publisher is not None else InMemoryEventBus()
        self._config = config or QuarantineConfig.with_defaults()
        self._capacity = CapacityChecker(session)

    @property
    def capacity(self) -> CapacityChecker:
        return self._capacity

    # ------------------------------------------------------------------
    # Transaction handling
    # ------------------------------------------------------------------

    def _run_in_transaction(
        self,
        operation: str,
        entity_type: str,
        entity_id: UUID | str,
        work: Callable[[], T],
    ) -> T:
        """
        Run ``work`` and commit.  Concurrency conflicts roll back and re-run
        ``work`` from scratch; anything else rolls back and propagates.
        """
        max_attempts = self._config.max_concurrency_retries + 1
        for attempt in range(1, max_attempts + 1):
            try:
                result = work()
                self.session.commit()
                return result
            except (OptimisticLockError, StaleDataError) as exc:
                self.session.rollback()
                if attempt >= max_attempts:
                    logger.warning(
                        "concurrency_retries_exhausted",
                        extra={
                            "operation": operation,
                            "attempts": attempt,
                        },
                    )
                    if isinstance(exc, OptimisticLockError):
                        raise
                    raise OptimisticLockError(entity_type, str(entity_id)) from exc
                logger.info(
                    "concurrency_retry",
                    extra={"operation": operation, "attempt": attempt},
                )
            except Exception:
                self.session.rollback()
                raise
        raise AssertionError("unreachable")

    def _audit(
        self,
        actor_id: UUID,
        action: str,
        quarantine_id: UUID,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
    ) -> None:
        try:
            self._auditor.record(
                user_id=actor_id,
                action=action,
                resource=self._config.audit_resource,
                resource_id=quarantine_id,
                before=before,
                after=after,
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.warning(
                "audit_append_failed",
                extra={"action": action, "quarantine_id": str(quarantine_id)},
                exc_info=True,
            )

    def _publish(self, topic: str, payload: dict[str, Any]) -> None:
        try:
            self._events.publish(topic, payload)
        except Exception:
            logger.warning(
                "event_publish_failed",
                extra={"topic": topic, "quarantine_id": str(payload.get("quarantine_id"))},
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Validation and loading
    # ------------------------------------------------------------------

    def _validate_amount(self, field: str, value: object) -> None:
        if not is_cents(value) or value <= 0:
            raise QuarantineValidationError(field, "must be a positive integer number of cents")

    def _validate_text(self, support_item_code: object, notes: object) -> None:
        if support_item_code not in (None, UNSET):
            if not isinstance(support_item_code, str) or not support_item_code.strip():
                raise QuarantineValidationError("support_item_code", "must be a non-empty string")
            if len(support_item_code) > self._config.max_support_item_code_length:
                raise QuarantineValidationError(
                    "support_item_code",
                    f"must be at most {self._config.max_support_item_code_length} characters",
                )
        if notes not in (None, UNSET):
            if not isinstance(notes, str):
                raise QuarantineValidationError("notes", "must be a string")
            if len(notes) > self._config.max_notes_length:
                raise QuarantineValidationError(
                    "notes",
                    f"must be at most {self._config.max_notes_length} characters",
                )

    def _validate_references(self, request: CreateQuarantineRequest, line: BudgetLine) -> None:
        if self.session.get(Provider, request.provider_id) is None:
            raise ProviderNotFoundError(str(request.provider_id))

        if request.funding_period_id is not None:
            period = self.session.get(FundingPeriod, request.funding_period_id)
            if period is None:
                raise FundingPeriodNotFoundError(str(request.funding_period_id))
            if period.plan_id != line.plan_id:
                raise QuarantineValidationError(
                    "funding_period_id",
                    "funding period belongs to a different plan than the budget line",
                )

        if request.service_agreement_id is not None:
            if self.session.get(ServiceAgreement, request.service_agreement_id) is None:
                raise ServiceAgreementNotFoundError(str(request.service_agreement_id))

    def _ensure_unique(
        self,
        budget_line_id: UUID,
        provider_id: UUID,
        support_item_code: str | None,
        exclude_quarantine_id: UUID | None = None,
    ) -> None:
        # NULL support item codes never collide, same as the unique index.
        if support_item_code is None:
            return
        stmt = select(QuarantineModel.id).where(
            QuarantineModel.budget_line_id == budget_line_id,
            QuarantineModel.provider_id == provider_id,
            QuarantineModel.support_item_code == support_item_code,
        )
        if exclude_quarantine_id is not None:
            stmt = stmt.where(QuarantineModel.id != exclude_quarantine_id)
        if self.session.execute(stmt.limit(1)).first() is not None:
            raise DuplicateQuarantineError(
                str(budget_line_id), str(provider_id), support_item_code
            )

    def _flush_unique(self, model: QuarantineModel) -> None:
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise DuplicateQuarantineError(
                str(model.budget_line_id), str(model.provider_id), model.support_item_code
            ) from exc

    def _load_for_update(self, quarantine_id: UUID) -> QuarantineModel:
        model = self.session.execute(
            select(QuarantineModel)
            .where(QuarantineModel.id == quarantine_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if model is None:
            raise QuarantineNotFoundError(str(quarantine_id))
        if model.status != QuarantineStatus.ACTIVE.value:
            raise QuarantineNotActiveError(str(quarantine_id), model.status)
        return model

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: CreateQuarantineRequest, actor_id: UUID) -> Quarantine:
        """
        Reserve ``request.quarantined_cents`` on a budget line for a provider.

        Preconditions:
            - ``quarantined_cents`` is a positive int.
        Postconditions:
            - A new ACTIVE quarantine with ``used_cents == 0`` is committed.
            - ``fund-quarantine.created`` audited and ``quarantine.created``
              published (best effort).

        Raises:
            QuarantineValidationError, BudgetLineNotFoundError,
            ProviderNotFoundError, FundingPeriodNotFoundError,
            ServiceAgreementNotFoundError, InsufficientCapacityError,
            DuplicateQuarantineError, OptimisticLockError.
        """
        return self._create(request, actor_id, AUDIT_CREATED, extra_after=None)

    def create_derived(self, request: CreateQuarantineRequest, actor_id: UUID) -> Quarantine:
        """Same as ``create`` but audited as ``fund-quarantine.auto-created``."""
        return self._create(
            request,
            actor_id,
            AUDIT_AUTO_CREATED,
            extra_after={"source": AUTO_CREATE_SOURCE},
        )

    def _create(
        self,
        request: CreateQuarantineRequest,
        actor_id: UUID,
        audit_action: str,
        extra_after: dict[str, Any] | None,
    ) -> Quarantine:
        self._validate_amount("quarantined_cents", request.quarantined_cents)
        self._validate_text(request.support_item_code, request.notes)

        with LogContext.bind(actor_id=actor_id, budget_line_id=request.budget_line_id):

            def work() -> Quarantine:
                line = self._capacity.load_budget_line(request.budget_line_id, lock=True)
                self._validate_references(request, line)
                snapshot = self._capacity.assert_capacity(
                    line.id, request.quarantined_cents, lock=False
                )
                self._ensure_unique(line.id, request.provider_id, request.support_item_code)

                model = QuarantineModel(
                    budget_line_id=line.id,
                    provider_id=request.provider_id,
                    service_agreement_id=request.service_agreement_id,
                    funding_period_id=request.funding_period_id,
                    support_item_code=request.support_item_code,
                    quarantined_cents=request.quarantined_cents,
                    used_cents=0,
                    status=QuarantineStatus.ACTIVE.value,
                    notes=request.notes,
                    created_by_id=actor_id,
                    created_at=self._clock.now(),
                    updated_at=self._clock.now(),
                )
                self.session.add(model)
                self._flush_unique(model)
                self._capacity.bump_reservation_version(line.id, snapshot.reservation_version)
                return model.to_dto()

            quarantine = self._run_in_transaction(
                "create", "BudgetLine", request.budget_line_id, work
            )

            logger.info(
                "quarantine_created",
                extra={
                    "quarantine_id": str(quarantine.id),
                    "provider_id": str(quarantine.provider_id),
                    "quarantined_cents": quarantine.quarantined_cents,
                    "audit_action": audit_action,
                },
            )

            after: dict[str, Any] = {
                "budget_line_id": quarantine.budget_line_id,
                "provider_id": quarantine.provider_id,
                "quarantined_cents": quarantine.quarantined_cents,
                "service_agreement_id": quarantine.service_agreement_id,
            }
            if extra_after:
                after.update(extra_after)
            self._audit(actor_id, audit_action, quarantine.id, after=after)

            payload: dict[str, Any] = {
                "quarantine_id": quarantine.id,
                "budget_line_id": quarantine.budget_line_id,
                "provider_id": quarantine.provider_id,
                "quarantined_cents": quarantine.quarantined_cents,
            }
            if quarantine.service_agreement_id is not None:
                payload["service_agreement_id"] = quarantine.service_agreement_id
            self._publish(EVENT_CREATED, payload)

        return quarantine

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update(
        self,
        quarantine_id: UUID,
        request: UpdateQuarantineRequest,
        actor_id: UUID,
    ) -> Quarantine:
        """
        Apply a partial update to an ACTIVE quarantine.

        Only fields supplied in ``request`` change.  A new
        ``quarantined_cents`` is re-checked against capacity with this
        quarantine's own current reservation excluded, and may not drop
        below ``used_cents``.

        Raises:
            QuarantineNotFoundError, QuarantineNotActiveError,
            QuarantineValidationError, InsufficientCapacityError,
            DuplicateQuarantineError, OptimisticLockError.
        """
        fields = request.supplied_fields()
        if "quarantined_cents" in fields:
            self._validate_amount("quarantined_cents", fields["quarantined_cents"])
        self._validate_text(request.support_item_code, request.notes)

        with LogContext.bind(actor_id=actor_id, quarantine_id=quarantine_id):

            def work() -> tuple[Quarantine, int]:
                model = self._load_for_update(quarantine_id)
                before_cents = model.quarantined_cents
                new_cents = fields.get("quarantined_cents", before_cents)

                snapshot = None
                if new_cents != before_cents:
                    if new_cents < model.used_cents:
                        raise QuarantineValidationError(
                            "quarantined_cents",
                            f"cannot be reduced below used_cents ({model.used_cents})",
                        )
                    self._capacity.load_budget_line(model.budget_line_id, lock=True)
                    snapshot = self._capacity.assert_capacity(
                        model.budget_line_id,
                        new_cents,
                        exclude_quarantine_id=model.id,
                        lock=False,
                    )

                if "support_item_code" in fields and fields["support_item_code"] != model.support_item_code:
                    self._ensure_unique(
                        model.budget_line_id,
                        model.provider_id,
                        fields["support_item_code"],
                        exclude_quarantine_id=model.id,
                    )

                for name, value in fields.items():
                    setattr(model, name, value)
                model.touch(actor_id, self._clock.now())
                self._flush_unique(model)

                if snapshot is not None:
                    self._capacity.bump_reservation_version(
                        model.budget_line_id, snapshot.reservation_version
                    )
                return model.to_dto(), before_cents

            quarantine, before_cents = self._run_in_transaction(
                "update", "Quarantine", quarantine_id, work
            )

            logger.info(
                "quarantine_updated",
                extra={
                    "fields": sorted(fields),
                    "before_cents": before_cents,
                    "after_cents": quarantine.quarantined_cents,
                },
            )
            self._audit(
                actor_id,
                AUDIT_UPDATED,
                quarantine.id,
                before={"quarantined_cents": before_cents},
                after={"quarantined_cents": quarantine.quarantined_cents},
            )

        return quarantine

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    def release(self, quarantine_id: UUID, actor_id: UUID) -> Quarantine:
        """
        Move an ACTIVE quarantine to RELEASED, returning its unused funds to
        the budget line.  ``used_cents`` is left as is.

        Raises:
            QuarantineNotFoundError, QuarantineNotActiveError,
            OptimisticLockError.
        """
        with LogContext.bind(actor_id=actor_id, quarantine_id=quarantine_id):

            def work() -> Quarantine:
                model = self._load_for_update(quarantine_id)
                line = self._capacity.load_budget_line(model.budget_line_id, lock=True)
                model.status = QuarantineStatus.RELEASED.value
                model.touch(actor_id, self._clock.now())
                self.session.flush()
                self._capacity.bump_reservation_version(line.id, line.reservation_version)
                return model.to_dto()

            quarantine = self._run_in_transaction(
                "release", "Quarantine", quarantine_id, work
            )

            logger.info(
                "quarantine_released",
                extra={
                    "released_cents": quarantine.remaining_cents,
                    "used_cents": quarantine.used_cents,
                },
            )
            self._audit(
                actor_id,
                AUDIT_RELEASED,
                quarantine.id,
                after={"status": quarantine.status.value},
            )
            self._publish(
                EVENT_RELEASED,
                {
                    "quarantine_id": quarantine.id,
                    "budget_line_id": quarantine.budget_line_id,
                    "provider_id": quarantine.provider_id,
                },
            )

        return quarantine

    # ------------------------------------------------------------------
    # Draw-down
    # ------------------------------------------------------------------

    def draw_down(self, quarantine_id: UUID, amount_cents: int, actor_id: UUID) -> Quarantine:
        """
        Consume ``amount_cents`` of an ACTIVE quarantine.

        Guarded by the quarantine's own ceiling, not by line capacity.  When
        the rounded utilisation reaches ``config.threshold_percent``,
        ``quarantine.threshold-reached`` is published.  This happens on every
        qualifying draw-down, not only the first.

        Raises:
            QuarantineValidationError, QuarantineNotFoundError,
            QuarantineNotActiveError, DrawDownExceedsQuarantineError,
            OptimisticLockError.
        """
        self._validate_amount("amount_cents", amount_cents)

        with LogContext.bind(actor_id=actor_id, quarantine_id=quarantine_id):

            def work() -> tuple[Quarantine, int]:
                model = self._load_for_update(quarantine_id)
                before_used = model.used_cents
                new_used = before_used + amount_cents
                if new_used > model.quarantined_cents:
                    raise DrawDownExceedsQuarantineError(
                        str(model.id), model.quarantined_cents, before_used, amount_cents
                    )
                model.used_cents = new_used
                model.touch(actor_id, self._clock.now())
                self.session.flush()
                return model.to_dto(), before_used

            quarantine, before_used = self._run_in_transaction(
                "draw_down", "Quarantine", quarantine_id, work
            )

            used_percent = percent_of(quarantine.used_cents, quarantine.quarantined_cents)
            logger.info(
                "quarantine_drawn_down",
                extra={
                    "amount_cents": amount_cents,
                    "used_cents": quarantine.used_cents,
                    "used_percent": used_percent,
                },
            )
            self._audit(
                actor_id,
                AUDIT_DRAW_DOWN,
                quarantine.id,
                before={"used_cents": before_used},
                after={"used_cents": quarantine.used_cents},
            )

            if used_percent >= self._config.threshold_percent:
                logger.info(
                    "quarantine_threshold_reached",
                    extra={"used_percent": used_percent},
                )
                self._publish(
                    EVENT_THRESHOLD_REACHED,
                    {
                        "quarantine_id": quarantine.id,
                        "budget_line_id": quarantine.budget_line_id,
                        "provider_id": quarantine.provider_id,
                        "used_percent": used_percent,
                    },
                )

        return quarantine
