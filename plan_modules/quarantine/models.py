"""
Fund Quarantine Domain Models (``plan_modules.quarantine.models``).

Responsibility
--------------
Frozen dataclass value objects for reservations: the quarantine record
itself, create/update requests, capacity snapshots and the per-rate-line
results of agreement derivation.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Returned by
``QuarantineService``, ``AgreementQuarantineDeriver`` and
``QuarantineSelector``; never ORM instances.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All amounts are ``int`` cents -- NEVER ``float``.
* ``UNSET`` distinguishes "field omitted" from "field explicitly cleared"
  in partial updates.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID


class QuarantineStatus(str, Enum):
    """Reservation states.  RELEASED and EXPIRED are terminal."""

    ACTIVE = "ACTIVE"
    RELEASED = "RELEASED"
    EXPIRED = "EXPIRED"

    @property
    def is_reserving(self) -> bool:
        """Only ACTIVE reservations count against budget line capacity."""
        return self is QuarantineStatus.ACTIVE


class _Unset:
    """Marker for a field the caller did not supply."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()


@dataclass(frozen=True)
class Quarantine:
    """A reservation of budget line funds for one provider."""

    id: UUID
    budget_line_id: UUID
    provider_id: UUID
    quarantined_cents: int
    used_cents: int
    status: QuarantineStatus
    created_by_id: UUID
    service_agreement_id: UUID | None = None
    funding_period_id: UUID | None = None
    support_item_code: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 1

    @property
    def remaining_cents(self) -> int:
        return self.quarantined_cents - self.used_cents

    @property
    def is_active(self) -> bool:
        return self.status is QuarantineStatus.ACTIVE


@dataclass(frozen=True)
class CreateQuarantineRequest:
    """Input to ``QuarantineService.create``."""

    budget_line_id: UUID
    provider_id: UUID
    quarantined_cents: int
    service_agreement_id: UUID | None = None
    funding_period_id: UUID | None = None
    support_item_code: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class UpdateQuarantineRequest:
    """
    Partial update.  Fields left as ``UNSET`` are not touched; ``None``
    clears a nullable field.
    """

    quarantined_cents: "int | _Unset" = UNSET
    support_item_code: "str | None | _Unset" = UNSET
    notes: "str | None | _Unset" = UNSET

    def supplied_fields(self) -> dict[str, object]:
        return {
            name: value
            for name, value in (
                ("quarantined_cents", self.quarantined_cents),
                ("support_item_code", self.support_item_code),
                ("notes", self.notes),
            )
            if value is not UNSET
        }


@dataclass(frozen=True)
class CapacitySnapshot:
    """
    Point-in-time capacity of one budget line.

    available_cents = allocated_cents - spent_cents - reserved_cents
    """

    budget_line_id: UUID
    category_code: str
    allocated_cents: int
    spent_cents: int
    reserved_cents: int
    available_cents: int
    reservation_version: int = 0

    def can_accommodate(self, proposed_cents: int) -> bool:
        return self.available_cents >= proposed_cents


class DerivationOutcome(str, Enum):
    """What happened to one rate line during agreement derivation."""

    CREATED = "CREATED"
    SKIPPED_NO_CATEGORY = "SKIPPED_NO_CATEGORY"
    SKIPPED_INSUFFICIENT_CAPACITY = "SKIPPED_INSUFFICIENT_CAPACITY"
    SKIPPED_DUPLICATE = "SKIPPED_DUPLICATE"
    SKIPPED_INVALID_AMOUNT = "SKIPPED_INVALID_AMOUNT"
    SKIPPED_INVALID_REQUEST = "SKIPPED_INVALID_REQUEST"
    SKIPPED_CONFLICT = "SKIPPED_CONFLICT"


@dataclass(frozen=True)
class DerivationLineResult:
    """Result for one rate line."""

    rate_line_id: UUID
    category_code: str
    support_item_code: str | None
    amount_cents: int
    outcome: DerivationOutcome
    quarantine: Quarantine | None = None
    budget_line_id: UUID | None = None
    available_cents: int | None = None


@dataclass(frozen=True)
class DerivationResult:
    """All rate line results for one ``derive()`` call, in processing order."""

    service_agreement_id: UUID
    plan_id: UUID
    lines: tuple[DerivationLineResult, ...] = field(default_factory=tuple)

    @property
    def created(self) -> list[Quarantine]:
        return [
            line.quarantine
            for line in self.lines
            if line.outcome is DerivationOutcome.CREATED and line.quarantine is not None
        ]

    @property
    def skipped(self) -> list[DerivationLineResult]:
        return [line for line in self.lines if line.outcome is not DerivationOutcome.CREATED]

    def count(self, outcome: DerivationOutcome) -> int:
        return sum(1 for line in self.lines if line.outcome is outcome)
