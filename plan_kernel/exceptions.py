"""
Typed Exception Hierarchy for the Plan Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the reservation ledger must react differently to "the budget line
is gone", "the line is full" and "someone else changed it first".  Matching on
message text is fragile, so every error here:

  1. Has its own class (catch by type, not message)
  2. Carries a CODE class attribute (machine-readable, API-safe)
  3. Exposes the relevant identifiers and amounts as attributes

Example:
    try:
        service.create(request, actor_id)
    except InsufficientCapacityError as e:
        return {"code": e.code, "available_cents": e.available_cents}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PlanKernelError (base)
    |
    +-- NotFoundError
    |   +-- BudgetLineNotFoundError
    |   +-- QuarantineNotFoundError
    |   +-- ServiceAgreementNotFoundError
    |   +-- ProviderNotFoundError
    |   +-- FundingPeriodNotFoundError
    |
    +-- QuarantineError
    |   +-- QuarantineNotActiveError
    |   +-- InsufficientCapacityError
    |   +-- DrawDownExceedsQuarantineError
    |   +-- DuplicateQuarantineError
    |   +-- QuarantineValidationError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- AuditError
        +-- AuditChainBrokenError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                          | When Raised
-------------|-------------------------------|------------------------------------
Not found    | BUDGET_LINE_NOT_FOUND         | Budget line id does not exist
             | NOT_FOUND                     | Quarantine id does not exist
             | SERVICE_AGREEMENT_NOT_FOUND   | Agreement id does not exist
             | PROVIDER_NOT_FOUND            | Provider id does not exist
             | FUNDING_PERIOD_NOT_FOUND      | Funding period id does not exist
-------------|-------------------------------|------------------------------------
Quarantine   | QUARANTINE_NOT_ACTIVE         | Mutating a RELEASED/EXPIRED record
             | INSUFFICIENT_BUDGET_CAPACITY  | Reservation exceeds headroom
             | DRAW_DOWN_EXCEEDS_QUARANTINE  | used_cents would pass the ceiling
             | DUPLICATE_QUARANTINE          | Same line + provider + item exists
             | VALIDATION_ERROR              | Malformed amounts or fields
-------------|-------------------------------|------------------------------------
Concurrency  | OPTIMISTIC_LOCK_CONFLICT      | Concurrent modification detected
-------------|-------------------------------|------------------------------------
Immutability | IMMUTABILITY_VIOLATION        | Modifying a terminal record
-------------|-------------------------------|------------------------------------
Audit        | AUDIT_CHAIN_BROKEN            | Hash chain validation failed

===============================================================================
"""


class PlanKernelError(Exception):
    """
    Base exception for all plan kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PLAN_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(PlanKernelError):
    """Base exception for missing referenced records."""

    code: str = "NOT_FOUND"


class BudgetLineNotFoundError(NotFoundError):
    """Budget line with given ID (or plan + category) was not found."""

    code: str = "BUDGET_LINE_NOT_FOUND"

    def __init__(self, budget_line_id: str):
        self.budget_line_id = budget_line_id
        super().__init__(f"Budget line not found: {budget_line_id}")


class QuarantineNotFoundError(NotFoundError):
    """Quarantine with given ID was not found."""

    code: str = "NOT_FOUND"

    def __init__(self, quarantine_id: str):
        self.quarantine_id = quarantine_id
        super().__init__(f"Quarantine not found: {quarantine_id}")


class ServiceAgreementNotFoundError(NotFoundError):
    """Service agreement with given ID was not found."""

    code: str = "SERVICE_AGREEMENT_NOT_FOUND"

    def __init__(self, service_agreement_id: str):
        self.service_agreement_id = service_agreement_id
        super().__init__(f"Service agreement not found: {service_agreement_id}")


class ProviderNotFoundError(NotFoundError):
    """Provider with given ID was not found."""

    code: str = "PROVIDER_NOT_FOUND"

    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        super().__init__(f"Provider not found: {provider_id}")


class FundingPeriodNotFoundError(NotFoundError):
    """Funding period with given ID was not found."""

    code: str = "FUNDING_PERIOD_NOT_FOUND"

    def __init__(self, funding_period_id: str):
        self.funding_period_id = funding_period_id
        super().__init__(f"Funding period not found: {funding_period_id}")


# Quarantine-related exceptions


class QuarantineError(PlanKernelError):
    """Base exception for quarantine lifecycle errors."""

    code: str = "QUARANTINE_ERROR"


class QuarantineNotActiveError(QuarantineError):
    """Attempted to mutate a quarantine that is RELEASED or EXPIRED."""

    code: str = "QUARANTINE_NOT_ACTIVE"

    def __init__(self, quarantine_id: str, status: str):
        self.quarantine_id = quarantine_id
        self.status = status
        super().__init__(
            f"Quarantine {quarantine_id} is not active (status: {status})"
        )


class InsufficientCapacityError(QuarantineError):
    """
    Requested reservation exceeds the remaining headroom on a budget line.

    headroom = allocated - spent - sum(active reservations)
    """

    code: str = "INSUFFICIENT_BUDGET_CAPACITY"

    def __init__(
        self,
        budget_line_id: str,
        requested_cents: int,
        available_cents: int,
    ):
        self.budget_line_id = budget_line_id
        self.requested_cents = requested_cents
        self.available_cents = available_cents
        super().__init__(
            f"Insufficient capacity on budget line {budget_line_id}: "
            f"requested {requested_cents}, available {available_cents}"
        )


class DrawDownExceedsQuarantineError(QuarantineError):
    """Draw-down would push used_cents above quarantined_cents."""

    code: str = "DRAW_DOWN_EXCEEDS_QUARANTINE"

    def __init__(
        self,
        quarantine_id: str,
        quarantined_cents: int,
        used_cents: int,
        amount_cents: int,
    ):
        self.quarantine_id = quarantine_id
        self.quarantined_cents = quarantined_cents
        self.used_cents = used_cents
        self.amount_cents = amount_cents
        super().__init__(
            f"Draw-down of {amount_cents} on quarantine {quarantine_id} "
            f"exceeds ceiling: used {used_cents} of {quarantined_cents}"
        )


class DuplicateQuarantineError(QuarantineError):
    """A quarantine already exists for this budget line, provider and item."""

    code: str = "DUPLICATE_QUARANTINE"

    def __init__(
        self,
        budget_line_id: str,
        provider_id: str,
        support_item_code: str | None,
    ):
        self.budget_line_id = budget_line_id
        self.provider_id = provider_id
        self.support_item_code = support_item_code
        super().__init__(
            f"Quarantine already exists for budget line {budget_line_id}, "
            f"provider {provider_id}, support item {support_item_code}"
        )


class QuarantineValidationError(QuarantineError):
    """Request failed field validation (amounts, lengths, plan scoping)."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Concurrency-related exceptions


class ConcurrencyError(PlanKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability-related exceptions


class ImmutabilityError(PlanKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Released/expired quarantines and audit log entries are immutable.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Audit-related exceptions


class AuditError(PlanKernelError):
    """Base exception for audit-related errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(
        self,
        audit_entry_id: str,
        expected_hash: str | None,
        actual_hash: str | None,
    ):
        self.audit_entry_id = audit_entry_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at entry {audit_entry_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )
