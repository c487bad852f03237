"""
Fund Quarantine Module (``plan_modules.quarantine``).

Responsibility
--------------
Earmarks ("quarantines") money on a participant's budget line for a
provider before an invoice exists, tracks draw-down as invoices are
approved, and never lets reservations plus actual spend exceed the
allocated amount.

Architecture position
---------------------
**Modules layer** -- DTOs, ORM, config, capacity checker, lifecycle
service, agreement deriver and read selectors over ``plan_kernel``.

Invariants enforced
-------------------
* ``allocated >= spent + sum(ACTIVE quarantined_cents)`` per budget line.
* ``0 <= used_cents <= quarantined_cents`` per quarantine.
* RELEASED and EXPIRED are terminal.

Failure modes
-------------
See ``plan_kernel.exceptions``.  Audit and event failures are logged only.
"""

from plan_modules.quarantine.capacity import (
    CapacityChecker,
    CapacityDecision,
    compute_available,
    evaluate_capacity,
)
from plan_modules.quarantine.config import QuarantineConfig
from plan_modules.quarantine.derivation import (
    AgreementQuarantineDeriver,
    derive_amount_cents,
)
from plan_modules.quarantine.models import (
    UNSET,
    CapacitySnapshot,
    CreateQuarantineRequest,
    DerivationLineResult,
    DerivationOutcome,
    DerivationResult,
    Quarantine,
    QuarantineStatus,
    UpdateQuarantineRequest,
)
from plan_modules.quarantine.orm import QuarantineModel
from plan_modules.quarantine.selectors import QuarantineSelector, remaining
from plan_modules.quarantine.service import QuarantineService

__all__ = [
    "UNSET",
    "AgreementQuarantineDeriver",
    "CapacityChecker",
    "CapacityDecision",
    "CapacitySnapshot",
    "CreateQuarantineRequest",
    "DerivationLineResult",
    "DerivationOutcome",
    "DerivationResult",
    "Quarantine",
    "QuarantineConfig",
    "QuarantineModel",
    "QuarantineSelector",
    "QuarantineService",
    "QuarantineStatus",
    "UpdateQuarantineRequest",
    "compute_available",
    "derive_amount_cents",
    "evaluate_capacity",
    "remaining",
]
