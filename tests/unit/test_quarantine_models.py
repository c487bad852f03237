"""Tests for the frozen quarantine value objects."""

import dataclasses
from uuid import uuid4

import pytest

from plan_modules.quarantine.models import (
    UNSET,
    DerivationLineResult,
    DerivationOutcome,
    DerivationResult,
    Quarantine,
    QuarantineStatus,
    UpdateQuarantineRequest,
)


def _quarantine(**overrides) -> Quarantine:
    values = {
        "id": uuid4(),
        "budget_line_id": uuid4(),
        "provider_id": uuid4(),
        "quarantined_cents": 10_000,
        "used_cents": 2_500,
        "status": QuarantineStatus.ACTIVE,
        "created_by_id": uuid4(),
    }
    values.update(overrides)
    return Quarantine(**values)


class TestQuarantineStatus:

    def test_only_active_reserves(self):
        assert QuarantineStatus.ACTIVE.is_reserving
        assert not QuarantineStatus.RELEASED.is_reserving
        assert not QuarantineStatus.EXPIRED.is_reserving

    def test_string_values(self):
        assert QuarantineStatus("RELEASED") is QuarantineStatus.RELEASED
        assert QuarantineStatus.ACTIVE == "ACTIVE"


class TestQuarantine:

    def test_remaining(self):
        assert _quarantine().remaining_cents == 7_500

    def test_is_active(self):
        assert _quarantine().is_active
        assert not _quarantine(status=QuarantineStatus.RELEASED).is_active

    def test_frozen(self):
        q = _quarantine()
        with pytest.raises(dataclasses.FrozenInstanceError):
            q.used_cents = 0


class TestUpdateRequest:

    def test_nothing_supplied(self):
        assert UpdateQuarantineRequest().supplied_fields() == {}

    def test_only_supplied_fields(self):
        request = UpdateQuarantineRequest(quarantined_cents=500)
        assert request.supplied_fields() == {"quarantined_cents": 500}
        assert request.notes is UNSET

    def test_none_is_supplied(self):
        request = UpdateQuarantineRequest(support_item_code=None, notes=None)
        assert request.supplied_fields() == {"support_item_code": None, "notes": None}


class TestDerivationResult:

    def _line(self, outcome, quarantine=None):
        return DerivationLineResult(
            rate_line_id=uuid4(),
            category_code="01",
            support_item_code=None,
            amount_cents=100,
            outcome=outcome,
            quarantine=quarantine,
        )

    def test_created_and_skipped(self):
        q = _quarantine()
        result = DerivationResult(
            service_agreement_id=uuid4(),
            plan_id=uuid4(),
            lines=(
                self._line(DerivationOutcome.CREATED, q),
                self._line(DerivationOutcome.SKIPPED_NO_CATEGORY),
                self._line(DerivationOutcome.SKIPPED_DUPLICATE),
                self._line(DerivationOutcome.SKIPPED_NO_CATEGORY),
            ),
        )
        assert result.created == [q]
        assert [line.outcome for line in result.skipped] == [
            DerivationOutcome.SKIPPED_NO_CATEGORY,
            DerivationOutcome.SKIPPED_DUPLICATE,
            DerivationOutcome.SKIPPED_NO_CATEGORY,
        ]
        assert result.count(DerivationOutcome.SKIPPED_NO_CATEGORY) == 2
        assert result.count(DerivationOutcome.SKIPPED_INSUFFICIENT_CAPACITY) == 0

    def test_empty(self):
        result = DerivationResult(service_agreement_id=uuid4(), plan_id=uuid4())
        assert result.lines == ()
        assert result.created == []
