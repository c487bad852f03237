"""
Pure capacity and rounding arithmetic.

    available = allocated - spent - sum(ACTIVE quarantined)
    accept   iff available >= proposed
"""

from decimal import ROUND_DOWN, Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from plan_kernel.db.types import is_cents, percent_of, round_cents
from plan_modules.quarantine.capacity import compute_available, evaluate_capacity
from plan_modules.quarantine.models import CapacitySnapshot


class TestComputeAvailable:

    def test_untouched_line(self):
        assert compute_available(10_000, 0, 0) == 10_000

    def test_spend_and_reservations_both_count(self):
        assert compute_available(10_000, 2_500, 4_000) == 3_500

    def test_can_go_negative(self):
        assert compute_available(1_000, 900, 200) == -100


class TestEvaluateCapacity:

    @pytest.mark.parametrize(
        "reserved,proposed,accepted",
        [
            (0, 10_000, True),
            (0, 10_001, False),
            (9_000, 1_000, True),
            (9_000, 1_500, False),
            (10_000, 0, True),
        ],
    )
    def test_ceiling(self, reserved, proposed, accepted):
        decision = evaluate_capacity(10_000, 0, reserved, proposed)
        assert decision.accepted is accepted
        assert decision.requested_cents == proposed
        assert decision.available_cents == 10_000 - reserved

    def test_overspent_line_rejects_everything_positive(self):
        assert not evaluate_capacity(1_000, 1_200, 0, 1).accepted


class TestCapacitySnapshot:

    def test_can_accommodate(self):
        snapshot = CapacitySnapshot(
            budget_line_id=uuid4(),
            category_code="01",
            allocated_cents=10_000,
            spent_cents=1_000,
            reserved_cents=8_000,
            available_cents=1_000,
        )
        assert snapshot.can_accommodate(1_000)
        assert not snapshot.can_accommodate(1_001)
        assert snapshot.reservation_version == 0


class TestRounding:

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("0.4", 0),
            ("0.5", 1),
            ("1.5", 2),
            ("2.5", 3),
            ("499.5", 500),
            ("-0.5", -1),
            ("12500", 12_500),
        ],
    )
    def test_round_half_up(self, value, expected):
        assert round_cents(Decimal(value)) == expected

    def test_explicit_rounding_mode(self):
        assert round_cents(Decimal("2.9"), rounding=ROUND_DOWN) == 2

    def test_returns_int(self):
        assert type(round_cents(Decimal("10.0"))) is int

    @pytest.mark.parametrize(
        "part,whole,expected",
        [
            (7_000, 10_000, 70),
            (8_000, 10_000, 80),
            (7_950, 10_000, 80),
            (7_949, 10_000, 79),
            (10_000, 10_000, 100),
            (1, 3, 33),
            (2, 3, 67),
        ],
    )
    def test_percent_of(self, part, whole, expected):
        assert percent_of(part, whole) == expected

    def test_percent_of_zero_whole(self):
        with pytest.raises(ZeroDivisionError):
            percent_of(1, 0)


class TestIsCents:

    @pytest.mark.parametrize("value", [0, 1, -5, 10**15])
    def test_ints(self, value):
        assert is_cents(value)

    @pytest.mark.parametrize("value", [True, False, 1.0, Decimal("1"), "1", None])
    def test_non_ints(self, value):
        assert not is_cents(value)


class TestCapacityProperties:
    """Randomised checks of the ceiling rule."""

    @settings(max_examples=200)
    @given(
        allocated=st.integers(min_value=0, max_value=10**9),
        spent=st.integers(min_value=0, max_value=10**9),
        reserved=st.integers(min_value=0, max_value=10**9),
        proposed=st.integers(min_value=1, max_value=10**9),
    )
    def test_accepted_never_exceeds_allocation(self, allocated, spent, reserved, proposed):
        decision = evaluate_capacity(allocated, spent, reserved, proposed)
        if decision.accepted:
            assert spent + reserved + proposed <= allocated
        else:
            assert spent + reserved + proposed > allocated

    @given(
        part=st.integers(min_value=0, max_value=10**9),
        whole=st.integers(min_value=1, max_value=10**9),
    )
    def test_percent_of_within_half_point(self, part, whole):
        exact = Decimal(part) * 100 / Decimal(whole)
        assert abs(Decimal(percent_of(part, whole)) - exact) <= Decimal("0.5")
