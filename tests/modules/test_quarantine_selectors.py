"""Tests for quarantine read queries."""

from uuid import uuid4

import pytest

from plan_kernel.exceptions import QuarantineNotFoundError
from plan_modules.quarantine.models import QuarantineStatus
from plan_modules.quarantine.selectors import remaining


class TestGetAndList:

    def test_get(self, quarantine_selector, make_quarantine, budget_line):
        q = make_quarantine(budget_line, 1_234)
        fetched = quarantine_selector.get(q.id)
        assert fetched.id == q.id
        assert fetched.quarantined_cents == 1_234
        assert fetched.status is QuarantineStatus.ACTIVE

    def test_get_unknown(self, quarantine_selector):
        with pytest.raises(QuarantineNotFoundError):
            quarantine_selector.get(uuid4())

    def test_list_newest_first(
        self, quarantine_selector, make_quarantine, budget_line, deterministic_clock,
    ):
        first = make_quarantine(budget_line, 100, support_item_code="A")
        deterministic_clock.advance(60)
        second = make_quarantine(budget_line, 100, support_item_code="B")
        deterministic_clock.advance(60)
        third = make_quarantine(budget_line, 100, support_item_code="C")

        listed = quarantine_selector.list(budget_line_id=budget_line.id)
        assert [q.id for q in listed] == [third.id, second.id, first.id]

    def test_list_filters(
        self, quarantine_service, quarantine_selector, make_quarantine, make_budget_line,
        other_provider, test_actor_id,
    ):
        line_a = make_budget_line("01")
        line_b = make_budget_line("02")
        qa = make_quarantine(line_a, 100)
        qb = make_quarantine(line_b, 100, provider_id=other_provider.id)
        qc = make_quarantine(line_b, 100)
        quarantine_service.release(qc.id, test_actor_id)

        assert [q.id for q in quarantine_selector.list(budget_line_id=line_a.id)] == [qa.id]
        assert [q.id for q in quarantine_selector.list(provider_id=other_provider.id)] == [qb.id]
        active_b = quarantine_selector.list(
            budget_line_id=line_b.id, status=QuarantineStatus.ACTIVE,
        )
        assert [q.id for q in active_b] == [qb.id]
        released = quarantine_selector.list(status=QuarantineStatus.RELEASED)
        assert [q.id for q in released] == [qc.id]

    def test_list_by_service_agreement(
        self, quarantine_selector, make_quarantine, budget_line, make_agreement,
    ):
        agreement = make_agreement([])
        linked = make_quarantine(budget_line, 100, service_agreement_id=agreement.id)
        make_quarantine(budget_line, 100)
        listed = quarantine_selector.list(service_agreement_id=agreement.id)
        assert [q.id for q in listed] == [linked.id]

    def test_list_empty(self, quarantine_selector, budget_line):
        assert quarantine_selector.list(budget_line_id=budget_line.id) == []


class TestGroupedByProvider:

    def test_groups_plan_quarantines_by_provider(
        self, quarantine_selector, make_quarantine, make_budget_line, test_provider,
        other_provider, other_plan, test_actor_id, session,
    ):
        line_a = make_budget_line("01")
        line_b = make_budget_line("02")
        foreign_line = make_budget_line("01", plan_id=other_plan.id)
        make_quarantine(line_a, 100)
        make_quarantine(line_b, 200)
        make_quarantine(line_a, 300, provider_id=other_provider.id)
        make_quarantine(foreign_line, 400)

        grouped = quarantine_selector.list_for_plan_grouped_by_provider(line_a.plan_id)
        assert set(grouped) == {test_provider.id, other_provider.id}
        assert sorted(q.quarantined_cents for q in grouped[test_provider.id]) == [100, 200]
        assert [q.quarantined_cents for q in grouped[other_provider.id]] == [300]

    def test_status_filter(
        self, quarantine_service, quarantine_selector, make_quarantine, budget_line,
        test_provider, test_actor_id,
    ):
        keep = make_quarantine(budget_line, 100)
        gone = make_quarantine(budget_line, 100)
        quarantine_service.release(gone.id, test_actor_id)

        grouped = quarantine_selector.list_for_plan_grouped_by_provider(
            budget_line.plan_id, status=QuarantineStatus.ACTIVE,
        )
        assert [q.id for q in grouped[test_provider.id]] == [keep.id]

    def test_empty_plan(self, quarantine_selector, test_plan):
        assert quarantine_selector.list_for_plan_grouped_by_provider(test_plan.id) == {}


class TestCapacitySummary:

    def test_summary_per_budget_line(
        self, quarantine_service, quarantine_selector, make_quarantine, make_budget_line,
        other_provider, test_actor_id,
    ):
        line_a = make_budget_line("01", allocated_cents=10_000, spent_cents=1_000)
        make_budget_line("02", allocated_cents=5_000)
        make_quarantine(line_a, 2_000)
        make_quarantine(line_a, 1_000, provider_id=other_provider.id)
        released = make_quarantine(line_a, 500, support_item_code="R")
        quarantine_service.release(released.id, test_actor_id)

        summary = quarantine_selector.capacity_summary(line_a.plan_id)
        assert [s.category_code for s in summary] == ["01", "02"]

        a, b = summary
        assert (a.allocated_cents, a.spent_cents, a.reserved_cents, a.available_cents) == (
            10_000, 1_000, 3_000, 6_000,
        )
        assert (b.allocated_cents, b.spent_cents, b.reserved_cents, b.available_cents) == (
            5_000, 0, 0, 5_000,
        )

    def test_summary_matches_checker_snapshot(
        self, quarantine_service, quarantine_selector, make_quarantine, budget_line,
    ):
        make_quarantine(budget_line, 2_500)
        (summary,) = quarantine_selector.capacity_summary(budget_line.plan_id)
        assert summary == quarantine_service.capacity.snapshot(budget_line.id)


class TestRemaining:

    def test_remaining_after_draw_down(
        self, quarantine_service, quarantine_selector, make_quarantine, budget_line, test_actor_id,
    ):
        q = make_quarantine(budget_line, 1_000)
        drawn = quarantine_service.draw_down(q.id, 350, test_actor_id)
        assert remaining(drawn) == 650
        assert quarantine_selector.remaining(drawn) == 650
        assert drawn.remaining_cents == 650
