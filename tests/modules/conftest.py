"""
Shared fixtures for module tests.

Provides the parent records that quarantine foreign keys need: a plan,
budget lines, providers, funding periods and service agreements.  IDs of
the fixed records are deterministic.

DESIGN RULE: Every fixture is opt-in.  No autouse.  Fixture data is
committed (releasing the per-test savepoint) so a service rollback inside
a test never takes the parent rows with it.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

import pytest

from plan_kernel.models.plan import BudgetLine, FundingPeriod, Plan
from plan_kernel.models.provider import Provider
from plan_kernel.models.service_agreement import (
    RateLine,
    ServiceAgreement,
    ServiceAgreementStatus,
)
from plan_modules.quarantine.config import QuarantineConfig
from plan_modules.quarantine.derivation import AgreementQuarantineDeriver
from plan_modules.quarantine.selectors import QuarantineSelector
from plan_modules.quarantine.service import QuarantineService

# ---------------------------------------------------------------------------
# Deterministic parent entity IDs
# ---------------------------------------------------------------------------

TEST_PARTICIPANT_ID = UUID("00000000-0000-4000-a000-000000000001")
TEST_PLAN_ID = UUID("00000000-0000-4000-a000-000000000010")
TEST_OTHER_PLAN_ID = UUID("00000000-0000-4000-a000-000000000011")
TEST_PROVIDER_ID = UUID("00000000-0000-4000-a000-000000000020")
TEST_OTHER_PROVIDER_ID = UUID("00000000-0000-4000-a000-000000000021")
TEST_FUNDING_PERIOD_ID = UUID("00000000-0000-4000-a000-000000000030")
TEST_OTHER_PLAN_PERIOD_ID = UUID("00000000-0000-4000-a000-000000000031")


def _add(session, *objs):
    session.add_all(objs)
    session.commit()
    return objs[0] if len(objs) == 1 else objs


# ---------------------------------------------------------------------------
# Plans and budget lines
# ---------------------------------------------------------------------------


@pytest.fixture
def test_plan(session, test_actor_id) -> Plan:
    return _add(
        session,
        Plan(
            id=TEST_PLAN_ID,
            participant_id=TEST_PARTICIPANT_ID,
            start_date=date(2024, 7, 1),
            end_date=date(2025, 6, 30),
            created_by_id=test_actor_id,
        ),
    )


@pytest.fixture
def other_plan(session, test_actor_id) -> Plan:
    return _add(
        session,
        Plan(
            id=TEST_OTHER_PLAN_ID,
            participant_id=TEST_PARTICIPANT_ID,
            start_date=date(2023, 7, 1),
            end_date=date(2024, 6, 30),
            created_by_id=test_actor_id,
        ),
    )


@pytest.fixture
def make_budget_line(session, test_plan, test_actor_id):
    """Factory: ``make_budget_line("CORE", allocated_cents=10_000)``."""

    def _make(
        category_code: str = "01",
        allocated_cents: int = 10_000,
        spent_cents: int = 0,
        plan_id: UUID | None = None,
    ) -> BudgetLine:
        return _add(
            session,
            BudgetLine(
                plan_id=plan_id or test_plan.id,
                category_code=category_code,
                category_name=f"Category {category_code}",
                allocated_cents=allocated_cents,
                spent_cents=spent_cents,
                created_by_id=test_actor_id,
            ),
        )

    return _make


@pytest.fixture
def budget_line(make_budget_line) -> BudgetLine:
    """Budget line with allocated 10,000 cents and nothing spent."""
    return make_budget_line("01", allocated_cents=10_000)


# ---------------------------------------------------------------------------
# Providers and funding periods
# ---------------------------------------------------------------------------


@pytest.fixture
def test_provider(session, test_actor_id) -> Provider:
    return _add(
        session,
        Provider(
            id=TEST_PROVIDER_ID,
            name="Riverbend Therapy",
            abn="51824753556",
            created_by_id=test_actor_id,
        ),
    )


@pytest.fixture
def other_provider(session, test_actor_id) -> Provider:
    return _add(
        session,
        Provider(
            id=TEST_OTHER_PROVIDER_ID,
            name="Harbour Support Co",
            abn="33051775556",
            created_by_id=test_actor_id,
        ),
    )


@pytest.fixture
def funding_period(session, test_plan, test_actor_id) -> FundingPeriod:
    return _add(
        session,
        FundingPeriod(
            id=TEST_FUNDING_PERIOD_ID,
            plan_id=test_plan.id,
            start_date=date(2024, 7, 1),
            end_date=date(2024, 9, 30),
            label="Q1",
            created_by_id=test_actor_id,
        ),
    )


@pytest.fixture
def other_plan_period(session, other_plan, test_actor_id) -> FundingPeriod:
    return _add(
        session,
        FundingPeriod(
            id=TEST_OTHER_PLAN_PERIOD_ID,
            plan_id=other_plan.id,
            start_date=date(2023, 7, 1),
            end_date=date(2023, 9, 30),
            label="Q1 previous plan",
            created_by_id=test_actor_id,
        ),
    )


# ---------------------------------------------------------------------------
# Service agreements
# ---------------------------------------------------------------------------


@pytest.fixture
def make_agreement(session, test_provider, test_actor_id):
    """
    Factory: ``make_agreement([{"category_code": "01", "agreed_rate_cents": 5000}])``.

    Each dict may also carry ``support_item_code`` and ``max_quantity``.
    """

    def _make(rate_lines: list[dict], provider_id: UUID | None = None) -> ServiceAgreement:
        agreement = ServiceAgreement(
            agreement_ref="SA-0001",
            participant_id=TEST_PARTICIPANT_ID,
            provider_id=provider_id or test_provider.id,
            start_date=date(2024, 7, 1),
            end_date=date(2025, 6, 30),
            status=ServiceAgreementStatus.ACTIVE.value,
            created_by_id=test_actor_id,
        )
        session.add(agreement)
        session.flush()
        for entry in rate_lines:
            max_quantity = entry.get("max_quantity")
            session.add(
                RateLine(
                    agreement_id=agreement.id,
                    category_code=entry["category_code"],
                    category_name=f"Category {entry['category_code']}",
                    support_item_code=entry.get("support_item_code"),
                    agreed_rate_cents=entry["agreed_rate_cents"],
                    max_quantity=Decimal(max_quantity) if max_quantity is not None else None,
                    unit_type=entry.get("unit_type", "H"),
                    created_by_id=test_actor_id,
                )
            )
        session.commit()
        return agreement

    return _make


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture
def quarantine_config() -> QuarantineConfig:
    return QuarantineConfig.with_defaults()


@pytest.fixture
def quarantine_service(
    session, auditor_service, event_bus, quarantine_config, deterministic_clock
) -> QuarantineService:
    return QuarantineService(
        session,
        auditor=auditor_service,
        event_publisher=event_bus,
        config=quarantine_config,
        clock=deterministic_clock,
    )


@pytest.fixture
def deriver(session, quarantine_service) -> AgreementQuarantineDeriver:
    return AgreementQuarantineDeriver(session, quarantine_service)


@pytest.fixture
def quarantine_selector(session) -> QuarantineSelector:
    return QuarantineSelector(session)


@pytest.fixture
def make_quarantine(quarantine_service, test_provider, test_actor_id):
    """Factory creating an ACTIVE quarantine through the service."""
    from plan_modules.quarantine.models import CreateQuarantineRequest

    def _make(budget_line, quarantined_cents: int, provider_id: UUID | None = None,
              support_item_code: str | None = None, **kwargs):
        return quarantine_service.create(
            CreateQuarantineRequest(
                budget_line_id=budget_line.id,
                provider_id=provider_id or test_provider.id,
                quarantined_cents=quarantined_cents,
                support_item_code=support_item_code,
                **kwargs,
            ),
            test_actor_id,
        )

    return _make
