"""Kernel ORM models shared by every module."""

from plan_kernel.models.audit_log import AuditLogEntry
from plan_kernel.models.plan import (
    BudgetLine,
    FundingPeriod,
    PeriodBudget,
    Plan,
    PlanStatus,
)
from plan_kernel.models.provider import Provider
from plan_kernel.models.service_agreement import (
    RateLine,
    ServiceAgreement,
    ServiceAgreementStatus,
)

__all__ = [
    "AuditLogEntry",
    "BudgetLine",
    "FundingPeriod",
    "PeriodBudget",
    "Plan",
    "PlanStatus",
    "Provider",
    "RateLine",
    "ServiceAgreement",
    "ServiceAgreementStatus",
]
