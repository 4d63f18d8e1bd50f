"""Leave pay method resolution."""

from __future__ import annotations

from dataclasses import dataclass

from leave_ledger.calculators.types import Employee
from leave_ledger.policy import (
    PAY_METHOD_DESCRIPTIONS,
    SYSTEM_DEFAULT_PAY_METHOD,
    LeavePayMethod,
    LeavePayPolicy,
    parse_pay_method,
)


@dataclass(frozen=True)
class ResolvedPayMethod:
    """Effective leave pay method for one employee."""

    method: LeavePayMethod
    lookback_months: int
    legal_allow_12m_if_better: bool
    override_applied: bool
    source: str  # employee / policy / system
    description: str


def resolve_leave_pay_method(
    employee: Employee | None,
    policy: LeavePayPolicy | None = None,
) -> ResolvedPayMethod:
    """Resolve the effective pay method.

    Priority:
    1. Employee override, when it names a recognized method
    2. Policy default
    3. System default (legal) when the policy default is unusable

    ``override_applied`` is only True when the override differs from the
    policy default.
    """
    policy = policy or LeavePayPolicy()
    default_method = parse_pay_method(policy.default_method)
    source = "policy"
    if default_method is None:
        default_method = SYSTEM_DEFAULT_PAY_METHOD
        source = "system"

    override = parse_pay_method(employee.leave_pay_method) if employee else None
    method = override or default_method
    if override is not None and override != default_method:
        source = "employee"

    return ResolvedPayMethod(
        method=method,
        lookback_months=policy.lookback_months,
        legal_allow_12m_if_better=policy.legal_allow_12m_if_better,
        override_applied=override is not None and override != default_method,
        source=source,
        description=PAY_METHOD_DESCRIPTIONS[method],
    )
