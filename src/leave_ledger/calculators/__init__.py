"""Pure leave and pay calculations."""

from leave_ledger.calculators.balance import (
    BalanceProjection,
    LeaveBalanceSummary,
    compute_leave_summary,
    project_balance_after_change,
    select_leave_remaining,
)
from leave_ledger.calculators.context import SelectorContext
from leave_ledger.calculators.global_rate import calculate_global_daily_rate
from leave_ledger.calculators.leave_classifier import LeaveClassification, classify_leave
from leave_ledger.calculators.leave_value import LeaveDayValue, select_leave_day_value
from leave_ledger.calculators.pay_method_resolver import ResolvedPayMethod, resolve_leave_pay_method
from leave_ledger.calculators.rate_lookup import RateHistoryEntry, RateHistoryLookup

__all__ = [
    "BalanceProjection",
    "LeaveBalanceSummary",
    "compute_leave_summary",
    "project_balance_after_change",
    "select_leave_remaining",
    "SelectorContext",
    "calculate_global_daily_rate",
    "LeaveClassification",
    "classify_leave",
    "LeaveDayValue",
    "select_leave_day_value",
    "ResolvedPayMethod",
    "resolve_leave_pay_method",
    "RateHistoryEntry",
    "RateHistoryLookup",
]
