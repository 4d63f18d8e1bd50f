"""Organization leave policies.

Policies are explicit, immutable objects handed to the engine by the caller.

Pattern:
    service = TimeEntryService(
        ...,
        leave_policy=LeavePolicy.from_mapping(org_settings["leave_policy"]),
        leave_pay_policy=LeavePayPolicy.from_mapping(org_settings["leave_pay_policy"]),
    )

Rules:
    1. No env vars. Policies come from the organization settings blob.
    2. Loosely-typed blobs are sanitized on the way in, never rejected.
    3. Immutable after creation (frozen dataclasses).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping

logger = logging.getLogger(__name__)

DEFAULT_LEGAL_INFO_URL = "https://www.gov.il/he/departments/guides/annual_leave"


class LeavePayMethod(str, Enum):
    """How the monetary value of a paid leave day is computed."""

    LEGAL = "legal"
    AVG_HOURLY_X_AVG_DAY_HOURS = "avg_hourly_x_avg_day_hours"
    FIXED_RATE = "fixed_rate"


SYSTEM_DEFAULT_PAY_METHOD = LeavePayMethod.LEGAL

PAY_METHOD_DESCRIPTIONS: dict[LeavePayMethod, str] = {
    LeavePayMethod.LEGAL: "Average daily earnings over the lookback window",
    LeavePayMethod.AVG_HOURLY_X_AVG_DAY_HOURS: "Average hourly earnings times average hours per worked day",
    LeavePayMethod.FIXED_RATE: "Fixed daily rate",
}


def to_decimal(value: Any) -> Decimal | None:
    """Parse a loosely-typed number, returning None when it is not one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        value = str(value)
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        try:
            parsed = Decimal(value)
        except InvalidOperation:
            return None
        return parsed if parsed.is_finite() else None
    return None


def to_date(value: Any) -> date | None:
    """Parse an ISO date (or the date part of an ISO timestamp)."""
    if value is None:
        return None
    if isinstance(value, date):
        return value
    if isinstance(value, str) and len(value) >= 10:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def _load_blob(value: Any, label: str) -> Mapping[str, Any]:
    if not value:
        return {}
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            logger.warning("Failed to parse %s JSON", label)
            return {}
    return value if isinstance(value, Mapping) else {}


@dataclass(frozen=True)
class HolidayRule:
    """
    A named holiday range.

    Attributes:
        type: Leave kind the holiday maps to (system_paid, half_day, ...).
        recurrence: "yearly" repeats the month/day range every year;
            None means the dates are absolute.
    """

    id: str
    start_date: date
    end_date: date
    name: str = ""
    type: str = "employee_paid"
    recurrence: str | None = None
    half_day: bool = False

    def __post_init__(self) -> None:
        if self.end_date < self.start_date:
            raise ValueError("holiday end_date must not precede start_date")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], index: int = 0) -> HolidayRule | None:
        """Normalize a stored rule; returns None when it has no usable date."""
        start = to_date(raw.get("start_date") or raw.get("date"))
        end = to_date(raw.get("end_date") or raw.get("date")) or start
        if start is None or end is None:
            return None
        rule_type = raw.get("type") or "employee_paid"
        return cls(
            id=str(raw.get("id") or f"rule-{index}"),
            name=raw.get("name") or "",
            type=rule_type,
            start_date=start,
            end_date=max(start, end),
            recurrence=raw.get("recurrence") or None,
            half_day=bool(raw.get("half_day")) or rule_type == "half_day",
        )

    def matches(self, target: date) -> bool:
        """Check if the rule covers the target date."""
        if self.recurrence == "yearly":
            try:
                start = self.start_date.replace(year=target.year)
                end = self.end_date.replace(year=target.year)
            except ValueError:
                # Feb 29 in a non-leap year
                return False
            return start <= target <= end
        return self.start_date <= target <= self.end_date


@dataclass(frozen=True)
class LeavePolicy:
    """
    Leave accrual and usage policy.

    Attributes:
        allow_half_day: Enables the half_day leave kind.
        allow_negative_balance: Allows usage below zero, down to the floor.
        negative_floor_days: Lowest permitted balance. Always normalized
            to a value <= 0 (a positive input is negated).
        carryover_enabled: Carries each year's closing balance into the next.
        carryover_max_days: Upper cap on carried days.
        annual_quota_days: Org default quota for employees without one.
    """

    allow_half_day: bool = False
    allow_negative_balance: bool = False
    negative_floor_days: Decimal = Decimal("0")
    carryover_enabled: bool = False
    carryover_max_days: Decimal = Decimal("0")
    annual_quota_days: Decimal | None = None
    holiday_rules: tuple[HolidayRule, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        floor = Decimal(self.negative_floor_days)
        object.__setattr__(self, "negative_floor_days", floor if floor <= 0 else -abs(floor))
        object.__setattr__(self, "carryover_max_days", max(Decimal("0"), Decimal(self.carryover_max_days)))

    @property
    def negative_floor(self) -> Decimal:
        """Lowest balance a usage may reach when negatives are allowed."""
        return self.negative_floor_days

    @classmethod
    def from_mapping(cls, value: Any) -> LeavePolicy:
        """Build a policy from a settings dict or JSON string."""
        raw = _load_blob(value, "leave policy")
        rules = raw.get("holiday_rules")
        holiday_rules: list[HolidayRule] = []
        if isinstance(rules, list):
            for index, item in enumerate(rules):
                if isinstance(item, Mapping):
                    rule = HolidayRule.from_mapping(item, index)
                    if rule is not None:
                        holiday_rules.append(rule)
        quota = to_decimal(raw.get("annual_quota_days"))
        return cls(
            allow_half_day=bool(raw.get("allow_half_day")),
            allow_negative_balance=bool(raw.get("allow_negative_balance")),
            negative_floor_days=to_decimal(raw.get("negative_floor_days")) or Decimal("0"),
            carryover_enabled=bool(raw.get("carryover_enabled")),
            carryover_max_days=to_decimal(raw.get("carryover_max_days")) or Decimal("0"),
            annual_quota_days=quota if quota is not None and quota >= 0 else None,
            holiday_rules=tuple(holiday_rules),
        )


@dataclass(frozen=True)
class LeavePayPolicy:
    """
    How leave days are valued.

    Attributes:
        default_method: Org-wide method unless an employee overrides it.
        lookback_months: Size of the earnings history window.
        legal_allow_12m_if_better: For the legal method, also evaluate a
            12 month window and keep the higher value.
        fixed_rate_default: Day value for fixed_rate when the employee has none.
        fallback_day_hours: Hours used to turn an hourly rate into a day
            value when history is insufficient.
    """

    default_method: LeavePayMethod = SYSTEM_DEFAULT_PAY_METHOD
    lookback_months: int = 3
    legal_allow_12m_if_better: bool = False
    fixed_rate_default: Decimal | None = None
    fallback_day_hours: Decimal = Decimal("8")
    legal_info_url: str = DEFAULT_LEGAL_INFO_URL

    def __post_init__(self) -> None:
        if self.lookback_months <= 0:
            raise ValueError("lookback_months must be positive")
        if self.fixed_rate_default is not None and self.fixed_rate_default < 0:
            raise ValueError("fixed_rate_default must be >= 0")
        if self.fallback_day_hours <= 0:
            raise ValueError("fallback_day_hours must be positive")

    @classmethod
    def from_mapping(cls, value: Any) -> LeavePayPolicy:
        """Build a policy from a settings dict or JSON string, sanitizing each field."""
        raw = _load_blob(value, "leave pay policy")
        lookback = to_decimal(raw.get("lookback_months"))
        fixed_rate = to_decimal(raw.get("fixed_rate_default"))
        day_hours = to_decimal(raw.get("fallback_day_hours"))
        info_url = raw.get("legal_info_url")
        return cls(
            default_method=parse_pay_method(raw.get("default_method")) or SYSTEM_DEFAULT_PAY_METHOD,
            lookback_months=int(lookback.to_integral_value()) if lookback is not None and lookback > 0 else 3,
            legal_allow_12m_if_better=bool(raw.get("legal_allow_12m_if_better")),
            fixed_rate_default=fixed_rate if fixed_rate is not None and fixed_rate >= 0 else None,
            fallback_day_hours=day_hours if day_hours is not None and day_hours > 0 else Decimal("8"),
            legal_info_url=info_url.strip() if isinstance(info_url, str) and info_url.strip() else DEFAULT_LEGAL_INFO_URL,
        )


def parse_pay_method(value: Any) -> LeavePayMethod | None:
    """Return the pay method for a recognized value, else None."""
    if isinstance(value, LeavePayMethod):
        return value
    if not isinstance(value, str):
        return None
    try:
        return LeavePayMethod(value)
    except ValueError:
        return None


def find_holiday_for_date(policy: LeavePolicy, target: date) -> HolidayRule | None:
    """Return the first holiday rule covering the date, if any."""
    for rule in policy.holiday_rules:
        if rule.matches(target):
            return rule
    return None
