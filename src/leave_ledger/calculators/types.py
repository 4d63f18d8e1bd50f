"""Type definitions for the time entry and leave calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

# Rate lookups for employees that are not billed per service use this id.
GENERIC_RATE_SERVICE_ID = "00000000-0000-0000-0000-000000000000"

ZERO = Decimal("0")
ONE = Decimal("1")
HALF = Decimal("0.5")
CENTS = Decimal("0.01")


class EmployeeType(str, Enum):
    """How an employee is paid for work."""

    HOURLY = "hourly"
    GLOBAL = "global"
    INSTRUCTOR = "instructor"


class EntryType(str, Enum):
    """Persisted WorkSession entry types."""

    HOURS = "hours"
    SESSION = "session"
    LEAVE_SYSTEM_PAID = "leave_system_paid"
    LEAVE_EMPLOYEE_PAID = "leave_employee_paid"
    LEAVE_UNPAID = "leave_unpaid"
    LEAVE_HALF_DAY = "leave_half_day"
    ADJUSTMENT = "adjustment"

    @property
    def is_leave(self) -> bool:
        return self.value.startswith("leave_")

    @property
    def is_work(self) -> bool:
        return self in (EntryType.HOURS, EntryType.SESSION)


class LeaveKind(str, Enum):
    """Leave kinds accepted from callers."""

    EMPLOYEE_PAID = "employee_paid"
    SYSTEM_PAID = "system_paid"
    UNPAID = "unpaid"
    HOLIDAY_UNPAID = "holiday_unpaid"
    VACATION_UNPAID = "vacation_unpaid"
    HALF_DAY = "half_day"
    MIXED = "mixed"


class RateCalculationMethod(str, Enum):
    """Instructor service billing."""

    PER_SESSION = "per_session"
    PER_STUDENT = "per_student"


@dataclass(frozen=True)
class Employee:
    """Employee facts the engine reads. Owned by the caller."""

    id: str
    employee_type: EmployeeType
    start_date: date | None = None
    current_rate: Decimal | None = None
    annual_leave_days: Decimal | None = None
    leave_pay_method: str | None = None
    leave_fixed_day_rate: Decimal | None = None
    working_days: tuple[str, ...] = ("SUN", "MON", "TUE", "WED", "THU")
    is_active: bool = True


@dataclass(frozen=True)
class Service:
    """Instructor service definition."""

    id: str
    name: str = ""
    duration_minutes: int | None = None
    payment_model: RateCalculationMethod = RateCalculationMethod.PER_SESSION


@dataclass(frozen=True)
class LeaveMetadata:
    """Leave classification details stored with a leave session."""

    kind: str | None = None
    subtype: str | None = None
    mixed_paid: bool | None = None
    half_day: bool = False
    primary_kind: str | None = None
    second_half: str | None = None  # "work" or "leave"
    secondary_kind: str | None = None


@dataclass(frozen=True)
class CalcMetadata:
    """How the day value of a leave session was computed."""

    method: str | None = None
    lookback_months: int | None = None
    legal_allow_12m_if_better: bool | None = None
    override_applied: bool | None = None
    daily_value: Decimal | None = None
    insufficient_data: bool | None = None
    fallback_used: bool | None = None


@dataclass(frozen=True)
class SessionMetadata:
    """Typed metadata attached to a WorkSession.

    Encoded to a versioned JSON object only at the persistence edge
    (see leave_ledger.stores.metadata).
    """

    source: str | None = None
    leave: LeaveMetadata | None = None
    calc: CalcMetadata | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class WorkSession:
    """A single work, leave or adjustment record for an employee on a date."""

    employee_id: str
    date: date
    entry_type: EntryType
    id: str | None = None
    hours: Decimal | None = None
    service_id: str | None = None
    sessions_count: int | None = None
    students_count: int | None = None
    rate_used: Decimal | None = None
    total_payment: Decimal = ZERO
    notes: str | None = None
    payable: bool = True
    metadata: SessionMetadata = field(default_factory=SessionMetadata)
    deleted: bool = False
    deleted_at: datetime | None = None
    # Echoed back by the record store on create so callers can match rows.
    correlation_id: str | None = None

    @property
    def is_leave(self) -> bool:
        return self.entry_type.is_leave

    @property
    def is_work(self) -> bool:
        return self.entry_type.is_work

    @property
    def is_half_day(self) -> bool:
        """Whether this leave session occupies only half of the day."""
        if self.entry_type == EntryType.LEAVE_HALF_DAY:
            return True
        leave = self.metadata.leave
        return leave is not None and leave.half_day

    @property
    def leave_portion(self) -> Decimal:
        """Fraction of the day this session occupies as leave."""
        if not self.is_leave:
            return ZERO
        return HALF if self.is_half_day else ONE

    def copy(self, **changes: Any) -> WorkSession:
        return replace(self, **changes)


@dataclass
class LeaveLedgerEntry:
    """A signed day-count change to an employee's leave balance."""

    employee_id: str
    effective_date: date
    balance: Decimal
    leave_type: str
    id: str | None = None
    work_session_id: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class RateQuote:
    """Result of a rate lookup."""

    rate: Decimal | None
    reason: str | None = None

    @property
    def found(self) -> bool:
        return self.rate is not None


def quantize_money(value: Decimal) -> Decimal:
    """Round to cents, half-up."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)
