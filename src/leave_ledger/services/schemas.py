"""Pydantic schemas for time entry requests."""

import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Work day
# ============================================================================


class WorkSegmentInput(BaseModel):
    """One work segment; ``id`` present means update in place."""

    model_config = ConfigDict(extra="forbid")

    id: str | None = None
    hours: Decimal | None = None
    service_id: str | None = None
    sessions_count: int | None = Field(default=None, ge=1)
    students_count: int | None = Field(default=None, ge=0)
    notes: str | None = None


class WorkDayRequest(BaseModel):
    """Schema for saving one employee's work on one date."""

    employee_id: str
    date: datetime.date
    segments: list[WorkSegmentInput] = Field(default_factory=list)
    paid_leave_id: str | None = None
    source: str = "table"


# ============================================================================
# Leave day
# ============================================================================


class LeaveDayRequest(BaseModel):
    """Schema for saving one employee's leave on one date.

    ``override_daily_value`` is kept loosely typed so a non-numeric value
    surfaces as InvalidOverride instead of a validation error.
    """

    model_config = ConfigDict(frozen=True)

    employee_id: str
    date: datetime.date
    leave_type: str | None = None
    paid_leave_id: str | None = None
    replaced_leave_ids: tuple[str, ...] = ()
    notes: str | None = None
    source: str = "table"

    mixed_paid: bool | None = None
    mixed_subtype: Literal["holiday", "vacation"] | None = None
    mixed_half_day: bool = False

    half_day_primary_leave_type: str | None = None
    half_day_second_half_mode: Literal["work", "leave"] | None = None
    half_day_work_segments: tuple[WorkSegmentInput, ...] = ()
    half_day_second_leave_type: str | None = None
    half_day_second_leave_id: str | None = None
    half_day_removed_work_ids: tuple[str, ...] = ()

    override_daily_value: Any = None


# ============================================================================
# Bulk mixed leave
# ============================================================================


class MixedLeaveItem(BaseModel):
    """One (employee, date) tuple of a bulk leave save."""

    employee_id: str
    date: datetime.date
    paid: bool = True
    subtype: Literal["holiday", "vacation"] | None = None
    half_day: bool = False
    notes: str | None = None


class MixedLeaveOptions(BaseModel):
    leave_type: str = "mixed"
    source: str = "multi_date"


# ============================================================================
# Adjustments
# ============================================================================


class AdjustmentItem(BaseModel):
    """A manual monetary adjustment.

    ``type`` sets the sign (debit negative, credit positive); without it
    the amount is used as given.
    """

    id: str | None = None
    employee_id: str | None = None
    date: datetime.date | None = None
    amount: Decimal
    type: Literal["credit", "debit"] | None = None
    notes: str | None = None


class AdjustmentsRequest(BaseModel):
    employee_id: str | None = None
    date: datetime.date | None = None
    items: list[AdjustmentItem] = Field(default_factory=list)
    source: str = "adjustment"
