"""Error taxonomy for time entry operations.

Every failure the orchestrator raises is a ``TimeEntryError`` carrying a
stable ``code`` so callers can branch on the kind without parsing messages.
"""

from __future__ import annotations

from typing import Any


class TimeEntryError(Exception):
    """Base class for all time entry failures."""

    code = "TIME_ENTRY_ERROR"
    default_message = "Time entry operation failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
        conflicts: list[Any] | None = None,
    ):
        self.message = message or self.default_message
        self.details = details or {}
        self.conflicts = conflicts or []
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API/CLI output."""
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        if self.conflicts:
            payload["conflicts"] = [str(getattr(c, "id", c)) for c in self.conflicts]
        return payload


class AuthRequired(TimeEntryError):
    code = "AuthRequired"
    default_message = "An authenticated session is required"


class OrgRequired(TimeEntryError):
    code = "OrgRequired"
    default_message = "An organization context is required"


class InvalidTimeEntry(TimeEntryError):
    code = "InvalidTimeEntry"
    default_message = "Time entry request is incomplete"


class InvalidHours(TimeEntryError):
    code = "InvalidHours"
    default_message = "Hours must be greater than zero"


class InvalidHoursIncrement(TimeEntryError):
    code = "InvalidHoursIncrement"
    default_message = "Hours must be entered in quarter-hour increments"


class UnsupportedLeaveKind(TimeEntryError):
    code = "UnsupportedLeaveKind"
    default_message = "Unsupported leave type"


class HalfDayDisabled(TimeEntryError):
    code = "HalfDayDisabled"
    default_message = "Half-day leave is disabled by the organization policy"


class IdenticalHalfDayKinds(TimeEntryError):
    code = "IdenticalHalfDayKinds"
    default_message = "Both halves of the day cannot use the same leave type"


class WorkConflict(TimeEntryError):
    code = "WorkConflict"
    default_message = "Work sessions already exist for this date"


class LeaveConflict(TimeEntryError):
    code = "LeaveConflict"
    default_message = "Leave is already recorded for this date"


class LeaveCapacityExceeded(TimeEntryError):
    code = "LeaveCapacityExceeded"
    default_message = "Leave for this date would exceed a full day"


class RateMissing(TimeEntryError):
    code = "RateMissing"
    default_message = "No rate is defined for this date"


class GlobalRateFailed(TimeEntryError):
    code = "GlobalRateFailed"
    default_message = "Could not calculate the global daily rate"


class ServiceRequired(TimeEntryError):
    code = "ServiceRequired"
    default_message = "A service must be selected for instructor sessions"


class HalfDayWorkMissing(TimeEntryError):
    code = "HalfDayWorkMissing"
    default_message = "Half-day work requires at least one work segment"


class LeaveBeforeStartDate(TimeEntryError):
    code = "LeaveBeforeStartDate"
    default_message = "Leave cannot be recorded before the employee start date"


class LeaveBalanceExceeded(TimeEntryError):
    code = "LeaveBalanceExceeded"
    default_message = "Leave balance is insufficient for this request"


class InvalidOverride(TimeEntryError):
    code = "InvalidOverride"
    default_message = "Override daily value must be a number greater than zero"


class LedgerLinkFailure(TimeEntryError):
    code = "LedgerLinkFailure"
    default_message = "Could not link ledger entries to their leave sessions"


class NoValidRows(TimeEntryError):
    code = "NoValidRows"
    default_message = "No valid rows to save"


class InvalidAdjustment(TimeEntryError):
    code = "InvalidAdjustment"
    default_message = "Adjustment is invalid"


class NothingToSave(TimeEntryError):
    code = "NothingToSave"
    default_message = "No changes to save"


class RecordStoreError(TimeEntryError):
    code = "RecordStoreError"
    default_message = "The record store returned an unexpected result"


class MetadataVersionError(ValueError):
    """Raised when stored metadata carries an unknown envelope version."""

    def __init__(self, version: Any):
        self.version = version
        super().__init__(f"Unsupported metadata version: {version!r}")
