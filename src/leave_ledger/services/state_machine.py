"""Day cell and leave request state machines.

Two independent machines live here:

- ``DayStateMachine`` classifies an (employee, date) cell from its active
  sessions and validates what a save may add to it.
- ``RequestStateMachine`` tracks one leave day request through
  draft → awaiting confirmation → committed / rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, ClassVar, Iterable, Union

from leave_ledger.calculators.types import HALF, ONE, ZERO, WorkSession
from leave_ledger.errors import LeaveCapacityExceeded, LeaveConflict, TimeEntryError, WorkConflict

if TYPE_CHECKING:
    from leave_ledger.services.schemas import LeaveDayRequest
    from leave_ledger.services.time_entry_service import LeaveDaySaveResult

# Float-noise tolerance on the one-day leave capacity.
CAPACITY_EPSILON = Decimal("0.000001")


class DayState(str, Enum):
    """Occupancy of one (employee, date) cell."""

    EMPTY = "empty"
    WORK_ONLY = "work_only"
    LEAVE_ONLY = "leave_only"
    HALF_LEAVE_OPEN = "half_leave_open"  # one half on leave, other half free
    HALF_WORK_HALF_LEAVE = "half_work_half_leave"
    HALF_LEAVE_HALF_LEAVE = "half_leave_half_leave"
    ADJUSTMENT_ONLY = "adjustment_only"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


def leave_portion(sessions: Iterable[WorkSession]) -> Decimal:
    """Sum of leave portions across active leave sessions."""
    return sum((s.leave_portion for s in sessions if s.is_leave and not s.deleted), ZERO)


def paid_leave_portion(sessions: Iterable[WorkSession]) -> Decimal:
    """Sum of leave portions across active leave sessions that are paid."""
    return leave_portion(s for s in sessions if s.payable)


class DayStateMachine:
    """Occupancy rules for a day cell.

    Rules:
    - work and leave never share a cell unless the leave is a single half
    - total leave on a cell never exceeds one day
    - adjustments are ignored for occupancy
    """

    @classmethod
    def classify(cls, sessions: Iterable[WorkSession]) -> DayState:
        active = [s for s in sessions if not s.deleted]
        work = [s for s in active if s.is_work]
        leave = [s for s in active if s.is_leave]
        portion = leave_portion(leave)

        if not work and not leave:
            return DayState.ADJUSTMENT_ONLY if active else DayState.EMPTY
        if not leave:
            return DayState.WORK_ONLY
        if work:
            return DayState.HALF_WORK_HALF_LEAVE
        if portion < ONE:
            return DayState.HALF_LEAVE_OPEN
        if all(s.is_half_day for s in leave):
            return DayState.HALF_LEAVE_HALF_LEAVE
        return DayState.LEAVE_ONLY

    @classmethod
    def validate_add_work(cls, residual: Iterable[WorkSession]) -> DayState:
        """Validate adding work to a cell.

        Raises:
            LeaveConflict: The cell already holds a full day of leave.
        """
        residual = [s for s in residual if not s.deleted]
        leave = [s for s in residual if s.is_leave]
        portion = leave_portion(leave)
        if portion >= ONE - CAPACITY_EPSILON or any(not s.is_half_day for s in leave):
            raise LeaveConflict(conflicts=leave)
        return DayState.HALF_WORK_HALF_LEAVE if leave else DayState.WORK_ONLY

    @classmethod
    def validate_add_leave(
        cls,
        residual: Iterable[WorkSession],
        proposed_portion: Decimal,
        *,
        pairs_with_work: bool = False,
        adds_work: bool = False,
    ) -> DayState:
        """Validate adding leave (and optionally a work half) to a cell.

        Args:
            residual: Active sessions the save leaves untouched
            proposed_portion: Leave portion the save writes
            pairs_with_work: A lone half day may share the cell with the
                work already on it
            adds_work: The save also writes the work half itself

        Raises:
            WorkConflict: Existing work blocks the leave.
            LeaveCapacityExceeded: Leave would exceed one day.
        """
        residual = [s for s in residual if not s.deleted]
        work = [s for s in residual if s.is_work]
        existing = leave_portion(residual)

        if work:
            allowed = pairs_with_work and not adds_work and existing == ZERO and proposed_portion <= HALF
            if not allowed:
                raise WorkConflict(conflicts=work)

        # A work half only fits beside a single leave half.
        limit = HALF if adds_work else ONE
        if existing + proposed_portion > limit + CAPACITY_EPSILON:
            raise LeaveCapacityExceeded(
                details={"existing": str(existing), "proposed": str(proposed_portion)},
                conflicts=[s for s in residual if s.is_leave],
            )

        if work or adds_work:
            return DayState.HALF_WORK_HALF_LEAVE
        total = existing + proposed_portion
        if total < ONE:
            return DayState.HALF_LEAVE_OPEN
        if proposed_portion < ONE and all(s.is_half_day for s in residual if s.is_leave):
            return DayState.HALF_LEAVE_HALF_LEAVE
        return DayState.LEAVE_ONLY


class RequestStatus(str, Enum):
    """Leave day request status values."""

    DRAFT = "draft"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    COMMITTED = "committed"
    REJECTED = "rejected"


class RequestStateMachine:
    """State machine for a leave day request.

    Allowed transitions:
    - draft → awaiting_confirmation (history too thin, estimate offered)
    - draft → committed
    - draft → rejected
    - awaiting_confirmation → committed (estimate or override accepted)
    - awaiting_confirmation → rejected
    - rejected → awaiting_confirmation (override rejected, confirm again)
    - rejected → draft (resubmit a corrected request)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        RequestStatus.DRAFT: [
            RequestStatus.AWAITING_CONFIRMATION,
            RequestStatus.COMMITTED,
            RequestStatus.REJECTED,
        ],
        RequestStatus.AWAITING_CONFIRMATION: [RequestStatus.COMMITTED, RequestStatus.REJECTED],
        RequestStatus.REJECTED: [RequestStatus.AWAITING_CONFIRMATION, RequestStatus.DRAFT],
        RequestStatus.COMMITTED: [],  # Terminal state
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])


@dataclass(frozen=True)
class Draft:
    request: LeaveDayRequest
    status: ClassVar[RequestStatus] = RequestStatus.DRAFT


@dataclass(frozen=True)
class AwaitingConfirmation:
    """History was insufficient; the caller must accept or override the estimate."""

    request: LeaveDayRequest
    fallback_value: Decimal
    fraction: Decimal
    payable: bool
    status: ClassVar[RequestStatus] = RequestStatus.AWAITING_CONFIRMATION


@dataclass(frozen=True)
class Committed:
    request: LeaveDayRequest
    result: LeaveDaySaveResult
    status: ClassVar[RequestStatus] = RequestStatus.COMMITTED


@dataclass(frozen=True)
class Rejected:
    """Terminal for this attempt; ``kind`` is the error code."""

    request: LeaveDayRequest
    kind: str
    error: TimeEntryError
    pending: AwaitingConfirmation | None = None
    status: ClassVar[RequestStatus] = RequestStatus.REJECTED


RequestState = Union[Draft, AwaitingConfirmation, Committed, Rejected]
