"""Time entry services."""

from leave_ledger.services.state_machine import (
    DayState,
    DayStateMachine,
    InvalidTransitionError,
    RequestStateMachine,
    RequestStatus,
)
from leave_ledger.services.time_entry_service import (
    ConfirmationRequired,
    LeaveDayFlow,
    RequestContext,
    TimeEntryService,
)

__all__ = [
    "DayState",
    "DayStateMachine",
    "InvalidTransitionError",
    "RequestStateMachine",
    "RequestStatus",
    "ConfirmationRequired",
    "LeaveDayFlow",
    "RequestContext",
    "TimeEntryService",
]
