"""Time Entry Orchestrator.

Single entry point for saving work, leave and adjustments. Every operation
follows the same shape:

    1. Check prerequisites (authenticated user, organization)
    2. Re-read the persisted sessions for the affected cells
    3. Validate occupancy, capacity, rates and balances (no writes yet)
    4. Write sessions, then ledger entries, linking them by correlation token

Usage:
    service = TimeEntryService(
        context=RequestContext(user_id="u-1", org_id="org-1"),
        employees=employees,
        services=services,
        record_store=record_store,
        ledger_store=ledger_store,
        rate_lookup=rate_lookup,
        leave_policy=LeavePolicy(allow_half_day=True),
    )
    result = await service.save_leave_day(LeaveDayRequest(...))
    if isinstance(result, ConfirmationRequired):
        ...  # ask the user, then resubmit with override_daily_value
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Sequence
from uuid import uuid4

from leave_ledger.calculators.balance import (
    LeaveBalanceSummary,
    balance_allows_usage,
    compute_leave_summary,
)
from leave_ledger.calculators.context import SelectorContext
from leave_ledger.calculators.global_rate import calculate_global_daily_rate
from leave_ledger.calculators.leave_classifier import (
    LeaveClassification,
    classify_leave,
    classify_second_half,
)
from leave_ledger.calculators.leave_value import (
    WIDE_WINDOW_MONTHS,
    LeaveDayValue,
    select_leave_day_value,
    subtract_months,
)
from leave_ledger.calculators.segment_pricing import (
    allocate_global_day_payment,
    is_quarter_hour,
    payable_day_portion,
    price_hourly,
    price_instructor,
)
from leave_ledger.calculators.types import (
    GENERIC_RATE_SERVICE_ID,
    ZERO,
    CalcMetadata,
    Employee,
    EmployeeType,
    EntryType,
    LeaveLedgerEntry,
    LeaveMetadata,
    Service,
    SessionMetadata,
    WorkSession,
)
from leave_ledger.errors import (
    AuthRequired,
    GlobalRateFailed,
    HalfDayWorkMissing,
    InvalidAdjustment,
    InvalidHours,
    InvalidHoursIncrement,
    InvalidOverride,
    InvalidTimeEntry,
    LeaveBalanceExceeded,
    LeaveBeforeStartDate,
    LeaveCapacityExceeded,
    LedgerLinkFailure,
    NothingToSave,
    NoValidRows,
    OrgRequired,
    RateMissing,
    RecordStoreError,
    ServiceRequired,
    TimeEntryError,
    WorkConflict,
)
from leave_ledger.policy import LeavePayPolicy, LeavePolicy, to_decimal
from leave_ledger.services.ledger_service import (
    LeaveLedgerService,
    PendingLedgerEntry,
    build_pending_entry,
)
from leave_ledger.services.schemas import (
    AdjustmentsRequest,
    LeaveDayRequest,
    MixedLeaveItem,
    MixedLeaveOptions,
    WorkDayRequest,
    WorkSegmentInput,
)
from leave_ledger.services.state_machine import (
    AwaitingConfirmation,
    Committed,
    DayState,
    DayStateMachine,
    Draft,
    Rejected,
    RequestState,
    RequestStateMachine,
    paid_leave_portion,
)
from leave_ledger.stores.base import (
    GlobalDailyRateCalculator,
    LedgerStore,
    RateLookup,
    RecordStore,
    SessionQuery,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """Who is calling. Both fields are required for any save."""

    user_id: str | None
    org_id: str | None


@dataclass
class WorkDaySaveResult:
    inserted: list[WorkSession] = field(default_factory=list)
    updated: list[WorkSession] = field(default_factory=list)
    ledger_deleted_ids: list[str] = field(default_factory=list)
    day_state: DayState = DayState.WORK_ONLY

    @property
    def inserted_count(self) -> int:
        return len(self.inserted)

    @property
    def updated_count(self) -> int:
        return len(self.updated)


@dataclass(frozen=True)
class ConfirmationRequired:
    """Returned instead of writing when history could not value the day.

    Resubmit with ``override_daily_value`` set to ``fallback_value`` (to
    accept the estimate) or to a value of the caller's choice.
    """

    fallback_value: Decimal
    fraction: Decimal
    payable: bool

    @property
    def needs_confirmation(self) -> bool:
        return True


@dataclass
class LeaveDaySaveResult:
    inserted: list[WorkSession] = field(default_factory=list)
    updated: list[WorkSession] = field(default_factory=list)
    deleted_ids: list[str] = field(default_factory=list)
    ledger_deleted_ids: list[str] = field(default_factory=list)
    ledger_inserted: list[LeaveLedgerEntry] = field(default_factory=list)
    day_value: Decimal | None = None
    used_fallback_rate: bool = False
    override_applied: bool = False
    fallback_was_required: bool = False
    day_state: DayState = DayState.LEAVE_ONLY

    @property
    def needs_confirmation(self) -> bool:
        return False


@dataclass(frozen=True)
class MixedLeaveConflict:
    """A bulk row skipped because its cell could not take the leave."""

    employee_id: str
    date: date
    reason: str  # work / capacity / balance / rate
    session_ids: tuple[str, ...] = ()


@dataclass
class MixedLeaveResult:
    inserted: list[WorkSession] = field(default_factory=list)
    ledger_inserted: list[LeaveLedgerEntry] = field(default_factory=list)
    conflicts: list[MixedLeaveConflict] = field(default_factory=list)
    invalid_start_dates: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class AdjustmentsResult:
    created: list[WorkSession] = field(default_factory=list)
    updated: list[WorkSession] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created)

    @property
    def updated_count(self) -> int:
        return len(self.updated)


def _new_token() -> str:
    return uuid4().hex


def _session_changes(session: WorkSession) -> dict[str, Any]:
    """Fields an in-place update rewrites."""
    return {
        "entry_type": session.entry_type,
        "hours": session.hours,
        "service_id": session.service_id,
        "sessions_count": session.sessions_count,
        "students_count": session.students_count,
        "rate_used": session.rate_used,
        "total_payment": session.total_payment,
        "notes": session.notes,
        "payable": session.payable,
        "metadata": session.metadata,
    }


class TimeEntryService:
    """Validates and persists daily time entries.

    Employees and services are a read-only snapshot owned by the caller;
    sessions and ledger entries are always re-read from the stores.
    """

    def __init__(
        self,
        *,
        context: RequestContext,
        employees: Sequence[Employee],
        record_store: RecordStore,
        ledger_store: LedgerStore,
        rate_lookup: RateLookup,
        services: Sequence[Service] = (),
        leave_policy: LeavePolicy | None = None,
        leave_pay_policy: LeavePayPolicy | None = None,
        global_rate_calculator: GlobalDailyRateCalculator = calculate_global_daily_rate,
    ):
        self.context = context
        self.employees = {employee.id: employee for employee in employees}
        self.services = {service.id: service for service in services}
        self.record_store = record_store
        self.ledger = LeaveLedgerService(ledger_store)
        self.rate_lookup = rate_lookup
        self.leave_policy = leave_policy or LeavePolicy()
        self.leave_pay_policy = leave_pay_policy or LeavePayPolicy()
        self.global_rate_calculator = global_rate_calculator

    # =========================================================================
    # Shared helpers
    # =========================================================================

    def _ensure_prerequisites(self) -> None:
        if not self.context.user_id:
            raise AuthRequired()
        if not self.context.org_id:
            raise OrgRequired()

    def _employee(self, employee_id: str | None) -> Employee:
        employee = self.employees.get(employee_id) if employee_id else None
        if employee is None:
            raise InvalidTimeEntry("Unknown employee", details={"employee_id": employee_id})
        return employee

    async def _fetch_cell(self, employee_id: str, target_date: date) -> list[WorkSession]:
        sessions = await self.record_store.fetch(
            SessionQuery(employee_ids=(employee_id,), start_date=target_date, end_date=target_date)
        )
        return [s for s in sessions if not s.deleted]

    def _rate_for(self, employee: Employee, target_date: date, service_id: str | None = None) -> Decimal:
        quote = self.rate_lookup.get_rate_for_date(employee.id, target_date, service_id or GENERIC_RATE_SERVICE_ID)
        if quote.rate is None:
            raise RateMissing(
                quote.reason,
                details={"employee_id": employee.id, "date": target_date.isoformat(), "service_id": service_id},
            )
        return Decimal(quote.rate)

    def _base_rate(self, employee: Employee, target_date: date) -> Decimal | None:
        quote = self.rate_lookup.get_rate_for_date(employee.id, target_date, GENERIC_RATE_SERVICE_ID)
        if quote.rate is not None:
            return Decimal(quote.rate)
        return Decimal(employee.current_rate) if employee.current_rate is not None else None

    def _global_daily_rate(self, employee: Employee, target_date: date) -> Decimal:
        monthly = self._base_rate(employee, target_date)
        if monthly is None:
            raise RateMissing(details={"employee_id": employee.id, "date": target_date.isoformat()})
        try:
            return self.global_rate_calculator(employee, target_date, monthly)
        except (ValueError, ArithmeticError) as exc:
            raise GlobalRateFailed(
                str(exc),
                details={"employee_id": employee.id, "date": target_date.isoformat()},
            ) from exc

    def _fallback_day_value(self, employee: Employee, target_date: date) -> Decimal | None:
        """Estimate a day value from the current rate when history is thin."""
        if employee.employee_type == EmployeeType.GLOBAL:
            if self._base_rate(employee, target_date) is None:
                return None
            return self._global_daily_rate(employee, target_date)
        rate = self._base_rate(employee, target_date)
        if rate is None:
            return None
        if employee.employee_type == EmployeeType.HOURLY:
            return rate * self.leave_pay_policy.fallback_day_hours
        return rate

    async def _value_leave_day(
        self,
        employee: Employee,
        target_date: date,
        *,
        with_fallback: bool = True,
    ) -> LeaveDayValue:
        months = max(self.leave_pay_policy.lookback_months, WIDE_WINDOW_MONTHS)
        history = await self.record_store.fetch(
            SessionQuery(
                employee_ids=(employee.id,),
                start_date=subtract_months(target_date, months),
                end_date=target_date,
            )
        )
        context = SelectorContext(
            employees=[employee],
            work_sessions=history,
            services=list(self.services.values()),
            leave_policy=self.leave_policy,
            leave_pay_policy=self.leave_pay_policy,
        )
        fallback = self._fallback_day_value if with_fallback else None
        return select_leave_day_value(employee.id, target_date, context, fallback=fallback)

    @staticmethod
    def _parse_override(value: Any) -> Decimal | None:
        if value is None or value == "":
            return None
        parsed = to_decimal(value)
        if parsed is None or parsed <= 0:
            raise InvalidOverride(details={"override_daily_value": str(value)})
        return parsed

    def _price_segments(
        self,
        employee: Employee,
        target_date: date,
        segments: Sequence[WorkSegmentInput],
        *,
        leave_taken: Decimal,
        already_paid: bool,
        source: str,
    ) -> list[WorkSession]:
        """Validate work segments and compute their payments.

        Raises:
            InvalidHours, InvalidHoursIncrement, RateMissing,
            ServiceRequired, GlobalRateFailed
        """
        sessions: list[WorkSession] = []
        metadata = SessionMetadata(source=source)

        if employee.employee_type == EmployeeType.GLOBAL:
            daily_rate = self._global_daily_rate(employee, target_date)
            payments = allocate_global_day_payment(
                daily_rate,
                payable_day_portion(leave_taken),
                len(segments),
                already_paid=already_paid,
            )
            for segment, payment in zip(segments, payments):
                hours = segment.hours
                if segment.id is None and (hours is None or hours <= 0):
                    raise InvalidHours(details={"hours": str(hours)})
                if hours is not None and not is_quarter_hour(hours):
                    raise InvalidHoursIncrement(details={"hours": str(hours)})
                sessions.append(
                    WorkSession(
                        id=segment.id,
                        employee_id=employee.id,
                        date=target_date,
                        entry_type=EntryType.HOURS,
                        hours=hours,
                        rate_used=daily_rate,
                        total_payment=payment,
                        notes=segment.notes,
                        metadata=metadata,
                    )
                )
            return sessions

        for segment in segments:
            if employee.employee_type == EmployeeType.INSTRUCTOR:
                if not segment.service_id:
                    raise ServiceRequired()
                rate = self._rate_for(employee, target_date, segment.service_id)
                service = self.services.get(segment.service_id)
                sessions.append(
                    WorkSession(
                        id=segment.id,
                        employee_id=employee.id,
                        date=target_date,
                        entry_type=EntryType.SESSION,
                        service_id=segment.service_id,
                        sessions_count=segment.sessions_count or 1,
                        students_count=segment.students_count,
                        rate_used=rate,
                        total_payment=price_instructor(service, rate, segment.sessions_count, segment.students_count),
                        notes=segment.notes,
                        metadata=metadata,
                    )
                )
                continue

            hours = segment.hours
            if hours is None or hours <= 0:
                raise InvalidHours(details={"hours": str(hours)})
            if not is_quarter_hour(hours):
                raise InvalidHoursIncrement(details={"hours": str(hours)})
            rate = self._rate_for(employee, target_date)
            sessions.append(
                WorkSession(
                    id=segment.id,
                    employee_id=employee.id,
                    date=target_date,
                    entry_type=EntryType.HOURS,
                    hours=hours,
                    rate_used=rate,
                    total_payment=price_hourly(hours, rate),
                    notes=segment.notes,
                    metadata=metadata,
                )
            )
        return sessions

    def _reprice_global_work(
        self,
        employee: Employee,
        target_date: date,
        residual: Sequence[WorkSession],
        leave: Sequence[WorkSession],
    ) -> list[WorkSession]:
        """Re-split a global day's single payment after its paid leave changed.

        The paid work segment on the cell is set to the daily rate scaled by
        the share of the day left after paid leave. Returns the segment to
        update, or nothing when the payment is already right.
        """
        work = [s for s in residual if s.is_work and s.payable]
        if not work:
            return []
        primary = next((s for s in work if s.total_payment > 0), work[0])
        daily_rate = self._global_daily_rate(employee, target_date)
        payment = daily_rate * payable_day_portion(paid_leave_portion([*residual, *leave]))
        if payment == primary.total_payment:
            return []
        logger.debug(
            "Repricing global work %s for employee %s on %s: %s -> %s",
            primary.id,
            employee.id,
            target_date,
            primary.total_payment,
            payment,
        )
        return [primary.copy(rate_used=daily_rate, total_payment=payment)]

    async def _create_sessions(self, sessions: list[WorkSession]) -> tuple[list[WorkSession], dict[str, WorkSession]]:
        """Insert sessions and index the created rows by correlation token."""
        if not sessions:
            return [], {}
        created = await self.record_store.create(sessions)
        by_token = {row.correlation_id: row for row in created if row.correlation_id}
        return created, by_token

    async def _update_sessions(self, sessions: list[WorkSession]) -> list[WorkSession]:
        return [await self.record_store.update(s.id, _session_changes(s)) for s in sessions]

    # =========================================================================
    # Work
    # =========================================================================

    async def save_work_day(self, request: WorkDayRequest) -> WorkDaySaveResult:
        """Save the work segments of one employee on one date.

        Segments with an ``id`` are updated in place; the rest are inserted.
        ``paid_leave_id`` converts an existing leave session into the first
        new segment and drops its ledger entries.

        Raises:
            LeaveConflict: A full day of leave already occupies the date.
            InvalidHours / InvalidHoursIncrement: Bad hours.
            RateMissing / ServiceRequired / GlobalRateFailed: Pricing failed.
        """
        self._ensure_prerequisites()
        employee = self._employee(request.employee_id)
        if not request.segments:
            raise InvalidTimeEntry("At least one work segment is required")

        active = await self._fetch_cell(employee.id, request.date)
        by_id = {s.id: s for s in active}

        converted_id = request.paid_leave_id
        if converted_id and (converted_id not in by_id or not by_id[converted_id].is_leave):
            raise InvalidTimeEntry("Leave session to convert was not found", details={"paid_leave_id": converted_id})

        segments = list(request.segments)
        if converted_id:
            for index, segment in enumerate(segments):
                if segment.id is None:
                    segments[index] = segment.model_copy(update={"id": converted_id})
                    break
            else:
                raise InvalidTimeEntry("No new segment to take over the converted leave")

        touched = {segment.id for segment in segments if segment.id}
        residual = [s for s in active if s.id not in touched and s.entry_type != EntryType.ADJUSTMENT]
        day_state = DayStateMachine.validate_add_work(residual)

        already_paid = any(s.is_work and s.payable and s.total_payment > 0 for s in residual)
        priced = self._price_segments(
            employee,
            request.date,
            segments,
            leave_taken=paid_leave_portion(residual),
            already_paid=already_paid,
            source=request.source,
        )

        inserts = []
        for session in priced:
            if session.id is None:
                session.correlation_id = _new_token()
                inserts.append(session)
        updates = [session for session in priced if session.id is not None]

        created, by_token = await self._create_sessions(inserts)
        if len(created) != len(inserts) or any(s.correlation_id not in by_token for s in inserts):
            raise RecordStoreError(
                "Record store did not create every work segment",
                details={"expected": len(inserts), "created": len(created)},
            )
        updated = await self._update_sessions(updates)

        ledger_deleted: list[str] = []
        if converted_id:
            entries = await self.ledger.fetch_for_employee(employee.id)
            stale = self.ledger.linked_entries(entries, [converted_id])
            ledger_deleted = (await self.ledger.replace_entries([e.id for e in stale], [])).deleted_ids

        logger.info(
            "Saved work day for employee %s on %s: inserted=%d updated=%d",
            employee.id,
            request.date,
            len(created),
            len(updated),
        )
        return WorkDaySaveResult(
            inserted=created,
            updated=updated,
            ledger_deleted_ids=ledger_deleted,
            day_state=day_state,
        )

    # =========================================================================
    # Leave
    # =========================================================================

    @staticmethod
    def _adopt_leave(
        active: Sequence[WorkSession],
        classification: LeaveClassification,
        excluded: set[str],
        *,
        half: bool,
    ) -> str | None:
        """Find the persisted leave session a re-save should update in place."""
        for session in active:
            if not session.is_leave or session.id in excluded:
                continue
            if session.entry_type != classification.entry_type or session.is_half_day != half:
                continue
            if classification.primary_kind:
                stored = session.metadata.leave.primary_kind if session.metadata.leave else None
                if stored != classification.primary_kind:
                    continue
            return session.id
        return None

    def _leave_metadata(
        self,
        source: str,
        classification: LeaveClassification,
        *,
        half_day: bool,
        value: LeaveDayValue | None,
        day_value: Decimal | None,
        override: Decimal | None,
        second_half: str | None = None,
        secondary_kind: str | None = None,
    ) -> SessionMetadata:
        calc = None
        if day_value is not None:
            pay_method = value.pay_method if value else None
            calc = CalcMetadata(
                method=pay_method.method.value if pay_method else None,
                lookback_months=pay_method.lookback_months if pay_method else None,
                legal_allow_12m_if_better=pay_method.legal_allow_12m_if_better if pay_method else None,
                override_applied=override is not None,
                daily_value=day_value,
                insufficient_data=value.insufficient_data if value else None,
                fallback_used=value.insufficient_data if value else None,
            )
        return SessionMetadata(
            source=source,
            leave=LeaveMetadata(
                kind=classification.kind,
                subtype=classification.subtype,
                mixed_paid=classification.mixed_paid,
                half_day=half_day,
                primary_kind=classification.primary_kind,
                second_half=second_half,
                secondary_kind=secondary_kind,
            ),
            calc=calc,
        )

    async def save_leave_day(self, request: LeaveDayRequest) -> LeaveDaySaveResult | ConfirmationRequired:
        """Save leave for one employee on one date.

        Returns ConfirmationRequired without writing anything when a paid
        day cannot be valued from history and no override was supplied.

        Raises:
            LeaveBeforeStartDate, UnsupportedLeaveKind, HalfDayDisabled,
            IdenticalHalfDayKinds, HalfDayWorkMissing, InvalidOverride,
            WorkConflict, LeaveCapacityExceeded, LeaveBalanceExceeded,
            RateMissing, GlobalRateFailed, LedgerLinkFailure
        """
        self._ensure_prerequisites()
        employee = self._employee(request.employee_id)
        if not request.leave_type:
            raise InvalidTimeEntry("Leave type is required")
        if employee.start_date and request.date < employee.start_date:
            raise LeaveBeforeStartDate(
                details={
                    "employee_id": employee.id,
                    "date": request.date.isoformat(),
                    "start_date": employee.start_date.isoformat(),
                }
            )

        primary = classify_leave(
            request.leave_type,
            allow_half_day=self.leave_policy.allow_half_day,
            mixed_paid=request.mixed_paid,
            mixed_subtype=request.mixed_subtype,
            mixed_half_day=request.mixed_half_day,
            primary_half_kind=request.half_day_primary_leave_type,
        )
        mode = request.half_day_second_half_mode if primary.is_half_day else None
        second = classify_second_half(request.half_day_second_leave_type, primary) if mode == "leave" else None
        work_segments = list(request.half_day_work_segments) if mode == "work" else []
        if mode == "work" and not work_segments:
            raise HalfDayWorkMissing()
        override = self._parse_override(request.override_daily_value)

        # Persisted state is authoritative; the caller's view may be stale.
        active = await self._fetch_cell(employee.id, request.date)
        by_id = {s.id: s for s in active}
        for leave_id in (request.paid_leave_id, request.half_day_second_leave_id):
            if leave_id and (leave_id not in by_id or not by_id[leave_id].is_leave):
                raise InvalidTimeEntry("Leave session not found", details={"leave_id": leave_id})

        replaced_ids = {i for i in request.replaced_leave_ids if i in by_id and by_id[i].is_leave}
        removed_work_ids = {i for i in request.half_day_removed_work_ids if i in by_id and by_id[i].is_work}
        work_segment_ids = {segment.id for segment in work_segments if segment.id}

        excluded = set(replaced_ids)
        primary_id = request.paid_leave_id or self._adopt_leave(
            active, primary, excluded, half=primary.is_half_day
        )
        if primary_id:
            excluded.add(primary_id)
        second_id = None
        if second is not None:
            second_id = request.half_day_second_leave_id or self._adopt_leave(active, second, excluded, half=True)
            if second_id:
                excluded.add(second_id)

        touched = excluded | removed_work_ids | work_segment_ids
        residual = [s for s in active if s.id not in touched and s.entry_type != EntryType.ADJUSTMENT]
        proposed = primary.fraction + (second.fraction if second else ZERO)
        DayStateMachine.validate_add_leave(
            residual,
            proposed,
            pairs_with_work=primary.is_half_day and mode is None,
            adds_work=mode == "work",
        )

        # Day value
        needs_value = primary.payable or (second is not None and second.payable)
        value: LeaveDayValue | None = None
        day_value: Decimal | None = None
        fallback_required = False
        if needs_value:
            if override is None:
                value = await self._value_leave_day(employee, request.date)
                if value.insufficient_data:
                    logger.debug(
                        "Leave day for employee %s on %s needs confirmation (estimate=%s)",
                        employee.id,
                        request.date,
                        value.value,
                    )
                    return ConfirmationRequired(
                        fallback_value=value.value,
                        fraction=primary.fraction,
                        payable=primary.payable,
                    )
                day_value = value.value
            else:
                day_value = override
                history_value = await self._value_leave_day(employee, request.date, with_fallback=False)
                fallback_required = history_value.insufficient_data

        # Sessions
        planned: list[WorkSession] = []
        pending: list[PendingLedgerEntry] = []

        def plan_leave(classification: LeaveClassification, target_id: str | None, metadata: SessionMetadata) -> None:
            token = None if target_id else _new_token()
            planned.append(
                WorkSession(
                    id=target_id,
                    employee_id=employee.id,
                    date=request.date,
                    entry_type=classification.entry_type,
                    rate_used=day_value if classification.payable else None,
                    total_payment=day_value * classification.fraction
                    if classification.payable and day_value is not None
                    else ZERO,
                    payable=classification.payable,
                    notes=request.notes,
                    metadata=metadata,
                    correlation_id=token,
                )
            )
            pending.append(
                build_pending_entry(
                    employee.id,
                    request.date,
                    classification,
                    session_id=target_id,
                    correlation_id=token,
                    notes=request.notes,
                )
            )

        plan_leave(
            primary,
            primary_id,
            self._leave_metadata(
                request.source,
                primary,
                half_day=primary.is_half_day,
                value=value,
                day_value=day_value if primary.payable else None,
                override=override,
                second_half=mode,
                secondary_kind=second.kind if second else None,
            ),
        )
        if second is not None:
            plan_leave(
                second,
                second_id,
                self._leave_metadata(
                    request.source,
                    second,
                    half_day=True,
                    value=value,
                    day_value=day_value if second.payable else None,
                    override=override,
                    second_half="leave",
                ),
            )
        if work_segments:
            for session in self._price_segments(
                employee,
                request.date,
                work_segments,
                leave_taken=primary.fraction if primary.payable else ZERO,
                already_paid=False,
                source=request.source,
            ):
                if session.id is None:
                    session.correlation_id = _new_token()
                planned.append(session)

        repriced: list[WorkSession] = []
        if employee.employee_type == EmployeeType.GLOBAL and mode is None:
            repriced = self._reprice_global_work(employee, request.date, residual, planned)

        day_state = DayStateMachine.classify([*residual, *planned])

        # Balance
        entries = await self.ledger.fetch_for_employee(employee.id)
        stale = self.ledger.linked_entries(entries, excluded)
        total_delta = sum((item.balance for item in pending), ZERO)
        if total_delta < 0:
            summary = compute_leave_summary(employee, entries, self.leave_policy, request.date)
            stale_delta = sum((e.balance for e in stale if e.effective_date <= request.date), ZERO)
            baseline = summary.remaining - stale_delta
            projected = baseline + total_delta
            if not balance_allows_usage(baseline, projected, self.leave_policy):
                raise LeaveBalanceExceeded(
                    details={
                        "remaining": str(baseline),
                        "projected": str(projected),
                        "floor": str(self.leave_policy.negative_floor),
                        "allow_negative_balance": self.leave_policy.allow_negative_balance,
                    }
                )

        # Writes: inserts, updates, deletes, ledger
        inserts = [s for s in planned if s.id is None]
        created, by_token = await self._create_sessions(inserts)
        if len(created) != len(inserts) or any(s.correlation_id not in by_token for s in inserts):
            raise LedgerLinkFailure(
                "Record store did not echo every created session",
                details={"expected": len(inserts), "created": len(created)},
            )
        updated = await self._update_sessions([*(s for s in planned if s.id is not None), *repriced])
        targets = {session_id for session_id in (primary_id, second_id) if session_id}
        to_delete = sorted((replaced_ids - targets) | removed_work_ids)
        deleted_ids = await self.record_store.soft_delete(to_delete) if to_delete else []

        linked = self.ledger.resolve_links(pending, by_token)
        written = await self.ledger.replace_entries([e.id for e in stale], linked)

        logger.info(
            "Saved leave day for employee %s on %s: kind=%s inserted=%d updated=%d ledger=%d",
            employee.id,
            request.date,
            primary.kind,
            len(created),
            len(updated),
            len(written.inserted),
        )
        return LeaveDaySaveResult(
            inserted=created,
            updated=updated,
            deleted_ids=deleted_ids,
            ledger_deleted_ids=written.deleted_ids,
            ledger_inserted=written.inserted,
            day_value=day_value,
            used_fallback_rate=override is not None,
            override_applied=override is not None,
            fallback_was_required=fallback_required,
            day_state=day_state,
        )

    async def save_mixed_leave(
        self,
        items: Sequence[MixedLeaveItem],
        options: MixedLeaveOptions | None = None,
    ) -> MixedLeaveResult:
        """Record leave for many (employee, date) tuples at once.

        Rows before the employee start date, on cells occupied by work,
        over capacity, over the balance floor or without a day value are
        skipped and reported.

        Raises:
            NoValidRows: Every row was skipped.
        """
        self._ensure_prerequisites()
        options = options or MixedLeaveOptions()
        if not items:
            raise NoValidRows()

        employee_ids = tuple(sorted({item.employee_id for item in items}))
        first = min(item.date for item in items)
        last = max(item.date for item in items)
        persisted = await self.record_store.fetch(
            SessionQuery(employee_ids=employee_ids, start_date=first, end_date=last)
        )

        cells: dict[tuple[str, date], list[WorkSession]] = {}
        for session in persisted:
            if session.entry_type != EntryType.ADJUSTMENT:
                cells.setdefault((session.employee_id, session.date), []).append(session)
        ledgers: dict[str, list[LeaveLedgerEntry]] = {}

        result = MixedLeaveResult()
        planned: list[WorkSession] = []
        pending: list[PendingLedgerEntry] = []

        for item in items:
            employee = self.employees.get(item.employee_id)
            if employee is None:
                logger.warning("Skipping leave row for unknown employee %s", item.employee_id)
                continue
            if employee.start_date and item.date < employee.start_date:
                result.invalid_start_dates.append(
                    {
                        "employee_id": employee.id,
                        "date": item.date.isoformat(),
                        "start_date": employee.start_date.isoformat(),
                    }
                )
                continue

            classification = classify_leave(
                options.leave_type,
                allow_half_day=self.leave_policy.allow_half_day,
                mixed_paid=item.paid,
                mixed_subtype=item.subtype,
                mixed_half_day=item.half_day,
            )
            cell = cells.setdefault((employee.id, item.date), [])
            try:
                DayStateMachine.validate_add_leave(cell, classification.fraction)
            except (WorkConflict, LeaveCapacityExceeded) as exc:
                reason = "work" if isinstance(exc, WorkConflict) else "capacity"
                result.conflicts.append(
                    MixedLeaveConflict(
                        employee_id=employee.id,
                        date=item.date,
                        reason=reason,
                        session_ids=tuple(s.id for s in exc.conflicts if s.id),
                    )
                )
                continue

            if employee.id not in ledgers:
                ledgers[employee.id] = await self.ledger.fetch_for_employee(employee.id)
            ledger = ledgers[employee.id]
            if classification.ledger_delta < 0:
                summary = compute_leave_summary(employee, ledger, self.leave_policy, item.date)
                projected = summary.remaining + classification.ledger_delta
                if not balance_allows_usage(summary.remaining, projected, self.leave_policy):
                    result.conflicts.append(
                        MixedLeaveConflict(employee_id=employee.id, date=item.date, reason="balance")
                    )
                    continue

            value = None
            day_value = None
            if classification.payable:
                value = await self._value_leave_day(employee, item.date)
                if value.value <= 0:
                    logger.warning("Skipping leave row for employee %s on %s: no day value", employee.id, item.date)
                    result.conflicts.append(MixedLeaveConflict(employee_id=employee.id, date=item.date, reason="rate"))
                    continue
                day_value = value.value

            token = _new_token()
            session = WorkSession(
                employee_id=employee.id,
                date=item.date,
                entry_type=classification.entry_type,
                rate_used=day_value,
                total_payment=day_value * classification.fraction if day_value is not None else ZERO,
                payable=classification.payable,
                notes=item.notes,
                metadata=self._leave_metadata(
                    options.source,
                    classification,
                    half_day=classification.is_half_day,
                    value=value,
                    day_value=day_value,
                    override=None,
                ),
                correlation_id=token,
            )
            cell.append(session)
            planned.append(session)
            entry = build_pending_entry(
                employee.id, item.date, classification, correlation_id=token, notes=item.notes
            )
            pending.append(entry)
            ledger.append(
                LeaveLedgerEntry(
                    employee_id=employee.id,
                    effective_date=item.date,
                    balance=entry.balance,
                    leave_type=entry.leave_type,
                )
            )

        if not planned:
            raise NoValidRows(
                details={
                    "conflicts": [
                        {"employee_id": c.employee_id, "date": c.date.isoformat(), "reason": c.reason}
                        for c in result.conflicts
                    ],
                    "invalid_start_dates": result.invalid_start_dates,
                },
                conflicts=list(result.conflicts),
            )

        created, by_token = await self._create_sessions(planned)
        if len(created) != len(planned):
            raise LedgerLinkFailure(
                "Record store did not create every leave session",
                details={"expected": len(planned), "created": len(created)},
            )
        linked = self.ledger.resolve_links(pending, by_token)
        written = await self.ledger.replace_entries([], linked)

        result.inserted = created
        result.ledger_inserted = written.inserted
        logger.info(
            "Saved bulk leave: inserted=%d conflicts=%d invalid_start_dates=%d",
            len(created),
            len(result.conflicts),
            len(result.invalid_start_dates),
        )
        return result

    # =========================================================================
    # Adjustments
    # =========================================================================

    async def save_adjustments(self, request: AdjustmentsRequest) -> AdjustmentsResult:
        """Record manual monetary adjustments.

        Raises:
            NothingToSave: No items.
            InvalidAdjustment: Missing date/note or a zero amount.
        """
        self._ensure_prerequisites()
        if not request.items:
            raise NothingToSave()

        inserts: list[WorkSession] = []
        updates: list[WorkSession] = []
        for item in request.items:
            employee = self._employee(item.employee_id or request.employee_id)
            target_date = item.date or request.date
            if target_date is None:
                raise InvalidAdjustment("Adjustment date is required")
            notes = (item.notes or "").strip()
            if not notes:
                raise InvalidAdjustment("Adjustment note is required")
            amount = Decimal(item.amount)
            if item.type == "debit":
                amount = -abs(amount)
            elif item.type == "credit":
                amount = abs(amount)
            if amount == 0:
                raise InvalidAdjustment("Adjustment amount must be non-zero")

            session = WorkSession(
                id=item.id,
                employee_id=employee.id,
                date=target_date,
                entry_type=EntryType.ADJUSTMENT,
                rate_used=amount,
                total_payment=amount,
                notes=notes,
                metadata=SessionMetadata(source=request.source),
            )
            if item.id:
                updates.append(session)
            else:
                session.correlation_id = _new_token()
                inserts.append(session)

        created, _ = await self._create_sessions(inserts)
        if len(created) != len(inserts):
            raise RecordStoreError(details={"expected": len(inserts), "created": len(created)})
        updated = await self._update_sessions(updates)
        logger.info("Saved adjustments: created=%d updated=%d", len(created), len(updated))
        return AdjustmentsResult(created=created, updated=updated)

    # =========================================================================
    # Selectors over persisted state
    # =========================================================================

    async def leave_remaining(self, employee_id: str, target_date: date) -> LeaveBalanceSummary:
        """Balance at a date, replayed from the persisted ledger."""
        employee = self._employee(employee_id)
        entries = await self.ledger.fetch_for_employee(employee.id, target_date)
        return compute_leave_summary(employee, entries, self.leave_policy, target_date)

    async def leave_day_value(self, employee_id: str, target_date: date) -> LeaveDayValue:
        """Value of one paid leave day, from persisted history."""
        return await self._value_leave_day(self._employee(employee_id), target_date)


class LeaveDayFlow:
    """Drives one leave day request through its states.

    Usage:
        flow = LeaveDayFlow(service, request)
        state = await flow.submit()
        if isinstance(state, AwaitingConfirmation):
            state = await flow.confirm()  # accept the estimate
    """

    def __init__(self, service: TimeEntryService, request: LeaveDayRequest):
        self.service = service
        self.state: RequestState = Draft(request)
        self.history: list[RequestState] = [self.state]

    def _move(self, state: RequestState) -> RequestState:
        RequestStateMachine.validate_transition(self.state.status, state.status)
        self.state = state
        self.history.append(state)
        return state

    async def _run(self, request: LeaveDayRequest, pending: AwaitingConfirmation | None) -> RequestState:
        try:
            outcome = await self.service.save_leave_day(request)
        except TimeEntryError as exc:
            return self._move(Rejected(request=request, kind=exc.code, error=exc, pending=pending))
        if isinstance(outcome, ConfirmationRequired):
            return self._move(
                AwaitingConfirmation(
                    request=request,
                    fallback_value=outcome.fallback_value,
                    fraction=outcome.fraction,
                    payable=outcome.payable,
                )
            )
        return self._move(Committed(request=request, result=outcome))

    async def submit(self) -> RequestState:
        """Submit the draft request."""
        if not isinstance(self.state, Draft):
            raise RuntimeError(f"Cannot submit from state '{self.state.status.value}'")
        return await self._run(self.state.request, None)

    async def confirm(self, override: Any = None) -> RequestState:
        """Accept the estimate, or supply a different day value."""
        pending = self.state if isinstance(self.state, AwaitingConfirmation) else None
        if isinstance(self.state, Rejected) and self.state.pending is not None:
            pending = self._move(self.state.pending)
        if pending is None:
            raise RuntimeError(f"Cannot confirm from state '{self.state.status.value}'")
        value = pending.fallback_value if override is None else override
        request = pending.request.model_copy(update={"override_daily_value": value})
        return await self._run(request, pending)

    def revise(self, request: LeaveDayRequest) -> RequestState:
        """Start over with a corrected request after a rejection."""
        return self._move(Draft(request))
