"""Tests for saving leave days."""

from datetime import date
from decimal import Decimal

import pytest

from leave_ledger.calculators.types import EntryType, LeaveLedgerEntry, WorkSession
from leave_ledger.errors import (
    HalfDayDisabled,
    HalfDayWorkMissing,
    IdenticalHalfDayKinds,
    InvalidOverride,
    InvalidTimeEntry,
    LeaveBalanceExceeded,
    LeaveBeforeStartDate,
    LeaveCapacityExceeded,
    UnsupportedLeaveKind,
    WorkConflict,
)
from leave_ledger.policy import LeavePolicy
from leave_ledger.services.schemas import LeaveDayRequest, WorkDayRequest, WorkSegmentInput
from leave_ledger.services.state_machine import DayState, DayStateMachine
from leave_ledger.services.time_entry_service import ConfirmationRequired

DAY = date(2025, 6, 10)


def _leave(employee_id: str = "E1", leave_type: str = "employee_paid", **kwargs) -> LeaveDayRequest:
    return LeaveDayRequest(employee_id=employee_id, date=DAY, leave_type=leave_type, **kwargs)


@pytest.fixture
async def history(seed):
    """One worked day for the hourly employee: legal day value 400."""
    return await seed(
        WorkSession(
            employee_id="E1",
            date=date(2025, 6, 1),
            entry_type=EntryType.HOURS,
            hours=Decimal("8"),
            rate_used=Decimal("50"),
            total_payment=Decimal("400"),
        )
    )


def _active(record_store, employee_id: str = "E1") -> list[WorkSession]:
    return [s for s in record_store.rows if s.employee_id == employee_id and s.date == DAY and not s.deleted]


class TestFullDayLeave:
    """Test full day leave kinds."""

    @pytest.mark.asyncio
    async def test_employee_paid(self, make_service, history, ledger_store):
        """Test that paid leave is valued from history and consumes one day."""
        result = await make_service().save_leave_day(_leave())

        assert result.day_value == Decimal("400.00")
        assert result.inserted[0].entry_type == EntryType.LEAVE_EMPLOYEE_PAID
        assert result.inserted[0].total_payment == Decimal("400")
        assert result.inserted[0].metadata.calc.method == "legal"
        assert result.fallback_was_required is False
        assert result.day_state == DayState.LEAVE_ONLY
        (entry,) = ledger_store.entries
        assert entry.balance == Decimal("-1")
        assert entry.leave_type == "time_entry_leave_employee_paid"
        assert entry.work_session_id == result.inserted[0].id

    @pytest.mark.asyncio
    async def test_unpaid_needs_no_history(self, make_service, ledger_store):
        result = await make_service().save_leave_day(_leave(leave_type="vacation_unpaid"))

        assert result.inserted[0].entry_type == EntryType.LEAVE_UNPAID
        assert result.inserted[0].payable is False
        assert result.inserted[0].total_payment == Decimal("0")
        assert result.day_value is None
        assert [e.balance for e in ledger_store.entries] == [Decimal("0")]

    @pytest.mark.asyncio
    async def test_resave_is_idempotent(self, make_service, history, record_store, ledger_store):
        """Test that saving the same leave twice leaves one session and one entry."""
        service = make_service()
        first = await service.save_leave_day(_leave())

        second = await service.save_leave_day(_leave())

        assert second.inserted == []
        assert [s.id for s in second.updated] == [first.inserted[0].id]
        assert len(_active(record_store)) == 1
        assert len(ledger_store.entries) == 1
        assert second.ledger_deleted_ids == [first.ledger_inserted[0].id]
        summary = await service.leave_remaining("E1", DAY)
        assert summary.remaining == Decimal("11")

    @pytest.mark.asyncio
    async def test_replaces_other_leave(self, make_service, history, seed, record_store):
        """Test that replaced_leave_ids frees the cell for a different kind."""
        (unpaid,) = await seed(WorkSession(employee_id="E1", date=DAY, entry_type=EntryType.LEAVE_UNPAID, payable=False))

        result = await make_service().save_leave_day(
            _leave(leave_type="system_paid", replaced_leave_ids=(unpaid.id,))
        )

        assert result.deleted_ids == [unpaid.id]
        assert [s.entry_type for s in _active(record_store)] == [EntryType.LEAVE_SYSTEM_PAID]

    @pytest.mark.asyncio
    async def test_work_blocks_leave(self, make_service, seed):
        """Test that existing work blocks a full day of leave."""
        (work,) = await seed(
            WorkSession(employee_id="E1", date=DAY, entry_type=EntryType.HOURS, hours=Decimal("4"), total_payment=Decimal("200"))
        )

        with pytest.raises(WorkConflict) as exc_info:
            await make_service().save_leave_day(_leave())

        assert exc_info.value.conflicts[0].id == work.id

    @pytest.mark.asyncio
    async def test_capacity(self, make_service, seed):
        await seed(WorkSession(employee_id="E1", date=DAY, entry_type=EntryType.LEAVE_UNPAID, payable=False))

        with pytest.raises(LeaveCapacityExceeded):
            await make_service().save_leave_day(_leave(leave_type="half_day", half_day_primary_leave_type="unpaid"))

    @pytest.mark.asyncio
    async def test_before_start_date(self, make_service):
        with pytest.raises(LeaveBeforeStartDate):
            await make_service().save_leave_day(
                LeaveDayRequest(employee_id="E1", date=date(2023, 12, 1), leave_type="unpaid")
            )

    @pytest.mark.asyncio
    async def test_unsupported_kind(self, make_service):
        with pytest.raises(UnsupportedLeaveKind):
            await make_service().save_leave_day(_leave(leave_type="sabbatical"))

    @pytest.mark.asyncio
    async def test_leave_type_required(self, make_service):
        with pytest.raises(InvalidTimeEntry):
            await make_service().save_leave_day(_leave(leave_type=None))


class TestDayValueConfirmation:
    """Test the confirmation protocol when history is insufficient."""

    @pytest.mark.asyncio
    async def test_confirmation_required(self, make_service, record_store, ledger_store):
        """Test that no history returns an estimate and writes nothing."""
        result = await make_service().save_leave_day(_leave("E2"))

        assert isinstance(result, ConfirmationRequired)
        assert result.fallback_value == Decimal("300.00")
        assert result.fraction == Decimal("1")
        assert result.payable is True
        assert record_store.rows == []
        assert ledger_store.entries == []

    @pytest.mark.asyncio
    async def test_hourly_estimate_uses_day_hours(self, make_service):
        """Hourly estimate is rate times the fallback day hours."""
        result = await make_service().save_leave_day(_leave("E1"))

        assert result.fallback_value == Decimal("400")

    @pytest.mark.asyncio
    async def test_override_commits(self, make_service):
        result = await make_service().save_leave_day(_leave("E2", override_daily_value="300"))

        assert result.day_value == Decimal("300")
        assert result.inserted[0].total_payment == Decimal("300")
        assert result.used_fallback_rate is True
        assert result.override_applied is True
        assert result.fallback_was_required is True
        assert result.inserted[0].metadata.calc.override_applied is True

    @pytest.mark.asyncio
    async def test_override_with_history(self, make_service, history):
        """An override wins over history, which was sufficient on its own."""
        result = await make_service().save_leave_day(_leave(override_daily_value=Decimal("450")))

        assert result.day_value == Decimal("450")
        assert result.fallback_was_required is False

    @pytest.mark.parametrize("override", ["abc", "0", -5])
    @pytest.mark.asyncio
    async def test_invalid_override(self, make_service, override):
        with pytest.raises(InvalidOverride):
            await make_service().save_leave_day(_leave("E2", override_daily_value=override))


class TestHalfDay:
    """Test half day leave and split days."""

    @pytest.mark.asyncio
    async def test_disabled_by_policy(self, make_service):
        service = make_service(leave_policy=LeavePolicy(allow_half_day=False))

        with pytest.raises(HalfDayDisabled):
            await service.save_leave_day(_leave(leave_type="half_day"))

    @pytest.mark.asyncio
    async def test_half_pairs_with_existing_work(self, make_service, history, seed, ledger_store):
        """Test that a lone half day may share the cell with existing work."""
        await seed(
            WorkSession(employee_id="E1", date=DAY, entry_type=EntryType.HOURS, hours=Decimal("4"), total_payment=Decimal("200"))
        )

        result = await make_service().save_leave_day(_leave(leave_type="half_day"))

        assert result.day_state == DayState.HALF_WORK_HALF_LEAVE
        assert result.inserted[0].entry_type == EntryType.LEAVE_HALF_DAY
        assert [e.balance for e in ledger_store.entries] == [Decimal("-0.5")]

    @pytest.mark.asyncio
    async def test_global_half_leave_half_work_pays_one_day(self, make_service, record_store):
        """Test that both halves of a global employee's day add up to the daily rate."""
        result = await make_service().save_leave_day(
            _leave(
                "E2",
                leave_type="half_day",
                half_day_second_half_mode="work",
                half_day_work_segments=(WorkSegmentInput(hours=Decimal("4")),),
                override_daily_value="300",
            )
        )

        assert result.day_state == DayState.HALF_WORK_HALF_LEAVE
        assert len(result.inserted) == 2
        assert sum(s.total_payment for s in result.inserted) == Decimal("300")
        assert {s.entry_type for s in _active(record_store, "E2")} == {EntryType.LEAVE_HALF_DAY, EntryType.HOURS}

    @pytest.mark.asyncio
    async def test_work_half_requires_segments(self, make_service):
        with pytest.raises(HalfDayWorkMissing):
            await make_service().save_leave_day(_leave(leave_type="half_day", half_day_second_half_mode="work"))

    @pytest.mark.asyncio
    async def test_two_leave_halves(self, make_service, history, record_store, ledger_store):
        """Test a paid half and an unpaid half on the same day."""
        result = await make_service().save_leave_day(
            _leave(
                leave_type="half_day",
                half_day_second_half_mode="leave",
                half_day_second_leave_type="unpaid",
            )
        )

        assert result.day_state == DayState.HALF_LEAVE_HALF_LEAVE
        assert DayStateMachine.classify(_active(record_store)) == DayState.HALF_LEAVE_HALF_LEAVE
        paid, unpaid = result.inserted
        assert paid.total_payment == Decimal("200")
        assert unpaid.total_payment == Decimal("0")
        assert sorted(e.balance for e in ledger_store.entries) == [Decimal("-0.5"), Decimal("0")]

    @pytest.mark.asyncio
    async def test_identical_halves_rejected(self, make_service):
        with pytest.raises(IdenticalHalfDayKinds):
            await make_service().save_leave_day(
                _leave(
                    leave_type="half_day",
                    half_day_second_half_mode="leave",
                    half_day_second_leave_type="employee_paid",
                )
            )

    @pytest.mark.asyncio
    async def test_system_paid_half_debits_balance(self, make_service, history, ledger_store):
        service = make_service()
        await service.save_leave_day(_leave(leave_type="half_day", half_day_primary_leave_type="system_paid"))

        (entry,) = ledger_store.entries
        assert entry.balance == Decimal("-0.5")
        assert entry.leave_type == "time_entry_leave_half_day"
        assert (await service.leave_remaining("E1", DAY)).remaining == Decimal("11.500")


class TestBalanceFloor:
    """Test that paid leave respects the balance."""

    @pytest.fixture
    async def exhausted(self, ledger_store):
        await ledger_store.create_entries(
            [
                LeaveLedgerEntry(
                    employee_id="E1",
                    effective_date=date(2025, 1, 5),
                    balance=Decimal("-12"),
                    leave_type="manual_usage",
                )
            ]
        )

    @pytest.mark.asyncio
    async def test_exhausted_balance(self, make_service, exhausted, record_store):
        with pytest.raises(LeaveBalanceExceeded) as exc_info:
            await make_service().save_leave_day(_leave(override_daily_value="400"))

        assert exc_info.value.details["remaining"] == "0.000"
        assert record_store.rows == []

    @pytest.mark.asyncio
    async def test_negative_floor_allows_usage(self, make_service, exhausted):
        service = make_service(
            leave_policy=LeavePolicy(allow_half_day=True, allow_negative_balance=True, negative_floor_days=Decimal("2"))
        )

        await service.save_leave_day(_leave(override_daily_value="400"))

        summary = await service.leave_remaining("E1", DAY)
        assert summary.remaining == Decimal("-1")

    @pytest.mark.asyncio
    async def test_unpaid_ignores_balance(self, make_service, exhausted):
        result = await make_service().save_leave_day(_leave(leave_type="unpaid"))

        assert result.inserted[0].entry_type == EntryType.LEAVE_UNPAID


class TestSelectors:
    @pytest.mark.asyncio
    async def test_leave_day_value(self, make_service, history):
        value = await make_service().leave_day_value("E1", DAY)

        assert value.value == Decimal("400.00")
        assert value.insufficient_data is False


class TestHalfDaySymmetry:
    """Swapping the kinds of two leave halves keeps the day total."""

    @pytest.mark.parametrize(
        "primary,second",
        [("system_paid", "employee_paid"), ("employee_paid", "system_paid")],
    )
    @pytest.mark.asyncio
    async def test_total_is_one_day_value(self, make_service, primary, second):
        result = await make_service().save_leave_day(
            _leave(
                "E2",
                leave_type="half_day",
                half_day_primary_leave_type=primary,
                half_day_second_half_mode="leave",
                half_day_second_leave_type=second,
                override_daily_value="300",
            )
        )

        assert sum(s.total_payment for s in result.inserted) == Decimal("300")
        assert result.day_state == DayState.HALF_LEAVE_HALF_LEAVE


class TestWorkThenLeave:
    @pytest.mark.asyncio
    async def test_hourly_day_blocks_leave(self, make_service):
        """An eight hour day at 50/hr pays 400 and then blocks leave."""
        service = make_service()
        day = date(2025, 1, 10)
        work = await service.save_work_day(
            WorkDayRequest(employee_id="E1", date=day, segments=[WorkSegmentInput(hours=Decimal("8"))])
        )
        assert work.inserted[0].total_payment == Decimal("400")

        with pytest.raises(WorkConflict):
            await service.save_leave_day(LeaveDayRequest(employee_id="E1", date=day, leave_type="employee_paid"))


class TestGlobalDayPaidOnce:
    """A global employee's day never pays more than one daily rate."""

    @staticmethod
    def _work(hours: str) -> WorkDayRequest:
        return WorkDayRequest(employee_id="E2", date=DAY, segments=[WorkSegmentInput(hours=Decimal(hours))])

    @pytest.mark.asyncio
    async def test_unpaid_half_leaves_full_work_payment(self, make_service, record_store):
        """Test that an unpaid half does not take a share of the day's payment."""
        service = make_service()
        await service.save_leave_day(_leave("E2", leave_type="half_day", half_day_primary_leave_type="unpaid"))

        result = await service.save_work_day(self._work("4"))

        assert result.inserted[0].total_payment == Decimal("300")
        assert sum(s.total_payment for s in _active(record_store, "E2")) == Decimal("300")

    @pytest.mark.asyncio
    async def test_paid_half_reprices_existing_work(self, make_service, record_store):
        """Test that a paid half next to paid work moves half the day's pay to the leave."""
        service = make_service()
        work = (await service.save_work_day(self._work("8"))).inserted[0]
        assert work.total_payment == Decimal("300")

        result = await service.save_leave_day(_leave("E2", leave_type="half_day", override_daily_value="300"))

        assert result.day_state == DayState.HALF_WORK_HALF_LEAVE
        (repriced,) = result.updated
        assert repriced.id == work.id
        assert repriced.total_payment == Decimal("150")
        assert result.inserted[0].total_payment == Decimal("150")
        assert sum(s.total_payment for s in _active(record_store, "E2")) == Decimal("300")

    @pytest.mark.asyncio
    async def test_unpaid_half_keeps_existing_work(self, make_service, record_store):
        service = make_service()
        await service.save_work_day(self._work("8"))

        result = await service.save_leave_day(
            _leave("E2", leave_type="half_day", half_day_primary_leave_type="unpaid")
        )

        assert result.updated == []
        assert sum(s.total_payment for s in _active(record_store, "E2")) == Decimal("300")

    @pytest.mark.asyncio
    async def test_unpaid_half_with_work_half(self, make_service):
        """Test that the work half of an unpaid split day carries the full daily rate."""
        result = await make_service().save_leave_day(
            _leave(
                "E2",
                leave_type="half_day",
                half_day_primary_leave_type="unpaid",
                half_day_second_half_mode="work",
                half_day_work_segments=(WorkSegmentInput(hours=Decimal("4")),),
            )
        )

        leave, work = result.inserted
        assert leave.total_payment == Decimal("0")
        assert work.total_payment == Decimal("300")


class TestWorkHalfOnOccupiedCell:
    """A split day with its own work half needs a cell free of other leave."""

    @pytest.mark.asyncio
    async def test_existing_half_blocks_work_half(self, make_service, history, record_store, ledger_store):
        service = make_service()
        first = await service.save_leave_day(_leave(leave_type="half_day", half_day_primary_leave_type="unpaid"))

        with pytest.raises(LeaveCapacityExceeded):
            await service.save_leave_day(
                _leave(
                    leave_type="half_day",
                    half_day_second_half_mode="work",
                    half_day_work_segments=(WorkSegmentInput(hours=Decimal("4")),),
                )
            )

        assert [s.id for s in _active(record_store)] == [first.inserted[0].id]
        assert len(ledger_store.entries) == 1
