"""Tests for bulk mixed leave saves."""

from datetime import date
from decimal import Decimal

import pytest

from leave_ledger.calculators.rate_lookup import RateHistoryLookup
from leave_ledger.calculators.types import EntryType, LeaveLedgerEntry, WorkSession
from leave_ledger.errors import NoValidRows
from leave_ledger.services.schemas import MixedLeaveItem, MixedLeaveOptions
from leave_ledger.services.time_entry_service import TimeEntryService


@pytest.fixture
async def history(seed):
    return await seed(
        WorkSession(
            employee_id="E1",
            date=date(2025, 6, 1),
            entry_type=EntryType.HOURS,
            hours=Decimal("8"),
            total_payment=Decimal("400"),
        )
    )


class TestSaveMixedLeave:
    """Test bulk leave across employees and dates."""

    @pytest.mark.asyncio
    async def test_valid_rows_saved_and_bad_rows_reported(self, make_service, history, seed, ledger_store, caplog):
        """Test that skipped rows are reported while valid rows are written."""
        (work,) = await seed(
            WorkSession(
                employee_id="E2",
                date=date(2025, 6, 10),
                entry_type=EntryType.HOURS,
                hours=Decimal("8"),
                total_payment=Decimal("300"),
            )
        )
        items = [
            MixedLeaveItem(employee_id="E1", date=date(2025, 6, 10), paid=True, subtype="holiday"),
            MixedLeaveItem(employee_id="E3", date=date(2025, 6, 11), paid=False, subtype="vacation"),
            MixedLeaveItem(employee_id="E2", date=date(2025, 6, 10), paid=True),
            MixedLeaveItem(employee_id="E1", date=date(2023, 6, 1), paid=False),
            MixedLeaveItem(employee_id="E9", date=date(2025, 6, 10)),
        ]

        result = await make_service().save_mixed_leave(items)

        assert [s.entry_type for s in result.inserted] == [EntryType.LEAVE_SYSTEM_PAID, EntryType.LEAVE_UNPAID]
        paid = result.inserted[0]
        assert paid.total_payment == Decimal("400")
        assert paid.metadata.source == "multi_date"
        assert paid.metadata.leave.kind == "system_paid"
        assert paid.metadata.leave.subtype == "holiday"
        assert result.inserted[1].metadata.leave.kind == "vacation_unpaid"

        assert [e.balance for e in ledger_store.entries] == [Decimal("0"), Decimal("0")]
        assert {e.work_session_id for e in result.ledger_inserted} == {s.id for s in result.inserted}

        (conflict,) = result.conflicts
        assert (conflict.employee_id, conflict.reason, conflict.session_ids) == ("E2", "work", (work.id,))
        assert result.invalid_start_dates == [
            {"employee_id": "E1", "date": "2023-06-01", "start_date": "2024-01-01"}
        ]
        assert "unknown employee E9" in caplog.text

    @pytest.mark.asyncio
    async def test_capacity_within_batch(self, make_service):
        """Test that a second row on the same cell exceeds capacity."""
        items = [
            MixedLeaveItem(employee_id="E3", date=date(2025, 6, 11), paid=False),
            MixedLeaveItem(employee_id="E3", date=date(2025, 6, 11), paid=False, subtype="vacation"),
        ]

        result = await make_service().save_mixed_leave(items)

        assert len(result.inserted) == 1
        assert [c.reason for c in result.conflicts] == ["capacity"]

    @pytest.mark.asyncio
    async def test_balance_tracked_across_rows(self, make_service, history, ledger_store):
        """Test that earlier rows in the batch count against the balance."""
        await ledger_store.create_entries(
            [
                LeaveLedgerEntry(
                    employee_id="E1",
                    effective_date=date(2025, 1, 5),
                    balance=Decimal("-11"),
                    leave_type="manual_usage",
                )
            ]
        )
        items = [
            MixedLeaveItem(employee_id="E1", date=date(2025, 6, 10), subtype="vacation"),
            MixedLeaveItem(employee_id="E1", date=date(2025, 6, 11), subtype="vacation"),
        ]

        result = await make_service().save_mixed_leave(items)

        assert [s.date for s in result.inserted] == [date(2025, 6, 10)]
        assert result.ledger_inserted[0].balance == Decimal("-1")
        assert [(c.date, c.reason) for c in result.conflicts] == [(date(2025, 6, 11), "balance")]

    @pytest.mark.asyncio
    async def test_custom_source(self, make_service):
        result = await make_service().save_mixed_leave(
            [MixedLeaveItem(employee_id="E3", date=date(2025, 6, 11), paid=False)],
            MixedLeaveOptions(source="calendar"),
        )

        assert result.inserted[0].metadata.source == "calendar"

    @pytest.mark.asyncio
    async def test_no_valid_rows(self, make_service, record_store):
        """Test that a batch with nothing to write fails."""
        with pytest.raises(NoValidRows) as exc_info:
            await make_service().save_mixed_leave(
                [MixedLeaveItem(employee_id="E1", date=date(2023, 6, 1), paid=False)]
            )

        assert exc_info.value.details["invalid_start_dates"][0]["date"] == "2023-06-01"
        assert record_store.rows == []

    @pytest.mark.asyncio
    async def test_empty_batch(self, make_service):
        with pytest.raises(NoValidRows):
            await make_service().save_mixed_leave([])

    @pytest.mark.asyncio
    async def test_row_without_day_value_is_skipped(
        self, request_context, hourly_employee, instructor_employee, record_store, ledger_store, caplog
    ):
        """Test that a paid row nobody can value is reported while the batch goes on."""
        service = TimeEntryService(
            context=request_context,
            employees=[hourly_employee, instructor_employee],
            record_store=record_store,
            ledger_store=ledger_store,
            rate_lookup=RateHistoryLookup(),
        )
        items = [
            MixedLeaveItem(employee_id="E1", date=date(2025, 6, 10), subtype="vacation"),
            MixedLeaveItem(employee_id="E3", date=date(2025, 6, 10), subtype="vacation"),
        ]

        result = await service.save_mixed_leave(items)

        assert [(c.employee_id, c.reason) for c in result.conflicts] == [("E1", "rate")]
        (saved,) = result.inserted
        assert saved.employee_id == "E3"
        assert saved.total_payment == Decimal("120")
        assert [e.employee_id for e in ledger_store.entries] == ["E3"]
        assert "no day value" in caplog.text
