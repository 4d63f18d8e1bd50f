"""Pytest fixtures for leave ledger tests."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from leave_ledger.calculators.rate_lookup import RateHistoryEntry, RateHistoryLookup
from leave_ledger.calculators.types import (
    Employee,
    EmployeeType,
    RateCalculationMethod,
    Service,
    WorkSession,
)
from leave_ledger.models import Base
from leave_ledger.policy import LeavePayPolicy, LeavePolicy
from leave_ledger.services.time_entry_service import RequestContext, TimeEntryService
from leave_ledger.stores.memory import InMemoryLedgerStore, InMemoryRecordStore

# Use in-memory SQLite for tests (with async support)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

HOURLY_ID = "E1"
GLOBAL_ID = "E2"
INSTRUCTOR_ID = "E3"
SERVICE_SESSION_ID = "svc-group"
SERVICE_STUDENT_ID = "svc-private"


@pytest.fixture
def hourly_employee() -> Employee:
    return Employee(
        id=HOURLY_ID,
        employee_type=EmployeeType.HOURLY,
        start_date=date(2024, 1, 1),
        annual_leave_days=Decimal("12"),
    )


@pytest.fixture
def global_employee() -> Employee:
    # June 2025 has 22 Sunday-Thursday working days: 6600 / 22 = 300 per day
    return Employee(
        id=GLOBAL_ID,
        employee_type=EmployeeType.GLOBAL,
        start_date=date(2024, 1, 1),
        annual_leave_days=Decimal("12"),
    )


@pytest.fixture
def instructor_employee() -> Employee:
    return Employee(
        id=INSTRUCTOR_ID,
        employee_type=EmployeeType.INSTRUCTOR,
        start_date=date(2024, 1, 1),
        annual_leave_days=Decimal("10"),
        current_rate=Decimal("120"),
    )


@pytest.fixture
def services() -> list[Service]:
    return [
        Service(id=SERVICE_SESSION_ID, name="Group lesson", duration_minutes=45),
        Service(
            id=SERVICE_STUDENT_ID,
            name="Private lesson",
            duration_minutes=60,
            payment_model=RateCalculationMethod.PER_STUDENT,
        ),
    ]


@pytest.fixture
def rate_lookup() -> RateHistoryLookup:
    return RateHistoryLookup(
        [
            RateHistoryEntry(HOURLY_ID, date(2024, 1, 1), Decimal("50")),
            RateHistoryEntry(GLOBAL_ID, date(2024, 1, 1), Decimal("6600")),
            RateHistoryEntry(INSTRUCTOR_ID, date(2024, 1, 1), Decimal("120"), SERVICE_SESSION_ID),
            RateHistoryEntry(INSTRUCTOR_ID, date(2024, 1, 1), Decimal("40"), SERVICE_STUDENT_ID),
        ]
    )


@pytest.fixture
def record_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def ledger_store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def seed(record_store):
    """Persist sessions directly, returning the stored rows."""

    async def factory(*sessions: WorkSession) -> list[WorkSession]:
        return await record_store.create(list(sessions))

    return factory


@pytest.fixture
def request_context() -> RequestContext:
    return RequestContext(user_id="user-1", org_id="org-1")


@pytest.fixture
def make_service(
    request_context,
    hourly_employee,
    global_employee,
    instructor_employee,
    services,
    record_store,
    ledger_store,
    rate_lookup,
):
    """Build a TimeEntryService over the shared in-memory stores."""

    def factory(
        leave_policy: LeavePolicy | None = None,
        leave_pay_policy: LeavePayPolicy | None = None,
        context: RequestContext | None = None,
    ) -> TimeEntryService:
        return TimeEntryService(
            context=context or request_context,
            employees=[hourly_employee, global_employee, instructor_employee],
            services=services,
            record_store=record_store,
            ledger_store=ledger_store,
            rate_lookup=rate_lookup,
            leave_policy=leave_policy or LeavePolicy(allow_half_day=True),
            leave_pay_policy=leave_pay_policy,
        )

    return factory


@pytest.fixture
async def engine():
    """Create test database engine."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(engine) -> AsyncSession:
    """Create a test database session."""
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session
        await session.rollback()

