"""Leave ledger command line interface.

Provides operational tools for:
- Schema creation
- Ledger listing with running balance
- Balance replay for one employee

Usage:
    python -m leave_ledger init-db
    python -m leave_ledger ledger --employee-id E1 --until 2025-12-31
    python -m leave_ledger balance --employee-id E1 --date 2025-06-01 --annual-days 12
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import date
from decimal import Decimal

from leave_ledger.calculators.balance import compute_leave_summary
from leave_ledger.calculators.types import Employee, EmployeeType
from leave_ledger.config import get_settings
from leave_ledger.database import create_schema, dispose_db, get_session, init_db
from leave_ledger.policy import LeavePolicy
from leave_ledger.stores.sql import SqlLedgerStore


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


class LeaveLedgerCli:
    """Leave ledger command line interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m leave_ledger",
            description="Leave ledger operational tools",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Database URL (default: $DATABASE_URL)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser(
            "init-db",
            help="Create the work_sessions and leave_balances tables",
        )

        ledger = subparsers.add_parser(
            "ledger",
            help="List an employee's leave ledger with a running total",
        )
        ledger.add_argument("--employee-id", type=str, required=True, help="Employee ID")
        ledger.add_argument("--until", type=parse_date, help="Last effective date (ISO format)")

        balance = subparsers.add_parser(
            "balance",
            help="Replay an employee's balance at a date",
        )
        balance.add_argument("--employee-id", type=str, required=True, help="Employee ID")
        balance.add_argument("--date", type=parse_date, default=date.today(), help="Evaluation date (ISO format)")
        balance.add_argument("--annual-days", type=Decimal, default=Decimal("0"), help="Annual leave quota")
        balance.add_argument("--start-date", type=parse_date, help="Employee start date (ISO format)")
        balance.add_argument(
            "--carryover-max",
            type=Decimal,
            help="Enable carry-over capped at this many days",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run CLI with arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        logging.basicConfig(level=get_settings().log_level)
        init_db(parsed.database_url)

        handlers = {
            "init-db": self._cmd_init_db,
            "ledger": self._cmd_ledger,
            "balance": self._cmd_balance,
        }
        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1
        return asyncio.run(self._run_handler(handler, parsed))

    async def _run_handler(self, handler, parsed: argparse.Namespace) -> int:
        try:
            return await handler(parsed)
        finally:
            await dispose_db()

    async def _cmd_init_db(self, args: argparse.Namespace) -> int:
        await create_schema()
        print("Schema created.")
        return 0

    async def _cmd_ledger(self, args: argparse.Namespace) -> int:
        async with get_session() as session:
            entries = await SqlLedgerStore(session).fetch_entries(args.employee_id, args.until)

        print(f"Leave ledger for employee: {args.employee_id}")
        running = Decimal("0")
        for entry in entries:
            running += entry.balance
            print(
                f"  {entry.effective_date.isoformat()}  {entry.leave_type:<36} "
                f"{entry.balance:>8}  {running:>8}"
            )
        print(f"\n  Entries: {len(entries)}")
        print(f"  Net change: {running}")
        return 0

    async def _cmd_balance(self, args: argparse.Namespace) -> int:
        employee = Employee(
            id=args.employee_id,
            employee_type=EmployeeType.HOURLY,
            start_date=args.start_date,
            annual_leave_days=args.annual_days,
        )
        policy = LeavePolicy(
            carryover_enabled=args.carryover_max is not None,
            carryover_max_days=args.carryover_max or Decimal("0"),
        )
        async with get_session() as session:
            entries = await SqlLedgerStore(session).fetch_entries(args.employee_id, args.date)

        summary = compute_leave_summary(employee, entries, policy, args.date)
        print(f"Leave balance for employee {args.employee_id} on {args.date.isoformat()}")
        print(f"  Quota:     {summary.quota:>10}")
        print(f"  Carry in:  {summary.carry_in:>10}")
        print(f"  Used:      {summary.used:>10}")
        print(f"  Remaining: {summary.remaining:>10}")
        return 0


def main() -> int:
    """CLI entry point."""
    cli = LeaveLedgerCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
