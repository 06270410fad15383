"""Shift payroll command line interface.

Provides:
- Period boundary lookup
- Withholding with the built-in tables
- Bulk cadence reassignment
- Period resync
- Period rebuild (maintenance backfill)

Usage:
    python -m shift_payroll boundary --at 2024-03-15T09:00:00Z --cadence FORTNIGHTLY
    python -m shift_payroll withhold --earnings 1000 --scale scale2
    python -m shift_payroll reassign --user-id U --cadence MONTHLY
    python -m shift_payroll resync --period-id P [--period-id Q] [--force]
    python -m shift_payroll rebuild-periods [--user-id U]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime
from typing import Any, Awaitable, Callable
from uuid import UUID

from shift_payroll.calculators.money import InvalidDecimalInputError, parse_decimal
from shift_payroll.calculators.period_boundary import (
    PeriodBoundaryCalculator,
    UnsupportedCadenceError,
    parse_cadence,
)
from shift_payroll.calculators.tax_calculator import NoBracketFoundError, TaxWithholdingEngine
from shift_payroll.calculators.tax_defaults import DEFAULT_TAX_YEAR, default_coefficient_table, default_levy_table
from shift_payroll.calculators.types import TaxRounding
from shift_payroll.config import get_settings
from shift_payroll.database import get_session
from shift_payroll.services.state_machine import InvalidTransitionError, PeriodLockedError
from shift_payroll.services.store import (
    PayPeriodNotFoundError,
    ShiftNotFoundError,
    SqlAlchemyPayrollStore,
    UserNotFoundError,
)
from shift_payroll.services.sync_service import PayPeriodSynchronizer

logger = logging.getLogger(__name__)

ENGINE_ERRORS = (
    UnsupportedCadenceError,
    NoBracketFoundError,
    InvalidDecimalInputError,
    PeriodLockedError,
    InvalidTransitionError,
    PayPeriodNotFoundError,
    ShiftNotFoundError,
    UserNotFoundError,
)


def parse_datetime(s: str) -> datetime:
    """Parse ISO datetime string."""
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


def _dump(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


class ShiftPayrollCli:
    """Shift payroll command line interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m shift_payroll",
            description="Pay period and withholding tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        boundary = subparsers.add_parser("boundary", help="Show the pay period containing an instant")
        boundary.add_argument("--at", type=parse_datetime, required=True, help="Instant (ISO format)")
        boundary.add_argument("--cadence", required=True, help="WEEKLY, FORTNIGHTLY or MONTHLY")
        boundary.add_argument("--timezone", help="IANA timezone; UTC when omitted")

        withhold = subparsers.add_parser("withhold", help="Withholding for an earnings amount")
        withhold.add_argument("--earnings", required=True, help="Taxable earnings, e.g. 1000.00")
        withhold.add_argument("--scale", required=True, help="Withholding scale, e.g. scale2")
        withhold.add_argument("--levy", action="store_true", help="Add the study loan levy")
        withhold.add_argument("--cadence", help="Earnings cadence; weekly figure when omitted")
        withhold.add_argument("--tax-year", default=DEFAULT_TAX_YEAR, help="Tax year label")
        withhold.add_argument(
            "--rounding",
            choices=[r.value for r in TaxRounding],
            help="Override TAX_ROUNDING",
        )

        reassign = subparsers.add_parser("reassign", help="Change a user's cadence and move shifts")
        reassign.add_argument("--user-id", type=parse_uuid, required=True)
        reassign.add_argument("--cadence", required=True)

        resync = subparsers.add_parser("resync", help="Re-aggregate pay periods")
        resync.add_argument(
            "--period-id",
            type=parse_uuid,
            action="append",
            required=True,
            dest="period_ids",
        )
        resync.add_argument(
            "--force",
            action="store_true",
            help="Recompute verified periods too (admin)",
        )

        rebuild = subparsers.add_parser(
            "rebuild-periods",
            help="Re-derive every shift's period and re-sync touched periods",
        )
        rebuild.add_argument("--user-id", type=parse_uuid, help="Limit to one user")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        handlers: dict[str, Callable[[argparse.Namespace], int]] = {
            "boundary": self._cmd_boundary,
            "withhold": self._cmd_withhold,
            "reassign": self._cmd_reassign,
            "resync": self._cmd_resync,
            "rebuild-periods": self._cmd_rebuild_periods,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return handler(parsed)
        except ENGINE_ERRORS as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1

    def _cmd_boundary(self, args: argparse.Namespace) -> int:
        """Print the enclosing pay period."""
        cadence = parse_cadence(args.cadence)
        period = PeriodBoundaryCalculator().period_for(args.at, cadence, args.timezone)
        _dump(
            {
                "cadence": cadence.value,
                "timezone": args.timezone,
                "start": period.start.isoformat(),
                "end": period.end.isoformat(),
            }
        )
        return 0

    def _cmd_withhold(self, args: argparse.Namespace) -> int:
        """Withhold from earnings using the built-in tables."""
        settings = get_settings()
        earnings = parse_decimal(args.earnings, "earnings")
        cadence = parse_cadence(args.cadence) if args.cadence else None
        engine = TaxWithholdingEngine(
            default_coefficient_table(args.tax_year),
            default_levy_table(args.tax_year),
            rounding=TaxRounding(args.rounding or settings.tax_rounding),
            debug_log=settings.tax_debug,
        )
        result = engine.withhold_breakdown(earnings, args.scale, has_levy=args.levy, cadence=cadence)
        _dump(
            {
                "earnings": earnings,
                "scale": args.scale,
                "cadence": cadence.value if cadence else None,
                "income_tax": result.income_tax,
                "levy": result.levy,
                "tax_withheld": result.total,
            }
        )
        return 0

    def _cmd_reassign(self, args: argparse.Namespace) -> int:
        """Bulk reassignment after a cadence change."""

        async def action(sync: PayPeriodSynchronizer) -> Any:
            result = await sync.reassign_all(args.user_id, args.cadence)
            return result.to_dict()

        _dump(self._run_with_synchronizer(action))
        return 0

    def _cmd_resync(self, args: argparse.Namespace) -> int:
        """Re-aggregate the given periods."""

        async def action(sync: PayPeriodSynchronizer) -> Any:
            totals = await sync.resync(args.period_ids, force=args.force)
            return {str(pid): vars(t) for pid, t in totals.items()}

        _dump(self._run_with_synchronizer(action))
        return 0

    def _cmd_rebuild_periods(self, args: argparse.Namespace) -> int:
        """Maintenance backfill of period assignments."""

        async def action(sync: PayPeriodSynchronizer) -> Any:
            results = await sync.rebuild_periods(args.user_id)
            return [r.to_dict() for r in results]

        _dump(self._run_with_synchronizer(action))
        return 0

    def _run_with_synchronizer(self, action: Callable[[PayPeriodSynchronizer], Awaitable[Any]]) -> Any:
        async def runner() -> Any:
            async with get_session() as session:
                store = SqlAlchemyPayrollStore(session)
                sync = PayPeriodSynchronizer.from_settings(store, get_settings())
                return await action(sync)

        return asyncio.run(runner())


def main() -> int:
    """CLI entry point."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cli = ShiftPayrollCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
