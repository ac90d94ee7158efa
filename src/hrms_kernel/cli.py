"""HRMS kernel command line interface.

Provides operational tools for:
- Attendance media retention sweeps
- Retention compliance reporting
- Auto clock-out of records left open

Usage:
    hrms-kernel retention-sweep [--dry-run] [--force] [--batch=N] [--verbose]
    hrms-kernel compliance
    hrms-kernel auto-close [--date YYYY-MM-DD]
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal
import sys
from datetime import date
from typing import Awaitable, Callable, TextIO

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hrms_kernel.config import AttendanceConfig, RetentionConfig, get_settings
from hrms_kernel.database import get_engine, make_session_factory
from hrms_kernel.exceptions import ConfigError
from hrms_kernel.logging_config import configure_logging
from hrms_kernel.repository import RetentionCounts
from hrms_kernel.services.clock_service import AutoCloseReport, ClockService
from hrms_kernel.services.retention import RetentionReport, RetentionSweeper

SessionFactory = async_sessionmaker[AsyncSession]


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


def positive_int(s: str) -> int:
    value = int(s)
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {s}")
    return value


class KernelCli:
    """HRMS kernel operator CLI."""

    def __init__(self, stdout: TextIO | None = None, stderr: TextIO | None = None) -> None:
        self.stdout = stdout or sys.stdout
        self.stderr = stderr or sys.stderr
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="hrms-kernel",
            description="HRMS kernel operational tools",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Database URL (default: $DATABASE_URL)",
        )
        parser.add_argument(
            "--verbose",
            "-v",
            action="store_true",
            help="Enable debug logging",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # retention-sweep command
        sweep = subparsers.add_parser(
            "retention-sweep",
            help="Clear selfies and addresses past the retention window",
        )
        sweep.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be cleared without writing",
        )
        sweep.add_argument(
            "--force",
            action="store_true",
            help="Ignore the soft window and clear all eligible media",
        )
        sweep.add_argument(
            "--batch",
            type=positive_int,
            help="Records per batch (default: $HRMS_BATCH_SIZE or 100)",
        )
        sweep.add_argument(
            "--date",
            type=parse_date,
            help="Run as if today were this date (ISO format)",
        )
        sweep.add_argument("--verbose", "-v", action="store_true", default=argparse.SUPPRESS)

        # compliance command
        compliance = subparsers.add_parser(
            "compliance",
            help="Report retention compliance counts",
        )
        compliance.add_argument("--date", type=parse_date, help="Report date (ISO format)")

        # auto-close command
        auto_close = subparsers.add_parser(
            "auto-close",
            help="Close clock records left open from earlier days",
        )
        auto_close.add_argument(
            "--date",
            type=parse_date,
            help="Close records with work dates before this date (default: today)",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help(self.stdout)
            return 1

        configure_logging(verbose=parsed.verbose, stream=self.stdout)

        handlers: dict[str, Callable[[argparse.Namespace, SessionFactory], Awaitable[int]]] = {
            "retention-sweep": self._cmd_retention_sweep,
            "compliance": self._cmd_compliance,
            "auto-close": self._cmd_auto_close,
        }
        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=self.stderr)
            return 1

        try:
            return asyncio.run(self._with_database(parsed, handler))
        except ConfigError as exc:
            print(f"Configuration error: {exc}", file=self.stderr)
            return 1

    async def _with_database(
        self,
        args: argparse.Namespace,
        handler: Callable[[argparse.Namespace, SessionFactory], Awaitable[int]],
    ) -> int:
        engine = get_engine(args.database_url or get_settings().database_url)
        try:
            return await handler(args, make_session_factory(engine))
        finally:
            await engine.dispose()

    async def _cmd_retention_sweep(self, args: argparse.Namespace, factory: SessionFactory) -> int:
        """Run one retention sweep."""
        config = RetentionConfig.from_env()
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(sig, stop_event.set)
        try:
            report = await RetentionSweeper(factory, config).sweep(
                today=args.date,
                dry_run=args.dry_run,
                force=args.force,
                batch_size=args.batch,
                stop_event=stop_event,
            )
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                with contextlib.suppress(NotImplementedError, RuntimeError):
                    loop.remove_signal_handler(sig)

        self._print_sweep_summary(report)
        return report.exit_code

    async def _cmd_compliance(self, args: argparse.Namespace, factory: SessionFactory) -> int:
        """Print retention compliance counts."""
        sweeper = RetentionSweeper(factory, RetentionConfig.from_env())
        today = args.date or sweeper.now().date()
        counts = await sweeper.compliance_counts(today)
        self._print_compliance(counts)
        return 0

    async def _cmd_auto_close(self, args: argparse.Namespace, factory: SessionFactory) -> int:
        """Auto clock-out records left working or on break."""
        settings = get_settings()
        service = ClockService(
            factory,
            config=AttendanceConfig.from_env(),
            timezone=settings.timezone,
        )
        report = await service.auto_close_open_records(today=args.date)
        self._print_auto_close_summary(report)
        return 1 if report.errors else 0

    # Output

    def _print(self, text: str = "") -> None:
        print(text, file=self.stdout)

    def _print_sweep_summary(self, report: RetentionReport) -> None:
        self._print()
        self._print("Retention Sweep Summary" + (" [DRY RUN]" if report.dry_run else ""))
        self._print("=" * 40)
        self._print(f"  Cutoff:     {report.cutoff.isoformat()}")
        self._print(f"  Processed:  {report.processed}")
        self._print(f"  Deleted:    {report.deleted}")
        self._print(f"  Skipped:    {report.skipped}")
        self._print(f"  Errors:     {report.errors}")
        if report.cancelled:
            self._print("  Cancelled:  yes")
        for entry in report.error_details:
            self._print(f"    - record {entry['record_id']}: {entry['error']}")
        if report.compliance is not None:
            self._print_compliance(report.compliance)

    def _print_compliance(self, counts: RetentionCounts) -> None:
        self._print()
        self._print("Compliance")
        self._print("-" * 40)
        self._print(f"  Total:      {counts.total}")
        self._print(f"  Pending:    {counts.pending}")
        self._print(f"  Overdue:    {counts.overdue}")
        self._print(f"  Completed:  {counts.completed}")

    def _print_auto_close_summary(self, report: AutoCloseReport) -> None:
        self._print()
        self._print("Auto Clock-Out Summary")
        self._print("=" * 40)
        self._print(f"  Closed:     {len(report.closed)}")
        self._print(f"  Skipped:    {len(report.skipped)}")
        self._print(f"  Errors:     {len(report.errors)}")


def main() -> int:
    """CLI entry point."""
    cli = KernelCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
