"""Command line entry point for shopbooks."""

import argparse
import asyncio
import sys
from collections.abc import Sequence
from datetime import UTC, date, datetime, time

import structlog

from shopbooks.clients.gemini import FinancialSnapshot, InsightClient
from shopbooks.config import configure_logging
from shopbooks.errors import LedgerError
from shopbooks.session import LedgerSession

logger = structlog.get_logger(__name__)


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an ISO date: {value!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shopbooks",
        description="Small-business point of sale and bookkeeping ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s summary                        # Print the financial summary
  %(prog)s run-due --as-of=2024-03-01     # Generate due recurring invoices
  %(prog)s ask "Why are expenses up?"     # Ask the AI analyst
        """,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    summary = subparsers.add_parser("summary", help="Print the financial summary")
    summary.add_argument(
        "--as-of", type=_iso_date, default=None, help="Report date (default: today)"
    )

    run_due = subparsers.add_parser(
        "run-due", help="Run recurring invoices and job payment reminders"
    )
    run_due.add_argument(
        "--as-of", type=_iso_date, default=None, help="Run date (default: today)"
    )

    ask = subparsers.add_parser("ask", help="Ask the AI analyst about the books")
    ask.add_argument("question", nargs="+", help="Question to ask")

    return parser


def _run_due(session: LedgerSession, as_of: date | None) -> str:
    run_date = as_of or session.store.today()
    generated = session.recurring.run_due(run_date)
    reminders = session.jobs.process_reminders(
        datetime.combine(run_date, time.min, tzinfo=UTC)
    )
    return (
        f"Recurring invoices generated: {generated}\n"
        f"Job payment reminders sent: {reminders}"
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Run a shopbooks command against the seeded books.

    Usage:
        shopbooks summary
        shopbooks run-due --as-of=2024-03-01
        shopbooks ask "How is cash flow looking?"
    """
    configure_logging()
    args = build_parser().parse_args(argv)

    try:
        session = LedgerSession.from_seed()
        if args.command == "summary":
            print(session.summary(args.as_of).to_text())
        elif args.command == "run-due":
            print(_run_due(session, args.as_of))
        else:
            question = " ".join(args.question)
            client = InsightClient(business_name=session.business_name)
            snapshot = FinancialSnapshot.from_store(session.store)
            print(asyncio.run(client.financial_insight(question, snapshot)))
    except LedgerError as e:
        logger.error("command_failed", command=args.command, code=e.code, error=e.message)
        return 1
    except KeyboardInterrupt:
        logger.info("command_interrupted", command=args.command)
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
