"""
Transaction Ledger - Main Entry Point

Resolves a CSV stream of deposits, withdrawals and dispute actions into
final per-client balances. Handles CLI arguments, logging setup, and
coordinates the parser, engine and report components.
"""

from __future__ import annotations
import argparse
import sys
from pathlib import Path
from typing import IO, List, Optional
import logging
import structlog
from dotenv import load_dotenv
from pydantic import ValidationError

from exceptions import LedgerError
from ledger_engine import LedgerEngine
from metrics import MetricsCollector, metrics, track_duration
from models import AccountReportRow, LedgerSummary, Settings
from record_parser import RecordParser
from report_generator import ReportGenerator


load_dotenv()


logger = structlog.get_logger()


class LedgerRun:
    """
    Coordinates a single ledger run.

    This class wires together:
    - RecordParser for streaming validated records from the input file
    - LedgerEngine for applying records in order
    - ReportGenerator for rendering final account rows
    - MetricsCollector for Prometheus counters

    Each instance owns its own engine, so runs never share state.
    """

    def __init__(
        self, settings: Settings, metrics_collector: MetricsCollector = metrics
    ) -> None:
        self.settings = settings
        self.record_parser = RecordParser(
            chunk_size=settings.CSV_CHUNK_SIZE,
            skip_malformed=settings.SKIP_MALFORMED_RECORDS,
        )
        self.ledger_engine = LedgerEngine()
        self.report_generator = ReportGenerator()
        self.metrics = metrics_collector

    @track_duration
    def process(self, input_path: Path) -> LedgerSummary:
        """Apply every record in the input file. Raises LedgerError on fatal input problems."""
        logger.info("Starting ledger run", input=str(input_path))
        records = self.record_parser.parse_file(input_path)
        summary = self.ledger_engine.process(records)
        summary.records_malformed = self.record_parser.malformed_count

        self.metrics.record_summary(summary)
        self.metrics.record_accounts(self.ledger_engine.accounts)
        logger.info(
            "Ledger run complete",
            applied=summary.records_applied,
            ignored=summary.records_ignored,
            malformed=summary.records_malformed,
            accounts=len(self.ledger_engine.accounts),
        )
        return summary

    def write_report(self, stream: IO[str], fmt: Optional[str] = None) -> List[AccountReportRow]:
        rows = self.report_generator.build_rows(self.ledger_engine.accounts)
        self.report_generator.render(rows, stream, fmt or self.settings.OUTPUT_FORMAT)
        return rows


def setup_logging(level: str = "WARNING", log_format: str = "json") -> None:
    """
    Configure structured logging on stderr.

    stdout is reserved for the account report, so every log line,
    structlog or stdlib, goes to stderr.
    """
    renderer = (
        structlog.dev.ConsoleRenderer(colors=False)
        if log_format == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", utc=False),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(
        format="%(message)s", level=getattr(logging, level), stream=sys.stderr, force=True
    )


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Resolve a transaction CSV into final client account balances.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py transactions.csv > accounts.csv
  python main.py transactions.csv --format json --output accounts.json
        """,
    )
    parser.add_argument("input", type=Path, help="Path to the transaction CSV file.")
    parser.add_argument(
        "--format",
        choices=["csv", "json"],
        default=None,
        help="Report format. Defaults to OUTPUT_FORMAT (csv).",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the report to this file instead of stdout.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Log level for stderr output. Defaults to LOG_LEVEL (WARNING).",
    )
    parser.add_argument(
        "--skip-malformed",
        action="store_true",
        help="Skip rows that cannot be parsed instead of aborting.",
    )
    parser.add_argument(
        "--summary",
        action="store_true",
        help="Print a short run summary to stderr.",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)

    try:
        settings = Settings()
    except ValidationError as e:
        setup_logging()
        logger.error("Failed to load settings. Check your environment or .env file.", error=str(e))
        return 1

    overrides = {}
    if args.format:
        overrides["OUTPUT_FORMAT"] = args.format
    if args.log_level:
        overrides["LOG_LEVEL"] = args.log_level
    if args.skip_malformed:
        overrides["SKIP_MALFORMED_RECORDS"] = True
    settings = settings.model_copy(update=overrides)

    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)

    if settings.METRICS_PORT is not None:
        MetricsCollector(port=settings.METRICS_PORT).start_metrics_server()

    run = LedgerRun(settings)
    try:
        summary = run.process(args.input)
        if args.output:
            with open(args.output, "w", newline="") as stream:
                rows = run.write_report(stream)
            logger.info("Report written", path=str(args.output))
        else:
            rows = run.write_report(sys.stdout)
    except LedgerError as e:
        logger.error("Ledger run failed", input=str(args.input), error=str(e))
        return 1
    except OSError as e:
        logger.error("Could not write report", error=str(e))
        return 1

    if args.summary:
        print(run.report_generator.build_summary(summary, rows), file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
