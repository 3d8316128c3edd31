"""
Account reporting module for CSV, JSON, and run summaries.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import IO, Dict, Iterable, List, Mapping

import pandas as pd
import structlog

from models import AccountReportRow, ClientAccount, LedgerSummary, quantize_amount

logger = structlog.get_logger()

REPORT_COLUMNS = ["client", "available", "held", "total", "locked"]


def format_amount(value: Decimal) -> str:
    """Render an amount with exactly four decimal places."""
    return f"{quantize_amount(value):f}"


class ReportGenerator:
    """Builds CSV, JSON, and text summaries from final account state."""

    def build_rows(self, accounts: Mapping[int, ClientAccount]) -> List[AccountReportRow]:
        """One row per account, ordered by client id; total is recomputed here."""
        return [
            AccountReportRow(
                client=account.client_id,
                available=account.available,
                held=account.held,
                total=account.total,
                locked=account.locked,
            )
            for _, account in sorted(accounts.items())
        ]

    def render(self, rows: Iterable[AccountReportRow], stream: IO[str], fmt: str = "csv") -> None:
        if fmt == "csv":
            self.write_csv(rows, stream)
        elif fmt == "json":
            self.write_json(rows, stream)
        else:
            raise ValueError(f"Unsupported report format: {fmt!r}")

    def write_csv(self, rows: Iterable[AccountReportRow], stream: IO[str]) -> None:
        data = [self._serialise_row(row) for row in rows]
        df = pd.DataFrame(data, columns=REPORT_COLUMNS)
        df.to_csv(stream, index=False, lineterminator="\n")
        logger.info("Wrote CSV account report", accounts=len(data))

    def write_json(self, rows: Iterable[AccountReportRow], stream: IO[str]) -> None:
        accounts = [self._serialise_row(row, csv_bool=False) for row in rows]
        report_data = {
            "report_metadata": {
                "generated_at": datetime.now(timezone.utc).isoformat(),
                "account_count": len(accounts),
            },
            "accounts": accounts,
        }
        json.dump(report_data, stream, indent=2)
        stream.write("\n")
        logger.info("Wrote JSON account report", accounts=len(accounts))

    def build_summary(self, summary: LedgerSummary, rows: List[AccountReportRow]) -> str:
        locked = sum(1 for row in rows if row.locked)
        funds = sum((row.total for row in rows), Decimal(0))
        held = sum((row.held for row in rows), Decimal(0))

        report = f"""
Ledger Run Summary
==================
Records applied: {summary.records_applied:,}
Records ignored: {summary.records_ignored:,}
Malformed rows skipped: {summary.records_malformed:,}
Accounts: {len(rows):,} ({locked:,} locked)
Total funds: {format_amount(funds)} ({format_amount(held)} held)
"""
        return report.strip()

    @staticmethod
    def _serialise_row(row: AccountReportRow, csv_bool: bool = True) -> Dict[str, object]:
        return {
            "client": row.client,
            "available": format_amount(row.available),
            "held": format_amount(row.held),
            "total": format_amount(row.total),
            "locked": str(row.locked).lower() if csv_bool else row.locked,
        }
