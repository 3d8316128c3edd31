"""
Unit tests for RecordParser

Covers CSV layout tolerance (whitespace, short rows), amount handling,
malformed-row policy and fatal input errors.
"""

from __future__ import annotations
import io
import sys
import warnings
from decimal import Decimal
from pathlib import Path

import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
from exceptions import AmountParseError, InputSourceError, RecordParseError
from models import TransactionKind
from record_parser import RecordParser


class TestRecordParser:
    @pytest.fixture
    def parser(self):
        return RecordParser()

    @pytest.fixture
    def write_csv(self, tmp_path):
        def _write(*lines):
            csv_file = tmp_path / "transactions.csv"
            csv_file.write_text("\n".join(lines) + "\n")
            return csv_file
        return _write

    # ---------------------------
    # Layout
    # ---------------------------
    def test_parses_padded_rows(self, parser, write_csv):
        csv_file = write_csv(
            "type, client, tx, amount",
            "deposit, 1, 1, 1.0",
            "withdrawal,  2, 5, 3.25 ",
            "dispute, 1, 1,",
        )
        records = list(parser.parse_file(csv_file))

        assert [r.kind for r in records] == [
            TransactionKind.DEPOSIT,
            TransactionKind.WITHDRAWAL,
            TransactionKind.DISPUTE,
        ]
        assert records[0].client_id == 1
        assert records[0].amount == Decimal("1.0000")
        assert records[1].client_id == 2
        assert records[1].tx_id == 5
        assert records[1].amount == Decimal("3.25")
        assert records[2].amount is None

    def test_dispute_rows_may_omit_amount_column(self, parser, write_csv):
        csv_file = write_csv(
            "type,client,tx,amount",
            "deposit,1,1,10",
            "dispute,1,1",
            "resolve,1,1",
            "chargeback,1,1",
        )
        records = list(parser.parse_file(csv_file))
        assert [r.kind.value for r in records] == ["deposit", "dispute", "resolve", "chargeback"]
        assert all(r.amount is None for r in records[1:])

    def test_file_without_amount_column(self, parser, write_csv):
        csv_file = write_csv("type,client,tx", "dispute,3,9")
        records = list(parser.parse_file(csv_file))
        assert len(records) == 1
        assert records[0].client_id == 3

    def test_dispute_amount_is_ignored(self, parser, write_csv):
        csv_file = write_csv("type,client,tx,amount", "dispute,1,1,5.0")
        assert list(parser.parse_file(csv_file))[0].amount is None

    def test_type_is_case_insensitive(self, parser, write_csv):
        csv_file = write_csv("type,client,tx,amount", "Deposit,1,1,1")
        assert list(parser.parse_file(csv_file))[0].kind is TransactionKind.DEPOSIT

    def test_amount_rounded_to_four_places(self, parser, write_csv):
        csv_file = write_csv("type,client,tx,amount", "deposit,1,1,2.00005", "deposit,1,2,2.00015")
        amounts = [r.amount for r in parser.parse_file(csv_file)]
        assert amounts == [Decimal("2.0000"), Decimal("2.0002")]

    def test_header_only_yields_nothing(self, parser, write_csv):
        csv_file = write_csv("type, client, tx, amount")
        assert list(parser.parse_file(csv_file)) == []

    def test_empty_file_yields_nothing(self, parser, tmp_path):
        csv_file = tmp_path / "empty.csv"
        csv_file.write_text("")
        assert list(parser.parse_file(csv_file)) == []

    def test_parse_buffer(self, parser):
        buffer = io.StringIO("type,client,tx,amount\ndeposit,7,8,9.5\n")
        records = list(parser.parse_buffer(buffer))
        assert records[0].client_id == 7
        assert records[0].amount == Decimal("9.5")

    def test_records_stream_across_chunks(self, write_csv):
        rows = [f"deposit,1,{tx},1" for tx in range(10)]
        csv_file = write_csv("type,client,tx,amount", *rows)
        records = list(RecordParser(chunk_size=3).parse_file(csv_file))
        assert [r.tx_id for r in records] == list(range(10))

    @pytest.mark.parametrize("skip_malformed", [False, True])
    @pytest.mark.parametrize(
        "rows",
        [
            ("deposit,1,1,1.0,extra", "deposit,1,2,1.0", "deposit,1,3,2.0"),
            ("deposit,1,1,1.0", "deposit,1,2,1.0,extra", "deposit,1,3,2.0"),
            ("deposit,1,1,1.0", "deposit,1,2,1.0", "deposit,1,3,2.0,extra,more"),
        ],
    )
    def test_extra_trailing_fields_are_ignored_on_any_row(
        self, write_csv, rows, skip_malformed
    ):
        csv_file = write_csv("type,client,tx,amount", *rows)
        parser = RecordParser(chunk_size=2, skip_malformed=skip_malformed)

        with warnings.catch_warnings():
            warnings.simplefilter("error", pd.errors.ParserWarning)
            records = list(parser.parse_file(csv_file))

        assert [(r.tx_id, r.amount) for r in records] == [
            (1, Decimal("1.0")),
            (2, Decimal("1.0")),
            (3, Decimal("2.0")),
        ]
        assert parser.malformed_count == 0

    def test_extra_field_on_dispute_row_without_amount(self, parser, write_csv):
        csv_file = write_csv("type,client,tx,amount", "deposit,1,1,4", "dispute,1,1,,note")
        records = list(parser.parse_file(csv_file))
        assert records[1].kind is TransactionKind.DISPUTE
        assert records[1].amount is None

    def test_blank_lines_are_skipped(self, parser, write_csv):
        csv_file = write_csv(
            "type,client,tx,amount", "", "deposit,1,1,1", "   ", "", "deposit,1,2,1", ""
        )
        assert [r.tx_id for r in parser.parse_file(csv_file)] == [1, 2]
        assert parser.malformed_count == 0

    def test_line_numbers_count_blank_lines(self, parser, write_csv):
        csv_file = write_csv("type,client,tx,amount", "", "", "deposit,1,1,1", "refund,1,2,1")
        with pytest.raises(RecordParseError) as exc_info:
            list(parser.parse_file(csv_file))
        assert exc_info.value.line_number == 5
        assert str(exc_info.value).startswith("line 5: ")

    # ---------------------------
    # Malformed rows
    # ---------------------------
    def test_unknown_type_reports_line(self, parser, write_csv):
        csv_file = write_csv("type,client,tx,amount", "deposit,1,1,1", "refund,1,2,1")
        with pytest.raises(RecordParseError) as exc_info:
            list(parser.parse_file(csv_file))
        assert exc_info.value.line_number == 3
        assert "refund" in str(exc_info.value)

    def test_line_numbers_span_chunks(self, write_csv):
        csv_file = write_csv(
            "type,client,tx,amount",
            "deposit,1,1,1",
            "deposit,1,2,1",
            "deposit,1,3,1",
            "deposit,1,4,1",
            "deposit,x,5,1",
        )
        with pytest.raises(RecordParseError) as exc_info:
            list(RecordParser(chunk_size=2).parse_file(csv_file))
        assert exc_info.value.line_number == 6

    @pytest.mark.parametrize(
        "row",
        [
            "deposit,1,1,-5",
            "deposit,1,1,",
            "withdrawal,1,1,abc",
        ],
    )
    def test_invalid_amounts(self, parser, write_csv, row):
        csv_file = write_csv("type,client,tx,amount", row)
        with pytest.raises(AmountParseError) as exc_info:
            list(parser.parse_file(csv_file))
        assert exc_info.value.line_number == 2

    @pytest.mark.parametrize(
        "row",
        [
            "deposit,70000,1,1",
            "deposit,1,4294967296,1",
            "deposit,-1,1,1",
            "deposit,1.5,1,1",
            "deposit,,1,1",
            "dispute,1,abc",
        ],
    )
    def test_invalid_ids(self, parser, write_csv, row):
        csv_file = write_csv("type,client,tx,amount", row)
        with pytest.raises(RecordParseError):
            list(parser.parse_file(csv_file))

    def test_missing_header_column(self, parser, write_csv):
        csv_file = write_csv("type,account,tx,amount", "deposit,1,1,1")
        with pytest.raises(RecordParseError, match="client"):
            list(parser.parse_file(csv_file))

    def test_skip_malformed_counts_and_continues(self, write_csv):
        csv_file = write_csv(
            "type,client,tx,amount",
            "deposit,1,1,1",
            "bogus,1,2,1",
            "deposit,1,3,-1",
            "deposit,1,4,2",
        )
        parser = RecordParser(skip_malformed=True)
        records = list(parser.parse_file(csv_file))

        assert [r.tx_id for r in records] == [1, 4]
        assert parser.malformed_count == 2

    # ---------------------------
    # Fatal input errors
    # ---------------------------
    def test_missing_file_raises(self, parser, tmp_path):
        with pytest.raises(InputSourceError):
            parser.parse_file(tmp_path / "nope.csv")

    def test_directory_is_not_an_input_file(self, parser, tmp_path):
        with pytest.raises(InputSourceError):
            parser.parse_file(tmp_path)

    # ---------------------------
    # parse_row
    # ---------------------------
    def test_parse_row_directly(self, parser):
        record = parser.parse_row(" withdrawal ", " 4 ", "10", " 0.5 ")
        assert record.kind is TransactionKind.WITHDRAWAL
        assert record.client_id == 4
        assert record.tx_id == 10
        assert record.amount == Decimal("0.5")

    def test_parse_row_without_line_number(self, parser):
        with pytest.raises(RecordParseError) as exc_info:
            parser.parse_row("deposit", "1", "1", None)
        assert exc_info.value.line_number is None
