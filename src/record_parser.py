from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import IO, Iterator, Optional, Union

import pandas as pd
from pydantic import ValidationError

from exceptions import InputSourceError, RecordParseError
from models import TransactionKind, TransactionRecord, parse_amount

logger = logging.getLogger(__name__)

_ID_PATTERN = re.compile(r"^[0-9]+$")


def _clean(value: object) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value).strip()


class RecordParser:
    """
    Reads transaction records from delimited text.

    Expects a header row naming the columns ``type, client, tx, amount``.
    Whitespace around fields is ignored and dispute-family rows may omit the
    trailing amount column. Fields beyond the named columns are ignored on
    every row, and blank lines are skipped. Every column is read as text so
    amounts never pass through binary floating point.

    Unknown type names are malformed rows: fatal unless ``skip_malformed``
    is set, in which case they are skipped without creating an account.
    """

    REQUIRED_COLUMNS = ("type", "client", "tx")
    AMOUNT_COLUMN = "amount"
    COLUMNS = REQUIRED_COLUMNS + (AMOUNT_COLUMN,)

    def __init__(self, chunk_size: int = 100_000, skip_malformed: bool = False) -> None:
        self.chunk_size = chunk_size
        self.skip_malformed = skip_malformed
        self.malformed_count = 0

    def parse_file(self, path: Union[str, Path]) -> Iterator[TransactionRecord]:
        """
        Stream records from a CSV file.
        Raises InputSourceError before yielding anything if the file is missing or unreadable.
        """
        path = Path(path)
        if not path.is_file():
            raise InputSourceError(f"Input file not found: {path}")

        logger.info(f"Reading transaction records from {path}")
        return self.parse_buffer(path)

    def parse_buffer(self, source: Union[str, Path, IO[str]]) -> Iterator[TransactionRecord]:
        """Stream records from anything pandas.read_csv accepts."""
        try:
            # Selecting columns turns off the tokenizer's field-count check,
            # so surplus trailing fields are dropped the same way on every row.
            # Blank lines are kept as empty rows to keep line numbers physical.
            reader = pd.read_csv(
                source,
                dtype=str,
                keep_default_na=False,
                skipinitialspace=True,
                skip_blank_lines=False,
                index_col=False,
                usecols=self._is_known_column,
                chunksize=self.chunk_size,
            )
        except pd.errors.EmptyDataError:
            logger.warning("Input contains no header row; nothing to process")
            return iter(())
        except OSError as e:
            raise InputSourceError(f"Cannot read input: {e}") from e

        return self._iter_records(reader)

    @classmethod
    def _is_known_column(cls, name: object) -> bool:
        return str(name).strip().lower() in cls.COLUMNS

    def _iter_records(self, reader) -> Iterator[TransactionRecord]:
        row_offset = 0
        with reader:
            try:
                for chunk in reader:
                    chunk.columns = [str(c).strip().lower() for c in chunk.columns]
                    missing = [c for c in self.REQUIRED_COLUMNS if c not in chunk.columns]
                    if missing:
                        raise RecordParseError(
                            f"Input header is missing column(s): {', '.join(missing)}",
                            line_number=1,
                        )
                    if self.AMOUNT_COLUMN not in chunk.columns:
                        chunk[self.AMOUNT_COLUMN] = ""

                    columns = chunk[list(self.COLUMNS)]
                    for idx, (kind, client, tx, amount) in enumerate(
                        columns.itertuples(index=False, name=None)
                    ):
                        if not any(_clean(v) for v in (kind, client, tx, amount)):
                            continue
                        # Header occupies line 1.
                        line_number = row_offset + idx + 2
                        record = self._parse_or_skip(kind, client, tx, amount, line_number)
                        if record is not None:
                            yield record
                    row_offset += len(chunk)
            except (pd.errors.ParserError, UnicodeDecodeError) as e:
                raise RecordParseError(f"Malformed CSV input: {e}") from e

        if self.malformed_count:
            logger.warning(f"Skipped {self.malformed_count} malformed record(s)")

    def _parse_or_skip(
        self, kind: object, client: object, tx: object, amount: object, line_number: int
    ) -> Optional[TransactionRecord]:
        try:
            return self.parse_row(kind, client, tx, amount, line_number=line_number)
        except RecordParseError as exc:
            if not self.skip_malformed:
                raise
            self.malformed_count += 1
            logger.warning(f"Skipping malformed record: {exc}")
            return None

    def parse_row(
        self,
        kind: object,
        client: object,
        tx: object,
        amount: object = None,
        line_number: Optional[int] = None,
    ) -> TransactionRecord:
        """Convert raw column values into a validated TransactionRecord."""
        kind_text = _clean(kind).lower()
        try:
            record_kind = TransactionKind(kind_text)
        except ValueError:
            raise RecordParseError(
                f"unknown transaction type {kind_text!r}", line_number=line_number
            ) from None

        client_id = self._parse_id(client, "client", line_number)
        tx_id = self._parse_id(tx, "tx", line_number)

        parsed_amount = None
        if record_kind.moves_funds:
            try:
                parsed_amount = parse_amount(_clean(amount))
            except RecordParseError as exc:
                raise type(exc)(str(exc), line_number=line_number) from exc

        try:
            return TransactionRecord(
                kind=record_kind, client_id=client_id, tx_id=tx_id, amount=parsed_amount
            )
        except ValidationError as exc:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
            )
            raise RecordParseError(details, line_number=line_number) from exc

    @staticmethod
    def _parse_id(value: object, column: str, line_number: Optional[int]) -> int:
        text = _clean(value)
        if not _ID_PATTERN.match(text):
            raise RecordParseError(
                f"{column} must be a non-negative integer, got {text!r}",
                line_number=line_number,
            )
        return int(text)
