"""Exception hierarchy for the transaction ledger."""

from typing import Optional


class LedgerError(Exception):
    """Base exception for all ledger errors."""


class ConfigurationError(LedgerError):
    """Raised when settings are invalid or missing."""


class InputSourceError(LedgerError):
    """Raised when the input file cannot be opened or read."""


class RecordParseError(LedgerError):
    """Raised when an input row cannot be interpreted as a transaction record."""

    def __init__(self, message: str, line_number: Optional[int] = None) -> None:
        self.line_number = line_number
        if line_number is not None:
            message = f"line {line_number}: {message}"
        super().__init__(message)


class AmountParseError(RecordParseError):
    """Raised when an amount is not a valid non-negative decimal number."""


class BalanceOverflowError(LedgerError):
    """Raised when balance arithmetic cannot be carried out exactly."""


class LedgerInvariantError(LedgerError):
    """Raised when a balance invariant would be violated. Indicates a bug."""
