"""
models.py

Defines all core data models for the transaction ledger.
Models are built using Pydantic for validation and type safety, and all
monetary values are Decimals held at a fixed four-place scale.
"""

import re
from decimal import (
    ROUND_HALF_EVEN,
    Context,
    Decimal,
    DecimalException,
    DivisionByZero,
    Inexact,
    InvalidOperation,
    Overflow,
    Rounded,
)
from enum import Enum
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from exceptions import AmountParseError, BalanceOverflowError, LedgerInvariantError

CLIENT_ID_MAX = 65535
TX_ID_MAX = 4294967295

AMOUNT_PLACES = 4
AMOUNT_QUANTUM = Decimal(1).scaleb(-AMOUNT_PLACES)
ZERO = Decimal(0).quantize(AMOUNT_QUANTUM)

_AMOUNT_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")

# Parsing may round to four places; balance arithmetic may not round at all.
_PARSE_CONTEXT = Context(prec=38, rounding=ROUND_HALF_EVEN, traps=[InvalidOperation])
_BALANCE_CONTEXT = Context(
    prec=38,
    rounding=ROUND_HALF_EVEN,
    traps=[InvalidOperation, Inexact, Rounded, Overflow, DivisionByZero],
)


# -----------------------------------------------------------------------------
# 1. System Configuration Model
# -----------------------------------------------------------------------------
class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables or .env files.

    CLI flags take precedence over anything configured here.
    """

    LOG_LEVEL: str = Field(default="WARNING", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(
        default="json", description="Log renderer for stderr output"
    )
    CSV_CHUNK_SIZE: int = Field(
        default=100_000, gt=0, description="Rows read from the input per chunk"
    )
    SKIP_MALFORMED_RECORDS: bool = Field(
        default=False,
        description="Log and skip malformed input rows instead of aborting the run",
    )
    OUTPUT_FORMAT: Literal["csv", "json"] = Field(
        default="csv", description="Report format written on success"
    )
    METRICS_PORT: Optional[int] = Field(
        None, ge=8000, le=9999, description="Port for the Prometheus metrics server"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def _normalise_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {value!r}")
        return level


# -----------------------------------------------------------------------------
# 2. Decimal Amounts
# -----------------------------------------------------------------------------
def quantize_amount(value: Decimal) -> Decimal:
    """Round a finite Decimal to four places (banker's rounding)."""
    if not value.is_finite():
        raise AmountParseError(f"amount {value} is not a finite number")
    try:
        quantized = value.quantize(AMOUNT_QUANTUM, context=_PARSE_CONTEXT)
    except InvalidOperation as exc:
        raise AmountParseError(f"amount {value} is out of range") from exc
    if quantized.is_zero():
        return ZERO
    return quantized


def parse_amount(text: Optional[str]) -> Decimal:
    """
    Parse a non-negative decimal amount from text.

    Accepts plain decimal notation only (no exponents, no digit separators)
    and normalises the result to four decimal places.
    """
    if text is None:
        raise AmountParseError("amount is missing")
    cleaned = str(text).strip()
    if not cleaned:
        raise AmountParseError("amount is missing")
    if not _AMOUNT_PATTERN.match(cleaned):
        raise AmountParseError(f"invalid amount {cleaned!r}")

    value = quantize_amount(Decimal(cleaned))
    if value < 0:
        raise AmountParseError(f"negative amount {cleaned!r}")
    return value


def add_amounts(left: Decimal, right: Decimal) -> Decimal:
    """Exact addition; raises BalanceOverflowError instead of rounding."""
    try:
        return _BALANCE_CONTEXT.add(left, right)
    except DecimalException as exc:
        raise BalanceOverflowError(f"cannot add {right} to {left} exactly") from exc


def subtract_amounts(left: Decimal, right: Decimal) -> Decimal:
    """Exact subtraction; raises BalanceOverflowError instead of rounding."""
    try:
        return _BALANCE_CONTEXT.subtract(left, right)
    except DecimalException as exc:
        raise BalanceOverflowError(
            f"cannot subtract {right} from {left} exactly"
        ) from exc


# -----------------------------------------------------------------------------
# 3. Transaction Record
# -----------------------------------------------------------------------------
class TransactionKind(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    DISPUTE = "dispute"
    RESOLVE = "resolve"
    CHARGEBACK = "chargeback"

    @property
    def moves_funds(self) -> bool:
        """Deposits and withdrawals carry an amount; the dispute family does not."""
        return self in (TransactionKind.DEPOSIT, TransactionKind.WITHDRAWAL)


class TransactionRecord(BaseModel):
    """
    One validated input event.

    For deposits and withdrawals ``tx_id`` is the transaction's own id; for
    disputes, resolves and chargebacks it references a prior deposit.
    """

    model_config = ConfigDict(frozen=True)

    kind: TransactionKind = Field(..., description="Record type")
    client_id: int = Field(..., ge=0, le=CLIENT_ID_MAX, description="Client account id")
    tx_id: int = Field(..., ge=0, le=TX_ID_MAX, description="Transaction id")
    amount: Optional[Decimal] = Field(
        default=None,
        validate_default=True,
        description="Amount for deposits and withdrawals, four decimal places",
    )

    @field_validator("amount")
    @classmethod
    def _amount_matches_kind(
        cls, value: Optional[Decimal], info: ValidationInfo
    ) -> Optional[Decimal]:
        kind = info.data.get("kind")
        if kind is None:
            return value
        if not kind.moves_funds:
            return None
        if value is None:
            raise ValueError(f"{kind.value} requires an amount")
        try:
            value = quantize_amount(value)
        except AmountParseError as exc:
            raise ValueError(str(exc)) from exc
        if value < 0:
            raise ValueError("amount must be non-negative")
        return value

    def __repr__(self) -> str:
        return (
            f"TransactionRecord({self.kind.value}, client={self.client_id}, "
            f"tx={self.tx_id}, amount={self.amount})"
        )


class RecordOutcome(str, Enum):
    APPLIED = "applied"
    IGNORED = "ignored"


# -----------------------------------------------------------------------------
# 4. Ledger State
# -----------------------------------------------------------------------------
class ClientAccount(BaseModel):
    """
    Per-client balances.

    ``total`` is always derived from ``available + held`` and never stored.
    ``locked`` is set by a chargeback and never cleared.
    """

    client_id: int = Field(..., ge=0, le=CLIENT_ID_MAX)
    available: Decimal = Field(default=ZERO)
    held: Decimal = Field(default=ZERO)
    locked: bool = Field(default=False)

    @property
    def total(self) -> Decimal:
        return add_amounts(self.available, self.held)

    def credit(self, amount: Decimal) -> None:
        self.available = add_amounts(self.available, amount)

    def debit(self, amount: Decimal) -> None:
        self._require_available(amount)
        self.available = subtract_amounts(self.available, amount)

    def hold(self, amount: Decimal) -> None:
        self._require_available(amount)
        self.available = subtract_amounts(self.available, amount)
        self.held = add_amounts(self.held, amount)

    def release_hold(self, amount: Decimal) -> None:
        self._require_held(amount)
        self.held = subtract_amounts(self.held, amount)
        self.available = add_amounts(self.available, amount)

    def remove_held(self, amount: Decimal) -> None:
        self._require_held(amount)
        self.held = subtract_amounts(self.held, amount)

    def lock(self) -> None:
        self.locked = True

    def _require_available(self, amount: Decimal) -> None:
        if amount > self.available:
            raise LedgerInvariantError(
                f"client {self.client_id}: available {self.available} below {amount}"
            )

    def _require_held(self, amount: Decimal) -> None:
        if amount > self.held:
            raise LedgerInvariantError(
                f"client {self.client_id}: held {self.held} below {amount}"
            )


class DisputeStatus(str, Enum):
    NORMAL = "normal"
    DISPUTED = "disputed"
    CHARGED_BACK = "charged_back"


class DepositRecord(BaseModel):
    """Deposit history entry used to adjudicate disputes, resolves and chargebacks."""

    tx_id: int = Field(..., ge=0, le=TX_ID_MAX)
    client_id: int = Field(..., ge=0, le=CLIENT_ID_MAX)
    amount: Decimal = Field(...)
    status: DisputeStatus = Field(default=DisputeStatus.NORMAL)


# -----------------------------------------------------------------------------
# 5. Run and Report Contracts
# -----------------------------------------------------------------------------
class LedgerSummary(BaseModel):
    """Counts collected while a record stream is processed."""

    records_applied: int = Field(default=0, description="Records that changed state")
    records_ignored: int = Field(
        default=0, description="Records rejected by a business rule"
    )
    records_malformed: int = Field(
        default=0, description="Input rows skipped by the parser"
    )
    outcomes_by_kind: Dict[str, Dict[str, int]] = Field(
        default_factory=dict, description="kind -> outcome -> count"
    )

    @property
    def records_seen(self) -> int:
        return self.records_applied + self.records_ignored

    def record(self, kind: TransactionKind, outcome: RecordOutcome) -> None:
        if outcome is RecordOutcome.APPLIED:
            self.records_applied += 1
        else:
            self.records_ignored += 1
        per_kind = self.outcomes_by_kind.setdefault(kind.value, {})
        per_kind[outcome.value] = per_kind.get(outcome.value, 0) + 1


class AccountReportRow(BaseModel):
    """One output row per client account."""

    client: int = Field(..., description="Client account id")
    available: Decimal = Field(..., description="Funds available for withdrawal")
    held: Decimal = Field(..., description="Funds held by open disputes")
    total: Decimal = Field(..., description="available + held")
    locked: bool = Field(..., description="Frozen by a chargeback")
