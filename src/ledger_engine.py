"""
Core resolution logic for the transaction ledger.

Applies deposits, withdrawals and the dispute lifecycle to per-client
accounts in input order. Records that fail a business rule are ignored
without raising; only arithmetic overflow and broken invariants raise.
"""

from __future__ import annotations
import logging
from typing import Dict, Iterable, Optional, Set

from models import (
    ClientAccount,
    DepositRecord,
    DisputeStatus,
    LedgerSummary,
    RecordOutcome,
    TransactionKind,
    TransactionRecord,
)

# Standard logger for audit trail and operational monitoring
logger = logging.getLogger(__name__)


class LedgerEngine:
    """Owns all account state and deposit history for a single run."""

    def __init__(self) -> None:
        self._accounts: Dict[int, ClientAccount] = {}
        self._deposits: Dict[int, DepositRecord] = {}
        self._withdrawal_ids: Set[int] = set()

    @property
    def accounts(self) -> Dict[int, ClientAccount]:
        """Every account referenced so far, keyed by client id."""
        return self._accounts

    def deposit(self, tx_id: int) -> Optional[DepositRecord]:
        """Look up the deposit history entry for a transaction id."""
        return self._deposits.get(tx_id)

    def process(
        self, records: Iterable[TransactionRecord], summary: Optional[LedgerSummary] = None
    ) -> LedgerSummary:
        """
        Apply a finite sequence of records in order.

        Args:
            records: Validated transaction records, in event order
            summary: Optional summary to accumulate into

        Returns:
            LedgerSummary with applied/ignored counts
        """
        if summary is None:
            summary = LedgerSummary()
        for record in records:
            summary.record(record.kind, self.apply(record))

        logger.info(
            "Ledger processing complete: %d applied, %d ignored, %d accounts",
            summary.records_applied,
            summary.records_ignored,
            len(self._accounts),
        )
        return summary

    def apply(self, record: TransactionRecord) -> RecordOutcome:
        """Fully apply or fully ignore a single record."""
        account = self._get_or_create_account(record.client_id)

        if record.kind is TransactionKind.DEPOSIT:
            return self._handle_deposit(account, record)
        if record.kind is TransactionKind.WITHDRAWAL:
            return self._handle_withdrawal(account, record)
        if record.kind is TransactionKind.DISPUTE:
            return self._handle_dispute(account, record)
        if record.kind is TransactionKind.RESOLVE:
            return self._handle_resolve(account, record)
        if record.kind is TransactionKind.CHARGEBACK:
            return self._handle_chargeback(account, record)
        raise ValueError(f"Unhandled record kind: {record.kind!r}")

    def _get_or_create_account(self, client_id: int) -> ClientAccount:
        account = self._accounts.get(client_id)
        if account is None:
            account = ClientAccount(client_id=client_id)
            self._accounts[client_id] = account
        return account

    def _is_duplicate_id(self, tx_id: int) -> bool:
        return tx_id in self._deposits or tx_id in self._withdrawal_ids

    @staticmethod
    def _ignore(record: TransactionRecord, reason: str, *args: object) -> RecordOutcome:
        logger.debug(
            "Ignoring %s tx %d for client %d: " + reason,
            record.kind.value,
            record.tx_id,
            record.client_id,
            *args,
        )
        return RecordOutcome.IGNORED

    # ---------------------------
    # Deposits and withdrawals
    # ---------------------------
    def _handle_deposit(
        self, account: ClientAccount, record: TransactionRecord
    ) -> RecordOutcome:
        if account.locked:
            return self._ignore(record, "account is locked")
        if self._is_duplicate_id(record.tx_id):
            return self._ignore(record, "transaction id already used")

        account.credit(record.amount)
        self._deposits[record.tx_id] = DepositRecord(
            tx_id=record.tx_id, client_id=record.client_id, amount=record.amount
        )
        return RecordOutcome.APPLIED

    def _handle_withdrawal(
        self, account: ClientAccount, record: TransactionRecord
    ) -> RecordOutcome:
        if account.locked:
            return self._ignore(record, "account is locked")
        if self._is_duplicate_id(record.tx_id):
            return self._ignore(record, "transaction id already used")
        if account.available < record.amount:
            return self._ignore(
                record, "insufficient funds (available %s)", account.available
            )

        account.debit(record.amount)
        self._withdrawal_ids.add(record.tx_id)
        return RecordOutcome.APPLIED

    # ---------------------------
    # Dispute lifecycle
    # ---------------------------
    def _find_deposit(self, record: TransactionRecord) -> Optional[DepositRecord]:
        """Deposit referenced by a dispute-family record, if it belongs to the record's client."""
        entry = self._deposits.get(record.tx_id)
        if entry is None:
            return None
        if entry.client_id != record.client_id:
            logger.debug(
                "%s for tx %d names client %d but the deposit belongs to client %d",
                record.kind.value.capitalize(),
                record.tx_id,
                record.client_id,
                entry.client_id,
            )
            return None
        return entry

    def _handle_dispute(
        self, account: ClientAccount, record: TransactionRecord
    ) -> RecordOutcome:
        entry = self._find_deposit(record)
        if entry is None:
            return self._ignore(record, "no matching deposit")
        if entry.status is not DisputeStatus.NORMAL:
            return self._ignore(record, "deposit is %s", entry.status.value)
        # Funds already withdrawn cannot be held.
        if account.available < entry.amount:
            return self._ignore(record, "insufficient funds to hold %s", entry.amount)

        account.hold(entry.amount)
        entry.status = DisputeStatus.DISPUTED
        return RecordOutcome.APPLIED

    def _handle_resolve(
        self, account: ClientAccount, record: TransactionRecord
    ) -> RecordOutcome:
        entry = self._find_deposit(record)
        if entry is None:
            return self._ignore(record, "no matching deposit")
        if entry.status is not DisputeStatus.DISPUTED:
            return self._ignore(record, "deposit is %s", entry.status.value)

        account.release_hold(entry.amount)
        entry.status = DisputeStatus.NORMAL
        return RecordOutcome.APPLIED

    def _handle_chargeback(
        self, account: ClientAccount, record: TransactionRecord
    ) -> RecordOutcome:
        entry = self._find_deposit(record)
        if entry is None:
            return self._ignore(record, "no matching deposit")
        if entry.status is not DisputeStatus.DISPUTED:
            return self._ignore(record, "deposit is %s", entry.status.value)

        account.remove_held(entry.amount)
        account.lock()
        entry.status = DisputeStatus.CHARGED_BACK
        logger.info(
            "Chargeback on tx %d locked client %d", record.tx_id, record.client_id
        )
        return RecordOutcome.APPLIED
