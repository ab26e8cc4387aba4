"""
Balance Reconciliation Protocol

Keeps ``Account.balance`` consistent with the stored transactions across
add, update and delete, including transfers between two accounts.

Every transaction has an *effect*: a signed amount per account it touches.
Adding applies the effect, deleting applies its exact inverse, and updating
applies the inverse of the stored version followed by the effect of the new
one. Money is ``Decimal``, so any add/reverse sequence returns exactly to
the starting balance.

DESIGN DECISION: Two safeguards replace the transactional storage we do
not have:
1. All mutations go through one ``asyncio.Lock`` (single writer).
2. ``reconcile`` replays the transaction log from each account's
   ``opening_balance`` to detect, and optionally repair, drift left by a
   crash between two writes.
"""

import asyncio
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel

from dailymate.audit import AuditLogger
from dailymate.models.base import utc_now
from dailymate.models.finance import Account, Transaction, TransactionType
from dailymate.services.storage import DuplicateError, NotFoundError, StorageGateway


logger = structlog.get_logger(__name__)

Effects = dict[str, Decimal]


class BalanceDrift(BaseModel):
    """A stored balance that disagrees with the replayed transaction log."""

    account_id: str
    account_name: str
    stored_balance: Decimal
    expected_balance: Decimal

    @property
    def difference(self) -> Decimal:
        return self.stored_balance - self.expected_balance


# =============================================================================
# PURE FUNCTIONS
# =============================================================================

def transaction_effects(transaction: Transaction) -> Effects:
    """
    Signed balance change per account.

    income: +amount on the account. expense: -amount on the account.
    transfer: -amount on the source, +amount on the destination.
    """
    amount = transaction.amount
    if transaction.type == TransactionType.INCOME:
        return {transaction.account_id: amount}
    if transaction.type == TransactionType.EXPENSE:
        return {transaction.account_id: -amount}
    return {
        transaction.account_id: -amount,
        transaction.to_account_id: amount,
    }


def invert_effects(effects: Effects) -> Effects:
    return {account_id: -delta for account_id, delta in effects.items()}


def merge_effects(*all_effects: Effects) -> Effects:
    """Sum several effects account by account."""
    merged: dict[str, Decimal] = defaultdict(Decimal)
    for effects in all_effects:
        for account_id, delta in effects.items():
            merged[account_id] += delta
    return dict(merged)


def apply_effects(
    effects: Effects,
    accounts: list[Account],
    now: Optional[datetime] = None,
) -> list[Account]:
    """
    Return a new account list with ``effects`` applied.

    Affected accounts are replaced by touched copies; the others are kept
    as they are. Effects on unknown accounts are skipped with a warning.
    """
    known = {account.id for account in accounts}
    for account_id in effects:
        if account_id not in known:
            logger.warning("balance_effect_skipped_unknown_account", account_id=account_id)

    now = now or utc_now()
    return [
        account.touched(now=now, balance=account.balance + effects[account.id])
        if account.id in effects
        else account
        for account in accounts
    ]


def apply_transaction_add(
    transaction: Transaction,
    accounts: list[Account],
    now: Optional[datetime] = None,
) -> list[Account]:
    return apply_effects(transaction_effects(transaction), accounts, now)


def apply_transaction_delete(
    transaction: Transaction,
    accounts: list[Account],
    now: Optional[datetime] = None,
) -> list[Account]:
    return apply_effects(invert_effects(transaction_effects(transaction)), accounts, now)


def apply_transaction_update(
    old: Transaction,
    new: Transaction,
    accounts: list[Account],
    now: Optional[datetime] = None,
) -> list[Account]:
    """Reverse ``old`` then apply ``new``; account references may differ."""
    reversed_accounts = apply_transaction_delete(old, accounts, now)
    return apply_transaction_add(new, reversed_accounts, now)


def net_effects(transactions: Iterable[Transaction]) -> Effects:
    return merge_effects(*(transaction_effects(tx) for tx in transactions))


def compute_expected_balances(
    accounts: list[Account],
    transactions: list[Transaction],
) -> dict[str, Decimal]:
    """
    Replay every stored transaction from each account's opening balance.

    Accounts without an opening balance are left out.
    """
    totals = net_effects(transactions)
    return {
        account.id: account.opening_balance + totals.get(account.id, Decimal("0"))
        for account in accounts
        if account.opening_balance is not None
    }


def detect_balance_drift(
    accounts: list[Account],
    transactions: list[Transaction],
) -> list[BalanceDrift]:
    expected = compute_expected_balances(accounts, transactions)
    return [
        BalanceDrift(
            account_id=account.id,
            account_name=account.name,
            stored_balance=account.balance,
            expected_balance=expected[account.id],
        )
        for account in accounts
        if account.id in expected and account.balance != expected[account.id]
    ]


def derive_opening_balances(
    accounts: list[Account],
    transactions: list[Transaction],
) -> list[Account]:
    """
    Fill in missing opening balances by trusting the current balance.

    Used for records written before opening balances were tracked.
    """
    totals = net_effects(transactions)
    return [
        account.model_copy(update={
            "opening_balance": account.balance - totals.get(account.id, Decimal("0")),
        })
        if account.opening_balance is None
        else account
        for account in accounts
    ]


# =============================================================================
# STORAGE-BACKED PROTOCOL
# =============================================================================

class BalanceReconciler:
    """
    Runs the balance protocol against storage.

    Accounts are always re-read right before an effect is applied, so the
    second phase of an update sees the reversal written by the first.
    """

    def __init__(
        self,
        storage: StorageGateway,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._lock = asyncio.Lock()

    @property
    def lock(self) -> asyncio.Lock:
        """Held by every balance mutation; account edits should hold it too."""
        return self._lock

    async def _write_effects(self, effects: Effects) -> None:
        if not effects:
            return
        accounts = await self._storage.accounts.get_all()
        await self._storage.accounts.save_all(apply_effects(effects, accounts))

    async def _audit_effects(
        self,
        transaction_id: str,
        effects: Effects,
        correlation_id: Optional[UUID],
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_balances_applied(
                transaction_id=transaction_id,
                deltas=effects,
                correlation_id=correlation_id,
            )

    async def _get_stored(self, transaction_id: str) -> Transaction:
        stored = await self._storage.transactions.get(transaction_id)
        if stored is None:
            raise NotFoundError(f"transactions: record {transaction_id} not found")
        return stored

    async def add_transaction(
        self,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Apply the transaction's effect, then store it.

        Raises:
            DuplicateError: If a transaction with this id is already stored
        """
        async with self._lock:
            if await self._storage.transactions.get(transaction.id) is not None:
                raise DuplicateError(f"transactions: record {transaction.id} already exists")

            effects = transaction_effects(transaction)
            await self._write_effects(effects)
            await self._storage.transactions.add(transaction)
            await self._audit_effects(transaction.id, effects, correlation_id)
        return transaction

    async def update_transaction(
        self,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Reverse the stored version, re-read accounts, apply the new version,
        store it.

        Raises:
            NotFoundError: If no transaction with this id is stored
        """
        async with self._lock:
            old = await self._get_stored(transaction.id)

            reversal = invert_effects(transaction_effects(old))
            await self._write_effects(reversal)

            effects = transaction_effects(transaction)
            await self._write_effects(effects)

            await self._storage.transactions.update(transaction)
            await self._audit_effects(
                transaction.id,
                merge_effects(reversal, effects),
                correlation_id,
            )
        return transaction

    async def delete_transaction(
        self,
        transaction_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Reverse the stored effect, then remove the record.

        Returns:
            The deleted transaction

        Raises:
            NotFoundError: If no transaction with this id is stored
        """
        async with self._lock:
            old = await self._get_stored(transaction_id)
            reversal = invert_effects(transaction_effects(old))
            await self._write_effects(reversal)
            await self._storage.transactions.delete(transaction_id)
            await self._audit_effects(transaction_id, reversal, correlation_id)
        return old

    async def apply_existing(
        self,
        transaction_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> Effects:
        """
        Apply the add-effect of transactions that are already stored, such as
        the ones the planned-transaction processor created.

        Returns:
            The combined effect written
        """
        if not transaction_ids:
            return {}

        async with self._lock:
            wanted = set(transaction_ids)
            stored = [
                tx for tx in await self._storage.transactions.get_all()
                if tx.id in wanted
            ]
            missing = wanted - {tx.id for tx in stored}
            if missing:
                logger.warning("apply_existing_missing_transactions", ids=sorted(missing))

            combined = net_effects(stored)
            await self._write_effects(combined)

        for tx in stored:
            await self._audit_effects(tx.id, transaction_effects(tx), correlation_id)
        return combined

    async def reconcile(
        self,
        repair: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> list[BalanceDrift]:
        """
        Compare every stored balance with the replayed transaction log.

        Missing opening balances are derived and stored first. With
        ``repair`` set, drifted balances are overwritten with the replayed
        value.

        Returns:
            The drift found (before any repair)
        """
        async with self._lock:
            accounts = await self._storage.accounts.get_all()
            transactions = await self._storage.transactions.get_all()

            if any(account.opening_balance is None for account in accounts):
                accounts = derive_opening_balances(accounts, transactions)
                await self._storage.accounts.save_all(accounts)
                logger.info("opening_balances_derived")

            drifts = detect_balance_drift(accounts, transactions)

            if drifts and repair:
                expected = {drift.account_id: drift.expected_balance for drift in drifts}
                now = utc_now()
                await self._storage.accounts.save_all([
                    account.touched(now=now, balance=expected[account.id])
                    if account.id in expected
                    else account
                    for account in accounts
                ])

        for drift in drifts:
            logger.warning(
                "balance_drift",
                account_id=drift.account_id,
                stored=str(drift.stored_balance),
                expected=str(drift.expected_balance),
                repaired=repair,
            )
            if self._audit_logger:
                await self._audit_logger.log_balance_drift(
                    account_id=drift.account_id,
                    stored=drift.stored_balance,
                    expected=drift.expected_balance,
                    repaired=repair,
                    correlation_id=correlation_id,
                )
        return drifts
