"""
Tests for the balance reconciliation protocol.

The core property: after any sequence of adds, updates and deletes, every
stored balance equals its opening balance plus the effects of the stored
transactions.
"""

import pytest
from decimal import Decimal

from dailymate.engine.balances import (
    BalanceReconciler,
    apply_transaction_add,
    apply_transaction_delete,
    apply_transaction_update,
    compute_expected_balances,
    derive_opening_balances,
    detect_balance_drift,
    invert_effects,
    merge_effects,
    transaction_effects,
)
from dailymate.models import Account, AccountType, AuditEventType, TransactionType
from dailymate.services.storage import DuplicateError, NotFoundError


def _balances(accounts):
    return {account.id: account.balance for account in accounts}


class TestEffects:
    """Tests for the pure effect functions."""

    def test_income_effect(self, make_transaction):
        tx = make_transaction(type=TransactionType.INCOME, category_id="salary")
        assert transaction_effects(tx) == {"acc-1": Decimal("100.00")}

    def test_expense_effect(self, make_transaction):
        assert transaction_effects(make_transaction()) == {"acc-1": Decimal("-100.00")}

    def test_transfer_effect_is_symmetric(self, make_transaction):
        tx = make_transaction(type=TransactionType.TRANSFER, to_account_id="acc-2")
        effects = transaction_effects(tx)
        assert effects == {"acc-1": Decimal("-100.00"), "acc-2": Decimal("100.00")}
        assert sum(effects.values()) == 0

    def test_invert_and_merge_cancel_out(self, make_transaction):
        effects = transaction_effects(make_transaction(type=TransactionType.TRANSFER, to_account_id="acc-2"))
        merged = merge_effects(effects, invert_effects(effects))
        assert all(delta == 0 for delta in merged.values())


class TestPureProtocol:
    """Tests for apply_transaction_add/delete/update."""

    def test_add_then_delete_restores_balances(self, accounts, make_transaction):
        tx = make_transaction(amount=Decimal("33.33"))
        after_add = apply_transaction_add(tx, accounts)
        assert _balances(after_add)["acc-1"] == Decimal("966.67")
        restored = apply_transaction_delete(tx, after_add)
        assert _balances(restored) == _balances(accounts)

    def test_update_moves_between_accounts(self, accounts, make_transaction):
        old = make_transaction(id="t1")
        new = make_transaction(id="t1", account_id="acc-2", amount=Decimal("40.00"))
        after_add = apply_transaction_add(old, accounts)
        updated = apply_transaction_update(old, new, after_add)
        assert _balances(updated) == {"acc-1": Decimal("1000.00"), "acc-2": Decimal("460.00")}

    def test_identical_update_is_a_no_op(self, accounts, make_transaction):
        tx = make_transaction(id="t1")
        after_add = apply_transaction_add(tx, accounts)
        assert _balances(apply_transaction_update(tx, tx, after_add)) == _balances(after_add)

    def test_update_changes_type(self, accounts, make_transaction):
        """Test that an expense edited into a transfer credits the destination."""
        old = make_transaction(id="t1")
        new = make_transaction(id="t1", type=TransactionType.TRANSFER, to_account_id="acc-2")
        updated = apply_transaction_update(old, new, apply_transaction_add(old, accounts))
        assert _balances(updated) == {"acc-1": Decimal("900.00"), "acc-2": Decimal("600.00")}

    def test_unknown_account_is_skipped(self, accounts, make_transaction):
        tx = make_transaction(account_id="gone")
        assert _balances(apply_transaction_add(tx, accounts)) == _balances(accounts)

    def test_input_accounts_not_mutated(self, accounts, make_transaction):
        apply_transaction_add(make_transaction(), accounts)
        assert accounts[0].balance == Decimal("1000.00")


class TestDrift:
    """Tests for replaying the log."""

    def test_expected_balances(self, accounts, make_transaction):
        txs = [
            make_transaction(amount=Decimal("100.00")),
            make_transaction(type=TransactionType.TRANSFER, to_account_id="acc-2", amount=Decimal("50.00")),
        ]
        assert compute_expected_balances(accounts, txs) == {
            "acc-1": Decimal("850.00"),
            "acc-2": Decimal("550.00"),
        }

    def test_no_drift_when_consistent(self, accounts, make_transaction):
        tx = make_transaction()
        assert detect_balance_drift(apply_transaction_add(tx, accounts), [tx]) == []

    def test_drift_detected(self, accounts, make_transaction):
        drifts = detect_balance_drift(accounts, [make_transaction()])
        assert len(drifts) == 1
        assert drifts[0].account_id == "acc-1"
        assert drifts[0].expected_balance == Decimal("900.00")
        assert drifts[0].difference == Decimal("100.00")

    def test_accounts_without_opening_balance_are_skipped(self, make_transaction):
        legacy = Account(id="acc-1", name="Old", type=AccountType.CASH, balance=Decimal("70"))
        assert detect_balance_drift([legacy], [make_transaction()]) == []

    def test_derive_opening_balance(self, make_transaction):
        legacy = Account(id="acc-1", name="Old", type=AccountType.CASH, balance=Decimal("900.00"))
        derived = derive_opening_balances([legacy], [make_transaction()])
        assert derived[0].opening_balance == Decimal("1000.00")


class TestBalanceReconciler:
    """Tests for the storage-backed protocol."""

    @pytest.mark.asyncio
    async def test_add_transaction(self, storage, make_transaction):
        reconciler = BalanceReconciler(storage)
        await reconciler.add_transaction(make_transaction(id="t1"))

        account = await storage.accounts.get("acc-1")
        assert account.balance == Decimal("900.00")
        assert await storage.transactions.get("t1") is not None

    @pytest.mark.asyncio
    async def test_duplicate_add_leaves_balances(self, storage, make_transaction):
        reconciler = BalanceReconciler(storage)
        await reconciler.add_transaction(make_transaction(id="t1"))

        with pytest.raises(DuplicateError):
            await reconciler.add_transaction(make_transaction(id="t1"))
        assert (await storage.accounts.get("acc-1")).balance == Decimal("900.00")

    @pytest.mark.asyncio
    async def test_transfer_moves_money_both_ways(self, storage, make_transaction):
        reconciler = BalanceReconciler(storage)
        await reconciler.add_transaction(
            make_transaction(id="t1", type=TransactionType.TRANSFER, to_account_id="acc-2")
        )
        assert _balances(await storage.accounts.get_all()) == {
            "acc-1": Decimal("900.00"),
            "acc-2": Decimal("600.00"),
        }

    @pytest.mark.asyncio
    async def test_update_transaction(self, storage, make_transaction):
        reconciler = BalanceReconciler(storage)
        await reconciler.add_transaction(make_transaction(id="t1"))
        await reconciler.update_transaction(make_transaction(id="t1", amount=Decimal("250.00")))

        assert (await storage.accounts.get("acc-1")).balance == Decimal("750.00")
        assert (await storage.transactions.get("t1")).amount == Decimal("250.00")

    @pytest.mark.asyncio
    async def test_update_missing_transaction(self, storage, make_transaction):
        with pytest.raises(NotFoundError):
            await BalanceReconciler(storage).update_transaction(make_transaction(id="nope"))

    @pytest.mark.asyncio
    async def test_delete_transaction(self, storage, make_transaction):
        reconciler = BalanceReconciler(storage)
        await reconciler.add_transaction(make_transaction(id="t1"))
        deleted = await reconciler.delete_transaction("t1")

        assert deleted.id == "t1"
        assert (await storage.accounts.get("acc-1")).balance == Decimal("1000.00")
        assert await storage.transactions.get_all() == []

    @pytest.mark.asyncio
    async def test_invariant_after_mixed_sequence(self, storage, make_transaction):
        """Test that the stored balances always match the replayed log."""
        reconciler = BalanceReconciler(storage)
        await reconciler.add_transaction(make_transaction(id="t1", amount=Decimal("10.10")))
        await reconciler.add_transaction(
            make_transaction(id="t2", type=TransactionType.INCOME, account_id="acc-2", amount=Decimal("99.99"))
        )
        await reconciler.add_transaction(
            make_transaction(id="t3", type=TransactionType.TRANSFER, to_account_id="acc-2", amount=Decimal("0.01"))
        )
        await reconciler.update_transaction(
            make_transaction(id="t1", type=TransactionType.TRANSFER, account_id="acc-2",
                             to_account_id="acc-1", amount=Decimal("5.55"))
        )
        await reconciler.delete_transaction("t2")

        accounts = await storage.accounts.get_all()
        transactions = await storage.transactions.get_all()
        assert detect_balance_drift(accounts, transactions) == []
        assert _balances(accounts) == {"acc-1": Decimal("1005.54"), "acc-2": Decimal("494.46")}

    @pytest.mark.asyncio
    async def test_apply_existing(self, storage, make_transaction):
        await storage.transactions.save_all([
            make_transaction(id="t1"),
            make_transaction(id="t2", account_id="acc-2", amount=Decimal("20.00")),
        ])
        effects = await BalanceReconciler(storage).apply_existing(["t1", "t2", "missing"])

        assert effects == {"acc-1": Decimal("-100.00"), "acc-2": Decimal("-20.00")}
        assert _balances(await storage.accounts.get_all()) == {
            "acc-1": Decimal("900.00"),
            "acc-2": Decimal("480.00"),
        }

    @pytest.mark.asyncio
    async def test_reconcile_reports_without_repair(self, storage, make_transaction):
        await storage.transactions.save_all([make_transaction(id="t1")])
        drifts = await BalanceReconciler(storage).reconcile()

        assert [d.account_id for d in drifts] == ["acc-1"]
        assert (await storage.accounts.get("acc-1")).balance == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_reconcile_repairs(self, storage, make_transaction, audit_logger, audit_storage):
        await storage.transactions.save_all([make_transaction(id="t1")])
        await BalanceReconciler(storage, audit_logger).reconcile(repair=True)

        assert (await storage.accounts.get("acc-1")).balance == Decimal("900.00")
        repaired = [e for e in audit_storage.events if e.event_type == AuditEventType.BALANCE_DRIFT_REPAIRED]
        assert [e.entity_id for e in repaired] == ["acc-1"]

    @pytest.mark.asyncio
    async def test_reconcile_derives_missing_opening_balance(self, storage, make_transaction):
        """Test that legacy accounts are trusted rather than reported as drift."""
        await storage.accounts.save_all([
            Account(id="acc-1", name="Old", type=AccountType.CASH, balance=Decimal("900.00")),
        ])
        await storage.transactions.save_all([make_transaction(id="t1")])

        drifts = await BalanceReconciler(storage).reconcile(repair=True)

        assert drifts == []
        account = await storage.accounts.get("acc-1")
        assert account.opening_balance == Decimal("1000.00")
        assert account.balance == Decimal("900.00")

    @pytest.mark.asyncio
    async def test_mutations_are_audited(self, storage, make_transaction, audit_logger, audit_storage):
        await BalanceReconciler(storage, audit_logger).add_transaction(make_transaction(id="t1"))

        applied = [e for e in audit_storage.events if e.event_type == AuditEventType.BALANCES_APPLIED]
        assert len(applied) == 1
        assert applied[0].details["deltas"] == {"acc-1": "-100.00"}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
