"""Tests for the memory and JSON file storage backends."""

import json
import pytest
from datetime import date
from decimal import Decimal

from dailymate.models import Account, AccountType, Bill, DueDateType
from dailymate.services.storage import (
    COLLECTIONS,
    DuplicateError,
    JsonFileEntityStorage,
    NotFoundError,
    StorageError,
    create_json_gateway,
    create_memory_gateway,
)


def _account(**overrides) -> Account:
    fields = {"id": "acc-1", "name": "Cash", "type": AccountType.CASH, "balance": Decimal("10.00")}
    fields.update(overrides)
    return Account(**fields)


class TestMemoryStorage:
    """Tests for the in-memory backend."""

    @pytest.mark.asyncio
    async def test_default_categories_seeded(self):
        gateway = create_memory_gateway()
        assert len(await gateway.categories.get_all()) == 15

    @pytest.mark.asyncio
    async def test_seeding_can_be_disabled(self):
        gateway = create_memory_gateway(seed_categories=False)
        assert await gateway.categories.get_all() == []

    @pytest.mark.asyncio
    async def test_add_and_get(self):
        gateway = create_memory_gateway()
        await gateway.accounts.add(_account())
        stored = await gateway.accounts.get("acc-1")
        assert stored.name == "Cash"
        assert await gateway.accounts.get("missing") is None

    @pytest.mark.asyncio
    async def test_duplicate_add_rejected(self):
        gateway = create_memory_gateway()
        await gateway.accounts.add(_account())
        with pytest.raises(DuplicateError):
            await gateway.accounts.add(_account())

    @pytest.mark.asyncio
    async def test_update_replaces_record(self):
        gateway = create_memory_gateway()
        await gateway.accounts.add(_account())
        await gateway.accounts.update(_account(name="Pocket money"))
        assert (await gateway.accounts.get("acc-1")).name == "Pocket money"

    @pytest.mark.asyncio
    async def test_update_missing_record(self):
        gateway = create_memory_gateway()
        with pytest.raises(NotFoundError):
            await gateway.accounts.update(_account())

    @pytest.mark.asyncio
    async def test_delete_unknown_is_a_no_op(self):
        gateway = create_memory_gateway()
        await gateway.accounts.add(_account())
        await gateway.accounts.delete("missing")
        await gateway.accounts.delete("acc-1")
        assert await gateway.accounts.get_all() == []

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self):
        """Test that changing a returned record does not change the store."""
        gateway = create_memory_gateway()
        await gateway.accounts.add(_account())
        items = await gateway.accounts.get_all()
        items.clear()
        assert len(await gateway.accounts.get_all()) == 1

    def test_collection_lookup(self):
        gateway = create_memory_gateway()
        assert gateway.collection("planned_transactions") is gateway.planned_transactions
        assert set(gateway.collections()) == set(COLLECTIONS)
        with pytest.raises(KeyError):
            gateway.collection("receipts")


class TestJsonFileStorage:
    """Tests for the JSON file backend."""

    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path):
        gateway = create_json_gateway(tmp_path)
        await gateway.accounts.add(_account())

        reopened = create_json_gateway(tmp_path)
        stored = await reopened.accounts.get("acc-1")
        assert stored.balance == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_files_hold_camel_case_records(self, tmp_path):
        gateway = create_json_gateway(tmp_path)
        await gateway.bills.add(Bill(
            id="bill-1",
            name="Rent",
            amount=Decimal("100.00"),
            category_id="bills",
            account_id="acc-1",
            due_date_type=DueDateType.RECURRING,
            due_day=5,
            start_date=date(2024, 1, 1),
        ))
        raw = json.loads((tmp_path / "dailymate_bills.json").read_text(encoding="utf-8"))
        assert raw[0]["dueDateType"] == "recurring"
        assert raw[0]["notifyDaysBefore"] == [7, 3, 1]

    @pytest.mark.asyncio
    async def test_categories_seeded_once(self, tmp_path):
        gateway = create_json_gateway(tmp_path)
        await gateway.categories.delete("food")

        reopened = create_json_gateway(tmp_path)
        ids = {category.id for category in await reopened.categories.get_all()}
        assert "food" not in ids
        assert len(ids) == 14

    @pytest.mark.asyncio
    async def test_missing_file_is_empty(self, tmp_path):
        storage = JsonFileEntityStorage("accounts", Account, tmp_path)
        assert await storage.get_all() == []

    @pytest.mark.asyncio
    async def test_corrupt_file_raises_storage_error(self, tmp_path):
        (tmp_path / "dailymate_accounts.json").write_text("{not json", encoding="utf-8")
        storage = JsonFileEntityStorage("accounts", Account, tmp_path)
        with pytest.raises(StorageError):
            await storage.get_all()

    @pytest.mark.asyncio
    async def test_invalid_record_raises_storage_error(self, tmp_path):
        (tmp_path / "dailymate_accounts.json").write_text(
            json.dumps([{"id": "a", "name": "Cash", "type": "Spaceship"}]),
            encoding="utf-8",
        )
        storage = JsonFileEntityStorage("accounts", Account, tmp_path)
        with pytest.raises(StorageError):
            await storage.get_all()

    @pytest.mark.asyncio
    async def test_no_temporary_file_left(self, tmp_path):
        storage = JsonFileEntityStorage("accounts", Account, tmp_path)
        await storage.save_all([_account()])
        assert sorted(p.name for p in tmp_path.iterdir()) == ["dailymate_accounts.json"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
