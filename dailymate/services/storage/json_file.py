"""
Local JSON File Storage

One JSON file per collection (``dailymate_accounts.json``,
``dailymate_transactions.json``, ...), each holding a list of camelCase
records: the same shape the mobile app kept in its key-value store, so an
exported store can be read directly.

Writes go to a temporary file that replaces the target, so a crash mid-write
leaves the previous version of the collection intact.
"""

import json
import os
from pathlib import Path
from typing import Union

import structlog
from pydantic import ValidationError

from dailymate.models.finance import DEFAULT_CATEGORIES
from dailymate.services.storage.interface import (
    E,
    EntityStorage,
    StorageError,
    StorageGateway,
)


logger = structlog.get_logger(__name__)

FILE_PREFIX = "dailymate_"


class JsonFileEntityStorage(EntityStorage[E]):
    """One collection persisted as a JSON array on disk."""

    def __init__(self, name: str, model: type[E], data_dir: Union[str, Path]):
        super().__init__(name, model)
        self.path = Path(data_dir) / f"{FILE_PREFIX}{name}.json"

    async def get_all(self) -> list[E]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "[]")
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read {self.path}: {e}") from e

        if not isinstance(raw, list):
            raise StorageError(f"{self.path} does not hold a list of records")

        try:
            return [self.model.model_validate(record) for record in raw]
        except ValidationError as e:
            raise StorageError(f"Invalid record in {self.path}: {e}") from e

    async def save_all(self, items: list[E]) -> None:
        payload = json.dumps([item.to_record() for item in items], ensure_ascii=False, indent=2)
        tmp_path = self.path.with_suffix(".json.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageError(f"Failed to write {self.path}: {e}") from e

        logger.debug("collection_saved", collection=self.name, count=len(items))


def create_json_gateway(data_dir: Union[str, Path], seed_categories: bool = True) -> StorageGateway:
    """
    Build a gateway backed by JSON files in ``data_dir``.

    When ``seed_categories`` is set and no categories file exists yet, the
    default categories are written.
    """
    gateway = StorageGateway.from_factory(
        lambda name, model: JsonFileEntityStorage(name, model, data_dir)
    )
    if seed_categories and not gateway.categories.path.exists():
        payload = json.dumps(
            [category.to_record() for category in DEFAULT_CATEGORIES],
            ensure_ascii=False,
            indent=2,
        )
        try:
            gateway.categories.path.parent.mkdir(parents=True, exist_ok=True)
            gateway.categories.path.write_text(payload, encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to seed categories in {data_dir}: {e}") from e
        logger.info("default_categories_seeded", path=str(gateway.categories.path))
    return gateway
