"""
Google Sheets Sync

Copies whole collections between the local store and a remote store
(normally a Google Sheets gateway). A push replaces the remote collection
with the local one; a pull replaces the local collection with the remote
one. There is no merge: the last writer wins, as in the mobile app.

Failures are reported per collection in the ``SyncReport`` and logged; a
failing collection never stops the others.
"""

from datetime import datetime
from typing import Optional

import structlog
from pydantic import BaseModel, Field

from dailymate.models.base import utc_now
from dailymate.services.storage import COLLECTIONS, StorageGateway


logger = structlog.get_logger(__name__)


class CollectionSyncResult(BaseModel):
    collection: str
    success: bool
    count: int = 0
    error: Optional[str] = None


class SyncReport(BaseModel):
    """Outcome of one push or pull."""

    direction: str
    started_at: datetime = Field(default_factory=utc_now)
    results: list[CollectionSyncResult] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(result.success for result in self.results)

    @property
    def failed_collections(self) -> list[str]:
        return [result.collection for result in self.results if not result.success]


class SheetsSync:
    """
    Push/pull between two storage gateways.

    Args:
        local: The store the app works on
        remote: The store to mirror into (e.g. ``create_sheets_gateway()``)
    """

    def __init__(self, local: StorageGateway, remote: StorageGateway):
        self._local = local
        self._remote = remote

    async def _copy(
        self,
        name: str,
        source: StorageGateway,
        target: StorageGateway,
        direction: str,
    ) -> CollectionSyncResult:
        try:
            items = await source.collection(name).get_all()
            await target.collection(name).save_all(items)
        except Exception as e:
            # One collection failing must not abort the rest of the sync
            logger.error("sync_failed", collection=name, direction=direction, error=str(e))
            return CollectionSyncResult(collection=name, success=False, error=str(e))

        logger.info("sync_completed", collection=name, direction=direction, count=len(items))
        return CollectionSyncResult(collection=name, success=True, count=len(items))

    async def push(self, name: str) -> CollectionSyncResult:
        """Overwrite the remote copy of one collection with the local one."""
        return await self._copy(name, self._local, self._remote, "push")

    async def pull(self, name: str) -> CollectionSyncResult:
        """Overwrite the local copy of one collection with the remote one."""
        return await self._copy(name, self._remote, self._local, "pull")

    async def push_all(self) -> SyncReport:
        report = SyncReport(direction="push")
        for name in COLLECTIONS:
            report.results.append(await self.push(name))
        return report

    async def pull_all(self) -> SyncReport:
        report = SyncReport(direction="pull")
        for name in COLLECTIONS:
            report.results.append(await self.pull(name))
        return report
