"""
Shared model plumbing.

Every persisted record uses camelCase aliases so the JSON written to the
local key-value store matches the records of the mobile app
(``accountId``, ``nextOccurrenceDate``, ...). Python code always uses the
snake_case field names.
"""

import random
import string
import time
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


_ID_ALPHABET = string.digits + string.ascii_lowercase


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_entity_id() -> str:
    """
    Generate a client-side record identifier.

    Milliseconds since the epoch followed by nine random base-36 characters,
    so ids created within the same millisecond (batch materialization) do
    not collide.
    """
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{int(time.time() * 1000)}{suffix}"


class CamelModel(BaseModel):
    """Model serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_record(self) -> dict:
        """Serialize to the camelCase JSON-compatible dict used by storage."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class RecordModel(CamelModel):
    """Base for every stored record."""

    id: str = Field(
        default_factory=new_entity_id,
        min_length=1,
        description="Client-generated identifier"
    )


class TimestampedModel(RecordModel):
    """Record carrying creation and last-update timestamps."""

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def touched(self, now: Optional[datetime] = None, **changes):
        """
        Return a full replacement copy with ``changes`` applied and
        ``updated_at`` refreshed.
        """
        changes["updated_at"] = now or utc_now()
        return self.model_copy(update=changes)
