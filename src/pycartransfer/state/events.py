"""Change-feed events.

Every committed write produces one event.  UI listeners and the
notification delivery pump consume them; the transfer state machine
never depends on them.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChangeType(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class ChangeEvent(BaseModel):
    """A committed change to one document."""

    model_config = ConfigDict(frozen=True)

    collection: str
    record_id: str
    change: ChangeType
    version: int = Field(..., description="Store version assigned at commit")
    document: dict[str, Any] | None = Field(
        default=None,
        description="Persisted document after the change; None for deletions",
    )

    @field_validator("collection", "record_id")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value:
            raise ValueError("must be non-empty")
        return value
