"""Base models shared by every persisted record.

Every record inherits from :class:`RecordModel` which provides:

* ``alias_generator=to_camel`` so snake_case attributes persist as the
  camelCase document keys clients of the store expect.
* An opaque ``id`` assigned at construction.
* :meth:`RecordModel.to_document` / :meth:`RecordModel.from_document`
  for the store boundary.

Timestamps use :data:`UtcDatetime` which coerces naive values to UTC so
every stored instant is timezone-aware.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Annotated, Any, ClassVar, Self

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def new_record_id() -> str:
    """Return a fresh opaque record identifier."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and normalise aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]
"""Annotated type for timezone-aware UTC instants."""


class TransferBaseModel(BaseModel):
    """Base for every model that is persisted, standalone or nested."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )


class RecordModel(TransferBaseModel):
    """Base for top-level records stored in a collection."""

    COLLECTION: ClassVar[str] = ""
    """Name of the store collection holding this record type."""

    id: str = Field(default_factory=new_record_id)

    def to_document(self) -> dict[str, Any]:
        """Return the persisted shape (camelCase keys, UTC datetimes)."""
        return self.model_dump(by_alias=True)

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> Self:
        return cls.model_validate(dict(document))
