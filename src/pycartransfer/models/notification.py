"""In-app notification model."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import Field

from pycartransfer._constants import NOTIFICATIONS
from pycartransfer.models._base import RecordModel, TransferBaseModel, UtcDatetime, utcnow
from pycartransfer.models.vehicle import VehicleSnapshot


class NotificationKind(StrEnum):
    TRANSFER_REQUESTED = "TransferRequested"
    TRANSFER_ACCEPTED = "TransferAccepted"


class NotificationPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NotificationPayload(TransferBaseModel):
    """Structured data the UI needs to act on a notification."""

    request_id: str
    vehicle_snapshot: VehicleSnapshot
    counterparty_identity: str
    """The other party of the transfer (sender or recipient)."""


class Notification(RecordModel):
    """A notification addressed to one identity."""

    COLLECTION = NOTIFICATIONS

    recipient_identity: str
    kind: NotificationKind
    title: str
    body: str
    payload: NotificationPayload
    read: bool = False
    priority: NotificationPriority = NotificationPriority.MEDIUM
    action_required: bool = False
    created_at: UtcDatetime = Field(default_factory=utcnow)
    expires_at: UtcDatetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now > self.expires_at
