"""Persisted record models for pycartransfer."""

from pycartransfer.models._base import RecordModel, TransferBaseModel, UtcDatetime, new_record_id
from pycartransfer.models.notification import (
    Notification,
    NotificationKind,
    NotificationPayload,
    NotificationPriority,
)
from pycartransfer.models.transfer import TransferLog, TransferRequest, TransferStatus
from pycartransfer.models.vehicle import Vehicle, VehicleSnapshot

__all__ = [
    "Notification",
    "NotificationKind",
    "NotificationPayload",
    "NotificationPriority",
    "RecordModel",
    "TransferBaseModel",
    "TransferLog",
    "TransferRequest",
    "TransferStatus",
    "UtcDatetime",
    "Vehicle",
    "VehicleSnapshot",
    "new_record_id",
]
