"""Transfer request and transfer log models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import Field, model_validator

from pycartransfer._constants import TRANSFER_LOGS, TRANSFER_REQUESTS
from pycartransfer.models._base import RecordModel, UtcDatetime, utcnow
from pycartransfer.models.vehicle import VehicleSnapshot


class TransferStatus(StrEnum):
    """Transfer request lifecycle status.

    Values are persisted verbatim.
    """

    AWAITING_REGISTRATION = "AwaitingRegistration"
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    DECLINED = "Declined"
    EXPIRED = "Expired"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset({TransferStatus.ACCEPTED, TransferStatus.DECLINED, TransferStatus.EXPIRED})


class TransferRequest(RecordModel):
    """A request to hand a vehicle over to another identity."""

    COLLECTION = TRANSFER_REQUESTS

    vehicle_id: str
    from_identity: str
    to_identity: str
    recipient_registered: bool
    """Whether the recipient had an account when the request was created."""
    vehicle_snapshot: VehicleSnapshot
    message: str | None = None
    status: TransferStatus
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)
    expires_at: UtcDatetime

    @model_validator(mode="after")
    def _check_parties(self) -> TransferRequest:
        if self.from_identity == self.to_identity:
            raise ValueError("from_identity and to_identity must differ")
        return self

    @property
    def is_open(self) -> bool:
        """Whether the request can still be accepted or declined."""
        return not self.status.is_terminal

    def with_status(self, status: TransferStatus, now: datetime) -> TransferRequest:
        return self.model_copy(update={"status": status, "updated_at": now})


class TransferLog(RecordModel):
    """Append-only audit row written once per accepted transfer."""

    COLLECTION = TRANSFER_LOGS

    vehicle_id: str
    from_identity: str
    to_identity: str
    transfer_request_id: str
    committed_at: UtcDatetime
