"""Custom exception hierarchy for pycartransfer."""

from __future__ import annotations

from datetime import datetime


class TransferError(Exception):
    """Base exception for all pycartransfer errors."""


class TransferConfigError(TransferError):
    """Invalid or missing configuration."""


class SelfTransferError(TransferError):
    """Sender and recipient of a transfer are the same identity."""

    def __init__(self, message: str, *, identity: str = "") -> None:
        self.identity = identity
        super().__init__(message)


class NotOwnerError(TransferError):
    """The acting identity does not own the vehicle."""

    def __init__(self, message: str, *, vehicle_id: str = "", identity: str = "") -> None:
        self.vehicle_id = vehicle_id
        self.identity = identity
        super().__init__(message)


class TransferAlreadyPendingError(TransferError):
    """The vehicle already has a transfer request in a non-terminal status."""

    def __init__(self, message: str, *, vehicle_id: str = "", request_id: str = "") -> None:
        self.vehicle_id = vehicle_id
        self.request_id = request_id
        super().__init__(message)


class NotFoundError(TransferError):
    """A referenced record does not exist."""

    def __init__(self, message: str, *, collection: str = "", record_id: str = "") -> None:
        self.collection = collection
        self.record_id = record_id
        super().__init__(message)


class NotRecipientError(TransferError):
    """The acting identity is not allowed to act on the record."""

    def __init__(self, message: str, *, record_id: str = "", identity: str = "") -> None:
        self.record_id = record_id
        self.identity = identity
        super().__init__(message)


class AlreadyResolvedError(TransferError):
    """The transfer request is already in a terminal status.

    Raised for duplicate accept/decline calls (retried requests, two
    devices racing).  The duplicate has been absorbed without any state
    change, so callers should present this as "already handled" rather
    than as a failure; see :attr:`is_benign`.
    """

    is_benign = True

    def __init__(self, message: str, *, request_id: str = "", status: str = "") -> None:
        self.request_id = request_id
        self.status = status
        super().__init__(message)


class RequestExpiredError(TransferError):
    """The transfer request passed its expiry before it could be resolved.

    By the time this is raised the request has been moved to
    ``Expired`` in the store.
    """

    def __init__(
        self,
        message: str,
        *,
        request_id: str = "",
        expires_at: datetime | None = None,
    ) -> None:
        self.request_id = request_id
        self.expires_at = expires_at
        super().__init__(message)


class ConcurrencyConflictError(TransferError):
    """A transaction kept losing to concurrent writers.

    Raised after the store exhausted its automatic retries.  Accept and
    decline are idempotent by status check, so the caller may retry.
    """

    def __init__(self, message: str, *, attempts: int = 0) -> None:
        self.attempts = attempts
        super().__init__(message)


class NotificationDeliveryError(TransferError):
    """A notification transport failed to hand off a notification."""

    def __init__(
        self,
        message: str,
        *,
        notification_id: str = "",
        status_code: int | None = None,
    ) -> None:
        self.notification_id = notification_id
        self.status_code = status_code
        super().__init__(message)
