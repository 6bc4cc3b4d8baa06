"""pycartransfer - Async vehicle ownership transfer workflow."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pycartransfer")
except PackageNotFoundError:
    __version__ = "0+local"
from pycartransfer._transport import NotificationTransport, WebhookNotificationTransport
from pycartransfer.client import TransferClient
from pycartransfer.config import TransferConfig
from pycartransfer.coordinator import TransferCoordinator
from pycartransfer.exceptions import (
    AlreadyResolvedError,
    ConcurrencyConflictError,
    NotFoundError,
    NotificationDeliveryError,
    NotOwnerError,
    NotRecipientError,
    RequestExpiredError,
    SelfTransferError,
    TransferAlreadyPendingError,
    TransferConfigError,
    TransferError,
)
from pycartransfer.identity import IdentityResolver, RegisteredIdentities, normalize_identity
from pycartransfer.models import (
    Notification,
    NotificationKind,
    NotificationPayload,
    NotificationPriority,
    TransferLog,
    TransferRequest,
    TransferStatus,
    Vehicle,
    VehicleSnapshot,
)
from pycartransfer.notifications import NotificationDelivery, NotificationDispatcher
from pycartransfer.state import ChangeEvent, ChangeType, ExpiryPolicy, InMemoryRecordStore, RecordStore, Transaction
from pycartransfer.sweeper import ExpirySweeper, SweepResult

__all__ = [
    "__version__",
    "AlreadyResolvedError",
    "ChangeEvent",
    "ChangeType",
    "ConcurrencyConflictError",
    "ExpiryPolicy",
    "ExpirySweeper",
    "IdentityResolver",
    "InMemoryRecordStore",
    "NotFoundError",
    "NotOwnerError",
    "NotRecipientError",
    "Notification",
    "NotificationDeliveryError",
    "NotificationDelivery",
    "NotificationDispatcher",
    "NotificationKind",
    "NotificationPayload",
    "NotificationPriority",
    "NotificationTransport",
    "RecordStore",
    "RegisteredIdentities",
    "RequestExpiredError",
    "SelfTransferError",
    "SweepResult",
    "Transaction",
    "TransferAlreadyPendingError",
    "TransferClient",
    "TransferConfig",
    "TransferConfigError",
    "TransferCoordinator",
    "TransferError",
    "TransferLog",
    "TransferRequest",
    "TransferStatus",
    "Vehicle",
    "VehicleSnapshot",
    "WebhookNotificationTransport",
    "normalize_identity",
]
