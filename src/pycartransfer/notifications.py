"""In-app notifications: creation, queries, and transport hand-off.

:class:`NotificationDispatcher` only ever touches the record store.
Creating a notification stages it in the caller's transaction, so it
commits together with the transition it announces, or not at all.

:class:`NotificationDelivery` is the bridge to the outside world: it
listens to the store's change feed and pushes every newly created
notification through a :class:`~pycartransfer._transport.NotificationTransport`.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from pycartransfer._constants import NOTIFICATIONS
from pycartransfer._redact import mask_identity
from pycartransfer._transport import NotificationTransport
from pycartransfer.exceptions import NotFoundError, NotRecipientError
from pycartransfer.identity import normalize_identity
from pycartransfer.models._base import utcnow
from pycartransfer.models.notification import (
    Notification,
    NotificationKind,
    NotificationPayload,
    NotificationPriority,
)
from pycartransfer.state.events import ChangeEvent, ChangeType
from pycartransfer.state.store import RecordStore, Transaction

_logger = logging.getLogger(__name__)

_TITLES: dict[NotificationKind, str] = {
    NotificationKind.TRANSFER_REQUESTED: "Vehicle transfer request",
    NotificationKind.TRANSFER_ACCEPTED: "Transfer accepted",
}


def render_body(kind: NotificationKind, payload: NotificationPayload) -> str:
    label = payload.vehicle_snapshot.label
    if kind is NotificationKind.TRANSFER_REQUESTED:
        return f"{payload.counterparty_identity} wants to transfer {label} to you."
    return f"{payload.counterparty_identity} accepted the transfer of {label}. The transfer is complete."


class NotificationDispatcher:
    """Creates and serves notification records for recipient identities."""

    def __init__(
        self,
        store: RecordStore,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._clock = clock

    def notify(
        self,
        tx: Transaction,
        recipient_identity: str,
        kind: NotificationKind,
        payload: NotificationPayload,
        *,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        ttl: timedelta | None = None,
        action_required: bool = False,
    ) -> Notification:
        """Stage a new notification in *tx* and return it.

        Nothing is delivered here; delivery happens after commit via the
        change feed.
        """
        now = self._clock()
        notification = Notification(
            recipient_identity=normalize_identity(recipient_identity),
            kind=kind,
            title=_TITLES[kind],
            body=render_body(kind, payload),
            payload=payload,
            priority=priority,
            action_required=action_required,
            created_at=now,
            expires_at=now + ttl if ttl is not None else None,
        )
        tx.put(notification)
        return notification

    async def list_all(self, identity: str) -> list[Notification]:
        """Live notifications of *identity*, newest first."""
        recipient = normalize_identity(identity)
        now = self._clock()
        notifications = await self._store.query(
            Notification,
            lambda n: n.recipient_identity == recipient and not n.is_expired(now),
        )
        return sorted(notifications, key=lambda n: n.created_at, reverse=True)

    async def list_unread(self, identity: str) -> list[Notification]:
        return [n for n in await self.list_all(identity) if not n.read]

    async def unread_count(self, identity: str) -> int:
        return len(await self.list_unread(identity))

    async def mark_read(self, identity: str, notification_id: str) -> Notification:
        """Mark one notification read.  Already-read notifications are left as is."""
        recipient = normalize_identity(identity)

        async def _mark(tx: Transaction) -> Notification:
            notification = await self._owned(tx, recipient, notification_id)
            if notification.read:
                return notification
            updated = notification.model_copy(update={"read": True})
            tx.put(updated)
            return updated

        return await self._store.transact(_mark)

    async def mark_all_read(self, identity: str) -> int:
        """Mark every unread notification of *identity* read; returns how many changed."""
        recipient = normalize_identity(identity)

        async def _mark_all(tx: Transaction) -> int:
            unread = await tx.query(Notification, lambda n: n.recipient_identity == recipient and not n.read)
            for notification in unread:
                tx.put(notification.model_copy(update={"read": True}))
            return len(unread)

        return await self._store.transact(_mark_all)

    async def delete(self, identity: str, notification_id: str) -> None:
        recipient = normalize_identity(identity)

        async def _delete(tx: Transaction) -> None:
            await self._owned(tx, recipient, notification_id)
            tx.delete(Notification, notification_id)

        await self._store.transact(_delete)
        _logger.debug("Deleted notification %s for %s", notification_id, mask_identity(recipient))

    async def sweep_expired(self, now: datetime | None = None) -> int:
        """Delete every notification past its expiry; returns the count."""
        cutoff = now if now is not None else self._clock()

        async def _sweep(tx: Transaction) -> int:
            expired = await tx.query(Notification, lambda n: n.is_expired(cutoff))
            for notification in expired:
                tx.delete(Notification, notification.id)
            return len(expired)

        count = await self._store.transact(_sweep)
        if count:
            _logger.info("Deleted %d expired notifications", count)
        return count

    @staticmethod
    async def _owned(tx: Transaction, identity: str, notification_id: str) -> Notification:
        notification = await tx.get(Notification, notification_id)
        if notification is None:
            raise NotFoundError(
                f"notification {notification_id} not found",
                collection=NOTIFICATIONS,
                record_id=notification_id,
            )
        if notification.recipient_identity != identity:
            raise NotRecipientError(
                f"notification {notification_id} is addressed to another identity",
                record_id=notification_id,
                identity=identity,
            )
        return notification


class NotificationDelivery:
    """Background pump from the change feed to a notification transport.

    Delivery is at-least-once: a failed hand-off is retried up to
    *max_attempts* times, and a transport may see the same notification
    again after a retry whose first attempt actually succeeded.
    """

    def __init__(
        self,
        store: RecordStore,
        transport: NotificationTransport,
        *,
        max_attempts: int = 5,
        retry_delay: float = 1.0,
    ) -> None:
        self._store = store
        self._transport = transport
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self._queue: asyncio.Queue[Notification] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._unsubscribe = self._store.subscribe(self._on_change)
        self._task = asyncio.create_task(self._run(), name="pycartransfer-notification-delivery")

    async def drain(self) -> None:
        """Wait until every queued notification was handed off or dropped."""
        await self._queue.join()

    async def stop(self, *, drain: bool = False) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if drain and self.is_running:
            await self.drain()
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _on_change(self, event: ChangeEvent) -> None:
        if event.collection != NOTIFICATIONS or event.change is not ChangeType.CREATED:
            return
        if event.document is None:
            return
        self._queue.put_nowait(Notification.from_document(event.document))

    async def _run(self) -> None:
        while True:
            notification = await self._queue.get()
            try:
                await self._deliver(notification)
            finally:
                self._queue.task_done()

    async def _deliver(self, notification: Notification) -> None:
        for attempt in range(1, self._max_attempts + 1):
            try:
                await self._transport.deliver(notification)
                _logger.debug("Delivered notification %s (attempt %d)", notification.id, attempt)
                return
            except Exception:
                _logger.debug(
                    "Delivery of notification %s failed (attempt %d/%d)",
                    notification.id,
                    attempt,
                    self._max_attempts,
                    exc_info=True,
                )
            if attempt < self._max_attempts:
                await asyncio.sleep(self._retry_delay)
        _logger.warning(
            "Giving up on notification %s for %s after %d attempts",
            notification.id,
            mask_identity(notification.recipient_identity),
            self._max_attempts,
        )
