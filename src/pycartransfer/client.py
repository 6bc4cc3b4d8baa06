"""High-level async client for the vehicle transfer workflow."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

import aiohttp

from pycartransfer._transport import NotificationTransport, WebhookNotificationTransport
from pycartransfer.config import TransferConfig
from pycartransfer.coordinator import TransferCoordinator
from pycartransfer.identity import IdentityResolver
from pycartransfer.models._base import utcnow
from pycartransfer.models.notification import Notification
from pycartransfer.models.transfer import TransferRequest
from pycartransfer.models.vehicle import Vehicle
from pycartransfer.notifications import NotificationDelivery, NotificationDispatcher
from pycartransfer.state.events import ChangeEvent
from pycartransfer.state.store import InMemoryRecordStore, RecordStore
from pycartransfer.sweeper import ExpirySweeper, SweepResult

_logger = logging.getLogger(__name__)


class TransferClient:
    """The surface the mobile/web UI calls.

    Every operation takes the already-verified caller identity
    explicitly; the client keeps no notion of a "current user".

    Usage::

        async with TransferClient(config, identities=resolver, store=store) as client:
            request = await client.create_transfer("alice@example.com", vehicle_id, "bob@example.com")
            vehicle = await client.accept("bob@example.com", request.id)
    """

    def __init__(
        self,
        config: TransferConfig | None = None,
        *,
        identities: IdentityResolver,
        store: RecordStore | None = None,
        transport: NotificationTransport | None = None,
        session: aiohttp.ClientSession | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config or TransferConfig()
        self._store: RecordStore = store or InMemoryRecordStore(
            max_retries=self._config.max_transaction_retries,
            retry_delay=self._config.transaction_retry_delay,
        )
        self._transport = transport
        self._external_session = session is not None
        self._http_session = session
        self._dispatcher = NotificationDispatcher(self._store, clock=clock)
        self._coordinator = TransferCoordinator(
            self._store,
            identities,
            dispatcher=self._dispatcher,
            config=self._config,
            clock=clock,
        )
        self._sweeper = ExpirySweeper(self._coordinator, self._dispatcher, interval=self._config.sweep_interval)
        self._delivery: NotificationDelivery | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> TransferClient:
        transport = self._transport
        if transport is None and self._config.webhook_url:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            transport = WebhookNotificationTransport(
                self._config.webhook_url,
                self._http_session,
                timeout=self._config.webhook_timeout,
            )
        if transport is not None:
            self._delivery = NotificationDelivery(
                self._store,
                transport,
                max_attempts=self._config.delivery_max_attempts,
                retry_delay=self._config.delivery_retry_delay,
            )
            self._delivery.start()
        if self._config.sweep_enabled:
            self._sweeper.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self._sweeper.stop()
        if self._delivery is not None:
            await self._delivery.stop()
            self._delivery = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    @property
    def store(self) -> RecordStore:
        return self._store

    @property
    def coordinator(self) -> TransferCoordinator:
        return self._coordinator

    @property
    def delivery(self) -> NotificationDelivery | None:
        return self._delivery

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    async def create_transfer(
        self,
        identity: str,
        vehicle_id: str,
        to_identity: str,
        message: str | None = None,
        *,
        timeout: float | None = None,
    ) -> TransferRequest:
        return await self._coordinator.create(identity, vehicle_id, to_identity, message, timeout=timeout)

    async def list_incoming(self, identity: str) -> list[TransferRequest]:
        return await self._coordinator.list_incoming(identity)

    async def list_outgoing(self, identity: str) -> list[TransferRequest]:
        return await self._coordinator.list_outgoing(identity)

    async def get_transfer(self, identity: str, request_id: str) -> TransferRequest:
        return await self._coordinator.get_request(request_id, identity)

    async def accept(self, identity: str, request_id: str) -> Vehicle:
        return await self._coordinator.accept(request_id, identity)

    async def decline(self, identity: str, request_id: str) -> TransferRequest:
        return await self._coordinator.decline(request_id, identity)

    async def cancel_transfer(self, identity: str, request_id: str) -> TransferRequest:
        """Withdraw a transfer *identity* sent; frees the vehicle immediately."""
        return await self._coordinator.cancel(request_id, identity)

    async def register(self, identity: str) -> list[TransferRequest]:
        """Call once *identity* finished creating an account."""
        return await self._coordinator.register(identity)

    async def sweep(self, *, timeout: float | None = None) -> SweepResult:
        """Run one expiry sweep now, independent of the background schedule."""
        return await self._sweeper.sweep_once(timeout=timeout)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def list_notifications(self, identity: str, *, unread_only: bool = False) -> list[Notification]:
        if unread_only:
            return await self._dispatcher.list_unread(identity)
        return await self._dispatcher.list_all(identity)

    async def unread_count(self, identity: str) -> int:
        return await self._dispatcher.unread_count(identity)

    async def mark_read(self, identity: str, notification_id: str) -> Notification:
        return await self._dispatcher.mark_read(identity, notification_id)

    async def mark_all_read(self, identity: str) -> int:
        return await self._dispatcher.mark_all_read(identity)

    async def delete_notification(self, identity: str, notification_id: str) -> None:
        await self._dispatcher.delete(identity, notification_id)

    # ------------------------------------------------------------------
    # Change feed
    # ------------------------------------------------------------------

    def subscribe(self, listener: Callable[[ChangeEvent], None]) -> Callable[[], None]:
        """Listen for committed changes (UI refresh)."""
        return self._store.subscribe(listener)
