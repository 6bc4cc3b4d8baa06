"""Vehicle ownership transfer state machine.

States::

    AwaitingRegistration --register--> Pending
    AwaitingRegistration / Pending --accept--> Accepted
    AwaitingRegistration / Pending --decline--> Declined
    AwaitingRegistration / Pending --expire--> Expired
    AwaitingRegistration / Pending --cancel (sender)--> Declined

``Accepted``, ``Declined`` and ``Expired`` are terminal.

The coordinator holds no mutable state of its own.  Every transition
reads and writes inside one :meth:`RecordStore.transact` call, so
concurrent callers (two devices, two tabs) are serialised by the
store's optimistic retry and a transition is either fully applied or
not at all.  Expiry is always evaluated inside the transaction that
would otherwise act on the request.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from pycartransfer._constants import TRANSFER_REQUESTS, VEHICLES
from pycartransfer._redact import mask_identity
from pycartransfer.config import TransferConfig
from pycartransfer.exceptions import (
    AlreadyResolvedError,
    ConcurrencyConflictError,
    NotFoundError,
    NotOwnerError,
    NotRecipientError,
    RequestExpiredError,
    SelfTransferError,
    TransferAlreadyPendingError,
)
from pycartransfer.identity import IdentityResolver, normalize_identity
from pycartransfer.models._base import utcnow
from pycartransfer.models.notification import NotificationKind, NotificationPayload, NotificationPriority
from pycartransfer.models.transfer import TransferLog, TransferRequest, TransferStatus
from pycartransfer.models.vehicle import Vehicle
from pycartransfer.notifications import NotificationDispatcher
from pycartransfer.state.policy import ExpiryPolicy
from pycartransfer.state.store import RecordStore, Transaction

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _Resolution:
    """Outcome of an accept/decline attempt that committed something."""

    request: TransferRequest
    vehicle: Vehicle | None = None
    expired: bool = False


class TransferCoordinator:
    """Validates and executes transfer lifecycle transitions."""

    def __init__(
        self,
        store: RecordStore,
        identities: IdentityResolver,
        *,
        dispatcher: NotificationDispatcher | None = None,
        config: TransferConfig | None = None,
        policy: ExpiryPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._config = config or TransferConfig()
        self._store = store
        self._identities = identities
        self._clock = clock
        self._dispatcher = dispatcher or NotificationDispatcher(store, clock=clock)
        self._policy = policy or ExpiryPolicy.from_seconds(self._config.request_ttl)
        self._notification_ttl = timedelta(seconds=self._config.notification_ttl)
        self._history_window = timedelta(seconds=self._config.history_window)

    @property
    def policy(self) -> ExpiryPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Creation and registration
    # ------------------------------------------------------------------

    async def create(
        self,
        from_identity: str,
        vehicle_id: str,
        to_identity: str,
        message: str | None = None,
        *,
        timeout: float | None = None,
    ) -> TransferRequest:
        """Open a transfer of *vehicle_id* from its owner to *to_identity*.

        Raises
        ------
        SelfTransferError
            Sender and recipient are the same identity.
        NotFoundError
            The vehicle does not exist.
        NotOwnerError
            *from_identity* does not own the vehicle.
        TransferAlreadyPendingError
            The vehicle already has an open transfer request.
        """
        sender = normalize_identity(from_identity)
        recipient = normalize_identity(to_identity)
        if sender == recipient:
            raise SelfTransferError("cannot transfer a vehicle to yourself", identity=sender)

        text = message.strip() if message else None

        async def _create(tx: Transaction) -> TransferRequest:
            now = self._clock()
            vehicle = await tx.get(Vehicle, vehicle_id)
            if vehicle is None:
                raise NotFoundError(f"vehicle {vehicle_id} not found", collection=VEHICLES, record_id=vehicle_id)
            if vehicle.owner_identity != sender:
                raise NotOwnerError(
                    f"vehicle {vehicle_id} is not owned by the sender",
                    vehicle_id=vehicle_id,
                    identity=sender,
                )

            open_requests = await tx.query(
                TransferRequest,
                lambda r: r.vehicle_id == vehicle_id and r.is_open,
            )
            for existing in open_requests:
                if not self._policy.is_expired(existing, now):
                    raise TransferAlreadyPendingError(
                        f"vehicle {vehicle_id} already has an open transfer {existing.id}",
                        vehicle_id=vehicle_id,
                        request_id=existing.id,
                    )
                # A stale open request must not block the vehicle forever.
                tx.put(existing.with_status(TransferStatus.EXPIRED, now))
                _logger.debug("Expired stale request %s while creating a new one", existing.id)

            request = TransferRequest(
                vehicle_id=vehicle_id,
                from_identity=sender,
                to_identity=recipient,
                recipient_registered=registered,
                vehicle_snapshot=vehicle.snapshot(),
                message=text or None,
                status=TransferStatus.PENDING if registered else TransferStatus.AWAITING_REGISTRATION,
                created_at=now,
                updated_at=now,
                expires_at=self._policy.expires_at_for(now),
            )
            tx.put(request)
            self._dispatcher.notify(
                tx,
                recipient,
                NotificationKind.TRANSFER_REQUESTED,
                NotificationPayload(
                    request_id=request.id,
                    vehicle_snapshot=request.vehicle_snapshot,
                    counterparty_identity=sender,
                ),
                priority=NotificationPriority.HIGH,
                ttl=self._notification_ttl,
                action_required=True,
            )
            return request

        async with asyncio.timeout(timeout):
            registered = await self._identities.exists(recipient)
            request = await self._store.transact(_create, max_retries=self._config.max_transaction_retries)

        _logger.info(
            "Transfer %s created for vehicle %s: %s -> %s (%s)",
            request.id,
            vehicle_id,
            mask_identity(sender),
            mask_identity(recipient),
            request.status,
        )
        return request

    async def register(self, identity: str) -> list[TransferRequest]:
        """Promote the identity's ``AwaitingRegistration`` requests to ``Pending``.

        Called once the recipient has created an account.  Requests that
        expired in the meantime become ``Expired`` instead and are not
        returned.
        """
        recipient = normalize_identity(identity)

        async def _register(tx: Transaction) -> list[TransferRequest]:
            now = self._clock()
            waiting = await tx.query(
                TransferRequest,
                lambda r: r.to_identity == recipient and r.status is TransferStatus.AWAITING_REGISTRATION,
            )
            promoted: list[TransferRequest] = []
            for request in waiting:
                if self._policy.is_expired(request, now):
                    tx.put(request.with_status(TransferStatus.EXPIRED, now))
                    continue
                updated = request.with_status(TransferStatus.PENDING, now)
                tx.put(updated)
                promoted.append(updated)
            return promoted

        promoted = await self._store.transact(_register, max_retries=self._config.max_transaction_retries)
        if promoted:
            _logger.info("Promoted %d transfers to Pending for %s", len(promoted), mask_identity(recipient))
        return promoted

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def accept(self, request_id: str, acting_identity: str) -> Vehicle:
        """Accept a transfer and move vehicle ownership to the recipient.

        Raises
        ------
        NotFoundError
            The request (or its vehicle) does not exist.
        NotRecipientError
            *acting_identity* is not the request's recipient.
        AlreadyResolvedError
            The request is already terminal (duplicate accept).
        RequestExpiredError
            The request expired; it is now ``Expired``.
        """
        outcome = await self._resolve(request_id, acting_identity, TransferStatus.ACCEPTED)
        assert outcome.vehicle is not None  # noqa: S101
        _logger.info(
            "Transfer %s accepted: vehicle %s now owned by %s",
            request_id,
            outcome.vehicle.id,
            mask_identity(outcome.vehicle.owner_identity),
        )
        return outcome.vehicle

    async def decline(self, request_id: str, acting_identity: str) -> TransferRequest:
        """Decline a transfer.  Ownership is untouched and nothing is logged."""
        outcome = await self._resolve(request_id, acting_identity, TransferStatus.DECLINED)
        _logger.info("Transfer %s declined", request_id)
        return outcome.request

    async def cancel(self, request_id: str, acting_identity: str) -> TransferRequest:
        """Withdraw an open transfer on behalf of its sender.

        The request becomes ``Declined`` and the vehicle is free for a new
        transfer right away.  A request that already expired is recorded
        as ``Expired`` instead and returned without error.

        Raises
        ------
        NotFoundError
            The request does not exist.
        NotRecipientError
            *acting_identity* is not the request's sender.
        AlreadyResolvedError
            The request is already terminal.
        """
        actor = normalize_identity(acting_identity)

        async def _cancel(tx: Transaction) -> TransferRequest:
            now = self._clock()
            request = await self._load_request(tx, request_id)
            if request.from_identity != actor:
                raise NotRecipientError(
                    f"transfer {request_id} can only be cancelled by its sender",
                    record_id=request_id,
                    identity=actor,
                )
            if request.status.is_terminal:
                raise AlreadyResolvedError(
                    f"transfer {request_id} is already {request.status}",
                    request_id=request_id,
                    status=request.status,
                )
            target = TransferStatus.EXPIRED if self._policy.is_expired(request, now) else TransferStatus.DECLINED
            cancelled = request.with_status(target, now)
            tx.put(cancelled)
            return cancelled

        cancelled = await self._store.transact(_cancel, max_retries=self._config.max_transaction_retries)
        _logger.info("Transfer %s cancelled by %s (%s)", request_id, mask_identity(actor), cancelled.status)
        return cancelled

    async def _resolve(self, request_id: str, acting_identity: str, target: TransferStatus) -> _Resolution:
        actor = normalize_identity(acting_identity)

        async def _apply(tx: Transaction) -> _Resolution:
            now = self._clock()
            request = await self._load_request(tx, request_id)
            if request.to_identity != actor:
                raise NotRecipientError(
                    f"transfer {request_id} is addressed to another identity",
                    record_id=request_id,
                    identity=actor,
                )
            if request.status.is_terminal:
                raise AlreadyResolvedError(
                    f"transfer {request_id} is already {request.status}",
                    request_id=request_id,
                    status=request.status,
                )
            if self._policy.is_expired(request, now):
                expired = request.with_status(TransferStatus.EXPIRED, now)
                tx.put(expired)
                return _Resolution(request=expired, expired=True)

            resolved = request.with_status(target, now)
            tx.put(resolved)
            if target is not TransferStatus.ACCEPTED:
                return _Resolution(request=resolved)

            vehicle = await tx.get(Vehicle, request.vehicle_id)
            if vehicle is None:
                raise NotFoundError(
                    f"vehicle {request.vehicle_id} not found",
                    collection=VEHICLES,
                    record_id=request.vehicle_id,
                )
            if vehicle.owner_identity != request.from_identity:
                raise NotOwnerError(
                    f"vehicle {vehicle.id} changed owner since transfer {request_id} was created",
                    vehicle_id=vehicle.id,
                    identity=request.from_identity,
                )
            transferred = vehicle.model_copy(
                update={
                    "owner_identity": request.to_identity,
                    "previous_owner_identity": request.from_identity,
                    "last_transferred_at": now,
                }
            )
            tx.put(transferred)
            tx.put(
                TransferLog(
                    vehicle_id=vehicle.id,
                    from_identity=request.from_identity,
                    to_identity=request.to_identity,
                    transfer_request_id=request.id,
                    committed_at=now,
                )
            )
            self._dispatcher.notify(
                tx,
                request.from_identity,
                NotificationKind.TRANSFER_ACCEPTED,
                NotificationPayload(
                    request_id=request.id,
                    vehicle_snapshot=request.vehicle_snapshot,
                    counterparty_identity=request.to_identity,
                ),
                priority=NotificationPriority.HIGH,
            )
            return _Resolution(request=resolved, vehicle=transferred)

        outcome = await self._store.transact(_apply, max_retries=self._config.max_transaction_retries)
        if outcome.expired:
            _logger.info("Transfer %s expired before it could be %s", request_id, target.lower())
            raise RequestExpiredError(
                f"transfer {request_id} expired at {outcome.request.expires_at.isoformat()}",
                request_id=request_id,
                expires_at=outcome.request.expires_at,
            )
        return outcome

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    async def expire(self, request_id: str) -> TransferRequest:
        """Flip an open request past its expiry to ``Expired``.

        Idempotent: terminal requests and requests that are not yet
        expired are returned unchanged.
        """

        async def _expire(tx: Transaction) -> TransferRequest:
            request = await self._load_request(tx, request_id)
            now = self._clock()
            if not self._policy.is_stale(request, now):
                return request
            expired = request.with_status(TransferStatus.EXPIRED, now)
            tx.put(expired)
            return expired

        return await self._store.transact(_expire, max_retries=self._config.max_transaction_retries)

    async def expire_stale(self, *, timeout: float | None = None) -> list[str]:
        """Expire every open request past its TTL; returns the expired ids.

        Each request is expired in its own transaction.  A request that
        keeps conflicting is skipped; the next sweep or the next
        transition touching it will catch it.
        """
        expired_ids: list[str] = []
        async with asyncio.timeout(timeout):
            now = self._clock()
            stale = await self._store.query(TransferRequest, lambda r: self._policy.is_stale(r, now))
            for request in stale:
                try:
                    result = await self.expire(request.id)
                except ConcurrencyConflictError:
                    _logger.warning("Could not expire transfer %s: kept conflicting", request.id)
                    continue
                except NotFoundError:
                    continue
                if result.status is TransferStatus.EXPIRED:
                    expired_ids.append(result.id)
        if expired_ids:
            _logger.info("Expired %d stale transfer requests", len(expired_ids))
        return expired_ids

    # ------------------------------------------------------------------
    # Reads (with lazy expiry)
    # ------------------------------------------------------------------

    async def get_request(self, request_id: str, identity: str) -> TransferRequest:
        """Return a request the identity is a party of."""
        caller = normalize_identity(identity)
        request = await self._store.get(TransferRequest, request_id)
        if request is None:
            raise NotFoundError(
                f"transfer {request_id} not found",
                collection=TRANSFER_REQUESTS,
                record_id=request_id,
            )
        if caller not in (request.from_identity, request.to_identity):
            raise NotRecipientError(
                f"transfer {request_id} does not involve the caller",
                record_id=request_id,
                identity=caller,
            )
        return await self._fresh(request)

    async def list_incoming(self, identity: str) -> list[TransferRequest]:
        """Open requests addressed to *identity* plus recently resolved ones, newest first."""
        recipient = normalize_identity(identity)
        requests = await self._store.query(TransferRequest, lambda r: r.to_identity == recipient)
        return await self._for_display(requests)

    async def list_outgoing(self, identity: str) -> list[TransferRequest]:
        """Open requests sent by *identity* plus recently resolved ones, newest first."""
        sender = normalize_identity(identity)
        requests = await self._store.query(TransferRequest, lambda r: r.from_identity == sender)
        return await self._for_display(requests)

    async def pending_request_for(self, vehicle_id: str) -> TransferRequest | None:
        """The vehicle's open transfer request, if any."""
        open_requests = await self._store.query(
            TransferRequest,
            lambda r: r.vehicle_id == vehicle_id and r.is_open,
        )
        for request in open_requests:
            fresh = await self._fresh(request)
            if fresh.is_open:
                return fresh
        return None

    async def _for_display(self, requests: list[TransferRequest]) -> list[TransferRequest]:
        now = self._clock()
        cutoff = now - self._history_window
        visible: list[TransferRequest] = []
        for request in requests:
            fresh = await self._fresh(request)
            if fresh.is_open or fresh.updated_at >= cutoff:
                visible.append(fresh)
        return sorted(visible, key=lambda r: r.created_at, reverse=True)

    async def _fresh(self, request: TransferRequest) -> TransferRequest:
        now = self._clock()
        if not self._policy.is_stale(request, now):
            return request
        _logger.debug("Lazily expiring transfer %s on read", request.id)
        try:
            return await self.expire(request.id)
        except ConcurrencyConflictError:
            # The sweep or the next transition persists it.
            _logger.warning("Could not persist expiry of transfer %s on read: kept conflicting", request.id)
            return request.with_status(TransferStatus.EXPIRED, now)

    @staticmethod
    async def _load_request(tx: Transaction, request_id: str) -> TransferRequest:
        request = await tx.get(TransferRequest, request_id)
        if request is None:
            raise NotFoundError(
                f"transfer {request_id} not found",
                collection=TRANSFER_REQUESTS,
                record_id=request_id,
            )
        return request
