"""Transactional record store.

:class:`RecordStore` is the storage contract the transfer workflow is
written against.  :class:`InMemoryRecordStore` implements it with
optimistic concurrency: a transaction buffers its writes, remembers the
version of everything it read, and only commits if none of that changed
in the meantime.  A losing transaction is re-run from scratch.
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import itertools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

from pycartransfer.exceptions import ConcurrencyConflictError
from pycartransfer.models._base import RecordModel
from pycartransfer.state.events import ChangeEvent, ChangeType

_logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=RecordModel)
T = TypeVar("T")

Predicate = Callable[[RecordT], bool]
ChangeListener = Callable[[ChangeEvent], None]


class Transaction(Protocol):
    """Read/write view handed to a :meth:`RecordStore.transact` callback.

    Reads see the transaction's own buffered writes.  Writes become
    visible to others only when the whole transaction commits.
    """

    async def get(self, record_type: type[RecordT], record_id: str) -> RecordT | None:
        ...

    async def query(self, record_type: type[RecordT], predicate: Predicate[RecordT]) -> list[RecordT]:
        ...

    def put(self, record: RecordModel) -> None:
        ...

    def delete(self, record_type: type[RecordModel], record_id: str) -> None:
        ...


class RecordStore(Protocol):
    """Structural store interface used by the coordinator and dispatcher.

    Having a protocol here keeps backends swappable (in-memory for tests
    and embedding, a document database in production).
    """

    async def get(self, record_type: type[RecordT], record_id: str) -> RecordT | None:
        ...

    async def put(self, record: RecordModel) -> None:
        ...

    async def delete(self, record_type: type[RecordModel], record_id: str) -> bool:
        ...

    async def query(self, record_type: type[RecordT], predicate: Predicate[RecordT]) -> list[RecordT]:
        ...

    async def transact(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
        *,
        max_retries: int | None = None,
    ) -> T:
        ...

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        ...


@dataclass(slots=True)
class _StoredDocument:
    version: int
    data: dict[str, Any]


_Key = tuple[str, str]


class _MemoryTransaction:
    """Transaction over an :class:`InMemoryRecordStore`."""

    def __init__(self, store: InMemoryRecordStore) -> None:
        self._store = store
        self._read_versions: dict[_Key, int] = {}
        self._query_versions: dict[str, int] = {}
        # None marks a buffered delete.
        self._writes: dict[_Key, dict[str, Any] | None] = {}

    async def get(self, record_type: type[RecordT], record_id: str) -> RecordT | None:
        key = (record_type.COLLECTION, record_id)
        if key in self._writes:
            buffered = self._writes[key]
            return None if buffered is None else record_type.from_document(buffered)

        # Yield so concurrent transactions interleave like they would
        # against a remote store.
        await asyncio.sleep(0)
        version, document = self._store._read(record_type.COLLECTION, record_id)
        self._read_versions.setdefault(key, version)
        return None if document is None else record_type.from_document(document)

    async def query(self, record_type: type[RecordT], predicate: Predicate[RecordT]) -> list[RecordT]:
        collection = record_type.COLLECTION
        await asyncio.sleep(0)
        version, documents = self._store._scan(collection)
        self._query_versions.setdefault(collection, version)

        for (write_collection, record_id), buffered in self._writes.items():
            if write_collection != collection:
                continue
            if buffered is None:
                documents.pop(record_id, None)
            else:
                documents[record_id] = buffered

        records = [record_type.from_document(document) for document in documents.values()]
        return [record for record in records if predicate(record)]

    def put(self, record: RecordModel) -> None:
        self._writes[(record.COLLECTION, record.id)] = record.to_document()

    def delete(self, record_type: type[RecordModel], record_id: str) -> None:
        self._writes[(record_type.COLLECTION, record_id)] = None

    def is_stale(self) -> bool:
        """Whether anything this transaction read has changed since."""
        for (collection, record_id), version in self._read_versions.items():
            if self._store._version_of(collection, record_id) != version:
                return True
        for collection, version in self._query_versions.items():
            if self._store._collection_version(collection) != version:
                return True
        return False


class InMemoryRecordStore:
    """In-memory implementation of :class:`RecordStore`.

    Documents are kept in their persisted (camelCase) shape and copied on
    every read and write, so callers can never mutate stored state by
    accident.
    """

    def __init__(
        self,
        *,
        max_retries: int = 5,
        retry_delay: float = 0.005,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._collections: dict[str, dict[str, _StoredDocument]] = {}
        self._collection_versions: dict[str, int] = {}
        self._versions = itertools.count(1)
        self._listeners: list[ChangeListener] = []

    # ------------------------------------------------------------------
    # Low-level access (used by transactions)
    # ------------------------------------------------------------------

    def _read(self, collection: str, record_id: str) -> tuple[int, dict[str, Any] | None]:
        stored = self._collections.get(collection, {}).get(record_id)
        if stored is None:
            return 0, None
        return stored.version, copy.deepcopy(stored.data)

    def _scan(self, collection: str) -> tuple[int, dict[str, dict[str, Any]]]:
        documents = {
            record_id: copy.deepcopy(stored.data) for record_id, stored in self._collections.get(collection, {}).items()
        }
        return self._collection_versions.get(collection, 0), documents

    def _version_of(self, collection: str, record_id: str) -> int:
        stored = self._collections.get(collection, {}).get(record_id)
        return 0 if stored is None else stored.version

    def _collection_version(self, collection: str) -> int:
        return self._collection_versions.get(collection, 0)

    def _try_commit(self, tx: _MemoryTransaction) -> list[ChangeEvent] | None:
        """Validate and apply *tx*; ``None`` signals a conflict.

        Contains no await points, so it runs atomically with respect to
        every other task on the event loop.
        """
        if tx.is_stale():
            return None

        events: list[ChangeEvent] = []
        for (collection, record_id), document in tx._writes.items():
            documents = self._collections.setdefault(collection, {})
            existed = record_id in documents
            if document is None and not existed:
                continue
            version = next(self._versions)
            self._collection_versions[collection] = version
            if document is None:
                del documents[record_id]
                events.append(
                    ChangeEvent(collection=collection, record_id=record_id, change=ChangeType.DELETED, version=version)
                )
                continue
            documents[record_id] = _StoredDocument(version=version, data=copy.deepcopy(document))
            events.append(
                ChangeEvent(
                    collection=collection,
                    record_id=record_id,
                    change=ChangeType.UPDATED if existed else ChangeType.CREATED,
                    version=version,
                    document=copy.deepcopy(document),
                )
            )
        return events

    def _publish(self, events: list[ChangeEvent]) -> None:
        for event in events:
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception:
                    _logger.debug("Change listener failed for %s/%s", event.collection, event.record_id, exc_info=True)

    # ------------------------------------------------------------------
    # RecordStore API
    # ------------------------------------------------------------------

    async def transact(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
        *,
        max_retries: int | None = None,
    ) -> T:
        """Run *fn* in a transaction with optimistic-concurrency retry.

        *fn* may be executed several times; it must not have side effects
        outside the transaction it is given.  An exception raised by *fn*
        aborts the attempt without writing anything and propagates,
        unless the attempt had read stale data, in which case *fn* is
        re-run against fresh data.

        Raises
        ------
        ConcurrencyConflictError
            When every attempt lost to a concurrent writer.
        """
        attempts = max_retries if max_retries is not None else self._max_retries
        for attempt in range(1, attempts + 1):
            tx = _MemoryTransaction(self)
            try:
                result = await fn(tx)
            except Exception:
                if not tx.is_stale():
                    raise
                _logger.debug("Transaction raised on stale reads, retrying (attempt %d/%d)", attempt, attempts)
            else:
                events = self._try_commit(tx)
                if events is not None:
                    self._publish(events)
                    return result
                _logger.debug("Transaction conflict, retrying (attempt %d/%d)", attempt, attempts)

            if attempt < attempts and self._retry_delay > 0:
                await asyncio.sleep(self._retry_delay * attempt)

        raise ConcurrencyConflictError(
            f"transaction aborted after {attempts} conflicting attempts",
            attempts=attempts,
        )

    async def get(self, record_type: type[RecordT], record_id: str) -> RecordT | None:
        _version, document = self._read(record_type.COLLECTION, record_id)
        return None if document is None else record_type.from_document(document)

    async def put(self, record: RecordModel) -> None:
        tx = _MemoryTransaction(self)
        tx.put(record)
        events = self._try_commit(tx)
        if events:
            self._publish(events)

    async def delete(self, record_type: type[RecordModel], record_id: str) -> bool:
        tx = _MemoryTransaction(self)
        tx.delete(record_type, record_id)
        events = self._try_commit(tx)
        if not events:
            return False
        self._publish(events)
        return True

    async def query(self, record_type: type[RecordT], predicate: Predicate[RecordT]) -> list[RecordT]:
        _version, documents = self._scan(record_type.COLLECTION)
        records = [record_type.from_document(document) for document in documents.values()]
        return [record for record in records if predicate(record)]

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a change-feed listener; returns an unsubscribe callable.

        Listeners run synchronously right after each commit and must not
        block.  Hand work off to a task or queue instead.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def raw_document(self, record_type: type[RecordModel], record_id: str) -> dict[str, Any] | None:
        """Return the persisted document as stored (debugging/inspection)."""
        return self._read(record_type.COLLECTION, record_id)[1]
