from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest

from pycartransfer.exceptions import ConcurrencyConflictError
from pycartransfer.models import TransferLog, Vehicle
from pycartransfer.state.events import ChangeEvent, ChangeType
from pycartransfer.state.store import InMemoryRecordStore, Transaction


def _dt() -> datetime:
    return datetime(2026, 1, 1, tzinfo=UTC)


def _vehicle(owner: str = "alice@example.com", vehicle_id: str = "veh-1") -> Vehicle:
    return Vehicle(id=vehicle_id, owner_identity=owner, make="Fiat", model="Panda")


@pytest.mark.asyncio
async def test_put_get_round_trip_keeps_persisted_shape() -> None:
    store = InMemoryRecordStore()
    await store.put(_vehicle())

    vehicle = await store.get(Vehicle, "veh-1")
    assert vehicle is not None
    assert vehicle.owner_identity == "alice@example.com"

    document = store.raw_document(Vehicle, "veh-1")
    assert document is not None
    assert document["ownerIdentity"] == "alice@example.com"
    assert "owner_identity" not in document


@pytest.mark.asyncio
async def test_transaction_commits_all_writes_together() -> None:
    store = InMemoryRecordStore()
    await store.put(_vehicle())

    async def _transfer(tx: Transaction) -> None:
        vehicle = await tx.get(Vehicle, "veh-1")
        assert vehicle is not None
        tx.put(vehicle.model_copy(update={"owner_identity": "bob@example.com"}))
        tx.put(
            TransferLog(
                vehicle_id="veh-1",
                from_identity="alice@example.com",
                to_identity="bob@example.com",
                transfer_request_id="req-1",
                committed_at=_dt(),
            )
        )

    await store.transact(_transfer)

    vehicle = await store.get(Vehicle, "veh-1")
    assert vehicle is not None and vehicle.owner_identity == "bob@example.com"
    assert len(await store.query(TransferLog, lambda _log: True)) == 1


@pytest.mark.asyncio
async def test_exception_in_transaction_writes_nothing() -> None:
    store = InMemoryRecordStore()
    await store.put(_vehicle())

    async def _half_done(tx: Transaction) -> None:
        vehicle = await tx.get(Vehicle, "veh-1")
        assert vehicle is not None
        tx.put(vehicle.model_copy(update={"owner_identity": "bob@example.com"}))
        raise RuntimeError("crash between writes")

    with pytest.raises(RuntimeError):
        await store.transact(_half_done)

    vehicle = await store.get(Vehicle, "veh-1")
    assert vehicle is not None and vehicle.owner_identity == "alice@example.com"


@pytest.mark.asyncio
async def test_transaction_reads_its_own_writes() -> None:
    store = InMemoryRecordStore()

    async def _create_then_read(tx: Transaction) -> int:
        tx.put(_vehicle(vehicle_id="veh-9"))
        assert await tx.get(Vehicle, "veh-9") is not None
        tx.delete(Vehicle, "veh-9")
        assert await tx.get(Vehicle, "veh-9") is None
        tx.put(_vehicle(vehicle_id="veh-10"))
        return len(await tx.query(Vehicle, lambda _v: True))

    assert await store.transact(_create_then_read) == 1


@pytest.mark.asyncio
async def test_concurrent_read_modify_write_is_serialised_by_retry() -> None:
    store = InMemoryRecordStore(max_retries=20, retry_delay=0.0)
    await store.put(Vehicle(id="veh-1", owner_identity="alice@example.com", year=0))

    async def _increment(tx: Transaction) -> None:
        vehicle = await tx.get(Vehicle, "veh-1")
        assert vehicle is not None
        await asyncio.sleep(0)
        tx.put(vehicle.model_copy(update={"year": (vehicle.year or 0) + 1}))

    await asyncio.gather(*(store.transact(_increment) for _ in range(5)))

    vehicle = await store.get(Vehicle, "veh-1")
    assert vehicle is not None and vehicle.year == 5


@pytest.mark.asyncio
async def test_query_conflict_detects_phantom_inserts() -> None:
    store = InMemoryRecordStore(max_retries=5, retry_delay=0.0)
    attempts = 0

    async def _insert_if_empty(tx: Transaction) -> None:
        nonlocal attempts
        attempts += 1
        existing = await tx.query(Vehicle, lambda v: v.owner_identity == "alice@example.com")
        if attempts == 1:
            # Another writer inserts a matching record behind our back.
            await store.put(_vehicle(vehicle_id="veh-other"))
        if not existing:
            tx.put(_vehicle(vehicle_id="veh-mine"))

    await store.transact(_insert_if_empty)

    assert attempts == 2
    assert await store.get(Vehicle, "veh-mine") is None
    assert await store.get(Vehicle, "veh-other") is not None


@pytest.mark.asyncio
async def test_bounded_retries_raise_concurrency_conflict() -> None:
    store = InMemoryRecordStore(max_retries=3, retry_delay=0.0)
    await store.put(_vehicle())
    attempts = 0

    async def _always_loses(tx: Transaction) -> None:
        nonlocal attempts
        attempts += 1
        vehicle = await tx.get(Vehicle, "veh-1")
        assert vehicle is not None
        await store.put(vehicle.model_copy(update={"license_plate": f"P{attempts}"}))
        tx.put(vehicle.model_copy(update={"owner_identity": "bob@example.com"}))

    with pytest.raises(ConcurrencyConflictError) as exc_info:
        await store.transact(_always_loses)

    assert exc_info.value.attempts == 3
    assert attempts == 3
    vehicle = await store.get(Vehicle, "veh-1")
    assert vehicle is not None and vehicle.owner_identity == "alice@example.com"


@pytest.mark.asyncio
async def test_change_feed_reports_committed_writes_only() -> None:
    store = InMemoryRecordStore()
    events: list[ChangeEvent] = []
    unsubscribe = store.subscribe(events.append)

    await store.put(_vehicle())
    await store.put(_vehicle(owner="bob@example.com"))

    async def _aborted(tx: Transaction) -> None:
        tx.put(_vehicle(vehicle_id="veh-2"))
        raise ValueError("abort")

    with pytest.raises(ValueError):
        await store.transact(_aborted)

    assert await store.delete(Vehicle, "veh-1") is True
    assert await store.delete(Vehicle, "veh-1") is False

    unsubscribe()
    await store.put(_vehicle(vehicle_id="veh-3"))

    assert [e.change for e in events] == [ChangeType.CREATED, ChangeType.UPDATED, ChangeType.DELETED]
    assert events[1].document is not None
    assert events[1].document["ownerIdentity"] == "bob@example.com"
    assert events[2].document is None
    assert events[0].version < events[1].version < events[2].version


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_commit() -> None:
    store = InMemoryRecordStore()

    def _boom(_event: ChangeEvent) -> None:
        raise RuntimeError("listener bug")

    store.subscribe(_boom)
    await store.put(_vehicle())

    assert await store.get(Vehicle, "veh-1") is not None
