from __future__ import annotations

from datetime import UTC, datetime, timedelta

from pycartransfer.models import TransferRequest, TransferStatus, VehicleSnapshot
from pycartransfer.state.policy import ExpiryPolicy, is_expired

_CREATED = datetime(2026, 1, 1, tzinfo=UTC)


def _request(status: TransferStatus = TransferStatus.PENDING) -> TransferRequest:
    policy = ExpiryPolicy()
    return TransferRequest(
        vehicle_id="veh-1",
        from_identity="alice@example.com",
        to_identity="bob@example.com",
        recipient_registered=True,
        vehicle_snapshot=VehicleSnapshot(),
        status=status,
        created_at=_CREATED,
        updated_at=_CREATED,
        expires_at=policy.expires_at_for(_CREATED),
    )


def test_default_ttl_is_seven_days() -> None:
    assert ExpiryPolicy().expires_at_for(_CREATED) == datetime(2026, 1, 8, tzinfo=UTC)


def test_expiry_is_strictly_after_expires_at() -> None:
    expires_at = datetime(2026, 1, 8, tzinfo=UTC)
    assert not is_expired(expires_at, expires_at)
    assert is_expired(expires_at + timedelta(microseconds=1), expires_at)


def test_is_expired_ignores_status_but_is_stale_does_not() -> None:
    policy = ExpiryPolicy()
    later = _CREATED + timedelta(days=8)

    accepted = _request(TransferStatus.ACCEPTED)
    assert policy.is_expired(accepted, later)
    assert not policy.is_stale(accepted, later)

    pending = _request(TransferStatus.AWAITING_REGISTRATION)
    assert policy.is_stale(pending, later)
    assert not policy.is_stale(pending, _CREATED + timedelta(days=6))


def test_from_seconds() -> None:
    policy = ExpiryPolicy.from_seconds(3600)
    assert policy.ttl == timedelta(hours=1)
