"""Tests for the persisted record models."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from pycartransfer.models import (
    Notification,
    NotificationKind,
    NotificationPayload,
    TransferRequest,
    TransferStatus,
    Vehicle,
    VehicleSnapshot,
)


def _request(**overrides: object) -> TransferRequest:
    values: dict[str, object] = {
        "vehicle_id": "veh-1",
        "from_identity": "alice@example.com",
        "to_identity": "bob@example.com",
        "recipient_registered": True,
        "vehicle_snapshot": VehicleSnapshot(make="Fiat", model="Panda", year=2019, license_plate="AB123CD"),
        "status": TransferStatus.PENDING,
        "created_at": datetime(2026, 1, 1, tzinfo=UTC),
        "updated_at": datetime(2026, 1, 1, tzinfo=UTC),
        "expires_at": datetime(2026, 1, 8, tzinfo=UTC),
    }
    values.update(overrides)
    return TransferRequest(**values)


class TestTransferStatus:
    def test_terminal_statuses(self) -> None:
        assert TransferStatus.ACCEPTED.is_terminal
        assert TransferStatus.DECLINED.is_terminal
        assert TransferStatus.EXPIRED.is_terminal
        assert not TransferStatus.PENDING.is_terminal
        assert not TransferStatus.AWAITING_REGISTRATION.is_terminal

    def test_values_are_verbatim(self) -> None:
        assert [s.value for s in TransferStatus] == [
            "AwaitingRegistration",
            "Pending",
            "Accepted",
            "Declined",
            "Expired",
        ]


class TestTransferRequest:
    def test_document_uses_camel_case_and_verbatim_status(self) -> None:
        document = _request(status=TransferStatus.AWAITING_REGISTRATION).to_document()

        assert document["vehicleId"] == "veh-1"
        assert document["fromIdentity"] == "alice@example.com"
        assert document["recipientRegistered"] is True
        assert document["status"] == "AwaitingRegistration"
        assert document["vehicleSnapshot"]["licensePlate"] == "AB123CD"
        assert document["expiresAt"] == datetime(2026, 1, 8, tzinfo=UTC)

    def test_round_trip_from_document(self) -> None:
        original = _request(message="hello")
        restored = TransferRequest.from_document(original.to_document())
        assert restored == original
        assert restored.status is TransferStatus.PENDING

    def test_self_transfer_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _request(to_identity="alice@example.com")

    def test_naive_and_offset_timestamps_normalised_to_utc(self) -> None:
        plus_two = timezone(timedelta(hours=2))
        request = _request(
            created_at=datetime(2026, 1, 1, 12, 0),
            expires_at=datetime(2026, 1, 8, 14, 0, tzinfo=plus_two),
        )
        assert request.created_at.tzinfo is UTC
        assert request.expires_at == datetime(2026, 1, 8, 12, 0, tzinfo=UTC)

    def test_with_status_touches_updated_at(self) -> None:
        now = datetime(2026, 1, 2, tzinfo=UTC)
        updated = _request().with_status(TransferStatus.DECLINED, now)
        assert updated.status is TransferStatus.DECLINED
        assert updated.updated_at == now
        assert not updated.is_open


class TestVehicle:
    def test_snapshot_copies_descriptive_fields(self) -> None:
        vehicle = Vehicle(owner_identity="alice@example.com", make="Fiat", model="Panda", year=2019, license_plate="X1")
        snapshot = vehicle.snapshot()
        assert snapshot == VehicleSnapshot(make="Fiat", model="Panda", year=2019, license_plate="X1")
        assert snapshot.label == "Fiat Panda (2019) X1"

    def test_owner_identities_are_normalised(self) -> None:
        vehicle = Vehicle(owner_identity=" Alice@Example.com ", previous_owner_identity="BOB@example.com")
        assert vehicle.owner_identity == "alice@example.com"
        assert vehicle.previous_owner_identity == "bob@example.com"
        assert Vehicle.from_document(vehicle.to_document()) == vehicle

    def test_empty_owner_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Vehicle(owner_identity="  ")

    def test_snapshot_label_without_details(self) -> None:
        assert VehicleSnapshot().label == "vehicle"

    def test_ids_are_unique(self) -> None:
        a = Vehicle(owner_identity="alice@example.com")
        b = Vehicle(owner_identity="alice@example.com")
        assert a.id and b.id and a.id != b.id


class TestNotification:
    def test_expiry(self) -> None:
        notification = Notification(
            recipient_identity="bob@example.com",
            kind=NotificationKind.TRANSFER_REQUESTED,
            title="t",
            body="b",
            payload=NotificationPayload(
                request_id="req-1",
                vehicle_snapshot=VehicleSnapshot(),
                counterparty_identity="alice@example.com",
            ),
            created_at=datetime(2026, 1, 1, tzinfo=UTC),
            expires_at=datetime(2026, 1, 31, tzinfo=UTC),
        )
        assert not notification.is_expired(datetime(2026, 1, 31, tzinfo=UTC))
        assert notification.is_expired(datetime(2026, 1, 31, 0, 0, 1, tzinfo=UTC))
        assert notification.to_document()["payload"]["requestId"] == "req-1"
        assert notification.to_document()["kind"] == "TransferRequested"
