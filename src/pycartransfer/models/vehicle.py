"""Vehicle model (ownership fields only)."""

from __future__ import annotations

from pydantic import field_validator

from pycartransfer._constants import VEHICLES
from pycartransfer.identity import normalize_identity
from pycartransfer.models._base import RecordModel, TransferBaseModel, UtcDatetime


class VehicleSnapshot(TransferBaseModel):
    """Descriptive vehicle fields frozen into a transfer request.

    The snapshot keeps displaying correctly after the vehicle changes
    hands again or is edited.
    """

    make: str = ""
    model: str = ""
    year: int | None = None
    license_plate: str = ""

    @property
    def label(self) -> str:
        """Human-readable label, e.g. ``"Fiat Panda (2019) AB123CD"``."""
        name = " ".join(part for part in (self.make, self.model) if part) or "vehicle"
        if self.year is not None:
            name = f"{name} ({self.year})"
        if self.license_plate:
            name = f"{name} {self.license_plate}"
        return name


class Vehicle(RecordModel):
    """A vehicle record as far as ownership transfer is concerned.

    The generic maintenance data lives elsewhere; only the coordinator's
    accept transition writes the ownership fields.
    """

    COLLECTION = VEHICLES

    owner_identity: str
    """Identity (email) of the current owner."""
    previous_owner_identity: str | None = None
    """Owner before the last accepted transfer."""
    last_transferred_at: UtcDatetime | None = None
    """Commit time of the last accepted transfer."""
    make: str = ""
    model: str = ""
    year: int | None = None
    license_plate: str = ""

    @field_validator("owner_identity", "previous_owner_identity")
    @classmethod
    def _normalize_identities(cls, value: str | None) -> str | None:
        # Compared against normalized caller identities on every transition.
        return None if value is None else normalize_identity(value)

    def snapshot(self) -> VehicleSnapshot:
        return VehicleSnapshot(
            make=self.make,
            model=self.model,
            year=self.year,
            license_plate=self.license_plate,
        )
