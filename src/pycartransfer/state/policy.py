"""Transfer request expiry policy.

Pure functions of a request and the current time.  The store
transaction decides *when* the check runs; this module only decides
*whether* a request is expired.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime, timedelta

from pycartransfer._constants import DEFAULT_REQUEST_TTL
from pycartransfer.models.transfer import TransferRequest


def is_expired(now: datetime, expires_at: datetime) -> bool:
    # Strictly after: a request is still valid at the exact expiry instant.
    return now > expires_at


@dataclasses.dataclass(frozen=True)
class ExpiryPolicy:
    """Fixed time-to-live for transfer requests."""

    ttl: timedelta = timedelta(seconds=DEFAULT_REQUEST_TTL)

    @classmethod
    def from_seconds(cls, seconds: float) -> ExpiryPolicy:
        return cls(ttl=timedelta(seconds=seconds))

    def expires_at_for(self, created_at: datetime) -> datetime:
        return created_at + self.ttl

    def is_expired(self, request: TransferRequest, now: datetime) -> bool:
        return is_expired(now, request.expires_at)

    def is_stale(self, request: TransferRequest, now: datetime) -> bool:
        """Open request whose expiry has passed but whose status was not flipped yet."""
        return request.is_open and self.is_expired(request, now)
