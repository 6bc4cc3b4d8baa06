"""State/store layer.

This package is the single source of truth for how transfer records are
read and written: every multi-record transition goes through
:meth:`RecordStore.transact`, and every committed write is published on
the change feed.
"""

from pycartransfer.state.events import ChangeEvent, ChangeType
from pycartransfer.state.policy import ExpiryPolicy
from pycartransfer.state.store import InMemoryRecordStore, RecordStore, Transaction

__all__ = [
    "ChangeEvent",
    "ChangeType",
    "ExpiryPolicy",
    "InMemoryRecordStore",
    "RecordStore",
    "Transaction",
]
