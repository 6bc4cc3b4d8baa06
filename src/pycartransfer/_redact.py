"""Helpers for safe logging.

Transfer records carry personal data: identities are email addresses and
requests hold a free-text message.  This module masks them before they
reach a log record.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

# camelCase document keys and snake_case attribute names, lowercased.
_IDENTITY_KEYS: frozenset[str] = frozenset(
    {
        "fromidentity",
        "from_identity",
        "toidentity",
        "to_identity",
        "owneridentity",
        "owner_identity",
        "previousowneridentity",
        "previous_owner_identity",
        "recipientidentity",
        "recipient_identity",
        "counterpartyidentity",
        "counterparty_identity",
    }
)

_TEXT_KEYS: frozenset[str] = frozenset({"message", "body"})


def mask_identity(identity: str | None) -> str:
    """Mask the local part of an email-style identity.

    ``"alice@example.com"`` becomes ``"a***@example.com"``.  Values
    without an ``@`` keep only their first character.
    """
    if not identity:
        return "<none>"
    local, sep, domain = identity.partition("@")
    head = local[:1] or "?"
    if not sep:
        return f"{head}***"
    return f"{head}***@{domain}"


def redact_for_log(value: Any, *, max_string: int = 256, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > 20:
        return "<max-depth>"

    if value is None:
        return None

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, Mapping):
        redacted: dict[str, Any] = {}
        for k, v in value.items():
            key = str(k)
            lowered = key.lower()
            if lowered in _IDENTITY_KEYS and isinstance(v, str):
                redacted[key] = mask_identity(v)
            elif lowered in _TEXT_KEYS and isinstance(v, str):
                redacted[key] = f"<text:{len(v)}c>"
            else:
                redacted[key] = redact_for_log(v, max_string=max_string, _depth=_depth + 1)
        return redacted

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    # Datetimes, enums and other scalars.
    return str(value)
