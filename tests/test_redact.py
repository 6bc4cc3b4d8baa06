from __future__ import annotations

from pycartransfer._redact import mask_identity, redact_for_log


def test_redact_for_log_masks_identities_and_text() -> None:
    payload = {
        "id": "req-1",
        "fromIdentity": "alice@example.com",
        "toIdentity": "bob@example.com",
        "message": "keys are under the mat",
        "vehicleSnapshot": {"make": "Fiat", "model": "Panda"},
        "payload": {"counterpartyIdentity": "carol@example.org"},
    }

    redacted = redact_for_log(payload)
    assert redacted["id"] == "req-1"
    assert redacted["fromIdentity"] == "a***@example.com"
    assert redacted["toIdentity"] == "b***@example.com"
    assert redacted["message"] == "<text:22c>"
    assert redacted["vehicleSnapshot"] == {"make": "Fiat", "model": "Panda"}
    assert redacted["payload"]["counterpartyIdentity"] == "c***@example.org"


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_mask_identity_handles_non_email_and_empty() -> None:
    assert mask_identity("workshop-42") == "w***"
    assert mask_identity("") == "<none>"
    assert mask_identity(None) == "<none>"
