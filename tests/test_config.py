from __future__ import annotations

import pytest

from pycartransfer.config import TransferConfig
from pycartransfer.exceptions import TransferConfigError


def test_defaults() -> None:
    config = TransferConfig()
    assert config.request_ttl == 7 * 24 * 3600
    assert config.notification_ttl == 30 * 24 * 3600
    assert config.max_transaction_retries == 5
    assert config.sweep_enabled
    assert config.webhook_url is None


def test_from_env_reads_carxfer_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CARXFER_REQUEST_TTL", "3600")
    monkeypatch.setenv("CARXFER_MAX_TRANSACTION_RETRIES", "9")
    monkeypatch.setenv("CARXFER_SWEEP_ENABLED", "off")
    monkeypatch.setenv("CARXFER_WEBHOOK_URL", " https://hooks.example.com/notify ")

    config = TransferConfig.from_env()

    assert config.request_ttl == 3600.0
    assert config.max_transaction_retries == 9
    assert not config.sweep_enabled
    assert config.webhook_url == "https://hooks.example.com/notify"


def test_from_env_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CARXFER_REQUEST_TTL", "3600")
    monkeypatch.setenv("CARXFER_SWEEP_ENABLED", "yes")

    config = TransferConfig.from_env(request_ttl=60.0, sweep_enabled=False)

    assert config.request_ttl == 60.0
    assert not config.sweep_enabled


def test_from_env_rejects_garbage_numbers(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CARXFER_DELIVERY_MAX_ATTEMPTS", "many")
    with pytest.raises(TransferConfigError):
        TransferConfig.from_env()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"request_ttl": 0},
        {"notification_ttl": -1},
        {"sweep_interval": 0},
        {"history_window": -5},
        {"max_transaction_retries": 0},
        {"delivery_max_attempts": 0},
    ],
)
def test_validation(kwargs: dict[str, float]) -> None:
    with pytest.raises(TransferConfigError):
        TransferConfig(**kwargs)
