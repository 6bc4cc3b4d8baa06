"""Library configuration for pycartransfer."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pycartransfer._constants import (
    DEFAULT_HISTORY_WINDOW,
    DEFAULT_NOTIFICATION_TTL,
    DEFAULT_REQUEST_TTL,
)
from pycartransfer.exceptions import TransferConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class TransferConfig:
    """Transfer workflow configuration.

    Parameters
    ----------
    request_ttl : float
        Seconds a transfer request stays open before it expires.
        Defaults to 7 days.
    notification_ttl : float
        Seconds an action-required notification is kept before the
        sweep deletes it.  Defaults to 30 days.
    history_window : float
        Seconds a resolved request keeps showing up in the incoming
        list for history display.  Defaults to 30 days.
    max_transaction_retries : int
        Attempts a store transaction makes before giving up with
        :class:`~pycartransfer.exceptions.ConcurrencyConflictError`.
    transaction_retry_delay : float
        Base backoff in seconds between conflicting attempts; grows
        linearly with the attempt number.
    sweep_enabled : bool
        Run the background expiry sweeper while a client is open.
    sweep_interval : float
        Seconds between two sweeper passes.
    delivery_max_attempts : int
        Attempts per notification before the delivery pump drops it.
    delivery_retry_delay : float
        Seconds between delivery attempts.
    webhook_url : str or None
        When set, and no transport is passed explicitly, notifications
        are POSTed to this URL.
    webhook_timeout : float
        Total timeout in seconds for one webhook request.
    """

    request_ttl: float = DEFAULT_REQUEST_TTL
    notification_ttl: float = DEFAULT_NOTIFICATION_TTL
    history_window: float = DEFAULT_HISTORY_WINDOW
    max_transaction_retries: int = 5
    transaction_retry_delay: float = 0.005
    sweep_enabled: bool = True
    sweep_interval: float = 300.0
    delivery_max_attempts: int = 5
    delivery_retry_delay: float = 1.0
    webhook_url: str | None = None
    webhook_timeout: float = 10.0

    def __post_init__(self) -> None:
        for name in ("request_ttl", "notification_ttl", "sweep_interval", "webhook_timeout"):
            if getattr(self, name) <= 0:
                raise TransferConfigError(f"{name} must be positive, got {getattr(self, name)}")
        if self.history_window < 0:
            raise TransferConfigError(f"history_window must not be negative, got {self.history_window}")
        if self.max_transaction_retries < 1:
            raise TransferConfigError("max_transaction_retries must be at least 1")
        if self.delivery_max_attempts < 1:
            raise TransferConfigError("delivery_max_attempts must be at least 1")

    @classmethod
    def from_env(cls, **overrides: Any) -> TransferConfig:
        """Create configuration from ``CARXFER_*`` environment variables.

        Explicit keyword arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        TransferConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_FLOAT_MAP = {
            "CARXFER_REQUEST_TTL": "request_ttl",
            "CARXFER_NOTIFICATION_TTL": "notification_ttl",
            "CARXFER_HISTORY_WINDOW": "history_window",
            "CARXFER_TRANSACTION_RETRY_DELAY": "transaction_retry_delay",
            "CARXFER_SWEEP_INTERVAL": "sweep_interval",
            "CARXFER_DELIVERY_RETRY_DELAY": "delivery_retry_delay",
            "CARXFER_WEBHOOK_TIMEOUT": "webhook_timeout",
        }
        _ENV_INT_MAP = {
            "CARXFER_MAX_TRANSACTION_RETRIES": "max_transaction_retries",
            "CARXFER_DELIVERY_MAX_ATTEMPTS": "delivery_max_attempts",
        }

        config_kwargs: dict[str, Any] = {}
        try:
            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = float(val)
            for env_key, field_name in _ENV_INT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = int(val)
        except ValueError as exc:
            raise TransferConfigError(f"invalid numeric environment value: {exc}") from exc

        if "sweep_enabled" not in overrides:
            config_kwargs["sweep_enabled"] = _env_bool(env.get("CARXFER_SWEEP_ENABLED"), True)

        webhook_url = env.get("CARXFER_WEBHOOK_URL")
        if webhook_url and "webhook_url" not in overrides:
            config_kwargs["webhook_url"] = webhook_url.strip()

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
