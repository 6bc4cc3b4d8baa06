"""Notification transports: the hand-off to push/email/SMS channels."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import aiohttp

from pycartransfer._constants import USER_AGENT
from pycartransfer._redact import redact_for_log
from pycartransfer.exceptions import NotificationDeliveryError
from pycartransfer.models.notification import Notification

_logger = logging.getLogger(__name__)


class NotificationTransport(Protocol):
    """Structural delivery interface used by the delivery pump.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation concrete.
    """

    async def deliver(self, notification: Notification) -> None:
        ...


class WebhookNotificationTransport:
    """POST each notification as JSON to a webhook endpoint.

    The receiving service owns the actual push/email fan-out.  The body
    is the persisted notification document with timestamps rendered as
    ISO-8601 UTC strings.
    """

    def __init__(
        self,
        url: str,
        http_session: aiohttp.ClientSession,
        *,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._url = url
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._headers: dict[str, str] = {
            "content-type": "application/json; charset=UTF-8",
            "user-agent": USER_AGENT,
        }
        if headers:
            self._headers.update(headers)

    @staticmethod
    def _body(notification: Notification) -> dict[str, Any]:
        return notification.model_dump(mode="json", by_alias=True)

    async def deliver(self, notification: Notification) -> None:
        body = self._body(notification)
        if _logger.isEnabledFor(logging.DEBUG):
            _logger.debug("Webhook delivery %s body=%s", notification.id, redact_for_log(body))

        try:
            async with self._http.post(
                self._url,
                data=json.dumps(body, separators=(",", ":")),
                headers=self._headers,
                timeout=self._timeout,
            ) as response:
                if response.status >= 300:
                    text = await response.text()
                    raise NotificationDeliveryError(
                        f"webhook returned HTTP {response.status}: {text[:200]}",
                        notification_id=notification.id,
                        status_code=response.status,
                    )
        except aiohttp.ClientError as exc:
            raise NotificationDeliveryError(
                f"webhook request failed: {exc}",
                notification_id=notification.id,
            ) from exc
        except TimeoutError as exc:
            raise NotificationDeliveryError(
                "webhook request timed out",
                notification_id=notification.id,
            ) from exc
