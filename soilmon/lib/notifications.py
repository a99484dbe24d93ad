"""Notification system for low moisture alerts.

Provides an abstract notification interface with a Telegram bot backend,
and a dispatcher that delivers alerts to every configured recipient without
blocking the ingestion pipeline.

Delivery is at-most-once: a failed delivery is logged and dropped, never
retried, and does not undo the alert state that triggered it.
"""

import asyncio
import json
import ssl
import urllib.request
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import override

from soilmon.lib.alerts import AlertEvent
from soilmon.lib.config import get_settings
from soilmon.lib.exceptions import NotificationError
from soilmon.logging import get_logger

logger = get_logger("lib.notifications")


def format_alert_message(event: AlertEvent) -> str:
    """Format an alert event as a notification message."""
    return (
        f"\N{POLICE CARS REVOLVING LIGHT} ALERT: Soil moisture for sensor "
        f"{event.sensor_id} is too low! ({event.moisture_level}%)"
    )


class AbstractNotifier(ABC):
    """Abstract base class for notification backends."""

    @abstractmethod
    async def notify(self, message: str, recipient_id: str) -> None:
        """Deliver a message to a single recipient.

        Raises:
            NotificationError: If the message could not be delivered.
        """


class TelegramNotifier(AbstractNotifier):
    """Telegram bot API notification backend."""

    def __init__(
        self,
        bot_token: str,
        *,
        api_url: str = "https://api.telegram.org",
        verify_tls: bool = True,
        timeout_sec: int = 30,
    ) -> None:
        self._url = f"{api_url}/bot{bot_token}/sendMessage"
        self._timeout = timeout_sec
        self._ssl_context = ssl.create_default_context()
        if not verify_tls:
            logger.warning(
                "TLS certificate verification is DISABLED for Telegram "
                "notifications (TELEGRAM_VERIFY_TLS=0)"
            )
            self._ssl_context.check_hostname = False
            self._ssl_context.verify_mode = ssl.CERT_NONE

    @property
    def ssl_context(self) -> ssl.SSLContext:
        return self._ssl_context

    @override
    async def notify(self, message: str, recipient_id: str) -> None:
        """Send a message to a Telegram chat."""
        data = json.dumps({"chat_id": recipient_id, "text": message}).encode(
            "utf-8"
        )

        def do_send() -> None:
            req = urllib.request.Request(
                self._url,
                data=data,
                headers={"Content-Type": "application/json"},
                method="POST",
            )
            with urllib.request.urlopen(
                req, timeout=self._timeout, context=self._ssl_context
            ) as resp:
                if not 200 <= resp.status < 300:
                    raise NotificationError(
                        f"Telegram API returned status {resp.status}"
                    )

        try:
            await asyncio.to_thread(do_send)
        except OSError as e:
            # HTTPError (non-2xx) and URLError are both OSError subclasses
            raise NotificationError(f"Telegram request failed: {e}") from e
        logger.info("Sent Telegram alert to %s", recipient_id)


class NoOpNotifier(AbstractNotifier):
    """No-op notifier that logs but doesn't send notifications."""

    @override
    async def notify(self, message: str, recipient_id: str) -> None:
        """Log the message but don't send a notification."""
        logger.info(
            "Notifications disabled, skipping alert for %s: %s",
            recipient_id,
            message,
        )


class AlertDispatcher:
    """Fans an alert out to every recipient as detached delivery tasks.

    Registered as the AlertDebouncer callback. The caller never waits on
    delivery and never sees a delivery failure.
    """

    def __init__(
        self, notifier: AbstractNotifier, recipients: Sequence[str]
    ) -> None:
        self._notifier = notifier
        self._recipients = list(recipients)
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        """Number of deliveries still in flight."""
        return len(self._tasks)

    def __call__(self, event: AlertEvent) -> None:
        self.dispatch(event)

    def dispatch(self, event: AlertEvent) -> None:
        """Schedule delivery of an alert to all recipients."""
        if not self._recipients:
            logger.warning(
                "No recipients configured, alert for %s not sent",
                event.sensor_id,
            )
            return

        message = format_alert_message(event)
        for recipient in self._recipients:
            task = asyncio.create_task(self._deliver(message, recipient))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _deliver(self, message: str, recipient: str) -> None:
        try:
            await self._notifier.notify(message, recipient)
        except NotificationError as e:
            logger.error("Failed to deliver alert to %s: %s", recipient, e)
        except Exception:
            logger.exception("Unexpected error delivering alert to %s", recipient)

    async def drain(self) -> None:
        """Wait for all in-flight deliveries to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


def get_notifier() -> AbstractNotifier:
    """Factory function to get the configured notifier."""
    cfg = get_settings().telegram
    if not cfg.enabled:
        return NoOpNotifier()
    return TelegramNotifier(
        cfg.bot_token.get_secret_value(),
        api_url=cfg.api_url,
        verify_tls=cfg.verify_tls,
        timeout_sec=cfg.timeout_sec,
    )


def get_dispatcher() -> AlertDispatcher:
    """Build the alert dispatcher for the configured recipients."""
    return AlertDispatcher(get_notifier(), get_settings().telegram.chat_ids)
