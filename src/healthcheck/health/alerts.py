"""
Notification framework for the health monitor.

Delivers alert and recovery messages through pluggable handlers: Telegram for
operators and an optional append-only log file. Delivery failures are logged
and reported as False, never raised.
"""

import asyncio
import html
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import httpx

from healthcheck.core.config import Config
from healthcheck.core.models import Notification, NotificationKind

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"


def format_telegram_message(notification: Notification) -> str:
    """Render a notification as Telegram HTML."""
    name = html.escape(notification.service_name)
    message = html.escape(notification.message)
    if notification.kind == NotificationKind.RECOVERY:
        return f"✅ <b>Recovery: {name}</b>\n\n{message}"
    return f"\U0001f6a8 <b>Alert: {name}</b>\n\n{message}"


class NotificationHandler(ABC):
    """Abstract base class for notification handlers."""

    @abstractmethod
    async def send(self, notification: Notification) -> bool:
        """
        Send a notification.

        Args:
            notification: Notification to send

        Returns:
            True if the notification was delivered
        """
        pass

    async def close(self) -> None:
        """Clean up handler resources."""
        pass


class TelegramNotifier(NotificationHandler):
    """Handler that posts messages to a Telegram chat via the Bot API."""

    def __init__(
        self,
        bot_token: str,
        chat_id: Union[int, str],
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Telegram notifier.

        Args:
            bot_token: Bot API token
            chat_id: Target chat identifier
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    def _redact(self, text: str) -> str:
        if self.bot_token:
            return text.replace(self.bot_token, "<redacted>")
        return text

    async def send_message(self, text: str) -> bool:
        """Send a raw HTML message to the configured chat."""
        url = TELEGRAM_API_URL.format(token=self.bot_token)
        payload = {"chat_id": self.chat_id, "text": text, "parse_mode": "HTML"}

        logger.debug(f"Sending Telegram message to chat_id: {self.chat_id}")
        try:
            response = await self._get_client().post(url, json=payload)
        except Exception as e:
            logger.error(f"Failed to send Telegram message: {self._redact(f'{type(e).__name__}: {e}')}")
            return False

        if response.is_success:
            logger.debug("Telegram message sent successfully")
            return True

        logger.error(
            f"Telegram API error: {response.status_code} - {self._redact(response.text)}"
        )
        return False

    async def send(self, notification: Notification) -> bool:
        return await self.send_message(format_telegram_message(notification))

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class LogNotifier(NotificationHandler):
    """Handler that appends notifications to a log file."""

    def __init__(self, log_path: Path):
        """
        Initialize log notifier.

        Args:
            log_path: Path to the alert log file
        """
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def _append(self, line: str) -> None:
        with open(self.log_path, "a") as f:
            f.write(line + "\n")

    async def send(self, notification: Notification) -> bool:
        """Write notification to log file."""
        try:
            await asyncio.to_thread(self._append, notification.format())
            return True
        except OSError as e:
            logger.error(f"Failed to write notification to log: {e}")
            return False


class NotificationDispatcher:
    """Sends notifications to every registered handler."""

    def __init__(self, handlers: Optional[list[NotificationHandler]] = None):
        self._handlers: list[NotificationHandler] = list(handlers or [])

    @property
    def handlers(self) -> list[NotificationHandler]:
        return list(self._handlers)

    def add_handler(self, handler: NotificationHandler) -> None:
        """Register a notification handler."""
        self._handlers.append(handler)

    def remove_handler(self, handler: NotificationHandler) -> None:
        """Remove a notification handler."""
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def notify(self, notification: Notification) -> bool:
        """
        Send notification to all registered handlers.

        Args:
            notification: Notification to send

        Returns:
            True if at least one handler delivered it
        """
        logger.info(f"Notification: {notification.format()}")

        delivered = 0
        for handler in self._handlers:
            try:
                if await handler.send(notification):
                    delivered += 1
            except Exception as e:
                logger.error(f"Handler {handler.__class__.__name__} failed: {e}")

        if self._handlers and not delivered:
            logger.error(
                f"{notification.kind.value.capitalize()} for '{notification.service_name}' "
                "was not delivered by any handler"
            )
        return delivered > 0

    async def alert(self, service_name: str, reason: str) -> bool:
        """Convenience method to send an alert."""
        return await self.notify(Notification(NotificationKind.ALERT, service_name, reason))

    async def recovery(self, service_name: str, context: str) -> bool:
        """Convenience method to send a recovery."""
        return await self.notify(Notification(NotificationKind.RECOVERY, service_name, context))

    async def close(self) -> None:
        """Close all handlers."""
        for handler in self._handlers:
            try:
                await handler.close()
            except Exception as e:
                logger.error(f"Error closing handler: {e}")
        self._handlers.clear()


def build_dispatcher(config: Config) -> NotificationDispatcher:
    """Create a dispatcher with the handlers enabled in the configuration."""
    dispatcher = NotificationDispatcher()

    if config.telegram_enabled:
        dispatcher.add_handler(TelegramNotifier(config.telegram_token, config.telegram_chat_id))
    else:
        logger.warning("Telegram is not configured; notifications will only be logged")

    if config.alert_log:
        dispatcher.add_handler(LogNotifier(config.alert_log))

    return dispatcher
