"""Alert dispatcher - delivers failure alerts and notices to Telegram chats."""
import logging
from datetime import datetime
from typing import List, Optional, Sequence

import httpx

from ..config import settings, get_admin_ids
from ..utils.retry import RetryPolicy, linear_backoff, retry_async
from .probe import ResourceSnapshot

logger = logging.getLogger(__name__)

# Telegram rejects messages longer than this
TELEGRAM_MAX_MESSAGE_LEN = 4096

# Characters of error text included in an alert
ALERT_ERROR_EXCERPT = 200

SEND_TIMEOUT_SECONDS = 15


def is_retryable_delivery_error(exc: BaseException) -> bool:
    """Rate limits, server errors, timeouts and dropped connections are retried."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError))


def split_message(text: str, max_len: int = TELEGRAM_MAX_MESSAGE_LEN) -> List[str]:
    """Cut a message into chunks Telegram accepts, preferring line breaks."""
    if len(text) <= max_len:
        return [text]

    parts = []
    remaining = text
    while remaining:
        if len(remaining) <= max_len:
            parts.append(remaining)
            break
        cut = remaining.rfind("\n", 0, max_len + 1)
        if cut < max_len * 0.6:
            cut = max_len
        parts.append(remaining[:cut])
        remaining = remaining[cut:].lstrip("\n")
    return parts


class AlertDispatcher:
    """Sends plain-text messages through the Telegram Bot API."""

    def __init__(
        self,
        bot_token: Optional[str] = None,
        destinations: Optional[Sequence[str]] = None,
        policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._bot_token = bot_token
        self._destinations = list(destinations) if destinations is not None else None
        self.policy = policy or RetryPolicy(
            max_attempts=settings.alert_max_attempts,
            backoff=linear_backoff(settings.alert_backoff_seconds),
            retry_on=is_retryable_delivery_error,
        )
        self.transport = transport

    @property
    def bot_token(self) -> Optional[str]:
        return self._bot_token if self._bot_token is not None else settings.telegram_bot_token

    @property
    def destinations(self) -> List[str]:
        return self._destinations if self._destinations is not None else get_admin_ids()

    def _redact(self, text: str) -> str:
        if self.bot_token:
            return text.replace(self.bot_token, "<redacted>")
        return text

    async def _post(self, client: httpx.AsyncClient, chat_id: str, text: str):
        url = f"{settings.telegram_api_base}/bot{self.bot_token}/sendMessage"

        async def attempt():
            response = await client.post(url, json={"chat_id": chat_id, "text": text})
            response.raise_for_status()
            return response

        await retry_async(attempt, self.policy, f"Telegram delivery to {chat_id}")

    async def notify(self, destination: str, text: str) -> bool:
        """Deliver ``text`` to one chat. Returns False instead of raising."""
        if not self.bot_token:
            logger.error("Telegram bot token is not configured, message not sent")
            return False

        success = True
        async with httpx.AsyncClient(timeout=SEND_TIMEOUT_SECONDS, transport=self.transport) as client:
            for chunk in split_message(text):
                try:
                    await self._post(client, destination, chunk)
                except Exception as e:
                    logger.error(f"Failed to send message to chat {destination}: {self._redact(str(e))}")
                    success = False
        if success:
            logger.debug(f"Message sent to chat {destination}")
        return success

    async def notify_all(self, text: str) -> bool:
        """Deliver ``text`` to every configured destination."""
        destinations = self.destinations
        if not destinations:
            logger.warning("No alert destinations configured, message not sent")
            return False

        success = True
        for chat_id in destinations:
            if await self.notify(chat_id, text):
                logger.info(f"Notification sent to chat {chat_id}")
            else:
                logger.warning(f"Could not notify chat {chat_id}")
                success = False
        return success

    async def notify_error(
        self,
        resource: ResourceSnapshot,
        error_text: str,
        status_code: Optional[int] = None,
        transport_failure: bool = False,
    ) -> bool:
        """Send the failure alert for one check of ``resource``."""
        message = format_failure_alert(resource, error_text, status_code, transport_failure)
        return await self.notify_all(message)


def format_failure_alert(
    resource: ResourceSnapshot,
    error_text: str,
    status_code: Optional[int] = None,
    transport_failure: bool = False,
    now: Optional[datetime] = None,
) -> str:
    """Build the plain-text failure notice for a resource."""
    timestamp = (now or datetime.utcnow()).strftime("%d.%m.%Y - %H:%M:%S UTC")
    reason = (
        "Network failure or server error"
        if transport_failure
        else "Invalid or empty server response"
    )
    lines = [
        f"📌 {timestamp} - DOWN ❌",
        f"ID: {resource.id}",
        f"Name: {resource.name}",
        f"Url: {resource.url}",
        f"Type: {resource.type}",
        f"Interval: {resource.interval} min",
        f"Error: {(error_text or '')[:ALERT_ERROR_EXCERPT]}",
    ]
    if status_code:
        lines.append(f"Status code: {status_code}")
    lines.append(f"Reason: {reason}")
    lines.append(f"Logs: /logs {resource.id}")
    return "\n".join(lines)


# Global instance
alert_dispatcher = AlertDispatcher()
