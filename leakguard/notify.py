"""Delivery of new-breach alerts."""

import re
import asyncio
import logging
from typing import Iterable, Optional, Protocol

import aiohttp

from leakguard.errors import NotificationError
from leakguard.models import Breach

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"

# Characters Telegram MarkdownV2 requires to be escaped
_MARKDOWN_SPECIAL = re.compile(r"([_*\[\]()~`>#+\-=|{}.!\\])")


def escape_markdown(text: str) -> str:
    return _MARKDOWN_SPECIAL.sub(r"\\\1", str(text))


def format_new_breaches(email: str, breaches: Iterable[Breach]) -> str:
    lines = [f"🚨 *New breaches found for {escape_markdown(email)}*", ""]
    for breach in breaches:
        line = f"• *{escape_markdown(breach.name)}*"
        if breach.domain:
            line += f" \\({escape_markdown(breach.domain)}\\)"
        if breach.date:
            line += f" \\- {escape_markdown(breach.date)}"
        lines.append(line)
    return "\n".join(lines)


class Notifier(Protocol):
    async def send(self, chat_id: int, text: str) -> None: ...

    async def close(self) -> None: ...


class LogNotifier:
    """Write alerts to the log; used when no bot token is configured."""

    async def send(self, chat_id: int, text: str) -> None:
        logger.warning("Alert for chat %s:\n%s", chat_id, text)

    async def close(self) -> None:
        pass


class TelegramNotifier:
    """Send MarkdownV2 messages through the Telegram Bot API."""

    def __init__(
        self,
        token: str,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        api_url: str = TELEGRAM_API_URL,
        timeout: float = 15.0,
    ):
        if not token:
            raise ValueError("Telegram bot token is required")
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def send(self, chat_id: int, text: str) -> None:
        url = f"{self.api_url}/bot{self.token}/sendMessage"
        payload = {"chat_id": chat_id, "text": text, "parse_mode": "MarkdownV2"}
        try:
            async with self._get_session().post(url, json=payload) as resp:
                data = await resp.json(content_type=None)
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            logger.error("Failed to send alert to chat %s: %s", chat_id, exc)
            raise NotificationError(f"telegram request failed: {exc}") from exc

        if status != 200 or not isinstance(data, dict) or not data.get("ok"):
            description = data.get("description") if isinstance(data, dict) else None
            logger.error("Telegram rejected alert for chat %s: HTTP %s %s", chat_id, status, description)
            raise NotificationError(f"telegram answered HTTP {status}: {description}")
        logger.debug("Alert delivered to chat %s", chat_id)
