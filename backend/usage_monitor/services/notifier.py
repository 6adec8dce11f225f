"""Telegram notifier for alert messages."""

import logging
from typing import Optional
import httpx

logger = logging.getLogger(__name__)

# Characters that open an entity in Telegram's legacy Markdown
MARKDOWN_SPECIAL = ("_", "*", "`", "[")


def escape_markdown(value) -> str:
    """Escape a value for literal display inside a Markdown message."""
    text = str(value)
    for char in MARKDOWN_SPECIAL:
        text = text.replace(char, f"\\{char}")
    return text


class TelegramNotifier:
    """
    Fire-and-forget delivery to a Telegram bot chat.
    Never raises and never retries; failures are logged.
    """

    def __init__(
        self,
        bot_token: str = "",
        chat_id: str = "",
        api_base: str = "https://api.telegram.org",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    async def notify(self, title: str, body: str) -> bool:
        """
        Send a Markdown message. Returns True if Telegram accepted it.
        The title is escaped here; the body is sent as given and must already
        escape any interpolated values (see ``escape_markdown``).
        """
        if not self.configured:
            logger.warning("Telegram not configured, skipping notification")
            return False

        payload = {
            "chat_id": self.chat_id,
            "text": f"*{escape_markdown(title)}*\n\n{body}",
            "parse_mode": "Markdown",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.api_base}/bot{self.bot_token}/sendMessage",
                    json=payload,
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Telegram notification failed: {e}")
            return False

        logger.info(f"Telegram notification sent: {title}")
        return True
