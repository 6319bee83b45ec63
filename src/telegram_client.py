"""Stateless outbound Telegram sender used by the notifier process."""

import logging
import time
from typing import Callable, Optional

import httpx

logger = logging.getLogger(__name__)

API_BASE = "https://api.telegram.org"
# Delay before each retry (linear backoff)
RETRY_DELAYS = (0.0, 0.5)


class TelegramAPIError(Exception):
    """The Bot API rejected a request or could not be reached."""


class TelegramClient:
    """Send messages through the Bot API over plain HTTP."""

    def __init__(
        self,
        token: str,
        timeout: float = 10.0,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.token = token
        self.timeout = timeout
        self._client = http_client
        self._sleep = sleep

    def _post(self, method: str, payload: dict) -> dict:
        url = f"{API_BASE}/bot{self.token}/{method}"
        try:
            if self._client is not None:
                response = self._client.post(url, json=payload, timeout=self.timeout)
            else:
                with httpx.Client() as client:
                    response = client.post(url, json=payload, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise TelegramAPIError(f"Telegram request failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise TelegramAPIError(f"Invalid JSON from Telegram: {response.text}") from e

        if not body.get("ok"):
            raise TelegramAPIError(f"Telegram API error: {body.get('description') or response.text}")
        return body

    def send_message(self, chat_id: str, text: str, html: bool = True) -> dict:
        """
        Send one message, retrying transient failures.

        Args:
            chat_id: Target chat
            text: Message text
            html: Send with HTML parse mode

        Returns:
            Bot API response body

        Raises:
            TelegramAPIError: if every attempt failed
        """
        payload = {
            "chat_id": chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        if html:
            payload["parse_mode"] = "HTML"

        try:
            return self._post("sendMessage", payload)
        except TelegramAPIError as e:
            last_error = e

        for attempt, delay in enumerate(RETRY_DELAYS, start=1):
            logger.warning(f"Telegram send failed ({last_error}), retry {attempt} in {delay}s")
            self._sleep(delay)
            try:
                return self._post("sendMessage", payload)
            except TelegramAPIError as e:
                last_error = e

        raise last_error
