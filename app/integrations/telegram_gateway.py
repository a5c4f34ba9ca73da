"""
Telegram Bot API gateway — plain chat messages to one configured chat.

Sending is skipped (with a warning) when TELEGRAM_BOT_TOKEN or
TELEGRAM_CHAT_ID is missing. Failures raise TelegramError; callers log
them and carry on.
"""

from __future__ import annotations

import logging

import requests

logger = logging.getLogger(__name__)

_API_BASE = "https://api.telegram.org"
_DEFAULT_TIMEOUT = 10


class TelegramError(Exception):
    """Raised when the Bot API rejects a message or is unreachable."""


class TelegramGateway:
    """Usage:
        gw = TelegramGateway(token=cfg["TELEGRAM_BOT_TOKEN"], chat_id=cfg["TELEGRAM_CHAT_ID"])
        gw.send_message("New feedback")
    """

    def __init__(self, *, token: str, chat_id: str, session: requests.Session | None = None) -> None:
        self.token = (token or "").strip()
        self.chat_id = (chat_id or "").strip()
        self._session = session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def is_configured(self) -> bool:
        return bool(self.token and self.chat_id)

    def send_message(self, text: str) -> bool:
        """Send *text*; returns False when not configured."""
        if not self.is_configured():
            logger.warning("TELEGRAM_BOT_TOKEN/TELEGRAM_CHAT_ID are not configured")
            return False

        try:
            resp = self.session.post(
                f"{_API_BASE}/bot{self.token}/sendMessage",
                json={"chat_id": self.chat_id, "text": text},
                timeout=_DEFAULT_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise TelegramError(f"Failed to send message: {exc}") from exc

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        if not resp.ok or not (payload or {}).get("ok"):
            description = (payload or {}).get("description") or f"HTTP {resp.status_code}"
            raise TelegramError(f"Failed to send message: {description}")
        return True
