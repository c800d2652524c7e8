# gptrelay/clients/telegram_client.py
#
# Thin Bot API wrapper: long polling, webhook registration, sendMessage.

from typing import Any, Dict, List, Mapping, Optional

import requests

from gptrelay.core.channels import InboundMessage, OutboundMessage
from gptrelay.core.formatting import Dialect
from gptrelay.utils.logging import get_logger

logger = get_logger(__name__)

API_BASE = "https://api.telegram.org"

PARSE_MODES = {
    Dialect.HTML: "HTML",
    Dialect.MARKDOWN_V2: "MarkdownV2",
    Dialect.PLAIN: None,
}


class TelegramError(RuntimeError):
    """The Bot API could not be reached or answered ok=false."""


def parse_update(update: Mapping[str, Any]) -> Optional[InboundMessage]:
    """
    Convert a Bot API update into an InboundMessage.
    Returns None for updates without a text message (stickers, joins, ...).
    """
    message = update.get("message") or update.get("edited_message")
    if not message:
        return None
    text = message.get("text")
    if text is None:
        return None
    chat = message.get("chat") or {}
    chat_id = chat.get("id")
    if chat_id is None:
        return None
    reply_to = message.get("reply_to_message") or {}
    return InboundMessage(
        chat_id=int(chat_id),
        text=text,
        reply_to_text=reply_to.get("text"),
    )


def build_reply_markup(message: OutboundMessage) -> Optional[Dict[str, Any]]:
    if message.force_reply:
        return {"force_reply": True}
    if message.keyboard:
        return {
            "keyboard": [[{"text": label} for label in row] for row in message.keyboard],
            "resize_keyboard": True,
        }
    return None


class TelegramClient:
    def __init__(
        self,
        token: str,
        api_base: str = API_BASE,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not token or not token.strip():
            raise RuntimeError("TELEGRAM_BOT_TOKEN is not set")
        self._base = f"{api_base.rstrip('/')}/bot{token.strip()}"
        self.timeout = timeout
        self._session = session or requests.Session()

    def _call(self, method: str, payload: Dict[str, Any], timeout: Optional[float] = None) -> Any:
        try:
            resp = self._session.post(f"{self._base}/{method}", json=payload, timeout=timeout or self.timeout)
        except requests.RequestException as e:
            raise TelegramError(f"{method} failed: {e}") from e
        try:
            body = resp.json()
        except ValueError as e:
            raise TelegramError(f"{method} returned non-JSON (HTTP {resp.status_code})") from e
        if not body.get("ok"):
            raise TelegramError(f"{method} rejected: {body.get('description') or resp.status_code}")
        return body.get("result")

    def get_me(self) -> Dict[str, Any]:
        return self._call("getMe", {})

    def get_updates(self, offset: Optional[int] = None, timeout: int = 60) -> List[Dict[str, Any]]:
        payload: Dict[str, Any] = {"timeout": timeout, "allowed_updates": ["message", "edited_message"]}
        if offset is not None:
            payload["offset"] = offset
        # The HTTP timeout must outlast the long-poll timeout.
        return self._call("getUpdates", payload, timeout=timeout + 10) or []

    def send_message(self, message: OutboundMessage) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"chat_id": message.chat_id, "text": message.text}
        parse_mode = PARSE_MODES.get(message.dialect)
        if parse_mode:
            payload["parse_mode"] = parse_mode
        markup = build_reply_markup(message)
        if markup is not None:
            payload["reply_markup"] = markup
        return self._call("sendMessage", payload)

    def set_webhook(self, url: str, secret_token: Optional[str] = None) -> None:
        payload: Dict[str, Any] = {"url": url}
        if secret_token:
            payload["secret_token"] = secret_token
        self._call("setWebhook", payload)
        logger.info("Webhook registered at %s", url)

    def delete_webhook(self) -> None:
        self._call("deleteWebhook", {})
