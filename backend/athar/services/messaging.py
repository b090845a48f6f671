# Overview: Outbound messaging channel (Telegram Bot API) with best-effort delivery results.

"""
Messaging channel

Every outbound call returns a DeliveryResult and never raises. Callers use the
result to record message ids or to log, and are free to ignore it: a failed
notification never fails the donation or review it accompanies.

Telegram replies with {"ok": true, "result": {...}} or
{"ok": false, "error_code": ..., "description": ...}; both HTTP errors and
ok=false replies become failed results.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx


logger = logging.getLogger("athar.channel")

# Telegram caps captions at 1024 characters and messages at 4096
MAX_CAPTION_LENGTH = 1024
MAX_TEXT_LENGTH = 4096


@dataclass(frozen=True)
class DeliveryResult:
    ok: bool
    method: str
    message_id: int | None = None
    chat_id: str | None = None
    error: str | None = None

    @classmethod
    def failed(cls, method: str, error: str) -> "DeliveryResult":
        return cls(ok=False, method=method, error=error)


def decision_keyboard(donation_id: str, *, approve_label: str, reject_label: str) -> dict:
    """Inline two-button choice carrying approve_<id> / reject_<id> tokens."""
    return {
        "inline_keyboard": [[
            {"text": approve_label, "callback_data": f"approve_{donation_id}"},
            {"text": reject_label, "callback_data": f"reject_{donation_id}"},
        ]]
    }


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


class MessagingChannel:
    """Interface for the one fixed notification/approval channel."""

    enabled = False

    @property
    def default_chat_id(self) -> str | None:
        return None

    def send_photo(self, chat_id, photo_url: str, caption: str, reply_markup: dict | None = None) -> DeliveryResult:
        raise NotImplementedError

    def send_message(self, chat_id, text: str, reply_markup: dict | None = None) -> DeliveryResult:
        raise NotImplementedError

    def edit_caption(self, chat_id, message_id: int, caption: str) -> DeliveryResult:
        raise NotImplementedError

    def edit_text(self, chat_id, message_id: int, text: str) -> DeliveryResult:
        raise NotImplementedError

    def answer_callback(self, callback_id: str, text: str, show_alert: bool = True) -> DeliveryResult:
        raise NotImplementedError

    def close(self) -> None:
        pass


class DisabledChannel(MessagingChannel):
    """Used when bot credentials are not configured; logs and reports failure."""

    def _skip(self, method: str) -> DeliveryResult:
        logger.info("Messaging channel not configured; skipped %s", method)
        return DeliveryResult.failed(method, "channel not configured")

    def send_photo(self, chat_id, photo_url, caption, reply_markup=None):
        return self._skip("sendPhoto")

    def send_message(self, chat_id, text, reply_markup=None):
        return self._skip("sendMessage")

    def edit_caption(self, chat_id, message_id, caption):
        return self._skip("editMessageCaption")

    def edit_text(self, chat_id, message_id, text):
        return self._skip("editMessageText")

    def answer_callback(self, callback_id, text, show_alert=True):
        return self._skip("answerCallbackQuery")


class TelegramChannel(MessagingChannel):
    """Telegram Bot API client over a shared httpx.Client."""

    enabled = True

    def __init__(
        self,
        token: str,
        chat_id: str,
        *,
        api_base: str = "https://api.telegram.org",
        timeout: float = 10.0,
        parse_mode: str = "Markdown",
        transport: httpx.BaseTransport | None = None,
    ):
        self._chat_id = chat_id
        self._parse_mode = parse_mode
        self._client = httpx.Client(
            base_url=f"{api_base.rstrip('/')}/bot{token}/",
            timeout=timeout,
            transport=transport,
        )

    @property
    def default_chat_id(self) -> str:
        return self._chat_id

    def _call(self, method: str, payload: dict[str, Any]) -> DeliveryResult:
        try:
            resp = self._client.post(method, json=payload)
        except httpx.HTTPError as exc:
            logger.error("Telegram %s transport error: %s", method, exc)
            return DeliveryResult.failed(method, str(exc) or exc.__class__.__name__)

        try:
            body = resp.json()
        except ValueError:
            logger.error("Telegram %s returned HTTP %s with a non-JSON body", method, resp.status_code)
            return DeliveryResult.failed(method, f"HTTP {resp.status_code}")

        if not isinstance(body, dict):
            logger.error("Telegram %s returned HTTP %s with a non-object JSON body", method, resp.status_code)
            return DeliveryResult.failed(method, f"HTTP {resp.status_code}")

        if not body.get("ok"):
            description = body.get("description") or f"HTTP {resp.status_code}"
            logger.error("Telegram %s error %s: %s", method, body.get("error_code"), description)
            return DeliveryResult.failed(method, description)

        result = body.get("result")
        message_id = None
        chat_id = None
        if isinstance(result, dict):
            message_id = result.get("message_id")
            chat = result.get("chat")
            if isinstance(chat, dict) and chat.get("id") is not None:
                chat_id = str(chat["id"])
        logger.debug("Telegram %s OK", method)
        return DeliveryResult(ok=True, method=method, message_id=message_id, chat_id=chat_id)

    def send_photo(self, chat_id, photo_url, caption, reply_markup=None):
        payload = {
            "chat_id": chat_id,
            "photo": photo_url,
            "caption": _truncate(caption, MAX_CAPTION_LENGTH),
            "parse_mode": self._parse_mode,
        }
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return self._call("sendPhoto", payload)

    def send_message(self, chat_id, text, reply_markup=None):
        payload = {
            "chat_id": chat_id,
            "text": _truncate(text, MAX_TEXT_LENGTH),
            "parse_mode": self._parse_mode,
        }
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return self._call("sendMessage", payload)

    # Omitting reply_markup on an edit removes the inline buttons
    def edit_caption(self, chat_id, message_id, caption):
        return self._call("editMessageCaption", {
            "chat_id": chat_id,
            "message_id": message_id,
            "caption": _truncate(caption, MAX_CAPTION_LENGTH),
            "parse_mode": self._parse_mode,
        })

    def edit_text(self, chat_id, message_id, text):
        return self._call("editMessageText", {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": _truncate(text, MAX_TEXT_LENGTH),
            "parse_mode": self._parse_mode,
        })

    def answer_callback(self, callback_id, text, show_alert=True):
        return self._call("answerCallbackQuery", {
            "callback_query_id": callback_id,
            "text": text,
            "show_alert": show_alert,
        })

    def set_webhook(self, url: str, *, secret_token: str | None = None) -> DeliveryResult:
        payload = {"url": url, "allowed_updates": ["callback_query"]}
        if secret_token:
            payload["secret_token"] = secret_token
        return self._call("setWebhook", payload)

    def delete_webhook(self) -> DeliveryResult:
        return self._call("deleteWebhook", {})

    def close(self) -> None:
        self._client.close()


def build_channel(config) -> MessagingChannel:
    token = config.get("TELEGRAM_BOT_TOKEN")
    chat_id = config.get("TELEGRAM_CHAT_ID")
    if not token or not chat_id:
        logger.warning("TELEGRAM_BOT_TOKEN/TELEGRAM_CHAT_ID not set; donation alerts are disabled")
        return DisabledChannel()
    return TelegramChannel(
        token,
        chat_id,
        api_base=config.get("TELEGRAM_API_BASE", "https://api.telegram.org"),
        timeout=float(config.get("TELEGRAM_TIMEOUT_SECONDS", 10)),
    )
