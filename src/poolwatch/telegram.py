"""Telegram Bot API transport over plain HTTP.

Outbound: ``sendMessage`` addressed by chat id, optionally as a reply.
Inbound: ``getUpdates`` long polling, yielding text messages.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests
from pydantic import ValidationError

from poolwatch.config import TelegramConfig
from poolwatch.errors import DeliveryError, FetchError
from poolwatch.models import IncomingMessage, UpdateBatch

logger = logging.getLogger(__name__)


class Transport(ABC):
    """Messaging transport used by the notifier and the subscription flow."""

    @abstractmethod
    def send_message(self, chat_id: int, text: str, reply_to_message_id: Optional[int] = None) -> None:
        """Deliver one text message.

        Raises:
            DeliveryError: the message was not accepted for delivery
        """

    @abstractmethod
    def get_updates(self, offset: Optional[int] = None, timeout: int = 0) -> UpdateBatch:
        """Return incoming messages with update_id >= offset, and the offset to ask for next."""


def parse_update(update: Dict[str, Any]) -> Optional[IncomingMessage]:
    """Turn one raw update into an IncomingMessage, or None if it carries no usable message."""
    message = update.get("message")
    if not isinstance(message, dict):
        return None
    chat = message.get("chat")
    sender = message.get("from")
    if not isinstance(chat, dict) or "id" not in chat or "message_id" not in message:
        return None
    try:
        return IncomingMessage(
            update_id=update.get("update_id"),
            message_id=message["message_id"],
            chat_id=chat["id"],
            username=sender.get("username") if isinstance(sender, dict) else None,
            text=message.get("text") or "",
        )
    except ValidationError as e:
        logger.warning(f"Skipping malformed update {update.get('update_id')!r}: {e}")
        return None


class TelegramTransport(Transport):
    def __init__(self, config: TelegramConfig, session: Optional[requests.Session] = None):
        if not config.bot_token:
            raise ValueError("Telegram bot token is required")
        self.config = config
        self.base_url = f"{config.api_base.rstrip('/')}/bot{config.bot_token}"
        self.timeout = config.http_timeout_seconds
        self.session = session or requests.Session()

    def _call(
        self,
        method: str,
        payload: Optional[Dict[str, Any]] = None,
        http_method: str = "post",
        request_timeout: Optional[float] = None,
    ) -> Any:
        url = f"{self.base_url}/{method}"
        kwargs: Dict[str, Any] = {"timeout": request_timeout or self.timeout}
        if http_method == "post":
            resp = self.session.post(url, json=payload or {}, **kwargs)
        else:
            resp = self.session.get(url, params=payload or {}, **kwargs)
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        if resp.status_code >= 400 or not body.get("ok", False):
            description = body.get("description") or f"HTTP {resp.status_code}"
            raise requests.exceptions.HTTPError(f"{method}: {description}", response=resp)
        return body.get("result")

    def get_me(self) -> Dict[str, Any]:
        """Validate the token; returns the bot's user record."""
        try:
            return self._call("getMe", http_method="get")
        except requests.exceptions.RequestException as e:
            raise FetchError(f"Telegram getMe failed: {e}") from e

    def send_message(self, chat_id: int, text: str, reply_to_message_id: Optional[int] = None) -> None:
        payload: Dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_to_message_id is not None:
            payload["reply_to_message_id"] = reply_to_message_id
            payload["allow_sending_without_reply"] = True
        try:
            self._call("sendMessage", payload)
        except requests.exceptions.RequestException as e:
            raise DeliveryError(chat_id, str(e)) from e
        logger.debug(f"Telegram message sent to {chat_id}: {len(text)} chars")

    def get_updates(self, offset: Optional[int] = None, timeout: int = 0) -> UpdateBatch:
        params: Dict[str, Any] = {"timeout": timeout, "allowed_updates": '["message"]'}
        if offset is not None:
            params["offset"] = offset
        try:
            raw = self._call(
                "getUpdates",
                params,
                http_method="get",
                request_timeout=timeout + self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise FetchError(f"Telegram getUpdates failed: {e}") from e
        batch = UpdateBatch(next_offset=offset)
        if not isinstance(raw, list):
            return batch
        for update in raw:
            if not isinstance(update, dict):
                continue
            update_id = update.get("update_id")
            if not isinstance(update_id, int) or isinstance(update_id, bool):
                # No id to acknowledge it by; it cannot be handled either
                continue
            batch.next_offset = max(batch.next_offset or 0, update_id + 1)
            parsed = parse_update(update)
            if parsed is not None:
                batch.messages.append(parsed)
        return batch
