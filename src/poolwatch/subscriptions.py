"""
Inbound flow: every message sent to the bot is a subscription request.

The sender's chat id is stored and the bot replies to the originating
message with a confirmation, or with an explicit failure text when the
subscriber file cannot be written.
"""
from __future__ import annotations

import logging
import threading
from typing import Optional

from poolwatch.config import MessagesConfig
from poolwatch.errors import DeliveryError, FetchError, StorageError
from poolwatch.models import IncomingMessage
from poolwatch.subscribers import SubscriberStore
from poolwatch.telegram import Transport

logger = logging.getLogger(__name__)


class SubscriptionHandler:
    def __init__(
        self,
        store: SubscriberStore,
        transport: Transport,
        messages: Optional[MessagesConfig] = None,
    ):
        self.store = store
        self.transport = transport
        self.messages = messages or MessagesConfig()

    def handle(self, message: IncomingMessage) -> bool:
        """
        Register the sender and reply.

        Returns:
            True if the sender is subscribed after this call.
        """
        logger.info(f"[{message.username or message.chat_id}] {message.text[:80]}")
        try:
            added = self.store.append(message.chat_id)
        except (StorageError, ValueError) as e:
            logger.error(f"Failed to subscribe {message.chat_id}: {e}")
            self._reply(message, self.messages.subscribe_failed)
            return False

        if not added:
            logger.info(f"Chat {message.chat_id} was already subscribed")
        self._reply(message, self.messages.subscribed)
        return True

    def _reply(self, message: IncomingMessage, text: str) -> None:
        try:
            self.transport.send_message(message.chat_id, text, reply_to_message_id=message.message_id)
        except DeliveryError as e:
            logger.warning(f"Could not reply to {message.chat_id}: {e}")


class UpdatePoller:
    """Long-polls the transport for messages and hands each one to the handler."""

    def __init__(
        self,
        transport: Transport,
        handler: SubscriptionHandler,
        poll_timeout: int = 60,
        error_backoff_seconds: float = 5.0,
    ):
        self.transport = transport
        self.handler = handler
        self.poll_timeout = poll_timeout
        self.error_backoff_seconds = error_backoff_seconds
        self.offset: Optional[int] = None
        self.handled_count = 0

    def poll_once(self) -> int:
        """Fetch one batch of updates and handle it. Returns the number of messages handled."""
        batch = self.transport.get_updates(offset=self.offset, timeout=self.poll_timeout)
        for message in batch.messages:
            try:
                self.handler.handle(message)
            except Exception as e:
                logger.error(f"Error handling update {message.update_id}: {e}", exc_info=True)
            self.handled_count += 1
        if batch.next_offset is not None:
            self.offset = batch.next_offset
        return len(batch.messages)

    def run(self, stop_event: threading.Event) -> None:
        logger.info("Listening for subscription requests")
        while not stop_event.is_set():
            try:
                self.poll_once()
            except FetchError as e:
                logger.warning(f"{e}; retrying in {self.error_backoff_seconds:g}s")
                stop_event.wait(self.error_backoff_seconds)
            except Exception as e:
                logger.error(f"Unexpected error polling updates: {e}", exc_info=True)
                stop_event.wait(self.error_backoff_seconds)
        logger.info("Update poller stopped")
