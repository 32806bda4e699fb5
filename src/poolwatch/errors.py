"""
Exceptions raised by poolwatch components.

Each component raises one of these so the scheduler can tell a data
problem from a transport problem when it logs and recovers.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class PoolwatchError(Exception):
    """Base exception for all poolwatch errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class FetchError(PoolwatchError):
    """The block API could not be reached or returned an unusable response."""


class SchemaError(PoolwatchError):
    """The block API answered, but the payload has an unexpected structure."""

    def __init__(self, reason: str, payload: Any = None):
        details = {"reason": reason}
        if payload is not None:
            details["payload"] = repr(payload)[:200]
        super().__init__("unexpected response structure", details)
        self.reason = reason

    def __str__(self) -> str:
        return f"{self.message}: {self.reason}"


class StorageError(PoolwatchError):
    """The subscriber file could not be read or written."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, {"path": path} if path else None)
        self.path = path


class ParseError(PoolwatchError):
    """A line of the subscriber file is not a valid chat id."""

    def __init__(self, path: str, line_number: int, line: str):
        super().__init__(
            f"{path}:{line_number}: invalid subscriber id {line!r}",
            {"path": path, "line_number": line_number},
        )
        self.path = path
        self.line_number = line_number
        self.line = line


class DeliveryError(PoolwatchError):
    """A message could not be delivered to one chat."""

    def __init__(self, chat_id: int, reason: str):
        super().__init__(f"delivery to {chat_id} failed: {reason}", {"chat_id": chat_id})
        self.chat_id = chat_id
        self.reason = reason


class ConfigError(PoolwatchError):
    """Configuration is missing or invalid; fatal at startup."""
