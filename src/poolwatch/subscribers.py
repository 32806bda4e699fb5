"""
File-backed subscriber registry.

One decimal chat id per line, newline-terminated, append-only. The scheduler
thread reads the file while the Telegram update poller appends to it, so
every file access is serialized through one lock.
"""
from __future__ import annotations

import logging
import re
import threading
from pathlib import Path
from typing import List, Optional, Set

from poolwatch.errors import ParseError, StorageError

logger = logging.getLogger(__name__)

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1
_ID_LINE = re.compile(r"[+-]?[0-9]+")


def parse_subscriber_id(line: str) -> Optional[int]:
    """Parse one stored line; None if it is not a signed 64-bit decimal."""
    text = line.rstrip("\r\n")
    if not _ID_LINE.fullmatch(text):
        return None
    value = int(text)
    if value < INT64_MIN or value > INT64_MAX:
        return None
    return value


class SubscriberStore:
    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._known: Optional[Set[int]] = None

    def append(self, subscriber_id: int) -> bool:
        """
        Register a chat id.

        Returns:
            True if the id was written, False if it was already registered.

        Raises:
            StorageError: the file could not be read or written
        """
        if subscriber_id < INT64_MIN or subscriber_id > INT64_MAX:
            raise ValueError(f"subscriber id out of int64 range: {subscriber_id}")
        with self._lock:
            known = self._ensure_index()
            if subscriber_id in known:
                logger.debug(f"Subscriber {subscriber_id} already registered")
                return False
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                prefix = "" if self._ends_with_newline() else "\n"
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(f"{prefix}{subscriber_id}\n")
            except OSError as e:
                raise StorageError(f"Cannot append to {self.path}: {e}", str(self.path)) from e
            known.add(subscriber_id)
        logger.info(f"Registered subscriber {subscriber_id}")
        return True

    def list_all(self) -> List[int]:
        """
        Return all registered chat ids in registration order.

        A missing file means nobody has subscribed yet and yields an empty list.

        Raises:
            StorageError: the file exists but cannot be read
            ParseError: a line is not a valid chat id (no partial result)
        """
        with self._lock:
            lines = self._read_lines()
            if lines is None:
                self._known = set()
                return []
            ids: List[int] = []
            seen: Set[int] = set()
            for line_number, line in enumerate(lines, 1):
                value = parse_subscriber_id(line)
                if value is None:
                    raise ParseError(str(self.path), line_number, line)
                if value not in seen:
                    seen.add(value)
                    ids.append(value)
            self._known = seen
            return ids

    def _ends_with_newline(self) -> bool:
        try:
            with open(self.path, "rb") as f:
                f.seek(0, 2)
                if f.tell() == 0:
                    return True
                f.seek(-1, 2)
                return f.read(1) == b"\n"
        except FileNotFoundError:
            return True

    def _read_lines(self) -> Optional[List[str]]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return f.read().splitlines()
        except FileNotFoundError:
            logger.info(f"No subscribers yet ({self.path} does not exist)")
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Cannot read {self.path}: {e}", str(self.path)) from e

    def _ensure_index(self) -> Set[int]:
        # Corrupt lines are skipped here; list_all() is the strict reader.
        if self._known is None:
            known: Set[int] = set()
            for line_number, line in enumerate(self._read_lines() or [], 1):
                value = parse_subscriber_id(line)
                if value is None:
                    logger.warning(f"Skipping invalid line {line_number} in {self.path}: {line!r}")
                    continue
                known.add(value)
            self._known = known
        return self._known
