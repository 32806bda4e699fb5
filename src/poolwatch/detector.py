from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional

from poolwatch.models import Block

logger = logging.getLogger(__name__)

NO_BLOCK_HEIGHT = -1


class ChangeDetector:
    """
    Owns the last acknowledged block and decides whether a fetched block is new.

    Any height different from the acknowledged one counts as a new event,
    including a lower height (pool API reorg or reset).

    When ``state_path`` is given, the acknowledged block is written there on
    every acknowledge and read back on construction.
    """

    def __init__(self, state_path: Optional[str | Path] = None):
        self._lock = threading.Lock()
        self._last: Optional[Block] = None
        self.state_path = Path(state_path) if state_path else None
        if self.state_path:
            self._last = self._load_state(self.state_path)

    @property
    def last_height(self) -> int:
        with self._lock:
            return self._last.height if self._last else NO_BLOCK_HEIGHT

    def is_new_event(self, candidate: Block) -> bool:
        with self._lock:
            last_height = self._last.height if self._last else NO_BLOCK_HEIGHT
            return candidate.height != last_height

    def acknowledge(self, candidate: Block) -> None:
        with self._lock:
            previous = self._last.height if self._last else NO_BLOCK_HEIGHT
            self._last = candidate
            if self.state_path:
                self._save_state(self.state_path, candidate)
        if previous != NO_BLOCK_HEIGHT and candidate.height < previous:
            logger.warning(f"Block height went backwards: {previous} -> {candidate.height}")

    @staticmethod
    def _load_state(path: Path) -> Optional[Block]:
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            block = Block.from_epoch_ms(int(data["height"]), float(data["ts"]))
        except Exception as e:
            logger.warning(f"Ignoring unreadable block state {path}: {e}")
            return None
        logger.info(f"Restored last acknowledged block height={block.height}")
        return block

    @staticmethod
    def _save_state(path: Path, block: Block) -> None:
        tmp = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump({"height": block.height, "ts": block.ts_ms}, f)
            os.replace(tmp, path)
        except OSError as e:
            # In-memory state stays authoritative for this process
            logger.error(f"Failed to persist block state to {path}: {e}")
