"""Scripted block source: replays canned API payloads without HTTP."""

from typing import Any, List

from poolwatch.block_source import BlockSource, parse_latest_block
from poolwatch.models import Block


class FakeBlockSource(BlockSource):
    """
    Returns one scripted response per fetch.

    Each script entry is either a raw payload (decoded exactly like the real
    API body) or an exception instance to raise. The last entry repeats once
    the script is exhausted.
    """

    def __init__(self, script: List[Any]):
        if not script:
            raise ValueError("script must not be empty")
        self.script = list(script)
        self.calls = 0

    def fetch_latest(self) -> Block:
        entry = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        if isinstance(entry, Exception):
            raise entry
        return parse_latest_block(entry)
