"""
Block sources: fetch the most recent block found by the pool.

The p2pool API returns a JSON array of block records, newest first. Only
``height`` and ``ts`` (epoch milliseconds) of element 0 are used.
"""
from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import Any

import requests

from poolwatch.config import PoolConfig
from poolwatch.errors import FetchError, SchemaError
from poolwatch.models import Block

logger = logging.getLogger(__name__)


class BlockSource(ABC):
    """Interface for anything that can report the pool's latest block."""

    @abstractmethod
    def fetch_latest(self) -> Block:
        """
        Fetch the most recent block.

        Raises:
            FetchError: transport failure, non-2xx status, unreadable body
            SchemaError: the body is readable but not the expected shape
        """


def _is_number(value: Any) -> bool:
    # bool is an int subclass; JSON true/false are not numbers here
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def parse_latest_block(payload: Any) -> Block:
    """Strictly decode the blocks payload into a Block or raise SchemaError."""
    if not isinstance(payload, list):
        raise SchemaError("expected a JSON array", payload)
    if not payload:
        raise SchemaError("empty block list")
    latest = payload[0]
    if not isinstance(latest, dict):
        raise SchemaError("block record is not an object", latest)

    height = latest.get("height")
    if not _is_number(height):
        raise SchemaError("missing or non-numeric 'height'", latest)
    if height < 0 or float(height) != int(height):
        raise SchemaError("'height' is not a non-negative integer", latest)

    ts = latest.get("ts")
    if not _is_number(ts):
        raise SchemaError("missing or non-numeric 'ts'", latest)

    try:
        return Block.from_epoch_ms(int(height), ts)
    except (ValueError, OverflowError, OSError) as e:
        raise SchemaError(f"'ts' out of range: {e}", latest) from e


class P2PoolBlockSource(BlockSource):
    def __init__(self, config: PoolConfig, session: requests.Session | None = None):
        self.config = config
        self.url = config.blocks_url
        self.timeout = config.http_timeout_seconds
        self.session = session

    def _get(self) -> requests.Response:
        getter = self.session.get if self.session is not None else requests.get
        return getter(self.url, timeout=self.timeout, headers={"Accept": "application/json"})

    def fetch_latest(self) -> Block:
        try:
            resp = self._get()
            resp.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise FetchError(f"GET {self.url} failed: {e}", {"url": self.url}) from e

        try:
            payload = resp.json()
        except ValueError as e:
            raise FetchError(f"GET {self.url} returned an unreadable body: {e}", {"url": self.url}) from e

        block = parse_latest_block(payload)
        logger.debug(f"Latest block height={block.height} ts={block.observed_at.isoformat()}")
        return block
