import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from poolwatch.detector import ChangeDetector
from poolwatch.models import Block
from poolwatch.notifier import Notifier
from poolwatch.subscribers import SubscriberStore
from poolwatch.testing import FakeTransport


def blocks_body(height, ts=1700000000000):
    """Body of the blocks endpoint with one record."""
    return [{"height": height, "ts": ts, "hash": "ab" * 32, "difficulty": 123456}]


@pytest.fixture
def make_payload():
    return blocks_body


@pytest.fixture
def subscribers_path(tmp_path) -> Path:
    return tmp_path / "data" / "subscribers.txt"


@pytest.fixture
def store(subscribers_path) -> SubscriberStore:
    return SubscriberStore(subscribers_path)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def notifier(transport) -> Notifier:
    return Notifier(transport)


@pytest.fixture
def detector() -> ChangeDetector:
    return ChangeDetector()


@pytest.fixture
def block_100() -> Block:
    return Block.from_epoch_ms(100, 1700000000000)
