"""Testing module initialization."""

from poolwatch.testing.fake_source import FakeBlockSource
from poolwatch.testing.fake_transport import FakeTransport, SentMessage

__all__ = ["FakeBlockSource", "FakeTransport", "SentMessage"]
