"""poolwatch: p2pool block notifications over Telegram."""

__version__ = "0.1.0"
