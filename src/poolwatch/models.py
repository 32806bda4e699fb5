from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Block(BaseModel):
    """One block found by the pool."""

    model_config = ConfigDict(frozen=True)

    height: int = Field(ge=0)
    observed_at: datetime

    @field_validator("observed_at")
    @classmethod
    def _as_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @classmethod
    def from_epoch_ms(cls, height: int, ts_ms: float) -> "Block":
        return cls(
            height=height,
            observed_at=datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc),
        )

    @property
    def ts_ms(self) -> int:
        return int(round(self.observed_at.timestamp() * 1000))


class DeliveryFailure(BaseModel):
    subscriber_id: int
    error: str


class FanoutReport(BaseModel):
    """Per-subscriber outcome of delivering one block notification."""

    height: int
    attempted: List[int] = Field(default_factory=list)
    delivered: List[int] = Field(default_factory=list)
    failures: List[DeliveryFailure] = Field(default_factory=list)

    @property
    def failed_ids(self) -> List[int]:
        return [f.subscriber_id for f in self.failures]

    @property
    def ok(self) -> bool:
        return not self.failures

    def summary(self) -> str:
        return (
            f"height={self.height} attempted={len(self.attempted)} "
            f"delivered={len(self.delivered)} failed={len(self.failures)}"
        )


class IncomingMessage(BaseModel):
    """A text message received by the bot."""

    update_id: int
    message_id: int
    chat_id: int
    username: Optional[str] = None
    text: str = ""


class TickStatus(str, Enum):
    FETCH_FAILED = "fetch_failed"
    SCHEMA_ERROR = "schema_error"
    UNCHANGED = "unchanged"
    LISTING_FAILED = "listing_failed"
    NOTIFIED = "notified"


class TickResult(BaseModel):
    status: TickStatus
    block: Optional[Block] = None
    report: Optional[FanoutReport] = None
    error: Optional[str] = None


class UpdateBatch(BaseModel):
    """Messages from one getUpdates call and the offset that acknowledges them."""

    messages: List[IncomingMessage] = Field(default_factory=list)
    next_offset: Optional[int] = None
