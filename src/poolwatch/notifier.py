from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from poolwatch.config import MessagesConfig
from poolwatch.models import Block, DeliveryFailure, FanoutReport
from poolwatch.telegram import Transport

logger = logging.getLogger(__name__)


def format_block_message(block: Block, messages: Optional[MessagesConfig] = None) -> str:
    messages = messages or MessagesConfig()
    return messages.block_found.format(
        height=block.height,
        time=block.observed_at.strftime(messages.time_format),
    )


class Notifier:
    """
    Fans a block notification out to every subscriber.

    A failed delivery is recorded and the remaining subscribers are still
    attempted. With ``max_parallel > 1`` deliveries run on a bounded thread
    pool; the report keeps subscriber order either way.
    """

    def __init__(
        self,
        transport: Transport,
        messages: Optional[MessagesConfig] = None,
        max_parallel: int = 1,
    ):
        self.transport = transport
        self.messages = messages or MessagesConfig()
        self.max_parallel = max(1, max_parallel)

    def _deliver(self, subscriber_id: int, text: str) -> Optional[DeliveryFailure]:
        try:
            self.transport.send_message(subscriber_id, text)
        except Exception as e:
            logger.warning(f"Delivery to {subscriber_id} failed: {type(e).__name__}: {e}")
            return DeliveryFailure(subscriber_id=subscriber_id, error=f"{type(e).__name__}: {e}")
        return None

    def notify_all(self, event: Block, subscribers: Sequence[int]) -> FanoutReport:
        text = format_block_message(event, self.messages)
        report = FanoutReport(height=event.height, attempted=list(subscribers))
        if not subscribers:
            logger.info(f"Block {event.height}: no subscribers to notify")
            return report

        if self.max_parallel == 1 or len(subscribers) == 1:
            outcomes: List[Optional[DeliveryFailure]] = [self._deliver(sid, text) for sid in subscribers]
        else:
            workers = min(self.max_parallel, len(subscribers))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fanout") as pool:
                outcomes = list(pool.map(lambda sid: self._deliver(sid, text), subscribers))

        for sid, failure in zip(subscribers, outcomes):
            if failure is None:
                report.delivered.append(sid)
            else:
                report.failures.append(failure)

        if report.ok:
            logger.info(f"Block {event.height} announced: {report.summary()}")
        else:
            logger.warning(
                f"Block {event.height} partially announced: {report.summary()} "
                f"failed_ids={report.failed_ids}"
            )
        return report
