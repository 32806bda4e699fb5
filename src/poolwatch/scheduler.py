"""
Polling loop: fetch the latest block, detect a change, fan out to subscribers.

One cycle ("tick") runs BlockSource -> ChangeDetector -> SubscriberStore ->
Notifier. Upstream errors are logged and the cycle is skipped; the fixed
interval is the only retry policy.
"""
from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable, Optional

from poolwatch.block_source import BlockSource
from poolwatch.detector import ChangeDetector
from poolwatch.errors import FetchError, ParseError, SchemaError, StorageError
from poolwatch.models import TickResult, TickStatus
from poolwatch.notifier import Notifier
from poolwatch.subscribers import SubscriberStore

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    IDLE = "idle"
    POLLING = "polling"


class Scheduler:
    def __init__(
        self,
        source: BlockSource,
        detector: ChangeDetector,
        store: SubscriberStore,
        notifier: Notifier,
        interval_seconds: float,
        on_tick: Optional[Callable[[TickResult], None]] = None,
    ):
        """
        Args:
            source: where the latest block comes from
            detector: owner of the last acknowledged block
            store: subscriber registry
            notifier: fanout to subscribers
            interval_seconds: wait between the end of one tick and the next
            on_tick: optional callback receiving every TickResult
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.source = source
        self.detector = detector
        self.store = store
        self.notifier = notifier
        self.interval_seconds = interval_seconds
        self.on_tick = on_tick
        self.state = SchedulerState.IDLE
        self.tick_count = 0
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def run_once(self) -> TickResult:
        """Run a single fetch -> detect -> list -> notify cycle."""
        self.state = SchedulerState.POLLING
        try:
            return self._tick()
        finally:
            self.state = SchedulerState.IDLE
            self.tick_count += 1

    def _tick(self) -> TickResult:
        try:
            block = self.source.fetch_latest()
        except SchemaError as e:
            logger.error(f"Block API schema violation: {e}")
            return TickResult(status=TickStatus.SCHEMA_ERROR, error=str(e))
        except FetchError as e:
            logger.warning(f"Block API fetch failed: {e}")
            return TickResult(status=TickStatus.FETCH_FAILED, error=str(e))

        if not self.detector.is_new_event(block):
            logger.debug(f"No new block (height {block.height})")
            return TickResult(status=TickStatus.UNCHANGED, block=block)

        # Acknowledge before fanout: a failure below must not re-announce this block
        self.detector.acknowledge(block)
        logger.info(f"New block found: height={block.height} at {block.observed_at.isoformat()}")

        try:
            subscribers = self.store.list_all()
        except (StorageError, ParseError) as e:
            logger.error(f"Cannot list subscribers, block {block.height} will not be announced: {e}")
            return TickResult(status=TickStatus.LISTING_FAILED, block=block, error=str(e))

        report = self.notifier.notify_all(block, subscribers)
        return TickResult(status=TickStatus.NOTIFIED, block=block, report=report)

    def run(self, stop_event: threading.Event) -> None:
        """Tick every ``interval_seconds`` until ``stop_event`` is set."""
        logger.info(f"Scheduler started, interval {self.interval_seconds:g}s")
        while not stop_event.is_set():
            try:
                result = self.run_once()
            except Exception as e:
                logger.error(f"Unexpected error in scheduler tick: {e}", exc_info=True)
            else:
                if self.on_tick:
                    try:
                        self.on_tick(result)
                    except Exception as e:
                        logger.error(f"Error in on_tick callback: {e}", exc_info=True)
            stop_event.wait(self.interval_seconds)
        logger.info("Scheduler stopped")

    def start(self, stop_event: Optional[threading.Event] = None) -> threading.Event:
        """Run the loop on a daemon thread; returns the event that stops it."""
        if self._thread and self._thread.is_alive():
            logger.warning("Scheduler already running")
            return self._stop_event
        self._stop_event = stop_event or threading.Event()
        self._thread = threading.Thread(
            target=self.run, args=(self._stop_event,), name="scheduler", daemon=True
        )
        self._thread.start()
        return self._stop_event

    def stop(self, timeout: Optional[float] = None) -> None:
        if self._stop_event:
            self._stop_event.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None
