import argparse
import logging
import signal
import sys
import threading

from poolwatch.block_source import P2PoolBlockSource
from poolwatch.config import load_config
from poolwatch.detector import ChangeDetector
from poolwatch.errors import ConfigError, FetchError, ParseError, StorageError
from poolwatch.notifier import Notifier
from poolwatch.scheduler import Scheduler
from poolwatch.subscribers import SubscriberStore
from poolwatch.subscriptions import SubscriptionHandler, UpdatePoller
from poolwatch.telegram import TelegramTransport

logger = logging.getLogger("poolwatch")


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    # urllib3 logs request URLs, which carry the bot token
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_scheduler(config, transport):
    store = SubscriberStore(config.subscribers_file)
    scheduler = Scheduler(
        source=P2PoolBlockSource(config.pool),
        detector=ChangeDetector(config.state_file),
        store=store,
        notifier=Notifier(transport, config.messages, max_parallel=config.notifier.max_parallel),
        interval_seconds=config.interval_seconds,
    )
    return scheduler, store


def cmd_run(config) -> int:
    transport = TelegramTransport(config.telegram)
    try:
        me = transport.get_me()
    except FetchError as e:
        logger.error(f"Cannot authorize Telegram bot: {e}")
        return 1
    logger.info(f"Authorized on account {me.get('username')}")

    scheduler, store = build_scheduler(config, transport)
    poller = UpdatePoller(
        transport,
        SubscriptionHandler(store, transport, config.messages),
        poll_timeout=config.telegram.poll_timeout,
    )

    stop_event = threading.Event()

    def _shutdown(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    scheduler.start(stop_event)
    try:
        poller.run(stop_event)
    finally:
        stop_event.set()
        scheduler.stop(timeout=config.pool.http_timeout_seconds + config.telegram.http_timeout_seconds)
    return 0


def cmd_once(config) -> int:
    scheduler, _ = build_scheduler(config, TelegramTransport(config.telegram))
    result = scheduler.run_once()
    print(f"Tick: {result.status.value}")
    if result.block:
        print(f"Latest block: height={result.block.height} at {result.block.observed_at.isoformat()}")
    if result.report:
        print(f"Fanout: {result.report.summary()}")
        for failure in result.report.failures:
            print(f"  failed {failure.subscriber_id}: {failure.error}")
    if result.error:
        print(f"Error: {result.error}")
    return 0


def cmd_subscribers(config) -> int:
    store = SubscriberStore(config.subscribers_file)
    try:
        ids = store.list_all()
    except (StorageError, ParseError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    for subscriber_id in ids:
        print(subscriber_id)
    print(f"{len(ids)} subscriber(s)", file=sys.stderr)
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Telegram notifications for p2pool mini blocks")
    parser.add_argument("command", choices=["run", "once", "subscribers"], help="run bot, single poll, or list subscribers")
    parser.add_argument("--config", default="config.yml", help="Path to config file")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    args = parser.parse_args(argv)

    setup_logging(args.log_level)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    if args.command == "run":
        return cmd_run(config)
    if args.command == "once":
        return cmd_once(config)
    return cmd_subscribers(config)


if __name__ == "__main__":
    sys.exit(main())
