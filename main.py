#!/usr/bin/env python3
"""
Nest Trend Monitor - Main Application

Polls Nest thermostats through the Smart Device Management API, keeps a
short rolling history per device and reacts when the room temperature
keeps moving against the HVAC mode: an alert for cooling, an alert plus
a remote shutdown for heating.

One invocation is one poll; schedule it with cron or a systemd timer.

Usage:
    python main.py                    # Run one poll cycle
    python main.py --test             # Test configuration and exit
    python main.py --backend sqlite   # Use the local SQLite history store
"""

import argparse
import logging
import sys
from dataclasses import dataclass
from typing import Optional

import config
from cycle import CycleReport, PollCycle
from detector import TrendClassifier
from dispatcher import ReactionDispatcher
from errors import StoreUnavailable, UpstreamFatal
from notifier import NotificationManager
from poller import NestPoller
from store import SampleStore, create_store

logger = logging.getLogger(__name__)


def configure_logging(level: str = None):
    logging.basicConfig(
        level=level or config.LOG_LEVEL,
        format='%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    # Reduce noise from libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)


@dataclass
class MonitorContext:
    """Collaborators shared by one run, built once and passed explicitly."""
    poller: NestPoller
    store: SampleStore
    notifier: NotificationManager
    classifier: TrendClassifier
    dispatcher: ReactionDispatcher

    @classmethod
    def build(cls, backend: str = None, notifier: NotificationManager = None) -> "MonitorContext":
        notifier = notifier or NotificationManager()
        poller = NestPoller()
        try:
            store = create_store(backend)
        except ValueError as e:
            raise UpstreamFatal(f"Failed to load config: {e}") from e
        return cls(
            poller=poller,
            store=store,
            notifier=notifier,
            classifier=TrendClassifier(),
            dispatcher=ReactionDispatcher(notifier, poller),
        )


class NestMonitor:
    """
    Runs the startup checks and one poll cycle.

    Fatal conditions are notified before run_once returns a non-zero
    exit code; nothing below this class exits the process.
    """

    def __init__(self, context: MonitorContext):
        self.context = context
        self.last_report: Optional[CycleReport] = None

    def run_once(self) -> int:
        ctx = self.context
        try:
            if not ctx.poller.is_configured:
                raise UpstreamFatal("Failed to load config: SDM credentials are incomplete")

            try:
                ctx.store.ping()
            except StoreUnavailable as e:
                logger.error(f"History store unavailable: {e}")
                ctx.notifier.notify_error("Failed to connect to store")
                return 1

            ctx.poller.get_access_token()
            poll = ctx.poller.poll()
        except UpstreamFatal as e:
            logger.error(f"Fatal upstream error: {e}")
            ctx.notifier.notify_error(str(e))
            return 1

        for device_id, reason in poll.rejected.items():
            ctx.notifier.notify(device_id, f"Unreadable device data: {reason}")

        cycle = PollCycle(ctx.store, ctx.classifier, ctx.dispatcher, ctx.notifier)
        self.last_report = cycle.run(poll.readings)
        return 0


def test_configuration(context: MonitorContext) -> bool:
    """Test the configuration and connectivity."""
    print("Testing Nest Trend Monitor Configuration")
    print("=" * 50)

    print(f"\n1. Testing history store ({type(context.store).__name__})...")
    try:
        context.store.ping()
        print("   ✓ Store reachable")
    except StoreUnavailable as e:
        print(f"   ✗ Failed: {e}")
        return False

    print("\n2. Testing SDM API connection...")
    try:
        context.poller.get_access_token()
        print("   ✓ Access token obtained")
        poll = context.poller.poll()
        print(f"   ✓ Found {len(poll.readings)} thermostats:")
        for r in poll.readings:
            print(f"      - {r.device_id}: {r.ambient:.1f}° ({r.hvac_state.value})")
        for device_id, reason in poll.rejected.items():
            print(f"      ⚠ {device_id}: {reason}")
    except UpstreamFatal as e:
        print(f"   ✗ Failed: {e}")
        return False

    print("\n3. Testing notifications...")
    if context.notifier.notify_error("🧪 Test notification from Nest Trend Monitor"):
        print("   ✓ Notification sent")
    else:
        print("   ⚠ No notification delivered (provider missing or failing)")

    print("\n" + "=" * 50)
    print("Configuration test complete!")
    return True


def main(argv: list = None) -> int:
    parser = argparse.ArgumentParser(description="Nest Trend Monitor")
    parser.add_argument("--test", action="store_true", help="Test configuration and exit")
    parser.add_argument("--backend", choices=["redis", "sqlite"], help="History store backend")
    parser.add_argument("--log-level", help="Logging level (default: %s)" % config.LOG_LEVEL)
    args = parser.parse_args(argv)

    configure_logging(args.log_level)

    notifier = NotificationManager()
    try:
        context = MonitorContext.build(backend=args.backend, notifier=notifier)
    except (UpstreamFatal, StoreUnavailable) as e:
        logger.error(f"Startup failed: {e}")
        notifier.notify_error(str(e))
        return 1

    if args.test:
        return 0 if test_configuration(context) else 1

    return NestMonitor(context).run_once()


if __name__ == "__main__":
    sys.exit(main())
