#!/usr/bin/env python3
"""
Nest Trend Monitor - CLI Inspection Tool

Look at the rolling sample windows from the command line.

Usage:
    python cli.py history                   # Show every device's window
    python cli.py history --device ABC123   # One device only
    python cli.py verdicts                  # Classify stored windows (no alerts sent)
    python cli.py clear --device ABC123     # Drop a device's window
    python cli.py --backend sqlite history  # Inspect the SQLite store
"""

import argparse
import sys

from detector import TrendClassifier
from errors import MonitorError
from store import create_store


def format_timestamp(reading) -> str:
    """Format a reading's timestamp for display."""
    return reading.timestamp.strftime("%Y-%m-%d %H:%M")


def _device_ids(store, args) -> list[str]:
    return [args.device] if args.device else store.device_ids()


def cmd_history(store, args):
    """Show stored sample windows, newest first."""
    device_ids = _device_ids(store, args)
    if not device_ids:
        print("No history found.")
        return

    print(f"\n{'Device':<28} {'Time':<18} {'Ambient':>8} {'Heat':>7} {'Cool':>7}  {'State'}")
    print("-" * 85)

    for device_id in device_ids:
        for reading in store.recent(device_id):
            print(
                f"{device_id:<28} {format_timestamp(reading):<18} "
                f"{reading.ambient:>7.1f}° {reading.heat_setpoint:>6.1f}° "
                f"{reading.cool_setpoint:>6.1f}°  {reading.hvac_state.value}"
            )


def cmd_verdicts(store, args):
    """Classify each stored window without dispatching anything."""
    classifier = TrendClassifier()
    device_ids = _device_ids(store, args)
    if not device_ids:
        print("No history found.")
        return

    for device_id in device_ids:
        history = store.recent(device_id)
        if len(history) < classifier.window:
            print(f"{device_id:<28} insufficient data ({len(history)}/{classifier.window} samples)")
            continue
        verdict = classifier.evaluate(history)
        marker = "⚠️ " if verdict.is_alert else "✓ "
        print(f"{device_id:<28} {marker}{verdict.describe()}")


def cmd_clear(store, args):
    """Drop one device's window."""
    store.clear(args.device)
    print(f"Cleared history for {args.device}")


def main(argv: list = None) -> int:
    parser = argparse.ArgumentParser(
        description="Nest Trend Monitor - CLI Inspection Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("--backend", choices=["redis", "sqlite"], help="History store backend")
    subparsers = parser.add_subparsers(dest="command", help="Command")

    history_parser = subparsers.add_parser("history", help="Show stored sample windows")
    history_parser.add_argument("--device", "-d", help="Only this device ID")
    history_parser.set_defaults(func=cmd_history)

    verdicts_parser = subparsers.add_parser("verdicts", help="Classify stored windows")
    verdicts_parser.add_argument("--device", "-d", help="Only this device ID")
    verdicts_parser.set_defaults(func=cmd_verdicts)

    clear_parser = subparsers.add_parser("clear", help="Drop a device's window")
    clear_parser.add_argument("--device", "-d", required=True, help="Device ID to clear")
    clear_parser.set_defaults(func=cmd_clear)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        store = create_store(args.backend)
        args.func(store, args)
    except MonitorError as e:
        print(f"Error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
