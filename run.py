#!/usr/bin/env python3
"""
ZC Portal Stock Synchronization — Entry Point.

This is the script operators and cron/systemd use to drive the stock
synchronization between the ZC Portal catalog and the WooCommerce shop. It
reads configuration from a .env file and exposes the job's triggers:

  sync       Run a synchronization now (blocks until the run ends)
  stop       Ask a running synchronization to stop at its next check
  status     Show the run status and the 20 most recent log lines
  clear-log  Delete the rolling log
  reset      Delete the log and return the status to idle
  set-key    Store the ZC Portal secure key in the data directory
  serve      Stay in the foreground and run the synchronization daily

A run goes through these steps (managed by SyncOrchestrator):
  1. Take the run-lock and mark the status as running
  2. Exchange the secure key for an API token
  3. Fetch the catalog page by page (waiting out rate limits)
  4. Update the stock status of every matching WooCommerce product
  5. Log the totals and mark the status as stopped

Usage:
    python run.py sync                 # Synchronize now
    python run.py --debug sync         # Verbose output
    python run.py status               # Status and recent log
    python run.py stop                 # Stop a running synchronization
    python run.py serve                # Daily schedule (SYNC_SCHEDULE_AT)
    python run.py --version            # Show version
    python run.py --env /path status   # Use alternate .env file
"""

import sys
import argparse
import logging
from pathlib import Path

from core import SyncOrchestrator, build_schedule, run_forever

# Read version from the repo-root VERSION file (e.g., "2.0.0").
VERSION_FILE = Path(__file__).resolve().parent / "VERSION"
VERSION = VERSION_FILE.read_text().strip() if VERSION_FILE.exists() else "unknown"

COMMANDS = ["sync", "stop", "status", "clear-log", "reset", "set-key", "serve"]


def print_status(report):
    """Print the status query result the way the admin screen shows it."""
    if report["status"] == "running":
        print("Stock synchronization in progress...")
    else:
        print(f"Synchronization is not active (status: {report['status']})")

    print("\nRecent log entries:")
    if not report["log"]:
        print("  The log is empty.")
    for line in report["log"]:
        print(f"  {line}")


def print_summary(counters):
    print(f"\n{'='*60}")
    print("SYNCHRONIZATION COMPLETE")
    print("="*60)
    print(f"Pages fetched: {counters.pages_fetched}")
    print(f"Updated: {counters.total_updated}")
    print(f"Errors: {counters.total_errors}")
    print(f"Skipped: {counters.total_skipped}")


def main():
    """Parse CLI arguments and dispatch to the matching trigger."""
    parser = argparse.ArgumentParser(
        description="ZC Portal Stock Sync - Synchronize product availability into WooCommerce"
    )
    parser.add_argument("--env", "-e", default="./.env", help="Path to .env file")
    parser.add_argument("--debug", action="store_true", help="Enable debug output")
    parser.add_argument("--version", "-v", action="store_true", help="Show version and exit")
    parser.add_argument("command", nargs="?", choices=COMMANDS, help="Action to perform")
    parser.add_argument("value", nargs="?", help="Secure key for set-key")

    args = parser.parse_args()

    if args.version:
        print(f"zc-stock-sync {VERSION}")
        sys.exit(0)

    if not args.command:
        parser.print_help()
        sys.exit(2)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s %(name)s - %(levelname)s - %(message)s'
    )

    # Initialize the orchestrator (loads .env and builds its collaborators)
    orchestrator = SyncOrchestrator.from_env(env_file=args.env)

    # Apply CLI overrides on top of .env values
    if args.debug:
        orchestrator.debug = True
        orchestrator.client.debug = True

    if args.command == "status":
        print_status(orchestrator.status_report())
        return

    if args.command == "stop":
        orchestrator.stop()
        print("Synchronization stop requested.")
        return

    if args.command == "clear-log":
        orchestrator.clear_log()
        print("The log was cleared.")
        return

    if args.command == "reset":
        orchestrator.reset()
        print("Log cleared and status reset to idle.")
        return

    if args.command == "set-key":
        if not args.value:
            print("Usage: python run.py set-key <secure key>")
            sys.exit(2)
        orchestrator.store.set_secure_key(args.value)
        print(f"Secure key stored in {orchestrator.store.data_dir}")
        return

    # Print header
    print(f"\n{'='*60}")
    print(f"ZC PORTAL STOCK SYNC v{VERSION}")
    print("="*60)
    print(f"API: {orchestrator.client.api_url}")
    print(f"Batch size: {orchestrator.batch_size}")

    # Validate required configuration before proceeding
    if not orchestrator.validate_config():
        sys.exit(1)

    if args.command == "serve":
        at = orchestrator.settings.get("SCHEDULE_AT", "03:00")
        print(f"Daily synchronization at {at} (Ctrl+C to quit)")
        try:
            run_forever(build_schedule(orchestrator, at=at))
        except KeyboardInterrupt:
            print("\nScheduler stopped.")
        return

    # sync: run now, in the foreground
    counters = orchestrator.start()
    print_summary(counters)


if __name__ == "__main__":
    main()
