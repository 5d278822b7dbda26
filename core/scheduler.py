"""
Scheduler — Daily trigger for the stock synchronization.

A run can take hours (rate-limit cooldowns), so the scheduler simply calls
orchestrator.start() on its own thread; a run still in progress when the next
day's slot comes around makes the new trigger log and return (run-lock).
"""

import logging
import time

import schedule

logger = logging.getLogger(__name__)


def build_schedule(orchestrator, at: str = "03:00") -> schedule.Scheduler:
    """Register a daily synchronization at `at` (HH:MM, local time)."""
    scheduler = schedule.Scheduler()
    scheduler.every().day.at(at).do(orchestrator.start)
    logger.info("Daily stock synchronization scheduled at %s", at)
    return scheduler


def run_forever(scheduler: schedule.Scheduler, idle_seconds: int = 60) -> None:
    while True:
        scheduler.run_pending()
        time.sleep(idle_seconds)
