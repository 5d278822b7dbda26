"""Tests for core.scheduler."""

import datetime
from unittest.mock import MagicMock

from core.scheduler import build_schedule


def test_build_schedule_registers_daily_job():
    orchestrator = MagicMock()
    scheduler = build_schedule(orchestrator, at="04:30")

    assert len(scheduler.jobs) == 1
    job = scheduler.jobs[0]
    assert job.interval == 1
    assert job.unit == "days"
    assert job.at_time == datetime.time(4, 30)


def test_scheduled_job_starts_a_run():
    orchestrator = MagicMock()
    scheduler = build_schedule(orchestrator)

    scheduler.jobs[0].job_func()

    orchestrator.start.assert_called_once_with()
    orchestrator.run.assert_not_called()
