from datetime import datetime

import pytest

from backup.scheduler import (
    STATE_ARMED_INTERVAL,
    STATE_ARMED_SCHEDULE,
    STATE_STOPPED,
    BackupScheduler,
    describe_schedule,
    next_occurrence,
    parse_schedule_day,
    parse_schedule_time,
)
from backup.types import SchedulerConfig

FRIDAY_10AM = datetime(2024, 5, 10, 10, 0, 0)


class FakeTimer:
    def __init__(self, delay, callback) -> None:
        self.delay = delay
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        self.callback()


class StubLogger:
    def __init__(self) -> None:
        self.events = []

    def info(self, event: str, **extra):  # pragma: no cover - recorder
        self.events.append(("info", event, extra))

    def error(self, event: str, **extra):  # pragma: no cover - recorder
        self.events.append(("error", event, extra))


def _scheduler(run_backup, *, now=FRIDAY_10AM, logger=None):
    timers = []

    def factory(delay, callback):
        timer = FakeTimer(delay, callback)
        timers.append(timer)
        return timer

    scheduler = BackupScheduler(run_backup, timer_factory=factory, clock=lambda: now, logger=logger)
    return scheduler, timers


def _live(timers):
    return [timer for timer in timers if timer.started and not timer.cancelled]


def test_next_occurrence_daily_rolls_to_tomorrow():
    assert next_occurrence(FRIDAY_10AM, "02:00", "daily") == datetime(2024, 5, 11, 2, 0)
    assert next_occurrence(FRIDAY_10AM, "23:30", "daily") == datetime(2024, 5, 10, 23, 30)
    assert next_occurrence(FRIDAY_10AM, "10:00", "daily") == datetime(2024, 5, 11, 10, 0)


def test_next_occurrence_weekly():
    sunday_3am = datetime(2024, 5, 12, 3, 0)
    assert next_occurrence(sunday_3am, "02:00", 0) == datetime(2024, 5, 19, 2, 0)
    assert next_occurrence(datetime(2024, 5, 12, 1, 0), "02:00", 0) == datetime(2024, 5, 12, 2, 0)
    assert next_occurrence(FRIDAY_10AM, "02:00", 1) == datetime(2024, 5, 13, 2, 0)
    assert next_occurrence(FRIDAY_10AM, "02:00", "6") == datetime(2024, 5, 11, 2, 0)


@pytest.mark.parametrize("value", ["2:00", "24:00", "12:60", "noon", ""])
def test_parse_schedule_time_rejects_invalid(value):
    with pytest.raises(ValueError):
        parse_schedule_time(value)


@pytest.mark.parametrize("value", [7, -1, "monday", True])
def test_parse_schedule_day_rejects_invalid(value):
    with pytest.raises(ValueError):
        parse_schedule_day(value)


def test_describe_schedule():
    assert describe_schedule(SchedulerConfig(mode="interval", interval_hours=6)) == "every 6h"
    assert describe_schedule(SchedulerConfig(schedule_day=0, schedule_time="03:15")) == "every Sunday at 03:15"
    assert describe_schedule(SchedulerConfig()) == "daily at 02:00"


def test_schedule_mode_arms_single_timer():
    scheduler, timers = _scheduler(lambda: None)

    scheduler.configure(SchedulerConfig(mode="schedule", schedule_time="02:00", schedule_day="daily"))

    assert scheduler.state == STATE_ARMED_SCHEDULE
    assert scheduler.next_run == datetime(2024, 5, 11, 2, 0)
    assert len(_live(timers)) == 1
    assert timers[0].delay == 16 * 3600


def test_reconfigure_cancels_previous_timer():
    scheduler, timers = _scheduler(lambda: None)

    scheduler.configure(SchedulerConfig(mode="schedule"))
    scheduler.configure(SchedulerConfig(mode="interval", interval_hours=3))

    assert timers[0].cancelled
    assert _live(timers) == [timers[1]]
    assert timers[1].delay == 3 * 3600
    assert scheduler.state == STATE_ARMED_INTERVAL


def test_disabled_config_stops_scheduler():
    scheduler, timers = _scheduler(lambda: None)
    scheduler.configure(SchedulerConfig(mode="interval"))

    scheduler.configure(SchedulerConfig(enabled=False))

    assert scheduler.state == STATE_STOPPED
    assert scheduler.next_run is None
    assert _live(timers) == []


def test_interval_firing_runs_backup_and_rearms():
    calls = []
    scheduler, timers = _scheduler(lambda: calls.append("run"))
    scheduler.configure(SchedulerConfig(mode="interval", interval_hours=2))

    timers[0].fire()

    assert calls == ["run"]
    assert len(timers) == 2
    assert timers[1].delay == 2 * 3600
    assert scheduler.state == STATE_ARMED_INTERVAL


def test_schedule_firing_recomputes_next_run():
    calls = []
    scheduler, timers = _scheduler(lambda: calls.append("run"))
    scheduler.configure(SchedulerConfig(mode="schedule", schedule_time="23:00", schedule_day=5))

    timers[0].fire()

    assert calls == ["run"]
    assert len(timers) == 2
    assert scheduler.state == STATE_ARMED_SCHEDULE
    assert scheduler.next_run == datetime(2024, 5, 10, 23, 0)


def test_cancelled_timer_firing_is_ignored():
    calls = []
    scheduler, timers = _scheduler(lambda: calls.append("run"))
    scheduler.configure(SchedulerConfig(mode="interval"))
    scheduler.stop()

    timers[0].fire()

    assert calls == []
    assert len(timers) == 1
    assert scheduler.state == STATE_STOPPED


def test_failed_backup_does_not_break_cadence():
    logger = StubLogger()

    def failing():
        raise RuntimeError("storage offline")

    scheduler, timers = _scheduler(failing, logger=logger)
    scheduler.configure(SchedulerConfig(mode="schedule"))

    timers[0].fire()

    assert scheduler.state == STATE_ARMED_SCHEDULE
    assert len(timers) == 2 and timers[1].started
    assert any(item[:2] == ("error", "scheduled_backup_failed") for item in logger.events)
