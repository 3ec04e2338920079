"""Timer driven automatic backups.

Two cadences are supported. Interval mode fires every ``interval_hours``.
Schedule mode fires at a wall-clock ``HH:MM`` either daily or on one weekday
(0 = Sunday ... 6 = Saturday); each firing computes the next occurrence again
instead of relying on a long running periodic timer.

At most one timer is live: :meth:`BackupScheduler.configure` always cancels the
current timer before arming a new one.
"""
from __future__ import annotations

import logging
import re
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol, Tuple, Union

from .logs import BackupLogger
from .types import DAILY, MODE_INTERVAL, MODE_SCHEDULE, SchedulerConfig

LOGGER = logging.getLogger("growthlog.scheduler")

STATE_STOPPED = "stopped"
STATE_ARMED_INTERVAL = "armed_interval"
STATE_ARMED_SCHEDULE = "armed_schedule"

_TIME_PATTERN = re.compile(r"^(\d{2}):(\d{2})$")
_DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


class TimerHandle(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def _thread_timer(delay: float, callback: Callable[[], None]) -> TimerHandle:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.name = "backup-scheduler"
    return timer


def parse_schedule_time(value: str) -> Tuple[int, int]:
    match = _TIME_PATTERN.match(str(value or "").strip())
    if not match:
        raise ValueError(f"schedule time must be HH:MM, got {value!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValueError(f"schedule time out of range: {value!r}")
    return hour, minute


def parse_schedule_day(value: Union[str, int]) -> Union[str, int]:
    """Normalise a day specifier to ``"daily"`` or a weekday number 0-6."""

    if isinstance(value, bool):
        raise ValueError(f"invalid schedule day: {value!r}")
    if isinstance(value, str):
        text = value.strip().lower()
        if text == DAILY:
            return DAILY
        if not text.isdigit():
            raise ValueError(f"invalid schedule day: {value!r}")
        value = int(text)
    if isinstance(value, int) and 0 <= value <= 6:
        return value
    raise ValueError(f"schedule day must be 'daily' or 0-6, got {value!r}")


def next_occurrence(now: datetime, schedule_time: str, schedule_day: Union[str, int]) -> datetime:
    """Return the first ``schedule_time`` on ``schedule_day`` strictly after *now*."""

    hour, minute = parse_schedule_time(schedule_time)
    day = parse_schedule_day(schedule_day)
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if day == DAILY:
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate
    current = (now.weekday() + 1) % 7
    offset = (int(day) - current) % 7
    if offset == 0 and candidate <= now:
        offset = 7
    return candidate + timedelta(days=offset)


def describe_schedule(config: SchedulerConfig) -> str:
    if config.mode == MODE_INTERVAL:
        return f"every {config.interval_hours}h"
    day = parse_schedule_day(config.schedule_day)
    if day == DAILY:
        return f"daily at {config.schedule_time}"
    return f"every {_DAY_NAMES[int(day)]} at {config.schedule_time}"


class BackupScheduler:
    """Own the single re-armable timer that triggers automatic backups."""

    def __init__(
        self,
        run_backup: Callable[[], object],
        *,
        timer_factory: Optional[TimerFactory] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[BackupLogger] = None,
    ) -> None:
        self._run_backup = run_backup
        self._timer_factory = timer_factory or _thread_timer
        self._clock = clock or datetime.now
        self._logger = logger
        self._lock = threading.RLock()
        self._timer: Optional[TimerHandle] = None
        self._generation = 0
        self._state = STATE_STOPPED
        self._config: Optional[SchedulerConfig] = None
        self._next_run: Optional[datetime] = None

    # ------------------------------------------------------------------
    @property
    def state(self) -> str:
        with self._lock:
            return self._state

    @property
    def next_run(self) -> Optional[datetime]:
        with self._lock:
            return self._next_run

    @property
    def config(self) -> Optional[SchedulerConfig]:
        with self._lock:
            return self._config

    # ------------------------------------------------------------------
    def configure(self, config: SchedulerConfig) -> None:
        """Cancel any pending timer, then arm according to *config*."""

        with self._lock:
            self._disarm()
            self._config = config
            if not config.enabled:
                LOGGER.info("Automatic backups disabled")
                self._event("scheduler_disabled")
                return
            if config.mode == MODE_SCHEDULE:
                self._arm_schedule(self._generation)
            else:
                self._arm_interval(self._generation)
            LOGGER.info("Automatic backups %s, next run %s", describe_schedule(config), self._next_run)
            self._event(
                "scheduler_armed",
                mode=config.mode,
                cadence=describe_schedule(config),
                next_run=self._next_run.isoformat() if self._next_run else None,
            )

    def stop(self) -> None:
        with self._lock:
            self._disarm()

    # ------------------------------------------------------------------
    def _disarm(self) -> None:
        self._generation += 1
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
        self._state = STATE_STOPPED
        self._next_run = None

    def _start_timer(self, delay: float, callback: Callable[[], None]) -> None:
        timer = self._timer_factory(max(delay, 0.0), callback)
        self._timer = timer
        timer.start()

    def _arm_interval(self, generation: int) -> None:
        assert self._config is not None
        period = float(self._config.interval_hours) * 3600.0
        self._next_run = self._clock() + timedelta(seconds=period)
        self._state = STATE_ARMED_INTERVAL
        self._start_timer(period, lambda: self._fire_interval(generation))

    def _arm_schedule(self, generation: int) -> None:
        assert self._config is not None
        now = self._clock()
        target = next_occurrence(now, self._config.schedule_time, self._config.schedule_day)
        self._next_run = target
        self._state = STATE_ARMED_SCHEDULE
        self._start_timer((target - now).total_seconds(), lambda: self._fire_schedule(generation))

    def _fire_interval(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            # fixed period measured from this firing, not from backup completion
            self._arm_interval(generation)
        self._execute(MODE_INTERVAL)

    def _fire_schedule(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
        self._execute(MODE_SCHEDULE)
        with self._lock:
            if generation != self._generation:
                return
            self._arm_schedule(generation)
            LOGGER.info("Next scheduled backup at %s", self._next_run)

    def _execute(self, trigger: str) -> None:
        LOGGER.info("Running %s backup", trigger)
        try:
            self._run_backup()
        except Exception as exc:
            LOGGER.exception("Scheduled backup failed")
            if self._logger is not None:
                self._logger.error("scheduled_backup_failed", trigger=trigger, error=str(exc))

    def _event(self, event: str, **extra: object) -> None:
        if self._logger is not None:
            self._logger.info(event, **extra)


__all__ = [
    "BackupScheduler",
    "STATE_ARMED_INTERVAL",
    "STATE_ARMED_SCHEDULE",
    "STATE_STOPPED",
    "describe_schedule",
    "next_occurrence",
    "parse_schedule_day",
    "parse_schedule_time",
]
