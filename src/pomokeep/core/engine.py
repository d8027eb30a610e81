"""Timer engine: transition operations, wake-up handler and recovery.

Every operation reads the snapshot once, derives a new one, writes it once
and returns it, all under the store's exclusive lock.  Elapsed time is
always measured against the wall clock via :func:`compute_remaining`, so the
engine may be torn down between any two calls and rebuilt from the store
without losing time.
"""

from __future__ import annotations

import functools
import logging
import math
import time
from dataclasses import replace
from typing import Optional, Protocol

from pomokeep.core.notifier import Notifier, completion_notification
from pomokeep.core.snapshot import Mode, Snapshot, compute_remaining, format_remaining
from pomokeep.core.store import StateStore

logger = logging.getLogger(__name__)

ALARM_NAME = "pomodoro-timer"
ALARM_PERIOD_MINUTES = 1
MIN_ALARM_DELAY_MINUTES = 0.08


class Alarms(Protocol):
    def create(
        self, name: str, *, delay_minutes: float, period_minutes: Optional[float] = None
    ) -> None: ...

    def clear(self, name: str) -> bool: ...


def _now_ms() -> int:
    return int(time.time() * 1000)


def _transactional(method):
    """Run *method* holding the store's exclusive lock from read to write."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._store.transaction():
            return method(self, *args, **kwargs)

    return wrapper


def _valid_duration(duration: float) -> Optional[int]:
    """Return *duration* floored to whole seconds, or ``None`` if unusable."""
    try:
        value = float(duration)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    seconds = math.floor(value)
    return seconds if seconds > 0 else None


class TimerEngine:
    """The persistent countdown state machine.

    Holds no timer state of its own; the :class:`StateStore` is the single
    source of truth.
    """

    def __init__(self, store: StateStore, alarms: Alarms, notifier: Notifier) -> None:
        self._store = store
        self._alarms = alarms
        self._notifier = notifier

    # -- queries -------------------------------------------------------------

    def get_state(self) -> Snapshot:
        """Return the stored snapshot projected to now, without persisting."""
        snapshot = self._store.read()
        if not snapshot.is_running:
            return snapshot
        return replace(snapshot, remaining_seconds=compute_remaining(snapshot, _now_ms()))

    def current(self) -> Snapshot:
        """Return the stored snapshot exactly as persisted."""
        return self._store.read()

    # -- transitions ---------------------------------------------------------

    @_transactional
    def start(self) -> Snapshot:
        snapshot = self._store.read()
        if snapshot.is_running:
            logger.debug("start() ignored: already running")
            return snapshot
        if snapshot.remaining_seconds <= 0:
            logger.debug("start() ignored: timer finished, reset it first")
            return snapshot

        updated = snapshot.running_from(_now_ms(), snapshot.remaining_seconds)
        self._store.write(updated)
        self._arm(updated.remaining_seconds)
        logger.info(
            "Timer started: %s %s remaining",
            updated.mode.value,
            format_remaining(updated.remaining_seconds),
        )
        return updated

    @_transactional
    def pause(self) -> Snapshot:
        snapshot = self._store.read()
        if not snapshot.is_running:
            logger.debug("pause() ignored: not running")
            return snapshot

        updated = snapshot.stopped_at(compute_remaining(snapshot, _now_ms()))
        self._store.write(updated)
        self._alarms.clear(ALARM_NAME)
        logger.info("Timer paused at %s remaining", format_remaining(updated.remaining_seconds))
        return updated

    @_transactional
    def reset(self, duration: Optional[int] = None) -> Snapshot:
        snapshot = self._store.read()
        seconds = snapshot.configured_duration if duration is None else _valid_duration(duration)
        if seconds is None:
            logger.warning(
                "reset() got invalid duration %r, keeping %s",
                duration,
                snapshot.configured_duration,
            )
            seconds = snapshot.configured_duration

        updated = snapshot.reconfigured(seconds)
        self._store.write(updated)
        self._alarms.clear(ALARM_NAME)
        logger.info("Timer reset to %s", format_remaining(seconds))
        return updated

    @_transactional
    def set_duration(self, duration: Optional[float] = None) -> Snapshot:
        """Reconfigure the session length, always stopping the timer.

        An invalid *duration* (non-finite, or flooring to zero or less) keeps
        the stored duration and remaining time but still stops the timer.
        """
        snapshot = self._store.read()
        if duration is None:
            updated = snapshot.reconfigured(snapshot.configured_duration)
        else:
            seconds = _valid_duration(duration)
            if seconds is None:
                logger.warning("set_duration() rejected %r, stopping timer", duration)
                updated = snapshot.stopped_at(snapshot.remaining_seconds)
            else:
                updated = snapshot.reconfigured(seconds)

        self._store.write(updated)
        self._alarms.clear(ALARM_NAME)
        logger.info("Timer duration set to %s", format_remaining(updated.configured_duration))
        return updated

    @_transactional
    def set_mode(self, mode: Optional[Mode] = None) -> Snapshot:
        snapshot = self._store.read()
        updated = snapshot.with_mode(mode or snapshot.mode)
        self._store.write(updated)
        logger.info("Timer mode set to %s", updated.mode.value)
        return updated

    # -- wake-up and recovery ------------------------------------------------

    def handle_alarm(self, name: str) -> Optional[Snapshot]:
        """Handle one firing of alarm *name*.

        Firings of any other alarm are ignored without touching the store.
        Returns the snapshot that was persisted, if any.
        """
        if name != ALARM_NAME:
            return None
        return self._tick()

    @_transactional
    def _tick(self) -> Optional[Snapshot]:
        snapshot = self._store.read()
        if not snapshot.is_running:
            return None

        now = _now_ms()
        remaining = compute_remaining(snapshot, now)
        if remaining <= 0:
            return self._finish(snapshot)

        updated = snapshot.advanced_to(now)
        self._store.write(updated)
        logger.debug("Alarm tick: %s remaining", format_remaining(remaining))
        return updated

    @_transactional
    def restore(self) -> Snapshot:
        """Reconcile the stored snapshot after a process (re)start.

        A timer that ran out while no process was alive is finished and its
        completion signalled; one still counting is re-anchored and its
        alarm re-armed.
        """
        snapshot = self._store.read()
        if not snapshot.is_running or snapshot.anchor_instant is None:
            self._alarms.clear(ALARM_NAME)
            return snapshot

        now = _now_ms()
        remaining = compute_remaining(snapshot, now)
        if remaining <= 0:
            logger.info("Timer expired while no process was running")
            return self._finish(snapshot)

        updated = snapshot.advanced_to(now)
        self._store.write(updated)
        self._arm(remaining)
        logger.info("Timer restored: %s remaining", format_remaining(remaining))
        return updated

    # -- private helpers -----------------------------------------------------

    def _arm(self, remaining: int) -> None:
        self._alarms.create(
            ALARM_NAME,
            delay_minutes=max(remaining / 60, MIN_ALARM_DELAY_MINUTES),
            period_minutes=ALARM_PERIOD_MINUTES,
        )

    def _finish(self, snapshot: Snapshot) -> Snapshot:
        finished = snapshot.stopped_at(0)
        self._store.write(finished)
        self._alarms.clear(ALARM_NAME)
        logger.info("Timer finished: %s session complete", finished.mode.value)
        try:
            self._notifier.notify(completion_notification(finished.mode))
        except Exception:
            logger.exception("Completion notification failed")
        return finished
