"""Wake-up facility: named, persisted alarms with a deadline and a period.

Alarms live in ``<config_dir>/alarms.json`` so that an alarm armed by one
process can be fired by another (typically ``pomokeep watch``).  A host
polls :meth:`AlarmRegistry.due` and hands every returned name to the
engine's wake-up handler.

An alarm carries two independent fire times: a one-shot ``deadline`` at
the requested delay and a recurring ``tick`` every period, counted from
when the alarm was armed.  The periodic tick keeps firing whatever the
deadline does, so a late or lost deadline firing is caught within one
period.
"""

from __future__ import annotations

import logging
import math
import time
from pathlib import Path
from typing import Optional

from pomokeep.core.store import DEFAULT_CONFIG_DIR, JsonFile

logger = logging.getLogger(__name__)

ALARMS_FILE = "alarms.json"


def _now_ms() -> int:
    return int(time.time() * 1000)


class AlarmRegistry:
    """Persisted table of ``name -> {deadline, tick, period_minutes}``."""

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        directory = config_dir if config_dir is not None else DEFAULT_CONFIG_DIR
        self._file = JsonFile(directory / ALARMS_FILE)

    def _load(self) -> dict[str, dict]:
        return self._file.load() or {}

    def create(
        self, name: str, *, delay_minutes: float, period_minutes: Optional[float] = None
    ) -> None:
        """Arm (or re-arm) alarm *name* to fire after *delay_minutes*.

        When *period_minutes* is given the alarm also fires at that period
        until it is cleared.  Creating an existing alarm replaces it.
        """
        if delay_minutes <= 0:
            raise ValueError(f"delay_minutes must be positive, got {delay_minutes}")
        now = _now_ms()
        alarms = self._load()
        alarms[name] = {
            "deadline": now + int(delay_minutes * 60_000),
            "tick": now + int(period_minutes * 60_000) if period_minutes else None,
            "period_minutes": period_minutes,
        }
        self._file.dump(alarms)
        logger.info(
            "Alarm %s armed: delay %.2f min, period %s min", name, delay_minutes, period_minutes
        )

    def clear(self, name: str) -> bool:
        """Cancel alarm *name*.  Returns ``False`` if it was not armed."""
        alarms = self._load()
        if name not in alarms:
            return False
        del alarms[name]
        self._file.dump(alarms)
        logger.info("Alarm %s cleared", name)
        return True

    def get(self, name: str) -> Optional[dict]:
        return self._load().get(name)

    def due(self, now: Optional[int] = None) -> list[str]:
        """Return the names of alarms with a fire time at or before *now*.

        Each due alarm is reported once per call, even when its deadline and
        its tick are both due.  The deadline is then dropped and the tick is
        moved past *now*, so a run of missed periods collapses into a single
        firing.  An alarm left with nothing to fire is removed.
        """
        now = _now_ms() if now is None else now
        alarms = self._load()
        fired = []
        for name, alarm in list(alarms.items()):
            deadline, tick = alarm.get("deadline"), alarm.get("tick")
            deadline_due = deadline is not None and deadline <= now
            tick_due = tick is not None and tick <= now
            if not (deadline_due or tick_due):
                continue
            fired.append(name)
            if deadline_due:
                alarm["deadline"] = None
            if tick_due:
                period_ms = int(alarm["period_minutes"] * 60_000)
                alarm["tick"] = tick + (math.floor((now - tick) / period_ms) + 1) * period_ms
            if alarm["deadline"] is None and alarm["tick"] is None:
                del alarms[name]
        if fired:
            self._file.dump(alarms)
        return fired
