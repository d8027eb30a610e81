"""Process lifecycle: build the engine once, recover, then serve."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pomokeep.core.alarms import AlarmRegistry
from pomokeep.core.engine import TimerEngine
from pomokeep.core.notifier import Notification, Outbox
from pomokeep.core.router import Router
from pomokeep.core.store import StateStore

logger = logging.getLogger(__name__)


@dataclass
class App:
    """Everything one process needs to serve requests and wake-ups."""

    store: StateStore
    alarms: AlarmRegistry
    outbox: Outbox
    engine: TimerEngine
    router: Router

    def fire_due_alarms(self, now: Optional[int] = None) -> list[Notification]:
        """Run the wake-up handler for every due alarm.

        Returns the notifications emitted along the way.
        """
        for name in self.alarms.due(now):
            self.engine.handle_alarm(name)
        return self.outbox.drain()


def boot(config_dir: Optional[Path] = None) -> App:
    """Construct the store and handlers and run recovery exactly once."""
    store = StateStore(config_dir)
    alarms = AlarmRegistry(store.config_dir)
    outbox = Outbox()
    engine = TimerEngine(store, alarms, outbox)
    snapshot = engine.restore()
    logger.debug("Booted from %s: %s", store.config_dir, snapshot.phase.value)
    return App(store=store, alarms=alarms, outbox=outbox, engine=engine, router=Router(engine))
