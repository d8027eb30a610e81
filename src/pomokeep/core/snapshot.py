"""Timer snapshot: the single persisted record plus its time projection."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional

DEFAULT_SECONDS = 25 * 60


class Mode(str, Enum):
    """Session kind.  Selects the completion signal, never the arithmetic."""

    WORK = "WORK"
    REST = "REST"

    @classmethod
    def parse(cls, value: Any) -> Optional[Mode]:
        """Return the matching mode, or ``None`` for anything unrecognised."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.upper())
            except ValueError:
                return None
        return None


class Phase(Enum):
    """Derived state-machine position of a snapshot."""

    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"


@dataclass(frozen=True)
class Snapshot:
    """The complete persisted state of the timer.

    ``anchor_instant`` is a wall-clock timestamp in epoch milliseconds and is
    set exactly when ``is_running`` is true.  ``remaining_seconds`` is only
    accurate as of that instant; use :func:`compute_remaining` to read it.
    """

    configured_duration: int = DEFAULT_SECONDS
    remaining_seconds: int = DEFAULT_SECONDS
    is_running: bool = False
    anchor_instant: Optional[int] = None
    mode: Mode = Mode.WORK

    @property
    def phase(self) -> Phase:
        if self.is_running:
            return Phase.RUNNING
        if self.remaining_seconds <= 0:
            return Phase.FINISHED
        return Phase.IDLE

    # -- transitions ---------------------------------------------------------

    def running_from(self, now: int, remaining: int) -> Snapshot:
        """Return a running copy anchored at *now* with *remaining* seconds."""
        return replace(self, is_running=True, remaining_seconds=remaining, anchor_instant=now)

    def advanced_to(self, now: int) -> Snapshot:
        """Return a running copy reconciled to *now*.

        The anchor moves forward by whole elapsed seconds only, so the
        sub-second remainder is carried into the next projection.
        """
        elapsed = max(0, (now - self.anchor_instant) // 1000)
        return replace(
            self,
            remaining_seconds=compute_remaining(self, now),
            anchor_instant=self.anchor_instant + elapsed * 1000,
        )

    def stopped_at(self, remaining: int) -> Snapshot:
        """Return a stopped copy holding *remaining* seconds."""
        return replace(self, is_running=False, remaining_seconds=remaining, anchor_instant=None)

    def reconfigured(self, duration: int) -> Snapshot:
        """Return a stopped copy with a fresh session of *duration* seconds."""
        return replace(
            self,
            configured_duration=duration,
            remaining_seconds=duration,
            is_running=False,
            anchor_instant=None,
        )

    def with_mode(self, mode: Mode) -> Snapshot:
        return replace(self, mode=mode)

    # -- serialisation -------------------------------------------------------

    def to_record(self) -> dict[str, Any]:
        return {
            "configured_duration": self.configured_duration,
            "remaining_seconds": self.remaining_seconds,
            "is_running": self.is_running,
            "anchor_instant": self.anchor_instant,
            "mode": self.mode.value,
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> Snapshot:
        """Build a snapshot from a stored record, filling gaps with defaults."""
        configured = int(data.get("configured_duration", DEFAULT_SECONDS))
        remaining = int(data.get("remaining_seconds", configured))
        anchor = data.get("anchor_instant")
        is_running = bool(data.get("is_running", False)) and anchor is not None
        return cls(
            configured_duration=configured,
            remaining_seconds=max(0, min(remaining, configured)),
            is_running=is_running,
            anchor_instant=int(anchor) if is_running else None,
            mode=Mode.parse(data.get("mode")) or Mode.WORK,
        )


def compute_remaining(snapshot: Snapshot, now: int) -> int:
    """Return the seconds left on *snapshot* at wall-clock instant *now* (ms).

    A stopped timer reports exactly what was stored.  A running timer subtracts
    the whole seconds elapsed since its anchor and floors at zero.  A clock
    that moved backwards counts as no elapsed time.
    """
    if not snapshot.is_running or snapshot.anchor_instant is None:
        return snapshot.remaining_seconds
    elapsed = max(0, (now - snapshot.anchor_instant) // 1000)
    return max(0, snapshot.remaining_seconds - elapsed)


def format_remaining(seconds: int) -> str:
    """Format *seconds* as ``M:SS``."""
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"
