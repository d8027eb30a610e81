"""Request Router: the typed request/response boundary for front-ends.

Any number of front-ends may drive the same timer.  Each sends one request
and gets back exactly one :class:`Response` carrying the resulting snapshot.
Wire messages look like ``{"type": "SET_MODE", "payload": {"mode": "REST"}}``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from pomokeep.core.engine import TimerEngine
from pomokeep.core.snapshot import Mode, Snapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GetState:
    pass


@dataclass(frozen=True)
class Start:
    pass


@dataclass(frozen=True)
class Pause:
    pass


@dataclass(frozen=True)
class Reset:
    duration: Optional[int] = None


@dataclass(frozen=True)
class SetMode:
    mode: Optional[Mode] = None


@dataclass(frozen=True)
class SetDuration:
    duration: Optional[float] = None


@dataclass(frozen=True)
class UnknownRequest:
    type: Any = None


Request = Union[GetState, Start, Pause, Reset, SetMode, SetDuration, UnknownRequest]


@dataclass(frozen=True)
class Response:
    state: Snapshot

    def to_message(self) -> dict[str, Any]:
        return {"state": self.state.to_record()}


def parse_request(message: Any) -> Request:
    """Turn a wire message into a typed request.

    Malformed messages and unknown types become :class:`UnknownRequest`,
    which the router answers with the current snapshot.
    """
    if not isinstance(message, dict):
        return UnknownRequest(type=None)
    kind = message.get("type")
    payload = message.get("payload")
    if not isinstance(payload, dict):
        payload = {}

    if kind == "GET_STATE":
        return GetState()
    if kind == "START":
        return Start()
    if kind == "PAUSE":
        return Pause()
    if kind == "RESET":
        return Reset(duration=payload.get("duration"))
    if kind == "SET_MODE":
        return SetMode(mode=Mode.parse(payload.get("mode")))
    if kind == "SET_DURATION":
        return SetDuration(duration=payload.get("duration"))
    return UnknownRequest(type=kind)


class Router:
    """Dispatches requests to a :class:`TimerEngine`."""

    def __init__(self, engine: TimerEngine) -> None:
        self._engine = engine

    def handle(self, request: Request) -> Response:
        return Response(state=self._dispatch(request))

    def handle_message(self, message: Any) -> dict[str, Any]:
        """Handle a raw wire message and return the wire reply."""
        return self.handle(parse_request(message)).to_message()

    def _dispatch(self, request: Request) -> Snapshot:
        if isinstance(request, GetState):
            return self._engine.get_state()
        if isinstance(request, Start):
            return self._engine.start()
        if isinstance(request, Pause):
            return self._engine.pause()
        if isinstance(request, Reset):
            return self._engine.reset(request.duration)
        if isinstance(request, SetMode):
            return self._engine.set_mode(request.mode)
        if isinstance(request, SetDuration):
            return self._engine.set_duration(request.duration)
        logger.debug("Unknown request %r, replying with current state", request)
        return self._engine.current()
