"""Tests for request parsing and dispatch."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from pomokeep.core.engine import TimerEngine
from pomokeep.core.notifier import Outbox
from pomokeep.core.router import (
    GetState,
    Pause,
    Reset,
    Response,
    Router,
    SetDuration,
    SetMode,
    Start,
    UnknownRequest,
    parse_request,
)
from pomokeep.core.snapshot import DEFAULT_SECONDS, Mode, Snapshot
from pomokeep.core.store import StateStore

T0 = 1_706_745_600.0


@pytest.fixture()
def router(tmp_path: Path) -> Router:
    return Router(TimerEngine(StateStore(config_dir=tmp_path), MagicMock(), Outbox()))


# ---------------------------------------------------------------------------
# parse_request()
# ---------------------------------------------------------------------------


class TestParseRequest:
    """Wire messages map onto typed requests."""

    @pytest.mark.parametrize(
        "message, expected",
        [
            ({"type": "GET_STATE"}, GetState()),
            ({"type": "START"}, Start()),
            ({"type": "PAUSE"}, Pause()),
            ({"type": "RESET"}, Reset()),
            ({"type": "RESET", "payload": {"duration": 300}}, Reset(duration=300)),
            ({"type": "SET_MODE", "payload": {"mode": "REST"}}, SetMode(mode=Mode.REST)),
            ({"type": "SET_MODE", "payload": {}}, SetMode(mode=None)),
            ({"type": "SET_DURATION", "payload": {"duration": 90.7}}, SetDuration(duration=90.7)),
            ({"type": "SET_DURATION"}, SetDuration()),
        ],
    )
    def test_known_types(self, message: dict, expected) -> None:
        assert parse_request(message) == expected

    def test_unknown_type(self) -> None:
        assert parse_request({"type": "UNKNOWN_TYPE"}) == UnknownRequest(type="UNKNOWN_TYPE")

    @pytest.mark.parametrize("message", [None, "START", 42, []])
    def test_malformed_message(self, message) -> None:
        assert isinstance(parse_request(message), UnknownRequest)

    def test_bad_mode_becomes_none(self) -> None:
        assert parse_request({"type": "SET_MODE", "payload": {"mode": "nap"}}) == SetMode()

    def test_non_dict_payload_is_ignored(self) -> None:
        assert parse_request({"type": "RESET", "payload": "soon"}) == Reset()


# ---------------------------------------------------------------------------
# Router.handle()
# ---------------------------------------------------------------------------


class TestRouterHandle:
    """Every request gets exactly one response carrying a snapshot."""

    def test_get_state_default(self, router: Router) -> None:
        response = router.handle(GetState())
        assert isinstance(response, Response)
        assert response.state == Snapshot()

    def test_get_state_is_projected(self, router: Router) -> None:
        with patch("pomokeep.core.engine.time") as mock_time:
            mock_time.time.return_value = T0
            router.handle(Start())
            mock_time.time.return_value = T0 + 300
            state = router.handle(GetState()).state
        assert state.remaining_seconds == DEFAULT_SECONDS - 300
        assert state.is_running is True

    def test_get_state_does_not_persist(self, router: Router, tmp_path: Path) -> None:
        with patch("pomokeep.core.engine.time") as mock_time:
            mock_time.time.return_value = T0
            router.handle(Start())
            stored = StateStore(config_dir=tmp_path).read()
            mock_time.time.return_value = T0 + 300
            router.handle(GetState())
        assert StateStore(config_dir=tmp_path).read() == stored

    def test_start_then_pause(self, router: Router) -> None:
        with patch("pomokeep.core.engine.time") as mock_time:
            mock_time.time.return_value = T0
            assert router.handle(Start()).state.is_running is True
            mock_time.time.return_value = T0 + 60
            paused = router.handle(Pause()).state
        assert paused.is_running is False
        assert paused.remaining_seconds == DEFAULT_SECONDS - 60

    def test_reset_with_duration(self, router: Router) -> None:
        state = router.handle(Reset(duration=600)).state
        assert state.configured_duration == 600
        assert state.remaining_seconds == 600

    def test_set_mode(self, router: Router) -> None:
        assert router.handle(SetMode(mode=Mode.REST)).state.mode == Mode.REST

    def test_set_duration(self, router: Router) -> None:
        assert router.handle(SetDuration(duration=15 * 60)).state.configured_duration == 900

    def test_unknown_request_returns_current_state(self, router: Router) -> None:
        router.handle(Reset(duration=600))
        assert router.handle(UnknownRequest(type="X")).state.configured_duration == 600


# ---------------------------------------------------------------------------
# Router.handle_message()
# ---------------------------------------------------------------------------


class TestRouterHandleMessage:
    """Raw wire messages get a ``{"state": record}`` reply."""

    def test_reply_shape(self, router: Router) -> None:
        assert router.handle_message({"type": "GET_STATE"}) == {"state": Snapshot().to_record()}

    def test_unknown_type_replies_with_default(self, router: Router) -> None:
        reply = router.handle_message({"type": "UNKNOWN_TYPE"})
        assert reply == {"state": Snapshot().to_record()}

    def test_set_mode_message(self, router: Router) -> None:
        reply = router.handle_message({"type": "SET_MODE", "payload": {"mode": "REST"}})
        assert reply["state"]["mode"] == "REST"

    def test_set_duration_without_payload_refills(self, router: Router) -> None:
        router.handle_message({"type": "RESET", "payload": {"duration": 3000}})
        router.handle_message({"type": "SET_MODE", "payload": {"mode": "WORK"}})
        reply = router.handle_message({"type": "SET_DURATION", "payload": {}})
        assert reply["state"]["configured_duration"] == 3000
        assert reply["state"]["remaining_seconds"] == 3000
