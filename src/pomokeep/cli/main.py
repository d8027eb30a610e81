"""CLI entry point for pomokeep.

Uses Click to expose the ``pomokeep`` command group.  Every invocation is a
fresh process: it boots the engine (running recovery once) and then sends a
single request through the router.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from pathlib import Path
from typing import Callable, Optional, TypeVar

import click

import pomokeep
from pomokeep.core.app import App, boot
from pomokeep.core.notifier import Notification
from pomokeep.core.router import (
    GetState,
    Pause,
    Request,
    Reset,
    SetDuration,
    SetMode,
    Start,
)
from pomokeep.core.snapshot import Mode, Phase, Snapshot, format_remaining
from pomokeep.core.store import DEFAULT_CONFIG_DIR, StoreError

T = TypeVar("T")

PRESET_MINUTES = ("15", "25", "50")
SWITCH_SECONDS = {Mode.WORK: 25 * 60, Mode.REST: 5 * 60}


def _run(action: Callable[[], T]) -> T:
    """Execute *action*, converting ``StoreError`` to a CLI error.

    On ``StoreError`` the message is printed to stderr and the process
    exits with code 1.
    """
    try:
        return action()
    except StoreError as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)


def _app(ctx: click.Context) -> App:
    """Boot the engine on first use within this invocation."""
    if "app" not in ctx.obj:
        ctx.obj["app"] = _run(lambda: boot(ctx.obj["config_dir"]))
    return ctx.obj["app"]


def _describe(snapshot: Snapshot) -> str:
    mode, left = snapshot.mode.value, format_remaining(snapshot.remaining_seconds)
    if snapshot.phase == Phase.RUNNING:
        return f"{mode} {left} remaining"
    if snapshot.phase == Phase.FINISHED:
        return f"{mode} session finished"
    return f"{mode} {left} remaining (stopped)"


def _echo_notifications(notifications: list[Notification]) -> None:
    for note in notifications:
        click.secho(f"{note.title} {note.message}", fg="green", bold=True)


def _send(ctx: click.Context, request: Request) -> Snapshot:
    """Send *request* through the router, print the outcome and return it."""
    app = _app(ctx)
    snapshot = _run(lambda: app.router.handle(request).state)
    _echo_notifications(app.outbox.drain())
    click.echo(_describe(snapshot))
    return snapshot


@click.group()
@click.version_option(version=pomokeep.__version__, prog_name="pomokeep")
@click.option(
    "--config-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="POMOKEEP_HOME",
    default=DEFAULT_CONFIG_DIR,
    show_default=True,
    help="Directory holding the timer state and alarms.",
)
@click.option("-v", "--verbose", is_flag=True, help="Log engine activity to stderr.")
@click.pass_context
def cli(ctx: click.Context, config_dir: Path, verbose: bool) -> None:
    """pomokeep: a Pomodoro timer that survives restarts."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG, format="%(asctime)s %(name)s %(levelname)s %(message)s"
        )
    ctx.ensure_object(dict)
    ctx.obj["config_dir"] = config_dir


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the current timer state."""
    snapshot = _send(ctx, GetState())
    sys.exit(1 if snapshot.phase == Phase.FINISHED else 0)


@cli.command()
@click.pass_context
def start(ctx: click.Context) -> None:
    """Start or resume the countdown."""
    _send(ctx, Start())


@cli.command()
@click.pass_context
def pause(ctx: click.Context) -> None:
    """Pause the countdown."""
    _send(ctx, Pause())


@cli.command()
@click.option("--minutes", type=click.IntRange(min=1), default=None, help="New session length.")
@click.pass_context
def reset(ctx: click.Context, minutes: Optional[int]) -> None:
    """Stop the timer and refill it to the session length."""
    _send(ctx, Reset(duration=None if minutes is None else minutes * 60))


@cli.command()
@click.argument("seconds", type=float)
@click.pass_context
def duration(ctx: click.Context, seconds: float) -> None:
    """Set the session length to SECONDS and stop the timer."""
    _send(ctx, SetDuration(duration=seconds))


@cli.command()
@click.argument("minutes", type=click.Choice(PRESET_MINUTES))
@click.pass_context
def preset(ctx: click.Context, minutes: str) -> None:
    """Set the session length to one of the preset MINUTES."""
    _send(ctx, SetDuration(duration=int(minutes) * 60))


@cli.command()
@click.argument("mode", type=click.Choice([m.value for m in Mode], case_sensitive=False))
@click.pass_context
def mode(ctx: click.Context, mode: str) -> None:
    """Switch the session kind to WORK or REST."""
    _send(ctx, SetMode(mode=Mode.parse(mode)))


@cli.command()
@click.pass_context
def switch(ctx: click.Context) -> None:
    """Move to the other session kind with its default length and start it."""
    app = _app(ctx)
    current = _run(app.engine.current)
    target = Mode.REST if current.mode == Mode.WORK else Mode.WORK
    for request in (SetMode(mode=target), SetDuration(duration=SWITCH_SECONDS[target])):
        _run(lambda: app.router.handle(request))
    _send(ctx, Start())


@cli.command()
@click.argument("message")
@click.pass_context
def send(ctx: click.Context, message: str) -> None:
    """Send a raw JSON MESSAGE to the router and print the JSON reply."""
    try:
        payload = json.loads(message)
    except ValueError as exc:
        raise click.BadParameter(f"not valid JSON: {exc}", param_hint="MESSAGE") from exc
    app = _app(ctx)
    reply = _run(lambda: app.router.handle_message(payload))
    _echo_notifications(app.outbox.drain())
    click.echo(json.dumps(reply))


@cli.command()
@click.pass_context
def tick(ctx: click.Context) -> None:
    """Fire every due alarm once."""
    app = _app(ctx)
    _echo_notifications(_run(app.fire_due_alarms))


@cli.command()
@click.option(
    "--interval",
    type=click.FloatRange(min=0.1),
    default=1.0,
    show_default=True,
    help="Seconds between alarm polls.",
)
@click.pass_context
def watch(ctx: click.Context, interval: float) -> None:
    """Keep firing alarms until interrupted."""
    app = _app(ctx)
    _echo_notifications(app.outbox.drain())
    try:
        while True:
            _echo_notifications(_run(app.fire_due_alarms))
            time.sleep(interval)
    except KeyboardInterrupt:
        click.echo("Stopped watching")
