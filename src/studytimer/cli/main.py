"""CLI entry point for studytimer.

Uses Click to expose the ``studytimer`` command group.  Each command builds a
:class:`TimerEngine` over a file-backed store inside an asyncio loop, so a
timer started by one invocation is resumed by the next.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, TypeVar

import click

import studytimer
from studytimer.common.config import ENV_STATE_DIR, ENV_TICK_SECONDS, Settings
from studytimer.common.logger import configure_logging
from studytimer.core.clock import utc_now
from studytimer.core.engine import SessionDescriptor, TimerEngine, TimerState
from studytimer.core.errors import TimerError
from studytimer.core.persistence import JsonFileStore, PersistenceAdapter

T = TypeVar("T")


def _run(action: Callable[[], T]) -> T:
    """Execute *action*, converting ``TimerError`` to a CLI error.

    On ``TimerError`` the message is printed to stderr and the process exits
    with code 1.
    """
    try:
        return action()
    except TimerError as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)


def _with_engine(settings: Settings, body: Callable[[TimerEngine], Awaitable[T]]) -> T:
    """Run *body* against a freshly resumed engine on a new event loop."""

    async def main() -> T:
        engine = TimerEngine(
            PersistenceAdapter(JsonFileStore(settings.state_dir)),
            tick_seconds=settings.tick_seconds,
        )
        try:
            return await body(engine)
        finally:
            engine.shutdown()

    return asyncio.run(main())


def _describe(state: TimerState) -> str:
    if state.is_active:
        return (
            f"Session {state.session_id}: {state.elapsed_time_string} elapsed, "
            f"{state.remaining_time_string} remaining"
        )
    if state.session_id is not None:
        return f"Session {state.session_id}: {state.elapsed_time_string}"
    return "No active timer"


@click.group()
@click.version_option(version=studytimer.__version__, prog_name="studytimer")
@click.option(
    "--state-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar=ENV_STATE_DIR,
    help="Directory holding the active timer record.",
)
@click.option("--tick", type=click.FloatRange(min=0, min_open=True), envvar=ENV_TICK_SECONDS, help="Tick period in seconds.")
@click.option("-v", "--verbose", is_flag=True, help="Log engine activity to stderr.")
@click.pass_context
def cli(ctx: click.Context, state_dir: Path | None, tick: float | None, verbose: bool) -> None:
    """studytimer: track the active study session from the terminal."""
    try:
        settings = Settings.from_env()
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc
    overrides = {}
    if state_dir is not None:
        overrides["state_dir"] = state_dir
    if tick is not None:
        overrides["tick_seconds"] = tick
    if overrides:
        settings = replace(settings, **overrides)

    if verbose or settings.log_dir is not None:
        configure_logging(
            level=logging.DEBUG if verbose else logging.WARNING,
            log_dir=settings.log_dir,
            console=verbose,
        )
    ctx.obj = settings


@cli.command()
@click.argument("session_id")
@click.option("--start", "start_time", help="ISO-8601 start time (default: now).")
@click.option("--end", "end_time", help="ISO-8601 end time, or 'infinity' (default).")
@click.pass_obj
def start(settings: Settings, session_id: str, start_time: str | None, end_time: str | None) -> None:
    """Start tracking SESSION_ID."""
    session = SessionDescriptor(
        session_id=session_id,
        start_time=start_time if start_time is not None else utc_now(),
        end_time=end_time,
    )

    async def body(engine: TimerEngine) -> TimerState:
        return engine.start(session)

    state = _run(lambda: _with_engine(settings, body))
    click.echo(f"Timer started. {_describe(state)}")


@cli.command()
@click.pass_obj
def stop(settings: Settings) -> None:
    """Stop the active timer and forget it."""

    async def body(engine: TimerEngine) -> None:
        engine.stop()

    _with_engine(settings, body)
    click.echo("Timer stopped")


@cli.command()
@click.pass_obj
def status(settings: Settings) -> None:
    """Show the active timer."""

    async def body(engine: TimerEngine) -> TimerState:
        return engine.state

    state = _with_engine(settings, body)
    click.echo(_describe(state))
    sys.exit(0 if state.is_active else 1)


@cli.command()
@click.pass_obj
def watch(settings: Settings) -> None:
    """Print the timer on every tick until the session ends."""

    async def body(engine: TimerEngine) -> bool:
        if not engine.state.is_active:
            return False
        done = asyncio.Event()

        def show(state: TimerState) -> None:
            click.echo(f"[{datetime.now():%H:%M:%S}] {_describe(state)}")
            if not state.is_active:
                done.set()

        subscription = engine.subscribe(show)
        try:
            await done.wait()
        finally:
            subscription.unsubscribe()
        return True

    try:
        watched = _with_engine(settings, body)
    except KeyboardInterrupt:
        click.echo("Detached; the timer keeps running", err=True)
        sys.exit(130)
    if not watched:
        click.echo("No active timer")
        sys.exit(1)
