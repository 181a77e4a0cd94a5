"""Timer engine: tracks the active study session and survives restarts.

The engine owns a :class:`TimerState`, ticks it on a fixed period through a
:class:`~studytimer.core.scheduler.Scheduler`, and pushes every new state to
its subscribers.  The session being tracked is described by a persisted
record so that a fresh engine (after a restart) can pick up where the last
one left off.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from studytimer.core.clock import OPEN_END, Clock, parse_timestamp, to_iso, utc_now, whole_seconds
from studytimer.core.errors import InvalidSessionError, PersistenceError
from studytimer.core.formatter import (
    ONGOING,
    PLACEHOLDER,
    format_ended,
    format_remaining,
    format_seconds,
)
from studytimer.core.persistence import PersistedTimerRecord, PersistenceAdapter
from studytimer.core.scheduler import AsyncioScheduler, Cancellable, Scheduler

log = logging.getLogger(__name__)

DEFAULT_TICK_SECONDS = 1.0


class EngineStatus(Enum):
    """Lifecycle position of the engine."""

    IDLE = "idle"
    ACTIVE = "active"
    ENDED = "ended"


@dataclass(frozen=True)
class SessionDescriptor:
    """The slice of a study session the engine needs: an id and two timestamps."""

    session_id: Any
    start_time: datetime | str | None
    end_time: datetime | str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> SessionDescriptor:
        """Build a descriptor from a session payload, accepting the usual key spellings."""
        return cls(
            session_id=_first(data, "session_id", "sessionId", "id"),
            start_time=_first(data, "start_time", "startTime"),
            end_time=_first(data, "end_time", "endTime"),
        )


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


@dataclass(frozen=True)
class TimerState:
    """Snapshot of the timer as broadcast to subscribers."""

    is_active: bool = False
    session_id: Any = None
    start_time: datetime | None = None
    end_time: datetime | str | None = None
    elapsed_seconds: int = 0
    elapsed_time_string: str = "00:00:00"
    remaining_seconds: int | str | None = None

    @property
    def status(self) -> EngineStatus:
        if self.is_active:
            return EngineStatus.ACTIVE
        if self.session_id is not None:
            return EngineStatus.ENDED
        return EngineStatus.IDLE

    @property
    def is_open_ended(self) -> bool:
        return not isinstance(self.end_time, datetime)

    @property
    def remaining_time_string(self) -> str:
        """``HH:MM:SS`` left, ``Ongoing`` for open-ended timers, ``Ended`` once over."""
        if self.status == EngineStatus.ENDED:
            return "Ended"
        if self.remaining_seconds is None:
            return PLACEHOLDER
        return format_remaining(self.remaining_seconds)


IDLE_STATE = TimerState()

Subscriber = Callable[[TimerState], None]


class Subscription:
    """Handle returned by :meth:`TimerEngine.subscribe`."""

    def __init__(self, engine: TimerEngine, callback: Subscriber) -> None:
        self._engine = engine
        self._callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        """Stop receiving states.  Safe to call more than once."""
        if self._active:
            self._active = False
            self._engine._remove_subscriber(self._callback)


class TimerEngine:
    """Tracks at most one study session's timer.

    Callers share a single instance.  On construction the engine reconciles
    any persisted record via :meth:`resume` (pass ``auto_resume=False`` to
    subscribe before that happens).  The default scheduler ticks on the running
    event loop, or on a loop of its own when built outside one.
    """

    def __init__(
        self,
        persistence: PersistenceAdapter,
        *,
        clock: Clock = utc_now,
        scheduler: Scheduler | None = None,
        tick_seconds: float = DEFAULT_TICK_SECONDS,
        auto_resume: bool = True,
    ) -> None:
        if tick_seconds <= 0:
            raise ValueError(f"tick_seconds must be positive, got {tick_seconds}")
        self._persistence = persistence
        self._clock = clock
        self._scheduler: Scheduler = scheduler if scheduler is not None else AsyncioScheduler()
        self._tick_seconds = float(tick_seconds)
        self._state: TimerState = IDLE_STATE
        self._subscribers: list[Subscriber] = []
        self._handle: Cancellable | None = None
        self._generation = 0
        if auto_resume:
            self.resume()

    # -- public API ----------------------------------------------------------

    @property
    def state(self) -> TimerState:
        """The most recently published state."""
        return self._state

    @property
    def is_ticking(self) -> bool:
        return self._handle is not None

    def subscribe(self, callback: Subscriber) -> Subscription:
        """Register *callback*; it is called with the current state right away."""
        self._subscribers.append(callback)
        subscription = Subscription(self, callback)
        self._deliver(callback, self._state)
        return subscription

    def start(self, session: SessionDescriptor | Mapping[str, Any]) -> TimerState:
        """Begin tracking *session*, replacing whatever was tracked before.

        Raises :class:`InvalidSessionError` without touching any state when the
        session has no id or no parseable start time.
        """
        if not isinstance(session, SessionDescriptor):
            if not isinstance(session, Mapping):
                raise InvalidSessionError(f"cannot start a timer for {session!r}")
            session = SessionDescriptor.from_mapping(session)
        session_id, start, end = self._validate(session)

        self._cancel_loop()
        end_iso = end if end == OPEN_END else to_iso(end)
        self._save(PersistedTimerRecord(session_id, to_iso(start), end_iso))
        log.info(f"Starting timer for session {session_id!r} (end: {end_iso})")

        self._activate(session_id, start, end)
        # a subscriber may already have stopped or replaced this timer
        current = self._state
        if (
            current.is_active
            and current.session_id == session_id
            and isinstance(end, datetime)
            and self._clock() >= end
        ):
            self._finish()
        return self._state

    def stop(self) -> None:
        """Stop tracking, forget the persisted record and publish the idle state."""
        self._cancel_loop()
        self._clear_record()
        self._publish(IDLE_STATE)
        log.info("Timer stopped and record cleared")

    def resume(self) -> bool:
        """Reconcile the persisted record; return whether a timer is now active.

        Missing, malformed, stale or not-yet-started records are discarded and
        the engine stays idle.  Never raises for bad stored data.
        """
        if self._state.is_active:
            return True

        record = self._persistence.load()
        if record is None:
            self._clear_record()
            return False

        start = parse_timestamp(record.start_time_iso)
        end: datetime | str | None = OPEN_END if record.is_open_ended else parse_timestamp(record.end_time_iso)
        if start is None or end is None:
            log.warning(f"Discarding timer record with invalid timestamps: {record}")
            self._clear_record()
            return False

        now = self._clock()
        if isinstance(end, datetime) and now >= end:
            log.info(f"Stored timer for session {record.session_id!r} has already ended")
            self._clear_record()
            return False
        if now < start:
            log.info(f"Stored timer for session {record.session_id!r} has not started yet")
            self._clear_record()
            return False

        log.info(f"Resuming timer for session {record.session_id!r}")
        self._activate(record.session_id, start, end)
        return self._state.is_active

    def shutdown(self) -> None:
        """Detach: cancel ticking and drop subscribers, keeping the persisted record."""
        self._cancel_loop()
        self._subscribers.clear()

    # -- state transitions ---------------------------------------------------

    def _validate(self, session: SessionDescriptor) -> tuple[Any, datetime, datetime | str]:
        if session.session_id is None or session.session_id == "":
            raise InvalidSessionError("session has no id")
        start = parse_timestamp(session.start_time)
        if start is None:
            raise InvalidSessionError(f"invalid start time: {session.start_time!r}")

        if session.end_time is None or session.end_time == OPEN_END:
            return session.session_id, start, OPEN_END
        end = parse_timestamp(session.end_time)
        if end is None:
            log.warning(f"Invalid end time {session.end_time!r}, treating session as ongoing")
            return session.session_id, start, OPEN_END
        return session.session_id, start, end

    def _activate(self, session_id: Any, start: datetime, end: datetime | str) -> None:
        now = self._clock()
        elapsed = whole_seconds(now, start)
        # installed first so a subscriber calling stop() cancels it
        self._install_loop()
        self._publish(
            TimerState(
                is_active=True,
                session_id=session_id,
                start_time=start,
                end_time=end,
                elapsed_seconds=elapsed,
                elapsed_time_string=format_seconds(elapsed),
                remaining_seconds=self._remaining(end, now),
            )
        )

    def _tick(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._handle = None
        if not self._state.is_active:
            return
        state = self._state
        now = self._clock()
        # never let a backwards clock step lower the count
        elapsed = max(state.elapsed_seconds, whole_seconds(now, state.start_time))
        remaining = self._remaining(state.end_time, now)
        if remaining == 0:
            self._finish()
            return

        self._publish(
            replace(
                state,
                elapsed_seconds=elapsed,
                elapsed_time_string=format_seconds(elapsed),
                remaining_seconds=remaining,
            )
        )
        # a subscriber may have stopped or restarted the engine
        if generation == self._generation and self._state.is_active:
            self._schedule_tick(generation)

    def _finish(self) -> None:
        state = self._state
        elapsed = whole_seconds(state.end_time, state.start_time)
        self._cancel_loop()
        self._publish(
            replace(
                state,
                is_active=False,
                elapsed_seconds=elapsed,
                elapsed_time_string=format_ended(elapsed),
                remaining_seconds=0,
            )
        )
        # the record stays; the next resume() finds it stale and drops it
        log.info(f"Session {state.session_id!r} reached its end after {format_seconds(elapsed)}")

    @staticmethod
    def _remaining(end: datetime | str, now: datetime) -> int | str:
        if isinstance(end, datetime):
            return whole_seconds(end, now)
        return ONGOING

    # -- tick loop -----------------------------------------------------------

    def _install_loop(self) -> None:
        self._cancel_loop()
        self._schedule_tick(self._generation)

    def _schedule_tick(self, generation: int) -> None:
        self._handle = self._scheduler.call_later(self._tick_seconds, lambda: self._tick(generation))

    def _cancel_loop(self) -> None:
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    # -- broadcast -----------------------------------------------------------

    def _publish(self, state: TimerState) -> None:
        self._state = state
        for callback in tuple(self._subscribers):
            self._deliver(callback, state)

    def _deliver(self, callback: Subscriber, state: TimerState) -> None:
        try:
            callback(state)
        except Exception:
            log.exception(f"Timer subscriber {callback!r} raised")

    def _remove_subscriber(self, callback: Subscriber) -> None:
        try:
            self._subscribers.remove(callback)
        except ValueError:
            pass

    # -- persistence ---------------------------------------------------------

    def _save(self, record: PersistedTimerRecord) -> None:
        try:
            self._persistence.save(record)
        except PersistenceError as exc:
            log.error(f"Timer will run without durability: {exc}")

    def _clear_record(self) -> None:
        try:
            self._persistence.clear()
        except PersistenceError as exc:
            log.error(f"Could not clear timer record: {exc}")
