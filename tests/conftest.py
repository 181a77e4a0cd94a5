"""Shared fixtures: a hand-driven clock and scheduler for deterministic ticks."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from studytimer.core.engine import TimerEngine
from studytimer.core.persistence import MemoryStore, PersistenceAdapter

T0 = datetime(2024, 5, 1, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock whose time only moves when told to."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class _Handle:
    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler that fires callbacks only from :meth:`tick`, advancing the clock first."""

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self._handles: list[_Handle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> _Handle:
        handle = _Handle(delay, callback)
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> list[_Handle]:
        return [h for h in self._handles if not h.cancelled]

    def tick(self) -> bool:
        """Fire the oldest pending callback; return ``False`` if nothing was pending."""
        pending = self.pending
        if not pending:
            return False
        handle = pending[0]
        self._handles.remove(handle)
        self._clock.advance(handle.delay)
        handle.callback()
        return True


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def scheduler(clock: FakeClock) -> ManualScheduler:
    return ManualScheduler(clock)


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture()
def adapter(store: MemoryStore) -> PersistenceAdapter:
    return PersistenceAdapter(store)


@pytest.fixture()
def make_engine(
    adapter: PersistenceAdapter, clock: FakeClock, scheduler: ManualScheduler
) -> Callable[..., TimerEngine]:
    """Return a factory building engines wired to the fake clock and scheduler."""

    def _make(**kwargs) -> TimerEngine:
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("scheduler", scheduler)
        return TimerEngine(adapter, **kwargs)

    return _make
