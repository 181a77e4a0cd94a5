"""Runtime settings, read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from studytimer.core.engine import DEFAULT_TICK_SECONDS

DEFAULT_STATE_DIR = Path.home() / ".config" / "studytimer"

ENV_STATE_DIR = "STUDYTIMER_STATE_DIR"
ENV_TICK_SECONDS = "STUDYTIMER_TICK_SECONDS"
ENV_LOG_DIR = "STUDYTIMER_LOG_DIR"


@dataclass(frozen=True)
class Settings:
    state_dir: Path = DEFAULT_STATE_DIR
    tick_seconds: float = DEFAULT_TICK_SECONDS
    log_dir: Path | None = None

    @staticmethod
    def from_env(environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``STUDYTIMER_*`` variables, falling back to defaults."""
        env = os.environ if environ is None else environ

        state_dir = Path(env[ENV_STATE_DIR]).expanduser() if env.get(ENV_STATE_DIR) else DEFAULT_STATE_DIR
        log_dir = Path(env[ENV_LOG_DIR]).expanduser() if env.get(ENV_LOG_DIR) else None

        tick_seconds = DEFAULT_TICK_SECONDS
        raw_tick = env.get(ENV_TICK_SECONDS)
        if raw_tick:
            try:
                tick_seconds = float(raw_tick)
            except ValueError:
                raise ValueError(f"{ENV_TICK_SECONDS} must be a number, got {raw_tick!r}") from None
            if not tick_seconds > 0:
                raise ValueError(f"{ENV_TICK_SECONDS} must be positive, got {raw_tick!r}")

        return Settings(state_dir=state_dir, tick_seconds=tick_seconds, log_dir=log_dir)
