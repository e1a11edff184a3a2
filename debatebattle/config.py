"""Runtime configuration loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from dotenv import load_dotenv

T = TypeVar("T")

# A stored battle duration within this many hours of the configured one is
# treated as unchanged (0.01h = 36 seconds).
DURATION_DRIFT_TOLERANCE_HOURS = 0.01


@dataclass(frozen=True)
class BattleConfig:
    """Settings that drive the battle lifecycle.

    Attributes
    ----------
    duration_hours : float
        Length of every newly created battle.
    max_participants : int
        Participant cap stored on each new battle.
    check_interval_seconds : float
        Delay between two scheduler ticks in :meth:`BattleScheduler.run_forever`.
    winner_reward_points : int
        Points credited to the winning author.
    similarity_threshold : float
        Candidate topics whose similarity to a recent battle exceeds this
        value are rejected.
    topic_max_attempts : int
        Number of generation attempts the topic pipeline makes per call.
    topic_backoff_seconds : float
        Linear backoff unit; attempt ``n`` waits ``n * topic_backoff_seconds``.
    """

    duration_hours: float = 1.0
    max_participants: int = 1000
    check_interval_seconds: float = 30.0
    winner_reward_points: int = 100
    similarity_threshold: float = 0.7
    topic_max_attempts: int = 3
    topic_backoff_seconds: float = 2.0

    def __post_init__(self) -> None:
        if self.duration_hours <= 0:
            raise ValueError("duration_hours must be positive")
        if self.max_participants <= 0:
            raise ValueError("max_participants must be positive")
        if not 0.0 <= self.similarity_threshold <= 1.0:
            raise ValueError("similarity_threshold must be between 0 and 1")
        if self.topic_max_attempts < 1:
            raise ValueError("topic_max_attempts must be at least 1")


def _env(name: str, cast: Callable[[str], T], default: T) -> T:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError as exc:
        raise ValueError(f"Environment variable '{name}' is invalid: {raw!r}") from exc


def load_config(env_file: Optional[str] = None) -> BattleConfig:
    """Build a :class:`BattleConfig` from environment variables.

    ``.env`` files are honoured through :func:`dotenv.load_dotenv`; values
    already present in the process environment win.
    """

    load_dotenv(env_file)
    return BattleConfig(
        duration_hours=_env("BATTLE_DURATION_HOURS", float, 1.0),
        max_participants=_env("BATTLE_MAX_PARTICIPANTS", int, 1000),
        check_interval_seconds=_env("BATTLE_CHECK_INTERVAL_SECONDS", float, 30.0),
        winner_reward_points=_env("WINNER_REWARD_POINTS", int, 100),
        similarity_threshold=_env("TOPIC_SIMILARITY_THRESHOLD", float, 0.7),
        topic_max_attempts=_env("TOPIC_MAX_ATTEMPTS", int, 3),
        topic_backoff_seconds=_env("TOPIC_BACKOFF_SECONDS", float, 2.0),
    )


__all__ = ["BattleConfig", "DURATION_DRIFT_TOLERANCE_HOURS", "load_config"]
