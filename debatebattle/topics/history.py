"""Read-only view of past battles used by the topic pipeline."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Protocol

from sqlalchemy.orm import Session

from .. import workflows


class TopicHistory(Protocol):
    def recent_descriptions(self, limit: int) -> list[str]: ...

    def count_created_between(self, start: datetime, end: datetime) -> int: ...


class SQLTopicHistory:
    """:class:`TopicHistory` over the battles table.

    Each call opens its own short-lived session from ``session_factory``.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def recent_descriptions(self, limit: int) -> list[str]:
        with self._session_factory() as session:
            battles = workflows.get_recent_completed_battles(session, limit=limit)
            return [battle.description for battle in battles]

    def count_created_between(self, start: datetime, end: datetime) -> int:
        with self._session_factory() as session:
            return workflows.count_battles_created_between(session, start, end)


__all__ = ["SQLTopicHistory", "TopicHistory"]
