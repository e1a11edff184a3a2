"""Database model for a debate battle (the contest)."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    JSON,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import ID_TYPE, Base
from ..db.utils import dt_iso, ensure_utc

if TYPE_CHECKING:
    from .cast import Cast
    from .winner import BattleHistory, BattleWinner


class BattleStatus:
    """Allowed values of :attr:`Battle.status`."""

    ACTIVE = "ACTIVE"
    COMPLETING = "COMPLETING"
    COMPLETED = "COMPLETED"

    ALL = (ACTIVE, COMPLETING, COMPLETED)


BATTLE_CATEGORIES = (
    "politics",
    "technology",
    "economics",
    "economy",
    "society",
    "environment",
    "health",
    "education",
    "sports",
    "crypto",
)
"""Allow-list of topic categories."""


class Battle(Base):
    """A time-boxed two-sided debate.

    Only the lifecycle scheduler mutates battles after creation: status
    transitions, insight text and the ledger reference. Battles are never
    deleted.
    """

    __tablename__ = "battles"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    source: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    source_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    support_points: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    oppose_points: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BattleStatus.ACTIVE
    )
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_hours: Mapped[float] = mapped_column(Float, nullable=False)
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=1000)
    debate_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Reference of the matching debate on the external ledger, if any."""
    insights: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    casts: Mapped[list["Cast"]] = relationship(
        back_populates="battle", order_by="Cast.id"
    )
    winner: Mapped[Optional["BattleWinner"]] = relationship(
        back_populates="battle", uselist=False
    )
    history: Mapped[Optional["BattleHistory"]] = relationship(
        back_populates="battle", uselist=False
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('ACTIVE','COMPLETING','COMPLETED')", name="status_enum"
        ),
        Index("ix_battles_status_end_time", "status", "end_time"),
        Index("ix_battles_created_at", "created_at"),
    )

    def __init__(
        self,
        *,
        title: str,
        description: str,
        category: str,
        support_points: list[str],
        oppose_points: list[str],
        start_time: datetime,
        end_time: datetime,
        duration_hours: float,
        max_participants: int = 1000,
        status: str = BattleStatus.ACTIVE,
        source: Optional[str] = None,
        source_url: Optional[str] = None,
        debate_id: Optional[int] = None,
        insights: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        if status not in BattleStatus.ALL:
            raise ValueError(f"Unknown battle status '{status}'")
        if end_time <= start_time:
            raise ValueError("end_time must be after start_time")
        self.title = title
        self.description = description
        self.category = category
        self.support_points = list(support_points)
        self.oppose_points = list(oppose_points)
        self.start_time = start_time
        self.end_time = end_time
        self.duration_hours = duration_hours
        self.max_participants = max_participants
        self.status = status
        self.source = source
        self.source_url = source_url
        self.debate_id = debate_id
        self.insights = insights
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<Battle(id={self.id}, title='{self.title}', status='{self.status}', "
            f"end_time={self.end_time})>"
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Return ``True`` when the battle's end time is at or before ``now``."""

        now = now or datetime.now(timezone.utc)
        end_time = ensure_utc(self.end_time)
        return end_time is not None and end_time <= ensure_utc(now)

    def to_json(self) -> dict[str, Any]:
        """Serialize the battle into JSON-friendly primitives."""

        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "source": self.source,
            "source_url": self.source_url,
            "debate_points": {
                "Support": list(self.support_points or []),
                "Oppose": list(self.oppose_points or []),
            },
            "status": self.status,
            "start_time": dt_iso(self.start_time),
            "end_time": dt_iso(self.end_time),
            "duration_hours": self.duration_hours,
            "max_participants": self.max_participants,
            "debate_id": self.debate_id,
            "insights": self.insights,
            "created_at": dt_iso(self.created_at),
        }
