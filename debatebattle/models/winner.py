"""Database models for battle outcomes."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import ID_TYPE, Base
from ..db.utils import dt_iso

if TYPE_CHECKING:
    from .battle import Battle
    from .cast import Cast
    from .user import User


class BattleWinner(Base):
    """The persisted winner record of a completed battle."""

    __tablename__ = "battle_winners"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    battle_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("battles.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    """Battle this record belongs to. A battle has at most one winner."""

    cast_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("casts.id", ondelete="CASCADE"), nullable=False
    )
    """The winning cast."""

    user_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    """Author of the winning cast."""

    side: Mapped[str] = mapped_column(String(10), nullable=False)
    """Winning side (``SUPPORT`` or ``OPPOSE``)."""

    score: Mapped[float] = mapped_column(Float, nullable=False)
    """Final weighted score of the winning cast."""

    selection_method: Mapped[str] = mapped_column(String(50), nullable=False)
    """Tag describing how the winner was picked."""

    side_resolution: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    """How the winning side was decided (mean, tie-break, uncontested)."""

    reasoning: Mapped[str] = mapped_column(Text, nullable=False)
    """Human readable explanation of the selection."""

    candidates: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    """Top-K candidates of the winning side with their scores."""

    support_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    oppose_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    insights: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    """Generated insight text; ``None`` when generation failed."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    battle: Mapped["Battle"] = relationship(back_populates="winner")
    cast: Mapped["Cast"] = relationship()
    user: Mapped["User"] = relationship(back_populates="wins")

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<BattleWinner(battle_id={self.battle_id}, cast_id={self.cast_id}, "
            f"side='{self.side}', score={self.score:.2f})>"
        )

    def to_json(self) -> dict[str, Any]:
        """Serialize the winner record into JSON-friendly primitives."""

        return {
            "battle_id": self.battle_id,
            "cast_id": self.cast_id,
            "user_id": self.user_id,
            "side": self.side,
            "score": self.score,
            "selection_method": self.selection_method,
            "side_resolution": self.side_resolution,
            "reasoning": self.reasoning,
            "candidates": list(self.candidates or []),
            "support_score": self.support_score,
            "oppose_score": self.oppose_score,
            "insights": self.insights,
            "created_at": dt_iso(self.created_at),
        }


class BattleHistory(Base):
    """Summary row written once a battle reaches ``COMPLETED``."""

    __tablename__ = "battle_history"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    battle_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("battles.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    total_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_casts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    winner_address: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    battle: Mapped["Battle"] = relationship(back_populates="history")

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<BattleHistory(battle_id={self.battle_id}, casts={self.total_casts}, "
            f"winner_address={self.winner_address})>"
        )
