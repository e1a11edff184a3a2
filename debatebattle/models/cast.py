"""Database models for submitted arguments ("casts") and their likes."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import ID_TYPE, Base

if TYPE_CHECKING:
    from .battle import Battle
    from .user import User


class CastSide:
    """The two competing positions of a battle."""

    SUPPORT = "SUPPORT"
    OPPOSE = "OPPOSE"

    ALL = (SUPPORT, OPPOSE)


class Cast(Base):
    """One participant's argument for one side of a battle.

    Immutable after creation except for :attr:`like_count`, which tracks the
    number of :class:`CastLike` rows.
    """

    __tablename__ = "casts"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    battle_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("battles.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    side: Mapped[str] = mapped_column(String(10), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    like_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    battle: Mapped["Battle"] = relationship(back_populates="casts")
    user: Mapped["User"] = relationship(back_populates="casts")
    likes: Mapped[list["CastLike"]] = relationship(
        back_populates="cast", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("side IN ('SUPPORT','OPPOSE')", name="side_enum"),
        Index("ix_casts_battle", "battle_id"),
        Index("ix_casts_user", "user_id"),
    )

    def __init__(
        self,
        *,
        battle_id: int,
        user_id: int,
        side: str,
        content: str,
        like_count: int = 0,
        created_at: Optional[datetime] = None,
    ) -> None:
        if side not in CastSide.ALL:
            raise ValueError(f"side must be one of {CastSide.ALL}, got {side!r}")
        self.battle_id = battle_id
        self.user_id = user_id
        self.side = side
        self.content = content
        self.like_count = like_count
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<Cast(id={self.id}, battle_id={self.battle_id}, user_id={self.user_id}, "
            f"side='{self.side}', likes={self.like_count})>"
        )


class CastLike(Base):
    """A positive reaction from one user to one cast."""

    __tablename__ = "cast_likes"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    cast_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("casts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    cast: Mapped["Cast"] = relationship(back_populates="likes")
    user: Mapped["User"] = relationship(back_populates="likes")

    __table_args__ = (UniqueConstraint("cast_id", "user_id", name="cast_likes_cast_user_key"),)
