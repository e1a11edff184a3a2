from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional
from sqlalchemy.orm import Session, Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, DateTime, func, select

from .base import ID_TYPE, Base

if TYPE_CHECKING:
    from .cast import Cast, CastLike
    from .winner import BattleWinner


class User(Base):
    """A participant identified by wallet address."""

    def __init__(
        self,
        address: str,
        username: Optional[str] = None,
        points: int = 0,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        """Create a new :class:`User` record.

        Parameters
        ----------
        address : str
            Wallet address used for settlement payouts. Stored lower-cased.
        username : str, optional
            Display name.
        points : int, default: 0
            Starting point balance.
        created_at : datetime, optional
            Explicit creation timestamp.
        updated_at : datetime, optional
            Explicit last update timestamp.
        """

        if not address or not address.strip():
            raise ValueError("address must not be empty")
        self.address = address.strip().lower()
        self.username = username
        self.points = points
        if created_at is not None:
            self.created_at = created_at
        if updated_at is not None:
            self.updated_at = updated_at

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    address: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    username: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # relationships
    casts: Mapped[list["Cast"]] = relationship(back_populates="user")
    likes: Mapped[list["CastLike"]] = relationship(back_populates="user")
    wins: Mapped[list["BattleWinner"]] = relationship(back_populates="user")

    def __repr__(self) -> str:
        return (
            f"<User(id={self.id}, address='{self.address}', "
            f"username='{self.username}', points={self.points})>"
        )

    @classmethod
    def get_by_address(cls, session: Session, address: str) -> Optional["User"]:
        """Retrieve a user by wallet address (case-insensitive)."""

        return session.scalar(select(cls).where(cls.address == address.strip().lower()))
