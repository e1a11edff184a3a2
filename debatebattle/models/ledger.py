from datetime import datetime
from typing import TYPE_CHECKING, Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import (
    Integer,
    String,
    DateTime,
    Text,
    ForeignKey,
    CheckConstraint,
    Index,
)
from .base import ID_TYPE, Base

if TYPE_CHECKING:
    from .battle import Battle


class LedgerTransaction(Base):
    """Settlement call made against the external ledger for a battle.

    Stores request and response payloads so that a failed payout can be
    inspected and replayed by an operator.
    """

    __tablename__ = "ledger_transactions"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    battle_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("battles.id", ondelete="SET NULL"), nullable=True
    )
    debate_id: Mapped[int] = mapped_column(Integer, nullable=False)
    winner_address: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    tx_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, unique=True)
    request_payload_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    response_payload_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    battle: Mapped[Optional["Battle"]] = relationship()

    __table_args__ = (
        CheckConstraint("type IN ('declare_winner')", name="type_enum"),
        CheckConstraint(
            "status IN ('queued','sent','confirmed','failed')", name="status_enum"
        ),
        Index("ix_ledger_battle", "battle_id"),
        Index("ix_ledger_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerTransaction(id={self.id}, battle_id={self.battle_id}, "
            f"debate_id={self.debate_id}, status='{self.status}', created_at={self.created_at})>"
        )
