import json
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import distinct, func, select, update
from sqlalchemy.orm import Session

from .exceptions import LedgerError
from .models import (
    Battle,
    BattleHistory,
    BattleStatus,
    BattleWinner,
    Cast,
    CastLike,
    CastSide,
    LedgerTransaction,
    User,
)

if TYPE_CHECKING:
    from .judging.engine import WinnerRecord
    from .ledger.api import LedgerClient
    from .topics.validation import TopicCandidate

logger = logging.getLogger(__name__)

MIN_CAST_LENGTH = 10


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_battle(
    session: Session,
    topic: "TopicCandidate",
    *,
    duration_hours: float,
    max_participants: int = 1000,
    start_time: Optional[datetime] = None,
    debate_id: Optional[int] = None,
) -> Battle:
    """Persist a new ``ACTIVE`` battle for ``topic``.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    topic : TopicCandidate
        Accepted topic providing title, description, category and the two
        point lists.
    duration_hours : float
        Configured battle length; ``end_time = start_time + duration_hours``.
    max_participants : int, default: 1000
        Participant cap stored on the battle.
    start_time : Optional[datetime], default: None
        Start of the battle. Defaults to now (UTC).
    debate_id : Optional[int], default: None
        Matching debate on the external ledger, when one was opened.

    Returns
    -------
    Battle
        The flushed battle with its ``id`` populated.

    Raises
    ------
    ValueError
        If another battle is still running; at most one ``ACTIVE`` battle
        may have its end time in the future.
    """

    start_time = start_time or _utcnow()
    current = get_current_battle(session, now=start_time)
    if current is not None:
        raise ValueError(f"Battle {current.id} is still active until {current.end_time}")

    battle = Battle(
        title=topic.title,
        description=topic.description,
        category=topic.category,
        support_points=list(topic.support_points),
        oppose_points=list(topic.oppose_points),
        source=topic.source,
        source_url=topic.source_url,
        start_time=start_time,
        end_time=start_time + timedelta(hours=duration_hours),
        duration_hours=duration_hours,
        max_participants=max_participants,
        debate_id=debate_id,
        created_at=start_time,
    )
    session.add(battle)
    session.flush()
    logger.info("Created battle %s: %r (ends %s)", battle.id, battle.title, battle.end_time)
    return battle


def get_current_battle(session: Session, now: Optional[datetime] = None) -> Optional[Battle]:
    """Return the ``ACTIVE`` battle whose end time is still in the future."""

    now = now or _utcnow()
    stmt = (
        select(Battle)
        .where(Battle.status == BattleStatus.ACTIVE, Battle.end_time > now)
        .order_by(Battle.start_time.desc())
        .limit(1)
    )
    return session.scalars(stmt).first()


def get_active_battles(session: Session) -> list[Battle]:
    """Return every ``ACTIVE`` battle, expired or not."""

    stmt = select(Battle).where(Battle.status == BattleStatus.ACTIVE).order_by(Battle.id)
    return list(session.scalars(stmt).all())


def get_expired_battles(session: Session, now: Optional[datetime] = None) -> list[Battle]:
    """Return ``ACTIVE`` battles whose end time is at or before ``now``, oldest first."""

    now = now or _utcnow()
    stmt = (
        select(Battle)
        .where(Battle.status == BattleStatus.ACTIVE, Battle.end_time <= now)
        .order_by(Battle.end_time.asc(), Battle.id.asc())
    )
    return list(session.scalars(stmt).all())


def claim_battle_for_completion(session: Session, battle_id: int) -> bool:
    """Atomically move a battle from ``ACTIVE`` to ``COMPLETING``.

    The conditional update succeeds for exactly one caller, so two scheduler
    instances cannot both complete the same battle. The caller must commit
    for the claim to become visible to other connections.

    Returns
    -------
    bool
        ``True`` if this call performed the transition.
    """

    result = session.execute(
        update(Battle)
        .where(Battle.id == battle_id, Battle.status == BattleStatus.ACTIVE)
        .values(status=BattleStatus.COMPLETING, updated_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    claimed = result.rowcount == 1
    if claimed:
        battle = session.get(Battle, battle_id)
        if battle is not None:
            session.refresh(battle)
    return claimed


def release_battle_claim(session: Session, battle_id: int) -> bool:
    """Return a ``COMPLETING`` battle to ``ACTIVE`` so a later tick can retry it."""

    result = session.execute(
        update(Battle)
        .where(Battle.id == battle_id, Battle.status == BattleStatus.COMPLETING)
        .values(status=BattleStatus.ACTIVE, updated_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    released = result.rowcount == 1
    if released:
        battle = session.get(Battle, battle_id)
        if battle is not None:
            session.refresh(battle)
    return released


def get_stale_claims(session: Session) -> list[Battle]:
    """Return battles left in ``COMPLETING``, e.g. by a crashed process."""

    stmt = select(Battle).where(Battle.status == BattleStatus.COMPLETING).order_by(Battle.id)
    return list(session.scalars(stmt).all())


def get_casts_for_battle(session: Session, battle_id: int) -> list[Cast]:
    stmt = select(Cast).where(Cast.battle_id == battle_id).order_by(Cast.id.asc())
    return list(session.scalars(stmt).all())


def submit_cast(
    session: Session,
    battle: Battle,
    user: User,
    side: str,
    content: str,
    *,
    now: Optional[datetime] = None,
) -> Cast:
    """Record ``user``'s argument for ``side`` of a running battle.

    Raises
    ------
    ValueError
        If the battle is not running, the side is unknown, the content is
        shorter than ten characters, or the battle is full and ``user`` has
        not taken part yet.
    """

    now = now or _utcnow()
    if battle.status != BattleStatus.ACTIVE or battle.is_expired(now):
        raise ValueError(f"Battle {battle.id} is not accepting casts")
    if side not in CastSide.ALL:
        raise ValueError(f"side must be one of {CastSide.ALL}, got {side!r}")
    content = (content or "").strip()
    if len(content) < MIN_CAST_LENGTH:
        raise ValueError(f"Cast content must be at least {MIN_CAST_LENGTH} characters long")
    if user.id is None:
        raise ValueError("User must be persisted before submitting a cast")

    participants = set(
        session.scalars(
            select(distinct(Cast.user_id)).where(Cast.battle_id == battle.id)
        ).all()
    )
    if user.id not in participants and len(participants) >= battle.max_participants:
        raise ValueError(f"Battle {battle.id} has reached {battle.max_participants} participants")

    cast = Cast(
        battle_id=battle.id,
        user_id=user.id,
        side=side,
        content=content,
        created_at=now,
    )
    session.add(cast)
    session.flush()
    return cast


def like_cast(session: Session, cast: Cast, user: User) -> bool:
    """Toggle ``user``'s like on ``cast`` and refresh its cached counter.

    Returns
    -------
    bool
        ``True`` if the cast is now liked by ``user``, ``False`` if the like
        was removed.
    """

    existing = session.scalar(
        select(CastLike).where(CastLike.cast_id == cast.id, CastLike.user_id == user.id)
    )
    if existing is not None:
        session.delete(existing)
        liked = False
    else:
        session.add(CastLike(cast_id=cast.id, user_id=user.id))
        liked = True
    session.flush()

    cast.like_count = session.scalar(
        select(func.count(CastLike.id)).where(CastLike.cast_id == cast.id)
    )
    session.flush()
    return liked


def record_winner(session: Session, record: "WinnerRecord") -> BattleWinner:
    """Persist a :class:`~debatebattle.judging.engine.WinnerRecord`."""

    winner = BattleWinner(
        battle_id=record.battle_id,
        cast_id=record.cast_id,
        user_id=record.user_id,
        side=record.side,
        score=record.score,
        selection_method=record.selection_method,
        side_resolution=record.side_resolution,
        reasoning=record.reasoning,
        candidates=list(record.candidates),
        support_score=record.support_score,
        oppose_score=record.oppose_score,
        insights=record.insights,
    )
    session.add(winner)
    session.flush()
    return winner


def complete_battle(
    session: Session,
    battle: Battle,
    *,
    winner: Optional[BattleWinner] = None,
    now: Optional[datetime] = None,
) -> BattleHistory:
    """Mark ``battle`` ``COMPLETED`` and write its history row.

    ``winner`` is ``None`` for battles completed without a winner (no casts,
    judging failure or a forced completion after a duration change).
    """

    now = now or _utcnow()
    casts = get_casts_for_battle(session, battle.id)
    winner_address = None
    if winner is not None:
        winner_user = session.get(User, winner.user_id)
        winner_address = winner_user.address if winner_user is not None else None
        if winner.insights and not battle.insights:
            update_battle_insights(session, battle, winner.insights)
        battle.winner = winner

    battle.status = BattleStatus.COMPLETED
    history = BattleHistory(
        battle=battle,
        completed_at=now,
        total_participants=len({cast.user_id for cast in casts}),
        total_casts=len(casts),
        winner_address=winner_address,
    )
    session.add(history)
    session.flush()
    logger.info(
        "Battle %s completed with %d casts, winner: %s",
        battle.id,
        len(casts),
        winner_address or "none",
    )
    return history


def update_battle_insights(session: Session, battle: Battle, insights: Optional[str]) -> None:
    """Store the judge's summary on ``battle``; ``None`` clears it."""
    battle.insights = insights
    session.flush()


def award_points(session: Session, user_id: int, points: int) -> int:
    """Add ``points`` to a user's balance and return the new balance.

    The increment is done in SQL so concurrent awards are not lost.
    """

    if points < 0:
        raise ValueError("points must be non-negative")
    result = session.execute(
        update(User)
        .where(User.id == user_id)
        .values(points=User.points + points, updated_at=_utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ValueError(f"User {user_id} does not exist")
    balance = session.scalar(select(User.points).where(User.id == user_id))
    user = session.get(User, user_id)
    if user is not None:
        session.refresh(user)
    return balance


def get_user_points(session: Session, address: str) -> int:
    """Return the point balance of the user with ``address`` (0 if unknown)."""

    user = User.get_by_address(session, address)
    return user.points if user is not None else 0


def get_recent_completed_battles(session: Session, limit: int = 2) -> list[Battle]:
    stmt = (
        select(Battle)
        .where(Battle.status == BattleStatus.COMPLETED)
        .order_by(Battle.end_time.desc(), Battle.id.desc())
        .limit(limit)
    )
    return list(session.scalars(stmt).all())


def count_battles_created_between(session: Session, start: datetime, end: datetime) -> int:
    stmt = select(func.count(Battle.id)).where(
        Battle.created_at >= start, Battle.created_at < end
    )
    return session.scalar(stmt) or 0


def get_battle_history(session: Session, limit: int = 20) -> list[dict]:
    """Summaries of completed battles, most recent first.

    Battles without a winner report ``"winner": None`` rather than failing.
    """

    stmt = (
        select(Battle)
        .where(Battle.status == BattleStatus.COMPLETED)
        .order_by(Battle.end_time.desc(), Battle.id.desc())
        .limit(limit)
    )
    entries = []
    for battle in session.scalars(stmt).all():
        entry = battle.to_json()
        entry["winner"] = battle.winner.to_json() if battle.winner is not None else None
        if battle.history is not None:
            entry["total_participants"] = battle.history.total_participants
            entry["total_casts"] = battle.history.total_casts
            entry["winner_address"] = battle.history.winner_address
        entries.append(entry)
    return entries


def get_leaderboard(session: Session, limit: int = 10) -> list[User]:
    stmt = (
        select(User)
        .where(User.points > 0)
        .order_by(User.points.desc(), User.id.asc())
        .limit(limit)
    )
    return list(session.scalars(stmt).all())


def settle_battle(
    session: Session,
    battle: Battle,
    winner_address: str,
    client: "LedgerClient",
    *,
    now: Optional[datetime] = None,
) -> Optional[LedgerTransaction]:
    """Declare the winner of a completed battle on the external ledger.

    Battles without a ``debate_id`` have nothing to settle. A debate the
    ledger already reports as completed is skipped without a second call.
    Every call made is recorded as a :class:`LedgerTransaction`.

    Returns
    -------
    Optional[LedgerTransaction]
        The confirmed transaction, or ``None`` if nothing was sent.

    Raises
    ------
    ValueError
        If the battle is not ``COMPLETED``.
    LedgerError
        If the declaration failed. The failed transaction row is flushed
        before raising so the caller can commit it.
    """

    if battle.status != BattleStatus.COMPLETED:
        raise ValueError(f"Battle {battle.id} is not completed")
    if battle.debate_id is None:
        logger.info("Battle %s has no ledger debate; nothing to settle", battle.id)
        return None

    try:
        if client.is_debate_completed(battle.debate_id):
            logger.warning(
                "Debate %s already completed on the ledger; skipping battle %s",
                battle.debate_id,
                battle.id,
            )
            return None
    except Exception as exc:
        # The declaration itself is rejected if the debate is already settled.
        logger.warning("Could not check ledger state of debate %s: %s", battle.debate_id, exc)

    now = now or _utcnow()
    request_payload = {"debate_id": battle.debate_id, "winner_address": winner_address}
    tx = LedgerTransaction(
        battle_id=battle.id,
        debate_id=battle.debate_id,
        winner_address=winner_address,
        type="declare_winner",
        status="sent",
        request_payload_json=json.dumps(request_payload),
        created_at=now,
    )
    session.add(tx)
    session.flush()

    try:
        receipt = client.declare_winner(battle.debate_id, winner_address)
    except Exception as exc:
        tx.status = "failed"
        tx.error_message = str(exc)
        session.flush()
        if isinstance(exc, LedgerError):
            raise
        raise LedgerError(f"Settlement of battle {battle.id} failed: {exc}") from exc

    tx.status = "confirmed"
    tx.tx_hash = receipt.get("tx_hash")
    tx.response_payload_json = json.dumps(receipt)
    tx.confirmed_at = _utcnow()
    session.flush()
    logger.info("Settled battle %s on the ledger (tx %s)", battle.id, tx.tx_hash)
    return tx


__all__ = [
    "award_points",
    "claim_battle_for_completion",
    "complete_battle",
    "count_battles_created_between",
    "create_battle",
    "get_active_battles",
    "get_battle_history",
    "get_casts_for_battle",
    "get_current_battle",
    "get_expired_battles",
    "get_leaderboard",
    "get_recent_completed_battles",
    "get_stale_claims",
    "get_user_points",
    "like_cast",
    "record_winner",
    "release_battle_claim",
    "settle_battle",
    "submit_cast",
    "update_battle_insights",
]
