from datetime import datetime, timedelta, timezone

from debatebattle import workflows
from debatebattle.db.engine import get_sessionmaker, make_engine
from debatebattle.models import Base, CastSide, User
from debatebattle.topics.validation import TopicCandidate, TopicStrategy


SAMPLE_TOPIC = TopicCandidate(
    title="Should central banks issue their own digital currencies?",
    description=(
        "Several central banks are piloting retail digital currencies. Supporters "
        "point to cheaper payments; critics worry about privacy and bank runs."
    ),
    category="economics",
    support_points=(
        "Digital cash lowers payment costs for everyone",
        "It gives unbanked people access to safe money",
    ),
    oppose_points=(
        "It lets the state monitor every purchase",
        "Deposits could flee commercial banks in a crisis",
    ),
    source="Seed data",
    strategy=TopicStrategy.DEFAULT,
)

SAMPLE_CASTS = [
    ("0xa11ce00000000000000000000000000000000001", CastSide.SUPPORT,
     "Cheaper payments matter because card fees are a hidden tax on every small shop."),
    ("0xb0b0000000000000000000000000000000000002", CastSide.OPPOSE,
     "However convenient it is, a CBDC gives the state a full ledger of private spending."),
    ("0xca7e000000000000000000000000000000000003", CastSide.SUPPORT,
     "Imagine 1.4 billion unbanked adults holding safe money on a basic phone."),
]


def main() -> None:
    """Reset the development database and fill it with one running battle."""
    engine = make_engine()

    # SQLite cannot drop tables with live FK references, so switch checks off for the reset.
    with engine.connect() as conn:
        if engine.dialect.name == "sqlite":
            conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        Base.metadata.drop_all(bind=conn)
        if engine.dialect.name == "sqlite":
            conn.exec_driver_sql("PRAGMA foreign_keys=ON")
        conn.commit()

    Base.metadata.create_all(engine)
    Session = get_sessionmaker(engine)

    now = datetime.now(timezone.utc)
    with Session.begin() as session:
        battle = workflows.create_battle(
            session,
            SAMPLE_TOPIC,
            duration_hours=1.0,
            start_time=now - timedelta(minutes=15),
        )
        casts = []
        for address, side, content in SAMPLE_CASTS:
            user = User(address=address)
            session.add(user)
            session.flush()
            casts.append(workflows.submit_cast(session, battle, user, side, content, now=now))

        fan = User(address="0xfa40000000000000000000000000000000000004", username="fan")
        session.add(fan)
        session.flush()
        workflows.like_cast(session, casts[0], fan)

    print(f"Seeded battle '{SAMPLE_TOPIC.title}' with {len(SAMPLE_CASTS)} casts.")


if __name__ == "__main__":
    main()
