import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .utils import resolve_sqlite_url

load_dotenv()
# Project root directory (repo root)
ROOT_DIR = Path(__file__).resolve().parents[2]
DEFAULT_SQLITE_URL = resolve_sqlite_url(
    os.getenv("DB_URL", "sqlite:///./debatebattle.db"), ROOT_DIR
)


def is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (":memory:" in url or url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:"))


def make_engine(database_url: Optional[str] = None, echo: bool = False) -> Engine:
    """Create the engine every session of the process is bound to.

    In-memory SQLite databases are pinned to a single shared connection so
    the scheduler thread and the caller see the same data.
    """
    url = database_url or DEFAULT_SQLITE_URL
    kwargs = {}
    if is_memory_sqlite(url):
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}
    engine = create_engine(url, echo=echo, future=True, **kwargs)

    if url.startswith("sqlite"):
        # ensure FK constraints are enforced on SQLite
        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def get_sessionmaker(engine: Engine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        expire_on_commit=False,  # Keep objects accessible after commit
        future=True,
    )
