from pathlib import Path
from datetime import datetime, timezone
from typing import Optional


def resolve_sqlite_url(url: str, project_root: Path) -> str:
    """Resolve 'sqlite:///./relative/path' to an absolute sqlite:/// URL.

    Keeps other URL forms unchanged.
    """
    prefix = "sqlite:///./"
    if not url.startswith(prefix):
        return url
    rel = url[len(prefix) :]
    return f"sqlite:///{(project_root / rel).resolve()}"


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Return ``dt`` as an aware UTC datetime.

    SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
    columns; every value written by this package is UTC, so a naive value is
    tagged rather than converted.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def dt_iso(dt: Optional[datetime]) -> Optional[str]:
    """Convert a datetime to an ISO 8601 string in UTC, or return None."""
    utc = ensure_utc(dt)
    return utc.isoformat() if utc is not None else None
