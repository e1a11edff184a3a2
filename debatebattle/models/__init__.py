from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .user import User  # noqa: F401
from .battle import BATTLE_CATEGORIES, Battle, BattleStatus  # noqa: F401
from .cast import Cast, CastLike, CastSide  # noqa: F401
from .winner import BattleHistory, BattleWinner  # noqa: F401
from .ledger import LedgerTransaction  # noqa: F401

__all__ = [
    "Base",
    "BATTLE_CATEGORIES",
    "Battle",
    "BattleHistory",
    "BattleStatus",
    "BattleWinner",
    "Cast",
    "CastLike",
    "CastSide",
    "LedgerTransaction",
    "User",
]
