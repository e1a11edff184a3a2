from sqlalchemy import BigInteger, Integer
from sqlalchemy.orm import DeclarativeBase

from debatebattle.db.metadata import metadata_obj

# Battle, cast and user ids are BIGINT; SQLite only autoincrements INTEGER primary keys.
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    metadata = metadata_obj
