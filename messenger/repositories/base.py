from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def upsert_insert(db: AsyncSession, model):
    """INSERT construct that supports ``on_conflict_do_*`` for the session's dialect."""
    dialect = db.get_bind().dialect.name
    try:
        return _INSERTS[dialect](model)
    except KeyError:
        raise RuntimeError(f"Upserts are not supported on {dialect}") from None
