"""CacheStorage backed by the cache_entries table"""

from datetime import datetime
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from litpress.core.errors import CacheIOError
from litpress.core.storage import CacheStorage
from litpress.crud.database import init_db
from litpress.crud.tables import CacheEntry


class SQLStorage(CacheStorage):
    """One row per key. `locate` returns a `db://` reference since rows have no path."""

    def __init__(self, engine):
        self.engine = engine
        init_db(engine)

    def read(self, key: str) -> Optional[str]:
        try:
            with Session(self.engine) as session:
                entry = session.get(CacheEntry, key)
                return entry.data if entry else None
        except SQLAlchemyError:
            return None

    def write(self, key: str, data: str) -> None:
        try:
            with Session(self.engine) as session:
                entry = session.get(CacheEntry, key)
                if entry is None:
                    entry = CacheEntry(key=key, data=data)
                else:
                    entry.data = data
                    entry.updated_at = datetime.now()
                session.add(entry)
                session.commit()
        except SQLAlchemyError as e:
            raise CacheIOError(f"Failed to write cache entry {key}: {e}") from e

    def exists(self, key: str) -> bool:
        return self.read(key) is not None

    def delete(self, key: str) -> None:
        with Session(self.engine) as session:
            entry = session.get(CacheEntry, key)
            if entry:
                session.delete(entry)
                session.commit()

    def keys(self, prefix: str = "") -> list[str]:
        with Session(self.engine) as session:
            stmt = select(CacheEntry.key)
            if prefix:
                stmt = stmt.where(CacheEntry.key.startswith(prefix, autoescape=True))
            return sorted(session.exec(stmt).all())

    def clear(self) -> None:
        with Session(self.engine) as session:
            session.execute(delete(CacheEntry))
            session.commit()

    def locate(self, key: str) -> str:
        return f"db://{key}"
