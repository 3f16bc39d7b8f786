"""Engine construction and schema setup for the SQL cache backend"""

from sqlmodel import SQLModel, create_engine

from litpress.crud.tables import CacheEntry  # noqa: F401  registers the table


def make_engine(db_url: str):
    """SQLite URLs get check_same_thread=False; blocks execute in worker threads."""
    connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
    return create_engine(db_url, echo=False, connect_args=connect_args)


def init_db(engine) -> None:
    SQLModel.metadata.create_all(engine)
