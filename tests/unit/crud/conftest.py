"""Shared fixtures for crud unit tests"""

import pytest
from sqlmodel import SQLModel

from litpress.crud.database import make_engine
from litpress.crud.sql_storage import SQLStorage


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine; tables are created by SQLStorage."""
    engine = make_engine("sqlite://")
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="sql_storage")
def sql_storage_fixture(engine):
    return SQLStorage(engine)
