import logging

import pytest

from relata.connection import Connection
from relata.context import Context

from tests.helpers import SCHEMA


class RecordingConnection(Connection):
    """Connection that keeps a log of every statement it runs."""

    def __init__(self, raw, dialect):
        super().__init__(raw, dialect)
        self.statements: list[tuple[str, str, tuple]] = []

    def execute(self, sql, params=()):
        self.statements.append(("execute", sql, tuple(params or ())))
        return super().execute(sql, params)

    def query(self, sql, params=()):
        self.statements.append(("query", sql, tuple(params or ())))
        return super().query(sql, params)

    @property
    def writes(self):
        return [(sql, params) for kind, sql, params in self.statements if kind == "execute"]

    @property
    def reads(self):
        return [(sql, params) for kind, sql, params in self.statements if kind == "query"]

    def reset(self):
        self.statements.clear()


@pytest.fixture(scope="function")
def connection(tmp_path):
    """A fresh file-backed SQLite database for each test, holding the test schema."""
    path = tmp_path / "test.sqlite3"
    logging.getLogger("relata.tests").debug("database at %s", path)
    connection = RecordingConnection.from_url(f"sqlite:///{path}")
    connection.execute_script(SCHEMA)
    connection.reset()
    yield connection
    connection.close()


@pytest.fixture(scope="function")
def setup_db(connection):
    """A Context on the test database; the statement log starts empty."""
    return Context(connection)
