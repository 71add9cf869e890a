"""SQLite dialect."""

import logging
import sqlite3
import urllib.parse
from typing import ClassVar

from ..schema import ColumnSchema, TableSchema
from .base import Dialect

logger = logging.getLogger(__name__)


class SqliteDialect(Dialect):
    """Dialect for SQLite (scheme sqlite)."""

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("sqlite",)
    UNBOUNDED_LIMIT: ClassVar[str] = "-1"

    def connect(self, url: str):
        parsed = urllib.parse.urlparse(url)
        path = (parsed.path or "")[1:] or parsed.hostname or ":memory:"
        logger.info("Connecting to SQLite database %s", path)
        # Autocommit: transactions are only opened explicitly.
        conn = sqlite3.connect(path, isolation_level=None)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def driver_errors(self):
        return (sqlite3.Error,)

    def introspect(self, connection, table_name):
        rows = connection.query(f"PRAGMA table_info({self.quote_identifier(table_name)})")
        if not rows:
            return None
        columns = [
            ColumnSchema(
                name=row["name"],
                type=row["type"] or None,
                nullable=not row["notnull"] and not row["pk"],
                default=self.parse_default(row["dflt_value"]),
            )
            for row in rows
        ]
        primary_key = tuple(
            row["name"] for row in sorted(rows, key=lambda row: row["pk"]) if row["pk"]
        )
        sequence_name = None
        if len(primary_key) == 1:
            pk_row = next(row for row in rows if row["name"] == primary_key[0])
            # INTEGER PRIMARY KEY aliases the rowid, which SQLite generates.
            if (pk_row["type"] or "").upper() == "INTEGER":
                sequence_name = table_name
        return TableSchema(
            name=table_name,
            columns=columns,
            primary_key=primary_key,
            sequence_name=sequence_name,
        )

    def last_insert_id(self, connection, sequence_name):
        rows = connection.query("SELECT last_insert_rowid() AS id")
        return rows[0]["id"]
