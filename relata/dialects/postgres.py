"""PostgreSQL dialect."""

import urllib.parse
from typing import ClassVar

from ..schema import ColumnSchema, TableSchema
from .base import Dialect


class PostgresDialect(Dialect):
    """Dialect for PostgreSQL (scheme postgresql), through psycopg2."""

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ("postgresql", "postgres")

    def connect(self, url: str):
        import psycopg2  # pylint: disable=import-outside-toplevel,import-error
        parsed = urllib.parse.urlparse(url)
        conn = psycopg2.connect(
            host=parsed.hostname,
            user=parsed.username,
            password=parsed.password,
            database=(parsed.path or "")[1:] or None,
            port=parsed.port,
        )
        conn.autocommit = True
        return conn

    def driver_errors(self):
        import psycopg2  # pylint: disable=import-outside-toplevel,import-error
        return (psycopg2.Error,)

    def prepare(self, sql: str) -> str:
        return sql.replace("%", "%%").replace("?", "%s")

    def introspect(self, connection, table_name):
        rows = connection.query(
            "SELECT column_name, is_nullable, column_default, data_type\n"
            "FROM information_schema.columns\n"
            "WHERE table_name = ? AND table_schema = current_schema()\n"
            "ORDER BY ordinal_position",
            (table_name,),
        )
        if not rows:
            return None
        columns = [
            ColumnSchema(
                name=row["column_name"],
                type=row["data_type"],
                nullable=row["is_nullable"] == "YES",
                default=self.parse_default(row["column_default"]),
            )
            for row in rows
        ]
        pk_rows = connection.query(
            "SELECT kcu.column_name\n"
            "FROM information_schema.table_constraints tc\n"
            "JOIN information_schema.key_column_usage kcu\n"
            "  ON tc.constraint_name = kcu.constraint_name AND tc.table_schema = kcu.table_schema\n"
            "WHERE tc.constraint_type = 'PRIMARY KEY' AND tc.table_name = ?\n"
            "  AND tc.table_schema = current_schema()\n"
            "ORDER BY kcu.ordinal_position",
            (table_name,),
        )
        primary_key = tuple(row["column_name"] for row in pk_rows)
        sequence_name = None
        if len(primary_key) == 1:
            seq_rows = connection.query(
                "SELECT pg_get_serial_sequence(?, ?) AS seq", (table_name, primary_key[0])
            )
            sequence_name = seq_rows[0]["seq"] if seq_rows else None
        return TableSchema(
            name=table_name,
            columns=columns,
            primary_key=primary_key,
            sequence_name=sequence_name,
        )

    def last_insert_id(self, connection, sequence_name):
        rows = connection.query("SELECT currval(?) AS id", (sequence_name,))
        return rows[0]["id"]
