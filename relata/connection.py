"""Connections: named database URLs and the DB-API adapter used by the core.

``connect(url, name)`` only records configuration. ``Connection.from_name`` or
``Connection.from_url`` open a raw driver connection through the dialect
matching the URL scheme and wrap it with the small interface the core needs:
``execute``, ``query``, ``last_insert_id``, ``quote_identifier`` and
``introspect``. Driver exceptions surface as ``StorageError``.
"""

from __future__ import annotations

import logging
import urllib.parse
from typing import Any, Callable, Iterable, Optional, Sequence, Union

from .dialects import Dialect, get_dialect_for_scheme
from .errors import StorageError
from .schema import TableSchema

logger = logging.getLogger(__name__)


_urls: dict[str, Union[str, Callable[[], str]]] = {}


def connect(database_url: Union[str, Callable[[], str]], name: str = "default") -> None:
    """Register a database URL (or a callable returning one) under ``name``."""
    if not isinstance(database_url, str) and not callable(database_url):
        raise ValueError(
            "database_url must be a `str` or a method returning a `str`, "
            f"got {type(database_url).__name__}"
        )
    _urls[name] = database_url


def get_database_url(name: str = "default") -> str:
    """Return the URL registered under ``name``, calling it if it is a factory."""
    try:
        url = _urls[name]
    except KeyError as error:
        raise ValueError(f"No connection configured with name=`{name}`") from error
    if callable(url):
        url = url()
    return url


class Connection:
    """Adapter around a raw DB-API connection and its dialect."""

    def __init__(self, raw: Any, dialect: Dialect):
        self.raw = raw
        self.dialect = dialect
        self._transactions = None

    @classmethod
    def from_url(cls, url: str) -> "Connection":
        dialect = get_dialect_for_scheme(urllib.parse.urlparse(url).scheme)
        try:
            raw = dialect.connect(url)
        except dialect.driver_errors() as error:
            raise StorageError(f"Cannot connect to {url}: {error}") from error
        return cls(raw, dialect)

    @classmethod
    def from_name(cls, name: str = "default") -> "Connection":
        return cls.from_url(get_database_url(name))

    def _run(self, sql: str, params: Sequence[Any]):
        params = tuple(params or ())
        logger.debug("%s %r", sql, params)
        cursor = self.raw.cursor()
        try:
            cursor.execute(self.dialect.prepare(sql), params)
        except self.dialect.driver_errors() as error:
            cursor.close()
            raise StorageError(str(error), sql=sql, params=params) from error
        return cursor

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a write statement and return the number of affected rows."""
        cursor = self._run(sql, params)
        try:
            return cursor.rowcount
        finally:
            cursor.close()

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run a read statement and return its rows as dicts keyed by column alias."""
        cursor = self._run(sql, params)
        try:
            if cursor.description is None:
                return []
            names = [description[0] for description in cursor.description]
            try:
                rows = cursor.fetchall()
            except self.dialect.driver_errors() as error:
                raise StorageError(str(error), sql=sql, params=tuple(params)) from error
            return [dict(zip(names, row)) for row in rows]
        finally:
            cursor.close()

    def last_insert_id(self, sequence_name: Optional[str] = None) -> Any:
        """Return the key generated by the last INSERT."""
        return self.dialect.last_insert_id(self, sequence_name)

    def quote_identifier(self, name: str) -> str:
        return self.dialect.quote_identifier(name)

    def introspect(self, table_name: str) -> Optional[TableSchema]:
        return self.dialect.introspect(self, table_name)

    def execute_script(self, statements: Iterable[str]) -> None:
        """Run several parameterless statements in order (DDL, fixtures)."""
        for sql in statements:
            self.execute(sql)

    def transaction(self):
        """Open a (possibly nested) transaction scope on this connection."""
        from .transaction import TransactionManager

        if self._transactions is None:
            self._transactions = TransactionManager(self)
        return self._transactions.transaction()

    def close(self) -> None:
        self.raw.close()


__all__ = ["Connection", "connect", "get_database_url"]
