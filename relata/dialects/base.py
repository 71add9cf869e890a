"""Base Dialect type: one subclass per engine (connect, introspect, generated keys)."""

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Optional, TYPE_CHECKING

from pydantic import BaseModel

from ..utils.quoting import quote_identifier

if TYPE_CHECKING:
    from ..connection import Connection
    from ..schema import TableSchema


class Dialect(BaseModel, ABC):
    """Base for database dialects.

    A dialect knows how to open a raw DB-API connection for a URL, which driver
    exceptions it raises, how to introspect a table and how to read back the
    last generated key. Statements are always built with ``?`` placeholders;
    ``prepare`` adapts them to the driver's parameter style.
    """

    model_config = {"arbitrary_types_allowed": True}

    SUPPORTED_SCHEMA: ClassVar[tuple[str, ...]] = ()
    """URL schemes this dialect handles (e.g. ('sqlite',), ('postgresql', 'postgres'))."""
    UNBOUNDED_LIMIT: ClassVar[Optional[str]] = None
    """LIMIT value written before an OFFSET that has no limit; None to write no LIMIT."""

    @abstractmethod
    def connect(self, url: str) -> Any:
        """Return a new raw, autocommitting driver connection for the given URL."""
        ...  # pylint: disable=unnecessary-ellipsis

    @abstractmethod
    def driver_errors(self) -> tuple[type[BaseException], ...]:
        """Exception classes raised by the driver, wrapped into StorageError."""
        ...  # pylint: disable=unnecessary-ellipsis

    @abstractmethod
    def introspect(self, connection: "Connection", table_name: str) -> Optional["TableSchema"]:
        """Return the schema of ``table_name``, or None when the table does not exist."""
        ...  # pylint: disable=unnecessary-ellipsis

    @abstractmethod
    def last_insert_id(self, connection: "Connection", sequence_name: Optional[str]) -> Any:
        """Return the key generated by the last INSERT on this connection."""
        ...  # pylint: disable=unnecessary-ellipsis

    def quote_identifier(self, name: str) -> str:
        """Quote a (possibly ``alias.column`` qualified) identifier."""
        return quote_identifier(name)

    def prepare(self, sql: str) -> str:
        """Adapt a ``?``-placeholder statement to the driver's parameter style."""
        return sql

    @staticmethod
    def parse_default(raw: Any) -> Any:
        """Turn a column default as reported by the catalog into a Python value.

        Literal numbers and quoted strings are converted; ``NULL`` and SQL
        expressions (``CURRENT_TIMESTAMP``, ``nextval(...)``) give None.
        """
        if raw is None or not isinstance(raw, str):
            return raw
        text = raw.strip()
        if "::" in text and text.startswith("'"):
            text = text.rsplit("::", 1)[0]
        if len(text) >= 2 and text[0] == "'" and text[-1] == "'":
            return text[1:-1].replace("''", "'")
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return None
