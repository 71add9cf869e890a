"""Table schema models and the per-context metadata registry.

The registry introspects each record class's table once, on first use, and
caches an immutable ``EntityDescriptor`` holding the table schema together with
the relation templates the class declares. ``refresh`` is the only way to
replace a cached descriptor (e.g. after a schema migration).
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from .errors import ConfigurationError, SchemaError, UnknownRelationError

logger = logging.getLogger(__name__)


class ColumnSchema(BaseModel):
    """One column of a table, as reported by the introspector."""

    model_config = ConfigDict(frozen=True)

    name: str
    nullable: bool = True
    default: Any = None
    type: Optional[str] = None


class TableSchema(BaseModel):
    """Columns (in table order), primary key and key sequence of a table."""

    model_config = ConfigDict(frozen=True)

    name: str
    columns: tuple[ColumnSchema, ...] = Field(default_factory=tuple)
    primary_key: tuple[str, ...] = Field(default_factory=tuple)
    sequence_name: Optional[str] = None

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    def has_column(self, name: str) -> bool:
        return any(column.name == name for column in self.columns)

    def get_column(self, name: str) -> Optional[ColumnSchema]:
        for column in self.columns:
            if column.name == name:
                return column
        return None


class Introspector(Protocol):
    """Anything that can describe a table (the connection, usually)."""

    def introspect(self, table_name: str) -> Optional[TableSchema]:
        ...


class EntityDescriptor(BaseModel):
    """Everything the core needs to know about a record class."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    record_class: type
    table: TableSchema
    relations: dict[str, Any] = Field(default_factory=dict)
    """Relation templates by name; never mutated."""

    @property
    def table_name(self) -> str:
        return self.table.name

    @property
    def primary_key(self) -> tuple[str, ...]:
        return self.table.primary_key

    @property
    def column_names(self) -> tuple[str, ...]:
        return self.table.column_names

    def get_relation(self, name: str):
        """Return the relation template called ``name``.

        Raises UnknownRelationError for undeclared names, and ConfigurationError
        when the declared options did not validate.
        """
        try:
            relation = self.relations[name]
        except KeyError:
            raise UnknownRelationError(self.record_class, name) from None
        if hasattr(relation, "check_declaration"):
            relation.check_declaration()
        return relation


class MetadataRegistry:
    """Cache of ``EntityDescriptor`` per record class, filled by introspection."""

    def __init__(self, introspector: Introspector):
        self._introspector = introspector
        self._descriptors: dict[type, EntityDescriptor] = {}
        self._lock = threading.Lock()

    def describe(self, record_class: type) -> EntityDescriptor:
        """Return the cached descriptor, introspecting the table on first use."""
        descriptor = self._descriptors.get(record_class)
        if descriptor is not None:
            return descriptor
        with self._lock:
            descriptor = self._descriptors.get(record_class)
            if descriptor is None:
                descriptor = self._build(record_class)
                self._descriptors[record_class] = descriptor
        return descriptor

    def refresh(self, record_class: type) -> EntityDescriptor:
        """Re-introspect the table of ``record_class`` and replace the cached descriptor."""
        with self._lock:
            descriptor = self._build(record_class)
            self._descriptors[record_class] = descriptor
        logger.info("Refreshed metadata for %s", record_class.__name__)
        return descriptor

    def is_described(self, record_class: type) -> bool:
        return record_class in self._descriptors

    def _build(self, record_class: type) -> EntityDescriptor:
        table_name = getattr(record_class, "table_name", None)
        if not table_name:
            raise ConfigurationError(f"{record_class.__name__} does not declare a table_name")
        logger.info("Introspecting table %s for %s", table_name, record_class.__name__)
        table = self._introspector.introspect(table_name)
        if table is None or not table.columns:
            raise SchemaError(f"Table {table_name!r} does not exist or has no columns")
        declared_key = getattr(record_class, "declared_primary_key", None)
        if declared_key:
            missing = [name for name in declared_key if not table.has_column(name)]
            if missing:
                raise SchemaError(
                    f"Primary key column(s) {', '.join(missing)} of {record_class.__name__} "
                    f"not found in table {table_name!r}"
                )
            table = table.model_copy(update={"primary_key": tuple(declared_key)})
        relations = {}
        for name, relation in record_class.relations().items():
            if hasattr(relation, "model_copy") and getattr(relation, "name", None) != name:
                relation = relation.model_copy(update={"name": name})
            relations[name] = relation
        return EntityDescriptor(record_class=record_class, table=table, relations=relations)


__all__ = [
    "ColumnSchema",
    "TableSchema",
    "EntityDescriptor",
    "Introspector",
    "MetadataRegistry",
]
