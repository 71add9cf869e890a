"""Record base class: one instance per table row.

Subclasses name their table with class keywords and declare relations, scopes
and validation rules with overridable classmethods::

    class Customer(Record, table_name="customer"):

        @classmethod
        def relations(cls):
            return {"orders": HasMany("Order", "customer_id")}

        @classmethod
        def rules(cls):
            return [RequiredValidator(attributes="name")]

Column values are read and written with ``get`` / ``set`` (or ``record[name]``),
related records with ``related(name)``. Columns and relations are looked up in
two separate tables, so an unknown column raises ``UnknownAttributeError`` and
an unknown relation ``UnknownRelationError``.
"""

from __future__ import annotations

from typing import Any, ClassVar, Iterable, Mapping, Optional, Union

from .attributes import AttributeStore
from .errors import UnknownAttributeError
from .lifecycle import RecordState, state_of
from .query import Query, find_by_sql


class Record:
    """Base class for table-bound records; provides persistence, relations and identity."""

    table_name: ClassVar[Optional[str]] = None
    declared_primary_key: ClassVar[Optional[tuple[str, ...]]] = None
    """Overrides the introspected primary key (tables without one, views)."""

    def __init_subclass__(
        cls,
        table_name: Optional[str] = None,
        primary_key: Union[str, Iterable[str], None] = None,
        **kwargs,
    ):
        super().__init_subclass__(**kwargs)
        if table_name is not None:
            cls.table_name = table_name
        if primary_key is not None:
            cls.declared_primary_key = (primary_key,) if isinstance(primary_key, str) else tuple(primary_key)

    def __init__(self, context, **attributes: Any):
        """Build a new (unsaved) record; ``attributes`` are column values."""
        self._setup(context)
        for name, value in attributes.items():
            self.set(name, value)

    def _setup(self, context) -> None:
        self.context = context
        self.descriptor = context.describe(type(self))
        self.store = AttributeStore(self.descriptor.column_names)
        self.extra: dict[str, Any] = {}
        self.is_deleted = False
        self._related: dict[str, Any] = {}
        self._errors: dict[str, list[str]] = {}

    @classmethod
    def instantiate(cls, context, row: Mapping[str, Any]) -> "Record":
        """Build a persisted record from a row; the snapshot is the row's column values."""
        record = cls.__new__(cls)
        record._setup(context)
        columns = record.descriptor.column_names
        for name, value in row.items():
            if name in columns:
                record.store.set(name, value)
            else:
                record.extra[name] = value
        record.store.mark_persisted()
        return record

    # declarations

    @classmethod
    def relations(cls) -> dict[str, Any]:
        """Relation templates by name."""
        return {}

    @classmethod
    def scopes(cls) -> dict[str, Any]:
        """Named scopes: functions taking and returning a Query."""
        return {}

    @classmethod
    def default_scope(cls, query: Query) -> Query:
        """Applied to every query over this class (``unscoped()`` skips it)."""
        return query

    @classmethod
    def rules(cls) -> list:
        """Validators run by ``validate`` and ``save``."""
        return []

    # attributes

    def check_attribute(self, name: str) -> None:
        if name not in self.descriptor.column_names:
            raise UnknownAttributeError(type(self), name)

    def get(self, name: str) -> Any:
        self.check_attribute(name)
        return self.store.get(name)

    def set(self, name: str, value: Any) -> None:
        self.check_attribute(name)
        self.store.set(name, value)

    def __getitem__(self, name: str) -> Any:
        return self.get(name)

    def __setitem__(self, name: str, value: Any) -> None:
        self.set(name, value)

    def is_set(self, name: str) -> bool:
        self.check_attribute(name)
        return self.store.is_set(name)

    def unset(self, name: str) -> None:
        self.check_attribute(name)
        self.store.unset(name)

    def set_attributes(self, values: Mapping[str, Any]) -> None:
        for name, value in values.items():
            self.set(name, value)

    def attributes(self, names: Optional[Iterable[str]] = None) -> dict[str, Any]:
        """Values of every column (or of ``names``); unset columns are None."""
        if names is not None:
            names = tuple(names)
            for name in names:
                self.check_attribute(name)
        return self.store.all(names)

    def changed_attributes(self, names: Optional[Iterable[str]] = None) -> dict[str, Any]:
        """Columns whose value differs from the persisted one (all set columns when new)."""
        return self.store.changed(names)

    def old_attributes(self) -> Optional[dict[str, Any]]:
        return self.store.old_all()

    def is_new(self) -> bool:
        return self.store.is_new()

    @property
    def state(self) -> RecordState:
        return state_of(self)

    def load_default_values(self) -> "Record":
        """Set unset columns to their introspected default values."""
        for column in self.descriptor.table.columns:
            if column.default is not None and not self.store.is_set(column.name):
                self.store.set(column.name, column.default)
        return self

    # keys and identity

    def _key(self, values: Mapping[str, Any], as_dict: bool):
        primary_key = self.descriptor.primary_key
        if not primary_key:
            return None
        key = {name: values.get(name) for name in primary_key}
        if as_dict:
            return key
        if len(primary_key) == 1:
            return key[primary_key[0]]
        return tuple(key.values())

    def primary_key(self, as_dict: bool = False):
        """Current primary key: a scalar, a tuple for composite keys, or a dict with ``as_dict``."""
        return self._key(self.store.all(self.descriptor.primary_key), as_dict)

    def old_primary_key(self, as_dict: bool = False):
        """Primary key as last persisted (None when new); keys every update and delete."""
        old = self.store.old_all(self.descriptor.primary_key)
        if old is None:
            return None
        return self._key(old, as_dict)

    def _identity(self) -> Optional[tuple]:
        primary_key = self.descriptor.primary_key
        if not primary_key:
            return None
        values = tuple(self.store.get(name) for name in primary_key)
        if any(value is None for value in values):
            return None
        return (self.descriptor.table_name, values)

    def equals(self, other: Any) -> bool:
        """Same table and same complete primary key; a record without one only equals itself."""
        if self is other:
            return True
        if not isinstance(other, Record):
            return False
        identity = self._identity()
        return identity is not None and identity == other._identity()

    def __eq__(self, other: Any):
        if not isinstance(other, Record):
            return NotImplemented
        return self.equals(other)

    def __hash__(self):
        identity = self._identity()
        if identity is None:
            return id(self)
        return hash(identity)

    def __repr__(self):
        return f"<{type(self).__name__} {self.primary_key()!r}>"

    # relations

    def related(self, name: str, overrides=None) -> Any:
        """Resolve relation ``name`` (lazily, cached unless ``overrides`` are given)."""
        return self.context.finder.resolve(self, name, overrides)

    def has_related(self, name: str) -> bool:
        return name in self._related

    def cached_related(self, name: str) -> Any:
        return self._related.get(name)

    def set_related(self, name: str, value: Any) -> None:
        self.descriptor.get_relation(name)
        self._related[name] = value

    def invalidate_related(self, name: Optional[str] = None) -> None:
        """Drop one cached relation, or all of them."""
        if name is None:
            self._related.clear()
        else:
            self._related.pop(name, None)

    # validation errors

    @property
    def errors(self) -> dict[str, list[str]]:
        return {name: list(messages) for name, messages in self._errors.items()}

    def add_error(self, name: str, message: str) -> None:
        self._errors.setdefault(name, []).append(message)

    def has_errors(self, name: Optional[str] = None) -> bool:
        if name is None:
            return bool(self._errors)
        return bool(self._errors.get(name))

    def clear_errors(self, names: Optional[Iterable[str]] = None) -> None:
        if names is None:
            self._errors.clear()
        else:
            for name in names:
                self._errors.pop(name, None)

    # persistence

    def validate(self, attributes: Optional[Iterable[str]] = None) -> bool:
        return self.context.lifecycle.validate(self, attributes)

    def save(self, run_validation: bool = True, attributes: Optional[Iterable[str]] = None) -> bool:
        return self.context.lifecycle.save(self, run_validation, attributes)

    def insert(self, attributes: Optional[Iterable[str]] = None) -> bool:
        return self.context.lifecycle.insert(self, attributes)

    def update(self, attributes: Optional[Iterable[str]] = None) -> bool:
        return self.context.lifecycle.update(self, attributes)

    def delete(self) -> bool:
        return self.context.lifecycle.delete(self)

    def update_counters(self, counters: Mapping[str, int]) -> bool:
        return self.context.lifecycle.update_counters(self, counters)

    def refresh(self, attributes: Optional[Iterable[str]] = None) -> bool:
        return self.context.lifecycle.refresh(self, attributes)

    # hooks; a before hook returning Decision.ABORT (or False) vetoes the operation

    def before_insert(self):
        return self._emit("before_insert")

    def after_insert(self):
        self._emit("after_insert")

    def before_update(self):
        return self._emit("before_update")

    def after_update(self):
        self._emit("after_update")

    def before_delete(self):
        return self._emit("before_delete")

    def after_delete(self):
        self._emit("after_delete")

    def _emit(self, event: str) -> bool:
        notifier = self.context.notifier
        if notifier is None:
            return True
        return notifier.emit(event, self)

    # class-level operations

    @classmethod
    def find(cls, context, condition: Any = None, params: Any = None, **columns: Any) -> Query:
        """Query over this class, optionally filtered (by primary key value, mapping, string or expression)."""
        query = Query(record_class=cls, context=context)
        if condition is not None or columns:
            query = query.where(condition, params, **columns)
        return query

    @classmethod
    def find_by_sql(cls, context, sql: str, params: Any = None) -> Query:
        return find_by_sql(cls, context, sql, params)

    @classmethod
    def count(cls, context, condition: Any = None, params: Any = None, **columns: Any) -> int:
        return cls.find(context, condition, params, **columns).count()

    @classmethod
    def update_all(cls, context, values: Mapping[str, Any], condition: Any = None, params: Any = None) -> int:
        """UPDATE every matching row; returns the number of rows affected."""
        return context.lifecycle.update_all(cls, values, condition, params)

    @classmethod
    def update_all_counters(
        cls, context, counters: Mapping[str, int], condition: Any = None, params: Any = None
    ) -> int:
        return context.lifecycle.update_all_counters(cls, counters, condition, params)

    @classmethod
    def delete_all(cls, context, condition: Any = None, params: Any = None) -> int:
        return context.lifecycle.delete_all(cls, condition, params)


__all__ = ["Record"]
