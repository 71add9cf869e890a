"""Record persistence: insert, update, delete, save, counters and refresh.

Every write is keyed by the record's *old* primary key (the persisted
snapshot), so changing a key column and saving updates the right row. Hook
vetoes and validation failures return False; they are told apart by their log
messages and by ``record.errors`` (only validation fills it).
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Iterable, Mapping, Optional

from .builder import build_delete, build_insert, build_update, build_update_counters
from .errors import ConfigurationError, InvalidStateError
from .events import proceeds
from .query import Query

logger = logging.getLogger(__name__)


class RecordState(enum.Enum):
    NEW = "new"
    CLEAN = "clean"
    DIRTY = "dirty"
    DELETED = "deleted"


def state_of(record) -> RecordState:
    if record.is_deleted:
        return RecordState.DELETED
    if record.is_new():
        return RecordState.NEW
    if record.changed_attributes():
        return RecordState.DIRTY
    return RecordState.CLEAN


class LifecycleController:
    """Drives records through their states using a context's connection."""

    def __init__(self, context):
        self.context = context

    def _quote(self, name: str) -> str:
        return self.context.connection.quote_identifier(name)

    def _execute(self, statement) -> int:
        return self.context.connection.execute(*statement)

    def _key_condition(self, record) -> dict[str, Any]:
        """``{column: old value}`` for every primary-key column."""
        descriptor = record.descriptor
        if not descriptor.primary_key:
            raise ConfigurationError(
                f"{type(record).__name__} has no primary key; declare one with primary_key=(...)"
            )
        return record.old_primary_key(as_dict=True)

    @staticmethod
    def _require_persisted(record, operation: str) -> None:
        if record.is_deleted:
            raise InvalidStateError(f"The {type(record).__name__} record was deleted and cannot be {operation}.")
        if record.is_new():
            raise InvalidStateError(f"The {type(record).__name__} record is new and cannot be {operation}.")

    # validation

    def validate(self, record, attributes: Optional[Iterable[str]] = None) -> bool:
        validation = self.context.validation
        if validation is None:
            return True
        if validation.validate(record, attributes):
            return True
        logger.info("Validation failed for %r: %s", record, record.errors)
        return False

    # single record

    def save(self, record, run_validation: bool = True, attributes: Optional[Iterable[str]] = None) -> bool:
        """Validate (unless skipped), then insert a new record or update a persisted one."""
        if record.is_deleted:
            raise InvalidStateError(f"The {type(record).__name__} record was deleted and cannot be saved.")
        attributes = None if attributes is None else tuple(attributes)
        if run_validation and not self.validate(record, attributes):
            return False
        if record.is_new():
            return self.insert(record, attributes)
        return self.update(record, attributes)

    def insert(self, record, attributes: Optional[Iterable[str]] = None) -> bool:
        """INSERT the record's set values (restricted to ``attributes``).

        Primary-key columns left unset are filled from the connection's last
        insert id when the table has a key sequence.
        """
        if record.is_deleted:
            raise InvalidStateError(f"The {type(record).__name__} record was deleted and cannot be inserted.")
        if not record.is_new():
            raise InvalidStateError(f"The {type(record).__name__} record is not new and cannot be inserted.")
        if not proceeds(record.before_insert()):
            logger.info("Insert of %r vetoed by before_insert", record)
            return False
        descriptor = record.descriptor
        values = record.store.changed(attributes)
        self._execute(build_insert(descriptor.table_name, values, self._quote))
        persisted = dict(values)
        table = descriptor.table
        for column in descriptor.primary_key:
            if record.get(column) is None and table.sequence_name is not None:
                key = self.context.connection.last_insert_id(table.sequence_name)
                record.set(column, key)
                persisted[column] = key
        record.store.mark_persisted(persisted)
        record.after_insert()
        return True

    def update(self, record, attributes: Optional[Iterable[str]] = None) -> bool:
        """UPDATE the dirty columns (restricted to ``attributes``) by old primary key.

        Nothing is sent when no column is dirty.
        """
        self._require_persisted(record, "updated")
        if not proceeds(record.before_update()):
            logger.info("Update of %r vetoed by before_update", record)
            return False
        values = record.store.changed(attributes)
        if values:
            statement = build_update(
                record.descriptor.table_name, values, self._quote, self._key_condition(record)
            )
            self._execute(statement)
            record.store.commit(values)
        record.after_update()
        return True

    def delete(self, record) -> bool:
        """DELETE the row by old primary key; True when a row was removed."""
        self._require_persisted(record, "deleted")
        if not proceeds(record.before_delete()):
            logger.info("Delete of %r vetoed by before_delete", record)
            return False
        statement = build_delete(record.descriptor.table_name, self._quote, self._key_condition(record))
        removed = self._execute(statement)
        record.store.mark_deleted()
        record.is_deleted = True
        record.after_delete()
        return removed > 0

    def update_counters(self, record, counters: Mapping[str, int]) -> bool:
        """Increment counter columns in one statement, then in memory (no re-fetch, no hooks)."""
        self._require_persisted(record, "updated")
        if not counters:
            return True
        for name in counters:
            record.check_attribute(name)
        statement = build_update_counters(
            record.descriptor.table_name, counters, self._quote, self._key_condition(record)
        )
        self._execute(statement)
        for name, delta in counters.items():
            record.set(name, (record.get(name) or 0) + delta)
        record.store.commit(counters)
        return True

    def refresh(self, record, attributes: Optional[Iterable[str]] = None) -> bool:
        """Reload values from the row at the old primary key.

        Returns False, leaving the record untouched, when the row is gone (or
        the record was never persisted). A full refresh also drops the
        related-object cache.
        """
        if record.is_new():
            return False
        descriptor = record.descriptor
        rows = (
            Query(record_class=type(record), context=self.context)
            .unscoped()
            .where(self._key_condition(record))
            .limit(1)
            .rows()
        )
        if not rows:
            return False
        row = rows[0]
        if attributes is None:
            names = descriptor.column_names
        else:
            names = tuple(attributes)
            for name in names:
                record.check_attribute(name)
        for name in names:
            record.store.set(name, row.get(name))
        if attributes is None:
            record.store.mark_persisted({name: row.get(name) for name in names})
            record.invalidate_related()
        else:
            record.store.commit(names)
        return True

    # many rows

    def update_all(self, record_class: type, values: Mapping[str, Any], condition: Any = None, params: Any = None) -> int:
        descriptor = self.context.describe(record_class)
        return self._execute(build_update(descriptor.table_name, values, self._quote, condition, params))

    def update_all_counters(
        self, record_class: type, counters: Mapping[str, int], condition: Any = None, params: Any = None
    ) -> int:
        descriptor = self.context.describe(record_class)
        return self._execute(
            build_update_counters(descriptor.table_name, counters, self._quote, condition, params)
        )

    def delete_all(self, record_class: type, condition: Any = None, params: Any = None) -> int:
        descriptor = self.context.describe(record_class)
        return self._execute(build_delete(descriptor.table_name, self._quote, condition, params))


__all__ = ["LifecycleController", "RecordState", "state_of"]
