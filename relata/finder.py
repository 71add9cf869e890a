"""Relation resolution, lazily for one owner or in batches for many.

``resolve(owner, name)`` runs one query for one owner and caches the result on
it. ``populate(owners, path)`` loads a relation path for a whole batch: one
query per relation level, whose rows are partitioned back to the owners by
key, so loading ``orders`` for N customers costs one query and not N.

Both go through ``_load``, which dispatches on the relation kind:

* BelongsTo: key columns on the owner, matched against the target's primary key;
* HasOne / HasMany: key columns on the target, matched against the owner's key;
* ManyToMany: an INNER JOIN through the junction table, whose owner-key columns
  are selected under private aliases and removed before hydration;
* Stat: one grouped aggregate query, one scalar per owner;
* ``through``: the bridge relation is loaded on the owners first and the target
  query is keyed by the bridge records.

Positional ``params`` of a relation bind to its ``condition`` (or to ``on`` when
there is no condition); named params bind wherever their placeholder appears.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Iterable, Optional

from .builder import Statement, bind_params, build_key_set_condition
from .errors import ConfigurationError
from .query import Query
from .record import Record
from .relations import (
    BelongsTo,
    HasMany,
    HasOne,
    ManyToMany,
    Overrides,
    Relation,
    Stat,
    apply_overrides,
    key_pairs,
    parse_junction,
)
from .utils.record_lookup import find_record_class

logger = logging.getLogger(__name__)

OWNER_KEY_ALIAS = "_relata_owner_{}"
STAT_ALIAS = "_relata_stat"


def _key(record: Record, columns: Iterable[str]) -> Optional[tuple]:
    """Key tuple of ``record`` over ``columns``, or None if any part is NULL."""
    key = tuple(record.get(column) for column in columns)
    if any(value is None for value in key):
        return None
    return key


def _distinct(keys: Iterable[Optional[tuple]]) -> list[tuple]:
    return list(dict.fromkeys(key for key in keys if key is not None))


def _records_of(value: Any) -> list[Record]:
    """Records held by a related-cache entry (an instance, a list, an index dict)."""
    if value is None:
        return []
    if isinstance(value, Record):
        return [value]
    if isinstance(value, dict):
        value = value.values()
    if isinstance(value, (list, tuple)) or hasattr(value, "__iter__"):
        return [item for item in value if isinstance(item, Record)]
    return []


def _unique(records: Iterable[Optional[Record]]) -> list[Record]:
    seen = set()
    result = []
    for record in records:
        if record is not None and id(record) not in seen:
            seen.add(id(record))
            result.append(record)
    return result


def _params_for(relation: Relation, fragment: str) -> Any:
    if isinstance(relation.params, dict):
        return relation.params
    if fragment == "condition" or (fragment == "on" and not relation.condition):
        return relation.params or None
    return None


class Finder:
    """Resolves declared relations through a context."""

    def __init__(self, context):
        self.context = context
        self._local = threading.local()

    def _quote(self, name: str) -> str:
        return self.context.connection.quote_identifier(name)

    @contextmanager
    def _loading(self, record_class: type, name: str):
        """Track the relations being loaded on this thread; a repeated one is a cycle."""
        chain = getattr(self._local, "chain", None)
        if chain is None:
            chain = self._local.chain = []
        edge = (record_class, name)
        if edge in chain:
            path = " -> ".join(f"{cls.__name__}.{relation}" for cls, relation in chain + [edge])
            raise ConfigurationError(f"Cyclic eager loading: {path}")
        chain.append(edge)
        try:
            yield
        finally:
            chain.pop()

    # target and key checks

    def target_class(self, relation: Relation) -> type[Record]:
        """The record class a relation points to (looked up by name if needed)."""
        target = relation.target
        if isinstance(target, type) and issubclass(target, Record):
            return target
        if isinstance(target, str):
            try:
                found = find_record_class(target)
            except ValueError as error:
                raise ConfigurationError(f"Relation {relation.name!r}: {error}") from error
            if found is None:
                raise ConfigurationError(f"Relation {relation.name!r} targets unknown record class {target!r}")
            return found
        raise ConfigurationError(f"Relation {relation.name!r} has no valid target (got {target!r})")

    @staticmethod
    def _check_columns(descriptor, columns: Iterable[str], relation: Relation) -> None:
        missing = [column for column in columns if column not in descriptor.column_names]
        if missing:
            raise ConfigurationError(
                f"Relation {relation.name!r} uses column(s) {', '.join(missing)} "
                f"not found in table {descriptor.table_name!r}"
            )

    def _pairs(self, relation: Relation, source, target, key_on_source: bool) -> tuple[tuple[str, str], ...]:
        pairs = key_pairs(relation, source.primary_key, target.primary_key, key_on_source)
        self._check_columns(target, [column for column, _ in pairs], relation)
        self._check_columns(source, [column for _, column in pairs], relation)
        return pairs

    # public API

    def resolve(self, owner: Record, name: str, overrides: Overrides = None) -> Any:
        """Resolve relation ``name`` for one owner.

        Without overrides the owner's cached value is returned when present,
        and a freshly loaded value is cached. With overrides the result is
        neither read from nor written to the cache.
        """
        if overrides is None and owner.has_related(name):
            return owner.cached_related(name)
        descriptor = self.context.describe(type(owner))
        relation = apply_overrides(descriptor.get_relation(name), overrides)
        logger.debug("Lazy loading %s.%s", type(owner).__name__, name)
        with self._loading(type(owner), name):
            value = self._load(descriptor, relation, [owner], batched=False)[0]
        if overrides is None:
            owner.set_related(name, value)
        return value

    def populate(self, owners: Iterable[Optional[Record]], path: str, overrides: Overrides = None) -> None:
        """Eager-load a (dotted) relation path for a batch of owners.

        Intermediate levels already cached on an owner are reused. ``overrides``
        apply to the last level of the path.
        """
        owners = _unique(owners)
        if not owners:
            return
        name, _, rest = path.partition(".")
        if not rest:
            self._populate_level(owners, name, overrides)
            return
        missing = [owner for owner in owners if not owner.has_related(name)]
        if missing:
            self._populate_level(missing, name, None)
        children = [child for owner in owners for child in _records_of(owner.cached_related(name))]
        self.populate(children, rest, overrides)

    def _populate_level(self, owners: list[Record], name: str, overrides: Overrides) -> None:
        by_class: dict[type, list[Record]] = defaultdict(list)
        for owner in owners:
            by_class[type(owner)].append(owner)
        for record_class, group in by_class.items():
            descriptor = self.context.describe(record_class)
            relation = apply_overrides(descriptor.get_relation(name), overrides)
            logger.debug("Eager loading %s.%s for %d owner(s)", record_class.__name__, name, len(group))
            with self._loading(record_class, name):
                values = self._load(descriptor, relation, group, batched=True)
            for owner, value in zip(group, values):
                owner.set_related(name, value)

    # loading

    def _load(self, descriptor, relation: Relation, owners: list[Record], batched: bool) -> list[Any]:
        """One value per owner, in order."""
        if isinstance(relation, Stat):
            return self._load_stat(descriptor, relation, owners)
        if isinstance(relation, ManyToMany):
            return self._load_many_to_many(descriptor, relation, owners, batched)
        if isinstance(relation, (HasOne, HasMany)) and relation.through:
            return self._load_through(descriptor, relation, owners, batched)
        if isinstance(relation, (BelongsTo, HasOne, HasMany)):
            target_class = self.target_class(relation)
            target = self.context.describe(target_class)
            pairs = self._pairs(relation, descriptor, target, key_on_source=isinstance(relation, BelongsTo))
            keys = [_key(owner, [source for _, source in pairs]) for owner in owners]
            groups = self._query_by_keys(relation, target_class, [column for column, _ in pairs], keys, batched)
            return [self._shape(relation, groups.get(key, []) if key else [], batched) for key in keys]
        raise ConfigurationError(f"Unsupported relation kind {relation.kind!r} for {relation.name!r}")

    def _target_query(self, relation: Relation, target_class: type[Record], ordered: bool = True) -> Query:
        query = Query(record_class=target_class, context=self.context).alias(relation.table_alias)
        if relation.condition:
            query = query.where(relation.condition, _params_for(relation, "condition"))
        if relation.on:
            query = query.where(relation.on, _params_for(relation, "on"))
        if ordered and relation.order:
            query = query.order_by(relation.order)
        group = getattr(relation, "group", None)
        if group and not isinstance(relation, Stat):
            query = query.group_by(group)
        having = getattr(relation, "having", None)
        if having:
            query = query.having(having, _params_for(relation, "having"))
        if relation.scopes:
            query = query.scope(*relation.scopes)
        return query

    def _query_by_keys(
        self,
        relation: Relation,
        target_class: type[Record],
        target_columns: list[str],
        keys: list[Optional[tuple]],
        batched: bool,
    ) -> dict[tuple, list[Record]]:
        """Load target records whose ``target_columns`` match any of ``keys``, grouped by key."""
        distinct = _distinct(keys)
        if not distinct:
            return {}
        alias = relation.table_alias
        query = self._target_query(relation, target_class)
        if relation.select:
            query = query.select(relation.select)
        query = query.where(
            build_key_set_condition([f"{alias}.{column}" for column in target_columns], distinct, self._quote)
        )
        if not batched:
            query = query.limit(getattr(relation, "limit", None)).offset(getattr(relation, "offset", None))
        records = query.all()
        groups: dict[tuple, list[Record]] = defaultdict(list)
        for record in records:
            groups[tuple(record.get(column) for column in target_columns)].append(record)
        self._load_nested(relation, records)
        return groups

    def _load_nested(self, relation: Relation, records: list[Record]) -> None:
        for path in relation.with_:
            self.populate(records, path)

    @staticmethod
    def _shape(relation: Relation, records: list[Record], batched: bool) -> Any:
        """Turn one owner's records into the relation's value."""
        if batched:
            offset = getattr(relation, "offset", None) or 0
            limit = getattr(relation, "limit", None)
            records = records[offset:]
            if limit is not None:
                records = records[:limit]
        if not relation.is_collection:
            return records[0] if records else None
        index = getattr(relation, "index", None)
        if index:
            return {record.get(index): record for record in records}
        return list(records)

    def _load_many_to_many(self, descriptor, relation: ManyToMany, owners: list[Record], batched: bool) -> list[Any]:
        target_class = self.target_class(relation)
        target = self.context.describe(target_class)
        junction = parse_junction(relation, relation.junction, descriptor.primary_key, target.primary_key)
        self._check_columns(target, [column for _, column in junction.target_pairs], relation)
        keys = [_key(owner, [column for _, column in junction.owner_pairs]) for owner in owners]
        distinct = _distinct(keys)
        if not distinct:
            return [self._shape(relation, [], batched) for _ in owners]

        quote = self._quote
        alias = relation.table_alias
        on = " AND ".join(
            f"{quote(f'{junction.table}.{junction_column}')} = {quote(f'{alias}.{column}')}"
            for junction_column, column in junction.target_pairs
        )
        owner_aliases = [OWNER_KEY_ALIAS.format(i) for i in range(len(junction.owner_pairs))]
        select = [relation.select or quote(f"{alias}.*")] + [
            f"{quote(f'{junction.table}.{junction_column}')} AS {quote(owner_alias)}"
            for (junction_column, _), owner_alias in zip(junction.owner_pairs, owner_aliases)
        ]
        query = self._target_query(relation, target_class).join(junction.table, on)
        query = query.select(*select).where(
            build_key_set_condition(
                [f"{junction.table}.{junction_column}" for junction_column, _ in junction.owner_pairs],
                distinct,
                quote,
            )
        )
        if not batched:
            query = query.limit(relation.limit).offset(relation.offset)

        groups: dict[tuple, list[Record]] = defaultdict(list)
        records = []
        for row in query.rows():
            key = tuple(row.pop(owner_alias) for owner_alias in owner_aliases)
            record = target_class.instantiate(self.context, row)
            groups[key].append(record)
            records.append(record)
        self._load_nested(relation, records)
        return [self._shape(relation, groups.get(key, []) if key else [], batched) for key in keys]

    def _load_through(self, descriptor, relation: HasOne | HasMany, owners: list[Record], batched: bool) -> list[Any]:
        bridge_relation = descriptor.get_relation(relation.through)
        if isinstance(bridge_relation, Stat):
            raise ConfigurationError(f"Relation {relation.name!r} cannot go through Stat relation {relation.through!r}")
        if batched:
            missing = [owner for owner in owners if not owner.has_related(relation.through)]
            if missing:
                self._populate_level(missing, relation.through, None)
            bridge_values = [owner.cached_related(relation.through) for owner in owners]
        else:
            bridge_values = [self.resolve(owner, relation.through) for owner in owners]
        bridge_lists = [_records_of(value) for value in bridge_values]
        bridges = _unique(bridge for bridge_list in bridge_lists for bridge in bridge_list)
        if not bridges:
            return [self._shape(relation, [], batched) for _ in owners]

        target_class = self.target_class(relation)
        target = self.context.describe(target_class)
        bridge = self.context.describe(type(bridges[0]))
        pairs = self._pairs(relation, bridge, target, key_on_source=False)
        source_columns = [column for _, column in pairs]
        groups = self._query_by_keys(
            relation,
            target_class,
            [column for column, _ in pairs],
            [_key(record, source_columns) for record in bridges],
            batched,
        )
        values = []
        for bridge_list in bridge_lists:
            records = []
            for record in bridge_list:
                key = _key(record, source_columns)
                if key is not None:
                    records.extend(groups.get(key, []))
            values.append(self._shape(relation, records, batched))
        return values

    def _load_stat(self, descriptor, relation: Stat, owners: list[Record]) -> list[Any]:
        target_class = self.target_class(relation)
        target = self.context.describe(target_class)
        quote = self._quote
        alias = relation.table_alias
        query = self._target_query(relation, target_class, ordered=False)
        if relation.junction:
            junction = parse_junction(relation, relation.junction, descriptor.primary_key, target.primary_key)
            self._check_columns(target, [column for _, column in junction.target_pairs], relation)
            on = " AND ".join(
                f"{quote(f'{junction.table}.{junction_column}')} = {quote(f'{alias}.{column}')}"
                for junction_column, column in junction.target_pairs
            )
            query = query.join(junction.table, on)
            source_columns = [column for _, column in junction.owner_pairs]
            key_columns = [f"{junction.table}.{junction_column}" for junction_column, _ in junction.owner_pairs]
        else:
            pairs = self._pairs(relation, descriptor, target, key_on_source=False)
            source_columns = [column for _, column in pairs]
            key_columns = [f"{alias}.{column}" for column, _ in pairs]

        keys = [_key(owner, source_columns) for owner in owners]
        distinct = _distinct(keys)
        if not distinct:
            return [relation.default_value for _ in owners]
        owner_aliases = [OWNER_KEY_ALIAS.format(i) for i in range(len(key_columns))]
        select = [
            f"{quote(column)} AS {quote(owner_alias)}" for column, owner_alias in zip(key_columns, owner_aliases)
        ] + [f"{relation.select} AS {quote(STAT_ALIAS)}"]
        group = ", ".join(quote(column) for column in key_columns)
        if relation.group:
            group += f", {relation.group}"
        query = (
            query.select(*select)
            .where(build_key_set_condition(key_columns, distinct, quote))
            .group_by(group)
        )
        values = {}
        for row in query.rows():
            key = tuple(row[owner_alias] for owner_alias in owner_aliases)
            values.setdefault(key, row[STAT_ALIAS])
        return [values.get(key, relation.default_value) if key else relation.default_value for key in keys]

    # joins

    def join_statements(self, owner_class: type[Record], relation: Relation, owner_alias: str) -> list[Statement]:
        """JOIN fragments adding ``relation``'s table (aliased) to a query over ``owner_class``."""
        if isinstance(relation, Stat):
            raise ConfigurationError(f"Stat relation {relation.name!r} cannot be joined")
        quote = self._quote
        descriptor = self.context.describe(owner_class)
        target_class = self.target_class(relation)
        target = self.context.describe(target_class)
        alias = relation.table_alias
        statements = []

        if isinstance(relation, ManyToMany):
            junction = parse_junction(relation, relation.junction, descriptor.primary_key, target.primary_key)
            junction_on = " AND ".join(
                f"{quote(f'{junction.table}.{junction_column}')} = {quote(f'{owner_alias}.{column}')}"
                for junction_column, column in junction.owner_pairs
            )
            statements.append(Statement(sql=f"{relation.join_type} {quote(junction.table)} ON {junction_on}"))
            conditions = [
                f"{quote(f'{alias}.{column}')} = {quote(f'{junction.table}.{junction_column}')}"
                for junction_column, column in junction.target_pairs
            ]
        else:
            source, source_alias = descriptor, owner_alias
            if isinstance(relation, (HasOne, HasMany)) and relation.through:
                bridge_relation = descriptor.get_relation(relation.through)
                statements.extend(self.join_statements(owner_class, bridge_relation, owner_alias))
                source = self.context.describe(self.target_class(bridge_relation))
                source_alias = bridge_relation.table_alias
            pairs = self._pairs(relation, source, target, key_on_source=isinstance(relation, BelongsTo))
            conditions = [
                f"{quote(f'{alias}.{target_column}')} = {quote(f'{source_alias}.{source_column}')}"
                for target_column, source_column in pairs
            ]
        on = " AND ".join(conditions)
        params = None
        if relation.on:
            on += f" AND ({relation.on})"
            params = _params_for(relation, "on")
        statements.append(
            bind_params(f"{relation.join_type} {quote(target.table_name)} {quote(alias)} ON {on}", params)
        )
        return statements


__all__ = ["Finder", "OWNER_KEY_ALIAS", "STAT_ALIAS"]
