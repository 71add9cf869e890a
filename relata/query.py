"""Fluent query over one record class.

A Query is immutable: every builder method returns a clone with one more piece
of state (``clone_query_with``). Nothing runs until a terminal method is
called (``all``, ``one``, ``first``, ``rows``, ``count``, ``exists``,
``scalar``, or iteration). Terminal methods that return records hydrate them
through the record class, apply ``index_by`` and then eager-load the ``with_``
paths in batches through the context's finder.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator, Mapping, Optional

from pydantic import BaseModel, Field

from .builder import Statement, bind_params, build_condition, build_count, build_select
from .errors import ConfigurationError
from .expressions import Expression

logger = logging.getLogger(__name__)


class Query(BaseModel):
    """SELECT over the table of ``record_class``, bound to a context."""

    model_config = {"arbitrary_types_allowed": True}

    record_class: type
    """The Record subclass this query hydrates."""
    context: Any
    """Context providing the connection, registry and finder."""
    alias_name: Optional[str] = None
    """Table alias; the table name is used when unset."""
    select_columns: list[Any] = Field(default_factory=list)
    """Select items (strings are used verbatim, Expressions are rendered); empty means ``alias.*``."""
    distinct_value: bool = False
    where_statements: list[Statement] = Field(default_factory=list)
    join_statements: list[Statement] = Field(default_factory=list)
    order_value: Optional[str] = None
    group_value: Optional[str] = None
    having_statement: Optional[Statement] = None
    limit_value: Optional[int] = None
    """Stored under this name to avoid shadowing the limit() method."""
    offset_value: Optional[int] = None
    with_paths: dict[str, Any] = Field(default_factory=dict)
    """Eager paths, each with its overrides (or None)."""
    index_column: Optional[str] = None
    sql_statement: Optional[Statement] = None
    """Verbatim statement of a ``find_by_sql`` query."""
    use_default_scope: bool = True

    def clone_query_with(self, **changes) -> Query:
        """Return a new Query with the same state except for the given overrides."""
        unknown = set(changes) - set(type(self).model_fields)
        if unknown:
            raise TypeError(f"Unknown query state: {', '.join(sorted(unknown))}")
        return self.model_copy(update=changes)

    # helpers

    @property
    def descriptor(self):
        return self.context.describe(self.record_class)

    @property
    def table_alias(self) -> str:
        return self.alias_name or self.descriptor.table_name

    def _quote(self, name: str) -> str:
        return self.context.connection.quote_identifier(name)

    def _check_not_verbatim(self, method: str) -> None:
        if self.sql_statement is not None:
            raise ConfigurationError(f"{method}() cannot modify a find_by_sql query")

    # builder methods

    def alias(self, name: str) -> Query:
        """Set the table alias used to qualify columns (``"t"`` in ``FROM "order" "t"``)."""
        return self.clone_query_with(alias_name=name)

    def select(self, *columns: str | Expression) -> Query:
        """Replace the select list. Strings are used verbatim."""
        self._check_not_verbatim("select")
        return self.clone_query_with(select_columns=list(columns))

    def distinct(self, value: bool = True) -> Query:
        return self.clone_query_with(distinct_value=value)

    def where(self, condition: Any = None, params: Any = None, **columns: Any) -> Query:
        """AND a condition to the WHERE clause.

        ``condition`` is a mapping, a raw string (with ``params`` for its ``?`` or
        ``:name`` placeholders), an Expression, or a primary-key value. Keyword
        arguments are column equalities, qualified with the table alias.

        Examples:
            where({"status": 1})
            where("total > :min", {"min": 10})
            where(col("total") > 10)
            where(status=1, customer_id=[1, 2])
        """
        self._check_not_verbatim("where")
        statements = list(self.where_statements)
        for item in (condition, columns or None):
            if item is None:
                continue
            statement = build_condition(
                item,
                self._quote,
                params=params if item is condition else None,
                primary_key=self.descriptor.primary_key,
                alias=self.table_alias,
            )
            if statement.sql:
                statements.append(statement)
        return self.clone_query_with(where_statements=statements)

    def order_by(self, order: str | Expression | None) -> Query:
        """Set ORDER BY (a raw fragment such as ``"t.name DESC, t.id"``, or an Expression)."""
        if isinstance(order, Expression):
            order = order.sql
        return self.clone_query_with(order_value=order)

    def group_by(self, group: Optional[str]) -> Query:
        return self.clone_query_with(group_value=group)

    def having(self, condition: Any, params: Any = None) -> Query:
        statement = build_condition(condition, self._quote, params=params)
        return self.clone_query_with(having_statement=statement if statement.sql else None)

    def limit(self, limit: Optional[int]) -> Query:
        """Set LIMIT to the given integer (None removes it)."""
        return self.clone_query_with(limit_value=limit)

    def offset(self, offset: Optional[int]) -> Query:
        """Set OFFSET to the given integer (None removes it)."""
        return self.clone_query_with(offset_value=offset)

    def join(
        self,
        table: str,
        on: str,
        params: Any = None,
        join_type: str = "INNER JOIN",
        alias: Optional[str] = None,
    ) -> Query:
        """Add an explicit join; ``on`` is raw SQL with optional bound ``params``."""
        self._check_not_verbatim("join")
        target = self._quote(table)
        if alias:
            target += f" {self._quote(alias)}"
        statement = bind_params(f"{join_type} {target} ON ({on})", params)
        return self.clone_query_with(join_statements=self.join_statements + [statement])

    def join_with(self, *names: str, eager: bool = False, join_type: Optional[str] = None) -> Query:
        """Join declared relations by name (for filtering or ordering on related columns).

        The relation's ``join_type``, ``alias`` and ``on`` are used; ``join_type``
        overrides the declared one. Joining a collection relation makes the
        query DISTINCT so owners are not repeated. With ``eager`` the relations
        are also loaded into the hydrated records.
        """
        self._check_not_verbatim("join_with")
        joins = list(self.join_statements)
        distinct = self.distinct_value
        query = self
        for name in names:
            relation = self.descriptor.get_relation(name)
            if join_type is not None:
                relation = relation.copy_with(join_type=join_type)
            joins.extend(self.context.finder.join_statements(self.record_class, relation, self.table_alias))
            distinct = distinct or relation.is_collection
            if eager:
                query = query.with_(name)
        return query.clone_query_with(join_statements=joins, distinct_value=distinct)

    def with_(self, *paths: str | Mapping[str, Any]) -> Query:
        """Eager-load relation paths (``"orders"``, ``"orders.items"``) after the main query.

        A mapping gives per-path overrides: ``with_({"orders": {"limit": 3}})``.
        """
        with_paths = dict(self.with_paths)
        for path in paths:
            if isinstance(path, Mapping):
                with_paths.update(path)
            else:
                with_paths.setdefault(path, None)
        return self.clone_query_with(with_paths=with_paths)

    def index_by(self, column: Optional[str]) -> Query:
        """Make ``all()`` return a dict keyed by the values of ``column``."""
        return self.clone_query_with(index_column=column)

    def scope(self, *names: str) -> Query:
        """Apply named scopes declared by the record class's ``scopes()``."""
        scopes = self.record_class.scopes()
        query = self
        for name in names:
            try:
                scope = scopes[name]
            except KeyError:
                raise ConfigurationError(
                    f"{self.record_class.__name__} has no scope named {name!r}"
                ) from None
            query = scope(query)
            if not isinstance(query, Query):
                raise ConfigurationError(f"Scope {name!r} of {self.record_class.__name__} must return a Query")
        return query

    def unscoped(self) -> Query:
        """Do not apply the record class's default scope."""
        return self.clone_query_with(use_default_scope=False)

    # SQL

    def _scoped(self) -> Query:
        if not self.use_default_scope or self.sql_statement is not None:
            return self
        query = self.record_class.default_scope(self.clone_query_with(use_default_scope=False))
        if not isinstance(query, Query):
            raise ConfigurationError(f"default_scope of {self.record_class.__name__} must return a Query")
        return query

    def _parts(self) -> dict[str, Any]:
        return dict(
            alias=self.alias_name,
            joins=self.join_statements,
            where=self.where_statements,
            group=self.group_value,
            having=self.having_statement,
        )

    @property
    def statement(self) -> Statement:
        """The SELECT statement this query runs."""
        if self.sql_statement is not None:
            return self.sql_statement
        query = self._scoped()
        return build_select(
            query.descriptor.table_name,
            query._quote,
            select=query.select_columns or None,
            distinct=query.distinct_value,
            order=query.order_value,
            limit=query.limit_value,
            offset=query.offset_value,
            unbounded_limit=query.context.connection.dialect.UNBOUNDED_LIMIT,
            **query._parts(),
        )

    @property
    def sql(self) -> str:
        return self.statement.sql

    @property
    def values(self) -> tuple[Any, ...]:
        return self.statement.params

    # terminal methods

    def rows(self) -> list[dict[str, Any]]:
        """Run the query and return raw rows, without hydration."""
        sql, params = self.statement
        return self.context.connection.query(sql, params)

    def _hydrate(self, rows: list[dict[str, Any]]) -> list:
        return [self.record_class.instantiate(self.context, row) for row in rows]

    def _eager_load(self, records: list) -> None:
        for path, overrides in self.with_paths.items():
            self.context.finder.populate(records, path, overrides)

    def all(self) -> list | dict:
        """All matching records, as a list or (with ``index_by``) a dict."""
        records = self._hydrate(self.rows())
        self._eager_load(records)
        if self.index_column is not None:
            return {record.get(self.index_column): record for record in records}
        return records

    def __iter__(self) -> Iterator:
        result = self.all()
        if isinstance(result, dict):
            return iter(result.values())
        return iter(result)

    def first(self):
        """The first matching record (LIMIT 1), or None."""
        query = self if self.sql_statement is not None else self.limit(1)
        records = query._hydrate(query.rows()[:1])
        query._eager_load(records)
        return records[0] if records else None

    def one(self):
        """The only matching record, or None; more than one match is an error."""
        query = self if self.sql_statement is not None else self.limit(2)
        records = query._hydrate(query.rows())
        if len(records) > 1:
            raise ValueError(f"Query for {self.record_class.__name__} returned more than one result")
        query._eager_load(records)
        return records[0] if records else None

    def scalar(self) -> Any:
        """First column of the first row, or None."""
        rows = self.rows()
        if not rows:
            return None
        return next(iter(rows[0].values()), None)

    def count(self) -> int:
        """Number of matching rows (ignores LIMIT, OFFSET and ORDER BY)."""
        if self.sql_statement is not None:
            inner = self.sql_statement
            statement = Statement(
                sql=f"SELECT COUNT(*) FROM ({inner.sql}) {self._quote('relata_count')}",
                params=inner.params,
            )
        else:
            query = self._scoped()
            grouped = query.group_value or query.having_statement is not None
            if query.distinct_value or grouped:
                # one row per group or distinct row, counted over a subquery
                select = query.select_columns or None
                if select is None and not query.distinct_value:
                    select = "1"
                inner = build_select(
                    query.descriptor.table_name, query._quote,
                    select=select, distinct=query.distinct_value, **query._parts(),
                )
                statement = Statement(
                    sql=f"SELECT COUNT(*) FROM ({inner.sql}) {self._quote('relata_count')}",
                    params=inner.params,
                )
            else:
                statement = build_count(query.descriptor.table_name, query._quote, **query._parts())
        rows = self.context.connection.query(*statement)
        return int(next(iter(rows[0].values()))) if rows else 0

    def exists(self) -> bool:
        if self.sql_statement is not None:
            return bool(self.rows())
        query = self.select("1").limit(1)
        return bool(query.rows())


def find_by_sql(record_class: type, context: Any, sql: str, params: Any = None) -> Query:
    """A query whose SELECT is ``sql`` verbatim (with ``params`` bound)."""
    return Query(record_class=record_class, context=context, sql_statement=bind_params(sql, params))


__all__ = ["Query", "find_by_sql"]
