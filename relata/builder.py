"""Statement construction: SQL text with ``?`` placeholders plus ordered parameters.

Nothing here executes anything. Identifiers are quoted through the ``quote``
callable supplied by the caller (the connection's ``quote_identifier``); every
scalar value is bound as a parameter. Raw SQL only enters through
``RawExpression`` values or raw condition strings, which callers opt into.

Conditions accepted by ``build_condition``:

* a mapping ``{column: value}``, ANDed equalities (``None`` gives ``IS NULL``,
  a list / tuple / set gives ``IN``, an Expression is compared as SQL);
* a raw string with positional ``?`` or named ``:name`` placeholders;
* a prebuilt ``Expression``;
* a scalar or tuple primary-key value, when ``primary_key`` is given.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .errors import ConfigurationError
from .expressions import Expression, FunctionExpression, RawExpression

Quote = Callable[[str], str]

_NAMED_PARAMETER = re.compile(r"(?<![:\w]):([A-Za-z_]\w*)")


class Statement(BaseModel):
    """A statement template and the parameters for its placeholders, in order."""

    model_config = ConfigDict(frozen=True)

    sql: str
    params: tuple[Any, ...] = Field(default_factory=tuple)

    def __iter__(self):
        # allows ``sql, params = statement``
        return iter((self.sql, self.params))

    @classmethod
    def join(cls, fragments: Iterable["Statement"], separator: str) -> "Statement":
        fragments = [fragment for fragment in fragments if fragment.sql]
        return cls(
            sql=separator.join(fragment.sql for fragment in fragments),
            params=sum((fragment.params for fragment in fragments), ()),
        )


def bind_params(sql: str, params: Any = None) -> Statement:
    """Attach ``params`` to a raw fragment, rewriting ``:name`` placeholders to ``?``.

    ``params`` is a sequence for positional placeholders or a mapping for named
    ones; a named placeholder may appear several times.
    """
    if params is None:
        return Statement(sql=sql)
    if isinstance(params, Mapping):
        ordered = []

        def substitute(match: re.Match) -> str:
            name = match.group(1)
            if name not in params:
                raise ConfigurationError(f"No value bound for parameter :{name} in {sql!r}")
            ordered.append(params[name])
            return "?"

        sql = _NAMED_PARAMETER.sub(substitute, sql)
        return Statement(sql=sql, params=tuple(ordered))
    if isinstance(params, (str, bytes)) or not isinstance(params, Sequence):
        params = (params,)
    return Statement(sql=sql, params=tuple(params))


def qualify(column: str, alias: Optional[str]) -> str:
    """Prefix ``column`` with ``alias`` unless it already is qualified."""
    if alias is None or "." in column:
        return column
    return f"{alias}.{column}"


def _value_sql(value: Any) -> Statement:
    if isinstance(value, Expression):
        return Statement(sql=value.sql, params=value.values)
    return Statement(sql="?", params=(value,))


def _mapping_condition(condition: Mapping[str, Any], quote: Quote, alias: Optional[str]) -> Statement:
    parts = []
    for column, value in condition.items():
        quoted = quote(qualify(column, alias))
        if value is None:
            parts.append(Statement(sql=f"{quoted} IS NULL"))
        elif isinstance(value, (list, tuple, set, frozenset)):
            values = tuple(value)
            if not values:
                parts.append(Statement(sql="1 = 0"))
            else:
                placeholders = ", ".join("?" for _ in values)
                parts.append(Statement(sql=f"{quoted} IN ({placeholders})", params=values))
        else:
            value_sql = _value_sql(value)
            parts.append(Statement(sql=f"{quoted} = {value_sql.sql}", params=value_sql.params))
    return Statement.join(parts, " AND ")


def build_condition(
    condition: Any,
    quote: Quote,
    params: Any = None,
    primary_key: Sequence[str] = (),
    alias: Optional[str] = None,
) -> Statement:
    """Turn any accepted condition form into a Statement (empty sql for no condition)."""
    if condition is None or (isinstance(condition, (str, Mapping)) and not condition):
        return Statement(sql="")
    if isinstance(condition, Statement):
        return condition
    if isinstance(condition, Expression):
        return Statement(sql=condition.sql, params=condition.values)
    if isinstance(condition, Mapping):
        return _mapping_condition(condition, quote, alias)
    if isinstance(condition, str):
        return bind_params(condition, params)
    # scalar or tuple primary key value
    if not primary_key:
        raise ConfigurationError("Cannot query by primary key value: the table has no primary key")
    values = condition if isinstance(condition, tuple) else (condition,)
    if len(values) != len(primary_key):
        raise ConfigurationError(
            f"Primary key has {len(primary_key)} column(s) ({', '.join(primary_key)}), "
            f"got {len(values)} value(s)"
        )
    return _mapping_condition(dict(zip(primary_key, values)), quote, alias)


def build_key_set_condition(
    columns: Sequence[str],
    keys: Sequence[tuple],
    quote: Quote,
) -> Statement:
    """Match any of ``keys`` (value tuples) on ``columns``.

    One column gives ``col IN (?, ...)``; composite keys give an OR of ANDed
    equalities. No keys gives a condition that matches nothing.
    """
    if not keys:
        return Statement(sql="1 = 0")
    quoted = [quote(column) for column in columns]
    if len(columns) == 1:
        placeholders = ", ".join("?" for _ in keys)
        return Statement(
            sql=f"{quoted[0]} IN ({placeholders})",
            params=tuple(key[0] for key in keys),
        )
    single = "(" + " AND ".join(f"{column} = ?" for column in quoted) + ")"
    return Statement(
        sql="(" + " OR ".join(single for _ in keys) + ")",
        params=tuple(value for key in keys for value in key),
    )


def build_select(
    table: str,
    quote: Quote,
    alias: Optional[str] = None,
    select: Any = None,
    distinct: bool = False,
    joins: Sequence[Statement] = (),
    where: Sequence[Statement] = (),
    group: Optional[str] = None,
    having: Optional[Statement] = None,
    order: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
    unbounded_limit: Optional[str] = None,
) -> Statement:
    """Compose a SELECT; parameters follow the textual order of the fragments.

    ``unbounded_limit`` is the LIMIT value meaning "no limit" for engines that
    only accept OFFSET after a LIMIT (``-1`` on SQLite).
    """
    name = alias or table
    if select is None:
        select = [quote(f"{name}.*")]
    elif isinstance(select, (str, Expression)):
        select = [select]
    items = [_value_sql(item) if isinstance(item, Expression) else Statement(sql=item) for item in select]
    select_sql = ", ".join(item.sql for item in items)
    select_params = sum((item.params for item in items), ())
    sql = "SELECT " + ("DISTINCT " if distinct else "") + select_sql
    sql += f"\nFROM {quote(table)}"
    if alias and alias != table:
        sql += f" {quote(alias)}"
    params = tuple(select_params)
    for join in joins:
        sql += "\n" + join.sql
        params += join.params
    conditions = [condition for condition in where if condition.sql]
    if conditions:
        sql += "\nWHERE " + " AND ".join(f"({condition.sql})" for condition in conditions)
        params += sum((condition.params for condition in conditions), ())
    if group:
        sql += f"\nGROUP BY {group}"
    if having is not None and having.sql:
        sql += f"\nHAVING {having.sql}"
        params += having.params
    if order:
        sql += f"\nORDER BY {order}"
    if limit is not None:
        sql += "\nLIMIT ?"
        params += (int(limit),)
    if offset is not None:
        if limit is None and unbounded_limit is not None:
            sql += f"\nLIMIT {unbounded_limit}"
        sql += "\nOFFSET ?"
        params += (int(offset),)
    return Statement(sql=sql, params=params)


def build_count(table: str, quote: Quote, alias: Optional[str] = None, **parts) -> Statement:
    """SELECT COUNT(*) with the same FROM / JOIN / WHERE parts as ``build_select``."""
    count = FunctionExpression(symbol="COUNT", arguments=(RawExpression("*"),))
    return build_select(table, quote, alias=alias, select=count, **parts)


def build_insert(table: str, values: Mapping[str, Any], quote: Quote) -> Statement:
    """INSERT of ``values``; ``DEFAULT VALUES`` when there are none."""
    if not values:
        return Statement(sql=f"INSERT INTO {quote(table)} DEFAULT VALUES")
    columns = ", ".join(quote(column) for column in values)
    fragments = [_value_sql(value) for value in values.values()]
    return Statement(
        sql=f"INSERT INTO {quote(table)} ({columns})\nVALUES ({', '.join(f.sql for f in fragments)})",
        params=sum((fragment.params for fragment in fragments), ()),
    )


def _assignments(values: Mapping[str, Any], quote: Quote) -> Statement:
    parts = []
    for column, value in values.items():
        fragment = _value_sql(value)
        parts.append(Statement(sql=f"{quote(column)} = {fragment.sql}", params=fragment.params))
    return Statement.join(parts, ", ")


def build_update(
    table: str,
    values: Mapping[str, Any],
    quote: Quote,
    condition: Any = None,
    params: Any = None,
) -> Statement:
    """UPDATE ``values`` on rows matching ``condition`` (every row without one)."""
    if not values:
        raise ConfigurationError(f"Nothing to update in {table!r}")
    assignments = _assignments(values, quote)
    where = build_condition(condition, quote, params)
    sql = f"UPDATE {quote(table)}\nSET {assignments.sql}"
    if where.sql:
        sql += f"\nWHERE {where.sql}"
    return Statement(sql=sql, params=assignments.params + where.params)


def counter_expression(column: str, delta: int, quote: Quote) -> RawExpression:
    """``col + ?`` for a positive delta, ``col - ?`` (absolute value bound) for a negative one."""
    quoted = quote(column)
    delta = int(delta)
    if delta >= 0:
        return RawExpression(f"{quoted} + ?", (delta,))
    return RawExpression(f"{quoted} - ?", (-delta,))


def build_update_counters(
    table: str,
    counters: Mapping[str, int],
    quote: Quote,
    condition: Any = None,
    params: Any = None,
) -> Statement:
    """One UPDATE incrementing each counter column by its delta."""
    values = {column: counter_expression(column, delta, quote) for column, delta in counters.items()}
    return build_update(table, values, quote, condition, params)


def build_delete(table: str, quote: Quote, condition: Any = None, params: Any = None) -> Statement:
    """DELETE rows matching ``condition`` (every row without one)."""
    where = build_condition(condition, quote, params)
    sql = f"DELETE FROM {quote(table)}"
    if where.sql:
        sql += f"\nWHERE {where.sql}"
    return Statement(sql=sql, params=where.params)


__all__ = [
    "Statement",
    "bind_params",
    "build_condition",
    "build_count",
    "build_delete",
    "build_insert",
    "build_key_set_condition",
    "build_select",
    "build_update",
    "build_update_counters",
    "counter_expression",
    "qualify",
]
