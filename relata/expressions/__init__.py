"""SQL expression types for condition building.

Expressions compose with Python operators (``==``, ``<``, ``&``, ``|``, ``~``)
and expose ``.sql`` (a fragment with ``?`` placeholders) and ``.values`` (the
bound values in placeholder order). Column names are quoted; literals are
always bound, never interpolated. ``RawExpression`` is the explicit opt-in
for verbatim SQL.
"""

from typing import Optional

from ._bases import (
    ArgumentedExpression,
    Expression,
    FunctionExpression,
    NaryOperatorExpression,
    UnaryOperatorExpression,
)
from .column import ColumnExpression
from .raw import RawExpression


def col(name: str, table: Optional[str] = None) -> ColumnExpression:
    """Shortcut for a column expression; ``col("orders.total")`` is qualified."""
    if table is None and "." in name:
        table, name = name.rsplit(".", 1)
    return ColumnExpression(name=name, table=table)


__all__ = [
    "ArgumentedExpression",
    "ColumnExpression",
    "Expression",
    "FunctionExpression",
    "NaryOperatorExpression",
    "RawExpression",
    "UnaryOperatorExpression",
    "col",
]
