"""Column expression for referencing a single, optionally qualified, column."""

from typing import Optional

from ..utils.quoting import quote_identifier
from ._bases import Expression


class ColumnExpression(Expression):
    """Reference to a column, optionally qualified by a table alias.

    Has no placeholders, so ``values`` is ``()``.
    """

    name: str
    """Column name (e.g. ``id``, ``customer_id``)."""
    table: Optional[str] = None
    """Table name or alias qualifying the column."""

    @property
    def sql(self) -> str:
        """Quoted, qualified column (e.g. ``"orders"."customer_id"``)."""
        if self.table:
            return quote_identifier(f"{self.table}.{self.name}")
        return quote_identifier(self.name)

    def __repr__(self):
        return f"ColumnExpression({self.sql})"
