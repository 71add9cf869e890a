"""Expression nodes: the base type, function calls and operators."""

from __future__ import annotations
from typing import Any, Tuple

from pydantic import BaseModel, Field as PydanticField


class Expression(BaseModel):
    """Base type for all SQL expression nodes.

    Subclasses must implement the ``sql`` property. The default ``values``
    is an empty tuple; expression types that contain literals override it
    to return the bound values in the same order as ``?`` placeholders in ``sql``.
    """

    model_config = {"arbitrary_types_allowed": True}

    @property
    def sql(self) -> str:
        """SQL fragment for this expression, with ``?`` for bound parameters."""
        raise NotImplementedError("Subclasses must implement `sql` property")

    @property
    def values(self) -> tuple[Any, ...]:
        """Bound values for placeholders in ``sql``, in order."""
        return ()

    def _operator(self, symbol: str, *others: Any) -> NaryOperatorExpression:
        return NaryOperatorExpression(symbol=symbol, arguments=(self, *others))

    def _postfix(self, symbol: str) -> UnaryOperatorExpression:
        return UnaryOperatorExpression(symbol=symbol, arguments=(self,), postfix=True)

    def in_(self, other: Any):
        """Build an IN expression (e.g. ``col("id").in_([1, 2, 3])``)."""
        return self._operator("IN", tuple(other))

    def not_in(self, other: Any):
        return self._operator("NOT IN", tuple(other))

    def is_null(self):
        return self._postfix("IS NULL")

    def is_not_null(self):
        return self._postfix("IS NOT NULL")

    def between(self, low: Any, high: Any):
        """Inclusive range: (expr >= low) AND (expr <= high)."""
        return (self >= low) & (self <= high)

    def like(self, pattern: str):
        """Build a LIKE expression; the pattern is bound as given."""
        return self._operator("LIKE", pattern)

    def __invert__(self):
        return UnaryOperatorExpression(symbol="NOT", arguments=(self,))

    def __and__(self, other: Any):
        return self._operator("AND", other)

    def __or__(self, other: Any):
        return self._operator("OR", other)

    def __add__(self, other: Any):
        return self._operator("+", other)

    def __sub__(self, other: Any):
        return self._operator("-", other)

    def __mul__(self, other: Any):
        return self._operator("*", other)

    def __eq__(self, other: Any):
        return self._operator("=", other)

    def __ne__(self, other: Any):
        return self._operator("!=", other)

    def __lt__(self, other: Any):
        return self._operator("<", other)

    def __le__(self, other: Any):
        return self._operator("<=", other)

    def __gt__(self, other: Any):
        return self._operator(">", other)

    def __ge__(self, other: Any):
        return self._operator(">=", other)

    __hash__ = object.__hash__


class ArgumentedExpression(Expression):
    """Base for expressions that have a symbol and a tuple of arguments.

    ``values`` is the concatenation of literal argument values; nested expressions
    are recursed into. A tuple argument renders as a parenthesized placeholder list,
    and a record binds its primary key.
    """

    symbol: str
    arguments: Tuple[Any, ...] = PydanticField(default_factory=tuple)

    @staticmethod
    def _argument_to_sql(argument: Any) -> str:
        if isinstance(argument, Expression):
            return argument.sql
        if isinstance(argument, tuple):
            if not argument:
                return "(NULL)"
            return "(" + ", ".join(map(ArgumentedExpression._argument_to_sql, argument)) + ")"
        return "?"

    @staticmethod
    def _argument_to_values(argument: Any) -> tuple[Any, ...]:
        if isinstance(argument, Expression):
            return argument.values
        if isinstance(argument, tuple):
            return sum(map(ArgumentedExpression._argument_to_values, argument), ())
        if not isinstance(argument, type) and hasattr(argument, "old_primary_key"):
            return (argument.primary_key(),)
        return (argument,)

    @property
    def values(self) -> tuple[Any, ...]:
        return sum(map(self._argument_to_values, self.arguments), ())


class FunctionExpression(ArgumentedExpression):
    """``symbol(args...)``, e.g. ``COUNT(*)`` or ``LOWER(name)``."""

    @property
    def sql(self) -> str:
        if not self.symbol:
            raise ValueError("FunctionExpression must have a symbol")
        return f"{self.symbol}({', '.join(map(self._argument_to_sql, self.arguments))})"


class NaryOperatorExpression(ArgumentedExpression):
    """Infix operator over one or more arguments, parenthesized: ``(a = ?)``, ``(x AND y AND z)``."""

    @property
    def sql(self) -> str:
        if not self.symbol:
            raise ValueError("NaryOperatorExpression must have a symbol")
        if not self.arguments:
            raise ValueError("NaryOperatorExpression must have at least one argument")
        return "(" + f" {self.symbol} ".join(map(self._argument_to_sql, self.arguments)) + ")"


class UnaryOperatorExpression(ArgumentedExpression):
    """Prefix (``NOT x``) or postfix (``x IS NULL``) operator."""

    postfix: bool = False

    @property
    def sql(self) -> str:
        argument = self._argument_to_sql(self.arguments[0])
        return f"{argument} {self.symbol}" if self.postfix else f"{self.symbol} {argument}"
