"""Raw SQL expression, for callers who explicitly opt into unquoted SQL."""

from typing import Any, Tuple

from pydantic import Field as PydanticField

from ._bases import Expression


class RawExpression(Expression):
    """SQL fragment inserted verbatim, with its own bound values.

    ``RawExpression("NOW()")`` or ``RawExpression("price * ?", (1.2,))``.
    """

    text: str
    params: Tuple[Any, ...] = PydanticField(default_factory=tuple)

    def __init__(self, text: str, params: Tuple[Any, ...] = (), **kwargs):
        super().__init__(text=text, params=tuple(params), **kwargs)

    @property
    def sql(self) -> str:
        return self.text

    @property
    def values(self) -> tuple[Any, ...]:
        return self.params
