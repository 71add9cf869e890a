"""Rule validation: validators declared by a record class's ``rules()``.

Failures are collected on the record (``record.errors``) rather than raised.
Messages may use the ``{attribute}`` placeholder, plus ``{min}``, ``{max}``,
``{true}`` and ``{false}`` where the validator defines them.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def is_empty(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, (list, tuple, dict, set)) and not value)


def format_message(message: str, **placeholders: Any) -> str:
    for name, value in placeholders.items():
        message = message.replace("{" + name + "}", str(value))
    return message


class Validator(BaseModel, ABC):
    """Checks one or more attributes of a record."""

    model_config = ConfigDict(frozen=True)

    attributes: tuple[str, ...]
    message: Optional[str] = None
    skip_on_empty: bool = True

    @field_validator("attributes", mode="before")
    @classmethod
    def _split_attributes(cls, value: Union[str, Iterable[str]]):
        if isinstance(value, str):
            value = [name.strip() for name in value.split(",") if name.strip()]
        return tuple(value)

    def validate_attributes(self, record, names: Optional[Iterable[str]] = None) -> None:
        """Validate this validator's attributes (restricted to ``names`` when given)."""
        wanted = None if names is None else set(names)
        for attribute in self.attributes:
            if wanted is not None and attribute not in wanted:
                continue
            value = record.get(attribute)
            if self.skip_on_empty and is_empty(value):
                continue
            self.validate_attribute(record, attribute, value)

    def validate_attribute(self, record, attribute: str, value: Any) -> None:
        if not self.validate_value(value):
            self.add_error(record, attribute, self.message or "{attribute} is invalid.")

    @abstractmethod
    def validate_value(self, value: Any) -> bool:
        """True when ``value`` passes this validator."""
        ...  # pylint: disable=unnecessary-ellipsis

    @staticmethod
    def add_error(record, attribute: str, message: str, **placeholders: Any) -> None:
        record.add_error(attribute, format_message(message, attribute=attribute, **placeholders))


class RequiredValidator(Validator):
    """The attribute must be set to a non-empty value."""

    skip_on_empty: bool = False

    def validate_value(self, value: Any) -> bool:
        return not is_empty(value) and not (isinstance(value, str) and not value.strip())

    def validate_attribute(self, record, attribute: str, value: Any) -> None:
        if not self.validate_value(value):
            self.add_error(record, attribute, self.message or "{attribute} cannot be blank.")


class NumberValidator(Validator):
    """The attribute must be a number (or an integer), optionally within [min, max]."""

    integer_only: bool = False
    min: Optional[float] = None
    max: Optional[float] = None
    too_small: Optional[str] = None
    too_big: Optional[str] = None
    integer_pattern: str = r"^\s*[+-]?\d+\s*$"
    number_pattern: str = r"^\s*[-+]?[0-9]*\.?[0-9]+([eE][-+]?[0-9]+)?\s*$"

    @property
    def pattern(self) -> str:
        return self.integer_pattern if self.integer_only else self.number_pattern

    def _matches(self, value: Any) -> bool:
        if isinstance(value, bool):
            value = int(value)
        return re.match(self.pattern, str(value)) is not None

    def validate_attribute(self, record, attribute: str, value: Any) -> None:
        if isinstance(value, (list, tuple, dict, set)):
            self.add_error(record, attribute, "{attribute} is invalid.")
            return
        if not self._matches(value):
            message = self.message or (
                "{attribute} must be an integer." if self.integer_only else "{attribute} must be a number."
            )
            self.add_error(record, attribute, message)
            return
        number = float(value)
        if self.min is not None and number < self.min:
            self.add_error(
                record, attribute, self.too_small or "{attribute} must be no less than {min}.",
                min=_display(self.min),
            )
        if self.max is not None and number > self.max:
            self.add_error(
                record, attribute, self.too_big or "{attribute} must be no greater than {max}.",
                max=_display(self.max),
            )

    def validate_value(self, value: Any) -> bool:
        if isinstance(value, (list, tuple, dict, set)) or not self._matches(value):
            return False
        number = float(value)
        return (self.min is None or number >= self.min) and (self.max is None or number <= self.max)


def _display(number: float):
    return int(number) if float(number).is_integer() else number


class BooleanValidator(Validator):
    """The attribute must equal ``true_value`` or ``false_value``.

    Without ``strict``, ``True`` / ``1`` / ``"1"`` all match ``"1"``; with it,
    the type must match as well.
    """

    true_value: Any = "1"
    false_value: Any = "0"
    strict: bool = False

    def validate_value(self, value: Any) -> bool:
        if self.strict:
            return any(
                type(value) is type(expected) and value == expected
                for expected in (self.true_value, self.false_value)
            )
        return _loose(value) in (_loose(self.true_value), _loose(self.false_value))

    def validate_attribute(self, record, attribute: str, value: Any) -> None:
        if not self.validate_value(value):
            self.add_error(
                record, attribute, self.message or '{attribute} must be either "{true}" or "{false}".',
                true=self.true_value, false=self.false_value,
            )


def _loose(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


class RuleValidation:
    """Runs the validators a record class returns from ``rules()``."""

    def validate(self, record, names: Optional[Iterable[str]] = None) -> bool:
        """Clear previous errors of ``names`` (all by default), validate, return True if none remain."""
        names = None if names is None else tuple(names)
        record.clear_errors(names)
        for validator in record.rules():
            if not isinstance(validator, Validator):
                raise TypeError(f"{type(record).__name__}.rules() must return Validators, got {validator!r}")
            validator.validate_attributes(record, names)
        return not record.has_errors()


__all__ = [
    "BooleanValidator",
    "NumberValidator",
    "RequiredValidator",
    "RuleValidation",
    "Validator",
    "format_message",
    "is_empty",
]
