"""Exception types raised by relata."""


class RelataError(Exception):
    """Base class for every error raised by relata."""


class ConfigurationError(RelataError):
    """A relation, key or record class declaration is malformed.

    Declarations are lazy templates, so this is raised when they are resolved,
    not when they are declared.
    """


class UnknownRelationError(RelataError):
    """A relation name is not declared on the record class."""

    def __init__(self, record_class: type, name: str):
        self.record_class = record_class
        self.name = name
        super().__init__(f"{record_class.__name__} has no relation named {name!r}")


class UnknownAttributeError(RelataError, KeyError):
    """A column name is not part of the record's table."""

    def __init__(self, record_class: type, name: str):
        self.record_class = record_class
        self.name = name
        super().__init__(f"{record_class.__name__} has no column named {name!r}")

    def __str__(self):
        return self.args[0]


class InvalidStateError(RelataError):
    """The record's lifecycle state forbids the requested operation."""


class SchemaError(RelataError):
    """The table or its columns could not be introspected."""


class StorageError(RelataError):
    """The SQL execution layer failed; the driver error is the ``__cause__``."""

    def __init__(self, message: str, sql: str | None = None, params: tuple = ()):
        self.sql = sql
        self.params = params
        super().__init__(message)


__all__ = [
    "RelataError",
    "ConfigurationError",
    "UnknownRelationError",
    "UnknownAttributeError",
    "InvalidStateError",
    "SchemaError",
    "StorageError",
]
