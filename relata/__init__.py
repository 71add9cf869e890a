"""relata: an active-record mapping layer with declarative relations, built on Pydantic and SQL."""

from .connection import Connection, connect
from .context import Context
from .errors import (
    ConfigurationError,
    InvalidStateError,
    RelataError,
    SchemaError,
    StorageError,
    UnknownAttributeError,
    UnknownRelationError,
)
from .events import Decision, Notifier
from .expressions import RawExpression, col
from .lifecycle import RecordState
from .query import Query
from .record import Record
from .relations import BelongsTo, HasMany, HasOne, ManyToMany, Relation, Stat
from .validation import BooleanValidator, NumberValidator, RequiredValidator, RuleValidation, Validator
