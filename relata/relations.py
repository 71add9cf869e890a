"""Relation templates: one frozen model per relation kind.

A record class declares its relations as templates::

    class Customer(Record, table_name="customer"):
        @classmethod
        def relations(cls):
            return {
                "orders": HasMany("Order", "customer_id", order="orders.id"),
                "order_count": Stat("Order", "customer_id"),
            }

Templates are never mutated. Resolving a relation with overrides builds a new
template, either from a mapping of option values or from a function returning a
new relation (``lambda r: r.copy_with(limit=5)``). Key declarations are only
checked when a relation is resolved, which raises ``ConfigurationError`` for
malformed ones.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Literal, Mapping, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigurationError

ForeignKey = Union[str, dict[str, str]]
"""Comma-separated key columns, or an explicit ``{target_column: source_column}`` mapping."""

Overrides = Union[Mapping[str, Any], Callable[["Relation"], "Relation"], None]

_JUNCTION_PATTERN = re.compile(r"^\s*([\w.]+)\s*\(([^()]*)\)\s*$")


class Relation(BaseModel):
    """Options shared by every relation kind."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: str
    target: Any
    """Record class, or its class / table name (looked up at resolve time)."""
    foreign_key: Optional[ForeignKey] = None
    name: Optional[str] = None
    select: Optional[str] = None
    """Select list for the related query; defaults to ``alias.*``."""
    condition: Optional[str] = None
    """Extra WHERE condition; columns are qualified with the relation alias."""
    on: Optional[str] = None
    """Extra join condition, ANDed to the key condition."""
    params: Union[tuple, dict] = Field(default_factory=tuple)
    """Values bound to ``?`` / ``:name`` placeholders of ``condition`` and ``on``."""
    order: Optional[str] = None
    with_: tuple[str, ...] = Field(default_factory=tuple)
    """Relations of the related records to load eagerly, as dotted paths."""
    join_type: str = "LEFT OUTER JOIN"
    alias: Optional[str] = None
    """Table alias of the related table; defaults to the relation name."""
    scopes: tuple[str, ...] = Field(default_factory=tuple)
    """Named scopes of the target class to apply."""
    declaration_error: Optional[str] = Field(default=None, repr=False)
    """Why the declared options are invalid; raised when the relation is used."""

    def __init__(self, target: Any = None, foreign_key: Optional[ForeignKey] = None, /, **data):
        if target is not None:
            data["target"] = target
        if foreign_key is not None:
            data["foreign_key"] = foreign_key
        if isinstance(data.get("with_"), str):
            data["with_"] = (data["with_"],)
        if isinstance(data.get("scopes"), str):
            data["scopes"] = (data["scopes"],)
        try:
            super().__init__(**data)
        except ValidationError as error:
            # the record class stays usable; only this relation is broken
            fields = {key: value for key, value in data.items() if key in type(self).model_fields}
            fields["declaration_error"] = "; ".join(
                f"{'.'.join(str(part) for part in problem['loc']) or 'relation'}: {problem['msg']}"
                for problem in error.errors()
            )
            invalid = type(self).model_construct(**fields)
            for slot in ("__dict__", "__pydantic_fields_set__", "__pydantic_extra__", "__pydantic_private__"):
                object.__setattr__(self, slot, getattr(invalid, slot))

    def check_declaration(self) -> "Relation":
        """Return the relation, or raise ConfigurationError if its options were invalid."""
        if self.declaration_error:
            raise ConfigurationError(
                f"Invalid declaration of {type(self).__name__} relation {self.name!r}: {self.declaration_error}"
            )
        return self

    @property
    def is_collection(self) -> bool:
        """True when the resolved value is a list (or an index dict)."""
        return False

    @property
    def table_alias(self) -> str:
        return self.alias or self.name or "t"

    def copy_with(self, **changes) -> "Relation":
        """Return a new, validated relation with ``changes`` applied."""
        return apply_overrides(self, changes)


class BelongsTo(Relation):
    """The owner holds the key columns, which reference the target's primary key."""

    kind: Literal["belongs_to"] = "belongs_to"


class HasOne(Relation):
    """The target holds key columns referencing the owner's primary key."""

    kind: Literal["has_one"] = "has_one"
    through: Optional[str] = None
    """Name of an owner relation used as a bridge to the target."""
    limit: Optional[int] = None
    offset: Optional[int] = None


class HasMany(Relation):
    """Like HasOne, resolving to a list (or a dict keyed by ``index``)."""

    kind: Literal["has_many"] = "has_many"
    through: Optional[str] = None
    group: Optional[str] = None
    having: Optional[str] = None
    limit: Optional[int] = None
    """Per owner, also when loaded eagerly."""
    offset: Optional[int] = None
    index: Optional[str] = None
    """Column whose values key the resulting dict."""

    @property
    def is_collection(self) -> bool:
        return True


class ManyToMany(Relation):
    """Owner and target linked through a junction table ``"post_tag(post_id, tag_id)"``.

    The junction columns list the owner's primary key columns first, then the
    target's.
    """

    kind: Literal["many_to_many"] = "many_to_many"
    junction: str
    group: Optional[str] = None
    having: Optional[str] = None
    limit: Optional[int] = None
    offset: Optional[int] = None
    index: Optional[str] = None

    def __init__(self, target: Any = None, junction: Optional[str] = None, /, **data):
        if junction is not None:
            data["junction"] = junction
        super().__init__(target, None, **data)

    @property
    def is_collection(self) -> bool:
        return True


class Stat(Relation):
    """Aggregate over related rows (``COUNT(*)`` by default), one scalar per owner.

    ``foreign_key`` follows HasMany, or is a junction spec as for ManyToMany.
    """

    kind: Literal["stat"] = "stat"
    select: str = "COUNT(*)"
    default_value: Any = 0
    junction: Optional[str] = None
    group: Optional[str] = None
    having: Optional[str] = None

    def __init__(self, target: Any = None, foreign_key: Optional[ForeignKey] = None, /, **data):
        if isinstance(foreign_key, str) and _JUNCTION_PATTERN.match(foreign_key):
            data["junction"] = foreign_key
            foreign_key = None
        super().__init__(target, foreign_key, **data)


RELATION_KINDS: dict[str, type[Relation]] = {
    "belongs_to": BelongsTo,
    "has_one": HasOne,
    "has_many": HasMany,
    "many_to_many": ManyToMany,
    "stat": Stat,
}


def apply_overrides(relation: Relation, overrides: Overrides) -> Relation:
    """Return a new relation from ``relation`` and ``overrides``; the template is untouched."""
    if overrides is None:
        return relation
    if callable(overrides):
        result = overrides(relation)
        if not isinstance(result, Relation):
            raise ConfigurationError(
                f"Relation override for {relation.name!r} must return a Relation, "
                f"got {type(result).__name__}"
            )
        return result.check_declaration()
    if not isinstance(overrides, Mapping):
        raise ConfigurationError(
            f"Relation overrides must be a mapping or a callable, got {type(overrides).__name__}"
        )
    relation_class = type(relation)
    changes = {}
    for key, value in overrides.items():
        key = "with_" if key == "with" else key
        if key not in relation_class.model_fields or key in ("kind", "declaration_error"):
            raise ConfigurationError(
                f"Unknown option {key!r} for {relation_class.__name__} relation {relation.name!r}"
            )
        if key in ("with_", "scopes") and isinstance(value, str):
            value = (value,)
        changes[key] = value
    data = {name: getattr(relation, name) for name in relation_class.model_fields}
    data.update(changes)
    try:
        return relation_class.model_validate(data)
    except ValidationError as error:
        raise ConfigurationError(f"Invalid overrides for relation {relation.name!r}: {error}") from error


# --- key declarations ---------------------------------------------------------


class JunctionSpec(NamedTuple):
    """A parsed ``"table(owner_cols..., target_cols...)"`` junction declaration."""

    table: str
    owner_pairs: tuple[tuple[str, str], ...]
    """(junction column, owner primary-key column)."""
    target_pairs: tuple[tuple[str, str], ...]
    """(junction column, target primary-key column)."""


def split_columns(spec: str, relation: Relation) -> tuple[str, ...]:
    """Split a comma-separated column list, rejecting empty entries."""
    columns = tuple(column.strip() for column in spec.split(","))
    if not columns or any(not column for column in columns):
        raise ConfigurationError(f"Malformed key {spec!r} in relation {relation.name!r}")
    return columns


def key_pairs(
    relation: Relation,
    source_key: tuple[str, ...],
    target_key: tuple[str, ...],
    key_on_source: bool,
) -> tuple[tuple[str, str], ...]:
    """Pair target columns with source columns for the relation's join condition.

    ``source_key`` and ``target_key`` are the primary keys of the two sides.
    With ``key_on_source`` (BelongsTo) the declared columns live on the source
    and match the target's primary key, otherwise they live on the target and
    match the source's primary key. An explicit mapping is taken verbatim.
    Returns ``(target_column, source_column)`` pairs.
    """
    foreign_key = relation.foreign_key
    if isinstance(foreign_key, dict):
        if not foreign_key:
            raise ConfigurationError(f"Empty key mapping in relation {relation.name!r}")
        return tuple((target, source) for target, source in foreign_key.items())
    if not isinstance(foreign_key, str):
        raise ConfigurationError(f"Relation {relation.name!r} declares no foreign key")
    columns = split_columns(foreign_key, relation)
    referenced = target_key if key_on_source else source_key
    if len(columns) != len(referenced):
        side = "target" if key_on_source else "owner"
        raise ConfigurationError(
            f"Relation {relation.name!r} declares {len(columns)} key column(s) "
            f"({foreign_key!r}) but the {side} primary key has {len(referenced)} "
            f"({', '.join(referenced) or 'none'})"
        )
    if key_on_source:
        return tuple(zip(referenced, columns))
    return tuple(zip(columns, referenced))


def parse_junction(
    relation: Relation,
    spec: str,
    owner_key: tuple[str, ...],
    target_key: tuple[str, ...],
) -> JunctionSpec:
    """Parse a junction declaration against both primary keys."""
    match = _JUNCTION_PATTERN.match(spec or "")
    if match is None:
        raise ConfigurationError(
            f"Malformed junction {spec!r} in relation {relation.name!r}; "
            "expected 'table(owner_key, target_key)'"
        )
    table, columns_spec = match.groups()
    columns = split_columns(columns_spec, relation)
    if not owner_key or not target_key:
        raise ConfigurationError(
            f"Relation {relation.name!r} needs primary keys on both sides of junction {table!r}"
        )
    if len(columns) != len(owner_key) + len(target_key):
        raise ConfigurationError(
            f"Junction {spec!r} of relation {relation.name!r} lists {len(columns)} column(s), "
            f"expected {len(owner_key)} owner + {len(target_key)} target key column(s)"
        )
    owner_pairs = tuple(zip(columns[: len(owner_key)], owner_key))
    target_pairs = tuple(zip(columns[len(owner_key):], target_key))
    return JunctionSpec(table=table, owner_pairs=owner_pairs, target_pairs=target_pairs)


__all__ = [
    "Relation",
    "BelongsTo",
    "HasOne",
    "HasMany",
    "ManyToMany",
    "Stat",
    "RELATION_KINDS",
    "ForeignKey",
    "Overrides",
    "JunctionSpec",
    "apply_overrides",
    "key_pairs",
    "parse_junction",
    "split_columns",
]
