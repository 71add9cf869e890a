"""Resolve record classes declared by name in relation templates."""

from typing import Iterable


def _get_subclasses(base: type) -> Iterable[type]:
    """Recursively yield all subclasses of base in depth-first order."""
    for subclass in base.__subclasses__()[::-1]:
        yield from _get_subclasses(subclass)
        yield subclass


def find_record_class(name: str) -> type | None:
    """Return the unique Record subclass whose ``__name__`` or table name is ``name``.

    Raises ValueError if several classes match; returns None if none does.
    """
    from ..record import Record

    matches = []
    for subclass in _get_subclasses(Record):
        if subclass.__name__ == name or getattr(subclass, "table_name", None) == name:
            if subclass not in matches:
                matches.append(subclass)
    if len(matches) > 1:
        raise ValueError(f"More than one record class found with name `{name}`")
    if not matches:
        return None
    return matches[0]
