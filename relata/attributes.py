"""Per-record attribute bookkeeping: current values, persisted snapshot, dirty sets."""

from __future__ import annotations

from typing import Any, Iterable, Optional


def _differs(value: Any, old: Any) -> bool:
    """Strict comparison: values of different types always differ (``1``, ``1.0``, ``True``)."""
    return type(value) is not type(old) or value != old


class AttributeStore:
    """Column values of one record and the snapshot of what was last persisted.

    The snapshot is ``None`` while the record has never been persisted (or was
    deleted); ``is_new()`` is exactly that test. All methods are total: asking
    for a column that was never set yields ``None``.
    """

    def __init__(self, names: Iterable[str] = ()):
        self._names = tuple(names)
        self._values: dict[str, Any] = {}
        self._old: Optional[dict[str, Any]] = None

    @property
    def names(self) -> tuple[str, ...]:
        """Column names this store reports on when no names are given."""
        return self._names

    def get(self, name: str) -> Any:
        return self._values.get(name)

    def set(self, name: str, value: Any) -> None:
        self._values[name] = value

    def is_set(self, name: str) -> bool:
        return name in self._values

    def unset(self, name: str) -> None:
        self._values.pop(name, None)

    def all(self, names: Optional[Iterable[str]] = None) -> dict[str, Any]:
        """Values of ``names`` (all known columns by default); unset ones are None."""
        if names is None:
            names = self._names or tuple(self._values)
        return {name: self._values.get(name) for name in names}

    def changed(self, names: Optional[Iterable[str]] = None) -> dict[str, Any]:
        """Set values that differ from the snapshot; every set value if there is none."""
        wanted = None if names is None else set(names)
        result = {}
        for name, value in self._values.items():
            if wanted is not None and name not in wanted:
                continue
            if self._old is None or name not in self._old or _differs(value, self._old[name]):
                result[name] = value
        return result

    def is_changed(self, name: str) -> bool:
        return name in self.changed((name,))

    def is_new(self) -> bool:
        return self._old is None

    def old(self, name: str) -> Any:
        """Persisted value of ``name`` (None when new or never persisted)."""
        if self._old is None:
            return None
        return self._old.get(name)

    def old_all(self, names: Optional[Iterable[str]] = None) -> Optional[dict[str, Any]]:
        """Copy of the snapshot (restricted to ``names``), or None when new."""
        if self._old is None:
            return None
        if names is None:
            return dict(self._old)
        return {name: self._old.get(name) for name in names}

    def mark_persisted(self, values: Optional[dict[str, Any]] = None) -> None:
        """Replace the snapshot with ``values`` (a copy of current values by default)."""
        self._old = dict(self._values if values is None else values)

    def commit(self, names: Iterable[str]) -> None:
        """Advance the snapshot to the current values of ``names`` only."""
        if self._old is None:
            self._old = {}
        for name in names:
            if name in self._values:
                self._old[name] = self._values[name]
            else:
                self._old.pop(name, None)

    def mark_deleted(self) -> None:
        """Drop the snapshot; the store reports ``is_new()`` again."""
        self._old = None

    def __repr__(self):
        return f"AttributeStore(values={self._values!r}, old={self._old!r})"


__all__ = ["AttributeStore"]
