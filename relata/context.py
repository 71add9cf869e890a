"""The context every record, query and relation lookup goes through.

A context bundles one database connection with the metadata registry for that
database and the validation and notification collaborators. Several contexts
can coexist (one per database, or test doubles); nothing is global apart from
the named URLs registered with ``connect``.
"""

from __future__ import annotations

import logging
from typing import Optional

from .connection import Connection
from .events import Notifier
from .finder import Finder
from .lifecycle import LifecycleController
from .schema import EntityDescriptor, MetadataRegistry
from .validation import RuleValidation

logger = logging.getLogger(__name__)


class Context:

    def __init__(
        self,
        connection: Connection,
        registry: Optional[MetadataRegistry] = None,
        validation: Optional[RuleValidation] = None,
        notifier: Optional[Notifier] = None,
    ):
        """
        Args:
            connection: SQL layer used for every statement and for introspection
            registry: Metadata cache; a new one introspecting through ``connection`` by default
            validation: Validation subsystem; rule validation by default
            notifier: Lifecycle notifier; an empty Notifier by default
        """
        self.connection = connection
        self.registry = registry if registry is not None else MetadataRegistry(connection)
        self.validation = validation if validation is not None else RuleValidation()
        self.notifier = notifier if notifier is not None else Notifier()
        self.finder = Finder(self)
        self.lifecycle = LifecycleController(self)

    @classmethod
    def from_url(cls, url: str, **options) -> "Context":
        return cls(Connection.from_url(url), **options)

    @classmethod
    def from_name(cls, name: str = "default", **options) -> "Context":
        """Context on the URL registered with ``connect(url, name)``."""
        return cls(Connection.from_name(name), **options)

    def describe(self, record_class: type) -> EntityDescriptor:
        return self.registry.describe(record_class)

    def refresh(self, record_class: type) -> EntityDescriptor:
        """Re-introspect the table of ``record_class`` (after a schema change)."""
        return self.registry.refresh(record_class)

    def transaction(self):
        """Explicit transaction scope; nested scopes use SAVEPOINTs."""
        return self.connection.transaction()

    def close(self) -> None:
        self.connection.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


__all__ = ["Context"]
