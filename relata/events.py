"""Lifecycle notifications: before/after hooks that may veto an operation."""

from __future__ import annotations

import enum
import logging
from collections import defaultdict
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

EVENTS = (
    "before_insert",
    "after_insert",
    "before_update",
    "after_update",
    "before_delete",
    "after_delete",
)


class Decision(enum.Enum):
    """What a before-hook tells the lifecycle controller."""

    PROCEED = "proceed"
    ABORT = "abort"


Handler = Callable[[Any], Optional[Decision]]


def proceeds(result: Any) -> bool:
    """Interpret a hook result: ``None``, ``True`` and ``PROCEED`` let the operation run."""
    if result is None or result is True or result is Decision.PROCEED:
        return True
    if result is False or result is Decision.ABORT:
        return False
    raise TypeError(f"Hooks must return a Decision (or None), got {result!r}")


class Notifier:
    """Registry of handlers per event, called in registration order.

    ``emit`` stops at the first handler that aborts and returns False; after
    hooks can abort nothing, so their result is ignored by the caller.
    """

    def __init__(self):
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def on(self, event: str, handler: Handler, record_class: Optional[type] = None) -> Handler:
        """Register ``handler`` for ``event``, optionally only for instances of ``record_class``."""
        if event not in EVENTS:
            raise ValueError(f"Unknown event {event!r}; expected one of {', '.join(EVENTS)}")
        if record_class is not None:
            inner = handler

            def handler(record):
                if isinstance(record, record_class):
                    return inner(record)
                return None

            handler.__wrapped__ = inner
        self._handlers[event].append(handler)
        return handler

    def off(self, event: str, handler: Optional[Handler] = None) -> None:
        """Remove one handler (or all handlers) of ``event``."""
        if handler is None:
            self._handlers.pop(event, None)
            return
        self._handlers[event] = [
            registered for registered in self._handlers[event]
            if registered is not handler and getattr(registered, "__wrapped__", None) is not handler
        ]

    def emit(self, event: str, record: Any) -> bool:
        """Call the handlers of ``event`` with ``record``; False when one of them aborts."""
        for handler in self._handlers.get(event, ()):
            if not proceeds(handler(record)):
                logger.debug("%s handler %r aborted for %r", event, handler, record)
                return False
        return True


__all__ = ["Decision", "EVENTS", "Notifier", "proceeds"]
