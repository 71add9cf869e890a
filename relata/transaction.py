"""Explicit transaction scopes for a Connection, with SAVEPOINTs for nesting.

The core never opens transactions on its own; callers that need several
statements to be atomic (a bridge query and its target query, an insert and
its generated-key fetch) wrap them in ``context.transaction()``.
"""

import logging
import threading
from contextlib import contextmanager

from .errors import RelataError

logger = logging.getLogger(__name__)


class TransactionError(RelataError):
    """A transaction object was used outside of its own nesting level."""


class TransactionManager:

    def __init__(self, connection):
        """
        Initialize the transaction manager.

        Args:
            connection: The relata Connection the transactions run on
        """
        self._connection = connection
        self._local = threading.local()

    # transaction level

    def _get_transaction_level(self):
        """Get current transaction nesting level"""
        return getattr(self._local, "transaction_level", 0)

    def _set_transaction_level(self, level):
        """Set current transaction nesting level"""
        self._local.transaction_level = level

    def _increment_transaction_level(self):
        """Increment transaction nesting level"""
        level = self._get_transaction_level()
        self._set_transaction_level(level + 1)
        return level + 1

    def _decrement_transaction_level(self):
        """Decrement transaction nesting level"""
        level = self._get_transaction_level()
        new_level = max(0, level - 1)
        self._set_transaction_level(new_level)
        return new_level

    @property
    def level(self):
        return self._get_transaction_level()

    # actual transaction itself

    @contextmanager
    def transaction(self):
        """
        Context manager for database transactions with SAVEPOINT support.

        Yields:
            Transaction: Transaction object for executing statements
        """
        connection = self._connection
        new_level = self._increment_transaction_level()
        savepoint_name = f"savepoint_{new_level}" if new_level > 1 else None
        transaction_obj = Transaction(connection, self, new_level)

        try:
            if savepoint_name:
                connection.execute(f"SAVEPOINT {savepoint_name}")
            else:
                connection.execute("BEGIN")
        except BaseException:
            self._decrement_transaction_level()
            raise

        try:
            yield transaction_obj
            if savepoint_name:
                connection.execute(f"RELEASE SAVEPOINT {savepoint_name}")
            else:
                connection.execute("COMMIT")
        except BaseException:
            if savepoint_name:
                logger.info("Rolling back to savepoint %s", savepoint_name)
                connection.execute(f"ROLLBACK TO SAVEPOINT {savepoint_name}")
                connection.execute(f"RELEASE SAVEPOINT {savepoint_name}")
            else:
                logger.info("Rolling back transaction")
                connection.execute("ROLLBACK")
            raise
        finally:
            transaction_obj._active = False
            self._decrement_transaction_level()


class Transaction:

    def __init__(self, connection, manager, level):
        self._connection = connection
        self._manager = manager
        self._level = level
        self._active = True

    @property
    def level(self):
        return self._level

    def _check(self):
        if not self._active:
            raise TransactionError("Transaction is no longer active")
        current_level = self._manager._get_transaction_level()
        if current_level > self._level:
            raise TransactionError(
                f"Cannot use transaction level {self._level} from level {current_level}. "
                "Higher-level transactions cannot be accessed from nested transactions."
            )

    def execute(self, sql, parameters=()):
        """
        Execute a write statement within this transaction.

        Raises:
            TransactionError: If the transaction is closed or a nested one is open
        """
        self._check()
        return self._connection.execute(sql, parameters)

    def query(self, sql, parameters=()):
        """Execute a read statement within this transaction."""
        self._check()
        return self._connection.query(sql, parameters)


__all__ = ["Transaction", "TransactionError", "TransactionManager"]
