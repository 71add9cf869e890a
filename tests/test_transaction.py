"""Tests for relata.transaction: explicit scopes and savepoints."""

import pytest

from relata.transaction import TransactionError

from tests.helpers import Customer


def _names(context):
    return [row["name"] for row in context.connection.query("SELECT name FROM customer ORDER BY id")]


def test_commit(setup_db):
    with setup_db.transaction():
        Customer(setup_db, name="Ann").save()
        Customer(setup_db, name="Bob").save()
    assert _names(setup_db) == ["Ann", "Bob"]
    writes = [sql for sql, _ in setup_db.connection.writes]
    assert writes[0] == "BEGIN"
    assert writes[-1] == "COMMIT"


def test_rollback_on_error(setup_db):
    with pytest.raises(RuntimeError):
        with setup_db.transaction():
            Customer(setup_db, name="Ann").save()
            raise RuntimeError("boom")
    assert _names(setup_db) == []
    assert setup_db.connection.writes[-1][0] == "ROLLBACK"


def test_nested_rollback_keeps_outer_work(setup_db):
    with setup_db.transaction():
        Customer(setup_db, name="Ann").save()
        with pytest.raises(RuntimeError):
            with setup_db.transaction() as inner:
                assert inner.level == 2
                Customer(setup_db, name="Bob").save()
                raise RuntimeError("boom")
        Customer(setup_db, name="Cid").save()
    assert _names(setup_db) == ["Ann", "Cid"]
    writes = [sql for sql, _ in setup_db.connection.writes]
    assert "SAVEPOINT savepoint_2" in writes
    assert "ROLLBACK TO SAVEPOINT savepoint_2" in writes


def test_transaction_object_executes(setup_db):
    with setup_db.transaction() as transaction:
        transaction.execute("INSERT INTO customer (name) VALUES (?)", ("Ann",))
        assert transaction.query("SELECT COUNT(*) AS n FROM customer") == [{"n": 1}]
    assert _names(setup_db) == ["Ann"]


def test_outer_transaction_unusable_while_nested(setup_db):
    with setup_db.transaction() as outer:
        with setup_db.transaction():
            with pytest.raises(TransactionError, match="level 1 from level 2"):
                outer.execute("INSERT INTO customer (name) VALUES ('x')")


def test_closed_transaction(setup_db):
    with setup_db.transaction() as transaction:
        pass
    with pytest.raises(TransactionError, match="no longer active"):
        transaction.query("SELECT 1")
