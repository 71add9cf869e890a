"""Tests for relata.lifecycle: insert, update, delete, counters and refresh."""

import logging

import pytest

from relata import Decision, Record, RecordState
from relata.errors import ConfigurationError, InvalidStateError

from tests.helpers import Customer, Item, LegacyLog, Membership, Note, Order, Post, seed_blog, seed_orgs, seed_shop, warm


@pytest.fixture
def shop(setup_db):
    seed_shop(setup_db)
    warm(setup_db, Customer, Order)
    return setup_db


def _row(context, table, key):
    rows = context.connection.query(f'SELECT * FROM "{table}" WHERE id = ?', (key,))
    return rows[0] if rows else None


class TestInsert:

    def test_insert_sets_generated_key(self, shop):
        customer = Customer(shop, name="Dee")
        assert customer.save()
        assert shop.connection.writes == [('INSERT INTO "customer" ("name")\nVALUES (?)', ("Dee",))]
        assert customer.get("id") == 4
        assert customer.state is RecordState.CLEAN
        assert customer.old_attributes() == {"name": "Dee", "id": 4}
        assert _row(shop, "customer", 4) == {"id": 4, "name": "Dee", "status": 1}

    def test_insert_with_explicit_key(self, shop):
        order = Order(shop, id=50, customer_id=2, total=1.5)
        assert order.insert()
        assert order.get("id") == 50
        assert _row(shop, "order", 50)["total"] == 1.5

    def test_insert_default_values(self, shop):
        order = Order(shop)
        assert order.save()
        assert shop.connection.writes[0][0] == 'INSERT INTO "order" DEFAULT VALUES'
        assert order.get("id") == 13

    def test_insert_restricted_to_attributes(self, shop):
        customer = Customer(shop, name="Dee", status=0)
        assert customer.save(attributes=["name"])
        assert _row(shop, "customer", customer.get("id"))["status"] == 1
        assert customer.changed_attributes() == {"status": 0}

    def test_insert_composite_key(self, setup_db):
        membership = Membership(setup_db, org_id=5, user_id=6, role="owner")
        assert membership.save()
        assert membership.primary_key() == (5, 6)
        assert Membership.find(setup_db, (5, 6)).one().get("role") == "owner"

    def test_insert_twice_is_rejected(self, shop):
        customer = Customer(shop, name="Dee")
        customer.insert()
        with pytest.raises(InvalidStateError, match="not new"):
            customer.insert()

    def test_save_runs_validation(self, shop, caplog):
        caplog.set_level(logging.INFO, logger="relata")
        customer = Customer(shop, status=7)
        assert not customer.save()
        assert shop.connection.writes == []
        assert customer.is_new()
        assert set(customer.errors) == {"name", "status"}
        assert "Validation failed" in caplog.text

    def test_save_without_validation(self, shop):
        customer = Customer(shop, status=7)
        assert customer.save(run_validation=False)
        assert _row(shop, "customer", customer.get("id"))["status"] == 7

    def test_save_validates_only_given_attributes(self, shop):
        customer = Customer(shop, name="Dee", status=7)
        assert customer.save(attributes=["name"])
        assert customer.errors == {}


class TestUpdate:

    def test_update_sends_only_dirty_columns(self, shop):
        customer = Customer.find(shop, 1).one()
        shop.connection.reset()
        customer.set("name", "Anne")
        assert customer.save()
        assert shop.connection.writes == [('UPDATE "customer"\nSET "name" = ?\nWHERE "id" = ?', ("Anne", 1))]
        assert customer.state is RecordState.CLEAN
        assert _row(shop, "customer", 1)["name"] == "Anne"

    def test_clean_update_sends_nothing_but_runs_hooks(self, shop):
        seen = []
        shop.notifier.on("after_update", seen.append)
        customer = Customer.find(shop, 1).one()
        shop.connection.reset()
        assert customer.update()
        assert shop.connection.writes == []
        assert seen == [customer]

    def test_update_keyed_by_old_primary_key(self, shop):
        customer = Customer.find(shop, 3).one()
        customer.set("id", 30)
        customer.set("name", "Cyd")
        assert customer.save()
        assert _row(shop, "customer", 3) is None
        assert _row(shop, "customer", 30)["name"] == "Cyd"
        assert customer.old_primary_key() == 30

    def test_update_restricted_to_attributes(self, shop):
        customer = Customer.find(shop, 1).one()
        customer.set("name", "Anne")
        customer.set("status", 0)
        assert customer.update(["status"])
        assert _row(shop, "customer", 1) == {"id": 1, "name": "Ann", "status": 0}
        assert customer.changed_attributes() == {"name": "Anne"}

    def test_update_new_record(self, shop):
        with pytest.raises(InvalidStateError, match="is new and cannot be updated"):
            Customer(shop, name="Dee").update()

    def test_update_without_primary_key(self, setup_db):
        setup_db.connection.execute("INSERT INTO note (org_id, user_id, body) VALUES (1, 1, 'a')")
        note = Note.find(setup_db).one()
        note.set("body", "b")
        with pytest.raises(ConfigurationError, match="no primary key"):
            note.save()

    def test_declared_primary_key_is_used_for_writes(self, setup_db):
        LegacyLog(setup_db, code="E1", message="first").save()
        LegacyLog(setup_db, code="E2", message="second").save()
        log = LegacyLog.find(setup_db, code="E1").one()
        log.set("message", "changed")
        assert log.save()
        rows = setup_db.connection.query("SELECT * FROM legacy_log ORDER BY code")
        assert rows == [{"code": "E1", "message": "changed"}, {"code": "E2", "message": "second"}]


class TestDelete:

    def test_delete(self, shop):
        customer = Customer.find(shop, 3).one()
        assert customer.delete()
        assert customer.state is RecordState.DELETED
        assert customer.is_new()
        assert _row(shop, "customer", 3) is None

    def test_delete_missing_row(self, shop):
        customer = Customer.find(shop, 3).one()
        Customer.delete_all(shop, {"id": 3})
        assert not customer.delete()
        assert customer.state is RecordState.DELETED

    def test_deleted_record_is_rejected(self, shop):
        customer = Customer.find(shop, 3).one()
        customer.delete()
        for operation in (customer.save, customer.update, customer.delete, customer.insert):
            with pytest.raises(InvalidStateError, match="was deleted"):
                operation()

    def test_delete_new_record(self, shop):
        with pytest.raises(InvalidStateError, match="is new and cannot be deleted"):
            Order(shop).delete()

    def test_delete_composite_key(self, setup_db):
        seed_orgs(setup_db)
        Membership.find(setup_db, (1, 2)).one().delete()
        assert Membership.count(setup_db) == 2
        assert Membership.find(setup_db, (1, 1)).exists()


class TestHooks:

    @pytest.mark.parametrize("decision", [Decision.ABORT, False])
    def test_before_insert_veto(self, shop, caplog, decision):
        caplog.set_level(logging.INFO, logger="relata")
        shop.notifier.on("before_insert", lambda record: decision)
        customer = Customer(shop, name="Dee")
        assert not customer.save()
        assert customer.is_new()
        assert customer.errors == {}
        assert shop.connection.writes == []
        assert "vetoed by before_insert" in caplog.text

    def test_before_update_veto(self, shop):
        shop.notifier.on("before_update", lambda record: Decision.ABORT)
        customer = Customer.find(shop, 1).one()
        customer.set("name", "Anne")
        assert not customer.save()
        assert customer.state is RecordState.DIRTY
        assert _row(shop, "customer", 1)["name"] == "Ann"

    def test_before_delete_veto(self, shop):
        shop.notifier.on("before_delete", lambda record: Decision.ABORT, record_class=Order)
        order = Order.find(shop, 10).one()
        assert not order.delete()
        assert order.state is RecordState.CLEAN
        assert _row(shop, "order", 10) is not None

    def test_hook_order(self, shop):
        calls = []
        for event in ("before_insert", "after_insert", "before_update", "after_update", "before_delete", "after_delete"):
            shop.notifier.on(event, lambda record, event=event: calls.append(event))
        customer = Customer(shop, name="Dee")
        customer.save()
        customer.set("name", "Dee Dee")
        customer.save()
        customer.delete()
        assert calls == [
            "before_insert", "after_insert",
            "before_update", "after_update",
            "before_delete", "after_delete",
        ]

    def test_after_insert_sees_generated_key(self, shop):
        keys = []
        shop.notifier.on("after_insert", lambda record: keys.append(record.primary_key()))
        Customer(shop, name="Dee").save()
        assert keys == [4]

    def test_overridden_hook(self, setup_db):
        class AuditedTag(Record, table_name="tag"):
            def before_insert(self):
                if self.get("name") == "forbidden":
                    return Decision.ABORT
                return super().before_insert()

        assert AuditedTag(setup_db, name="fine").save()
        assert not AuditedTag(setup_db, name="forbidden").save()
        assert setup_db.connection.query("SELECT name FROM tag") == [{"name": "fine"}]


class TestCounters:

    def test_update_counters(self, setup_db):
        seed_blog(setup_db)
        post = Post.find(setup_db, 1).one()
        setup_db.connection.reset()
        assert post.update_counters({"views": 5, "likes": -2})
        assert setup_db.connection.writes == [
            ('UPDATE "post"\nSET "views" = "views" + ?, "likes" = "likes" - ?\nWHERE "id" = ?', (5, 2, 1))
        ]
        assert setup_db.connection.reads == []
        assert post.attributes(["views", "likes"]) == {"views": 15, "likes": -2}
        assert post.state is RecordState.CLEAN
        row = setup_db.connection.query("SELECT views, likes FROM post WHERE id = 1")[0]
        assert row == {"views": 15, "likes": -2}

    def test_update_counters_keeps_other_changes_dirty(self, setup_db):
        seed_blog(setup_db)
        post = Post.find(setup_db, 1).one()
        post.set("title", "Changed")
        post.update_counters({"views": 1})
        assert post.changed_attributes() == {"title": "Changed"}

    def test_update_counters_on_new_record(self, setup_db):
        with pytest.raises(InvalidStateError):
            Post(setup_db, views=1).update_counters({"views": 1})

    def test_update_all_counters(self, setup_db):
        seed_blog(setup_db)
        assert Post.update_all_counters(setup_db, {"views": 2}, "id > ?", 1) == 2
        rows = setup_db.connection.query("SELECT id, views FROM post ORDER BY id")
        assert rows == [{"id": 1, "views": 10}, {"id": 2, "views": 2}, {"id": 3, "views": 2}]


class TestRefresh:

    def test_refresh(self, shop):
        customer = Customer.find(shop, 1).one()
        customer.set_related("orders", [])
        customer.set("name", "local")
        shop.connection.execute("UPDATE customer SET status = 0 WHERE id = 1")
        assert customer.refresh()
        assert customer.attributes() == {"id": 1, "name": "Ann", "status": 0}
        assert customer.state is RecordState.CLEAN
        assert not customer.has_related("orders")

    def test_refresh_some_attributes(self, shop):
        customer = Customer.find(shop, 1).one()
        customer.set("name", "local")
        customer.set("status", 5)
        shop.connection.execute("UPDATE customer SET status = 0 WHERE id = 1")
        assert customer.refresh(["status"])
        assert customer.get("status") == 0
        assert customer.changed_attributes() == {"name": "local"}

    def test_refresh_missing_row(self, shop):
        customer = Customer.find(shop, 3).one()
        customer.set("name", "local")
        Customer.delete_all(shop, {"id": 3})
        assert not customer.refresh()
        assert customer.get("name") == "local"

    def test_refresh_new_record(self, shop):
        assert not Customer(shop, name="Dee").refresh()


class TestManyRows:

    def test_update_all(self, shop):
        assert Customer.update_all(shop, {"status": 0}, {"status": 1}) == 2
        assert Customer.count(shop, status=0) == 3

    def test_delete_all(self, shop):
        assert Item.delete_all(shop, "quantity < :limit", {"limit": 2}) == 2
        assert Item.delete_all(shop) == 2
        assert Item.count(shop) == 0
