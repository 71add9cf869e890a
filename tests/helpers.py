"""Shared test schema, record classes and assertions.

Record classes are declared once, here, because relation targets given by
name are looked up among all Record subclasses.
"""

from relata import (
    BelongsTo,
    HasMany,
    HasOne,
    ManyToMany,
    NumberValidator,
    Record,
    RequiredValidator,
    Stat,
)

SCHEMA = [
    """CREATE TABLE customer (
        id INTEGER PRIMARY KEY,
        name TEXT,
        status INTEGER DEFAULT 1
    )""",
    """CREATE TABLE "order" (
        id INTEGER PRIMARY KEY,
        customer_id INTEGER REFERENCES customer(id),
        total REAL DEFAULT 0
    )""",
    """CREATE TABLE item (
        id INTEGER PRIMARY KEY,
        order_id INTEGER REFERENCES "order"(id),
        product TEXT,
        quantity INTEGER DEFAULT 1
    )""",
    """CREATE TABLE post (
        id INTEGER PRIMARY KEY,
        title TEXT,
        views INTEGER DEFAULT 0,
        likes INTEGER DEFAULT 0
    )""",
    """CREATE TABLE tag (
        id INTEGER PRIMARY KEY,
        name TEXT
    )""",
    """CREATE TABLE post_tag (
        post_id INTEGER,
        tag_id INTEGER,
        added_by TEXT,
        PRIMARY KEY (post_id, tag_id)
    )""",
    """CREATE TABLE org (
        id INTEGER PRIMARY KEY,
        name TEXT
    )""",
    """CREATE TABLE membership (
        org_id INTEGER,
        user_id INTEGER,
        role TEXT,
        PRIMARY KEY (org_id, user_id)
    )""",
    """CREATE TABLE note (
        org_id INTEGER,
        user_id INTEGER,
        body TEXT
    )""",
    """CREATE TABLE legacy_log (
        code TEXT,
        message TEXT
    )""",
]


class Customer(Record, table_name="customer"):

    @classmethod
    def relations(cls):
        return {
            "orders": HasMany("Order", "customer_id", order='"orders"."id"'),
            "big_orders": HasMany("Order", "customer_id", condition='"big_orders"."total" >= ?', params=(100,)),
            "orders_by_id": HasMany("Order", "customer_id", index="id"),
            "latest_order": HasOne("Order", "customer_id", order='"latest_order"."id" DESC'),
            "order_count": Stat("Order", "customer_id"),
            "items": HasMany("Item", "order_id", through="orders", order='"items"."id"'),
        }

    @classmethod
    def scopes(cls):
        return {"active": lambda query: query.where(status=1)}

    @classmethod
    def rules(cls):
        return [
            RequiredValidator(attributes="name"),
            NumberValidator(attributes="status", integer_only=True, min=0, max=1),
        ]


class ActiveCustomer(Record, table_name="customer"):

    @classmethod
    def default_scope(cls, query):
        return query.where(status=1)


class Order(Record, table_name="order"):

    @classmethod
    def relations(cls):
        return {
            "customer": BelongsTo(Customer, "customer_id"),
            "items": HasMany("Item", "order_id", order='"items"."id"'),
            "item_count": Stat("Item", "order_id"),
            "quantity": Stat("Item", "order_id", select='SUM("quantity"."quantity")', default_value=0),
        }


class Item(Record, table_name="item"):

    @classmethod
    def relations(cls):
        return {"order": BelongsTo("Order", "order_id")}


class Post(Record, table_name="post"):

    @classmethod
    def relations(cls):
        return {
            "tags": ManyToMany("Tag", "post_tag(post_id, tag_id)", order='"tags"."name"'),
            "tags_by_name": ManyToMany("Tag", "post_tag(post_id, tag_id)", index="name"),
            "tag_count": Stat("Tag", "post_tag(post_id, tag_id)"),
        }


class Tag(Record, table_name="tag"):

    @classmethod
    def relations(cls):
        return {"posts": ManyToMany(Post, "post_tag(tag_id, post_id)", order='"posts"."id"')}


class Org(Record, table_name="org"):

    @classmethod
    def relations(cls):
        return {"members": HasMany("Membership", "org_id", order='"members"."user_id"')}


class Membership(Record, table_name="membership"):

    @classmethod
    def relations(cls):
        return {
            "org": BelongsTo(Org, "org_id"),
            "notes": HasMany("Note", "org_id, user_id", order='"notes"."body"'),
        }


class Note(Record, table_name="note"):
    pass


class LegacyLog(Record, table_name="legacy_log", primary_key="code"):
    pass


def seed_shop(context):
    """Three customers; Ann has two orders, Bob one, Cid none."""
    connection = context.connection
    connection.execute_script([
        "INSERT INTO customer (id, name, status) VALUES (1, 'Ann', 1), (2, 'Bob', 1), (3, 'Cid', 0)",
        'INSERT INTO "order" (id, customer_id, total) VALUES (10, 1, 50), (11, 1, 150), (12, 2, 20)',
        "INSERT INTO item (id, order_id, product, quantity) VALUES "
        "(100, 10, 'pen', 2), (101, 10, 'ink', 1), (102, 11, 'desk', 1), (103, 12, 'cup', 4)",
    ])
    connection.reset()


def seed_blog(context):
    """Posts 1 and 2 share tag 'python'; post 3 has no tag."""
    connection = context.connection
    connection.execute_script([
        "INSERT INTO post (id, title, views, likes) VALUES (1, 'First', 10, 0), (2, 'Second', 0, 0), (3, 'Third', 0, 0)",
        "INSERT INTO tag (id, name) VALUES (1, 'python'), (2, 'sql'), (3, 'orm')",
        "INSERT INTO post_tag (post_id, tag_id, added_by) VALUES (1, 1, 'ann'), (1, 2, 'ann'), (2, 1, 'bob')",
    ])
    connection.reset()


def seed_orgs(context):
    connection = context.connection
    connection.execute_script([
        "INSERT INTO org (id, name) VALUES (1, 'Acme'), (2, 'Initech')",
        "INSERT INTO membership (org_id, user_id, role) VALUES (1, 1, 'owner'), (1, 2, 'member'), (2, 1, 'member')",
        "INSERT INTO note (org_id, user_id, body) VALUES (1, 1, 'a'), (1, 1, 'b'), (1, 2, 'c'), (2, 1, 'd')",
    ])
    connection.reset()


def warm(context, *record_classes):
    """Introspect ``record_classes`` up front so statement counts only cover the code under test."""
    for record_class in record_classes:
        context.describe(record_class)
    context.connection.reset()


def assert_record(record, expected: dict):
    """Assert the record's column values match ``expected`` (only the given columns)."""
    for name, value in expected.items():
        actual = record.get(name)
        assert actual == value, f"{name}: got {actual!r}, expected {value!r}"


def ids(records):
    return [record.get("id") for record in records]
