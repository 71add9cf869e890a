"""Tests for relata.validation: validators and rule validation on records."""

import pytest

from relata.validation import (
    BooleanValidator,
    NumberValidator,
    RequiredValidator,
    RuleValidation,
    Validator,
    format_message,
)

from tests.helpers import Customer


class FakeRecord:
    """Minimal record: get/add_error/clear_errors/has_errors/rules."""

    def __init__(self, rules=(), **values):
        self.values = values
        self.errors = {}
        self._rules = list(rules)

    def get(self, name):
        return self.values.get(name)

    def add_error(self, name, message):
        self.errors.setdefault(name, []).append(message)

    def clear_errors(self, names=None):
        if names is None:
            self.errors.clear()
        for name in names or ():
            self.errors.pop(name, None)

    def has_errors(self):
        return bool(self.errors)

    def rules(self):
        return self._rules


def test_format_message():
    assert format_message("{attribute} must be {min}", attribute="age", min=3) == "age must be 3"
    assert format_message("{unknown}") == "{unknown}"


def test_attributes_accept_comma_separated_string():
    assert RequiredValidator(attributes="a, b").attributes == ("a", "b")


class TestNumberValidator:

    @pytest.mark.parametrize("value", [1, "12", " -3 ", 4.5, "1e3", ".5"])
    def test_numbers(self, value):
        assert NumberValidator(attributes="x").validate_value(value)

    @pytest.mark.parametrize("value", ["abc", "1.2.3", "", [1]])
    def test_not_numbers(self, value):
        assert not NumberValidator(attributes="x").validate_value(value)

    def test_integer_only(self):
        validator = NumberValidator(attributes="x", integer_only=True)
        assert validator.validate_value("42")
        assert not validator.validate_value("4.2")

    def test_range_messages(self):
        validator = NumberValidator(attributes="age", min=18, max=65)
        record = FakeRecord(age=12)
        validator.validate_attributes(record)
        assert record.errors == {"age": ["age must be no less than 18."]}
        record = FakeRecord(age="70")
        validator.validate_attributes(record)
        assert record.errors == {"age": ["age must be no greater than 65."]}

    def test_type_messages(self):
        record = FakeRecord(age="x", count="1.5", tags=[1])
        NumberValidator(attributes="age").validate_attributes(record)
        NumberValidator(attributes="count", integer_only=True).validate_attributes(record)
        NumberValidator(attributes="tags").validate_attributes(record)
        assert record.errors == {
            "age": ["age must be a number."],
            "count": ["count must be an integer."],
            "tags": ["tags is invalid."],
        }

    def test_skip_on_empty(self):
        record = FakeRecord(age=None)
        NumberValidator(attributes="age").validate_attributes(record)
        assert record.errors == {}
        NumberValidator(attributes="age", skip_on_empty=False).validate_attributes(record)
        assert record.errors == {"age": ["age must be a number."]}


class TestBooleanValidator:

    @pytest.mark.parametrize("value", ["1", "0", 1, 0, True, False])
    def test_loose(self, value):
        assert BooleanValidator(attributes="x").validate_value(value)

    def test_strict(self):
        validator = BooleanValidator(attributes="x", strict=True)
        assert validator.validate_value("1")
        assert not validator.validate_value(1)
        assert not validator.validate_value(True)

    def test_message(self):
        record = FakeRecord(active="yes")
        BooleanValidator(attributes="active").validate_attributes(record)
        assert record.errors == {"active": ['active must be either "1" or "0".']}

    def test_custom_values(self):
        validator = BooleanValidator(attributes="x", true_value="y", false_value="n", message="{attribute}: {true}/{false}")
        record = FakeRecord(x="maybe")
        validator.validate_attributes(record)
        assert record.errors == {"x": ["x: y/n"]}


def test_required_validator():
    validator = RequiredValidator(attributes="name")
    for value in (None, "", "   ", []):
        record = FakeRecord(name=value)
        validator.validate_attributes(record)
        assert record.errors == {"name": ["name cannot be blank."]}
    record = FakeRecord(name="Ann")
    validator.validate_attributes(record)
    assert record.errors == {}


def test_rule_validation_restricted_to_names():
    record = FakeRecord(
        rules=[RequiredValidator(attributes="a, b")],
        a=None,
        b=None,
    )
    assert not RuleValidation().validate(record, ["a"])
    assert list(record.errors) == ["a"]
    record.values["a"] = "x"
    assert RuleValidation().validate(record, ["a"])


def test_validator_base_is_abstract():
    with pytest.raises(TypeError):
        Validator(attributes="name")

    class EvenValidator(Validator):
        def validate_value(self, value):
            return value % 2 == 0

    record = FakeRecord(count=3)
    EvenValidator(attributes="count").validate_attributes(record)
    assert record.errors == {"count": ["count is invalid."]}


def test_rule_validation_rejects_non_validators():
    record = FakeRecord(rules=["required"])
    with pytest.raises(TypeError):
        RuleValidation().validate(record)


def test_rule_validation_on_record(setup_db):
    customer = Customer(setup_db, status=5)
    assert not customer.validate()
    assert customer.errors == {
        "name": ["name cannot be blank."],
        "status": ["status must be no greater than 1."],
    }
    customer.set("name", "Ann")
    customer.set("status", 1)
    assert customer.validate()
    assert customer.errors == {}
