"""
Unit tests for qualification rule validation and management.
"""

import pytest

from groomer.core.exceptions import RuleNotFoundError, RuleValidationError
from groomer.qualification.rules import RuleManager, validate_rule
from tests.factories import DatabaseTestFactory, persist


class TestValidateRule:

    def test_normalizes_value(self):
        assert validate_rule("industry", "eq", "  Software ") == "Software"

    @pytest.mark.parametrize(
        "field,operator,value",
        [
            ("headcount", "gte", "10"),  # Unknown field
            ("revenue", "between", "10"),  # Unknown operator
            ("revenue", "gte", "   "),  # Empty value
            ("revenue", "gte", "lots"),  # Non-numeric value for numeric field
            ("budget", "contains", "100"),  # Substring operator on numeric field
            ("industry", "gte", "Software"),  # Ordering operator on text field
        ],
    )
    def test_rejects_malformed_rules(self, field, operator, value):
        with pytest.raises(RuleValidationError):
            validate_rule(field, operator, value)

    def test_accepts_formatted_amounts(self):
        assert validate_rule("revenue", "gte", "$1,000,000") == "$1,000,000"


class TestRuleManager:

    @pytest.fixture
    def user(self, test_db):
        return persist(test_db, DatabaseTestFactory.create_user())

    @pytest.fixture
    def rules(self, test_db):
        return RuleManager(test_db)

    def test_add_rule_persists(self, rules, user):
        rule = rules.add_rule(user.id, " Enterprise ", "company_size", "gte", " 500 ", priority=5)

        stored = rules.get_rule(rule.id)
        assert stored.name == "Enterprise"
        assert stored.value == "500"
        assert stored.priority == 5
        assert stored.is_active

    def test_add_rule_rejects_blank_name(self, rules, user):
        with pytest.raises(RuleValidationError):
            rules.add_rule(user.id, "", "industry", "eq", "Software")

    def test_list_rules_orders_by_priority_then_id(self, rules, user):
        low = rules.add_rule(user.id, "Low", "industry", "eq", "Software", priority=1)
        high = rules.add_rule(user.id, "High", "revenue", "gte", "1000", priority=10)
        low_too = rules.add_rule(user.id, "Low too", "company", "ne", "Competitor", priority=1)

        assert [r.id for r in rules.list_rules(user.id)] == [high.id, low.id, low_too.id]

    def test_active_rules_exclude_disabled(self, rules, user):
        kept = rules.add_rule(user.id, "Kept", "industry", "eq", "Software")
        dropped = rules.add_rule(user.id, "Dropped", "industry", "eq", "Retail")

        rules.set_active(dropped.id, False)

        assert [r.id for r in rules.get_active_rules(user.id)] == [kept.id]
        assert len(rules.list_rules(user.id)) == 2

    def test_rules_are_scoped_to_user(self, test_db, rules, user):
        other = persist(test_db, DatabaseTestFactory.create_user())
        rules.add_rule(other.id, "Other", "industry", "eq", "Software")

        assert rules.list_rules(user.id) == []

    def test_unknown_rule_raises(self, rules):
        with pytest.raises(RuleNotFoundError):
            rules.get_rule(404)
        with pytest.raises(RuleNotFoundError):
            rules.set_active(404, False)
