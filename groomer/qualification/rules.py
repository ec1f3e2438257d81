"""
Qualification rule management.

Rules are validated when created so the engine never meets a malformed
predicate at evaluation time.
"""

import logging
from typing import List

from ..core.database import DatabaseManager, QualificationRule, RULE_FIELDS, RULE_OPERATORS
from ..core.exceptions import RuleNotFoundError, RuleValidationError
from ..utils.validators import is_blank, parse_amount


logger = logging.getLogger(__name__)


NUMERIC_FIELDS = ("revenue", "company_size", "budget")
TEXT_FIELDS = ("industry", "company")

SUBSTRING_OPERATORS = ("contains", "not_contains")
ORDERING_OPERATORS = ("gte", "lte")


def validate_rule(field: str, operator: str, value) -> str:
    """
    Validate a rule definition.

    Returns:
        The normalized (stripped) rule value

    Raises:
        RuleValidationError: If the rule can never be evaluated meaningfully
    """
    if field not in RULE_FIELDS:
        raise RuleValidationError(f"Unknown rule field '{field}' (expected one of {', '.join(RULE_FIELDS)})")
    if operator not in RULE_OPERATORS:
        raise RuleValidationError(
            f"Unknown rule operator '{operator}' (expected one of {', '.join(RULE_OPERATORS)})"
        )
    if is_blank(value):
        raise RuleValidationError("Rule value must not be empty")

    text = str(value).strip()

    if field in NUMERIC_FIELDS:
        if operator in SUBSTRING_OPERATORS:
            raise RuleValidationError(f"Operator '{operator}' is not valid for numeric field '{field}'")
        if parse_amount(text) is None:
            raise RuleValidationError(f"Rule value '{text}' is not a number (field '{field}')")
    elif operator in ORDERING_OPERATORS:
        raise RuleValidationError(f"Operator '{operator}' is not valid for text field '{field}'")

    return text


class RuleManager:
    """
    Creates and lists qualification rules.

    Usage:
        rules = RuleManager(db)
        rules.add_rule(user_id, "Enterprise revenue", "revenue", "gte", "$1,000,000", priority=10)
    """

    def __init__(self, db: DatabaseManager):
        self.db = db

    def add_rule(
        self,
        user_id: int,
        name: str,
        field: str,
        operator: str,
        value,
        priority: int = 0,
        is_active: bool = True,
    ) -> QualificationRule:
        """
        Validate and persist a new rule.

        Raises:
            RuleValidationError: If the rule is malformed
        """
        if is_blank(name):
            raise RuleValidationError("Rule name must not be empty")
        normalized = validate_rule(field, operator, value)

        session = self.db.get_session()
        try:
            rule = QualificationRule(
                user_id=user_id,
                name=name.strip(),
                field=field,
                operator=operator,
                value=normalized,
                priority=priority,
                is_active=is_active,
            )
            session.add(rule)
            session.commit()
            session.refresh(rule)
            logger.info(f"Created rule {rule.id} for user {user_id}: {field} {operator} {normalized!r}")
            return rule
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to create rule for user {user_id}: {e}")
            raise
        finally:
            session.close()

    def get_rule(self, rule_id: int) -> QualificationRule:
        """
        Raises:
            RuleNotFoundError: If no rule has this ID
        """
        with self.db.get_session() as session:
            rule = session.get(QualificationRule, rule_id)
            if not rule:
                raise RuleNotFoundError(f"Rule {rule_id} not found")
            return rule

    def list_rules(self, user_id: int, active_only: bool = False) -> List[QualificationRule]:
        """A user's rules in evaluation order (priority descending, then id)."""
        with self.db.get_session() as session:
            query = session.query(QualificationRule).filter(QualificationRule.user_id == user_id)
            if active_only:
                query = query.filter(QualificationRule.is_active.is_(True))
            return query.order_by(QualificationRule.priority.desc(), QualificationRule.id).all()

    def get_active_rules(self, user_id: int) -> List[QualificationRule]:
        return self.list_rules(user_id, active_only=True)

    def set_active(self, rule_id: int, is_active: bool) -> QualificationRule:
        """
        Enable or disable a rule.

        Raises:
            RuleNotFoundError: If no rule has this ID
        """
        session = self.db.get_session()
        try:
            rule = session.get(QualificationRule, rule_id)
            if not rule:
                raise RuleNotFoundError(f"Rule {rule_id} not found")
            rule.is_active = is_active
            session.commit()
            session.refresh(rule)
            logger.info(f"Rule {rule_id} {'activated' if is_active else 'deactivated'}")
            return rule
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

