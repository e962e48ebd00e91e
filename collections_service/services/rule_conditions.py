"""
Condition trees attached to transition rules.

A condition is either a comparison against a debt field or a logical
combination of other conditions::

    {"type": "comparison", "field": "days_overdue", "operator": "gt", "value": 30}
    {"type": "logical", "operator": "and", "conditions": [...]}
"""
import operator
from typing import Any, Callable, Dict, Mapping

from collections_service.core.exceptions import InvalidConditionError

CONDITION_FIELDS = frozenset({
    "total_debt",
    "capital_balance",
    "days_overdue",
    "days_in_management",
    "current_state_id",
    "assigned_manager_id",
})

COMPARISON_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "eq": operator.eq,
    "neq": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
    "in": lambda actual, expected: actual in expected,
    "not_in": lambda actual, expected: actual not in expected,
}

LOGICAL_OPERATORS = frozenset({"and", "or", "not"})

ORDERING_OPERATORS = frozenset({"gt", "gte", "lt", "lte"})


def validate_condition(condition: Any) -> None:
    """
    Check the shape of a condition tree.

    Raises:
        InvalidConditionError: If any node is malformed
    """
    if not isinstance(condition, Mapping):
        raise InvalidConditionError("Condition must be an object")

    condition_type = condition.get("type")
    op = condition.get("operator")

    if condition_type == "comparison":
        field = condition.get("field")
        if field not in CONDITION_FIELDS:
            raise InvalidConditionError(f"Unknown condition field: {field!r}")
        if op not in COMPARISON_OPERATORS:
            raise InvalidConditionError(f"Unknown comparison operator: {op!r}")
        if "value" not in condition:
            raise InvalidConditionError("Comparison requires a value")
        if op in ("in", "not_in") and not isinstance(condition["value"], list):
            raise InvalidConditionError(f"Operator {op!r} requires a list value")
        return

    if condition_type == "logical":
        if op not in LOGICAL_OPERATORS:
            raise InvalidConditionError(f"Unknown logical operator: {op!r}")
        children = condition.get("conditions")
        if not isinstance(children, list) or not children:
            raise InvalidConditionError("Logical condition requires a non-empty conditions list")
        if op == "not" and len(children) != 1:
            raise InvalidConditionError("'not' takes exactly one condition")
        for child in children:
            validate_condition(child)
        return

    raise InvalidConditionError(f"Unknown condition type: {condition_type!r}")


def evaluate_condition(condition: Mapping[str, Any], context: Mapping[str, Any]) -> bool:
    """
    Evaluate a validated condition tree against a debt context.

    A missing field reads as null. Null never satisfies an ordering
    comparison, but takes part in equality and membership, so ``neq`` and
    ``not_in`` hold for it unless the expected value includes null.
    Comparisons between incompatible types are false rather than errors.
    """
    op = condition["operator"]

    if condition["type"] == "logical":
        results = (evaluate_condition(child, context) for child in condition["conditions"])
        if op == "and":
            return all(results)
        if op == "or":
            return any(results)
        return not next(results)

    actual = context.get(condition["field"])
    if actual is None and op in ORDERING_OPERATORS:
        return False
    try:
        return bool(COMPARISON_OPERATORS[op](actual, condition["value"]))
    except TypeError:
        return False
