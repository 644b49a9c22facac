"""Workflow condition evaluation.

A workflow runs only when every condition passes; an empty list always
passes. Condition objects:

    {"type": "status_change", "from_status": "open", "to_status": "won"}
    {"type": "date_reached", "date_field": "expected_close_date",
     "comparison": "equals|before|after|overdue", "target_date": "2026-06-30"}
    {"type": "value_threshold", "field": "amount", "operator": "gte", "threshold": 10000}
    {"type": "field_equals", "field": "source", "operator": "in", "value": ["website", "referral"]}

Unknown types and malformed conditions fail closed.
"""

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, Optional

from models.base import ensure_aware, utcnow


def _as_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    try:
        return ensure_aware(datetime.fromisoformat(str(value)))
    except ValueError:
        return None


def _as_number(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def status_change(condition: Dict[str, Any], trigger: Dict[str, Any]) -> bool:
    from_status = condition.get("from_status")
    to_status = condition.get("to_status")
    if from_status and trigger.get("old_status") != from_status:
        return False
    if to_status and (trigger.get("new_status") or trigger.get("status")) != to_status:
        return False
    return True


def date_reached(condition: Dict[str, Any], trigger: Dict[str, Any]) -> bool:
    entity = trigger.get("entity")
    entity_date = _as_datetime(getattr(entity, condition.get("date_field") or "due_date", None))
    if entity_date is None:
        return False

    now = utcnow()
    target = _as_datetime(condition.get("target_date")) if condition.get("target_date") else now
    if target is None:
        return False

    comparison = condition.get("comparison") or "equals"
    if comparison == "equals":
        return entity_date.date() == target.date()
    if comparison == "before":
        return entity_date < target
    if comparison == "after":
        return entity_date > target
    if comparison == "overdue":
        return entity_date < now
    return False


def value_threshold(condition: Dict[str, Any], trigger: Dict[str, Any]) -> bool:
    field = condition.get("field")
    if not field:
        return False
    value = _as_number(getattr(trigger.get("entity"), field, None))
    threshold = _as_number(condition.get("threshold", 0))
    if value is None or threshold is None:
        return False

    operator = condition.get("operator") or "gte"
    if operator == "gte":
        return value >= threshold
    if operator == "lte":
        return value <= threshold
    if operator == "gt":
        return value > threshold
    if operator == "lt":
        return value < threshold
    if operator == "equals":
        return value == threshold
    return False


def field_equals(condition: Dict[str, Any], trigger: Dict[str, Any]) -> bool:
    field = condition.get("field")
    entity = trigger.get("entity")
    if not field or entity is None or getattr(entity, field, None) is None:
        return False

    actual = getattr(entity, field)
    expected = condition.get("value")
    # Compare the way the value arrives in JSON: UUIDs and decimals as text
    if not isinstance(actual, (str, int, float, bool)):
        actual = str(actual)

    operator = condition.get("operator") or "equals"
    if operator == "equals":
        return actual == expected
    if operator == "not_equals":
        return actual != expected
    if operator == "contains":
        return isinstance(actual, str) and expected is not None and str(expected) in actual
    values = expected if isinstance(expected, list) else [expected]
    if operator == "in":
        return actual in values
    if operator == "not_in":
        return actual not in values
    return False


EVALUATORS = {
    "status_change": status_change,
    "date_reached": date_reached,
    "value_threshold": value_threshold,
    "field_equals": field_equals,
}


def evaluate(conditions: Optional[Iterable[Dict[str, Any]]], trigger: Dict[str, Any]) -> bool:
    """True when every condition passes for ``trigger``.

    Args:
        conditions: Condition objects from Workflow.conditions
        trigger: ``{"entity": ORM instance, "old_status": ..., "new_status": ..., ...}``
    """
    for condition in conditions or []:
        evaluator = EVALUATORS.get((condition or {}).get("type"))
        if evaluator is None or not evaluator(condition, trigger):
            return False
    return True
