"""Unit tests for workflow condition evaluation"""

from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace

from workflows.conditions import evaluate, field_equals, status_change, value_threshold


def _deal(**attrs):
    defaults = {"status": "open", "amount": Decimal("5000"), "source": None, "expected_close_date": None}
    defaults.update(attrs)
    return SimpleNamespace(**defaults)


class TestStatusChange:
    def test_matches_transition(self):
        trigger = {"entity": _deal(status="won"), "old_status": "open", "new_status": "won"}
        assert status_change({"type": "status_change", "from_status": "open", "to_status": "won"}, trigger)

    def test_wrong_target_status(self):
        trigger = {"entity": _deal(status="lost"), "old_status": "open", "new_status": "lost"}
        assert not status_change({"type": "status_change", "to_status": "won"}, trigger)

    def test_to_status_falls_back_to_current_status(self):
        trigger = {"entity": _deal(status="won"), "status": "won"}
        assert status_change({"type": "status_change", "to_status": "won"}, trigger)


class TestValueThreshold:
    def test_gte(self):
        trigger = {"entity": _deal(amount=Decimal("10000"))}
        assert value_threshold({"field": "amount", "operator": "gte", "threshold": 10000}, trigger)

    def test_lt(self):
        trigger = {"entity": _deal(amount=Decimal("10000"))}
        assert not value_threshold({"field": "amount", "operator": "lt", "threshold": "9999.99"}, trigger)

    def test_missing_field_fails(self):
        assert not value_threshold({"operator": "gte", "threshold": 1}, {"entity": _deal()})

    def test_non_numeric_value_fails(self):
        trigger = {"entity": _deal(amount="n/a")}
        assert not value_threshold({"field": "amount", "threshold": 1}, trigger)


class TestFieldEquals:
    def test_in_list(self):
        trigger = {"entity": _deal(source="referral")}
        condition = {"field": "source", "operator": "in", "value": ["website", "referral"]}
        assert field_equals(condition, trigger)

    def test_not_equals(self):
        trigger = {"entity": _deal(source="website")}
        assert field_equals({"field": "source", "operator": "not_equals", "value": "cold_call"}, trigger)

    def test_none_value_never_matches(self):
        assert not field_equals({"field": "source", "value": None}, {"entity": _deal(source=None)})


class TestEvaluate:
    def test_empty_conditions_pass(self):
        assert evaluate([], {"entity": _deal()})

    def test_all_conditions_must_pass(self):
        trigger = {"entity": _deal(amount=Decimal("20000"), status="won"), "new_status": "won"}
        conditions = [
            {"type": "status_change", "to_status": "won"},
            {"type": "value_threshold", "field": "amount", "operator": "gte", "threshold": 50000},
        ]
        assert not evaluate(conditions, trigger)

    def test_unknown_condition_type_fails_closed(self):
        assert not evaluate([{"type": "moon_phase"}], {"entity": _deal()})

    def test_date_reached_before(self):
        tomorrow = date.today() + timedelta(days=1)
        trigger = {"entity": _deal(expected_close_date=date.today())}
        condition = {
            "type": "date_reached",
            "date_field": "expected_close_date",
            "comparison": "before",
            "target_date": tomorrow.isoformat(),
        }
        assert evaluate([condition], trigger)

    def test_date_reached_missing_date(self):
        condition = {"type": "date_reached", "date_field": "expected_close_date", "comparison": "overdue"}
        assert not evaluate([condition], {"entity": _deal()})
