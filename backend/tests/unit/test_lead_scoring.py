"""Unit tests for lead scoring rules"""

from datetime import timedelta
from types import SimpleNamespace

from leads.conversion import split_name
from leads.scoring import DEFAULT_SCORING_RULES, get_scoring_rules, score_breakdown
from models.base import utcnow
from models.tenant import Tenant


def _lead(**attrs):
    defaults = {"email": None, "phone": None, "source": None, "status": "new"}
    defaults.update(attrs)
    return SimpleNamespace(**defaults)


def _activity(type_, status="completed", days_ago=30):
    return SimpleNamespace(type=type_, status=status, created_at=utcnow() - timedelta(days=days_ago))


def test_contact_info_source_and_status():
    lead = _lead(email="grace@navy.com", phone="+1 555 0100", source="referral", status="qualified")
    breakdown = score_breakdown(lead, [], DEFAULT_SCORING_RULES)
    assert breakdown == {"email": 10, "phone": 10, "source": 30, "status": 20}


def test_activities_and_task_completion_bonus():
    activities = [_activity("call"), _activity("meeting"), _activity("task", status="completed")]
    breakdown = score_breakdown(_lead(status="unqualified"), activities, DEFAULT_SCORING_RULES)
    # call 5 + meeting 15 + completed task 10
    assert breakdown == {"activities": 30}


def test_recent_and_high_engagement_bonus():
    activities = [_activity("note", days_ago=1) for _ in range(5)]
    breakdown = score_breakdown(_lead(status="unqualified"), activities, DEFAULT_SCORING_RULES)
    assert breakdown == {"engagement": 25}


def test_tenant_overrides_merge_per_category():
    tenant = Tenant(name="Acme Corp", slug="acme", settings={"lead_scoring_rules": {"source": {"referral": 50}}})
    rules = get_scoring_rules(tenant)
    assert rules["source"]["referral"] == 50
    assert rules["source"]["website"] == 20
    assert rules["status"] == DEFAULT_SCORING_RULES["status"]


def test_no_overrides_returns_defaults():
    tenant = Tenant(name="Acme Corp", slug="acme", settings={})
    assert get_scoring_rules(tenant) is DEFAULT_SCORING_RULES


def test_split_name_keeps_remainder_as_last_name():
    assert split_name("Ada King Lovelace") == ("Ada", "King Lovelace")
    assert split_name("Plato") == ("Plato", "")
