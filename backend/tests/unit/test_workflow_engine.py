"""Workflow engine tests: run bookkeeping and actions (eager mode runs inline)"""

import pytest
from sqlalchemy import select

from models.contact import Activity
from models.lead import Lead
from models.workflow import Workflow, WorkflowRun
from workflows import engine


@pytest.fixture
def lead(db_session, tenant):
    lead = Lead(tenant_id=tenant.id, name="Ada Lovelace", email="ada@example.com", source="website", status="new")
    db_session.add(lead)
    db_session.commit()
    return lead


def _workflow(db_session, tenant, event="lead.created", conditions=None, actions=None, **extra):
    workflow = Workflow(
        tenant_id=tenant.id,
        name=extra.pop("name", "Follow up"),
        event=event,
        conditions=conditions or [],
        actions=actions or [],
        **extra,
    )
    db_session.add(workflow)
    db_session.commit()
    return workflow


def test_trigger_runs_actions_inline(db_session, tenant, lead, sales_user):
    _workflow(db_session, tenant, actions=[
        {"type": "assign_user", "user_id": str(sales_user.id)},
        {"type": "create_activity", "activity_type": "call", "subject": "Call {{name}}"},
    ])

    assert engine.trigger(db_session, tenant.id, "lead.created", lead) == 1

    run = db_session.execute(select(WorkflowRun)).scalar_one()
    assert run.status == "completed"
    assert run.entity_type == "lead"
    assert run.entity_id == lead.id
    assert run.completed_at is not None

    assert lead.assigned_to == sales_user.id
    activity = db_session.execute(select(Activity).where(Activity.related_id == lead.id)).scalar_one()
    assert activity.subject == "Call Ada Lovelace"
    assert activity.type == "call"
    assert activity.assigned_to == sales_user.id


def test_unmet_conditions_mark_run_skipped(db_session, tenant, lead):
    workflow = _workflow(
        db_session, tenant,
        conditions=[{"type": "field_equals", "field": "source", "value": "referral"}],
        actions=[{"type": "create_activity", "subject": "Never"}],
    )

    result = engine.execute(db_session, workflow, engine.build_trigger("lead.created", lead))

    assert result["status"] == "skipped"
    assert result["reason"] == "Conditions not met"
    assert db_session.execute(select(Activity)).scalars().all() == []


def test_failed_action_marks_run_failed_but_runs_the_rest(db_session, tenant, lead):
    workflow = _workflow(db_session, tenant, actions=[
        {"type": "teleport"},
        {"type": "create_activity", "subject": "Still created"},
    ])

    result = engine.execute(db_session, workflow, engine.build_trigger("lead.created", lead))

    assert result["status"] == "failed"
    assert result["results"][0] == {"success": False, "error": "Unknown action type: teleport"}
    assert result["results"][1]["success"] is True


def test_assign_user_rejects_foreign_user(db_session, tenant, lead, other_admin):
    workflow = _workflow(db_session, tenant, actions=[{"type": "assign_user", "user_id": str(other_admin.id)}])

    result = engine.execute(db_session, workflow, engine.build_trigger("lead.created", lead))

    assert result["status"] == "failed"
    assert result["results"][0]["error"] == "User not found or not in same tenant"
    assert lead.assigned_to is None


def test_only_active_workflows_of_the_tenant_match(db_session, tenant, other_tenant):
    _workflow(db_session, tenant, name="low", priority=1)
    _workflow(db_session, tenant, name="high", priority=5)
    _workflow(db_session, tenant, name="off", is_active=False)
    _workflow(db_session, tenant, name="deal", event="deal.created")
    _workflow(db_session, other_tenant, name="foreign")

    names = [w.name for w in engine.matching_workflows(db_session, tenant.id, "lead.created")]
    assert names == ["high", "low"]


def test_build_trigger_lifts_status_change(lead):
    trigger = engine.build_trigger("lead.updated", lead, {"status": {"old": "new", "new": "qualified"}})
    assert trigger["old_status"] == "new"
    assert trigger["new_status"] == "qualified"
    assert trigger["entity_type"] == "lead"
