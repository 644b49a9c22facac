"""Domain event bus and subscriber tests"""

import pytest
from sqlalchemy import select

from events import DomainEvent, publish, subscribe, unsubscribe
from events.handlers import audit_action, split_changes
from models.audit_log import AuditLog
from models.lead import Lead


@pytest.fixture
def lead(db_session, tenant):
    lead = Lead(tenant_id=tenant.id, name="Ada Lovelace", email="ada@example.com", status="new")
    db_session.add(lead)
    db_session.commit()
    return lead


@pytest.mark.parametrize(
    "name, action",
    [
        ("lead.created", "created"),
        ("deal.deleted", "deleted"),
        ("invoice.issued", "INVOICE_ISSUED"),
        ("payment.applied", "PAYMENT_APPLIED"),
        ("deal.stage_changed", "updated"),
        ("lead.converted", "updated"),
    ],
)
def test_audit_action(name, action):
    assert audit_action(DomainEvent(name=name, tenant_id=None, entity=None)) == action


def test_split_changes():
    old, new = split_changes({"status": {"old": "open", "new": "won"}, "notes": "plain"})
    assert old == {"status": "open"}
    assert new == {"status": "won", "notes": "plain"}


def test_publish_writes_one_audit_entry(db_session, tenant, lead, admin_user):
    publish(db_session, "lead.updated", lead, actor=admin_user,
            changes={"status": {"old": "new", "new": "contacted"}})

    entry = db_session.execute(select(AuditLog).where(AuditLog.model_id == lead.id)).scalar_one()
    assert entry.action == "updated"
    assert entry.actor_id == admin_user.id
    assert entry.old_values == {"status": "new"}
    assert entry.new_values == {"status": "contacted"}
    assert entry.metadata_json == {"event": "lead.updated"}


def test_failing_handler_does_not_stop_the_others(db_session, tenant, lead):
    calls = []

    @subscribe("lead.created", name="explodes")
    def explodes(db, event):
        raise RuntimeError("boom")

    @subscribe("lead.created", name="records")
    def records(db, event):
        calls.append(event.name)

    try:
        event = publish(db_session, "lead.created", lead)
    finally:
        unsubscribe("lead.created", "explodes")
        unsubscribe("lead.created", "records")

    assert event.tenant_id == tenant.id
    assert calls == ["lead.created"]
    entry = db_session.execute(select(AuditLog).where(AuditLog.model_id == lead.id)).scalar_one()
    assert entry.action == "created"
    assert entry.new_values["name"] == "Ada Lovelace"
