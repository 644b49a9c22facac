"""Workflow engine: match workflows to events and execute them.

trigger() finds the tenant's active workflows for an event, highest
priority first, and dispatches each one as a ``workflows.execute`` Celery
job. In eager mode (CELERY_TASK_ALWAYS_EAGER) they run inline on the
caller's session instead.

execute() records a WorkflowRun per execution:

    running -> skipped    conditions not met
            -> completed  every action succeeded
            -> failed     an action failed or the run raised
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from audit.service import to_jsonable
from models.base import utcnow
from models.deal import Deal
from models.invoice import SalesInvoice
from models.lead import Lead
from models.payment import Payment
from models.workflow import Workflow, WorkflowRun
from observability.metrics import workflow_runs_total
from workers.base import runs_inline
from . import conditions
from .actions import WorkflowActionHandler

logger = logging.getLogger(__name__)

ENTITY_MODELS = {
    "lead": Lead,
    "deal": Deal,
    "invoice": SalesInvoice,
    "payment": Payment,
}


def build_trigger(event: str, entity: Any, changes: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Trigger data for condition evaluation and actions.

    ``old_status``/``new_status`` are lifted from a ``status`` change so
    status_change conditions can match them.
    """
    changes = changes or {}
    trigger = {
        "event": event,
        "entity_type": event.split(".", 1)[0],
        "entity": entity,
        "changes": changes,
        "status": getattr(entity, "status", None),
    }
    if isinstance(changes.get("status"), dict):
        trigger["old_status"] = changes["status"].get("old")
        trigger["new_status"] = changes["status"].get("new")
    return trigger


def matching_workflows(db: Session, tenant_id: UUID, event: str) -> List[Workflow]:
    return list(
        db.execute(
            select(Workflow)
            .where(Workflow.tenant_id == tenant_id, Workflow.event == event, Workflow.is_active.is_(True))
            .order_by(Workflow.priority.desc(), Workflow.created_at)
        ).scalars().all()
    )


def trigger(
    db: Session,
    tenant_id: UUID,
    event: str,
    entity: Any,
    changes: Optional[Dict[str, Any]] = None,
) -> int:
    """Dispatch every active workflow of ``tenant_id`` listening to ``event``.

    Returns:
        Number of workflows dispatched
    """
    from .tasks import execute_workflow_task

    workflows = matching_workflows(db, tenant_id, event)
    for workflow in workflows:
        if runs_inline():
            execute(db, workflow, build_trigger(event, entity, changes))
        else:
            execute_workflow_task.delay(
                workflow_id=str(workflow.id),
                event=event,
                entity_id=str(entity.id),
                changes=to_jsonable(changes or {}),
                tenant_id=str(tenant_id),
            )
    if workflows:
        logger.info(f"Dispatched {len(workflows)} workflow(s) for {event}", extra={"tenant_id": str(tenant_id)})
    return len(workflows)


def load_entity(db: Session, entity_type: str, entity_id: UUID) -> Optional[Any]:
    model = ENTITY_MODELS.get(entity_type)
    if model is None:
        return None
    return db.execute(select(model).where(model.id == entity_id)).scalar_one_or_none()


def _finish(run: WorkflowRun, status: str, results: list, error: Optional[str] = None) -> None:
    run.status = status
    run.results = results
    run.error_message = error
    run.completed_at = utcnow()
    workflow_runs_total.labels(event=run.event, status=status).inc()


def execute(db: Session, workflow: Workflow, trigger_data: Dict[str, Any]) -> Dict[str, Any]:
    """Run ``workflow`` for one trigger; the caller commits.

    Args:
        db: Session scoped to the workflow's tenant
        workflow: Workflow to run
        trigger_data: Output of build_trigger()

    Returns:
        ``{"success", "workflow_id", "run_id", "status", "results"}``
        plus ``"reason"`` when skipped and ``"error"`` when the run raised
    """
    entity = trigger_data.get("entity")
    run = WorkflowRun(
        tenant_id=workflow.tenant_id,
        workflow_id=workflow.id,
        event=trigger_data.get("event") or workflow.event,
        entity_type=trigger_data.get("entity_type"),
        entity_id=getattr(entity, "id", None),
        status="running",
        trigger_data=to_jsonable({"changes": trigger_data.get("changes") or {}}),
        started_at=utcnow(),
    )
    db.add(run)
    db.flush()

    summary = {"workflow_id": str(workflow.id), "run_id": str(run.id)}
    results: list = []
    try:
        if not conditions.evaluate(workflow.conditions, trigger_data):
            _finish(run, "skipped", [{"message": "Conditions not met, workflow skipped"}])
            db.flush()
            return {**summary, "success": False, "status": "skipped", "reason": "Conditions not met", "results": []}

        handler = WorkflowActionHandler(db, workflow.tenant_id)
        for action in workflow.actions or []:
            results.append(handler.execute(action, trigger_data))

        failed = any(not result.get("success") for result in results)
        _finish(run, "failed" if failed else "completed", results)
        db.flush()
        return {**summary, "success": not failed, "status": run.status, "results": results}

    except Exception as e:
        logger.error(f"Workflow {workflow.id} execution failed: {e}", exc_info=True)
        _finish(run, "failed", results, error=str(e))
        db.flush()
        return {**summary, "success": False, "status": "failed", "error": str(e), "results": results}
