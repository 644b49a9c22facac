"""Celery task running one workflow for one event"""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

from celery import shared_task
from sqlalchemy import select

from models.workflow import Workflow
from workers.base import BaseTask, get_scoped_session, validate_tenant_id
from . import engine

logger = logging.getLogger(__name__)


@shared_task(base=BaseTask, name="workflows.execute")
def execute_workflow_task(
    workflow_id: str,
    event: str,
    entity_id: str,
    tenant_id: str,
    changes: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Load the workflow and its entity in the tenant's scope and execute it.

    Inactive or deleted workflows and vanished entities are skipped.

    Returns:
        engine.execute() summary, or {"status": "skipped", "reason": ...}
    """
    tenant_uuid = validate_tenant_id(tenant_id)
    session = get_scoped_session(tenant_uuid)
    try:
        workflow = session.execute(
            select(Workflow).where(Workflow.id == UUID(workflow_id))
        ).scalar_one_or_none()
        if workflow is None or not workflow.is_active:
            return {"status": "skipped", "reason": "Workflow not found or inactive"}

        entity_type = event.split(".", 1)[0]
        entity = engine.load_entity(session, entity_type, UUID(entity_id))
        if entity is None:
            logger.warning(f"Workflow {workflow_id}: {entity_type} {entity_id} not found")
            return {"status": "skipped", "reason": "Entity not found"}

        result = engine.execute(session, workflow, engine.build_trigger(event, entity, changes))
        session.commit()
        return result
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
