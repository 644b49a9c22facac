"""Deal lifecycle: creation, stage moves, won/lost transitions.

Stage and status transitions are appended to DealHistory. Functions flush
but never commit; callers commit and then publish the events returned by
``events_for_changes``.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from exceptions import BusinessRuleError, NotFoundError
from models.deal import Deal, DealHistory, Pipeline, PipelineStage
from models.user import User
from users.service import get_tenant_user

logger = logging.getLogger(__name__)

PIPELINE_REQUIRED = "Pipeline and stage are required to create a deal."

TRACKED_FIELDS = ("stage_id", "status")
UPDATABLE_FIELDS = (
    "title",
    "amount",
    "currency",
    "probability",
    "expected_close_date",
    "contact_id",
    "assigned_to",
    "pipeline_id",
    "stage_id",
    "status",
)


def default_pipeline(db: Session) -> Optional[Pipeline]:
    return db.execute(
        select(Pipeline).where(Pipeline.is_default.is_(True)).order_by(Pipeline.created_at)
    ).scalars().first()


def get_stage(db: Session, stage_id: UUID) -> PipelineStage:
    stage = db.execute(select(PipelineStage).where(PipelineStage.id == stage_id)).scalar_one_or_none()
    if stage is None:
        raise NotFoundError("Pipeline stage not found")
    return stage


def resolve_pipeline_stage(
    db: Session,
    pipeline_id: Optional[UUID] = None,
    stage_id: Optional[UUID] = None,
) -> Tuple[Pipeline, PipelineStage]:
    """Pick the pipeline and stage for a new deal.

    Without ``pipeline_id`` the tenant's default pipeline is used; without
    ``stage_id`` the pipeline's first stage.

    Raises:
        BusinessRuleError: No pipeline/stage available, or the stage belongs
            to another pipeline
    """
    if pipeline_id is not None:
        pipeline = db.execute(select(Pipeline).where(Pipeline.id == pipeline_id)).scalar_one_or_none()
    else:
        pipeline = default_pipeline(db)
    if pipeline is None:
        raise BusinessRuleError(PIPELINE_REQUIRED)

    if stage_id is not None:
        stage = db.execute(select(PipelineStage).where(PipelineStage.id == stage_id)).scalar_one_or_none()
    else:
        stage = pipeline.stages[0] if pipeline.stages else None
    if stage is None:
        raise BusinessRuleError(PIPELINE_REQUIRED)

    if stage.pipeline_id != pipeline.id:
        raise BusinessRuleError(
            "The selected stage does not belong to the pipeline.",
            {"stage_id": ["The selected stage does not belong to the pipeline."]},
        )
    return pipeline, stage


def _record_history(db: Session, deal: Deal, field: str, old: Any, new: Any, actor: Optional[User]) -> None:
    db.add(
        DealHistory(
            tenant_id=deal.tenant_id,
            deal_id=deal.id,
            field=field,
            old_value=None if old is None else str(old),
            new_value=None if new is None else str(new),
            changed_by=actor.id if actor else None,
        )
    )


def create_deal(db: Session, data: Dict[str, Any], actor: Optional[User] = None) -> Deal:
    """Create an open deal.

    Args:
        db: Tenant-scoped session
        data: Deal fields; pipeline_id/stage_id are optional (defaults apply)
        actor: Creating user

    Returns:
        The new deal (flushed)
    """
    pipeline, stage = resolve_pipeline_stage(db, data.get("pipeline_id"), data.get("stage_id"))
    get_tenant_user(db, data.get("assigned_to"))

    probability = data.get("probability")
    deal = Deal(
        pipeline_id=pipeline.id,
        stage_id=stage.id,
        lead_id=data.get("lead_id"),
        contact_id=data.get("contact_id"),
        title=data["title"],
        amount=Decimal(str(data.get("amount") or 0)),
        currency=data.get("currency") or "USD",
        probability=stage.probability if probability is None else probability,
        expected_close_date=data.get("expected_close_date"),
        status="open",
        assigned_to=data.get("assigned_to"),
        created_by=actor.id if actor else None,
    )
    db.add(deal)
    db.flush()
    return deal


def update_deal(db: Session, deal: Deal, data: Dict[str, Any], actor: Optional[User] = None) -> Dict[str, Dict[str, Any]]:
    """Apply a partial update and return the changed fields.

    A stage change re-validates the stage against the (possibly new)
    pipeline. Stage and status changes are written to DealHistory.

    Returns:
        ``{field: {"old": ..., "new": ...}}`` for every changed field
    """
    if "assigned_to" in data:
        get_tenant_user(db, data["assigned_to"])

    if "pipeline_id" in data or "stage_id" in data:
        pipeline_id = data.get("pipeline_id", deal.pipeline_id)
        stage_id = data.get("stage_id")
        if stage_id is None and pipeline_id == deal.pipeline_id:
            stage_id = deal.stage_id
        _, stage = resolve_pipeline_stage(db, pipeline_id, stage_id)
        data = {**data, "pipeline_id": pipeline_id, "stage_id": stage.id}

    changes: Dict[str, Dict[str, Any]] = {}
    for field in UPDATABLE_FIELDS:
        if field not in data:
            continue
        new = data[field]
        if field == "amount" and new is not None:
            new = Decimal(str(new))
        old = getattr(deal, field)
        if old == new:
            continue
        setattr(deal, field, new)
        changes[field] = {"old": old, "new": getattr(deal, field)}
        if field in TRACKED_FIELDS:
            _record_history(db, deal, field, old, new, actor)

    db.flush()
    return changes


def move_stage(db: Session, deal: Deal, stage_id: UUID, actor: Optional[User] = None) -> Dict[str, Dict[str, Any]]:
    """Move the deal within its pipeline; probability follows the stage."""
    stage = get_stage(db, stage_id)
    if stage.pipeline_id != deal.pipeline_id:
        raise BusinessRuleError(
            "The selected stage does not belong to the pipeline.",
            {"stage_id": ["The selected stage does not belong to the pipeline."]},
        )
    return update_deal(db, deal, {"stage_id": stage.id, "probability": stage.probability}, actor)


def mark_won(db: Session, deal: Deal, actor: Optional[User] = None) -> Dict[str, Dict[str, Any]]:
    return update_deal(db, deal, {"status": "won", "probability": 100}, actor)


def mark_lost(db: Session, deal: Deal, actor: Optional[User] = None) -> Dict[str, Dict[str, Any]]:
    return update_deal(db, deal, {"status": "lost", "probability": 0}, actor)


def events_for_changes(changes: Dict[str, Any]) -> List[str]:
    """Events to publish after an update with ``changes``."""
    if not changes:
        return []
    events = ["deal.updated"]
    if "stage_id" in changes:
        events.append("deal.stage_changed")
    if "status" in changes:
        events.append("deal.status_changed")
    return events
