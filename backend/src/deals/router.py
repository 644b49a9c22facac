"""Pipeline and deal endpoints.

Deal mutations publish ``deal.*`` events after commit; stage and status
transitions additionally publish ``deal.stage_changed`` /
``deal.status_changed``, which notify the assignee.
"""

from typing import Any, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from audit.service import audit_service
from auth.dependencies import CurrentUser
from database import get_db
from dependencies import CurrentTenant, PageParams, get_or_404
from events import publish
from exceptions import BusinessRuleError
from models.contact import Contact
from models.deal import Deal, DealHistory, Pipeline, PipelineStage
from models.lead import Lead
from models.user import User
from policies import DealPolicy, PipelinePolicy, authorize
from schemas.common import MessageResponse, Page
from . import service
from .schemas import (
    DealCreate,
    DealHistoryResponse,
    DealMoveStage,
    DealResponse,
    DealUpdate,
    PipelineCreate,
    PipelineResponse,
    PipelineUpdate,
)

router = APIRouter(tags=["Deals"])

deal_policy = DealPolicy()
pipeline_policy = PipelinePolicy()


def _clear_default_pipeline(db: Session, keep_id: Optional[UUID] = None) -> None:
    stmt = update(Pipeline).where(Pipeline.is_default.is_(True))
    if keep_id is not None:
        stmt = stmt.where(Pipeline.id != keep_id)
    db.execute(stmt.values(is_default=False).execution_options(synchronize_session="fetch"))


@router.get("/pipelines", response_model=List[PipelineResponse])
def list_pipelines(tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)):
    authorize(db, pipeline_policy, "view_any", current_user)
    pipelines = db.execute(select(Pipeline).order_by(Pipeline.is_default.desc(), Pipeline.name)).scalars().all()
    return [PipelineResponse.model_validate(p) for p in pipelines]


@router.post("/pipelines", response_model=PipelineResponse, status_code=status.HTTP_201_CREATED)
def create_pipeline(
    data: PipelineCreate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> PipelineResponse:
    authorize(db, pipeline_policy, "create", current_user)
    if data.is_default:
        _clear_default_pipeline(db)

    pipeline = Pipeline(tenant_id=tenant.id, name=data.name, is_default=data.is_default)
    pipeline.stages = [
        PipelineStage(tenant_id=tenant.id, name=stage.name, position=position, probability=stage.probability)
        for position, stage in enumerate(data.stages)
    ]
    db.add(pipeline)
    db.flush()
    audit_service.log(db, "created", model=pipeline,
                      new_values={"name": pipeline.name, "stages": [s.name for s in pipeline.stages]},
                      user=current_user, request=request)
    db.commit()
    db.refresh(pipeline)
    return PipelineResponse.model_validate(pipeline)


@router.get("/pipelines/{pipeline_id}", response_model=PipelineResponse)
def get_pipeline(pipeline_id: UUID, tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)):
    pipeline = get_or_404(db, Pipeline, pipeline_id)
    authorize(db, pipeline_policy, "view", current_user, pipeline)
    return PipelineResponse.model_validate(pipeline)


@router.patch("/pipelines/{pipeline_id}", response_model=PipelineResponse)
def update_pipeline(
    pipeline_id: UUID,
    data: PipelineUpdate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> PipelineResponse:
    pipeline = get_or_404(db, Pipeline, pipeline_id)
    authorize(db, pipeline_policy, "update", current_user, pipeline)

    changes = data.model_dump(exclude_unset=True)
    old_values = {key: getattr(pipeline, key) for key in changes}
    if changes.get("is_default"):
        _clear_default_pipeline(db, keep_id=pipeline.id)
    for key, value in changes.items():
        setattr(pipeline, key, value)
    db.flush()
    audit_service.log(db, "updated", model=pipeline, old_values=old_values, new_values=changes,
                      user=current_user, request=request)
    db.commit()
    db.refresh(pipeline)
    return PipelineResponse.model_validate(pipeline)


@router.delete("/pipelines/{pipeline_id}", response_model=MessageResponse)
def delete_pipeline(
    pipeline_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Delete a pipeline that holds no deals."""
    pipeline = get_or_404(db, Pipeline, pipeline_id)
    authorize(db, pipeline_policy, "delete", current_user, pipeline)
    if db.execute(select(Deal.id).where(Deal.pipeline_id == pipeline.id)).first() is not None:
        raise BusinessRuleError("Pipeline still has deals.")
    audit_service.log(db, "deleted", model=pipeline, old_values={"name": pipeline.name},
                      user=current_user, request=request)
    db.delete(pipeline)
    db.commit()
    return MessageResponse(message="Pipeline deleted successfully.")


@router.get("/deals", response_model=Page[DealResponse])
def list_deals(
    tenant: CurrentTenant,
    current_user: CurrentUser,
    pagination: PageParams,
    db: Session = Depends(get_db),
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(open|won|lost)$"),
    pipeline_id: Optional[UUID] = Query(None),
    stage_id: Optional[UUID] = Query(None),
    assigned_to: Optional[UUID] = Query(None),
    trashed: bool = Query(False),
) -> Page[DealResponse]:
    authorize(db, deal_policy, "view_any", current_user)
    stmt = select(Deal).where(Deal.deleted_at.is_not(None) if trashed else Deal.deleted_at.is_(None))
    if status_filter:
        stmt = stmt.where(Deal.status == status_filter)
    if pipeline_id:
        stmt = stmt.where(Deal.pipeline_id == pipeline_id)
    if stage_id:
        stmt = stmt.where(Deal.stage_id == stage_id)
    if assigned_to:
        stmt = stmt.where(Deal.assigned_to == assigned_to)
    deals, total = pagination.apply(db, stmt.order_by(Deal.created_at.desc()))
    return Page[DealResponse](
        items=[DealResponse.model_validate(d) for d in deals],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.post("/deals", response_model=DealResponse, status_code=status.HTTP_201_CREATED)
def create_deal(
    data: DealCreate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> DealResponse:
    """Create an open deal.

    Raises:
        422: No pipeline/stage, or stage outside the pipeline
    """
    authorize(db, deal_policy, "create", current_user)
    if data.lead_id:
        get_or_404(db, Lead, data.lead_id)
    if data.contact_id:
        get_or_404(db, Contact, data.contact_id)

    deal = service.create_deal(db, data.model_dump(), current_user)
    db.commit()
    db.refresh(deal)

    publish(db, "deal.created", deal, actor=current_user, request=request)
    db.refresh(deal)
    return DealResponse.model_validate(deal)


@router.get("/deals/{deal_id}", response_model=DealResponse)
def get_deal(deal_id: UUID, tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)):
    deal = get_or_404(db, Deal, deal_id)
    authorize(db, deal_policy, "view", current_user, deal)
    return DealResponse.model_validate(deal)


@router.get("/deals/{deal_id}/history", response_model=List[DealHistoryResponse])
def get_deal_history(deal_id: UUID, tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)):
    deal = get_or_404(db, Deal, deal_id)
    authorize(db, deal_policy, "view", current_user, deal)
    history = db.execute(
        select(DealHistory).where(DealHistory.deal_id == deal.id).order_by(DealHistory.changed_at)
    ).scalars().all()
    return [DealHistoryResponse.model_validate(h) for h in history]


def _publish_changes(db: Session, deal: Deal, changes: Dict[str, Any], actor: User, request: Request) -> None:
    for event in service.events_for_changes(changes):
        publish(db, event, deal, actor=actor, changes=changes, request=request)
    db.refresh(deal)


@router.patch("/deals/{deal_id}", response_model=DealResponse)
def update_deal(
    deal_id: UUID,
    data: DealUpdate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> DealResponse:
    deal = get_or_404(db, Deal, deal_id)
    authorize(db, deal_policy, "update", current_user, deal)
    payload = data.model_dump(exclude_unset=True)
    if payload.get("contact_id"):
        get_or_404(db, Contact, payload["contact_id"])

    changes = service.update_deal(db, deal, payload, current_user)
    db.commit()
    db.refresh(deal)
    _publish_changes(db, deal, changes, current_user, request)
    return DealResponse.model_validate(deal)


@router.post("/deals/{deal_id}/move-stage", response_model=DealResponse)
def move_deal_stage(
    deal_id: UUID,
    data: DealMoveStage,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> DealResponse:
    deal = get_or_404(db, Deal, deal_id)
    authorize(db, deal_policy, "update", current_user, deal)
    changes = service.move_stage(db, deal, data.stage_id, current_user)
    db.commit()
    db.refresh(deal)
    _publish_changes(db, deal, changes, current_user, request)
    return DealResponse.model_validate(deal)


@router.post("/deals/{deal_id}/won", response_model=DealResponse)
def mark_deal_won(
    deal_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> DealResponse:
    deal = get_or_404(db, Deal, deal_id)
    authorize(db, deal_policy, "update", current_user, deal)
    changes = service.mark_won(db, deal, current_user)
    db.commit()
    db.refresh(deal)
    _publish_changes(db, deal, changes, current_user, request)
    return DealResponse.model_validate(deal)


@router.post("/deals/{deal_id}/lost", response_model=DealResponse)
def mark_deal_lost(
    deal_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> DealResponse:
    deal = get_or_404(db, Deal, deal_id)
    authorize(db, deal_policy, "update", current_user, deal)
    changes = service.mark_lost(db, deal, current_user)
    db.commit()
    db.refresh(deal)
    _publish_changes(db, deal, changes, current_user, request)
    return DealResponse.model_validate(deal)


@router.delete("/deals/{deal_id}", response_model=MessageResponse)
def delete_deal(
    deal_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> MessageResponse:
    deal = get_or_404(db, Deal, deal_id)
    authorize(db, deal_policy, "delete", current_user, deal)
    deal.soft_delete()
    db.commit()
    publish(db, "deal.deleted", deal, actor=current_user, request=request)
    return MessageResponse(message="Deal deleted successfully.")


@router.post("/deals/{deal_id}/restore", response_model=DealResponse)
def restore_deal(
    deal_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> DealResponse:
    deal = get_or_404(db, Deal, deal_id, include_deleted=True)
    authorize(db, deal_policy, "restore", current_user, deal)
    if not deal.is_deleted:
        raise BusinessRuleError("Deal is not deleted.")
    deal.restore()
    db.commit()
    db.refresh(deal)
    publish(db, "deal.restored", deal, actor=current_user, request=request)
    db.refresh(deal)
    return DealResponse.model_validate(deal)
