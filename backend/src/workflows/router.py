"""Workflow management endpoints"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from audit.service import audit_service, model_values
from auth.dependencies import CurrentUser
from database import get_db
from dependencies import CurrentTenant, PageParams, get_or_404
from models.workflow import WORKFLOW_EVENTS, Workflow, WorkflowRun
from policies import WorkflowPolicy, authorize
from schemas.common import MessageResponse, Page
from .schemas import WorkflowCreate, WorkflowResponse, WorkflowRunResponse, WorkflowUpdate

router = APIRouter(prefix="/workflows", tags=["Workflows"])

workflow_policy = WorkflowPolicy()


@router.get("/events", response_model=List[str])
def list_workflow_events(tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)):
    """Events a workflow can listen to."""
    authorize(db, workflow_policy, "view_any", current_user)
    return list(WORKFLOW_EVENTS)


@router.get("", response_model=Page[WorkflowResponse])
def list_workflows(
    tenant: CurrentTenant,
    current_user: CurrentUser,
    pagination: PageParams,
    db: Session = Depends(get_db),
    event: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
) -> Page[WorkflowResponse]:
    authorize(db, workflow_policy, "view_any", current_user)
    stmt = select(Workflow)
    if event:
        stmt = stmt.where(Workflow.event == event)
    if is_active is not None:
        stmt = stmt.where(Workflow.is_active == is_active)
    workflows, total = pagination.apply(db, stmt.order_by(Workflow.priority.desc(), Workflow.name))
    return Page[WorkflowResponse](
        items=[WorkflowResponse.model_validate(w) for w in workflows],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.post("", response_model=WorkflowResponse, status_code=status.HTTP_201_CREATED)
def create_workflow(
    data: WorkflowCreate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> WorkflowResponse:
    authorize(db, workflow_policy, "create", current_user)
    workflow = Workflow(tenant_id=tenant.id, created_by=current_user.id, **data.model_dump())
    db.add(workflow)
    db.flush()
    audit_service.log(db, "created", model=workflow, new_values=model_values(workflow),
                      user=current_user, request=request)
    db.commit()
    db.refresh(workflow)
    return WorkflowResponse.model_validate(workflow)


@router.get("/{workflow_id}", response_model=WorkflowResponse)
def get_workflow(workflow_id: UUID, tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)):
    workflow = get_or_404(db, Workflow, workflow_id)
    authorize(db, workflow_policy, "view", current_user, workflow)
    return WorkflowResponse.model_validate(workflow)


@router.patch("/{workflow_id}", response_model=WorkflowResponse)
def update_workflow(
    workflow_id: UUID,
    data: WorkflowUpdate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> WorkflowResponse:
    workflow = get_or_404(db, Workflow, workflow_id)
    authorize(db, workflow_policy, "update", current_user, workflow)
    changes = data.model_dump(exclude_unset=True)
    old_values = model_values(workflow, changes.keys())
    for field, value in changes.items():
        setattr(workflow, field, value)
    db.flush()
    audit_service.log(db, "updated", model=workflow, old_values=old_values, new_values=changes,
                      user=current_user, request=request)
    db.commit()
    db.refresh(workflow)
    return WorkflowResponse.model_validate(workflow)


@router.delete("/{workflow_id}", response_model=MessageResponse)
def delete_workflow(
    workflow_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> MessageResponse:
    workflow = get_or_404(db, Workflow, workflow_id)
    authorize(db, workflow_policy, "delete", current_user, workflow)
    audit_service.log(db, "deleted", model=workflow, old_values={"name": workflow.name, "event": workflow.event},
                      user=current_user, request=request)
    db.delete(workflow)
    db.commit()
    return MessageResponse(message="Workflow deleted successfully.")


@router.get("/{workflow_id}/runs", response_model=Page[WorkflowRunResponse])
def list_workflow_runs(
    workflow_id: UUID,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    pagination: PageParams,
    db: Session = Depends(get_db),
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(running|completed|failed|skipped)$"),
) -> Page[WorkflowRunResponse]:
    """Execution history, newest first."""
    workflow = get_or_404(db, Workflow, workflow_id)
    authorize(db, workflow_policy, "view", current_user, workflow)
    stmt = select(WorkflowRun).where(WorkflowRun.workflow_id == workflow.id)
    if status_filter:
        stmt = stmt.where(WorkflowRun.status == status_filter)
    runs, total = pagination.apply(db, stmt.order_by(WorkflowRun.started_at.desc()))
    return Page[WorkflowRunResponse](
        items=[WorkflowRunResponse.model_validate(r) for r in runs],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )
