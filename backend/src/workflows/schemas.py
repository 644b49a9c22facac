"""Schemas for workflows and workflow runs"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.workflow import WORKFLOW_EVENTS
from .actions import ACTION_TYPES
from .conditions import EVALUATORS


def _check_event(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in WORKFLOW_EVENTS:
        raise ValueError(f"Unsupported event. Must be one of: {', '.join(WORKFLOW_EVENTS)}")
    return value


def _check_types(items: Optional[List[Dict[str, Any]]], allowed, kind: str):
    for item in items or []:
        if item.get("type") not in allowed:
            raise ValueError(f"Unknown {kind} type: {item.get('type')}")
    return items


class WorkflowCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    event: str
    conditions: List[Dict[str, Any]] = Field(default_factory=list)
    actions: List[Dict[str, Any]] = Field(..., min_length=1)
    is_active: bool = True
    priority: int = 0

    @field_validator("event")
    @classmethod
    def validate_event(cls, v: str) -> str:
        return _check_event(v)

    @field_validator("conditions")
    @classmethod
    def validate_conditions(cls, v):
        return _check_types(v, EVALUATORS, "condition")

    @field_validator("actions")
    @classmethod
    def validate_actions(cls, v):
        return _check_types(v, ACTION_TYPES, "action")


class WorkflowUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    event: Optional[str] = None
    conditions: Optional[List[Dict[str, Any]]] = None
    actions: Optional[List[Dict[str, Any]]] = Field(None, min_length=1)
    is_active: Optional[bool] = None
    priority: Optional[int] = None

    @field_validator("event")
    @classmethod
    def validate_event(cls, v):
        return _check_event(v)

    @field_validator("conditions")
    @classmethod
    def validate_conditions(cls, v):
        return _check_types(v, EVALUATORS, "condition")

    @field_validator("actions")
    @classmethod
    def validate_actions(cls, v):
        return _check_types(v, ACTION_TYPES, "action")


class WorkflowResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: Optional[str]
    event: str
    conditions: List[Dict[str, Any]]
    actions: List[Dict[str, Any]]
    is_active: bool
    priority: int
    created_by: Optional[UUID]
    created_at: datetime
    updated_at: datetime


class WorkflowRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workflow_id: UUID
    event: str
    entity_type: Optional[str]
    entity_id: Optional[UUID]
    status: str
    results: Optional[List[Dict[str, Any]]]
    error_message: Optional[str]
    started_at: datetime
    completed_at: Optional[datetime]
