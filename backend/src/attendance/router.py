"""Employee and attendance endpoints.

POST /attendance/sync runs the ZKBioTime import for the caller's tenant
synchronously and returns its statistics.
"""

import logging
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from audit.service import audit_service, model_values
from auth.dependencies import CurrentUser
from database import get_db
from dependencies import CurrentTenant, PageParams, get_or_404
from exceptions import ConflictError
from models.employee import Attendance, AttendanceRecord, Employee
from policies import AttendancePolicy, EmployeePolicy, authorize
from schemas.common import MessageResponse, Page
from users.service import get_tenant_user
from .client import ZkBioTimeError
from .schemas import (
    AttendanceRecordResponse,
    AttendanceResponse,
    AttendanceSyncRequest,
    AttendanceSyncResponse,
    EmployeeCreate,
    EmployeeResponse,
    EmployeeUpdate,
)
from .sync import ZkBioTimeAttendanceSyncService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Attendance"])

employee_policy = EmployeePolicy()
attendance_policy = AttendancePolicy()


def _ensure_emp_code_free(db: Session, code: Optional[str], exclude_id: Optional[UUID] = None) -> None:
    if not code:
        return
    stmt = select(Employee.id).where(Employee.biotime_emp_code == code)
    if exclude_id is not None:
        stmt = stmt.where(Employee.id != exclude_id)
    if db.execute(stmt).first() is not None:
        raise ConflictError(f"Employee code '{code}' is already assigned")


@router.get("/employees", response_model=Page[EmployeeResponse])
def list_employees(
    tenant: CurrentTenant,
    current_user: CurrentUser,
    pagination: PageParams,
    db: Session = Depends(get_db),
    is_active: Optional[bool] = Query(None),
) -> Page[EmployeeResponse]:
    authorize(db, employee_policy, "view_any", current_user)
    stmt = select(Employee)
    if is_active is not None:
        stmt = stmt.where(Employee.is_active == is_active)
    employees, total = pagination.apply(db, stmt.order_by(Employee.last_name, Employee.first_name))
    return Page[EmployeeResponse](
        items=[EmployeeResponse.model_validate(e) for e in employees],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.post("/employees", response_model=EmployeeResponse, status_code=status.HTTP_201_CREATED)
def create_employee(
    data: EmployeeCreate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> EmployeeResponse:
    """
    Create an employee.

    Raises:
        409: ZKBioTime employee code already assigned in the tenant
        422: Linked user is not an active user of the tenant
    """
    authorize(db, employee_policy, "create", current_user)
    _ensure_emp_code_free(db, data.biotime_emp_code)
    get_tenant_user(db, data.user_id, field="user_id")

    employee = Employee(tenant_id=tenant.id, is_active=data.status == "active", **data.model_dump())
    db.add(employee)
    db.flush()
    audit_service.log(db, "created", model=employee, new_values=model_values(employee),
                      user=current_user, request=request)
    db.commit()
    db.refresh(employee)
    return EmployeeResponse.model_validate(employee)


@router.get("/employees/{employee_id}", response_model=EmployeeResponse)
def get_employee(employee_id: UUID, tenant: CurrentTenant, current_user: CurrentUser, db: Session = Depends(get_db)):
    employee = get_or_404(db, Employee, employee_id)
    authorize(db, employee_policy, "view", current_user, employee)
    return EmployeeResponse.model_validate(employee)


@router.patch("/employees/{employee_id}", response_model=EmployeeResponse)
def update_employee(
    employee_id: UUID,
    data: EmployeeUpdate,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> EmployeeResponse:
    employee = get_or_404(db, Employee, employee_id)
    authorize(db, employee_policy, "update", current_user, employee)

    changes = data.model_dump(exclude_unset=True)
    if "biotime_emp_code" in changes:
        _ensure_emp_code_free(db, changes["biotime_emp_code"], exclude_id=employee.id)
    if changes.get("user_id"):
        get_tenant_user(db, changes["user_id"], field="user_id")
    if "status" in changes and "is_active" not in changes:
        changes["is_active"] = changes["status"] == "active"

    old_values = model_values(employee, changes.keys())
    for field, value in changes.items():
        setattr(employee, field, value)
    db.flush()
    audit_service.log(db, "updated", model=employee, old_values=old_values, new_values=changes,
                      user=current_user, request=request)
    db.commit()
    db.refresh(employee)
    return EmployeeResponse.model_validate(employee)


@router.delete("/employees/{employee_id}", response_model=MessageResponse)
def delete_employee(
    employee_id: UUID,
    request: Request,
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Delete an employee together with their attendance history."""
    employee = get_or_404(db, Employee, employee_id)
    authorize(db, employee_policy, "delete", current_user, employee)
    audit_service.log(db, "deleted", model=employee, old_values=model_values(employee),
                      user=current_user, request=request)
    # Explicit so the history goes even where ON DELETE CASCADE is not enforced
    for model in (Attendance, AttendanceRecord):
        db.execute(delete(model).where(model.employee_id == employee.id))
    db.delete(employee)
    db.commit()
    return MessageResponse(message="Employee deleted successfully.")


@router.get("/attendance", response_model=Page[AttendanceResponse])
def list_attendance(
    tenant: CurrentTenant,
    current_user: CurrentUser,
    pagination: PageParams,
    db: Session = Depends(get_db),
    employee_id: Optional[UUID] = Query(None),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
) -> Page[AttendanceResponse]:
    """Daily attendance, newest first, filtered by employee and date range (inclusive)."""
    authorize(db, attendance_policy, "view_any", current_user)
    stmt = select(Attendance)
    if employee_id:
        stmt = stmt.where(Attendance.employee_id == employee_id)
    if date_from:
        stmt = stmt.where(Attendance.date >= date_from)
    if date_to:
        stmt = stmt.where(Attendance.date <= date_to)
    rows, total = pagination.apply(db, stmt.order_by(Attendance.date.desc()))
    return Page[AttendanceResponse](
        items=[AttendanceResponse.model_validate(a) for a in rows],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.get("/attendance/records", response_model=Page[AttendanceRecordResponse])
def list_attendance_records(
    tenant: CurrentTenant,
    current_user: CurrentUser,
    pagination: PageParams,
    db: Session = Depends(get_db),
    employee_id: Optional[UUID] = Query(None),
) -> Page[AttendanceRecordResponse]:
    authorize(db, attendance_policy, "view_any", current_user)
    stmt = select(AttendanceRecord)
    if employee_id:
        stmt = stmt.where(AttendanceRecord.employee_id == employee_id)
    rows, total = pagination.apply(db, stmt.order_by(AttendanceRecord.punch_time.desc()))
    return Page[AttendanceRecordResponse](
        items=[AttendanceRecordResponse.model_validate(r) for r in rows],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.post("/attendance/sync", response_model=AttendanceSyncResponse, response_model_by_alias=True)
def sync_attendance(
    tenant: CurrentTenant,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
    data: Optional[AttendanceSyncRequest] = None,
) -> AttendanceSyncResponse:
    """
    Import ZKBioTime punches for the current tenant.

    Raises:
        403: Missing hr.attendance.sync
        502: ZKBioTime unreachable, misconfigured or returned an error
    """
    authorize(db, attendance_policy, "sync", current_user)
    data = data or AttendanceSyncRequest()
    try:
        result = ZkBioTimeAttendanceSyncService(db).sync_tenant(
            tenant, data.date_from, data.date_to, data.page_size
        )
    except ZkBioTimeError as e:
        db.rollback()
        logger.error(f"Attendance sync failed for {tenant.slug}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    db.commit()
    return AttendanceSyncResponse.model_validate(result)
