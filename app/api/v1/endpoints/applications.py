"""
Claim endpoints.

Employee-facing: submit a claim, track it by application number.
Admin-facing: dashboard listing, statistics, details, status updates.
"""

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from app.api.v1.envelope import ApiResponse, ok
from app.core.roles import Action
from app.core.security import AdminPrincipal, require_capability
from app.database import get_db
from app.services import application_service


router = APIRouter(prefix="/applications", tags=["Applications"])


# ============ Request Schemas ============

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExpenseItemRequest(_CamelModel):
    bill_number: Optional[str] = None
    bill_date: Optional[date] = None
    description: Optional[str] = None
    amount_claimed: float


class SubmitApplicationRequest(_CamelModel):
    employee_name: str
    employee_email: str
    employee_id: Optional[str] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    mobile_number: Optional[str] = None
    patient_name: Optional[str] = None
    relationship_with_employee: Optional[str] = None
    hospital_name: Optional[str] = None
    treatment_type: Optional[str] = None
    expenses: list[ExpenseItemRequest] = Field(default_factory=list)


class StatusUpdateRequest(_CamelModel):
    status: Optional[str] = None
    comments: Optional[str] = None
    amount_passed: Optional[float] = None


# ============ Response Schemas ============

class ApplicationCardResponse(BaseModel):
    """Row in an admin dashboard table."""
    id: int
    application_number: str
    employee_name: str
    department: Optional[str]
    patient_name: Optional[str]
    status: str
    total_amount_claimed: Optional[float]
    total_amount_passed: Optional[float]
    submitted_at: Optional[datetime]

    class Config:
        from_attributes = True


class ExpenseItemResponse(BaseModel):
    id: int
    bill_number: Optional[str]
    bill_date: Optional[date]
    description: Optional[str]
    amount_claimed: float
    amount_passed: Optional[float]

    class Config:
        from_attributes = True


class StatusHistoryResponse(BaseModel):
    old_status: Optional[str]
    new_status: str
    comments: Optional[str]
    changed_by_role: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class ApplicationFullResponse(ApplicationCardResponse):
    employee_id: Optional[str]
    employee_email: str
    designation: Optional[str]
    mobile_number: Optional[str]
    relationship_with_employee: Optional[str]
    hospital_name: Optional[str]
    treatment_type: Optional[str]
    review_comments: Optional[str]
    reviewed_by: Optional[str]
    reviewed_at: Optional[datetime]
    updated_at: Optional[datetime]
    expenses: list[ExpenseItemResponse] = []
    history: list[StatusHistoryResponse] = []


class ApplicationsListResponse(BaseModel):
    """Paginated list of claims."""
    total: int
    skip: int
    limit: int
    applications: list[ApplicationCardResponse]


class TimelineStage(BaseModel):
    stage: str
    title: str
    completed: bool
    current: bool
    date: Optional[datetime]


class TrackingResponse(BaseModel):
    """Status tracker view; no bank or contact details."""
    application: ApplicationCardResponse
    timeline: list[TimelineStage]
    history: list[StatusHistoryResponse]


class StatsResponse(BaseModel):
    total: int
    by_status: dict[str, int]
    total_amount_claimed: float
    total_amount_passed: float


# ============ EMPLOYEE ============

@router.post("", response_model=ApiResponse[ApplicationFullResponse], status_code=201)
def submit_application(body: SubmitApplicationRequest, db: Session = Depends(get_db)):
    """Submit a new reimbursement claim. It starts in `pending` at the OBC Cell."""
    application = application_service.submit_application(
        db,
        employee_name=body.employee_name,
        employee_email=body.employee_email,
        expenses=[item.model_dump() for item in body.expenses],
        employee_id=body.employee_id,
        department=body.department,
        designation=body.designation,
        mobile_number=body.mobile_number,
        patient_name=body.patient_name,
        relationship_with_employee=body.relationship_with_employee,
        hospital_name=body.hospital_name,
        treatment_type=body.treatment_type
    )
    return ok(application, "Application submitted successfully")


@router.get("/track/{application_number}", response_model=ApiResponse[TrackingResponse])
def track_application(application_number: str, db: Session = Depends(get_db)):
    """
    Track a claim by its application number.

    **Example:**
    ```
    GET /api/v1/applications/track/MR-2026-0042
    ```
    """
    return ok(application_service.track_application(db, application_number))


# ============ ADMIN ============

@router.get("", response_model=ApiResponse[ApplicationsListResponse])
def list_applications(
    skip: int = Query(0, ge=0, description="Offset for pagination"),
    limit: int = Query(50, ge=1, le=100, description="Max results"),
    status: Optional[str] = Query(None, description="Filter by status"),
    search: Optional[str] = Query(None, description="Application number, employee or patient name"),
    queue: bool = Query(False, description="Only claims waiting on the caller's role"),
    admin: AdminPrincipal = Depends(require_capability(Action.VIEW_CLAIMS)),
    db: Session = Depends(get_db)
):
    role = admin.role if queue else None
    applications = application_service.get_all_applications(
        db, skip=skip, limit=limit, status=status, search=search, role=role
    )
    total = application_service.get_applications_count(db, status=status, search=search, role=role)
    return ok(ApplicationsListResponse(
        total=total,
        skip=skip,
        limit=limit,
        applications=[ApplicationCardResponse.model_validate(a) for a in applications]
    ))


@router.get("/stats/overview", response_model=ApiResponse[StatsResponse])
def application_stats(
    admin: AdminPrincipal = Depends(require_capability(Action.VIEW_CLAIMS)),
    db: Session = Depends(get_db)
):
    return ok(application_service.get_application_stats(db), "Application statistics retrieved successfully")


@router.get("/{application_id}", response_model=ApiResponse[ApplicationFullResponse])
def get_application(
    application_id: int,
    admin: AdminPrincipal = Depends(require_capability(Action.VIEW_CLAIMS)),
    db: Session = Depends(get_db)
):
    return ok(application_service.get_application(db, application_id), "Application details retrieved successfully")


@router.patch("/{application_id}/status", response_model=ApiResponse[ApplicationFullResponse])
def update_status(
    application_id: int,
    body: StatusUpdateRequest,
    admin: AdminPrincipal = Depends(require_capability(Action.UPDATE_CLAIM_STATUS)),
    db: Session = Depends(get_db)
):
    """
    Move a claim along the approval pipeline.

    **Body:** `{"status": "under_review", "comments": "...", "amountPassed": 12000}`

    **Returns:**
    - 200: updated claim
    - 403: the caller's role may not take this step
    - 409: no such step from the current status
    """
    application = application_service.update_status(
        db,
        application_id,
        body.status,
        admin,
        comments=body.comments,
        amount_passed=body.amount_passed
    )
    return ok(application, f"Application status updated to {application.status}")


@router.delete("/{application_id}", response_model=ApiResponse[None])
def delete_application(
    application_id: int,
    admin: AdminPrincipal = Depends(require_capability(Action.DELETE_CLAIM)),
    db: Session = Depends(get_db)
):
    """
    Delete a claim. OBC may only delete pending claims; Super Admin any claim.

    **Returns:**
    - 200: deleted, audit entry written
    - 403: claim is no longer pending
    - 409: claim has clarification queries
    """
    application_service.delete_application(db, application_id, admin)
    return ok(None, "Application deleted")
