"""
Review endpoints: per-bill validation, eligibility checklist, reviewer
comments and the review summary. Every route needs an admin token.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from app.api.v1.envelope import ApiResponse, ok
from app.core.roles import Action
from app.core.security import AdminPrincipal, require_capability
from app.database import get_db
from app.services import review_service


router = APIRouter(prefix="/reviews", tags=["Reviews"])

_reviewer = require_capability(Action.REVIEW_CLAIM)


# ============ Request Schemas ============

class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExpenseValidationRequest(_CamelModel):
    application_id: int
    expense_id: int
    validation_status: Optional[str] = None
    validated_amount: Optional[float] = None
    adjustment_reason: Optional[str] = None
    rejection_reason: Optional[str] = None
    is_within_policy: Optional[bool] = None
    is_receipt_valid: Optional[bool] = None
    policy_reference: Optional[str] = None


class EligibilityRequest(_CamelModel):
    eligibility_status: Optional[str] = None
    ineligibility_reasons: list[str] = Field(default_factory=list)
    conditions: list[str] = Field(default_factory=list)
    is_sc_st_obc_verified: Optional[bool] = None
    category_proof_valid: Optional[bool] = None
    employee_id_verified: Optional[bool] = None
    medical_card_valid: Optional[bool] = None
    relationship_verified: Optional[bool] = None
    has_pending_claims: Optional[bool] = None
    is_within_limits: Optional[bool] = None
    is_treatment_covered: Optional[bool] = None
    prior_permission_status: Optional[str] = None
    notes: Optional[str] = None


class CommentRequest(_CamelModel):
    application_id: int
    comment_text: Optional[str] = None
    comment_type: Optional[str] = None
    parent_comment_id: Optional[int] = None
    is_internal: bool = True


# ============ Response Schemas ============

class ExpenseValidationResponse(BaseModel):
    id: int
    application_id: int
    expense_id: int
    validator_id: str
    validator_role: Optional[str]
    original_amount: float
    validated_amount: float
    validation_status: str
    is_within_policy: Optional[bool]
    is_receipt_valid: Optional[bool]
    policy_reference: Optional[str]
    adjustment_reason: Optional[str]
    rejection_reason: Optional[str]
    validated_at: Optional[datetime]

    class Config:
        from_attributes = True


class EligibilityResponse(BaseModel):
    id: int
    application_id: int
    checker_id: str
    checker_role: Optional[str]
    eligibility_status: str
    ineligibility_reasons: Optional[list[str]]
    conditions: Optional[list[str]]
    is_sc_st_obc_verified: Optional[bool]
    category_proof_valid: Optional[bool]
    employee_id_verified: Optional[bool]
    medical_card_valid: Optional[bool]
    relationship_verified: Optional[bool]
    has_pending_claims: Optional[bool]
    is_within_limits: Optional[bool]
    is_treatment_covered: Optional[bool]
    prior_permission_status: Optional[str]
    notes: Optional[str]
    checked_at: Optional[datetime]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class CommentResponse(BaseModel):
    id: int
    application_id: int
    parent_comment_id: Optional[int]
    commenter_id: str
    commenter_name: Optional[str]
    commenter_role: Optional[str]
    comment_type: str
    comment_text: str
    is_internal: bool
    is_resolved: bool
    resolved_by: Optional[str]
    resolved_at: Optional[datetime]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class ReviewSummaryResponse(BaseModel):
    application_id: int
    application_number: str
    status: str
    expense_count: int
    validated_count: int
    pending_validation_count: int
    approved_count: int
    adjusted_count: int
    rejected_count: int
    total_amount_claimed: float
    total_amount_passed: float
    eligibility_status: Optional[str]
    comment_count: int
    open_comment_count: int


# ============ EXPENSES ============

@router.post("/expenses", response_model=ApiResponse[ExpenseValidationResponse], status_code=201)
def validate_expense(
    body: ExpenseValidationRequest,
    admin: AdminPrincipal = Depends(_reviewer),
    db: Session = Depends(get_db)
):
    """
    Record a verdict on one bill. The bill's passed amount and the claim's
    total passed amount follow the newest verdicts.

    **Body:** `{"applicationId": 1, "expenseId": 3, "validationStatus": "adjusted",
    "validatedAmount": 900, "adjustmentReason": "Non-formulary drug"}`
    """
    validation = review_service.validate_expense(
        db,
        body.application_id,
        body.expense_id,
        admin,
        body.validation_status,
        validated_amount=body.validated_amount,
        adjustment_reason=body.adjustment_reason,
        rejection_reason=body.rejection_reason,
        is_within_policy=body.is_within_policy,
        is_receipt_valid=body.is_receipt_valid,
        policy_reference=body.policy_reference
    )
    return ok(validation, "Expense validated")


@router.get("/expenses/{application_id}", response_model=ApiResponse[list[ExpenseValidationResponse]])
def list_expense_validations(
    application_id: int,
    admin: AdminPrincipal = Depends(_reviewer),
    db: Session = Depends(get_db)
):
    return ok(review_service.get_expense_validations(db, application_id))


# ============ ELIGIBILITY ============

@router.get("/eligibility/{application_id}", response_model=ApiResponse[Optional[EligibilityResponse]])
def get_eligibility(
    application_id: int,
    admin: AdminPrincipal = Depends(_reviewer),
    db: Session = Depends(get_db)
):
    return ok(review_service.get_eligibility(db, application_id))


@router.patch("/eligibility/{application_id}", response_model=ApiResponse[EligibilityResponse])
def upsert_eligibility(
    application_id: int,
    body: EligibilityRequest,
    admin: AdminPrincipal = Depends(_reviewer),
    db: Session = Depends(get_db)
):
    """Create or update the caller's own eligibility check for the claim."""
    checklist = body.model_dump(
        exclude={"eligibility_status", "ineligibility_reasons", "conditions"},
        exclude_none=True
    )
    check, created = review_service.upsert_eligibility(
        db,
        application_id,
        admin,
        eligibility_status=body.eligibility_status,
        ineligibility_reasons=body.ineligibility_reasons,
        conditions=body.conditions,
        **checklist
    )
    return ok(check, "Eligibility check created" if created else "Eligibility check updated")


# ============ COMMENTS ============

@router.post("/comments", response_model=ApiResponse[CommentResponse], status_code=201)
def add_comment(
    body: CommentRequest,
    admin: AdminPrincipal = Depends(_reviewer),
    db: Session = Depends(get_db)
):
    comment = review_service.add_comment(
        db,
        body.application_id,
        admin,
        body.comment_text,
        comment_type=body.comment_type,
        parent_comment_id=body.parent_comment_id,
        is_internal=body.is_internal
    )
    return ok(comment, "Comment added")


@router.get("/comments/{application_id}", response_model=ApiResponse[list[CommentResponse]])
def list_comments(
    application_id: int,
    include_internal: bool = Query(True, alias="includeInternal", description="Include internal comments"),
    admin: AdminPrincipal = Depends(_reviewer),
    db: Session = Depends(get_db)
):
    return ok(review_service.get_comments(db, application_id, include_internal=include_internal))


@router.patch("/comments/{comment_id}/resolve", response_model=ApiResponse[CommentResponse])
def resolve_comment(
    comment_id: int,
    admin: AdminPrincipal = Depends(_reviewer),
    db: Session = Depends(get_db)
):
    return ok(review_service.resolve_comment(db, comment_id, admin), "Comment resolved")


# ============ SUMMARY ============

@router.get("/summary/{application_id}", response_model=ApiResponse[ReviewSummaryResponse])
def review_summary(
    application_id: int,
    admin: AdminPrincipal = Depends(_reviewer),
    db: Session = Depends(get_db)
):
    return ok(review_service.get_review_summary(db, application_id))
