"""
Reviewer work on a claim, alongside the status pipeline.

- validate_expense: verdict on one bill; keeps ExpenseItem.amount_passed and
  the claim's total_amount_passed in step with the newest verdicts
- upsert_eligibility / get_eligibility: eligibility checklist per checker
- add_comment / get_comments / resolve_comment: reviewer remarks
- get_review_summary: one-screen overview of the review so far
"""

import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.core.security import AdminPrincipal
from app.database import utcnow
from app.models.application import (
    FINAL_APPLICATION_STATUSES, ApplicationStatus, ExpenseItem, MedicalApplication
)
from app.models.review import (
    EligibilityCheck, EligibilityStatus, ExpenseValidation,
    ExpenseValidationStatus, ReviewComment, ReviewCommentType
)
from app.services.application_service import get_application

logger = logging.getLogger(__name__)

ELIGIBILITY_FIELDS = (
    "is_sc_st_obc_verified",
    "category_proof_valid",
    "employee_id_verified",
    "medical_card_valid",
    "relationship_verified",
    "has_pending_claims",
    "is_within_limits",
    "is_treatment_covered",
    "prior_permission_status",
    "notes",
)


def _parse_enum(enum_cls, value: Optional[str], field: str, default=None):
    if value is None or value == "":
        if default is not None:
            return default
        raise ValidationError(f"{field} is required", field=field)
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}", field=field)


def _commit(db: Session, *instances) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Review transaction failed, rolled back")
        raise
    for instance in instances:
        db.refresh(instance)


def _require_open_claim(application: MedicalApplication) -> None:
    if ApplicationStatus(application.status) in FINAL_APPLICATION_STATUSES:
        raise InvalidStateError(
            f"Application {application.application_number} is {application.status}; review is closed"
        )


# ============ EXPENSE VALIDATION ============

def recompute_amount_passed(db: Session, application: MedicalApplication) -> float:
    """Claim total passed = sum of the validated bills; unvalidated bills count as nothing."""
    db.flush()
    total = db.query(func.coalesce(func.sum(ExpenseItem.amount_passed), 0.0)).filter(
        ExpenseItem.application_id == application.id
    ).scalar()
    application.total_amount_passed = float(total)
    return application.total_amount_passed


def validate_expense(
    db: Session,
    application_id: int,
    expense_id: int,
    admin: AdminPrincipal,
    validation_status: Optional[str],
    validated_amount: Optional[float] = None,
    adjustment_reason: Optional[str] = None,
    rejection_reason: Optional[str] = None,
    is_within_policy: Optional[bool] = None,
    is_receipt_valid: Optional[bool] = None,
    policy_reference: Optional[str] = None
) -> ExpenseValidation:
    """
    Record a verdict on one bill of a claim.

    - approved: passes the full claimed amount
    - adjusted: passes `validated_amount` (0..claimed), needs an adjustment reason
    - rejected: passes nothing, needs a rejection reason

    A bill may be validated again; the newest verdict wins.

    Raises:
        ValidationError: bad status, amount or missing reason
        NotFoundError: unknown claim, or the bill is not on this claim
        InvalidStateError: the claim is rejected, reimbursed or completed
    """
    status = _parse_enum(ExpenseValidationStatus, validation_status, "validation_status")

    application = get_application(db, application_id)
    _require_open_claim(application)

    expense = db.query(ExpenseItem).filter(
        ExpenseItem.id == expense_id,
        ExpenseItem.application_id == application.id
    ).first()
    if expense is None:
        raise NotFoundError.for_resource("Expense", expense_id)

    claimed = float(expense.amount_claimed)

    if status == ExpenseValidationStatus.APPROVED:
        if validated_amount is not None and float(validated_amount) != claimed:
            raise ValidationError(
                "Approved expenses pass the claimed amount; use 'adjusted' for a different amount",
                field="validated_amount"
            )
        amount = claimed
    elif status == ExpenseValidationStatus.ADJUSTED:
        if validated_amount is None:
            raise ValidationError("Validated amount is required for an adjustment", field="validated_amount")
        if not (adjustment_reason or "").strip():
            raise ValidationError("Adjustment reason is required", field="adjustment_reason")
        amount = float(validated_amount)
    else:
        if not (rejection_reason or "").strip():
            raise ValidationError("Rejection reason is required", field="rejection_reason")
        amount = 0.0

    if amount < 0 or amount > claimed:
        raise ValidationError(
            f"Validated amount must be between 0 and the claimed {claimed:.2f}",
            field="validated_amount"
        )

    validation = ExpenseValidation(
        application_id=application.id,
        expense_id=expense.id,
        validator_id=admin.user_id,
        validator_role=admin.role.value,
        original_amount=claimed,
        validated_amount=amount,
        validation_status=status.value,
        is_within_policy=is_within_policy,
        is_receipt_valid=is_receipt_valid,
        policy_reference=policy_reference,
        adjustment_reason=(adjustment_reason or "").strip() or None,
        rejection_reason=(rejection_reason or "").strip() or None,
        validated_at=utcnow()
    )
    db.add(validation)

    expense.amount_passed = amount
    total = recompute_amount_passed(db, application)
    _commit(db, validation)

    logger.info(
        f"Expense {expense.id} on {application.application_number} {status.value} at {amount:.2f} "
        f"by {admin.user_id} ({admin.role.value}); claim passed total {total:.2f}"
    )
    return validation


def get_expense_validations(db: Session, application_id: int) -> list[ExpenseValidation]:
    """Every verdict on the claim's bills, newest first."""
    application = get_application(db, application_id)
    return db.query(ExpenseValidation).filter(
        ExpenseValidation.application_id == application.id
    ).order_by(ExpenseValidation.validated_at.desc(), ExpenseValidation.id.desc()).all()


# ============ ELIGIBILITY ============

def get_eligibility(db: Session, application_id: int) -> Optional[EligibilityCheck]:
    """Most recent eligibility check by any checker, or None."""
    application = get_application(db, application_id)
    return db.query(EligibilityCheck).filter(
        EligibilityCheck.application_id == application.id
    ).order_by(EligibilityCheck.checked_at.desc(), EligibilityCheck.id.desc()).first()


def upsert_eligibility(
    db: Session,
    application_id: int,
    admin: AdminPrincipal,
    eligibility_status: Optional[str] = None,
    ineligibility_reasons: Optional[list[str]] = None,
    conditions: Optional[list[str]] = None,
    **checklist
) -> tuple[EligibilityCheck, bool]:
    """
    Create or update the caller's own eligibility check on a claim.

    Returns:
        (check, created)

    Raises:
        ValidationError: unknown status, unknown checklist field, or
            `ineligible` without a reason
        NotFoundError: unknown claim
    """
    unknown = set(checklist) - set(ELIGIBILITY_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown eligibility fields: {', '.join(sorted(unknown))}", field="eligibility")

    status = _parse_enum(EligibilityStatus, eligibility_status, "eligibility_status", default=EligibilityStatus.PENDING)
    reasons = [r.strip() for r in (ineligibility_reasons or []) if r and r.strip()]
    if status == EligibilityStatus.INELIGIBLE and not reasons:
        raise ValidationError("At least one ineligibility reason is required", field="ineligibility_reasons")

    application = get_application(db, application_id)

    check = db.query(EligibilityCheck).filter(
        EligibilityCheck.application_id == application.id,
        EligibilityCheck.checker_id == admin.user_id
    ).order_by(EligibilityCheck.checked_at.desc(), EligibilityCheck.id.desc()).first()

    created = check is None
    if created:
        check = EligibilityCheck(
            application_id=application.id,
            checker_id=admin.user_id,
            checked_at=utcnow()
        )
        db.add(check)

    check.checker_role = admin.role.value
    check.eligibility_status = status.value
    check.ineligibility_reasons = reasons
    check.conditions = [c.strip() for c in (conditions or []) if c and c.strip()]
    for field, value in checklist.items():
        setattr(check, field, value)
    check.updated_at = utcnow()

    _commit(db, check)

    logger.info(
        f"Eligibility check {'created' if created else 'updated'} for {application.application_number}: "
        f"{status.value} by {admin.user_id} ({admin.role.value})"
    )
    return check, created


# ============ COMMENTS ============

def add_comment(
    db: Session,
    application_id: int,
    admin: AdminPrincipal,
    comment_text: Optional[str],
    comment_type: Optional[str] = None,
    parent_comment_id: Optional[int] = None,
    is_internal: bool = True
) -> ReviewComment:
    text = (comment_text or "").strip()
    if not text:
        raise ValidationError("Comment text is required", field="comment_text")
    parsed_type = _parse_enum(ReviewCommentType, comment_type, "comment_type", default=ReviewCommentType.GENERAL)

    application = get_application(db, application_id)

    if parent_comment_id is not None:
        parent = db.query(ReviewComment.id).filter(
            ReviewComment.id == parent_comment_id,
            ReviewComment.application_id == application.id
        ).first()
        if parent is None:
            raise ValidationError(
                f"Comment {parent_comment_id} does not belong to application {application.id}",
                field="parent_comment_id"
            )

    comment = ReviewComment(
        application_id=application.id,
        parent_comment_id=parent_comment_id,
        commenter_id=admin.user_id,
        commenter_name=admin.name,
        commenter_role=admin.role.value,
        comment_type=parsed_type.value,
        comment_text=text,
        is_internal=bool(is_internal),
        created_at=utcnow()
    )
    db.add(comment)
    _commit(db, comment)

    logger.info(f"Review comment {comment.id} ({parsed_type.value}) on {application.application_number}")
    return comment


def get_comments(db: Session, application_id: int, include_internal: bool = True) -> list[ReviewComment]:
    """Comments in posting order."""
    application = get_application(db, application_id)
    query = db.query(ReviewComment).filter(ReviewComment.application_id == application.id)
    if not include_internal:
        query = query.filter(ReviewComment.is_internal.is_(False))
    return query.order_by(ReviewComment.created_at.asc(), ReviewComment.id.asc()).all()


def resolve_comment(db: Session, comment_id: int, admin: AdminPrincipal) -> ReviewComment:
    """Mark a comment resolved. Resolving it again changes nothing."""
    comment = db.query(ReviewComment).filter(ReviewComment.id == comment_id).first()
    if comment is None:
        raise NotFoundError.for_resource("Comment", comment_id)

    if comment.is_resolved:
        return comment

    comment.is_resolved = True
    comment.resolved_by = admin.user_id
    comment.resolved_at = utcnow()
    _commit(db, comment)

    logger.info(f"Review comment {comment.id} resolved by {admin.user_id}")
    return comment


# ============ SUMMARY ============

def get_review_summary(db: Session, application_id: int) -> dict:
    application = get_application(db, application_id)

    verdicts = {e.id: e.amount_passed for e in application.expenses}
    latest_status = {}
    for validation in sorted(application.expense_validations, key=lambda v: (v.validated_at, v.id)):
        latest_status[validation.expense_id] = validation.validation_status

    eligibility = get_eligibility(db, application.id)
    comments = application.comments

    return {
        "application_id": application.id,
        "application_number": application.application_number,
        "status": application.status,
        "expense_count": len(verdicts),
        "validated_count": len(latest_status),
        "pending_validation_count": len(verdicts) - len(latest_status),
        "approved_count": sum(1 for s in latest_status.values() if s == ExpenseValidationStatus.APPROVED.value),
        "adjusted_count": sum(1 for s in latest_status.values() if s == ExpenseValidationStatus.ADJUSTED.value),
        "rejected_count": sum(1 for s in latest_status.values() if s == ExpenseValidationStatus.REJECTED.value),
        "total_amount_claimed": float(application.total_amount_claimed or 0.0),
        "total_amount_passed": float(application.total_amount_passed or 0.0),
        "eligibility_status": eligibility.eligibility_status if eligibility else None,
        "comment_count": len(comments),
        "open_comment_count": sum(1 for c in comments if not c.is_resolved),
    }
