"""
Claim (medical application) service.

- submit_application: employee submission with expense items
- update_status: move a claim along the approval pipeline
- Dashboard queries with filtering, per-role work queues and statistics
- delete_application: withdraw a claim, leaving an audit log row
- track_application: public status tracker with a stage timeline
"""

import logging
import random
from datetime import date
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    InvalidStateError, NotFoundError, PermissionDeniedError, ValidationError
)
from app.core.roles import ROLE_QUEUES, AdminRole, can_transition, is_legal_transition
from app.core.security import AdminPrincipal
from app.database import utcnow
from app.models.application import (
    ApplicationStatus, ApplicationStatusHistory, ExpenseItem,
    MedicalApplication, TreatmentType
)
from app.models.query import Query
from app.models.review import AuditLog

logger = logging.getLogger(__name__)

MAX_NUMBER_ATTEMPTS = 5

# Status tracker stages, in pipeline order
TIMELINE_STAGES = [
    ("submitted", "Claim Submitted"),
    ("obc_review", "OBC Cell Initial Review"),
    ("health_centre_review", "Health Centre Medical Review"),
    ("obc_final_review", "OBC Cell Final Review"),
    ("admin_approval", "Super Admin Final Approval"),
    ("reimbursed", "Payment Processed"),
]

# status -> (stages completed, index of current stage or None)
_TIMELINE_PROGRESS = {
    ApplicationStatus.PENDING: (1, 1),
    ApplicationStatus.UNDER_REVIEW: (2, 2),
    ApplicationStatus.BACK_TO_OBC: (3, 3),
    ApplicationStatus.APPROVED: (4, 4),
    ApplicationStatus.REIMBURSED: (6, None),
    ApplicationStatus.COMPLETED: (6, None),
    ApplicationStatus.REJECTED: (2, None),
}


def generate_application_number(year: Optional[int] = None) -> str:
    """MR-<year>-<4 digits>, e.g. MR-2026-0042."""
    year = year or date.today().year
    return f"MR-{year}-{random.randint(0, 9999):04d}"


def _parse_status(value: Optional[str]) -> ApplicationStatus:
    try:
        return ApplicationStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in ApplicationStatus)
        raise ValidationError(f"Status must be one of: {allowed}", field="status")


# ============ SUBMISSION ============

def submit_application(
    db: Session,
    employee_name: str,
    employee_email: str,
    expenses: list[dict],
    employee_id: str = None,
    department: str = None,
    designation: str = None,
    mobile_number: str = None,
    patient_name: str = None,
    relationship_with_employee: str = None,
    hospital_name: str = None,
    treatment_type: str = None
) -> MedicalApplication:
    """
    Create a claim in `pending` with its expense items.

    The claimed total is the sum of the expense items. A clash on the
    generated application number is retried with a new number.
    """
    if not (employee_name or "").strip():
        raise ValidationError("Employee name is required", field="employee_name")
    if not (employee_email or "").strip():
        raise ValidationError("Employee email is required", field="employee_email")
    if not expenses:
        raise ValidationError("At least one expense item is required", field="expenses")
    if treatment_type:
        try:
            treatment_type = TreatmentType(treatment_type).value
        except ValueError:
            raise ValidationError("Treatment type must be opd, inpatient or emergency", field="treatment_type")

    for expense in expenses:
        amount = expense.get("amount_claimed")
        if amount is None or amount < 0:
            raise ValidationError("Expense amounts must be zero or more", field="expenses")

    for attempt in range(MAX_NUMBER_ATTEMPTS):
        items = [
            ExpenseItem(
                bill_number=expense.get("bill_number"),
                bill_date=expense.get("bill_date"),
                description=expense.get("description"),
                amount_claimed=float(expense["amount_claimed"])
            )
            for expense in expenses
        ]
        application = MedicalApplication(
            application_number=generate_application_number(),
            employee_name=employee_name.strip(),
            employee_email=employee_email.strip(),
            employee_id=employee_id,
            department=department,
            designation=designation,
            mobile_number=mobile_number,
            patient_name=patient_name,
            relationship_with_employee=relationship_with_employee,
            hospital_name=hospital_name,
            treatment_type=treatment_type,
            status=ApplicationStatus.PENDING.value,
            total_amount_claimed=sum(item.amount_claimed for item in items),
            total_amount_passed=0.0,
            expenses=items,
            history=[ApplicationStatusHistory(
                old_status=None,
                new_status=ApplicationStatus.PENDING.value,
                comments="Application submitted",
                changed_by=employee_id,
                changed_by_role="employee",
                created_at=utcnow()
            )]
        )
        db.add(application)
        try:
            db.commit()
        except IntegrityError:
            # Application number already taken - try another
            db.rollback()
            logger.warning(f"Application number clash on attempt {attempt + 1}, retrying")
            continue

        db.refresh(application)
        logger.info(
            f"Application {application.application_number} submitted by {application.employee_name} "
            f"for {application.total_amount_claimed:.2f}"
        )
        return application

    raise InvalidStateError("Could not allocate an application number, please retry")


# ============ LOOKUP ============

def get_application(db: Session, application_id: int) -> MedicalApplication:
    application = db.query(MedicalApplication).filter(
        MedicalApplication.id == application_id
    ).first()
    if application is None:
        raise NotFoundError.for_resource("Application", application_id)
    return application


def get_application_by_number(db: Session, application_number: str) -> MedicalApplication:
    application = db.query(MedicalApplication).filter(
        func.upper(MedicalApplication.application_number) == (application_number or "").strip().upper()
    ).first()
    if application is None:
        raise NotFoundError(f"Application {application_number} not found")
    return application


def _filtered(db: Session, status: str = None, search: str = None, role: AdminRole = None):
    query = db.query(MedicalApplication)

    if status and status != "all":
        query = query.filter(MedicalApplication.status == status)

    if role is not None:
        query = query.filter(MedicalApplication.status.in_([s.value for s in ROLE_QUEUES[role]]))

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            MedicalApplication.application_number.ilike(pattern),
            MedicalApplication.employee_name.ilike(pattern),
            MedicalApplication.patient_name.ilike(pattern)
        ))

    return query


def get_all_applications(
    db: Session,
    skip: int = 0,
    limit: int = 50,
    status: str = None,
    search: str = None,
    role: AdminRole = None
) -> list[MedicalApplication]:
    """
    Claims with optional filtering, newest first.

    Args:
        role: restrict to the statuses that role's dashboard works on
    """
    return _filtered(db, status, search, role).order_by(
        MedicalApplication.submitted_at.desc(), MedicalApplication.id.desc()
    ).offset(skip).limit(limit).all()


def get_applications_count(db: Session, status: str = None, search: str = None, role: AdminRole = None) -> int:
    """Get total count of claims for pagination."""
    return _filtered(db, status, search, role).count()


def get_application_stats(db: Session) -> dict:
    counts = dict(
        db.query(MedicalApplication.status, func.count(MedicalApplication.id))
        .group_by(MedicalApplication.status)
        .all()
    )
    claimed, passed = db.query(
        func.coalesce(func.sum(MedicalApplication.total_amount_claimed), 0.0),
        func.coalesce(func.sum(MedicalApplication.total_amount_passed), 0.0)
    ).one()

    return {
        "total": sum(counts.values()),
        "by_status": {s.value: counts.get(s.value, 0) for s in ApplicationStatus},
        "total_amount_claimed": float(claimed),
        "total_amount_passed": float(passed),
    }


# ============ STATUS PIPELINE ============

def update_status(
    db: Session,
    application_id: int,
    status: Optional[str],
    admin: AdminPrincipal,
    comments: Optional[str] = None,
    amount_passed: Optional[float] = None
) -> MedicalApplication:
    """
    Move a claim to a new pipeline status.

    Raises:
        ValidationError: unknown status or negative amount
        NotFoundError: unknown claim
        InvalidStateError: the pipeline has no edge from the current status
        PermissionDeniedError: the edge exists but not for this role
    """
    target = _parse_status(status)
    if amount_passed is not None and amount_passed < 0:
        raise ValidationError("Amount passed cannot be negative", field="amount_passed")

    application = get_application(db, application_id)
    current = ApplicationStatus(application.status)

    if not is_legal_transition(current, target):
        raise InvalidStateError(f"Cannot move application from {current.value} to {target.value}")
    if not can_transition(admin.role, current, target):
        raise PermissionDeniedError(
            f"Role '{admin.role.value}' cannot move application from {current.value} to {target.value}"
        )

    now = utcnow()
    application.status = target.value
    application.review_comments = comments
    application.reviewed_by = admin.user_id
    application.reviewed_at = now
    if amount_passed is not None:
        application.total_amount_passed = float(amount_passed)

    db.add(ApplicationStatusHistory(
        application_id=application.id,
        old_status=current.value,
        new_status=target.value,
        comments=comments,
        changed_by=admin.user_id,
        changed_by_role=admin.role.value,
        created_at=now
    ))

    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Status update failed for application {application_id}")
        raise

    db.refresh(application)
    logger.info(
        f"Application status updated: {application.application_number} "
        f"{current.value} -> {target.value} by {admin.user_id} ({admin.role.value})"
    )
    return application


# ============ STATUS TRACKER ============

def build_timeline(application: MedicalApplication) -> list[dict]:
    """Stage list for the tracker; completed stages carry the last update date."""
    status = ApplicationStatus(application.status)
    completed, current = _TIMELINE_PROGRESS[status]
    updated = application.updated_at or application.submitted_at

    timeline = []
    for index, (stage, title) in enumerate(TIMELINE_STAGES):
        is_completed = index < completed
        if index == 0:
            stage_date = application.submitted_at
        elif is_completed and index == completed - 1:
            stage_date = updated
        else:
            stage_date = None
        timeline.append({
            "stage": stage,
            "title": title,
            "completed": is_completed,
            "current": index == current,
            "date": stage_date,
        })
    return timeline


def track_application(db: Session, application_number: str) -> dict:
    application = get_application_by_number(db, application_number)
    return {
        "application": application,
        "timeline": build_timeline(application),
        "history": application.history,
    }


# ============ DELETION ============

def delete_application(db: Session, application_id: int, admin: AdminPrincipal) -> None:
    """
    Remove a claim with its bills, history and review records.

    Super Admin may delete a claim in any status; the OBC Cell only while it
    is still pending. A claim that already has clarification queries is kept.

    Raises:
        NotFoundError: unknown claim
        PermissionDeniedError: OBC deleting a claim past `pending`
        InvalidStateError: the claim has queries
    """
    application = get_application(db, application_id)
    number = application.application_number

    if admin.role != AdminRole.SUPER_ADMIN and application.status != ApplicationStatus.PENDING.value:
        raise PermissionDeniedError("Only pending applications can be deleted")

    has_queries = db.query(Query.id).filter(Query.application_id == application.id).first()
    if has_queries is not None:
        raise InvalidStateError(
            f"Application {number} has clarification queries and cannot be deleted"
        )

    db.add(AuditLog(
        entity_type="application",
        entity_id=str(application.id),
        action="delete",
        user_id=admin.user_id,
        user_role=admin.role.value,
        changes={
            "application_number": number,
            "status": application.status,
            "employee_name": application.employee_name,
            "total_amount_claimed": application.total_amount_claimed,
        },
        created_at=utcnow()
    ))
    db.delete(application)

    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Failed to delete application {application_id}")
        raise

    logger.info(
        f"Application deleted: {number} "
        f"by {admin.user_id} ({admin.role.value})"
    )
