"""
MedicalApplication model - the reimbursement claim an employee submits.

The claim moves through a fixed review pipeline:

    pending -> under_review -> back_to_obc -> approved -> reimbursed / completed

with `rejected` reachable from every non-final stage. Each status change
leaves an ApplicationStatusHistory row for the status tracker timeline.
"""

from sqlalchemy import (
    Column, Integer, String, Date, Float, Text,
    ForeignKey, DateTime, Index
)
from sqlalchemy.orm import relationship
from app.database import Base, utcnow
import enum


class ApplicationStatus(str, enum.Enum):
    """Stage of a claim in the approval pipeline."""
    PENDING = "pending"              # Waiting for OBC Cell initial review
    UNDER_REVIEW = "under_review"    # At Health Centre for medical review
    BACK_TO_OBC = "back_to_obc"      # Returned to OBC Cell for final review
    APPROVED = "approved"            # Waiting for Super Admin sanction
    REJECTED = "rejected"
    REIMBURSED = "reimbursed"
    COMPLETED = "completed"          # Legacy final state, same as reimbursed


FINAL_APPLICATION_STATUSES = {
    ApplicationStatus.REJECTED,
    ApplicationStatus.REIMBURSED,
    ApplicationStatus.COMPLETED,
}


class TreatmentType(str, enum.Enum):
    OPD = "opd"
    INPATIENT = "inpatient"
    EMERGENCY = "emergency"


class MedicalApplication(Base):
    """
    Medical reimbursement claim.

    Referenced by clarification queries; its lifecycle is owned by the
    claim status pipeline, not by the query subsystem.
    """
    __tablename__ = "medical_applications"

    id = Column(Integer, primary_key=True)
    application_number = Column(String(32), unique=True, nullable=False, index=True)

    # ============ EMPLOYEE ============
    employee_name = Column(String(255), nullable=False)
    employee_id = Column(String(64), index=True)
    employee_email = Column(String(255), nullable=False)
    department = Column(String(255))
    designation = Column(String(255))
    mobile_number = Column(String(32))

    # ============ PATIENT & TREATMENT ============
    patient_name = Column(String(255))
    relationship_with_employee = Column(String(64))
    hospital_name = Column(String(255))
    treatment_type = Column(String(20))

    # ============ AMOUNTS ============
    total_amount_claimed = Column(Float, default=0.0)
    total_amount_passed = Column(Float, default=0.0)

    # ============ REVIEW ============
    status = Column(String(20), default=ApplicationStatus.PENDING.value, nullable=False, index=True)
    review_comments = Column(Text)
    reviewed_by = Column(String(64))
    reviewed_at = Column(DateTime)

    submitted_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    expenses = relationship(
        "ExpenseItem",
        back_populates="application",
        order_by="ExpenseItem.id",
        cascade="all, delete-orphan"
    )
    history = relationship(
        "ApplicationStatusHistory",
        back_populates="application",
        order_by="ApplicationStatusHistory.id",
        cascade="all, delete-orphan"
    )
    expense_validations = relationship(
        "ExpenseValidation",
        back_populates="application",
        order_by="ExpenseValidation.id",
        cascade="all, delete-orphan"
    )
    eligibility_checks = relationship(
        "EligibilityCheck",
        back_populates="application",
        cascade="all, delete-orphan"
    )
    comments = relationship(
        "ReviewComment",
        back_populates="application",
        order_by="ReviewComment.id",
        cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_applications_status_submitted", "status", "submitted_at"),
    )

    def __repr__(self):
        return f"<MedicalApplication(id={self.id}, number={self.application_number}, status={self.status})>"


class ExpenseItem(Base):
    """One bill line of a claim."""
    __tablename__ = "expense_items"

    id = Column(Integer, primary_key=True)
    application_id = Column(Integer, ForeignKey("medical_applications.id"), nullable=False, index=True)
    bill_number = Column(String(64))
    bill_date = Column(Date)
    description = Column(String(512))
    amount_claimed = Column(Float, nullable=False, default=0.0)
    amount_passed = Column(Float)  # None until a reviewer validates the bill

    application = relationship("MedicalApplication", back_populates="expenses")

    def __repr__(self):
        return f"<ExpenseItem(id={self.id}, bill={self.bill_number}, amount={self.amount_claimed})>"


class ApplicationStatusHistory(Base):
    """Audit row written for every claim status change."""
    __tablename__ = "application_status_history"

    id = Column(Integer, primary_key=True)
    application_id = Column(Integer, ForeignKey("medical_applications.id"), nullable=False, index=True)
    old_status = Column(String(20))
    new_status = Column(String(20), nullable=False)
    comments = Column(Text)
    changed_by = Column(String(64))
    changed_by_role = Column(String(32))
    created_at = Column(DateTime, default=utcnow)

    application = relationship("MedicalApplication", back_populates="history")

    def __repr__(self):
        return f"<ApplicationStatusHistory({self.old_status} -> {self.new_status})>"
