"""
Review records an admin writes while working on a claim.

- ExpenseValidation: one verdict on one bill (approved / adjusted / rejected).
  The newest verdict per bill is copied to ExpenseItem.amount_passed.
- EligibilityCheck: the eligibility checklist, one row per checker.
- ReviewComment: threaded reviewer remarks, internal by default.
- AuditLog: who removed what; rows outlive the entity they describe.
"""

from sqlalchemy import (
    Column, Integer, String, Float, Text, Boolean, DateTime,
    ForeignKey, JSON, Index
)
from sqlalchemy.orm import relationship
from app.database import Base, utcnow
import enum


class ExpenseValidationStatus(str, enum.Enum):
    APPROVED = "approved"    # Passed as claimed
    ADJUSTED = "adjusted"    # Passed at a reduced amount
    REJECTED = "rejected"    # Nothing passed


class EligibilityStatus(str, enum.Enum):
    PENDING = "pending"
    ELIGIBLE = "eligible"
    CONDITIONAL = "conditional"
    INELIGIBLE = "ineligible"


class ReviewCommentType(str, enum.Enum):
    GENERAL = "general"
    CLARIFICATION = "clarification"
    CONCERN = "concern"
    RECOMMENDATION = "recommendation"


class ExpenseValidation(Base):
    __tablename__ = "expense_validations"

    id = Column(Integer, primary_key=True)
    application_id = Column(Integer, ForeignKey("medical_applications.id"), nullable=False, index=True)
    expense_id = Column(Integer, ForeignKey("expense_items.id"), nullable=False, index=True)

    validator_id = Column(String(64))
    validator_role = Column(String(32))

    original_amount = Column(Float, nullable=False)
    validated_amount = Column(Float, nullable=False)
    validation_status = Column(String(20), nullable=False)

    is_within_policy = Column(Boolean)
    is_receipt_valid = Column(Boolean)
    policy_reference = Column(String(255))
    adjustment_reason = Column(Text)
    rejection_reason = Column(Text)

    validated_at = Column(DateTime, default=utcnow, nullable=False)

    application = relationship("MedicalApplication", back_populates="expense_validations")
    expense = relationship("ExpenseItem")

    def __repr__(self):
        return f"<ExpenseValidation(expense_id={self.expense_id}, status={self.validation_status})>"


class EligibilityCheck(Base):
    __tablename__ = "eligibility_checks"

    id = Column(Integer, primary_key=True)
    application_id = Column(Integer, ForeignKey("medical_applications.id"), nullable=False, index=True)
    checker_id = Column(String(64), nullable=False)
    checker_role = Column(String(32))

    # ============ CHECKLIST ============
    is_sc_st_obc_verified = Column(Boolean)
    category_proof_valid = Column(Boolean)
    employee_id_verified = Column(Boolean)
    medical_card_valid = Column(Boolean)
    relationship_verified = Column(Boolean)
    has_pending_claims = Column(Boolean)
    is_within_limits = Column(Boolean)
    is_treatment_covered = Column(Boolean)
    prior_permission_status = Column(String(32))

    # ============ OUTCOME ============
    eligibility_status = Column(String(20), default=EligibilityStatus.PENDING.value, nullable=False)
    ineligibility_reasons = Column(JSON, default=list)
    conditions = Column(JSON, default=list)
    notes = Column(Text)

    checked_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    application = relationship("MedicalApplication", back_populates="eligibility_checks")

    __table_args__ = (
        Index("ix_eligibility_application_checker", "application_id", "checker_id"),
    )

    def __repr__(self):
        return f"<EligibilityCheck(application_id={self.application_id}, status={self.eligibility_status})>"


class ReviewComment(Base):
    __tablename__ = "review_comments"

    id = Column(Integer, primary_key=True)
    application_id = Column(Integer, ForeignKey("medical_applications.id"), nullable=False, index=True)
    parent_comment_id = Column(Integer, ForeignKey("review_comments.id"), nullable=True)

    commenter_id = Column(String(64))
    commenter_name = Column(String(255))
    commenter_role = Column(String(32))

    comment_type = Column(String(20), default=ReviewCommentType.GENERAL.value, nullable=False)
    comment_text = Column(Text, nullable=False)
    is_internal = Column(Boolean, default=True, nullable=False)

    is_resolved = Column(Boolean, default=False, nullable=False)
    resolved_by = Column(String(64))
    resolved_at = Column(DateTime)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    application = relationship("MedicalApplication", back_populates="comments")
    parent = relationship("ReviewComment", remote_side=[id])

    def __repr__(self):
        return f"<ReviewComment(id={self.id}, application_id={self.application_id}, type={self.comment_type})>"


class AuditLog(Base):
    """No foreign key: the audited entity may no longer exist."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True)
    entity_type = Column(String(32), nullable=False)
    entity_id = Column(String(64), nullable=False)
    action = Column(String(32), nullable=False)
    user_id = Column(String(64))
    user_role = Column(String(32))
    changes = Column(JSON)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_audit_entity", "entity_type", "entity_id"),
    )

    def __repr__(self):
        return f"<AuditLog({self.action} {self.entity_type}:{self.entity_id})>"
