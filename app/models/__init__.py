"""
SQLAlchemy models for the reimbursement claim portal.

This package contains:
- MedicalApplication, ExpenseItem, ApplicationStatusHistory: the claim and its audit trail
- ExpenseValidation, EligibilityCheck, ReviewComment: reviewer work on a claim
- AuditLog: record of deleted claims
- Query, QueryMessage, QueryAttachment: clarification threads between admins and employees

Note: Queries are never hard-deleted; they form part of the claim's audit trail.
"""

from app.models.application import (
    MedicalApplication, ExpenseItem, ApplicationStatusHistory, ApplicationStatus
)
from app.models.review import (
    ExpenseValidation, EligibilityCheck, ReviewComment, AuditLog,
    ExpenseValidationStatus, EligibilityStatus, ReviewCommentType
)
from app.models.query import Query, QueryStatus, QueryPriority, SenderType
from app.models.query_message import QueryMessage
from app.models.query_attachment import QueryAttachment

__all__ = [
    "MedicalApplication", "ExpenseItem", "ApplicationStatusHistory", "ApplicationStatus",
    "ExpenseValidation", "EligibilityCheck", "ReviewComment", "AuditLog",
    "ExpenseValidationStatus", "EligibilityStatus", "ReviewCommentType",
    "Query", "QueryStatus", "QueryPriority", "SenderType",
    "QueryMessage", "QueryAttachment",
]
