"""
Query model - a clarification thread an admin opens against a claim.

The employee takes part through a public link carrying `access_token`.
Counters and unread flags are a derived cache over the message log; only
the query service writes them, inside the transaction that changes the log.
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime,
    ForeignKey, Index
)
from sqlalchemy.orm import relationship
from app.database import Base, utcnow
import enum


class QueryStatus(str, enum.Enum):
    OPEN = "open"
    USER_REPLIED = "user_replied"
    ADMIN_REPLIED = "admin_replied"
    RESOLVED = "resolved"
    CLOSED = "closed"


TERMINAL_QUERY_STATUSES = {QueryStatus.RESOLVED.value, QueryStatus.CLOSED.value}


class QueryPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class SenderType(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


class Query(Base):
    __tablename__ = "application_queries"

    id = Column(Integer, primary_key=True)
    application_id = Column(Integer, ForeignKey("medical_applications.id"), nullable=False, index=True)

    subject = Column(String(512), nullable=False)
    status = Column(String(20), default=QueryStatus.OPEN.value, nullable=False, index=True)
    priority = Column(String(10), default=QueryPriority.NORMAL.value, nullable=False)

    # ============ CREATOR ============
    created_by = Column(String(64))
    created_by_role = Column(String(32), index=True)
    employee_email = Column(String(255))

    # ============ PUBLIC ACCESS ============
    access_token = Column(String(128), unique=True, nullable=False, index=True)
    token_expires_at = Column(DateTime, nullable=False)

    # ============ DERIVED SUMMARY ============
    total_messages = Column(Integer, default=0, nullable=False)
    unread_by_admin = Column(Boolean, default=False, nullable=False)
    unread_by_user = Column(Boolean, default=False, nullable=False)
    last_message_at = Column(DateTime)
    last_message_by = Column(String(10))

    # ============ RESOLUTION ============
    resolved_at = Column(DateTime)
    resolved_by = Column(String(64))

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    application = relationship("MedicalApplication")
    messages = relationship(
        "QueryMessage",
        back_populates="query",
        order_by="QueryMessage.id"
    )
    attachments = relationship(
        "QueryAttachment",
        back_populates="query",
        order_by="QueryAttachment.id"
    )

    __table_args__ = (
        Index("ix_queries_status_priority", "status", "priority"),
        Index("ix_queries_last_message", "last_message_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_QUERY_STATUSES

    def __repr__(self):
        return f"<Query(id={self.id}, application_id={self.application_id}, status={self.status})>"
