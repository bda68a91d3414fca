"""
QueryMessage model - one append-only entry in a query thread.

Internal notes are visible to admins only and never leave through the
public (token) read path.
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base, utcnow


class QueryMessage(Base):
    __tablename__ = "query_messages"

    id = Column(Integer, primary_key=True)
    query_id = Column(Integer, ForeignKey("application_queries.id"), nullable=False, index=True)

    message = Column(Text, nullable=False)

    sender_type = Column(String(10), nullable=False)  # admin | user
    sender_id = Column(String(64))  # None for the public sender
    sender_name = Column(String(255))
    sender_role = Column(String(32))

    is_internal_note = Column(Boolean, default=False, nullable=False)

    read_by_recipient = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    query = relationship("Query", back_populates="messages")

    def __repr__(self):
        return f"<QueryMessage(id={self.id}, query_id={self.query_id}, sender={self.sender_type})>"
