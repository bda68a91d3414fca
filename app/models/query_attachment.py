"""
QueryAttachment model - file metadata linked to a query and optionally to
one of its messages. The file itself lives under UPLOAD_DIR.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base, utcnow


class QueryAttachment(Base):
    __tablename__ = "query_attachments"

    id = Column(Integer, primary_key=True)
    query_id = Column(Integer, ForeignKey("application_queries.id"), nullable=False, index=True)
    message_id = Column(Integer, ForeignKey("query_messages.id"), nullable=True)

    file_name = Column(String(255), nullable=False)  # Original client file name
    file_path = Column(String(1024), nullable=False)
    file_size = Column(Integer, nullable=False)
    file_type = Column(String(128))

    uploaded_by = Column(String(10), nullable=False)  # admin | user
    uploader_id = Column(String(64))
    uploader_name = Column(String(255))

    created_at = Column(DateTime, default=utcnow)

    query = relationship("Query", back_populates="attachments")

    def __repr__(self):
        return f"<QueryAttachment(id={self.id}, file={self.file_name})>"
