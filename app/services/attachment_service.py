"""
Attachment store for query threads.

Files are written under <UPLOAD_DIR>/query-attachments with a generated
name; the original file name is kept on the row. Size and type checks run
before anything touches the disk or the database.
"""

import logging
import os
import secrets
import time
from pathlib import Path
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import config
from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.core.security import AdminPrincipal
from app.database import utcnow
from app.models.query import Query, SenderType
from app.models.query_attachment import QueryAttachment
from app.models.query_message import QueryMessage
from app.services import token_service

logger = logging.getLogger(__name__)

ATTACHMENT_SUBDIR = "query-attachments"


def max_upload_bytes() -> int:
    return config.MAX_UPLOAD_SIZE_MB * 1024 * 1024


def attachment_dir() -> Path:
    path = Path(config.UPLOAD_DIR) / ATTACHMENT_SUBDIR
    path.mkdir(parents=True, exist_ok=True)
    return path


# ============ VALIDATION ============

def validate_upload(file_name: Optional[str], content_type: Optional[str], size: int) -> None:
    """
    Reject files that are empty, too large, or not an allowed document type.

    Both the MIME type and the file extension must be on the allow-list.
    """
    if not file_name:
        raise ValidationError("No file uploaded", field="file")

    if size <= 0:
        raise ValidationError("Uploaded file is empty", field="file")

    if size > max_upload_bytes():
        raise ValidationError(
            f"File too large. Maximum size is {config.MAX_UPLOAD_SIZE_MB}MB",
            field="file"
        )

    mime = (content_type or "").split(";")[0].strip().lower()
    extension = Path(file_name).suffix.lower()
    allowed_extensions = set().union(*config.ALLOWED_UPLOAD_TYPES.values())

    if mime not in config.ALLOWED_UPLOAD_TYPES or extension not in allowed_extensions:
        raise ValidationError(
            "Invalid file type. Only images, PDFs, and documents allowed.",
            field="file"
        )


def _check_message_link(
    db: Session, query: Query, message_id: Optional[int], public: bool = False
) -> Optional[int]:
    """An upload may only point at a message of its own thread; a public upload only at a shared one."""
    if message_id is None:
        return None
    target = db.query(QueryMessage.id).filter(
        QueryMessage.id == message_id,
        QueryMessage.query_id == query.id
    )
    if public:
        target = target.filter(QueryMessage.is_internal_note.is_(False))
    exists = target.first()
    if exists is None:
        raise ValidationError(
            f"Message {message_id} does not belong to query {query.id}",
            field="message_id"
        )
    return message_id


# ============ STORAGE ============

def _store_file(file_name: str, content: bytes) -> Path:
    unique_name = f"{int(time.time() * 1000)}-{secrets.token_hex(8)}{Path(file_name).suffix.lower()}"
    path = attachment_dir() / unique_name
    path.write_bytes(content)
    return path


def _remove_file(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        logger.warning(f"Attachment file already missing: {path}")


def create_attachment(
    db: Session,
    query: Query,
    file_name: str,
    content_type: Optional[str],
    content: bytes,
    uploaded_by: SenderType,
    uploader_name: Optional[str],
    uploader_id: Optional[str] = None,
    message_id: Optional[int] = None
) -> QueryAttachment:
    """
    Validate, store and record one uploaded file.

    The file on disk is removed again if the row cannot be committed.

    Raises:
        ValidationError: bad file, foreign message_id, or an employee upload
            pointing at an internal note
        InvalidStateError: the query is resolved or closed
    """
    validate_upload(file_name, content_type, len(content))

    if query.is_terminal:
        raise InvalidStateError(f"Query is {query.status}; attachments are no longer accepted")

    linked_message = _check_message_link(
        db, query, message_id, public=SenderType(uploaded_by) == SenderType.USER
    )

    path = _store_file(file_name, content)
    attachment = QueryAttachment(
        query_id=query.id,
        message_id=linked_message,
        file_name=os.path.basename(file_name),
        file_path=str(path),
        file_size=len(content),
        file_type=(content_type or "").split(";")[0].strip().lower(),
        uploaded_by=SenderType(uploaded_by).value,
        uploader_id=uploader_id,
        uploader_name=uploader_name,
        created_at=utcnow()
    )
    db.add(attachment)

    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        _remove_file(str(path))
        logger.exception(f"Failed to save attachment for query {query.id}")
        raise

    db.refresh(attachment)
    logger.info(
        f"Attachment {attachment.id} ({attachment.file_size} bytes) added to query {query.id} "
        f"by {attachment.uploaded_by}"
    )
    return attachment


def upload_public(
    db: Session,
    token: str,
    file_name: str,
    content_type: Optional[str],
    content: bytes,
    user_name: Optional[str],
    message_id: Optional[int] = None
) -> QueryAttachment:
    """Employee upload through the public link."""
    query = token_service.resolve_token(db, token)
    return create_attachment(
        db,
        query,
        file_name,
        content_type,
        content,
        uploaded_by=SenderType.USER,
        uploader_name=(user_name or "").strip() or None,
        message_id=message_id
    )


def upload_admin(
    db: Session,
    query_id: int,
    file_name: str,
    content_type: Optional[str],
    content: bytes,
    admin: AdminPrincipal,
    message_id: Optional[int] = None
) -> QueryAttachment:
    query = db.query(Query).filter(Query.id == query_id).first()
    if query is None:
        raise NotFoundError.for_resource("Query", query_id)
    return create_attachment(
        db,
        query,
        file_name,
        content_type,
        content,
        uploaded_by=SenderType.ADMIN,
        uploader_name=admin.name,
        uploader_id=admin.user_id,
        message_id=message_id
    )


# ============ LOOKUP / DELETE ============

def get_attachment(db: Session, attachment_id: int) -> QueryAttachment:
    attachment = db.query(QueryAttachment).filter(QueryAttachment.id == attachment_id).first()
    if attachment is None:
        raise NotFoundError.for_resource("Attachment", attachment_id)
    return attachment


def get_public_attachment(db: Session, token: str, attachment_id: int) -> QueryAttachment:
    """An attachment of the token's query that the employee is allowed to see."""
    query = token_service.resolve_token(db, token)
    attachment = db.query(QueryAttachment).filter(
        QueryAttachment.id == attachment_id,
        QueryAttachment.query_id == query.id
    ).first()
    if attachment is None:
        raise NotFoundError.for_resource("Attachment", attachment_id)

    if attachment.message_id is not None:
        message = db.query(QueryMessage).filter(QueryMessage.id == attachment.message_id).first()
        if message is not None and message.is_internal_note:
            raise NotFoundError.for_resource("Attachment", attachment_id)

    return attachment


def delete_attachment(db: Session, attachment_id: int) -> None:
    """Remove the row, then the file. Only reachable from admin routes."""
    attachment = get_attachment(db, attachment_id)
    path = attachment.file_path

    db.delete(attachment)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Failed to delete attachment {attachment_id}")
        raise

    _remove_file(path)
    logger.info(f"Attachment {attachment_id} deleted")
