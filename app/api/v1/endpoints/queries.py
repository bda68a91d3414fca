"""
Query (clarification thread) endpoints.

Admin routes need a Bearer token and the matching capability.
Public routes under /queries/public/{token} are for the employee and are
authorised by the link token alone.
"""

import logging
import os
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query as QueryParam, UploadFile
from fastapi.responses import FileResponse
from pydantic import BaseModel, ConfigDict, Field, computed_field
from sqlalchemy.orm import Session

from app.api.v1.envelope import ApiResponse, ok
from app.core.exceptions import NotFoundError
from app.core.roles import Action
from app.core.security import AdminPrincipal, require_capability
from app.database import get_db
from app.services import attachment_service, query_service, token_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/queries", tags=["Queries"])


# ============ Request Schemas ============

class CreateQueryRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    application_id: int = Field(alias="applicationId")
    subject: Optional[str] = None
    message: Optional[str] = None
    priority: Optional[str] = "normal"


class AdminReplyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = None
    is_internal_note: bool = Field(False, alias="isInternalNote")


class PublicReplyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: Optional[str] = None
    user_name: Optional[str] = Field(None, alias="userName")


# ============ Response Schemas ============

class QueryApplicationSummary(BaseModel):
    """Claim fields shown next to a thread."""
    id: int
    application_number: str
    employee_name: str
    employee_email: Optional[str]
    department: Optional[str]
    total_amount_claimed: Optional[float]

    class Config:
        from_attributes = True


class QueryResponse(BaseModel):
    """Admin view of a query, including its public link."""
    id: int
    application_id: int
    subject: str
    status: str
    priority: str
    created_by: Optional[str]
    created_by_role: Optional[str]
    employee_email: Optional[str]
    access_token: str
    token_expires_at: datetime
    total_messages: int
    unread_by_admin: bool
    unread_by_user: bool
    last_message_at: Optional[datetime]
    last_message_by: Optional[str]
    resolved_at: Optional[datetime]
    resolved_by: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    application: Optional[QueryApplicationSummary] = None

    class Config:
        from_attributes = True

    @computed_field
    @property
    def query_link(self) -> str:
        return token_service.build_query_link(self.access_token)


class PublicApplicationSummary(BaseModel):
    application_number: str
    employee_name: str
    department: Optional[str]
    total_amount_claimed: Optional[float]

    class Config:
        from_attributes = True


class PublicQueryResponse(BaseModel):
    """What the employee sees: no creator identity, no token bookkeeping."""
    id: int
    subject: str
    status: str
    priority: str
    token_expires_at: datetime
    total_messages: int
    last_message_at: Optional[datetime]
    last_message_by: Optional[str]
    resolved_at: Optional[datetime]
    created_at: Optional[datetime]
    application: Optional[PublicApplicationSummary] = None

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    id: int
    query_id: int
    message: str
    sender_type: str
    sender_id: Optional[str]
    sender_name: Optional[str]
    sender_role: Optional[str]
    is_internal_note: bool
    read_by_recipient: bool
    read_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class PublicMessageResponse(BaseModel):
    id: int
    message: str
    sender_type: str
    sender_name: Optional[str]
    sender_role: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class AttachmentResponse(BaseModel):
    id: int
    query_id: int
    message_id: Optional[int]
    file_name: str
    file_size: int
    file_type: Optional[str]
    uploaded_by: str
    uploader_name: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class QueryDetailsResponse(BaseModel):
    query: QueryResponse
    messages: list[MessageResponse]
    attachments: list[AttachmentResponse]


class PublicThreadResponse(BaseModel):
    query: PublicQueryResponse
    messages: list[PublicMessageResponse]
    attachments: list[AttachmentResponse]


class UnreadStatsResponse(BaseModel):
    unread_count: int
    open_count: int
    user_replied_count: int


def _file_response(attachment) -> FileResponse:
    if not os.path.exists(attachment.file_path):
        logger.error(f"Attachment {attachment.id} missing on disk: {attachment.file_path}")
        raise NotFoundError.for_resource("Attachment file", attachment.id)
    return FileResponse(
        attachment.file_path,
        media_type=attachment.file_type or "application/octet-stream",
        filename=attachment.file_name
    )


# ============ ADMIN: CREATE & LIST ============

@router.post("/create", response_model=ApiResponse[QueryResponse], status_code=201)
def create_query(
    body: CreateQueryRequest,
    admin: AdminPrincipal = Depends(require_capability(Action.CREATE_QUERY)),
    db: Session = Depends(get_db)
):
    """
    Open a clarification query against a claim.

    The employee receives a link `<FRONTEND_URL>/query/<token>` valid for 30 days.
    """
    query = query_service.create_query(
        db,
        application_id=body.application_id,
        subject=body.subject,
        message=body.message,
        admin=admin,
        priority=body.priority
    )
    return ok(query, "Query created successfully")


@router.get("/application/{application_id}", response_model=ApiResponse[list[QueryResponse]])
def list_application_queries(
    application_id: int,
    admin: AdminPrincipal = Depends(require_capability(Action.VIEW_QUERIES)),
    db: Session = Depends(get_db)
):
    """All queries raised on one claim, newest first."""
    return ok(query_service.get_queries_for_application(db, application_id))


@router.get("/all", response_model=ApiResponse[list[QueryResponse]])
def list_all_queries(
    status: Optional[str] = QueryParam(None, description="open, user_replied, admin_replied, resolved, closed or all"),
    priority: Optional[str] = QueryParam(None, description="low, normal, high, urgent"),
    role: Optional[str] = QueryParam(None, description="Role of the admin who opened the query"),
    search: Optional[str] = QueryParam(None, description="Subject, application number or employee name"),
    skip: int = QueryParam(0, ge=0),
    limit: int = QueryParam(100, ge=1, le=500),
    admin: AdminPrincipal = Depends(require_capability(Action.VIEW_QUERIES)),
    db: Session = Depends(get_db)
):
    """
    Dashboard listing, most recent activity first.

    **Example:**
    ```
    GET /api/v1/queries/all?status=user_replied&priority=high
    ```
    """
    queries = query_service.get_all_queries(
        db,
        status=status,
        priority=priority,
        role=role,
        search=search,
        skip=skip,
        limit=limit
    )
    return ok(queries)


@router.get("/stats/unread", response_model=ApiResponse[UnreadStatsResponse])
def unread_stats(
    role: Optional[str] = QueryParam(None),
    admin: AdminPrincipal = Depends(require_capability(Action.VIEW_QUERIES)),
    db: Session = Depends(get_db)
):
    return ok(query_service.get_unread_stats(db, role=role))


# ============ PUBLIC (TOKEN) ============

@router.get("/public/{token}", response_model=ApiResponse[PublicThreadResponse])
def get_public_thread(token: str, db: Session = Depends(get_db)):
    """Thread for the employee. Internal notes are never included."""
    return ok(query_service.get_public_thread(db, token))


@router.post("/public/{token}/reply", response_model=ApiResponse[PublicMessageResponse], status_code=201)
def reply_public(token: str, body: PublicReplyRequest, db: Session = Depends(get_db)):
    message = query_service.reply_public(db, token, body.message, body.user_name)
    return ok(message, "Reply sent")


@router.post("/public/{token}/upload", response_model=ApiResponse[AttachmentResponse], status_code=201)
def upload_public(
    token: str,
    file: UploadFile = File(...),
    user_name: Optional[str] = Form(None, alias="userName"),
    message_id: Optional[int] = Form(None, alias="messageId"),
    db: Session = Depends(get_db)
):
    """Upload a supporting document (max 10MB; images, PDF, Word, text)."""
    # One byte past the limit is enough to reject without buffering the rest
    content = file.file.read(attachment_service.max_upload_bytes() + 1)
    attachment = attachment_service.upload_public(
        db,
        token,
        file_name=file.filename,
        content_type=file.content_type,
        content=content,
        user_name=user_name,
        message_id=message_id
    )
    return ok(attachment, "File uploaded")


@router.get("/public/{token}/attachments/{attachment_id}")
def download_public_attachment(token: str, attachment_id: int, db: Session = Depends(get_db)):
    return _file_response(attachment_service.get_public_attachment(db, token, attachment_id))


# ============ ADMIN: ATTACHMENTS ============

@router.get("/attachments/{attachment_id}/download")
def download_attachment(
    attachment_id: int,
    admin: AdminPrincipal = Depends(require_capability(Action.VIEW_QUERIES)),
    db: Session = Depends(get_db)
):
    return _file_response(attachment_service.get_attachment(db, attachment_id))


@router.delete("/attachments/{attachment_id}", response_model=ApiResponse[None])
def delete_attachment(
    attachment_id: int,
    admin: AdminPrincipal = Depends(require_capability(Action.DELETE_ATTACHMENT)),
    db: Session = Depends(get_db)
):
    attachment_service.delete_attachment(db, attachment_id)
    return ok(None, "Attachment deleted")


# ============ ADMIN: SINGLE QUERY ============

@router.get("/{query_id}", response_model=ApiResponse[QueryDetailsResponse])
def get_query(
    query_id: int,
    admin: AdminPrincipal = Depends(require_capability(Action.VIEW_QUERIES)),
    db: Session = Depends(get_db)
):
    """Full thread including internal notes. Marks employee messages as read."""
    return ok(query_service.get_query_details(db, query_id))


@router.post("/{query_id}/reply", response_model=ApiResponse[MessageResponse], status_code=201)
def reply_admin(
    query_id: int,
    body: AdminReplyRequest,
    admin: AdminPrincipal = Depends(require_capability(Action.REPLY_QUERY)),
    db: Session = Depends(get_db)
):
    message = query_service.reply_as_admin(
        db,
        query_id,
        body.message,
        admin,
        is_internal_note=body.is_internal_note
    )
    return ok(message, "Internal note added" if body.is_internal_note else "Reply sent")


@router.post("/{query_id}/attachments", response_model=ApiResponse[AttachmentResponse], status_code=201)
def upload_admin(
    query_id: int,
    file: UploadFile = File(...),
    message_id: Optional[int] = Form(None, alias="messageId"),
    admin: AdminPrincipal = Depends(require_capability(Action.UPLOAD_ATTACHMENT)),
    db: Session = Depends(get_db)
):
    content = file.file.read(attachment_service.max_upload_bytes() + 1)
    attachment = attachment_service.upload_admin(
        db,
        query_id,
        file_name=file.filename,
        content_type=file.content_type,
        content=content,
        admin=admin,
        message_id=message_id
    )
    return ok(attachment, "File uploaded")


@router.patch("/{query_id}/resolve", response_model=ApiResponse[QueryResponse])
def resolve_query(
    query_id: int,
    admin: AdminPrincipal = Depends(require_capability(Action.RESOLVE_QUERY)),
    db: Session = Depends(get_db)
):
    return ok(query_service.resolve_query(db, query_id, admin), "Query resolved")


@router.patch("/{query_id}/reopen", response_model=ApiResponse[QueryResponse])
def reopen_query(
    query_id: int,
    admin: AdminPrincipal = Depends(require_capability(Action.REOPEN_QUERY)),
    db: Session = Depends(get_db)
):
    return ok(query_service.reopen_query(db, query_id), "Query reopened")


@router.patch("/{query_id}/close", response_model=ApiResponse[QueryResponse])
def close_query(
    query_id: int,
    admin: AdminPrincipal = Depends(require_capability(Action.CLOSE_QUERY)),
    db: Session = Depends(get_db)
):
    return ok(query_service.close_query(db, query_id, admin), "Query closed")


@router.patch("/{query_id}/regenerate-link", response_model=ApiResponse[QueryResponse])
def regenerate_link(
    query_id: int,
    admin: AdminPrincipal = Depends(require_capability(Action.REGENERATE_QUERY_LINK)),
    db: Session = Depends(get_db)
):
    """Issue a new 30-day link. The previous link stops working immediately."""
    return ok(query_service.regenerate_link(db, query_id), "Query link regenerated")
