"""
Query (clarification thread) service.

This module owns the query state machine and the message log:
- create_query: open a thread against a claim with the first admin message
- reply / reply_as_admin / reply_public: append to the log and move the status
- resolve_query, reopen_query, close_query: explicit admin transitions
- regenerate_link: rotate the public access token
- Directory queries: by application, dashboard listing, unread stats

Status transitions:

    open / user_replied / admin_replied  --reply(admin)-->  admin_replied
    open / user_replied / admin_replied  --reply(user)--->  user_replied
    any non-terminal                     --resolve------->  resolved
    any non-terminal                     --close--------->  closed
    resolved / closed                    --reopen-------->  open

The summary columns on Query (total_messages, last_message_*, unread_*)
are recomputed from the message rows by refresh_summary() inside the same
transaction as every mutation.
"""

import logging
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from app.core.security import AdminPrincipal
from app.database import utcnow
from app.models.application import MedicalApplication
from app.models.query import Query, QueryPriority, QueryStatus, SenderType
from app.models.query_attachment import QueryAttachment
from app.models.query_message import QueryMessage
from app.services import token_service

logger = logging.getLogger(__name__)


# ============ HELPERS ============

def _require_text(value: Optional[str], field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field.capitalize()} is required", field=field)
    return text


def _parse_priority(value: Optional[str]) -> QueryPriority:
    if value is None or value == "":
        return QueryPriority.NORMAL
    try:
        return QueryPriority(value)
    except ValueError:
        allowed = ", ".join(p.value for p in QueryPriority)
        raise ValidationError(f"Priority must be one of: {allowed}", field="priority")


def _commit(db: Session, *instances) -> None:
    """Commit the unit of work, or roll it back entirely."""
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Query transaction failed, rolled back")
        raise
    for instance in instances:
        db.refresh(instance)


def _mark_read(db: Session, query: Query, sent_by: SenderType) -> int:
    """Mark the shared messages sent by `sent_by` as read by their recipient. Returns the number marked."""
    return db.query(QueryMessage).filter(
        QueryMessage.query_id == query.id,
        QueryMessage.sender_type == sent_by.value,
        QueryMessage.is_internal_note.is_(False),
        QueryMessage.read_by_recipient.is_(False)
    ).update(
        {QueryMessage.read_by_recipient: True, QueryMessage.read_at: utcnow()},
        synchronize_session="fetch"
    )


def _summary_of(query: Query) -> tuple:
    return (
        query.total_messages,
        query.last_message_at,
        query.last_message_by,
        query.unread_by_admin,
        query.unread_by_user,
    )


def refresh_summary(db: Session, query: Query, touch: bool = True) -> bool:
    """
    Re-derive the denormalized summary of a query from its message log.

    - total_messages counts every row, internal notes included
    - last_message_at / last_message_by follow the newest shared message
    - unread flags reflect unread shared messages from the other side

    `updated_at` moves when `touch` is set (the caller changed the status or
    the log) or when the derived summary differs from what was stored.
    Returns whether the summary changed.
    """
    before = _summary_of(query)
    db.flush()
    messages = db.query(QueryMessage).filter(QueryMessage.query_id == query.id)
    shared = messages.filter(QueryMessage.is_internal_note.is_(False))

    query.total_messages = messages.count()

    last_shared = shared.order_by(
        QueryMessage.created_at.desc(), QueryMessage.id.desc()
    ).first()
    if last_shared is not None:
        query.last_message_at = last_shared.created_at
        query.last_message_by = last_shared.sender_type

    unread = shared.filter(QueryMessage.read_by_recipient.is_(False))
    query.unread_by_admin = bool(db.query(
        unread.filter(QueryMessage.sender_type == SenderType.USER.value).exists()
    ).scalar())
    query.unread_by_user = bool(db.query(
        unread.filter(QueryMessage.sender_type == SenderType.ADMIN.value).exists()
    ).scalar())

    changed = _summary_of(query) != before
    if touch or changed:
        query.updated_at = utcnow()
    return changed


def get_query(db: Session, query_id: int) -> Query:
    query = db.query(Query).filter(Query.id == query_id).first()
    if query is None:
        raise NotFoundError.for_resource("Query", query_id)
    return query


# ============ CREATE ============

def create_query(
    db: Session,
    application_id: int,
    subject: Optional[str],
    message: Optional[str],
    admin: AdminPrincipal,
    priority: Optional[str] = None
) -> Query:
    """
    Open a clarification thread against a claim.

    Writes the query (status open, fresh public token) and its first admin
    message in one transaction.

    Raises:
        ValidationError: empty subject/message or unknown priority
        NotFoundError: the claim does not exist
    """
    subject = _require_text(subject, "subject")
    body = _require_text(message, "message")
    parsed_priority = _parse_priority(priority)

    application = db.query(MedicalApplication).filter(
        MedicalApplication.id == application_id
    ).first()
    if application is None:
        raise NotFoundError.for_resource("Application", application_id)

    query = Query(
        application_id=application.id,
        subject=subject,
        status=QueryStatus.OPEN.value,
        priority=parsed_priority.value,
        created_by=admin.user_id,
        created_by_role=admin.role.value,
        employee_email=application.employee_email,
    )
    token_service.issue_token(query)
    db.add(query)
    db.flush()

    db.add(QueryMessage(
        query_id=query.id,
        message=body,
        sender_type=SenderType.ADMIN.value,
        sender_id=admin.user_id,
        sender_name=admin.name,
        sender_role=admin.role.value,
        created_at=utcnow()
    ))
    refresh_summary(db, query)
    _commit(db, query)

    # Email delivery is handled outside this service; record what would be sent
    logger.info(
        f"Query {query.id} opened on application {application.application_number} "
        f"by {admin.role.value}; notification for {application.employee_email}: "
        f"{token_service.build_query_link(query.access_token)}"
    )
    return query


# ============ REPLIES ============

def reply(
    db: Session,
    query_id: int,
    message: Optional[str],
    sender_type: SenderType,
    is_internal_note: bool = False,
    sender_id: Optional[str] = None,
    sender_name: Optional[str] = None,
    sender_role: Optional[str] = None
) -> QueryMessage:
    """
    Append a message to a thread and advance its status.

    Internal notes (admin only) are stored and counted but leave status,
    last-message fields and unread flags untouched.

    Raises:
        NotFoundError: unknown query
        ValidationError: empty message, or an internal note from the user side
        InvalidStateError: the query is resolved or closed
    """
    query = get_query(db, query_id)
    body = _require_text(message, "message")
    sender_type = SenderType(sender_type)

    if is_internal_note and sender_type != SenderType.ADMIN:
        raise ValidationError("Only admins can add internal notes", field="is_internal_note")

    if query.is_terminal:
        raise InvalidStateError(
            f"Query is {query.status}; reopen it before adding messages"
        )

    new_message = QueryMessage(
        query_id=query.id,
        message=body,
        sender_type=sender_type.value,
        sender_id=sender_id,
        sender_name=sender_name,
        sender_role=sender_role,
        is_internal_note=bool(is_internal_note),
        created_at=utcnow()
    )
    db.add(new_message)

    if not is_internal_note:
        if sender_type == SenderType.ADMIN:
            _mark_read(db, query, SenderType.USER)
            query.status = QueryStatus.ADMIN_REPLIED.value
        else:
            _mark_read(db, query, SenderType.ADMIN)
            query.status = QueryStatus.USER_REPLIED.value

    refresh_summary(db, query)
    _commit(db, new_message)

    logger.info(
        f"Query {query.id}: {'internal note' if is_internal_note else 'reply'} "
        f"from {sender_type.value}, status now {query.status}"
    )
    return new_message


def reply_as_admin(
    db: Session,
    query_id: int,
    message: Optional[str],
    admin: AdminPrincipal,
    is_internal_note: bool = False
) -> QueryMessage:
    return reply(
        db,
        query_id,
        message,
        SenderType.ADMIN,
        is_internal_note=is_internal_note,
        sender_id=admin.user_id,
        sender_name=admin.name,
        sender_role=admin.role.value
    )


def reply_public(db: Session, token: str, message: Optional[str], user_name: Optional[str]) -> QueryMessage:
    """Employee reply through the public link; never an internal note."""
    query = token_service.resolve_token(db, token)
    name = _require_text(user_name, "userName")
    return reply(db, query.id, message, SenderType.USER, is_internal_note=False, sender_name=name)


# ============ TRANSITIONS ============

def resolve_query(db: Session, query_id: int, admin: AdminPrincipal) -> Query:
    """
    Mark a thread resolved. Resolving an already resolved thread is a no-op.

    Raises:
        InvalidStateError: the query is closed
    """
    query = get_query(db, query_id)

    if query.status == QueryStatus.RESOLVED.value:
        return query
    if query.status == QueryStatus.CLOSED.value:
        raise InvalidStateError("Query is closed; reopen it before resolving")

    query.status = QueryStatus.RESOLVED.value
    query.resolved_at = utcnow()
    query.resolved_by = admin.user_id
    refresh_summary(db, query)
    _commit(db, query)

    logger.info(f"Query {query.id} resolved by {admin.user_id} ({admin.role.value})")
    return query


def reopen_query(db: Session, query_id: int) -> Query:
    """
    Put a resolved or closed thread back to `open`.

    Raises:
        InvalidStateError: the query is not resolved or closed
    """
    query = get_query(db, query_id)

    if not query.is_terminal:
        raise InvalidStateError(f"Only resolved or closed queries can be reopened (status: {query.status})")

    query.status = QueryStatus.OPEN.value
    query.resolved_at = None
    query.resolved_by = None
    refresh_summary(db, query)
    _commit(db, query)

    logger.info(f"Query {query.id} reopened")
    return query


def close_query(db: Session, query_id: int, admin: AdminPrincipal) -> Query:
    """Administrator override. Same preconditions as resolve; idempotent on closed."""
    query = get_query(db, query_id)

    if query.status == QueryStatus.CLOSED.value:
        return query
    if query.status == QueryStatus.RESOLVED.value:
        raise InvalidStateError("Query is already resolved")

    query.status = QueryStatus.CLOSED.value
    refresh_summary(db, query)
    _commit(db, query)

    logger.info(f"Query {query.id} closed by {admin.user_id} ({admin.role.value})")
    return query


def regenerate_link(db: Session, query_id: int) -> Query:
    """Issue a new public token with a fresh validity window; the old link stops working."""
    query = get_query(db, query_id)
    token_service.issue_token(query)
    query.updated_at = utcnow()
    _commit(db, query)

    logger.info(f"Query {query.id}: public link regenerated, valid until {query.token_expires_at.isoformat()}")
    return query


# ============ THREAD READS ============

def get_query_details(db: Session, query_id: int) -> dict:
    """
    Full thread for admins, internal notes included.

    Opening the thread marks the employee's messages as read.
    """
    query = get_query(db, query_id)

    marked = _mark_read(db, query, SenderType.USER)
    refresh_summary(db, query, touch=marked > 0)
    _commit(db, query)

    messages = db.query(QueryMessage).filter(
        QueryMessage.query_id == query.id
    ).order_by(QueryMessage.created_at.asc(), QueryMessage.id.asc()).all()

    attachments = db.query(QueryAttachment).filter(
        QueryAttachment.query_id == query.id
    ).order_by(QueryAttachment.created_at.asc(), QueryAttachment.id.asc()).all()

    return {"query": query, "messages": messages, "attachments": attachments}


def get_public_thread(db: Session, token: str) -> dict:
    """
    Thread as the employee sees it: internal notes and anything attached to
    them are filtered out. Opening it marks admin messages as read.
    """
    query = token_service.resolve_token(db, token)

    marked = _mark_read(db, query, SenderType.ADMIN)
    refresh_summary(db, query, touch=marked > 0)
    _commit(db, query)

    messages = db.query(QueryMessage).filter(
        QueryMessage.query_id == query.id,
        QueryMessage.is_internal_note.is_(False)
    ).order_by(QueryMessage.created_at.asc(), QueryMessage.id.asc()).all()

    visible_ids = {m.id for m in messages}
    attachments = [
        a for a in db.query(QueryAttachment).filter(
            QueryAttachment.query_id == query.id
        ).order_by(QueryAttachment.created_at.asc(), QueryAttachment.id.asc()).all()
        if a.message_id is None or a.message_id in visible_ids
    ]

    return {"query": query, "messages": messages, "attachments": attachments}


# ============ DIRECTORY ============

def get_queries_for_application(db: Session, application_id: int) -> list[Query]:
    """All threads on one claim, newest first."""
    return db.query(Query).filter(
        Query.application_id == application_id
    ).order_by(Query.created_at.desc(), Query.id.desc()).all()


def get_all_queries(
    db: Session,
    status: str = None,
    priority: str = None,
    role: str = None,
    search: str = None,
    skip: int = 0,
    limit: int = 100
) -> list[Query]:
    """
    Dashboard listing with optional filtering.

    Args:
        status: exact status, "all" or None for every status
        priority: exact priority
        role: role of the admin who opened the query
        search: partial match on subject, application number or employee name
    """
    query = db.query(Query).join(Query.application)

    if status and status != "all":
        query = query.filter(Query.status == status)

    if priority:
        query = query.filter(Query.priority == priority)

    if role:
        query = query.filter(Query.created_by_role == role)

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Query.subject.ilike(pattern),
            MedicalApplication.application_number.ilike(pattern),
            MedicalApplication.employee_name.ilike(pattern)
        ))

    query = query.order_by(Query.last_message_at.desc().nullslast(), Query.id.desc())

    return query.offset(skip).limit(limit).all()


def get_unread_stats(db: Session, role: str = None) -> dict:
    """Counters for the dashboard badge."""
    base = db.query(Query)
    if role:
        base = base.filter(Query.created_by_role == role)

    return {
        "unread_count": base.filter(Query.unread_by_admin.is_(True)).count(),
        "open_count": base.filter(Query.status == QueryStatus.OPEN.value).count(),
        "user_replied_count": base.filter(Query.status == QueryStatus.USER_REPLIED.value).count(),
    }
