"""
Access tokens for the public (employee-facing) query link.

A token is an opaque random string stored on the query row. It is the only
credential the employee holds, so an unknown token and an expired token
must look the same to the caller.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app import config
from app.core.exceptions import INVALID_LINK_MESSAGE, NotFoundError, TokenExpiredError
from app.database import utcnow
from app.models.query import Query

logger = logging.getLogger(__name__)


def generate_access_token() -> str:
    return secrets.token_hex(32)


def token_expiry(issued_at: Optional[datetime] = None) -> datetime:
    return (issued_at or utcnow()) + timedelta(days=config.QUERY_TOKEN_TTL_DAYS)


def issue_token(query: Query) -> str:
    """Attach a fresh token to the query, replacing any previous one."""
    now = utcnow()
    query.access_token = generate_access_token()
    query.token_expires_at = token_expiry(now)
    return query.access_token


def build_query_link(token: str) -> str:
    return f"{config.FRONTEND_URL.rstrip('/')}/query/{token}"


def resolve_token(db: Session, token: str) -> Query:
    """
    Return the query a public token grants access to.

    Raises:
        NotFoundError: no query carries this token
        TokenExpiredError: the token's validity window has passed
    Both carry the same message.
    """
    if not token:
        raise NotFoundError(INVALID_LINK_MESSAGE)

    query = db.query(Query).filter(Query.access_token == token).first()
    if query is None:
        logger.info("Public query access with unknown token")
        raise NotFoundError(INVALID_LINK_MESSAGE)

    if utcnow() >= query.token_expires_at:
        logger.info(f"Public query access with expired token for query {query.id}")
        raise TokenExpiredError()

    return query
