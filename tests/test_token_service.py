"""
Tests for public link tokens.
"""

from datetime import timedelta

import pytest

from app import config
from app.core.exceptions import INVALID_LINK_MESSAGE, NotFoundError, TokenExpiredError
from app.database import utcnow
from app.models import Query
from app.services import query_service, token_service


def test_tokens_are_long_and_unique():
    tokens = {token_service.generate_access_token() for _ in range(50)}
    assert len(tokens) == 50
    assert all(len(t) == 64 for t in tokens)


def test_expiry_uses_configured_ttl(monkeypatch):
    monkeypatch.setattr(config, "QUERY_TOKEN_TTL_DAYS", 7)
    issued = utcnow()
    assert token_service.token_expiry(issued) == issued + timedelta(days=7)


def test_issue_token_replaces_previous():
    query = Query()
    first = token_service.issue_token(query)
    second = token_service.issue_token(query)
    assert first != second
    assert query.access_token == second
    assert query.token_expires_at > utcnow() + timedelta(days=29)


def test_build_query_link(monkeypatch):
    monkeypatch.setattr(config, "FRONTEND_URL", "https://portal.example.edu/")
    assert token_service.build_query_link("abc") == "https://portal.example.edu/query/abc"


class TestResolveToken:
    def test_valid(self, db, sample_application, obc_admin):
        query = query_service.create_query(db, sample_application.id, "s", "m", obc_admin)
        assert token_service.resolve_token(db, query.access_token).id == query.id

    @pytest.mark.parametrize("token", ["", "does-not-exist"])
    def test_unknown(self, db, token):
        with pytest.raises(NotFoundError) as exc_info:
            token_service.resolve_token(db, token)
        assert exc_info.value.message == INVALID_LINK_MESSAGE

    def test_expired(self, db, sample_application, obc_admin):
        query = query_service.create_query(db, sample_application.id, "s", "m", obc_admin)
        query.token_expires_at = utcnow() - timedelta(seconds=1)
        db.commit()

        with pytest.raises(TokenExpiredError) as exc_info:
            token_service.resolve_token(db, query.access_token)
        assert exc_info.value.message == INVALID_LINK_MESSAGE
        assert exc_info.value.status_code == 404
