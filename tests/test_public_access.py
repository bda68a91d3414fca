"""
Tests for the employee-facing routes under /api/v1/queries/public/{token}.
"""

from datetime import timedelta

import pytest

from app.core.exceptions import INVALID_LINK_MESSAGE
from app.database import utcnow
from app.services import attachment_service, query_service


@pytest.fixture
def query(db, sample_application, obc_admin):
    return query_service.create_query(
        db, sample_application.id, "Discharge summary", "Please share the discharge summary.", obc_admin
    )


def _expire(db, query):
    query.token_expires_at = utcnow() - timedelta(minutes=1)
    db.commit()


class TestPublicThread:
    def test_get_thread(self, client, query):
        response = client.get(f"/api/v1/queries/public/{query.access_token}")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        thread = body["data"]
        assert thread["query"]["subject"] == "Discharge summary"
        assert thread["query"]["application"]["employee_name"] == "Anita Sharma"
        assert len(thread["messages"]) == 1
        # no creator identity or token bookkeeping on the public view
        assert "access_token" not in thread["query"]
        assert "created_by" not in thread["query"]

    def test_internal_notes_never_shown(self, client, db, query, obc_admin):
        query_service.reply_as_admin(db, query.id, "Suspicious bill, verify", obc_admin, is_internal_note=True)
        query_service.reply_as_admin(db, query.id, "Any update?", obc_admin)

        response = client.get(f"/api/v1/queries/public/{query.access_token}")

        messages = response.json()["data"]["messages"]
        assert [m["message"] for m in messages] == ["Please share the discharge summary.", "Any update?"]
        assert all("is_internal_note" not in m for m in messages)

    def test_attachments_on_internal_notes_hidden(self, client, db, query, obc_admin):
        note = query_service.reply_as_admin(db, query.id, "hospital letter", obc_admin, is_internal_note=True)
        hidden = attachment_service.upload_admin(
            db, query.id, "letter.pdf", "application/pdf", b"%PDF-1.4 internal", obc_admin, message_id=note.id
        )
        shown = attachment_service.upload_admin(
            db, query.id, "form.pdf", "application/pdf", b"%PDF-1.4 form", obc_admin
        )

        response = client.get(f"/api/v1/queries/public/{query.access_token}")
        ids = [a["id"] for a in response.json()["data"]["attachments"]]
        assert ids == [shown.id]

        download = client.get(f"/api/v1/queries/public/{query.access_token}/attachments/{hidden.id}")
        assert download.status_code == 404

        download = client.get(f"/api/v1/queries/public/{query.access_token}/attachments/{shown.id}")
        assert download.status_code == 200
        assert download.content == b"%PDF-1.4 form"


class TestInvalidLinks:
    def test_unknown_and_expired_look_the_same(self, client, db, query):
        unknown = client.get("/api/v1/queries/public/" + "0" * 64)
        _expire(db, query)
        expired = client.get(f"/api/v1/queries/public/{query.access_token}")

        assert unknown.status_code == expired.status_code == 404
        unknown_error = unknown.json()["error"]
        expired_error = expired.json()["error"]
        assert unknown_error["message"] == expired_error["message"] == INVALID_LINK_MESSAGE
        assert unknown_error["code"] == expired_error["code"]

    def test_expired_link_cannot_reply(self, client, db, query):
        _expire(db, query)
        response = client.post(
            f"/api/v1/queries/public/{query.access_token}/reply",
            json={"message": "late answer", "userName": "Anita"},
        )
        assert response.status_code == 404
        assert query_service.get_query(db, query.id).total_messages == 1

    def test_expired_link_cannot_upload(self, client, db, query):
        _expire(db, query)
        response = client.post(
            f"/api/v1/queries/public/{query.access_token}/upload",
            files={"file": ("bill.pdf", b"%PDF-1.4", "application/pdf")},
            data={"userName": "Anita"},
        )
        assert response.status_code == 404

    def test_regenerated_link_works(self, client, db, query, obc_headers):
        _expire(db, query)
        response = client.patch(f"/api/v1/queries/{query.id}/regenerate-link", headers=obc_headers)
        assert response.status_code == 200
        new_token = response.json()["data"]["access_token"]
        assert response.json()["data"]["query_link"].endswith(f"/query/{new_token}")

        assert client.get(f"/api/v1/queries/public/{new_token}").status_code == 200


class TestPublicReply:
    def test_reply(self, client, db, query):
        response = client.post(
            f"/api/v1/queries/public/{query.access_token}/reply",
            json={"message": "Attached the summary", "userName": "Anita Sharma"},
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["sender_type"] == "user"
        assert data["sender_name"] == "Anita Sharma"

        db.expire_all()
        refreshed = query_service.get_query(db, query.id)
        assert refreshed.status == "user_replied"
        assert refreshed.unread_by_admin is True

    def test_reply_requires_user_name(self, client, query):
        response = client.post(
            f"/api/v1/queries/public/{query.access_token}/reply",
            json={"message": "hello"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR_USERNAME"

    def test_reply_to_resolved_query(self, client, db, query, obc_admin):
        query_service.resolve_query(db, query.id, obc_admin)
        response = client.post(
            f"/api/v1/queries/public/{query.access_token}/reply",
            json={"message": "one more", "userName": "Anita"},
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_STATE"

    def test_token_masked_in_request_log(self, client, query, caplog):
        with caplog.at_level("INFO", logger="app.requests"):
            client.get(f"/api/v1/queries/public/{query.access_token}")
        lines = [r.getMessage() for r in caplog.records if r.name == "app.requests"]
        assert lines
        assert all(query.access_token not in line for line in lines)
        assert "/queries/public/***" in lines[-1]
