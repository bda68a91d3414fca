"""
Tests for query attachments: validation, storage and access rules.
"""

import os

import pytest

from app.core.exceptions import InvalidStateError, ValidationError
from app.models import QueryAttachment
from app.services import attachment_service, query_service

MB = 1024 * 1024


@pytest.fixture
def query(db, sample_application, obc_admin):
    return query_service.create_query(
        db, sample_application.id, "Original bills", "Please upload the original bills.", obc_admin
    )


def _stored_files(upload_dir):
    folder = upload_dir / attachment_service.ATTACHMENT_SUBDIR
    return list(folder.iterdir()) if folder.exists() else []


class TestValidation:
    def test_oversized_file_rejected_before_storage(self, db, query, upload_dir):
        content = b"x" * (11 * MB)
        with pytest.raises(ValidationError) as exc_info:
            attachment_service.upload_public(
                db, query.access_token, "scan.pdf", "application/pdf", content, "Anita"
            )

        assert "10MB" in exc_info.value.message
        assert db.query(QueryAttachment).count() == 0
        assert _stored_files(upload_dir) == []

    def test_large_pdf_under_limit_accepted(self, db, query, upload_dir):
        content = b"%PDF" + b"0" * (9 * MB)
        attachment = attachment_service.upload_public(
            db, query.access_token, "scan.pdf", "application/pdf", content, "Anita"
        )

        assert attachment.file_size == len(content)
        assert attachment.uploaded_by == "user"
        assert attachment.uploader_name == "Anita"
        assert attachment.file_name == "scan.pdf"
        assert os.path.getsize(attachment.file_path) == len(content)
        assert len(_stored_files(upload_dir)) == 1

    @pytest.mark.parametrize("file_name,content_type", [
        ("script.exe", "application/x-msdownload"),
        ("page.html", "text/html"),
        ("report.exe", "application/pdf"),
        ("notes", "text/plain"),
    ])
    def test_disallowed_types(self, db, query, file_name, content_type):
        with pytest.raises(ValidationError) as exc_info:
            attachment_service.upload_public(
                db, query.access_token, file_name, content_type, b"data", "Anita"
            )
        assert exc_info.value.field == "file"
        assert db.query(QueryAttachment).count() == 0

    def test_empty_file_rejected(self, db, query):
        with pytest.raises(ValidationError):
            attachment_service.upload_public(db, query.access_token, "a.png", "image/png", b"", "Anita")

    @pytest.mark.parametrize("file_name,content_type", [
        ("photo.JPG", "image/jpeg"),
        ("scan.png", "image/png"),
        ("letter.docx", "application/vnd.openxmlformats-officedocument.wordprocessingml.document"),
        ("notes.txt", "text/plain; charset=utf-8"),
    ])
    def test_allowed_types(self, db, query, file_name, content_type):
        attachment = attachment_service.upload_public(
            db, query.access_token, file_name, content_type, b"content", "Anita"
        )
        assert attachment.file_type == content_type.split(";")[0]

    def test_message_from_other_query_rejected(self, db, query, sample_application, obc_admin):
        other = query_service.create_query(db, sample_application.id, "Other", "Other thread", obc_admin)
        foreign = query_service.get_query_details(db, other.id)["messages"][0]

        with pytest.raises(ValidationError):
            attachment_service.upload_public(
                db, query.access_token, "a.pdf", "application/pdf", b"%PDF", "Anita", message_id=foreign.id
            )

    def test_public_upload_cannot_target_internal_note(self, db, query, obc_admin, upload_dir):
        note = query_service.reply_as_admin(db, query.id, "Hospital confirmed by phone", obc_admin, is_internal_note=True)

        with pytest.raises(ValidationError) as exc_info:
            attachment_service.upload_public(
                db, query.access_token, "a.pdf", "application/pdf", b"%PDF", "Anita", message_id=note.id
            )

        assert str(exc_info.value) == f"Message {note.id} does not belong to query {query.id}"
        assert db.query(QueryAttachment).count() == 0
        assert _stored_files(upload_dir) == []

    def test_admin_upload_may_target_internal_note(self, db, query, obc_admin):
        note = query_service.reply_as_admin(db, query.id, "Scan of the call log", obc_admin, is_internal_note=True)

        attachment = attachment_service.upload_admin(
            db, query.id, "log.pdf", "application/pdf", b"%PDF", obc_admin, message_id=note.id
        )

        assert attachment.message_id == note.id


class TestThreadState:
    def test_upload_to_resolved_thread_rejected(self, db, query, obc_admin, upload_dir):
        query_service.resolve_query(db, query.id, obc_admin)
        with pytest.raises(InvalidStateError):
            attachment_service.upload_public(db, query.access_token, "a.pdf", "application/pdf", b"%PDF", "Anita")
        assert _stored_files(upload_dir) == []

    def test_upload_does_not_change_status(self, db, query):
        attachment_service.upload_public(db, query.access_token, "a.pdf", "application/pdf", b"%PDF", "Anita")
        db.expire_all()
        assert query_service.get_query(db, query.id).status == "open"


class TestAttachmentRoutes:
    def test_public_upload(self, client, db, query):
        reply = client.post(
            f"/api/v1/queries/public/{query.access_token}/reply",
            json={"message": "Bills attached", "userName": "Anita"},
        ).json()["data"]

        response = client.post(
            f"/api/v1/queries/public/{query.access_token}/upload",
            files={"file": ("bills.pdf", b"%PDF-1.4 bills", "application/pdf")},
            data={"userName": "Anita", "messageId": str(reply["id"])},
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["message_id"] == reply["id"]
        assert data["uploaded_by"] == "user"
        assert data["file_size"] == len(b"%PDF-1.4 bills")
        assert "file_path" not in data

    def test_public_upload_bad_type(self, client, query):
        response = client.post(
            f"/api/v1/queries/public/{query.access_token}/upload",
            files={"file": ("virus.exe", b"MZ", "application/x-msdownload")},
            data={"userName": "Anita"},
        )
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Invalid file type. Only images, PDFs, and documents allowed."

    def test_public_upload_linked_to_internal_note(self, client, db, query, obc_admin):
        note = query_service.reply_as_admin(db, query.id, "Internal", obc_admin, is_internal_note=True)

        response = client.post(
            f"/api/v1/queries/public/{query.access_token}/upload",
            files={"file": ("bills.pdf", b"%PDF-1.4 bills", "application/pdf")},
            data={"userName": "Anita", "messageId": str(note.id)},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR_MESSAGE_ID"
        assert db.query(QueryAttachment).count() == 0

    def test_admin_upload_and_download(self, client, query, health_headers):
        response = client.post(
            f"/api/v1/queries/{query.id}/attachments",
            files={"file": ("form.pdf", b"%PDF form", "application/pdf")},
            headers=health_headers,
        )
        assert response.status_code == 201
        attachment = response.json()["data"]
        assert attachment["uploaded_by"] == "admin"
        assert attachment["uploader_name"] == "Dr. Rao"

        download = client.get(f"/api/v1/queries/attachments/{attachment['id']}/download", headers=health_headers)
        assert download.status_code == 200
        assert download.content == b"%PDF form"

    def test_delete_requires_super_admin(self, client, db, query, obc_admin, obc_headers, super_headers):
        attachment = attachment_service.upload_admin(
            db, query.id, "form.pdf", "application/pdf", b"%PDF", obc_admin
        )
        path = attachment.file_path

        denied = client.delete(f"/api/v1/queries/attachments/{attachment.id}", headers=obc_headers)
        assert denied.status_code == 403
        assert os.path.exists(path)

        deleted = client.delete(f"/api/v1/queries/attachments/{attachment.id}", headers=super_headers)
        assert deleted.status_code == 200
        assert deleted.json()["success"] is True
        assert not os.path.exists(path)
        db.expire_all()
        assert db.query(QueryAttachment).count() == 0
