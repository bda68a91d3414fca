"""
Tests for the admin query routes, including the end-to-end thread scenario.
"""

import pytest


@pytest.fixture
def application_id(sample_application):
    return sample_application.id


def _create(client, headers, application_id, **overrides):
    body = {
        "applicationId": application_id,
        "subject": "Need Additional Medical Documents",
        "message": "Please share the discharge summary and the original pharmacy bills.",
        "priority": "high",
        **overrides,
    }
    response = client.post("/api/v1/queries/create", json=body, headers=headers)
    assert response.status_code == 201, response.json()
    return response.json()["data"]


def test_thread_scenario(client, application_id, obc_headers):
    query = _create(client, obc_headers, application_id)
    assert query["status"] == "open"
    assert query["priority"] == "high"
    assert query["total_messages"] == 1
    token = query["access_token"]
    qid = query["id"]

    reply = client.post(
        f"/api/v1/queries/public/{token}/reply",
        json={"message": "I will upload them today.", "userName": "Anita Sharma"},
    )
    assert reply.status_code == 201

    state = client.get("/api/v1/queries/all", headers=obc_headers).json()["data"][0]
    assert state["status"] == "user_replied"
    assert state["unread_by_admin"] is True

    note = client.post(
        f"/api/v1/queries/{qid}/reply",
        json={"message": "Cross-check with the hospital records", "isInternalNote": True},
        headers=obc_headers,
    )
    assert note.status_code == 201
    assert note.json()["message"] == "Internal note added"

    state = client.get("/api/v1/queries/all", headers=obc_headers).json()["data"][0]
    assert state["total_messages"] == 3
    assert state["status"] == "user_replied"
    assert state["unread_by_user"] is False

    resolved = client.patch(f"/api/v1/queries/{qid}/resolve", headers=obc_headers)
    assert resolved.json()["data"]["status"] == "resolved"

    blocked = client.post(
        f"/api/v1/queries/public/{token}/reply",
        json={"message": "One more document", "userName": "Anita Sharma"},
    )
    assert blocked.status_code == 409
    assert blocked.json()["error"]["code"] == "INVALID_STATE"

    reopened = client.patch(f"/api/v1/queries/{qid}/reopen", headers=obc_headers)
    assert reopened.json()["data"]["status"] == "open"

    again = client.post(
        f"/api/v1/queries/public/{token}/reply",
        json={"message": "One more document", "userName": "Anita Sharma"},
    )
    assert again.status_code == 201
    state = client.get("/api/v1/queries/all", headers=obc_headers).json()["data"][0]
    assert state["status"] == "user_replied"


def test_create_returns_query_link(client, application_id, obc_headers):
    query = _create(client, obc_headers, application_id, priority=None)
    assert query["priority"] == "normal"
    assert query["query_link"] == f"http://localhost:5173/query/{query['access_token']}"
    assert query["application"]["application_number"].startswith("MR-")


def test_create_validation(client, application_id, obc_headers):
    response = client.post(
        "/api/v1/queries/create",
        json={"applicationId": application_id, "subject": "", "message": "m"},
        headers=obc_headers,
    )
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Subject is required"


def test_create_for_missing_claim(client, obc_headers):
    response = client.post(
        "/api/v1/queries/create",
        json={"applicationId": 4040, "subject": "s", "message": "m"},
        headers=obc_headers,
    )
    assert response.status_code == 404


def test_requires_bearer_token(client):
    response = client.get("/api/v1/queries/all")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTH_ERROR"


def test_close_is_super_admin_only(client, application_id, obc_headers, health_headers, super_headers):
    qid = _create(client, obc_headers, application_id)["id"]

    for headers in (obc_headers, health_headers):
        response = client.patch(f"/api/v1/queries/{qid}/close", headers=headers)
        assert response.status_code == 403

    response = client.patch(f"/api/v1/queries/{qid}/close", headers=super_headers)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "closed"


def test_health_centre_cannot_regenerate_link(client, application_id, obc_headers, health_headers):
    qid = _create(client, obc_headers, application_id)["id"]
    response = client.patch(f"/api/v1/queries/{qid}/regenerate-link", headers=health_headers)
    assert response.status_code == 403


def test_details_include_internal_notes(client, application_id, obc_headers, health_headers):
    query = _create(client, obc_headers, application_id)
    client.post(
        f"/api/v1/queries/public/{query['access_token']}/reply",
        json={"message": "Done", "userName": "Anita"},
    )
    client.post(
        f"/api/v1/queries/{query['id']}/reply",
        json={"message": "Looks genuine", "isInternalNote": True},
        headers=health_headers,
    )

    details = client.get(f"/api/v1/queries/{query['id']}", headers=obc_headers).json()["data"]
    assert [m["is_internal_note"] for m in details["messages"]] == [False, False, True]
    assert details["messages"][2]["sender_role"] == "health_centre"
    assert details["query"]["unread_by_admin"] is False


def test_list_for_application_and_stats(client, application_id, obc_headers):
    first = _create(client, obc_headers, application_id)
    _create(client, obc_headers, application_id, subject="Second query")
    client.post(
        f"/api/v1/queries/public/{first['access_token']}/reply",
        json={"message": "Reply", "userName": "Anita"},
    )

    listed = client.get(f"/api/v1/queries/application/{application_id}", headers=obc_headers).json()["data"]
    assert len(listed) == 2

    stats = client.get("/api/v1/queries/stats/unread", headers=obc_headers).json()["data"]
    assert stats == {"unread_count": 1, "open_count": 1, "user_replied_count": 1}
