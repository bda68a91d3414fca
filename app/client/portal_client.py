"""
HTTP client for the portal API, used by dashboards and scripts.

Every call unwraps the `{success, data, message}` envelope and turns error
responses back into the exceptions of app.core.exceptions. A 401 clears
the session store so the caller can send the user back to login.
"""

import logging
from typing import Any, Optional

import requests

from app.client.stores import DraftStore, SessionStore
from app.core.exceptions import (
    ApiError, AuthenticationError, InvalidStateError, NetworkError,
    NotFoundError, PermissionDeniedError, ValidationError
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30

_STATUS_ERRORS = {
    400: ValidationError,
    403: PermissionDeniedError,
    404: NotFoundError,
    409: InvalidStateError,
}


class PortalClient:
    def __init__(
        self,
        base_url: str,
        session: Optional[SessionStore] = None,
        http=None,
        timeout: int = DEFAULT_TIMEOUT
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or SessionStore()
        self.http = http or requests.Session()
        self.timeout = timeout

    # ============ TRANSPORT ============

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[dict] = None,
        data: Optional[dict] = None,
        files: Optional[dict] = None,
        auth: bool = True
    ) -> Any:
        headers = {}
        if auth and self.session.token:
            headers["Authorization"] = f"Bearer {self.session.token}"

        url = f"{self.base_url}/api/v1{path}"
        options = {}
        if isinstance(self.http, requests.Session):
            options["timeout"] = self.timeout
        try:
            response = self.http.request(
                method,
                url,
                json=json,
                params=params,
                data=data,
                files=files,
                headers=headers,
                **options
            )
        except requests.RequestException as e:
            logger.error(f"{method} {path} failed without a response: {e}")
            raise NetworkError(f"Could not reach the server: {e}")

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code == 401:
            self.session.clear()
            raise AuthenticationError(self._error_message(body, "Session expired, please sign in again"))

        if not 200 <= response.status_code < 300:
            message = self._error_message(body, f"Request failed with status {response.status_code}")
            error_class = _STATUS_ERRORS.get(response.status_code)
            if error_class is None:
                raise ApiError(message, response.status_code)
            raise error_class(message)

        if body.get("success") is False:
            raise ApiError(body.get("message") or "Request failed", response.status_code)

        return body.get("data")

    @staticmethod
    def _error_message(body: dict, fallback: str) -> str:
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        return (body or {}).get("message") or fallback

    # ============ CLAIMS ============

    def submit_application(self, payload: dict) -> dict:
        return self._request("POST", "/applications", json=payload, auth=False)

    def submit_draft(self, draft: DraftStore) -> dict:
        """Submit the saved form draft; the draft is cleared only on success."""
        application = self.submit_application(draft.merged())
        draft.clear()
        return application

    def track_application(self, application_number: str) -> dict:
        return self._request("GET", f"/applications/track/{application_number}", auth=False)

    def list_applications(self, **filters) -> dict:
        params = {k: v for k, v in filters.items() if v is not None}
        return self._request("GET", "/applications", params=params)

    def update_claim_status(
        self,
        application_id: int,
        status: str,
        comments: Optional[str] = None,
        amount_passed: Optional[float] = None
    ) -> dict:
        body = {"status": status, "comments": comments}
        if amount_passed is not None:
            body["amountPassed"] = amount_passed
        return self._request("PATCH", f"/applications/{application_id}/status", json=body)

    def delete_application(self, application_id: int) -> None:
        return self._request("DELETE", f"/applications/{application_id}")

    # ============ REVIEWS ============

    def validate_expense(self, application_id: int, expense_id: int, validation_status: str, **details) -> dict:
        body = {
            "applicationId": application_id,
            "expenseId": expense_id,
            "validationStatus": validation_status,
            **details,
        }
        return self._request("POST", "/reviews/expenses", json=body)

    def add_review_comment(
        self,
        application_id: int,
        text: str,
        comment_type: str = "general",
        is_internal: bool = True
    ) -> dict:
        return self._request("POST", "/reviews/comments", json={
            "applicationId": application_id,
            "commentText": text,
            "commentType": comment_type,
            "isInternal": is_internal,
        })

    def review_summary(self, application_id: int) -> dict:
        return self._request("GET", f"/reviews/summary/{application_id}")

    # ============ QUERIES (ADMIN) ============

    def create_query(self, application_id: int, subject: str, message: str, priority: str = "normal") -> dict:
        return self._request("POST", "/queries/create", json={
            "applicationId": application_id,
            "subject": subject,
            "message": message,
            "priority": priority,
        })

    def list_application_queries(self, application_id: int) -> list:
        return self._request("GET", f"/queries/application/{application_id}")

    def list_queries(self, status: Optional[str] = None, priority: Optional[str] = None, **filters) -> list:
        params = {"status": status, "priority": priority, **filters}
        return self._request("GET", "/queries/all", params={k: v for k, v in params.items() if v is not None})

    def get_query(self, query_id: int) -> dict:
        return self._request("GET", f"/queries/{query_id}")

    def reply(self, query_id: int, message: str, is_internal_note: bool = False) -> dict:
        return self._request("POST", f"/queries/{query_id}/reply", json={
            "message": message,
            "isInternalNote": is_internal_note,
        })

    def resolve_query(self, query_id: int) -> dict:
        return self._request("PATCH", f"/queries/{query_id}/resolve")

    def reopen_query(self, query_id: int) -> dict:
        return self._request("PATCH", f"/queries/{query_id}/reopen")

    def close_query(self, query_id: int) -> dict:
        return self._request("PATCH", f"/queries/{query_id}/close")

    def unread_stats(self) -> dict:
        return self._request("GET", "/queries/stats/unread")

    # ============ QUERIES (PUBLIC) ============

    def get_public_thread(self, token: str) -> dict:
        return self._request("GET", f"/queries/public/{token}", auth=False)

    def reply_public(self, token: str, message: str, user_name: str) -> dict:
        return self._request(
            "POST",
            f"/queries/public/{token}/reply",
            json={"message": message, "userName": user_name},
            auth=False
        )

    def upload_public(
        self,
        token: str,
        file_name: str,
        content: bytes,
        content_type: str,
        user_name: str,
        message_id: Optional[int] = None
    ) -> dict:
        data = {"userName": user_name}
        if message_id is not None:
            data["messageId"] = str(message_id)
        return self._request(
            "POST",
            f"/queries/public/{token}/upload",
            data=data,
            files={"file": (file_name, content, content_type)},
            auth=False
        )
