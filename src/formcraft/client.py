"""HTTP client for the FormCraft API.

Credentials travel in an explicit :class:`Session` handed to the client;
nothing is read from ambient state.  Non-2xx responses raise
:class:`ApiError`.  Requests are never retried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from formcraft.builder import FormBuilder
from formcraft.utils import dumps_json

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status_code: int, detail: Any) -> None:
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


@dataclass
class Session:
    token: str
    user: dict[str, Any] = field(default_factory=dict)

    @property
    def is_super_admin(self) -> bool:
        return self.user.get("role") == "super_admin"


class FormCraftClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        session: Session | None = None,
        http: httpx.Client | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._http = http or httpx.Client(base_url=base_url, timeout=timeout)
        self.session = session

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> FormCraftClient:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _headers(self) -> dict[str, str]:
        if self.session is None:
            return {}
        return {"Authorization": f"Bearer {self.session.token}"}

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        response = self._http.request(method, path, headers=self._headers(), **kwargs)
        if response.is_error:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = response.text
            logger.debug("%s %s failed with %s", method, path, response.status_code)
            raise ApiError(response.status_code, detail)
        return response

    def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self._request(method, path, **kwargs)
        if response.status_code == 204:
            return None
        return response.json()

    # auth

    def register(self, username: str, email: str, password: str) -> Session:
        payload = {"username": username, "email": email, "password": password}
        body = self._json("POST", "/api/auth/register", json=payload)
        self.session = Session(body["token"], body["user"])
        return self.session

    def login(self, username: str, password: str) -> Session:
        payload = {"username": username, "password": password}
        body = self._json("POST", "/api/auth/login", json=payload)
        self.session = Session(body["token"], body["user"])
        return self.session

    def logout(self) -> None:
        self.session = None

    def me(self) -> dict[str, Any]:
        return self._json("GET", "/api/auth/me")

    # forms

    def list_forms(self) -> list[dict[str, Any]]:
        return self._json("GET", "/api/forms")

    def search_forms(self, query: str) -> list[dict[str, Any]]:
        return self._json("GET", "/api/forms/search", params={"q": query})

    def get_form(self, form_id: str) -> dict[str, Any]:
        return self._json("GET", f"/api/forms/{form_id}")

    def create_form(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._json("POST", "/api/forms", json=payload)

    def update_form(self, form_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self._json("PUT", f"/api/forms/{form_id}", json=payload)

    def delete_form(self, form_id: str) -> None:
        self._json("DELETE", f"/api/forms/{form_id}")

    def publish_form(self, form_id: str) -> dict[str, Any]:
        return self._json("POST", f"/api/forms/{form_id}/publish")

    def preview_form(self, form_id: str) -> str:
        return self._request("GET", f"/api/forms/{form_id}/preview").text

    def save_draft(self, builder: FormBuilder) -> dict[str, Any]:
        """Create or update the builder's form and reconcile the response.

        A response that arrives after a newer save was applied is returned
        but leaves the draft untouched.
        """
        revision = builder.begin_save()
        payload = builder.to_payload()
        if builder.draft.id is None:
            form = self.create_form(payload)
        else:
            form = self.update_form(builder.draft.id, payload)
        builder.apply_saved(form, revision)
        return form

    def publish_draft(self, builder: FormBuilder) -> dict[str, Any]:
        if builder.draft.id is None:
            self.save_draft(builder)
        revision = builder.begin_save()
        form = self.publish_form(builder.draft.id)
        builder.apply_saved(form, revision)
        return form

    # public

    def get_public_form(self, form_id: str) -> dict[str, Any]:
        return self._json("GET", f"/api/public-forms/{form_id}")

    def submit(
        self,
        form_id: str,
        data: dict[str, Any],
        files: dict[str, tuple[str, bytes, str]] | None = None,
    ) -> dict[str, Any]:
        """Submit values; ``files`` maps a field id to ``(name, content, type)``."""
        if not files:
            return self._json("POST", f"/api/forms/{form_id}/submit", json={"data": data})
        form_data = {f"data[{key}]": dumps_json(value) for key, value in data.items()}
        multipart = {f"files[{key}]": item for key, item in files.items()}
        return self._json(
            "POST", f"/api/forms/{form_id}/submit", data=form_data, files=multipart
        )

    # submissions

    def list_submissions(self, form_id: str, query: str | None = None) -> list[dict[str, Any]]:
        params = {"q": query} if query else None
        return self._json("GET", f"/api/forms/{form_id}/submissions", params=params)

    def export_submissions(self, form_id: str, fmt: str = "csv") -> str:
        response = self._request(
            "GET", f"/api/forms/{form_id}/submissions/export", params={"format": fmt}
        )
        return response.text

    def get_submission(self, submission_id: str) -> dict[str, Any]:
        return self._json("GET", f"/api/submissions/{submission_id}")

    def delete_submission(self, submission_id: str) -> None:
        self._json("DELETE", f"/api/submissions/{submission_id}")

    def upload_file(
        self,
        submission_id: str,
        field_id: str,
        file_name: str,
        content: bytes,
        content_type: str,
    ) -> dict[str, Any]:
        return self._json(
            "POST",
            "/api/upload",
            data={"submissionId": submission_id, "fieldId": field_id},
            files={"file": (file_name, content, content_type)},
        )

    def download_file(self, file_id: str) -> bytes:
        return self._request("GET", f"/api/files/{file_id}").content

    # users

    def list_users(self) -> list[dict[str, Any]]:
        return self._json("GET", "/api/users")

    def create_admin(self, username: str, email: str, password: str) -> dict[str, Any]:
        payload = {"username": username, "email": email, "password": password}
        return self._json("POST", "/api/users/admin", json=payload)

    def delete_user(self, user_id: str) -> None:
        self._json("DELETE", f"/api/users/{user_id}")
