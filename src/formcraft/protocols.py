from __future__ import annotations

from typing import Any, Protocol


class StorageError(Exception):
    """Raised by a storage adapter when a create or mutation cannot be applied."""


class UserRepository(Protocol):
    def get_user(self, user_id: str) -> dict[str, Any] | None: ...

    def get_user_by_username(self, username: str) -> dict[str, Any] | None: ...

    def get_user_by_email(self, email: str) -> dict[str, Any] | None: ...

    def create_user(self, user: dict[str, Any]) -> dict[str, Any]: ...

    def delete_user(self, user_id: str) -> bool: ...

    def list_users(self) -> list[dict[str, Any]]: ...

    def count_users(self) -> int: ...


class FormRepository(Protocol):
    def create_form(self, form: dict[str, Any]) -> dict[str, Any]: ...

    def get_form(self, form_id: str) -> dict[str, Any] | None: ...

    def update_form(self, form_id: str, updates: dict[str, Any]) -> dict[str, Any] | None: ...

    def delete_form(self, form_id: str) -> bool: ...

    def list_forms_by_owner(self, user_id: str) -> list[dict[str, Any]]: ...

    def list_all_forms(self) -> list[dict[str, Any]]: ...

    def search_forms(self, query: str) -> list[dict[str, Any]]: ...

    def publish_form(self, form_id: str) -> dict[str, Any] | None: ...


class SubmissionRepository(Protocol):
    def create_submission(self, submission: dict[str, Any]) -> dict[str, Any]: ...

    def get_submission(self, submission_id: str) -> dict[str, Any] | None: ...

    def list_submissions_by_form(self, form_id: str) -> list[dict[str, Any]]: ...

    def delete_submission(self, submission_id: str) -> bool: ...


class FileRepository(Protocol):
    def create_file_upload(self, file_meta: dict[str, Any]) -> dict[str, Any]: ...

    def get_file_upload(self, file_id: str) -> dict[str, Any] | None: ...

    def list_file_uploads_by_submission(self, submission_id: str) -> list[dict[str, Any]]: ...


class Storage(Protocol):
    users: UserRepository
    forms: FormRepository
    submissions: SubmissionRepository
    files: FileRepository

    def close(self) -> None: ...


def published_url_for(form_id: str) -> str:
    return f"/public-form/{form_id}"


def matches_query(form: dict[str, Any], query: str) -> bool:
    needle = query.lower()
    return needle in (form.get("name") or "").lower() or needle in (
        form.get("description") or ""
    ).lower()
