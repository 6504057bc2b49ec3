from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from filelock import FileLock
from tinydb import Query, TinyDB

from formcraft.protocols import StorageError, matches_query, published_url_for
from formcraft.utils import now_utc, parse_dt, to_iso

DATETIME_KEYS = ("created_at", "updated_at")


class JSONRepoBase:
    table_name = ""

    def __init__(self, path: Path, lock: FileLock) -> None:
        self._path = path
        self._lock = lock

    @contextmanager
    def _db(self) -> Iterator[TinyDB]:
        with self._lock:
            db = TinyDB(self._path)
            try:
                yield db
            finally:
                db.close()

    def _get(self, key: str, value: Any) -> dict[str, Any] | None:
        with self._db() as db:
            item = db.table(self.table_name).get(getattr(Query(), key) == value)
        return self._from_record(item) if item else None

    def _search(self, key: str, value: Any) -> list[dict[str, Any]]:
        with self._db() as db:
            items = db.table(self.table_name).search(getattr(Query(), key) == value)
        return [self._from_record(item) for item in items]

    def _all(self) -> list[dict[str, Any]]:
        with self._db() as db:
            items = db.table(self.table_name).all()
        return [self._from_record(item) for item in items]

    def _insert(self, record: dict[str, Any]) -> dict[str, Any]:
        stored = self._to_record(record)
        try:
            with self._db() as db:
                db.table(self.table_name).insert(stored)
        except (OSError, ValueError) as exc:
            raise StorageError(str(exc)) from exc
        return self._from_record(stored)

    @staticmethod
    def _to_record(data: dict[str, Any]) -> dict[str, Any]:
        record: dict[str, Any] = {}
        for key, value in data.items():
            if key in DATETIME_KEYS:
                record[key] = to_iso(value) if isinstance(value, datetime) else value
            else:
                record[key] = value
        for key in DATETIME_KEYS:
            if key in record and record[key] is None:
                record[key] = to_iso(now_utc())
        return record

    @staticmethod
    def _from_record(record: dict[str, Any]) -> dict[str, Any]:
        item = dict(record)
        for key in DATETIME_KEYS:
            if key in item:
                item[key] = parse_dt(item[key])
        return item


class JSONUserRepo(JSONRepoBase):
    table_name = "users"

    def get_user(self, user_id: str) -> dict[str, Any] | None:
        return self._get("id", user_id)

    def get_user_by_username(self, username: str) -> dict[str, Any] | None:
        return self._get("username", username)

    def get_user_by_email(self, email: str) -> dict[str, Any] | None:
        return self._get("email", email)

    def create_user(self, user: dict[str, Any]) -> dict[str, Any]:
        record = {
            "id": user["id"],
            "username": user["username"],
            "email": user["email"],
            "password_hash": user["password_hash"],
            "role": user["role"],
            "created_at": user.get("created_at") or now_utc(),
        }
        with self._lock:
            # The document store has no unique index; enforce it under the lock.
            if self.get_user_by_username(record["username"]):
                raise StorageError(f"username already exists: {record['username']}")
            if self.get_user_by_email(record["email"]):
                raise StorageError(f"email already exists: {record['email']}")
            return self._insert(record)

    def delete_user(self, user_id: str) -> bool:
        with self._db() as db:
            removed = db.table(self.table_name).remove(Query().id == user_id)
        return bool(removed)

    def list_users(self) -> list[dict[str, Any]]:
        return sorted(self._all(), key=lambda x: x["created_at"])

    def count_users(self) -> int:
        with self._db() as db:
            return len(db.table(self.table_name))


class JSONFormRepo(JSONRepoBase):
    table_name = "forms"

    def create_form(self, form: dict[str, Any]) -> dict[str, Any]:
        now = now_utc()
        return self._insert(
            {
                "id": form["id"],
                "name": form["name"],
                "description": form.get("description", ""),
                "schema_json": form["schema_json"],
                "user_id": form["user_id"],
                "status": form.get("status", "draft"),
                "published_url": form.get("published_url"),
                "created_at": form.get("created_at") or now,
                "updated_at": form.get("updated_at") or now,
            }
        )

    def get_form(self, form_id: str) -> dict[str, Any] | None:
        return self._get("id", form_id)

    def update_form(self, form_id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
        changes = {k: v for k, v in updates.items() if k != "id"}
        changes["updated_at"] = updates.get("updated_at") or now_utc()
        with self._db() as db:
            table = db.table(self.table_name)
            item = table.get(Query().id == form_id)
            if not item:
                return None
            item = {**item, **self._to_record(changes)}
            table.update(item, Query().id == form_id)
        return self._from_record(item)

    def publish_form(self, form_id: str) -> dict[str, Any] | None:
        return self.update_form(
            form_id,
            {"status": "published", "published_url": published_url_for(form_id)},
        )

    def delete_form(self, form_id: str) -> bool:
        with self._db() as db:
            removed = db.table(self.table_name).remove(Query().id == form_id)
            if not removed:
                return False
            submissions = db.table("submissions")
            submission_ids = [s["id"] for s in submissions.search(Query().form_id == form_id)]
            db.table("files").remove(Query().submission_id.one_of(submission_ids))
            submissions.remove(Query().form_id == form_id)
        return True

    def list_forms_by_owner(self, user_id: str) -> list[dict[str, Any]]:
        return sorted(self._search("user_id", user_id), key=lambda x: x["updated_at"], reverse=True)

    def list_all_forms(self) -> list[dict[str, Any]]:
        return sorted(self._all(), key=lambda x: x["updated_at"], reverse=True)

    def search_forms(self, query: str) -> list[dict[str, Any]]:
        return [form for form in self.list_all_forms() if matches_query(form, query)]


class JSONSubmissionRepo(JSONRepoBase):
    table_name = "submissions"

    def create_submission(self, submission: dict[str, Any]) -> dict[str, Any]:
        return self._insert(
            {
                "id": submission["id"],
                "form_id": submission["form_id"],
                "data_json": submission["data_json"],
                "created_at": submission.get("created_at") or now_utc(),
            }
        )

    def get_submission(self, submission_id: str) -> dict[str, Any] | None:
        return self._get("id", submission_id)

    def list_submissions_by_form(self, form_id: str) -> list[dict[str, Any]]:
        submissions = self._search("form_id", form_id)
        return sorted(submissions, key=lambda x: (x["created_at"], x["id"]), reverse=True)

    def delete_submission(self, submission_id: str) -> bool:
        with self._db() as db:
            removed = db.table(self.table_name).remove(Query().id == submission_id)
            if not removed:
                return False
            db.table("files").remove(Query().submission_id == submission_id)
        return True


class JSONFileRepo(JSONRepoBase):
    table_name = "files"

    def create_file_upload(self, file_meta: dict[str, Any]) -> dict[str, Any]:
        return self._insert(
            {
                "id": file_meta["id"],
                "submission_id": file_meta["submission_id"],
                "field_id": file_meta["field_id"],
                "file_name": file_meta["file_name"],
                "file_type": file_meta["file_type"],
                "file_path": file_meta["file_path"],
                "file_size": file_meta["file_size"],
                "created_at": file_meta.get("created_at") or now_utc(),
            }
        )

    def get_file_upload(self, file_id: str) -> dict[str, Any] | None:
        return self._get("id", file_id)

    def list_file_uploads_by_submission(self, submission_id: str) -> list[dict[str, Any]]:
        return sorted(self._search("submission_id", submission_id), key=lambda x: x["created_at"])


class JSONStorage:
    def __init__(self, path: Path) -> None:
        self._lock = FileLock(f"{path}.lock")
        self.users = JSONUserRepo(path, self._lock)
        self.forms = JSONFormRepo(path, self._lock)
        self.submissions = JSONSubmissionRepo(path, self._lock)
        self.files = JSONFileRepo(path, self._lock)

    def close(self) -> None:
        return None
