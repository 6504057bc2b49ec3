from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from formcraft.models import Base, FileUploadModel, FormModel, SubmissionModel, UserModel
from formcraft.protocols import StorageError, published_url_for
from formcraft.utils import dumps_json, ensure_aware, loads_json, now_utc


def _aware(value: Any) -> Any:
    return ensure_aware(value) if value is not None else None


class SQLRepoBase:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._Session = session_factory

    @contextmanager
    def _write(self) -> Iterator[Session]:
        with self._Session() as session:
            try:
                yield session
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise StorageError(str(exc.orig)) from exc
            except SQLAlchemyError as exc:
                session.rollback()
                raise StorageError(str(exc)) from exc


class SQLiteUserRepo(SQLRepoBase):
    def get_user(self, user_id: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = session.get(UserModel, user_id)
            return self._to_dict(row) if row else None

    def get_user_by_username(self, username: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = session.scalars(select(UserModel).where(UserModel.username == username)).first()
            return self._to_dict(row) if row else None

    def get_user_by_email(self, email: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = session.scalars(select(UserModel).where(UserModel.email == email)).first()
            return self._to_dict(row) if row else None

    def create_user(self, user: dict[str, Any]) -> dict[str, Any]:
        row = UserModel(
            id=user["id"],
            username=user["username"],
            email=user["email"],
            password_hash=user["password_hash"],
            role=user["role"],
            created_at=user.get("created_at") or now_utc(),
        )
        with self._write() as session:
            session.add(row)
        return self._to_dict(row)

    def delete_user(self, user_id: str) -> bool:
        with self._write() as session:
            row = session.get(UserModel, user_id)
            if not row:
                return False
            session.delete(row)
        return True

    def list_users(self) -> list[dict[str, Any]]:
        with self._Session() as session:
            rows = session.scalars(select(UserModel).order_by(UserModel.created_at)).all()
            return [self._to_dict(row) for row in rows]

    def count_users(self) -> int:
        with self._Session() as session:
            return session.scalar(select(func.count()).select_from(UserModel)) or 0

    @staticmethod
    def _to_dict(row: UserModel) -> dict[str, Any]:
        return {
            "id": row.id,
            "username": row.username,
            "email": row.email,
            "password_hash": row.password_hash,
            "role": row.role,
            "created_at": _aware(row.created_at),
        }


class SQLiteFormRepo(SQLRepoBase):
    def create_form(self, form: dict[str, Any]) -> dict[str, Any]:
        now = now_utc()
        row = FormModel(
            id=form["id"],
            name=form["name"],
            description=form.get("description", ""),
            schema_json=dumps_json(form["schema_json"]),
            user_id=form["user_id"],
            status=form.get("status", "draft"),
            published_url=form.get("published_url"),
            created_at=form.get("created_at") or now,
            updated_at=form.get("updated_at") or now,
        )
        with self._write() as session:
            session.add(row)
        return self._to_dict(row)

    def get_form(self, form_id: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = session.get(FormModel, form_id)
            return self._to_dict(row) if row else None

    def update_form(self, form_id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
        with self._write() as session:
            row = session.get(FormModel, form_id)
            if not row:
                return None
            for key, value in updates.items():
                if key == "schema_json":
                    setattr(row, key, dumps_json(value))
                elif key != "id":
                    setattr(row, key, value)
            row.updated_at = updates.get("updated_at") or now_utc()
        return self._to_dict(row)

    def publish_form(self, form_id: str) -> dict[str, Any] | None:
        return self.update_form(
            form_id,
            {"status": "published", "published_url": published_url_for(form_id)},
        )

    def delete_form(self, form_id: str) -> bool:
        with self._write() as session:
            row = session.get(FormModel, form_id)
            if not row:
                return False
            submission_ids = select(SubmissionModel.id).where(SubmissionModel.form_id == form_id)
            session.query(FileUploadModel).filter(
                FileUploadModel.submission_id.in_(submission_ids)
            ).delete(synchronize_session=False)
            session.query(SubmissionModel).filter(
                SubmissionModel.form_id == form_id
            ).delete(synchronize_session=False)
            session.delete(row)
        return True

    def list_forms_by_owner(self, user_id: str) -> list[dict[str, Any]]:
        with self._Session() as session:
            rows = session.scalars(
                select(FormModel)
                .where(FormModel.user_id == user_id)
                .order_by(FormModel.updated_at.desc())
            ).all()
            return [self._to_dict(row) for row in rows]

    def list_all_forms(self) -> list[dict[str, Any]]:
        with self._Session() as session:
            rows = session.scalars(select(FormModel).order_by(FormModel.updated_at.desc())).all()
            return [self._to_dict(row) for row in rows]

    def search_forms(self, query: str) -> list[dict[str, Any]]:
        escaped = query.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        with self._Session() as session:
            rows = session.scalars(
                select(FormModel)
                .where(
                    or_(
                        func.lower(FormModel.name).like(pattern, escape="\\"),
                        func.lower(func.coalesce(FormModel.description, "")).like(pattern, escape="\\"),
                    )
                )
                .order_by(FormModel.updated_at.desc())
            ).all()
            return [self._to_dict(row) for row in rows]

    @staticmethod
    def _to_dict(row: FormModel) -> dict[str, Any]:
        return {
            "id": row.id,
            "name": row.name,
            "description": row.description or "",
            "schema_json": loads_json(row.schema_json) or {"fields": []},
            "user_id": row.user_id,
            "status": row.status,
            "published_url": row.published_url,
            "created_at": _aware(row.created_at),
            "updated_at": _aware(row.updated_at),
        }


class SQLiteSubmissionRepo(SQLRepoBase):
    def create_submission(self, submission: dict[str, Any]) -> dict[str, Any]:
        row = SubmissionModel(
            id=submission["id"],
            form_id=submission["form_id"],
            data_json=dumps_json(submission["data_json"]),
            created_at=submission.get("created_at") or now_utc(),
        )
        with self._write() as session:
            session.add(row)
        return self._to_dict(row)

    def get_submission(self, submission_id: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = session.get(SubmissionModel, submission_id)
            return self._to_dict(row) if row else None

    def list_submissions_by_form(self, form_id: str) -> list[dict[str, Any]]:
        with self._Session() as session:
            rows = session.scalars(
                select(SubmissionModel)
                .where(SubmissionModel.form_id == form_id)
                .order_by(SubmissionModel.created_at.desc(), SubmissionModel.id.desc())
            ).all()
            return [self._to_dict(row) for row in rows]

    def delete_submission(self, submission_id: str) -> bool:
        with self._write() as session:
            row = session.get(SubmissionModel, submission_id)
            if not row:
                return False
            session.query(FileUploadModel).filter(
                FileUploadModel.submission_id == submission_id
            ).delete(synchronize_session=False)
            session.delete(row)
        return True

    @staticmethod
    def _to_dict(row: SubmissionModel) -> dict[str, Any]:
        return {
            "id": row.id,
            "form_id": row.form_id,
            "data_json": loads_json(row.data_json) or {},
            "created_at": _aware(row.created_at),
        }


class SQLiteFileRepo(SQLRepoBase):
    def create_file_upload(self, file_meta: dict[str, Any]) -> dict[str, Any]:
        row = FileUploadModel(
            id=file_meta["id"],
            submission_id=file_meta["submission_id"],
            field_id=file_meta["field_id"],
            file_name=file_meta["file_name"],
            file_type=file_meta["file_type"],
            file_path=file_meta["file_path"],
            file_size=file_meta["file_size"],
            created_at=file_meta.get("created_at") or now_utc(),
        )
        with self._write() as session:
            session.add(row)
        return self._to_dict(row)

    def get_file_upload(self, file_id: str) -> dict[str, Any] | None:
        with self._Session() as session:
            row = session.get(FileUploadModel, file_id)
            return self._to_dict(row) if row else None

    def list_file_uploads_by_submission(self, submission_id: str) -> list[dict[str, Any]]:
        with self._Session() as session:
            rows = session.scalars(
                select(FileUploadModel)
                .where(FileUploadModel.submission_id == submission_id)
                .order_by(FileUploadModel.created_at)
            ).all()
            return [self._to_dict(row) for row in rows]

    @staticmethod
    def _to_dict(row: FileUploadModel) -> dict[str, Any]:
        return {
            "id": row.id,
            "submission_id": row.submission_id,
            "field_id": row.field_id,
            "file_name": row.file_name,
            "file_type": row.file_type,
            "file_path": row.file_path,
            "file_size": row.file_size,
            "created_at": _aware(row.created_at),
        }


class SQLiteStorage:
    def __init__(self, url: str) -> None:
        self._engine = create_engine(url, future=True)
        self._Session = sessionmaker(self._engine, expire_on_commit=False)
        Base.metadata.create_all(self._engine)
        self.users = SQLiteUserRepo(self._Session)
        self.forms = SQLiteFormRepo(self._Session)
        self.submissions = SQLiteSubmissionRepo(self._Session)
        self.files = SQLiteFileRepo(self._Session)

    def close(self) -> None:
        self._engine.dispose()
