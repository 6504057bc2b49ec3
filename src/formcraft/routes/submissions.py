from __future__ import annotations

import csv
import io
import logging
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from starlette.datastructures import UploadFile

from formcraft.auth import get_accessible_form, get_current_user
from formcraft.fields import BANNER_TYPE, is_upload_type
from formcraft.file_formats import (
    is_inside,
    remove_stored_files,
    resolve_content_type,
    store_upload,
    upload_rejection,
)
from formcraft.protocols import Storage, StorageError
from formcraft.schema import file_output, submission_output
from formcraft.utils import dumps_json, ensure_aware, new_ulid, now_utc, to_iso

logger = logging.getLogger(__name__)

router = APIRouter()

EXPORT_FORMATS = {
    "csv": (",", "text/csv"),
    "tsv": ("\t", "text/tab-separated-values"),
}


def get_accessible_submission(
    storage: Storage, user: dict[str, Any], submission_id: str
) -> tuple[dict[str, Any], dict[str, Any]]:
    submission = storage.submissions.get_submission(submission_id)
    if not submission:
        raise HTTPException(status_code=404, detail="Submission not found")
    form = get_accessible_form(storage, user, submission["form_id"])
    return submission, form


def value_to_text(value: Any, is_file: bool = False) -> str:
    if value is None:
        return ""
    if is_file and isinstance(value, dict):
        return str(value.get("fileName") or value.get("fileId") or "")
    if isinstance(value, str):
        return value
    return dumps_json(value)


def matches_submission(submission: dict[str, Any], query: str) -> bool:
    needle = query.lower()
    data = submission.get("data_json") or {}
    return any(needle in value_to_text(value, True).lower() for value in data.values())


def sorted_submissions(storage: Storage, form_id: str, query: str = "") -> list[dict[str, Any]]:
    submissions = storage.submissions.list_submissions_by_form(form_id)
    if query:
        submissions = [s for s in submissions if matches_submission(s, query)]
    submissions.sort(key=lambda s: (ensure_aware(s["created_at"]), s["id"]), reverse=True)
    return submissions


def export_columns(form: dict[str, Any]) -> list[dict[str, Any]]:
    fields = (form.get("schema_json") or {}).get("fields") or []
    return [f for f in fields if f.get("type") != BANNER_TYPE]


@router.get("/api/forms/{form_id}/submissions", tags=["submissions"])
async def list_submissions(
    request: Request, form_id: str, user: dict[str, Any] = Depends(get_current_user)
) -> JSONResponse:
    storage = request.app.state.storage
    get_accessible_form(storage, user, form_id)
    query = request.query_params.get("q", "").strip()
    items = [
        submission_output(s, storage.files.list_file_uploads_by_submission(s["id"]))
        for s in sorted_submissions(storage, form_id, query)
    ]
    return JSONResponse(items)


@router.get("/api/forms/{form_id}/submissions/export", tags=["submissions"])
async def export_submissions(
    request: Request, form_id: str, user: dict[str, Any] = Depends(get_current_user)
) -> PlainTextResponse:
    storage = request.app.state.storage
    form = get_accessible_form(storage, user, form_id)
    fmt = request.query_params.get("format", "csv").lower()
    if fmt not in EXPORT_FORMATS:
        raise HTTPException(status_code=400, detail="format must be csv or tsv")
    delimiter, content_type = EXPORT_FORMATS[fmt]

    columns = export_columns(form)
    headers = ["Submission ID", "Submitted At"] + [
        column.get("label") or column["id"] for column in columns
    ]
    query = request.query_params.get("q", "").strip()
    rows = []
    for submission in sorted_submissions(storage, form_id, query):
        data = submission.get("data_json") or {}
        rows.append(
            [submission["id"], to_iso(submission["created_at"])]
            + [
                value_to_text(data.get(column["id"]), is_upload_type(column.get("type")))
                for column in columns
            ]
        )

    output = io.StringIO()
    writer = csv.writer(output, delimiter=delimiter)
    writer.writerow(headers)
    writer.writerows(rows)

    filename = f"submissions-{form_id}.{fmt}"
    return PlainTextResponse(
        output.getvalue(),
        media_type=content_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/api/submissions/{submission_id}", tags=["submissions"])
async def get_submission(
    request: Request, submission_id: str, user: dict[str, Any] = Depends(get_current_user)
) -> JSONResponse:
    storage = request.app.state.storage
    submission, _ = get_accessible_submission(storage, user, submission_id)
    files = storage.files.list_file_uploads_by_submission(submission_id)
    return JSONResponse(submission_output(submission, files))


@router.delete("/api/submissions/{submission_id}", tags=["submissions"])
async def delete_submission(
    request: Request, submission_id: str, user: dict[str, Any] = Depends(get_current_user)
) -> Response:
    storage = request.app.state.storage
    settings = request.app.state.settings
    get_accessible_submission(storage, user, submission_id)
    paths = [f["file_path"] for f in storage.files.list_file_uploads_by_submission(submission_id)]
    storage.submissions.delete_submission(submission_id)
    remove_stored_files(settings.upload_dir, paths)
    logger.info("Submission %s deleted by %s", submission_id, user["username"])
    return Response(status_code=204)


@router.post("/api/upload", tags=["submissions"])
async def upload_file(
    request: Request, user: dict[str, Any] = Depends(get_current_user)
) -> JSONResponse:
    storage = request.app.state.storage
    settings = request.app.state.settings
    form_data = await request.form()
    file_obj = form_data.get("file")
    if not isinstance(file_obj, UploadFile) or not file_obj.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")
    submission_id = str(form_data.get("submissionId") or "")
    field_id = str(form_data.get("fieldId") or "")
    if not submission_id or not field_id:
        raise HTTPException(status_code=400, detail="submissionId and fieldId are required")
    _, form = get_accessible_submission(storage, user, submission_id)

    fields = (form.get("schema_json") or {}).get("fields") or []
    field = next((f for f in fields if f.get("id") == field_id), None)
    content = await file_obj.read()
    content_type = resolve_content_type(file_obj.content_type, file_obj.filename)
    reason = upload_rejection(
        field, content_type, file_obj.filename, len(content), settings.upload_max_bytes
    )
    if reason:
        logger.info("Rejected upload for submission %s: %s", submission_id, reason)
        raise HTTPException(status_code=400, detail=reason)

    file_id = new_ulid()
    path = store_upload(settings.upload_dir, file_id, file_obj.filename, content)
    try:
        file_meta = storage.files.create_file_upload(
            {
                "id": file_id,
                "submission_id": submission_id,
                "field_id": field_id,
                "file_name": file_obj.filename,
                "file_type": content_type,
                "file_path": str(path),
                "file_size": len(content),
                "created_at": now_utc(),
            }
        )
    except StorageError:
        remove_stored_files(settings.upload_dir, [str(path)])
        raise
    return JSONResponse(file_output(file_meta), status_code=201)


@router.get("/api/files/{file_id}", tags=["submissions"])
async def download_file(
    request: Request, file_id: str, user: dict[str, Any] = Depends(get_current_user)
) -> FileResponse:
    storage = request.app.state.storage
    settings = request.app.state.settings
    file_meta = storage.files.get_file_upload(file_id)
    if not file_meta:
        raise HTTPException(status_code=404, detail="File not found")
    get_accessible_submission(storage, user, file_meta["submission_id"])
    path = Path(file_meta["file_path"])
    if not is_inside(settings.upload_dir, path):
        raise HTTPException(status_code=400, detail="Invalid file path")
    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(
        path, media_type=file_meta["file_type"], filename=file_meta["file_name"] or file_id
    )
