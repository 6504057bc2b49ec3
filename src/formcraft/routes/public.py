from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

import orjson
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.datastructures import FormData, UploadFile

from formcraft.fields import BOOLEAN_TYPES, is_upload_type
from formcraft.file_formats import (
    decode_data_url,
    remove_stored_files,
    resolve_content_type,
    store_upload,
    upload_rejection,
)
from formcraft.protocols import Storage, StorageError
from formcraft.render import parse_bool, parse_number, render_page
from formcraft.routes.common import read_json_object, validation_error
from formcraft.schema import (
    clean_submission_data,
    form_output,
    submission_output,
    validate_submission,
)
from formcraft.utils import new_ulid, now_utc

logger = logging.getLogger(__name__)

router = APIRouter()

BRACKET_KEY = re.compile(r"^(?P<group>data|files|fileData)\[(?P<field>[^\]]+)\]$")


@dataclass
class PendingFile:
    field_id: str
    file_name: str
    file_type: str
    content: bytes


def get_published_form(storage: Storage, form_id: str) -> dict[str, Any]:
    form = storage.forms.get_form(form_id)
    if not form or form.get("status") != "published":
        raise HTTPException(status_code=404, detail="Form not found or not published")
    return form


def form_fields(form: dict[str, Any]) -> list[dict[str, Any]]:
    return (form.get("schema_json") or {}).get("fields") or []


def json_or_raw(value: str) -> Any:
    try:
        return orjson.loads(value)
    except orjson.JSONDecodeError:
        return value


def coerce_form_value(field: dict[str, Any], raw: Any) -> Any:
    """Turn a plain multipart value into the type the field validates against."""
    if field["type"] in BOOLEAN_TYPES:
        return parse_bool(field, raw)
    if field["type"] == "number":
        number = parse_number(field, raw)
        # Keep unparsable input so validation reports it instead of dropping it.
        return raw if number is None and raw not in (None, "") else number
    return raw


def decode_data_value(field: dict[str, Any], value: str) -> Any:
    """Values under ``data[...]`` are JSON encoded; text fields keep raw strings."""
    parsed = json_or_raw(value)
    if field["type"] in BOOLEAN_TYPES or field["type"] == "number":
        return parsed
    return parsed if isinstance(parsed, str) else value


def pending_from_payload(field_id: str, payload: Any) -> PendingFile | None:
    if isinstance(payload, str):
        payload = json_or_raw(payload)
    if not isinstance(payload, dict) or not isinstance(payload.get("dataUrl"), str):
        return None
    try:
        content_type, content = decode_data_url(payload["dataUrl"])
    except ValueError:
        raise validation_error([{"field": field_id, "message": "file data is not a valid data URL"}])
    return PendingFile(
        field_id,
        str(payload.get("fileName") or field_id),
        str(payload.get("fileType") or content_type).lower(),
        content,
    )


async def read_multipart(
    form_data: FormData, fields: list[dict[str, Any]]
) -> tuple[dict[str, Any], list[PendingFile]]:
    by_id = {f["id"]: f for f in fields}
    data: dict[str, Any] = {}
    pending: dict[str, PendingFile] = {}
    file_payloads: dict[str, Any] = {}
    for key, value in form_data.multi_items():
        match = BRACKET_KEY.match(key)
        group, field_id = (match.group("group"), match.group("field")) if match else ("", key)
        field = by_id.get(field_id)
        if field is None:
            continue
        if group == "files":
            if isinstance(value, UploadFile) and value.filename:
                content = await value.read()
                pending[field_id] = PendingFile(
                    field_id,
                    value.filename,
                    resolve_content_type(value.content_type, value.filename),
                    content,
                )
        elif group == "fileData":
            file_payloads[field_id] = value
        elif group == "data" and is_upload_type(field.get("type")):
            file_payloads.setdefault(field_id, value)
        elif group == "data":
            if isinstance(value, str):
                data[field_id] = decode_data_value(field, value)
        elif not isinstance(value, UploadFile):
            data[field_id] = coerce_form_value(field, value)
    for field_id, payload in file_payloads.items():
        if field_id not in pending:
            item = pending_from_payload(field_id, payload)
            if item is not None:
                pending[field_id] = item
    return data, list(pending.values())


def split_json_uploads(
    data: dict[str, Any], fields: list[dict[str, Any]]
) -> list[PendingFile]:
    pending: list[PendingFile] = []
    for field in fields:
        if is_upload_type(field.get("type")) and field["id"] in data:
            item = pending_from_payload(field["id"], data[field["id"]])
            if item is not None:
                pending.append(item)
    return pending


def check_uploads(
    fields: list[dict[str, Any]], pending: list[PendingFile], max_bytes: int | None
) -> list[dict[str, str]]:
    by_id = {f["id"]: f for f in fields}
    errors: list[dict[str, str]] = []
    for item in pending:
        reason = upload_rejection(
            by_id.get(item.field_id), item.file_type, item.file_name, len(item.content), max_bytes
        )
        if reason:
            logger.info("Rejected upload for field %s: %s", item.field_id, reason)
            errors.append({"field": item.field_id, "message": reason})
    provided = {item.field_id for item in pending}
    for field in fields:
        if (
            is_upload_type(field.get("type"))
            and field.get("required")
            and field["id"] not in provided
        ):
            errors.append({"field": field["id"], "message": "this field is required"})
    return errors


@router.get("/api/public-forms/{form_id}", tags=["public"])
async def get_public_form(request: Request, form_id: str) -> JSONResponse:
    form = get_published_form(request.app.state.storage, form_id)
    return JSONResponse(form_output(form))


@router.get("/f/{form_id}", response_class=HTMLResponse, tags=["public"])
async def public_form_page(request: Request, form_id: str) -> HTMLResponse:
    form = get_published_form(request.app.state.storage, form_id)
    return HTMLResponse(render_page(form_output(form), form_fields(form), mode="fill"))


@router.post("/api/forms/{form_id}/submit", tags=["public"])
async def submit_form(request: Request, form_id: str) -> JSONResponse:
    storage = request.app.state.storage
    settings = request.app.state.settings
    form = get_published_form(storage, form_id)
    fields = form_fields(form)

    content_type = request.headers.get("content-type", "")
    if content_type.startswith(("multipart/form-data", "application/x-www-form-urlencoded")):
        raw_data, pending = await read_multipart(await request.form(), fields)
    else:
        payload = await read_json_object(request)
        raw_data = payload.get("data", {})
        if not isinstance(raw_data, dict):
            raise validation_error([{"field": "data", "message": "data must be an object"}])
        pending = split_json_uploads(raw_data, fields)

    data = clean_submission_data(fields, raw_data)
    errors = validate_submission(fields, data)
    errors.extend(check_uploads(fields, pending, settings.upload_max_bytes))
    if errors:
        raise validation_error(errors)

    file_records: list[dict[str, Any]] = []
    submission_id = new_ulid()
    submission: dict[str, Any] | None = None
    try:
        for item in pending:
            file_id = new_ulid()
            path = store_upload(settings.upload_dir, file_id, item.file_name, item.content)
            file_records.append(
                {
                    "id": file_id,
                    "field_id": item.field_id,
                    "file_name": item.file_name,
                    "file_type": item.file_type,
                    "file_path": str(path),
                    "file_size": len(item.content),
                }
            )
            data[item.field_id] = {"fileId": file_id, "fileName": item.file_name}

        now = now_utc()
        submission = storage.submissions.create_submission(
            {"id": submission_id, "form_id": form["id"], "data_json": data, "created_at": now}
        )
        files = [
            storage.files.create_file_upload(
                {**record, "submission_id": submission_id, "created_at": now}
            )
            for record in file_records
        ]
    except (StorageError, OSError):
        logger.warning("Rolling back submission %s for form %s", submission_id, form["id"])
        if submission is not None:
            storage.submissions.delete_submission(submission_id)
        remove_stored_files(settings.upload_dir, [r["file_path"] for r in file_records])
        raise
    logger.info(
        "Submission %s stored for form %s with %d files", submission_id, form["id"], len(files)
    )
    return JSONResponse(submission_output(submission, files), status_code=201)
