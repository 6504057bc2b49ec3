from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse

from formcraft.auth import get_accessible_form, get_current_user
from formcraft.file_formats import remove_stored_files
from formcraft.protocols import Storage
from formcraft.render import render_page
from formcraft.routes.common import read_json_object, validation_error
from formcraft.schema import form_output, parse_form_schema
from formcraft.utils import new_ulid, now_utc

logger = logging.getLogger(__name__)

router = APIRouter()


def visible_forms(storage: Storage, user: dict[str, Any]) -> list[dict[str, Any]]:
    if user.get("role") == "super_admin":
        return storage.forms.list_all_forms()
    return storage.forms.list_forms_by_owner(user["id"])


def stored_paths_for_form(storage: Storage, form_id: str) -> list[str]:
    paths: list[str] = []
    for submission in storage.submissions.list_submissions_by_form(form_id):
        files = storage.files.list_file_uploads_by_submission(submission["id"])
        paths.extend(f["file_path"] for f in files)
    return paths


def schema_fields(schema: Any) -> list[dict[str, Any]]:
    fields, errors = parse_form_schema(schema)
    if errors:
        raise validation_error(errors, "Invalid form schema")
    return fields


@router.get("/api/forms", tags=["forms"])
async def list_forms(
    request: Request, user: dict[str, Any] = Depends(get_current_user)
) -> JSONResponse:
    forms = visible_forms(request.app.state.storage, user)
    return JSONResponse([form_output(form) for form in forms])


@router.post("/api/forms", tags=["forms"])
async def create_form(
    request: Request, user: dict[str, Any] = Depends(get_current_user)
) -> JSONResponse:
    storage = request.app.state.storage
    payload = await read_json_object(request)
    name = str(payload.get("name") or "").strip()
    if not name:
        raise validation_error([{"field": "name", "message": "name is required"}])
    fields = schema_fields(payload.get("schema"))
    now = now_utc()
    form = storage.forms.create_form(
        {
            "id": new_ulid(),
            "name": name,
            "description": str(payload.get("description") or "").strip(),
            "schema_json": {"fields": fields},
            "user_id": user["id"],
            "status": "draft",
            "published_url": None,
            "created_at": now,
            "updated_at": now,
        }
    )
    logger.info("Form %s created by %s", form["id"], user["username"])
    return JSONResponse(form_output(form), status_code=201)


@router.get("/api/forms/search", tags=["forms"])
async def search_forms(
    request: Request, user: dict[str, Any] = Depends(get_current_user)
) -> JSONResponse:
    storage = request.app.state.storage
    query = request.query_params.get("q", "").strip()
    if not query:
        forms = visible_forms(storage, user)
    else:
        forms = storage.forms.search_forms(query)
        if user.get("role") != "super_admin":
            forms = [form for form in forms if form.get("user_id") == user["id"]]
    return JSONResponse([form_output(form) for form in forms])


@router.get("/api/forms/{form_id}", tags=["forms"])
async def get_form(
    request: Request, form_id: str, user: dict[str, Any] = Depends(get_current_user)
) -> JSONResponse:
    form = get_accessible_form(request.app.state.storage, user, form_id)
    return JSONResponse(form_output(form))


@router.put("/api/forms/{form_id}", tags=["forms"])
async def update_form(
    request: Request, form_id: str, user: dict[str, Any] = Depends(get_current_user)
) -> JSONResponse:
    storage = request.app.state.storage
    get_accessible_form(storage, user, form_id)
    payload = await read_json_object(request)
    updates: dict[str, Any] = {}
    if "name" in payload:
        name = str(payload.get("name") or "").strip()
        if not name:
            raise validation_error([{"field": "name", "message": "name is required"}])
        updates["name"] = name
    if "description" in payload:
        updates["description"] = str(payload.get("description") or "").strip()
    if "schema" in payload:
        updates["schema_json"] = {"fields": schema_fields(payload.get("schema"))}
    updates["updated_at"] = now_utc()
    updated = storage.forms.update_form(form_id, updates)
    if not updated:
        raise HTTPException(status_code=404, detail="Form not found")
    return JSONResponse(form_output(updated))


@router.delete("/api/forms/{form_id}", tags=["forms"])
async def delete_form(
    request: Request, form_id: str, user: dict[str, Any] = Depends(get_current_user)
) -> Response:
    storage = request.app.state.storage
    settings = request.app.state.settings
    get_accessible_form(storage, user, form_id)
    paths = stored_paths_for_form(storage, form_id)
    storage.forms.delete_form(form_id)
    remove_stored_files(settings.upload_dir, paths)
    logger.info("Form %s deleted by %s (%d files removed)", form_id, user["username"], len(paths))
    return Response(status_code=204)


@router.post("/api/forms/{form_id}/publish", tags=["forms"])
async def publish_form(
    request: Request, form_id: str, user: dict[str, Any] = Depends(get_current_user)
) -> JSONResponse:
    storage = request.app.state.storage
    get_accessible_form(storage, user, form_id)
    form = storage.forms.publish_form(form_id)
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")
    logger.info("Form %s published at %s", form_id, form["published_url"])
    return JSONResponse(form_output(form))


@router.get("/api/forms/{form_id}/preview", response_class=HTMLResponse, tags=["forms"])
async def preview_form(
    request: Request, form_id: str, user: dict[str, Any] = Depends(get_current_user)
) -> HTMLResponse:
    form = get_accessible_form(request.app.state.storage, user, form_id)
    fields = (form.get("schema_json") or {}).get("fields") or []
    return HTMLResponse(render_page(form_output(form), fields, mode="edit"))
