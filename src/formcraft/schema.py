from __future__ import annotations

import re
from typing import Any

import orjson
from jsonschema import Draft7Validator

from formcraft.builder import restore_fields
from formcraft.fields import (
    BANNER_POSITIONS,
    BANNER_TYPE,
    BOOLEAN_TYPES,
    EMAIL_PATTERN,
    GRID_COLUMNS,
    OPTION_TYPES,
    UPLOAD_TYPES,
    is_field_type,
    legal_properties,
)
from formcraft.utils import now_utc, to_iso

NUMERIC_PROPERTIES = ("minLength", "maxLength", "rows", "min", "max", "step", "maxFileSize")
STRING_PROPERTIES = (
    "label",
    "helperText",
    "placeholder",
    "checkboxLabel",
    "checkboxText",
    "toggleLabel",
    "allowedTypes",
    "fileTypeText",
    "mediaTypeText",
    "pattern",
    "bannerUrl",
)
BOOLEAN_PROPERTIES = ("required", "defaultChecked", "canUpload", "canDownload")


def _error(field: str, message: str) -> dict[str, str]:
    return {"field": field, "message": message}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_form_schema(raw: Any) -> tuple[list[dict[str, Any]], list[dict[str, str]]]:
    """Validate a form schema blob ``{"fields": [...]}``.

    Returns the normalized field list (defaults filled in, properties that do
    not belong to the field's type dropped) and a list of field-level errors.
    """
    errors: list[dict[str, str]] = []
    if isinstance(raw, (str, bytes)):
        try:
            raw = orjson.loads(raw)
        except orjson.JSONDecodeError:
            return [], [_error("schema", "schema is not valid JSON")]
    if raw is None:
        raw = {"fields": []}
    if not isinstance(raw, dict):
        return [], [_error("schema", "schema must be an object")]
    raw_fields = raw.get("fields", [])
    if not isinstance(raw_fields, list):
        return [], [_error("schema.fields", "fields must be a list")]

    seen_ids: set[str] = set()
    banner_count = 0
    for index, item in enumerate(raw_fields):
        loc = f"fields[{index}]"
        if not isinstance(item, dict):
            errors.append(_error(loc, "field must be an object"))
            continue
        field_id = item.get("id")
        if not isinstance(field_id, str) or not field_id.strip():
            errors.append(_error(f"{loc}.id", "id is required"))
        elif field_id in seen_ids:
            errors.append(_error(f"{loc}.id", f"duplicate field id ({field_id})"))
        else:
            seen_ids.add(field_id)

        field_type = item.get("type")
        if not is_field_type(field_type):
            errors.append(_error(f"{loc}.type", f"unknown field type ({field_type})"))
            continue
        if field_type == BANNER_TYPE:
            banner_count += 1
            if banner_count > 1:
                errors.append(_error(f"{loc}.type", "only one banner field is allowed"))

        for key in STRING_PROPERTIES:
            if key in item and not isinstance(item[key], str):
                errors.append(_error(f"{loc}.{key}", f"{key} must be a string"))
        for key in BOOLEAN_PROPERTIES:
            if key in item and not isinstance(item[key], bool):
                errors.append(_error(f"{loc}.{key}", f"{key} must be a boolean"))
        for key in NUMERIC_PROPERTIES:
            if item.get(key) is not None and not _is_number(item[key]):
                errors.append(_error(f"{loc}.{key}", f"{key} must be a number"))

        if item.get("gridColumn", "full") not in GRID_COLUMNS:
            errors.append(_error(f"{loc}.gridColumn", "gridColumn must be full or half"))
        if field_type == BANNER_TYPE and item.get("position", "left") not in BANNER_POSITIONS:
            errors.append(_error(f"{loc}.position", "position must be left or top"))

        for low, high in (("minLength", "maxLength"), ("min", "max")):
            if _is_number(item.get(low)) and _is_number(item.get(high)) and item[low] > item[high]:
                errors.append(_error(f"{loc}.{low}", f"{low} must not exceed {high}"))

        if field_type in OPTION_TYPES:
            errors.extend(_option_errors(item.get("options"), f"{loc}.options"))

        if field_type == "email" and isinstance(item.get("pattern"), str):
            try:
                re.compile(item["pattern"])
            except re.error:
                errors.append(_error(f"{loc}.pattern", "pattern is not a valid regular expression"))

    if errors:
        return [], errors

    fields = []
    for item in restore_fields(raw_fields):
        allowed = legal_properties(item["type"])
        fields.append({key: value for key, value in item.items() if key in allowed})
    return fields, []


def _option_errors(options: Any, loc: str) -> list[dict[str, str]]:
    if not isinstance(options, list) or not options:
        return [_error(loc, "at least one option is required")]
    errors: list[dict[str, str]] = []
    values: set[str] = set()
    for index, option in enumerate(options):
        if (
            not isinstance(option, dict)
            or not isinstance(option.get("label"), str)
            or not isinstance(option.get("value"), str)
        ):
            errors.append(_error(f"{loc}[{index}]", "option needs a string label and value"))
            continue
        if option["value"] in values:
            errors.append(_error(f"{loc}[{index}]", f"duplicate option value ({option['value']})"))
        values.add(option["value"])
    return errors


def build_property(field: dict[str, Any]) -> dict[str, Any]:
    field_type = field["type"]
    if field_type in BOOLEAN_TYPES:
        payload: dict[str, Any] = {"type": "boolean"}
    elif field_type in OPTION_TYPES:
        payload = {"enum": [option["value"] for option in field.get("options") or []]}
    elif field_type == "number":
        payload = {"type": "number"}
        if field.get("min") is not None:
            payload["minimum"] = field["min"]
        if field.get("max") is not None:
            payload["maximum"] = field["max"]
    elif field_type == "email":
        payload = {"type": "string", "pattern": field.get("pattern") or EMAIL_PATTERN}
    else:
        payload = {"type": "string"}
        if field.get("minLength") is not None:
            payload["minLength"] = int(field["minLength"])
        if field.get("maxLength") is not None:
            payload["maxLength"] = int(field["maxLength"])
    payload["title"] = field.get("label") or field["id"]
    return payload


def submission_schema(fields: list[dict[str, Any]]) -> dict[str, Any]:
    """JSON Schema for the non-file values of a submission."""
    properties: dict[str, Any] = {}
    required: list[str] = []
    for field in fields:
        if not is_field_type(field.get("type")) or field["type"] in UPLOAD_TYPES:
            continue
        properties[field["id"]] = build_property(field)
        if field.get("required"):
            required.append(field["id"])
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


def clean_submission_data(fields: list[dict[str, Any]], data: dict[str, Any]) -> dict[str, Any]:
    """Keep only values for known, non-file fields and drop empty ones."""
    known = {
        f["id"]
        for f in fields
        if is_field_type(f.get("type")) and f["type"] not in UPLOAD_TYPES
    }
    return {
        key: value
        for key, value in data.items()
        if key in known and value is not None and value != ""
    }


def validate_submission(
    fields: list[dict[str, Any]], data: dict[str, Any]
) -> list[dict[str, str]]:
    validator = Draft7Validator(submission_schema(fields))
    errors: list[dict[str, str]] = []
    for err in sorted(validator.iter_errors(data), key=lambda e: list(e.path)):
        if err.validator == "required":
            for key in err.validator_value:
                if key not in err.instance:
                    errors.append(_error(key, "this field is required"))
            continue
        field = str(err.path[0]) if err.path else ""
        errors.append(_error(field, err.message))
    return errors


def form_output(form: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": form["id"],
        "name": form.get("name", ""),
        "description": form.get("description", ""),
        "schema": form.get("schema_json") or {"fields": []},
        "userId": form.get("user_id"),
        "status": form.get("status", "draft"),
        "publishedUrl": form.get("published_url"),
        "createdAt": to_iso(form.get("created_at") or now_utc()),
        "updatedAt": to_iso(form.get("updated_at") or now_utc()),
    }


def user_output(user: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": user["id"],
        "username": user["username"],
        "email": user["email"],
        "role": user["role"],
        "createdAt": to_iso(user.get("created_at") or now_utc()),
    }


def file_output(file_meta: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": file_meta["id"],
        "submissionId": file_meta["submission_id"],
        "fieldId": file_meta["field_id"],
        "fileName": file_meta["file_name"],
        "fileType": file_meta["file_type"],
        "filePath": file_meta["file_path"],
        "fileSize": file_meta["file_size"],
        "createdAt": to_iso(file_meta.get("created_at") or now_utc()),
    }


def submission_output(
    submission: dict[str, Any], files: list[dict[str, Any]] | None = None
) -> dict[str, Any]:
    payload = {
        "id": submission["id"],
        "formId": submission["form_id"],
        "data": submission.get("data_json") or {},
        "createdAt": to_iso(submission.get("created_at") or now_utc()),
    }
    if files is not None:
        payload["files"] = [file_output(f) for f in files]
    return payload
