"""Catalog of form field types and their default properties."""

from __future__ import annotations

import copy
from typing import Any

from formcraft.utils import new_ulid

FIELD_TYPES: tuple[str, ...] = (
    "textInput",
    "textArea",
    "checkbox",
    "select",
    "radio",
    "date",
    "toggle",
    "fileUpload",
    "number",
    "email",
    "mediaUpload",
    "bannerUpload",
)

BANNER_TYPE = "bannerUpload"
UPLOAD_TYPES = frozenset({"fileUpload", "mediaUpload", "bannerUpload"})
OPTION_TYPES = frozenset({"select", "radio"})
BOOLEAN_TYPES = frozenset({"checkbox", "toggle"})
GRID_COLUMNS = ("full", "half")
BANNER_POSITIONS = ("left", "top")

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"

COMMON_DEFAULTS: dict[str, Any] = {
    "label": "",
    "helperText": "",
    "placeholder": "",
    "required": False,
    "gridColumn": "full",
}


def _options() -> list[dict[str, str]]:
    return [
        {"label": "Option 1", "value": "option1"},
        {"label": "Option 2", "value": "option2"},
        {"label": "Option 3", "value": "option3"},
    ]


FIELD_TEMPLATES: dict[str, dict[str, Any]] = {
    "textInput": {
        "label": "Text Input",
        "helperText": "Enter text here",
        "placeholder": "Type here...",
        "minLength": None,
        "maxLength": None,
    },
    "textArea": {
        "label": "Text Area",
        "helperText": "Enter longer text here",
        "placeholder": "Type here...",
        "rows": 3,
        "minLength": None,
        "maxLength": None,
    },
    "checkbox": {
        "label": "Checkbox",
        "helperText": "Select options",
        "checkboxLabel": "I agree",
        "checkboxText": "By checking this box, you agree to our terms and conditions.",
    },
    "select": {
        "label": "Select List",
        "helperText": "Choose from options",
        "placeholder": "Please select an option",
        "options": _options(),
    },
    "radio": {
        "label": "Radio Button",
        "helperText": "Select one option",
        "options": _options(),
    },
    "date": {
        "label": "Date/Time Picker",
        "helperText": "Select a date",
    },
    "toggle": {
        "label": "Toggle Switch",
        "helperText": "Toggle this option",
        "toggleLabel": "Enable",
        "defaultChecked": False,
    },
    "fileUpload": {
        "label": "File Upload",
        "helperText": "Upload your documents",
        "allowedTypes": (
            "image/*,application/pdf,application/msword,"
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
        ),
        "fileTypeText": "PNG, JPG, PDF, DOC up to 10MB",
        "maxFileSize": 10,
    },
    "number": {
        "label": "Number Input",
        "helperText": "Enter a number",
        "placeholder": "0",
        "min": None,
        "max": None,
        "step": 1,
    },
    "email": {
        "label": "Email Input",
        "helperText": "Enter your email address",
        "placeholder": "email@example.com",
        "pattern": EMAIL_PATTERN,
    },
    "mediaUpload": {
        "label": "Audio/Video Upload",
        "helperText": "Upload audio or video files",
        "allowedTypes": "audio/*,video/*",
        "mediaTypeText": "MP3, WAV, MP4, MOV up to 10MB",
        "maxFileSize": 10,
    },
    "bannerUpload": {
        "label": "Banner Upload",
        "helperText": "Upload a banner image for your form",
        "allowedTypes": "image/*",
        "fileTypeText": "PNG, JPG, GIF up to 10MB",
        "maxFileSize": 10,
        "position": "left",
        "canUpload": True,
        "canDownload": False,
        "bannerUrl": "",
    },
}


def is_field_type(field_type: Any) -> bool:
    return isinstance(field_type, str) and field_type in FIELD_TEMPLATES


def is_upload_type(field_type: Any) -> bool:
    return field_type in UPLOAD_TYPES


def default_properties(field_type: str) -> dict[str, Any]:
    """Return a fresh copy of the full default property set for ``field_type``."""
    return {
        "type": field_type,
        **copy.deepcopy(COMMON_DEFAULTS),
        **copy.deepcopy(FIELD_TEMPLATES[field_type]),
    }


def legal_properties(field_type: str) -> frozenset[str]:
    if not is_field_type(field_type):
        return frozenset()
    return frozenset({"id", "type", *COMMON_DEFAULTS, *FIELD_TEMPLATES[field_type]})


def instantiate(field_type: Any) -> dict[str, Any] | None:
    if not is_field_type(field_type):
        return None
    return {**default_properties(field_type), "id": new_ulid()}
