"""Field-type → widget dispatch.

Each entry of :data:`WIDGETS` knows the template that draws its widget and
how to turn raw user input into the semantic value reported through the
change callback.  Widgets render in one of two modes: ``edit`` draws a
disabled preview for the builder canvas, ``fill`` draws an interactive
control for end users.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

import markupsafe
from jinja2 import Environment, FileSystemLoader, select_autoescape

from formcraft.config import BASE_DIR
from formcraft.fields import BANNER_TYPE, legal_properties
from formcraft.file_formats import encode_data_url, resolve_content_type

MODES = ("edit", "fill")

ChangeCallback = Callable[[str, Any], None]


environment = Environment(
    loader=FileSystemLoader(str(BASE_DIR / "templates")),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def parse_text(field: dict[str, Any], raw: Any) -> str:
    if raw is None:
        return ""
    return raw if isinstance(raw, str) else str(raw)


def parse_bool(field: dict[str, Any], raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    return str(raw).lower() in {"1", "true", "on", "yes"}


def parse_number(field: dict[str, Any], raw: Any) -> int | float | None:
    if isinstance(raw, bool) or raw in (None, ""):
        return None
    if isinstance(raw, (int, float)):
        return raw
    text = str(raw).strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return None


def parse_option(field: dict[str, Any], raw: Any) -> str | None:
    values = {option.get("value") for option in field.get("options") or []}
    value = None if raw is None else str(raw)
    return value if value in values else None


def parse_upload(field: dict[str, Any], raw: Any) -> dict[str, str] | None:
    """Normalize an upload to ``{fileName, fileType, dataUrl}``.

    Accepts an already structured payload or a ``(filename, content_type,
    content)`` tuple; anything else (including None, used to remove the
    file) yields None.
    """
    if isinstance(raw, dict) and isinstance(raw.get("dataUrl"), str):
        file_name = str(raw.get("fileName") or "")
        return {
            "fileName": file_name,
            "fileType": resolve_content_type(raw.get("fileType"), file_name),
            "dataUrl": raw["dataUrl"],
        }
    if isinstance(raw, tuple) and len(raw) == 3:
        file_name, content_type, content = raw
        file_type = resolve_content_type(content_type, file_name)
        return {
            "fileName": str(file_name or ""),
            "fileType": file_type,
            "dataUrl": encode_data_url(file_type, bytes(content)),
        }
    return None


@dataclass(frozen=True)
class Widget:
    template: str
    parse: Callable[[dict[str, Any], Any], Any]
    input_type: str = ""


WIDGETS: dict[str, Widget] = {
    "textInput": Widget("fields/input.html", parse_text, "text"),
    "textArea": Widget("fields/textarea.html", parse_text),
    "checkbox": Widget("fields/checkbox.html", parse_bool),
    "select": Widget("fields/select.html", parse_option),
    "radio": Widget("fields/radio.html", parse_option),
    "date": Widget("fields/input.html", parse_text, "date"),
    "toggle": Widget("fields/toggle.html", parse_bool),
    "fileUpload": Widget("fields/upload.html", parse_upload),
    "number": Widget("fields/input.html", parse_number, "number"),
    "email": Widget("fields/input.html", parse_text, "email"),
    "mediaUpload": Widget("fields/upload.html", parse_upload),
    "bannerUpload": Widget("fields/banner.html", parse_upload),
}

UNKNOWN_TEMPLATE = "fields/unknown.html"


def widget_props(field: dict[str, Any]) -> dict[str, Any]:
    """The properties a widget may see: only those legal for its type."""
    allowed = legal_properties(field.get("type", ""))
    return {key: value for key, value in field.items() if key in allowed}


@dataclass
class RenderedField:
    field_id: str
    field_type: str
    mode: str
    html: markupsafe.Markup
    widget: Widget | None = None
    props: dict[str, Any] = field(default_factory=dict)
    on_change: ChangeCallback | None = None

    def __html__(self) -> str:
        return str(self.html)

    @property
    def interactive(self) -> bool:
        return self.mode == "fill" and self.widget is not None

    def input(self, raw: Any) -> Any:
        """Feed a raw edit into the widget; reports the semantic value."""
        if not self.interactive:
            return None
        value = self.widget.parse(self.props, raw)
        if self.on_change is not None:
            self.on_change(self.field_id, value)
        return value


def render_field(
    field_data: dict[str, Any],
    mode: str = "fill",
    on_change: ChangeCallback | None = None,
    value: Any = None,
) -> RenderedField:
    if mode not in MODES:
        raise ValueError(f"unknown render mode: {mode}")
    field_id = str(field_data.get("id") or "")
    field_type = str(field_data.get("type") or "")
    widget = WIDGETS.get(field_type)
    if widget is None:
        html = environment.get_template(UNKNOWN_TEMPLATE).render(field=field_data)
        return RenderedField(field_id, field_type, mode, markupsafe.Markup(html))
    props = widget_props(field_data)
    html = environment.get_template(widget.template).render(
        field=props,
        input_type=widget.input_type,
        disabled=mode == "edit",
        value=value,
        dom_id=f"field-{field_id}",
    )
    return RenderedField(
        field_id,
        field_type,
        mode,
        markupsafe.Markup(html),
        widget=widget,
        props=props,
        on_change=on_change,
    )


def render_form(
    fields: list[dict[str, Any]],
    mode: str = "fill",
    on_change: ChangeCallback | None = None,
    values: dict[str, Any] | None = None,
) -> markupsafe.Markup:
    values = values or {}
    banner = next((f for f in fields if f.get("type") == BANNER_TYPE), None)
    rendered = [
        (f, render_field(f, mode, on_change, values.get(f.get("id"))))
        for f in fields
        if f is not banner
    ]
    html = environment.get_template("form_body.html").render(
        banner=render_field(banner, mode, on_change) if banner else None,
        banner_position=(banner or {}).get("position", "left"),
        rendered=rendered,
    )
    return markupsafe.Markup(html)


def render_page(
    form: dict[str, Any],
    fields: list[dict[str, Any]],
    mode: str = "fill",
) -> str:
    return environment.get_template("form_page.html").render(
        form=form,
        body=render_form(fields, mode),
        mode=mode,
    )
