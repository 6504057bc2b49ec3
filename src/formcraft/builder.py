"""In-memory form draft and the operations the form builder applies to it.

Every transition takes a :class:`FormDraft` and returns the next one.  A
transition that does not apply (unknown field id, index at a boundary, second
banner field) returns the draft it was given, unchanged, rather than raising:
builder state is driven by UI events that may refer to fields which no longer
exist.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from typing import Any, Iterable

from formcraft.fields import BANNER_TYPE, default_properties, instantiate, is_field_type

IMMUTABLE_KEYS = frozenset({"id", "type"})


@dataclass(frozen=True)
class FormDraft:
    id: str | None = None
    name: str = ""
    description: str = ""
    fields: tuple[dict[str, Any], ...] = field(default_factory=tuple)
    active_field_id: str | None = None
    status: str = "draft"
    published_url: str | None = None


def new_draft() -> FormDraft:
    return FormDraft()


def has_banner_field(draft: FormDraft) -> bool:
    return any(f.get("type") == BANNER_TYPE for f in draft.fields)


def add_field(draft: FormDraft, field_type: str) -> FormDraft:
    if field_type == BANNER_TYPE and has_banner_field(draft):
        return draft
    new_field = instantiate(field_type)
    if new_field is None:
        return draft
    return replace(
        draft,
        fields=(*draft.fields, new_field),
        active_field_id=new_field["id"],
    )


def set_active_field(draft: FormDraft, field_id: str | None) -> FormDraft:
    # Dangling ids are accepted; get_active_field resolves them to None.
    return replace(draft, active_field_id=field_id)


def get_active_field(draft: FormDraft) -> dict[str, Any] | None:
    if draft.active_field_id is None:
        return None
    for f in draft.fields:
        if f.get("id") == draft.active_field_id:
            return f
    return None


def update_field_properties(
    draft: FormDraft, field_id: str, properties: dict[str, Any]
) -> FormDraft:
    if not any(f.get("id") == field_id for f in draft.fields):
        return draft
    changes = {k: copy.deepcopy(v) for k, v in properties.items() if k not in IMMUTABLE_KEYS}
    return replace(
        draft,
        fields=tuple(
            {**f, **changes} if f.get("id") == field_id else f for f in draft.fields
        ),
    )


def _swap(fields: tuple[dict[str, Any], ...], a: int, b: int) -> tuple[dict[str, Any], ...]:
    items = list(fields)
    items[a], items[b] = items[b], items[a]
    return tuple(items)


def move_field_up(draft: FormDraft, index: int) -> FormDraft:
    if index <= 0 or index >= len(draft.fields):
        return draft
    return replace(draft, fields=_swap(draft.fields, index, index - 1))


def move_field_down(draft: FormDraft, index: int) -> FormDraft:
    if index < 0 or index >= len(draft.fields) - 1:
        return draft
    return replace(draft, fields=_swap(draft.fields, index, index + 1))


def delete_field(draft: FormDraft, field_id: str) -> FormDraft:
    remaining = tuple(f for f in draft.fields if f.get("id") != field_id)
    if len(remaining) == len(draft.fields):
        return draft
    active = None if draft.active_field_id == field_id else draft.active_field_id
    return replace(draft, fields=remaining, active_field_id=active)


def restore_fields(raw_fields: Iterable[dict[str, Any]]) -> tuple[dict[str, Any], ...]:
    """Rebuild field descriptors from their serialized form.

    Known types are layered over their defaults so that fields saved by an
    older catalog pick up properties added since; unknown types are kept as-is
    so the renderer can show its placeholder for them.
    """
    restored: list[dict[str, Any]] = []
    for raw in raw_fields:
        if not isinstance(raw, dict):
            continue
        if is_field_type(raw.get("type")):
            restored.append({**default_properties(raw["type"]), **copy.deepcopy(raw)})
        else:
            restored.append(copy.deepcopy(raw))
    return tuple(restored)


def draft_from_form(form: dict[str, Any]) -> FormDraft:
    schema = form.get("schema") or {}
    return FormDraft(
        id=form.get("id"),
        name=form.get("name") or "",
        description=form.get("description") or "",
        fields=restore_fields(schema.get("fields") or []),
        active_field_id=None,
        status=form.get("status") or "draft",
        published_url=form.get("publishedUrl"),
    )


def draft_payload(draft: FormDraft) -> dict[str, Any]:
    return {
        "name": draft.name,
        "description": draft.description,
        "schema": {"fields": [copy.deepcopy(f) for f in draft.fields]},
    }


class FormBuilder:
    """Single-writer controller over the draft being edited.

    ``revision`` increases on every change.  Saves are tagged with the
    revision they were issued at; a store response is only reconciled into
    the draft if no later save has already been applied.
    """

    def __init__(self, draft: FormDraft | None = None) -> None:
        self.draft = draft or new_draft()
        self.revision = 0
        self._applied_revision = -1

    def _commit(self, draft: FormDraft) -> FormDraft:
        if draft is not self.draft:
            self.draft = draft
            self.revision += 1
        return self.draft

    @property
    def fields(self) -> tuple[dict[str, Any], ...]:
        return self.draft.fields

    def has_banner_field(self) -> bool:
        return has_banner_field(self.draft)

    def add_field(self, field_type: str) -> FormDraft:
        return self._commit(add_field(self.draft, field_type))

    def set_active_field(self, field_id: str | None) -> FormDraft:
        if field_id == self.draft.active_field_id:
            return self.draft
        return self._commit(set_active_field(self.draft, field_id))

    def get_active_field(self) -> dict[str, Any] | None:
        return get_active_field(self.draft)

    def update_field_properties(self, field_id: str, properties: dict[str, Any]) -> FormDraft:
        return self._commit(update_field_properties(self.draft, field_id, properties))

    def move_field_up(self, index: int) -> FormDraft:
        return self._commit(move_field_up(self.draft, index))

    def move_field_down(self, index: int) -> FormDraft:
        return self._commit(move_field_down(self.draft, index))

    def delete_field(self, field_id: str) -> FormDraft:
        return self._commit(delete_field(self.draft, field_id))

    def set_name(self, name: str) -> FormDraft:
        return self._commit(replace(self.draft, name=name))

    def set_description(self, description: str) -> FormDraft:
        return self._commit(replace(self.draft, description=description))

    def reset(self) -> FormDraft:
        self._applied_revision = -1
        return self._commit(new_draft())

    def load(self, form: dict[str, Any]) -> FormDraft:
        self._applied_revision = -1
        return self._commit(draft_from_form(form))

    def to_payload(self) -> dict[str, Any]:
        return draft_payload(self.draft)

    def begin_save(self) -> int:
        return self.revision

    def apply_saved(self, form: dict[str, Any], revision: int) -> bool:
        if revision < self._applied_revision:
            return False
        if self.draft.id is not None and form.get("id") != self.draft.id:
            return False
        self._applied_revision = revision
        self.draft = replace(
            self.draft,
            id=form.get("id"),
            status=form.get("status") or self.draft.status,
            published_url=form.get("publishedUrl"),
        )
        return True
