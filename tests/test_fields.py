from formcraft.fields import (
    FIELD_TEMPLATES,
    FIELD_TYPES,
    default_properties,
    instantiate,
    is_upload_type,
    legal_properties,
)


def test_catalog_covers_every_type():
    assert set(FIELD_TYPES) == set(FIELD_TEMPLATES)
    assert len(FIELD_TYPES) == 12


def test_instantiate_generates_unique_ids():
    first = instantiate("textInput")
    second = instantiate("textInput")
    assert first["id"] != second["id"]
    assert len(first["id"]) == 26
    assert first["type"] == "textInput"
    assert first["label"] == "Text Input"
    assert first["required"] is False
    assert first["gridColumn"] == "full"


def test_instantiate_unknown_type():
    assert instantiate("sparkles") is None
    assert instantiate(None) is None


def test_default_properties_are_copies():
    first = default_properties("radio")
    first["options"].append({"label": "x", "value": "x"})
    assert len(default_properties("radio")["options"]) == 3


def test_banner_defaults():
    banner = instantiate("bannerUpload")
    assert banner["position"] == "left"
    assert banner["canUpload"] is True
    assert banner["canDownload"] is False


def test_legal_properties():
    assert "options" in legal_properties("select")
    assert "options" not in legal_properties("textInput")
    assert {"id", "type", "label", "gridColumn"} <= legal_properties("date")
    assert legal_properties("sparkles") == frozenset()


def test_upload_types():
    assert is_upload_type("fileUpload")
    assert is_upload_type("mediaUpload")
    assert is_upload_type("bannerUpload")
    assert not is_upload_type("textInput")
