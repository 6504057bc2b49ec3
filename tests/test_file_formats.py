import pytest

from formcraft.file_formats import (
    decode_data_url,
    encode_data_url,
    matches_accept,
    remove_stored_files,
    resolve_content_type,
    store_upload,
    upload_rejection,
)


def test_resolve_content_type():
    assert resolve_content_type("IMAGE/PNG", "a.png") == "image/png"
    assert resolve_content_type("application/octet-stream", "a.pdf") == "application/pdf"
    assert resolve_content_type(None, "noext") == "application/octet-stream"


@pytest.mark.parametrize(
    "content_type,filename,accept,expected",
    [
        ("image/png", "a.png", "image/*", True),
        ("application/pdf", "a.pdf", "image/*", False),
        ("application/pdf", "a.pdf", "image/*,application/pdf", True),
        ("application/msword", "a.doc", ".doc,.docx", True),
        ("video/mp4", "a.mp4", "", True),
    ],
)
def test_matches_accept(content_type, filename, accept, expected):
    assert matches_accept(content_type, filename, accept) is expected


def test_upload_rejection():
    field = {"allowedTypes": "image/*", "maxFileSize": 1}
    assert upload_rejection(field, "image/png", "a.png", 10, None) is None
    assert "not supported" in upload_rejection(field, "text/html", "a.html", 10, None)
    assert "not allowed" in upload_rejection(field, "application/pdf", "a.pdf", 10, None)
    assert "1MB" in upload_rejection(field, "image/png", "a.png", 2 * 1024 * 1024, None)
    assert "maximum upload size" in upload_rejection(None, "image/png", "a.png", 11, 10)


def test_data_urls():
    url = encode_data_url("image/gif", b"GIF89a")
    assert decode_data_url(url) == ("image/gif", b"GIF89a")
    assert decode_data_url("data:,hello%20world") == ("text/plain", b"hello world")
    with pytest.raises(ValueError):
        decode_data_url("http://example.com/a.png")
    with pytest.raises(ValueError):
        decode_data_url("data:image/png;base64,@@@")


def test_store_and_remove(tmp_path):
    path = store_upload(tmp_path, "01ABC", "../../evil.PNG", b"x")
    assert path == tmp_path / "01ABC.png"
    assert path.read_bytes() == b"x"
    outside = tmp_path.parent / "outside.txt"
    outside.write_text("keep")
    remove_stored_files(tmp_path, [str(path), str(outside)])
    assert not path.exists()
    assert outside.exists()
