from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
import re
from pathlib import Path
from typing import Any, Iterable
from urllib.parse import unquote_to_bytes

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset(
    {
        "image/png",
        "image/jpeg",
        "image/jpg",
        "image/gif",
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "audio/mpeg",
        "audio/mp3",
        "audio/wav",
        "audio/x-wav",
        "video/mp4",
        "video/quicktime",
        "video/x-msvideo",
    }
)

MEGABYTE = 1024 * 1024

DATA_URL_PATTERN = re.compile(r"^data:(?P<type>[\w.+-]+/[\w.+-]+)?(?:;[^,;]*)*?(?P<b64>;base64)?,(?P<data>.*)$", re.DOTALL)
SAFE_SUFFIX = re.compile(r"^\.[A-Za-z0-9]{1,10}$")


def resolve_content_type(content_type: str | None, filename: str | None) -> str:
    if content_type and content_type != "application/octet-stream":
        return content_type.lower()
    guessed, _ = mimetypes.guess_type(filename or "")
    return (guessed or content_type or "application/octet-stream").lower()


def parse_accept(accept: Any) -> list[str]:
    if not isinstance(accept, str):
        return []
    return [item.strip().lower() for item in accept.split(",") if item.strip()]


def matches_accept(content_type: str, filename: str, accept: Any) -> bool:
    patterns = parse_accept(accept)
    if not patterns:
        return True
    suffix = Path(filename or "").suffix.lower()
    for pattern in patterns:
        if pattern.startswith("."):
            if suffix == pattern:
                return True
        elif pattern.endswith("/*"):
            if content_type.startswith(pattern[:-1]):
                return True
        elif content_type == pattern:
            return True
    return False


def upload_rejection(
    field: dict[str, Any] | None,
    content_type: str,
    filename: str,
    size: int,
    max_bytes: int | None,
) -> str | None:
    """Return why an upload is not acceptable, or None when it is."""
    if content_type not in ALLOWED_MIME_TYPES:
        return f"File type not supported ({content_type})"
    if max_bytes is not None and size > max_bytes:
        return "File exceeds the maximum upload size"
    if field is None:
        return None
    if not matches_accept(content_type, filename, field.get("allowedTypes")):
        return f"File type not allowed for this field ({content_type})"
    max_mb = field.get("maxFileSize")
    if isinstance(max_mb, (int, float)) and max_mb > 0 and size > max_mb * MEGABYTE:
        return f"File exceeds {max_mb}MB"
    return None


def decode_data_url(data_url: str) -> tuple[str, bytes]:
    match = DATA_URL_PATTERN.match(data_url or "")
    if not match:
        raise ValueError("not a data URL")
    content_type = (match.group("type") or "text/plain").lower()
    data = match.group("data")
    if match.group("b64"):
        try:
            return content_type, base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("invalid base64 payload") from exc
    return content_type, unquote_to_bytes(data)


def encode_data_url(content_type: str, content: bytes) -> str:
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{content_type};base64,{encoded}"


def store_upload(upload_dir: Path, file_id: str, filename: str, content: bytes) -> Path:
    suffix = Path(filename or "").suffix.lower()
    if not SAFE_SUFFIX.match(suffix):
        suffix = ""
    destination = upload_dir / f"{file_id}{suffix}"
    destination.write_bytes(content)
    return destination


def is_inside(upload_dir: Path, path: Path) -> bool:
    return upload_dir.resolve() in path.resolve().parents


def remove_stored_files(upload_dir: Path, paths: Iterable[str]) -> None:
    for raw in paths:
        path = Path(raw)
        if not is_inside(upload_dir, path):
            logger.warning("Refusing to remove file outside upload dir: %s", path)
            continue
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.exception("Failed to remove stored file %s", path)
