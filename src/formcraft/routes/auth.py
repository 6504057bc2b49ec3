from __future__ import annotations

import logging
import re
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from formcraft.auth import create_user_record, get_current_user
from formcraft.fields import EMAIL_PATTERN
from formcraft.protocols import StorageError
from formcraft.routes.common import read_json_object, validation_error
from formcraft.schema import user_output

logger = logging.getLogger(__name__)

router = APIRouter()

EMAIL_RE = re.compile(EMAIL_PATTERN)
MIN_PASSWORD_LENGTH = 6


def parse_user_payload(payload: dict[str, Any]) -> tuple[str, str, str]:
    username = str(payload.get("username") or "").strip()
    email = str(payload.get("email") or "").strip().lower()
    password = payload.get("password")
    errors: list[dict[str, str]] = []
    if not username:
        errors.append({"field": "username", "message": "username is required"})
    if not EMAIL_RE.match(email):
        errors.append({"field": "email", "message": "a valid email is required"})
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        errors.append(
            {
                "field": "password",
                "message": f"password must be at least {MIN_PASSWORD_LENGTH} characters",
            }
        )
    if errors:
        raise validation_error(errors)
    return username, email, password


def create_admin_user(request: Request, payload: dict[str, Any]) -> dict[str, Any]:
    """Create a user with role ``admin`` after uniqueness checks."""
    storage = request.app.state.storage
    username, email, password = parse_user_payload(payload)
    if storage.users.get_user_by_username(username):
        raise HTTPException(status_code=400, detail="Username already taken")
    if storage.users.get_user_by_email(email):
        raise HTTPException(status_code=400, detail="Email already registered")
    try:
        user = create_user_record(
            storage, request.app.state.auth_provider, username, email, password, role="admin"
        )
    except StorageError:
        # A concurrent registration won the unique index.
        raise HTTPException(status_code=400, detail="Username or email already registered")
    logger.info("Created user %s", username)
    return user


@router.post("/api/auth/register", tags=["auth"])
async def register(request: Request) -> JSONResponse:
    payload = await read_json_object(request)
    user = create_admin_user(request, payload)
    token = request.app.state.auth_provider.create_token(user["id"])
    return JSONResponse({"user": user_output(user), "token": token}, status_code=201)


@router.post("/api/auth/login", tags=["auth"])
async def login(request: Request) -> JSONResponse:
    storage = request.app.state.storage
    auth = request.app.state.auth_provider
    payload = await read_json_object(request)
    username = str(payload.get("username") or "").strip()
    password = payload.get("password")
    user = storage.users.get_user_by_username(username) if username else None
    if not user or not isinstance(password, str) or not auth.verify_password(
        password, user["password_hash"]
    ):
        raise HTTPException(status_code=400, detail="Invalid username or password")
    return JSONResponse({"user": user_output(user), "token": auth.create_token(user["id"])})


@router.get("/api/auth/me", tags=["auth"])
async def me(user: dict[str, Any] = Depends(get_current_user)) -> JSONResponse:
    return JSONResponse(user_output(user))
