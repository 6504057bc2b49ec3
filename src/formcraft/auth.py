from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from formcraft.config import Settings
from formcraft.protocols import Storage
from formcraft.utils import new_ulid, now_utc

logger = logging.getLogger(__name__)

JWT_ALG = "HS256"

security = HTTPBearer(auto_error=False)


class AuthProvider:
    def __init__(self, settings: Settings) -> None:
        self._secret = settings.jwt_secret
        self._expires = timedelta(days=settings.jwt_expire_days)
        self._pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=settings.bcrypt_rounds,
        )

    def hash_password(self, password: str) -> str:
        return self._pwd_context.hash(password)

    def verify_password(self, password: str, password_hash: str) -> bool:
        try:
            return self._pwd_context.verify(password, password_hash)
        except ValueError:
            return False

    def create_token(self, user_id: str) -> str:
        payload = {"id": user_id, "exp": now_utc() + self._expires}
        return jwt.encode(payload, self._secret, algorithm=JWT_ALG)

    def decode_token(self, token: str) -> dict[str, Any] | None:
        try:
            return jwt.decode(token, self._secret, algorithms=[JWT_ALG])
        except JWTError:
            return None


def get_auth_provider(settings: Settings) -> AuthProvider:
    return AuthProvider(settings)


def create_user_record(
    storage: Storage,
    auth: AuthProvider,
    username: str,
    email: str,
    password: str,
    role: str = "admin",
) -> dict[str, Any]:
    return storage.users.create_user(
        {
            "id": new_ulid(),
            "username": username,
            "email": email,
            "password_hash": auth.hash_password(password),
            "role": role,
            "created_at": now_utc(),
        }
    )


def ensure_super_admin(storage: Storage, auth: AuthProvider, settings: Settings) -> None:
    if not settings.seed_super_admin or storage.users.count_users() > 0:
        return
    create_user_record(
        storage,
        auth,
        settings.default_admin_username,
        settings.default_admin_email,
        settings.default_admin_password,
        role="super_admin",
    )
    logger.info("Created default super admin %s", settings.default_admin_username)


def get_current_user(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict[str, Any]:
    if not creds or not creds.credentials:
        raise HTTPException(status_code=401, detail="Authentication required")
    auth: AuthProvider = request.app.state.auth_provider
    payload = auth.decode_token(creds.credentials)
    if not payload or not payload.get("id"):
        raise HTTPException(status_code=401, detail="Invalid token")
    user = request.app.state.storage.users.get_user(str(payload["id"]))
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def require_super_admin(user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    if user.get("role") != "super_admin":
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    return user


def can_access_form(user: dict[str, Any], form: dict[str, Any]) -> bool:
    return user.get("role") == "super_admin" or form.get("user_id") == user.get("id")


def get_accessible_form(storage: Storage, user: dict[str, Any], form_id: str) -> dict[str, Any]:
    form = storage.forms.get_form(form_id)
    if not form:
        raise HTTPException(status_code=404, detail="Form not found")
    if not can_access_form(user, form):
        raise HTTPException(status_code=403, detail="Access denied")
    return form
