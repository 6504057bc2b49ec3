from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent

DEFAULT_UPLOAD_MAX_BYTES = 10 * 1024 * 1024


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Settings:
    def __init__(self) -> None:
        self.storage_backend = os.getenv("STORAGE_BACKEND", "sqlite").lower()
        self.database_url = os.getenv("DATABASE_URL", "")
        self.sqlite_path = Path(os.getenv("SQLITE_PATH", "./data/formcraft.db"))
        self.json_path = Path(os.getenv("JSON_PATH", "./data/formcraft.json"))
        self.upload_dir = Path(os.getenv("UPLOAD_DIR", "./data/uploads"))
        self.upload_max_bytes = _env_int("UPLOAD_MAX_BYTES", DEFAULT_UPLOAD_MAX_BYTES)

        self.jwt_secret = os.getenv("JWT_SECRET", "formbuilder-secret-key")
        self.jwt_expire_days = _env_int("JWT_EXPIRE_DAYS", 30)
        self.bcrypt_rounds = _env_int("BCRYPT_ROUNDS", 10)

        self.seed_super_admin = os.getenv("SEED_SUPER_ADMIN", "1").lower() not in {"0", "false", "no"}
        self.default_admin_username = os.getenv("DEFAULT_ADMIN_USERNAME", "admin")
        self.default_admin_email = os.getenv("DEFAULT_ADMIN_EMAIL", "admin@example.com")
        self.default_admin_password = os.getenv("DEFAULT_ADMIN_PASSWORD", "admin123")

        self.host = os.getenv("HOST", "0.0.0.0")
        self.port = _env_int("PORT", 8000)
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            url = self.database_url
            if url.startswith("postgres://"):
                url = url.replace("postgres://", "postgresql://", 1)
            return url
        return f"sqlite:///{self.sqlite_path}"


def ensure_dirs(settings: Settings) -> None:
    if not settings.database_url:
        settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
    settings.json_path.parent.mkdir(parents=True, exist_ok=True)
    settings.upload_dir.mkdir(parents=True, exist_ok=True)
