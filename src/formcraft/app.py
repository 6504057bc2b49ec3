from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from formcraft.auth import ensure_super_admin, get_auth_provider
from formcraft.config import Settings
from formcraft.protocols import StorageError
from formcraft.routes.auth import router as auth_router
from formcraft.routes.forms import router as forms_router
from formcraft.routes.public import router as public_router
from formcraft.routes.submissions import router as submissions_router
from formcraft.routes.users import router as users_router
from formcraft.storage import init_storage

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()
    storage = init_storage(settings)
    auth = get_auth_provider(settings)
    ensure_super_admin(storage, auth, settings)

    app = FastAPI(
        title="FormCraft",
        openapi_tags=[
            {"name": "auth", "description": "Registration and login"},
            {"name": "users", "description": "User management (super admin)"},
            {"name": "forms", "description": "Form builder API"},
            {"name": "public", "description": "Published forms"},
            {"name": "submissions", "description": "Submissions and uploads"},
            {"name": "system", "description": "System"},
        ],
    )

    app.state.storage = storage
    app.state.settings = settings
    app.state.auth_provider = auth

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        logger.error("Storage error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": "Storage error"})

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception", exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})

    @app.get("/healthz", tags=["system"])
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(forms_router)
    app.include_router(public_router)
    app.include_router(submissions_router)

    return app
