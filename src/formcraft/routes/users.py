from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from formcraft.auth import require_super_admin
from formcraft.routes.auth import create_admin_user
from formcraft.routes.common import read_json_object
from formcraft.schema import user_output

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/api/users", tags=["users"])
async def list_users(
    request: Request, _: dict[str, Any] = Depends(require_super_admin)
) -> JSONResponse:
    users = request.app.state.storage.users.list_users()
    return JSONResponse([user_output(user) for user in users])


@router.post("/api/users/admin", tags=["users"])
async def create_admin(
    request: Request, _: dict[str, Any] = Depends(require_super_admin)
) -> JSONResponse:
    payload = await read_json_object(request)
    user = create_admin_user(request, payload)
    return JSONResponse(user_output(user), status_code=201)


@router.delete("/api/users/{user_id}", tags=["users"])
async def delete_user(
    request: Request,
    user_id: str,
    current: dict[str, Any] = Depends(require_super_admin),
) -> Response:
    storage = request.app.state.storage
    if user_id == current["id"]:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    if not storage.users.get_user(user_id):
        raise HTTPException(status_code=404, detail="User not found")
    storage.users.delete_user(user_id)
    logger.info("User %s deleted by %s", user_id, current["username"])
    return Response(status_code=204)
