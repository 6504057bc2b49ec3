from __future__ import annotations

from typing import Any

import orjson
from fastapi import HTTPException, Request


def validation_error(errors: list[dict[str, str]], message: str = "Validation error") -> HTTPException:
    return HTTPException(status_code=400, detail={"message": message, "errors": errors})


async def read_json_object(request: Request) -> dict[str, Any]:
    body = await request.body()
    try:
        payload = orjson.loads(body) if body else {}
    except orjson.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Request body is not valid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return payload
