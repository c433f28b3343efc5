"""
api/responses.py -- Builders for the {success, message, data?} response envelope.

Routes return success_response(); api/main.py exception handlers return
error_response(). Both go through the pydantic envelope models so the wire
shape is defined in exactly one place (api/models.py).
"""

from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse

from api.models import Envelope, ErrorEnvelope


def success_response(message: str, data: dict[str, Any] | None = None, status_code: int = 200) -> JSONResponse:
    body = Envelope(success=True, message=message, data=data).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body)


def error_response(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorEnvelope(message=message, code=code).model_dump(),
    )
