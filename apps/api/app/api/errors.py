from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.context import get_correlation_id
from app.crm.gateway import CrmGatewayError
from app.platform.security.errors import AuthorizationError
from app.risk.columns import UnknownColumnError
from app.risk.listings import UnsupportedListingError
from app.risk.notes import UnknownNoteTargetError
from app.risk.schemas import ErrorEnvelope
from app.risk.search import UnknownEntityTypeError


logger = logging.getLogger("app.api.errors")


def error_response(
    request: Request,
    *,
    status_code: int,
    message: str,
    message_code: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    payload = ErrorEnvelope(message_code=message_code, message=message, correlation_id=correlation_id)
    return JSONResponse(
        status_code=status_code,
        content=payload.model_dump(by_alias=True, exclude_none=True),
        headers=headers,
    )


def _http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail: Any = exc.detail
    if isinstance(detail, dict):
        return error_response(
            request,
            status_code=exc.status_code,
            message=str(detail.get("message", "")),
            message_code=detail.get("messageCode"),
            headers=exc.headers,
        )
    return error_response(request, status_code=exc.status_code, message=str(detail), headers=exc.headers)


def _validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"
    return error_response(
        request,
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message=message,
        message_code="VALIDATION_ERROR",
    )


def _authorization_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    return error_response(
        request,
        status_code=status.HTTP_403_FORBIDDEN,
        message=str(exc),
        message_code="ACCESS_DENIED",
    )


def _bad_request_handler(request: Request, exc: ValueError) -> JSONResponse:
    return error_response(
        request,
        status_code=status.HTTP_400_BAD_REQUEST,
        message=str(exc),
        message_code="BAD_REQUEST",
    )


def _crm_gateway_handler(request: Request, exc: CrmGatewayError) -> JSONResponse:
    logger.warning("crm_write_failed", extra={"operation": exc.operation, "error": str(exc)[:500]})
    return error_response(
        request,
        status_code=status.HTTP_502_BAD_GATEWAY,
        message="The CRM could not complete the request",
        message_code="CRM_UNAVAILABLE",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(AuthorizationError, _authorization_handler)  # type: ignore[arg-type]
    app.add_exception_handler(CrmGatewayError, _crm_gateway_handler)  # type: ignore[arg-type]
    for error_type in (UnknownColumnError, UnknownEntityTypeError, UnknownNoteTargetError, UnsupportedListingError):
        app.add_exception_handler(error_type, _bad_request_handler)  # type: ignore[arg-type]
