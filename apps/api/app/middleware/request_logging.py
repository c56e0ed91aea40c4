from __future__ import annotations

import logging
import time
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.metrics import observe_http_request, resolve_http_path_label


logger = logging.getLogger("app.request")


def _actor_fields(request: Request) -> dict[str, Any]:
    context = getattr(request.state, "context", None)
    if context is None:
        return {}
    fields = {"panel": context.panel, "actor_id": context.actor_id, "actor_type": context.actor_type}
    return {key: value for key, value in fields.items() if value is not None}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One structured line per request, labelled by route template rather than raw path."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        method = request.method
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration = time.perf_counter() - started
            path = resolve_http_path_label(request)
            observe_http_request(method=method, path=path, status=500, duration=duration)
            logger.error(
                "http.error",
                exc_info=True,
                extra={
                    "method": method,
                    "path": path,
                    "status_code": 500,
                    "duration_ms": round(duration * 1000, 2),
                    **_actor_fields(request),
                },
            )
            raise

        duration = time.perf_counter() - started
        # the route is only matched once the downstream app has run
        path = resolve_http_path_label(request)
        observe_http_request(method=method, path=path, status=response.status_code, duration=duration)
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "http.request",
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": round(duration * 1000, 2),
                **_actor_fields(request),
            },
        )
        return response
