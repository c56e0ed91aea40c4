from dataclasses import dataclass

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.otel import panel_for_path


@dataclass
class RequestContext:
    request_id: str
    correlation_id: str
    actor_id: str | None
    actor_type: str | None
    panel: str | None


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = getattr(request.state, "correlation_id", None)
        request.state.context = RequestContext(
            request_id=correlation_id or "",
            correlation_id=correlation_id or "",
            actor_id=None,
            actor_type=None,
            panel=panel_for_path(request.url.path),
        )
        response = await call_next(request)
        response.headers["x-request-id"] = request.state.context.request_id
        return response
