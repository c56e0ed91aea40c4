from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

module_access_denied_total = Counter(
    "module_access_denied_total",
    "Requests rejected by the module access gate",
    ["module", "method"],
)

scope_denied_reads_total = Counter(
    "scope_denied_reads_total",
    "Reads of records outside the actor's scope",
    ["entity_type", "actor_type"],
)

search_module_failures_total = Counter(
    "search_module_failures_total",
    "Global search modules that failed and were dropped from the result",
    ["module"],
)

crm_calls_total = Counter(
    "crm_calls_total",
    "Total CRM gateway calls by outcome",
    ["operation", "outcome"],
)

crm_call_duration_seconds = Histogram(
    "crm_call_duration_seconds",
    "CRM gateway call duration in seconds",
    ["operation"],
)

housekeeping_jobs_total = Counter(
    "housekeeping_jobs_total",
    "Total housekeeping job runs by status",
    ["job_type", "status"],
)

housekeeping_job_duration_seconds = Histogram(
    "housekeeping_job_duration_seconds",
    "Housekeeping job duration in seconds",
    ["job_type"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    # Module names are a closed set, keep them as distinct labels.
    if "{module}" in path:
        return _PATH_PARAM_RE.sub(lambda match: match.group(0) if match.group(0) == "{module}" else "{id}", path)
    return _PATH_PARAM_RE.sub("{id}", path)


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _normalize_route_template(route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_module_access_denied(module: str, method: str) -> None:
    module_access_denied_total.labels(module=module, method=method).inc()


def observe_scope_denied_read(entity_type: str, actor_type: str) -> None:
    scope_denied_reads_total.labels(entity_type=entity_type, actor_type=actor_type).inc()


def observe_search_module_failure(module: str) -> None:
    search_module_failures_total.labels(module=module).inc()


def observe_crm_call(operation: str, outcome: str, duration: float) -> None:
    crm_calls_total.labels(operation=operation, outcome=outcome).inc()
    crm_call_duration_seconds.labels(operation=operation).observe(duration)


def observe_housekeeping_job(job_type: str, status: str, duration: float) -> None:
    housekeeping_jobs_total.labels(job_type=job_type, status=status).inc()
    housekeeping_job_duration_seconds.labels(job_type=job_type).observe(duration)


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
