from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from app.api.errors import register_exception_handlers
from app.api.routes import router as api_router
from app.core.config import get_settings
from app.core.context import RequestContextMiddleware
from app.core.database import SessionLocal
from app.crm.gateway import build_crm_gateway
from app.logging import configure_logging
from app.middleware.correlation_id import CorrelationIdMiddleware
from app.middleware.request_logging import RequestLoggingMiddleware
from app.otel import get_fastapi_server_request_hook, setup_otel
from app.platform.security.policies import AccessPolicy
from app.risk.catalog import ModuleName
from app.risk.repositories import build_repositories
from app.risk.search import SearchAggregator


configure_logging()
logger = logging.getLogger("app.lifecycle")
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("service_started", extra={"operation": "startup"})
    yield
    logger.info("service_stopped", extra={"operation": "shutdown"})


app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
register_exception_handlers(app)
app.include_router(api_router)

app.state.repositories = build_repositories()
app.state.access_policy = AccessPolicy(module.value for module in ModuleName)
app.state.crm_gateway = build_crm_gateway(settings)
app.state.search_aggregator = SearchAggregator(
    app.state.repositories,
    app.state.access_policy,
    SessionLocal,
    max_workers=settings.search_fanout_workers,
    module_limit=settings.search_module_limit,
)

if settings.otel_enabled:
    setup_otel("risk-api", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
