from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from app.core.auth import TokenClaims, get_token_claims
from app.core.config import get_settings
from app.metrics import generate_metrics_payload, metrics_content_type
from app.platform.security.context import AuthContext
from app.risk.api import client_router, risk_router
from app.risk.deps import get_current_actor

router = APIRouter()
router.include_router(risk_router)
router.include_router(client_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
def me(ctx: AuthContext = Depends(get_current_actor)) -> dict[str, Any]:
    return {
        "_id": str(ctx.user_id),
        "name": ctx.name,
        "actorType": ctx.actor_type.value,
        "clientId": str(ctx.client_id) if ctx.client_id else None,
        "role": ctx.role,
        "moduleAccess": [
            {"name": entry.name, "accessTypes": list(entry.access_types)} for entry in ctx.module_access
        ],
    }


@router.get("/metrics", tags=["system"])
def metrics(claims: TokenClaims = Depends(get_token_claims)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if "system.metrics.read" not in claims.roles:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Missing permission: system.metrics.read")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
