from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.context import get_correlation_id
from app.core.auth import TokenClaims, get_token_claims
from app.core.database import get_db
from app.crm.gateway import CrmSyncGateway
from app.platform.security.context import (
    ActorType,
    AuthContext,
    parse_column_preferences,
    parse_module_access,
)
from app.platform.security.errors import AuthorizationError
from app.platform.security.policies import AccessLevel, AccessPolicy
from app.risk.catalog import ModuleName
from app.risk.models import ClientUser, User
from app.risk.repositories import Repositories
from app.risk.search import SearchAggregator


@dataclass(frozen=True)
class ModuleGrant:
    """Outcome of the module gate for one request."""

    module: ModuleName
    access: AccessLevel
    access_types: tuple[str, ...]


def get_repositories(request: Request) -> Repositories:
    return request.app.state.repositories


def get_access_policy(request: Request) -> AccessPolicy:
    return request.app.state.access_policy


def get_crm_gateway(request: Request) -> CrmSyncGateway:
    return request.app.state.crm_gateway


def get_search_aggregator(request: Request) -> SearchAggregator:
    return request.app.state.search_aggregator


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unknown or inactive actor",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_actor(
    request: Request,
    claims: TokenClaims = Depends(get_token_claims),
    db: Session = Depends(get_db),
) -> AuthContext:
    """Load the actor named by the token and build its per-request context."""

    try:
        actor_id = uuid.UUID(claims.sub)
    except ValueError:
        raise _unauthorized() from None
    correlation_id = get_correlation_id() or getattr(getattr(request.state, "context", None), "request_id", None)

    if claims.actor_type == ActorType.CLIENT_USER.value:
        client_user = db.get(ClientUser, actor_id)
        if client_user is None or client_user.is_deleted or not client_user.has_portal_access:
            raise _unauthorized()
        return AuthContext(
            user_id=client_user.id,
            actor_type=ActorType.CLIENT_USER,
            client_id=client_user.client_id,
            name=client_user.name,
            correlation_id=correlation_id,
            module_access=parse_module_access(client_user.module_access),
            column_preferences=parse_column_preferences(client_user.manage_columns),
        )

    if claims.actor_type != ActorType.USER.value:
        raise _unauthorized()
    user = db.get(User, actor_id)
    if user is None or user.is_deleted:
        raise _unauthorized()
    return AuthContext(
        user_id=user.id,
        actor_type=ActorType.USER,
        name=user.name,
        role=user.role,
        correlation_id=correlation_id,
        module_access=parse_module_access(user.module_access),
        column_preferences=parse_column_preferences(user.manage_columns),
    )


def get_risk_actor(ctx: AuthContext = Depends(get_current_actor)) -> AuthContext:
    if ctx.is_client_user:
        raise AuthorizationError("The risk panel is not available to client users")
    return ctx


def get_client_actor(ctx: AuthContext = Depends(get_current_actor)) -> AuthContext:
    if not ctx.is_client_user:
        raise AuthorizationError("The client panel is only available to client users")
    return ctx


def require_module(module: ModuleName, actor: Callable[..., AuthContext] = get_current_actor) -> Callable[..., ModuleGrant]:
    def dependency(
        request: Request,
        ctx: AuthContext = Depends(actor),
        policy: AccessPolicy = Depends(get_access_policy),
    ) -> ModuleGrant:
        granted = policy.check_module_access(ctx, module, request.method, request.url.path)
        return ModuleGrant(module=module, access=policy.resolve_access(ctx, module), access_types=tuple(granted))

    return dependency
