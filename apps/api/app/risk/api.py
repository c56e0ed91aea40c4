from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.crm.gateway import CrmSyncGateway
from app.platform.security.context import AuthContext
from app.platform.security.policies import AccessPolicy
from app.risk.catalog import ModuleCatalog, ModuleName, get_catalog
from app.risk.claims import ClaimsService
from app.risk.columns import column_projection_engine
from app.risk.credit_limits import decide_endorsed_limit
from app.risk.dashboard import dashboard_aggregator
from app.risk.deps import (
    ModuleGrant,
    get_access_policy,
    get_client_actor,
    get_crm_gateway,
    get_repositories,
    get_risk_actor,
    get_search_aggregator,
    require_module,
)
from app.risk.listings import ListingService
from app.risk.notes import NoteService, target_module
from app.risk.preferences import column_preference_store
from app.risk.repositories import Repositories
from app.risk.schemas import (
    ColumnSelectionRead,
    ColumnUpdateRequest,
    DashboardRead,
    EndorsedLimitCheckRead,
    EndorsedLimitCheckRequest,
    ListPage,
    ListQuery,
    SuccessResponse,
)
from app.risk.search import SearchAggregator, entity_module


risk_router = APIRouter(prefix="/api/risk", tags=["risk"])
client_router = APIRouter(prefix="/api/client", tags=["client"])


def list_query(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=500),
    sort_by: str | None = Query(default=None, alias="sortBy"),
    sort_order: str = Query(default="desc", alias="sortOrder", pattern="^(asc|desc)$"),
    search: str | None = Query(default=None),
    start_date: date | None = Query(default=None, alias="startDate"),
    end_date: date | None = Query(default=None, alias="endDate"),
) -> ListQuery:
    return ListQuery(
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
        search=search,
        start_date=start_date,
        end_date=end_date,
    )


def _require_search_string(search_string: str | None) -> str:
    if not search_string or not search_string.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"messageCode": "REQUIRE_FIELD_MISSING", "message": "Require fields are missing."},
        )
    return search_string.strip()


def _not_found(entity: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"messageCode": "NOT_FOUND", "message": f"No {entity} found"},
    )


def _ensure_client_visible(db: Session, repos: Repositories, ctx: AuthContext, grant: ModuleGrant, client_id: uuid.UUID) -> None:
    if repos.clients.get_visible(db, ctx, grant.access, client_id) is None:
        raise _not_found("client")


def _entity_search(
    request: Request,
    db: Session,
    ctx: AuthContext,
    policy: AccessPolicy,
    aggregator: SearchAggregator,
    entity_type: str,
    search_string: str | None,
    page: int,
    limit: int,
) -> Any:
    module = entity_module(entity_type)
    policy.check_module_access(ctx, module, request.method, request.url.path)
    return aggregator.entity_search(db, ctx, entity_type, search_string, page=page, limit=limit)


def _module_catalog(module: str) -> ModuleCatalog:
    catalog = get_catalog(module)
    if catalog is None:
        raise _not_found("column catalog")
    return catalog


def _get_columns(request: Request, ctx: AuthContext, policy: AccessPolicy, module: str) -> ColumnSelectionRead:
    catalog = _module_catalog(module)
    policy.check_module_access(ctx, module, request.method, request.url.path)
    resolved = column_projection_engine.resolve_columns(catalog, ctx.column_preferences.get(catalog.name))
    return ColumnSelectionRead.model_validate(resolved)


def _update_columns(
    request: Request,
    db: Session,
    ctx: AuthContext,
    policy: AccessPolicy,
    module: str,
    dto: ColumnUpdateRequest,
) -> ColumnSelectionRead:
    catalog = _module_catalog(module)
    policy.check_module_access(ctx, module, request.method, request.url.path)
    if not dto.is_reset and not dto.columns:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"messageCode": "REQUIRE_FIELD_MISSING", "message": "Require fields are missing."},
        )
    column_preference_store.update_columns(db, ctx, catalog, dto.columns, is_reset=dto.is_reset)
    db.commit()
    resolved = column_projection_engine.resolve_columns(catalog, ctx.column_preferences.get(catalog.name))
    return ColumnSelectionRead.model_validate(resolved)


def _check_endorsed_limit(db: Session, client_id: uuid.UUID, dto: EndorsedLimitCheckRequest) -> EndorsedLimitCheckRead:
    on_date = dto.on_date or datetime.now(timezone.utc).date()
    decision = decide_endorsed_limit(db, client_id, dto.credit_limit, on_date)
    return EndorsedLimitCheckRead(
        client_id=client_id,
        credit_limit=dto.credit_limit,
        is_endorsed_limit=decision.is_endorsed_limit,
        discretionary_limit=decision.discretionary_limit,
    )


def _list_notes(
    request: Request,
    db: Session,
    ctx: AuthContext,
    policy: AccessPolicy,
    repos: Repositories,
    note_for: str,
    entity_id: uuid.UUID,
    page: int,
    limit: int,
) -> dict[str, Any]:
    module = target_module(note_for)
    policy.check_module_access(ctx, module, request.method, request.url.path)
    access = policy.resolve_access(ctx, module)
    return NoteService(repos).list_notes(db, ctx, access, note_for, entity_id, page=page, limit=limit)


# Risk panel


@risk_router.get("/search", response_model=SuccessResponse[list[dict[str, Any]]])
def risk_global_search(
    search_string: str | None = Query(default=None, alias="searchString"),
    ctx: AuthContext = Depends(get_risk_actor),
    aggregator: SearchAggregator = Depends(get_search_aggregator),
) -> SuccessResponse[list[dict[str, Any]]]:
    return SuccessResponse(data=aggregator.global_search(ctx, _require_search_string(search_string)))


@risk_router.get("/entity-search/{entity_type}", response_model=SuccessResponse[Any])
def risk_entity_search(
    request: Request,
    entity_type: str,
    search_string: str | None = Query(default=None, alias="searchString"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_risk_actor),
    policy: AccessPolicy = Depends(get_access_policy),
    aggregator: SearchAggregator = Depends(get_search_aggregator),
) -> SuccessResponse[Any]:
    data = _entity_search(request, db, ctx, policy, aggregator, entity_type, search_string, page, limit)
    return SuccessResponse(data=data)


@risk_router.get("/dashboard/{client_id}", response_model=SuccessResponse[DashboardRead])
def risk_client_dashboard(
    client_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_risk_actor),
    grant: ModuleGrant = Depends(require_module(ModuleName.CLIENT, get_risk_actor)),
    repos: Repositories = Depends(get_repositories),
) -> SuccessResponse[DashboardRead]:
    _ensure_client_visible(db, repos, ctx, grant, client_id)
    return SuccessResponse(data=dashboard_aggregator.client_dashboard(db, client_id))


@risk_router.get("/{module}/column-name", response_model=SuccessResponse[ColumnSelectionRead])
def risk_get_columns(
    request: Request,
    module: str,
    ctx: AuthContext = Depends(get_risk_actor),
    policy: AccessPolicy = Depends(get_access_policy),
) -> SuccessResponse[ColumnSelectionRead]:
    return SuccessResponse(data=_get_columns(request, ctx, policy, module))


@risk_router.put("/{module}/column-name", response_model=SuccessResponse[ColumnSelectionRead])
def risk_update_columns(
    request: Request,
    module: str,
    dto: ColumnUpdateRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_risk_actor),
    policy: AccessPolicy = Depends(get_access_policy),
) -> SuccessResponse[ColumnSelectionRead]:
    return SuccessResponse(data=_update_columns(request, db, ctx, policy, module, dto))


@risk_router.get("/client", response_model=SuccessResponse[ListPage])
def risk_list_clients(
    query: ListQuery = Depends(list_query),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_risk_actor),
    grant: ModuleGrant = Depends(require_module(ModuleName.CLIENT, get_risk_actor)),
    repos: Repositories = Depends(get_repositories),
) -> SuccessResponse[ListPage]:
    page = ListingService(repos).list_module(db, ctx, ModuleName.CLIENT, grant.access, query)
    return SuccessResponse(data=ListPage(**page))


@risk_router.get("/application", response_model=SuccessResponse[ListPage])
def risk_list_applications(
    client_id: uuid.UUID | None = Query(default=None, alias="clientId"),
    query: ListQuery = Depends(list_query),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_risk_actor),
    grant: ModuleGrant = Depends(require_module(ModuleName.APPLICATION, get_risk_actor)),
    repos: Repositories = Depends(get_repositories),
) -> SuccessResponse[ListPage]:
    if client_id is not None:
        _ensure_client_visible(db, repos, ctx, grant, client_id)
    page = ListingService(repos).list_module(db, ctx, ModuleName.APPLICATION, grant.access, query, client_id=client_id)
    return SuccessResponse(data=ListPage(**page))


@risk_router.get("/debtor", response_model=SuccessResponse[ListPage])
def risk_list_debtors(
    query: ListQuery = Depends(list_query),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_risk_actor),
    grant: ModuleGrant = Depends(require_module(ModuleName.DEBTOR, get_risk_actor)),
    repos: Repositories = Depends(get_repositories),
) -> SuccessResponse[ListPage]:
    page = ListingService(repos).list_module(db, ctx, ModuleName.DEBTOR, grant.access, query)
    return SuccessResponse(data=ListPage(**page))


@risk_router.get("/claim", response_model=SuccessResponse[ListPage])
def risk_list_claims(
    client_id: uuid.UUID | None = Query(default=None, alias="clientId"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_risk_actor),
    grant: ModuleGrant = Depends(require_module(ModuleName.CLAIM, get_risk_actor)),
    repos: Repositories = Depends(get_repositories),
    gateway: CrmSyncGateway = Depends(get_crm_gateway),
) -> SuccessResponse[ListPage]:
    if client_id is not None:
        _ensure_client_visible(db, repos, ctx, grant, client_id)
    result = ClaimsService(repos, gateway).list_claims(db, ctx, grant.access, page=page, limit=limit, client_id=client_id)
    return SuccessResponse(data=ListPage(**result))


@risk_router.post("/application/check-endorsed-limit", response_model=SuccessResponse[EndorsedLimitCheckRead])
def risk_check_endorsed_limit(
    dto: EndorsedLimitCheckRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_risk_actor),
    grant: ModuleGrant = Depends(require_module(ModuleName.APPLICATION, get_risk_actor)),
    repos: Repositories = Depends(get_repositories),
) -> SuccessResponse[EndorsedLimitCheckRead]:
    if dto.client_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"messageCode": "REQUIRE_FIELD_MISSING", "message": "Require fields are missing."},
        )
    _ensure_client_visible(db, repos, ctx, grant, dto.client_id)
    return SuccessResponse(data=_check_endorsed_limit(db, dto.client_id, dto))


@risk_router.get("/note/{note_for}/{entity_id}", response_model=SuccessResponse[ListPage])
def risk_list_notes(
    request: Request,
    note_for: str,
    entity_id: uuid.UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_risk_actor),
    policy: AccessPolicy = Depends(get_access_policy),
    repos: Repositories = Depends(get_repositories),
) -> SuccessResponse[ListPage]:
    result = _list_notes(request, db, ctx, policy, repos, note_for, entity_id, page, limit)
    return SuccessResponse(data=ListPage(**result))


# Client panel


@client_router.get("/search", response_model=SuccessResponse[list[dict[str, Any]]])
def client_global_search(
    search_string: str | None = Query(default=None, alias="searchString"),
    ctx: AuthContext = Depends(get_client_actor),
    aggregator: SearchAggregator = Depends(get_search_aggregator),
) -> SuccessResponse[list[dict[str, Any]]]:
    return SuccessResponse(data=aggregator.global_search(ctx, _require_search_string(search_string)))


@client_router.get("/entity-search/{entity_type}", response_model=SuccessResponse[Any])
def client_entity_search(
    request: Request,
    entity_type: str,
    search_string: str | None = Query(default=None, alias="searchString"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_client_actor),
    policy: AccessPolicy = Depends(get_access_policy),
    aggregator: SearchAggregator = Depends(get_search_aggregator),
) -> SuccessResponse[Any]:
    data = _entity_search(request, db, ctx, policy, aggregator, entity_type, search_string, page, limit)
    return SuccessResponse(data=data)


@client_router.get("/dashboard", response_model=SuccessResponse[DashboardRead])
def client_dashboard(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_client_actor),
) -> SuccessResponse[DashboardRead]:
    return SuccessResponse(data=dashboard_aggregator.client_dashboard(db, ctx.client_id))


@client_router.get("/{module}/column-name", response_model=SuccessResponse[ColumnSelectionRead])
def client_get_columns(
    request: Request,
    module: str,
    ctx: AuthContext = Depends(get_client_actor),
    policy: AccessPolicy = Depends(get_access_policy),
) -> SuccessResponse[ColumnSelectionRead]:
    return SuccessResponse(data=_get_columns(request, ctx, policy, module))


@client_router.put("/{module}/column-name", response_model=SuccessResponse[ColumnSelectionRead])
def client_update_columns(
    request: Request,
    module: str,
    dto: ColumnUpdateRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_client_actor),
    policy: AccessPolicy = Depends(get_access_policy),
) -> SuccessResponse[ColumnSelectionRead]:
    return SuccessResponse(data=_update_columns(request, db, ctx, policy, module, dto))


@client_router.get("/application", response_model=SuccessResponse[ListPage])
def client_list_applications(
    query: ListQuery = Depends(list_query),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_client_actor),
    grant: ModuleGrant = Depends(require_module(ModuleName.APPLICATION, get_client_actor)),
    repos: Repositories = Depends(get_repositories),
) -> SuccessResponse[ListPage]:
    page = ListingService(repos).list_module(db, ctx, ModuleName.APPLICATION, grant.access, query)
    return SuccessResponse(data=ListPage(**page))


@client_router.get("/credit-limit", response_model=SuccessResponse[ListPage])
def client_list_credit_limits(
    query: ListQuery = Depends(list_query),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_client_actor),
    grant: ModuleGrant = Depends(require_module(ModuleName.CREDIT_LIMIT, get_client_actor)),
    repos: Repositories = Depends(get_repositories),
) -> SuccessResponse[ListPage]:
    page = ListingService(repos).list_module(db, ctx, ModuleName.CREDIT_LIMIT, grant.access, query)
    return SuccessResponse(data=ListPage(**page))


@client_router.get("/claim", response_model=SuccessResponse[ListPage])
def client_list_claims(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_client_actor),
    grant: ModuleGrant = Depends(require_module(ModuleName.CLAIM, get_client_actor)),
    repos: Repositories = Depends(get_repositories),
    gateway: CrmSyncGateway = Depends(get_crm_gateway),
) -> SuccessResponse[ListPage]:
    result = ClaimsService(repos, gateway).list_claims(db, ctx, grant.access, page=page, limit=limit)
    return SuccessResponse(data=ListPage(**result))


@client_router.post("/application/check-endorsed-limit", response_model=SuccessResponse[EndorsedLimitCheckRead])
def client_check_endorsed_limit(
    dto: EndorsedLimitCheckRequest,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_client_actor),
) -> SuccessResponse[EndorsedLimitCheckRead]:
    # A client user can only ever ask about its own tenant.
    return SuccessResponse(data=_check_endorsed_limit(db, ctx.client_id, dto))


@client_router.get("/note/{note_for}/{entity_id}", response_model=SuccessResponse[ListPage])
def client_list_notes(
    request: Request,
    note_for: str,
    entity_id: uuid.UUID,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(get_client_actor),
    policy: AccessPolicy = Depends(get_access_policy),
    repos: Repositories = Depends(get_repositories),
) -> SuccessResponse[ListPage]:
    result = _list_notes(request, db, ctx, policy, repos, note_for, entity_id, page, limit)
    return SuccessResponse(data=ListPage(**result))
