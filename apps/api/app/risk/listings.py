from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any

from pydantic.alias_generators import to_snake
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.platform.security.context import AuthContext
from app.platform.security.policies import AccessLevel
from app.risk.catalog import MODULES, ModuleName
from app.risk.columns import ColumnProjectionEngine, ReferenceResolver, column_projection_engine
from app.risk.models import Application, Client, ClientDebtor, Debtor, Insurer, Policy, Task, User
from app.risk.repositories import Repositories
from app.risk.schemas import ListQuery
from app.risk.search import paginate


_SEARCH_COLUMNS: dict[ModuleName, Any] = {
    ModuleName.USER: User.name,
    ModuleName.CLIENT: Client.name,
    ModuleName.INSURER: Insurer.name,
    ModuleName.DEBTOR: Debtor.entity_name,
    ModuleName.APPLICATION: Application.application_id,
    ModuleName.CREDIT_LIMIT: Debtor.entity_name,
    ModuleName.TASK: Task.description,
    ModuleName.POLICY: Policy.product,
}

_REPOSITORIES: dict[ModuleName, str] = {
    ModuleName.USER: "users",
    ModuleName.CLIENT: "clients",
    ModuleName.INSURER: "insurers",
    ModuleName.DEBTOR: "debtors",
    ModuleName.APPLICATION: "applications",
    ModuleName.CREDIT_LIMIT: "client_debtors",
    ModuleName.TASK: "tasks",
    ModuleName.POLICY: "policies",
}

_WINDOW_COLUMNS: dict[ModuleName, Any] = {
    ModuleName.APPLICATION: Application.request_date,
}


class UnsupportedListingError(ValueError):
    def __init__(self, module_name: str) -> None:
        self.module_name = module_name
        super().__init__(f"Module '{module_name}' has no listing")


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    return value


def _to_document(row: Any, column_names: tuple[str, ...]) -> dict[str, Any]:
    document: dict[str, Any] = {"_id": row.id}
    for name in column_names:
        document[name] = _json_value(getattr(row, to_snake(name), None))
    return document


def _day_start(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def _day_end(value: date) -> datetime:
    return datetime.combine(value, time.max, tzinfo=timezone.utc)


class ListingService:
    """Paginated, scoped module listings shaped by the actor's column selection."""

    def __init__(
        self,
        repositories: Repositories,
        projection: ColumnProjectionEngine = column_projection_engine,
    ) -> None:
        self.repositories = repositories
        self.projection = projection

    def reference_resolvers(self, session: Session) -> Mapping[str, ReferenceResolver]:
        repos = self.repositories

        def users(ids: Any) -> Mapping[Any, str]:
            return repos.users.display_names(session, ids)

        return {
            "clientId": lambda ids: repos.clients.display_names(session, ids),
            "debtorId": lambda ids: repos.debtors.display_names(session, ids),
            "insurerId": lambda ids: repos.insurers.display_names(session, ids),
            "riskAnalystId": users,
            "serviceManagerId": users,
        }

    def list_module(
        self,
        session: Session,
        ctx: AuthContext,
        module_name: ModuleName,
        access: AccessLevel,
        query: ListQuery,
        *,
        client_id: uuid.UUID | None = None,
    ) -> dict[str, Any]:
        descriptor = MODULES[module_name]
        catalog = descriptor.catalog
        if catalog is None or module_name not in _REPOSITORIES:
            raise UnsupportedListingError(module_name)

        repository = getattr(self.repositories, _REPOSITORIES[module_name])
        model = repository.model
        selected = self.projection.selected_columns(catalog, ctx.column_preferences.get(module_name))
        headers = self.projection.headers(catalog, selected)

        stmt = select(model).where(repository.scope_predicate(session, ctx, access, client_id))
        search = (query.search or "").strip()
        if module_name == ModuleName.CREDIT_LIMIT:
            stmt = stmt.join(Debtor, Debtor.id == ClientDebtor.debtor_id).where(ClientDebtor.is_active.is_(True))
        if search:
            stmt = stmt.where(_SEARCH_COLUMNS[module_name].icontains(search, autoescape=True))

        window_column = _WINDOW_COLUMNS.get(module_name, model.created_at)
        if query.start_date is not None:
            stmt = stmt.where(window_column >= _day_start(query.start_date))
        if query.end_date is not None:
            stmt = stmt.where(window_column <= _day_end(query.end_date))

        sort_attribute = to_snake(query.sort_by) if query.sort_by else "created_at"
        if sort_attribute not in model.__table__.columns:
            sort_attribute = "created_at"
        sort_column = getattr(model, sort_attribute)
        stmt = stmt.order_by(sort_column.asc() if query.sort_order == "asc" else sort_column.desc(), model.id)

        page = paginate(
            session,
            stmt,
            lambda row: _to_document(row[0], catalog.column_names),
            page=query.page,
            limit=query.limit,
        )
        docs = self.projection.project(page["docs"], selected)
        resolvers = {
            column: resolver
            for column, resolver in self.reference_resolvers(session).items()
            if column in descriptor.reference_columns
        }
        page["docs"] = self.projection.map_references(docs, resolvers)
        page["headers"] = headers
        return page
