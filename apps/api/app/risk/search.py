from __future__ import annotations

import contextvars
import logging
import math
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from types import MappingProxyType
from typing import Any

from opentelemetry import trace
from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import ColumnElement

from app.context import get_correlation_id
from app.metrics import observe_search_module_failure
from app.platform.security.context import AuthContext
from app.platform.security.policies import AccessLevel, AccessPolicy
from app.risk.catalog import ModuleName
from app.risk.models import Application, Client, ClientDebtor, ClientUser, Debtor, Insurer, InsurerUser, Task, User
from app.risk.repositories import Repositories
from app.risk.stakeholders import display_name, search_stakeholders


logger = logging.getLogger("app.risk.search")
tracer = trace.get_tracer("app.risk.search")

STAKEHOLDER_STEP = "debtor-director"

RISK_PANEL_PLAN: tuple[str, ...] = (
    ModuleName.USER,
    ModuleName.CLIENT,
    ModuleName.INSURER,
    ModuleName.DEBTOR,
    STAKEHOLDER_STEP,
    ModuleName.TASK,
    ModuleName.APPLICATION,
)

CLIENT_PANEL_PLAN: tuple[str, ...] = (
    ModuleName.CLIENT,
    STAKEHOLDER_STEP,
    ModuleName.CREDIT_LIMIT,
    ModuleName.TASK,
    ModuleName.APPLICATION,
)

ENTITY_TYPE_ALIASES = {"debtorId": "debtors", "debtorIds": "debtors"}
_ENTITY_MODULES = {
    "clients": ModuleName.CLIENT,
    "debtors": ModuleName.DEBTOR,
    "applications": ModuleName.APPLICATION,
}

SessionFactory = Callable[[], Session]


class UnknownEntityTypeError(ValueError):
    def __init__(self, entity_type: str) -> None:
        self.entity_type = entity_type
        super().__init__(f"Unsupported entity type '{entity_type}'")


def _contains(column: Any, search: str) -> ColumnElement[bool]:
    return column.icontains(search, autoescape=True)


def _envelope(
    entity_id: Any,
    title: str | None,
    module: str,
    *,
    sub_module: str | None = None,
    **extra: Any,
) -> dict[str, Any]:
    result: dict[str, Any] = {
        "_id": entity_id,
        "title": title or "",
        "module": module,
        "hasSubModule": sub_module is not None,
    }
    if sub_module is not None:
        result["subModule"] = sub_module
    result.update(extra)
    return result


def normalize_entity_type(entity_type: str) -> str:
    normalized = ENTITY_TYPE_ALIASES.get(entity_type, entity_type)
    if normalized not in _ENTITY_MODULES:
        raise UnknownEntityTypeError(entity_type)
    return normalized


def entity_module(entity_type: str) -> ModuleName:
    return _ENTITY_MODULES[normalize_entity_type(entity_type)]


class SearchAggregator:
    """Global search fan-out and per-entity typeahead over scoped queries.

    Module searches run on a thread pool, each with its own session from
    ``session_factory``. A module that raises contributes nothing; the
    failure is logged and counted, never propagated.

    ``module_limit`` caps each module's hits when set. Unset, every scoped
    match is returned, so widening access only ever adds results.
    """

    def __init__(
        self,
        repositories: Repositories,
        policy: AccessPolicy,
        session_factory: SessionFactory,
        *,
        max_workers: int = 4,
        module_limit: int | None = None,
        searches: Mapping[str, ModuleSearch] | None = None,
    ) -> None:
        self.repositories = repositories
        self.policy = policy
        self.session_factory = session_factory
        self.max_workers = max(1, max_workers)
        self.module_limit = module_limit
        self.searches: dict[str, ModuleSearch] = dict(MODULE_SEARCHES if searches is None else searches)

    def global_search(self, ctx: AuthContext, search_string: str) -> list[dict[str, Any]]:
        search = search_string.strip()
        plan = CLIENT_PANEL_PLAN if ctx.is_client_user else RISK_PANEL_PLAN
        with tracer.start_as_current_span("search.global") as span:
            span.set_attribute("actor_type", ctx.actor_type.value)
            span.set_attribute("module_count", len(plan))
            span.set_attribute("correlation_id", get_correlation_id() or "")
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(plan))) as pool:
                futures = [
                    pool.submit(contextvars.copy_context().run, self._run_module, step, ctx, search) for step in plan
                ]
                chunks = [future.result() for future in futures]

            results: list[dict[str, Any]] = []
            for chunk in chunks:
                if chunk:
                    results.extend(chunk)
            span.set_attribute("result_count", len(results))
        return results

    def _run_module(self, step: str, ctx: AuthContext, search: str) -> list[dict[str, Any]] | None:
        module_search = self.searches[step]
        try:
            with self.session_factory() as session:
                return module_search(self, session, ctx, search)
        except Exception as exc:
            observe_search_module_failure(module=str(step))
            logger.exception(
                "search_module_failed",
                extra={"module_name": str(step), "actor_id": str(ctx.user_id), "error": str(exc)[:500]},
            )
            return None

    def _access(self, ctx: AuthContext, module: str) -> AccessLevel:
        return self.policy.resolve_access(ctx, module)

    def _capped(self, stmt: Select[Any]) -> Select[Any]:
        if self.module_limit is None:
            return stmt
        return stmt.limit(self.module_limit)

    def search_users(self, session: Session, ctx: AuthContext, search: str) -> list[dict[str, Any]]:
        access = self._access(ctx, ModuleName.USER)
        if access == AccessLevel.NONE:
            return []
        scope = self.repositories.users.scope_predicate(session, ctx, access)
        stmt = select(User.id, User.name).where(scope, _contains(User.name, search)).order_by(User.name)
        rows = session.execute(self._capped(stmt)).all()
        return [_envelope(row.id, row.name, "user") for row in rows]

    def search_clients(self, session: Session, ctx: AuthContext, search: str) -> list[dict[str, Any]]:
        access = self._access(ctx, ModuleName.CLIENT)
        if access == AccessLevel.NONE:
            return []
        client_scope = self.repositories.clients.scope_predicate(session, ctx, access)
        client_stmt = select(Client.id, Client.name).where(client_scope, _contains(Client.name, search)).order_by(Client.name)
        clients = session.execute(self._capped(client_stmt)).all()

        contact_scope = self.repositories.client_users.scope_predicate(session, ctx, access)
        contact_stmt = (
            select(ClientUser.client_id, ClientUser.name)
            .join(Client, Client.id == ClientUser.client_id)
            .where(contact_scope, Client.is_deleted.is_(False), _contains(ClientUser.name, search))
            .order_by(ClientUser.name)
        )
        contacts = session.execute(self._capped(contact_stmt)).all()

        results = [_envelope(row.id, row.name, "client") for row in clients]
        results.extend(_envelope(row.client_id, row.name, "client", sub_module="contacts") for row in contacts)
        return results

    def search_insurers(self, session: Session, ctx: AuthContext, search: str) -> list[dict[str, Any]]:
        access = self._access(ctx, ModuleName.INSURER)
        if access == AccessLevel.NONE:
            return []
        insurer_scope = self.repositories.insurers.scope_predicate(session, ctx, access)
        insurer_stmt = (
            select(Insurer.id, Insurer.name).where(insurer_scope, _contains(Insurer.name, search)).order_by(Insurer.name)
        )
        insurers = session.execute(self._capped(insurer_stmt)).all()

        contact_scope = self.repositories.insurer_users.scope_predicate(session, ctx, access)
        contact_stmt = (
            select(InsurerUser.insurer_id, InsurerUser.name)
            .where(contact_scope, _contains(InsurerUser.name, search))
            .order_by(InsurerUser.name)
        )
        contacts = session.execute(self._capped(contact_stmt)).all()

        results = [_envelope(row.id, row.name, "insurer") for row in insurers]
        results.extend(_envelope(row.insurer_id, row.name, "insurer", sub_module="contacts") for row in contacts)
        return results

    def search_debtors(self, session: Session, ctx: AuthContext, search: str) -> list[dict[str, Any]]:
        access = self._access(ctx, ModuleName.DEBTOR)
        if access == AccessLevel.NONE:
            return []
        scope = self.repositories.debtors.scope_predicate(session, ctx, access)
        stmt = (
            select(Debtor.id, Debtor.entity_name)
            .where(scope, _contains(Debtor.entity_name, search))
            .order_by(Debtor.entity_name)
        )
        rows = session.execute(self._capped(stmt)).all()
        return [_envelope(row.id, row.entity_name, "debtor") for row in rows]

    def search_stakeholders(self, session: Session, ctx: AuthContext, search: str) -> list[dict[str, Any]]:
        access = self._access(ctx, ModuleName.DEBTOR)
        if access == AccessLevel.NONE:
            return []
        scope = self.repositories.debtor_directors.scope_predicate(session, ctx, access)
        directors = search_stakeholders(session, search, scope, limit=self.module_limit)
        return [
            _envelope(director.debtor_id, display_name(director), "debtor", sub_module="stakeholder")
            for director in directors
        ]

    def search_client_debtors(self, session: Session, ctx: AuthContext, search: str) -> list[dict[str, Any]]:
        access = self._access(ctx, ModuleName.CREDIT_LIMIT)
        if access == AccessLevel.NONE:
            return []
        scope = self.repositories.client_debtors.scope_predicate(session, ctx, access)
        stmt = (
            select(ClientDebtor.debtor_id, Debtor.entity_name)
            .join(Debtor, Debtor.id == ClientDebtor.debtor_id)
            .where(
                scope,
                ClientDebtor.is_active.is_(True),
                ClientDebtor.credit_limit.is_not(None),
                _contains(Debtor.entity_name, search),
            )
            .order_by(Debtor.entity_name)
        )
        rows = session.execute(self._capped(stmt)).all()
        return [_envelope(row.debtor_id, row.entity_name, "debtor") for row in rows]

    def search_tasks(self, session: Session, ctx: AuthContext, search: str) -> list[dict[str, Any]]:
        access = self._access(ctx, ModuleName.TASK)
        if access == AccessLevel.NONE:
            return []
        scope = self.repositories.tasks.scope_predicate(session, ctx, access)
        stmt = (
            select(Task.id, Task.description)
            .where(scope, _contains(Task.description, search))
            .order_by(Task.created_at.desc())
        )
        rows = session.execute(self._capped(stmt)).all()
        return [_envelope(row.id, row.description, "task", description=row.description) for row in rows]

    def search_applications(self, session: Session, ctx: AuthContext, search: str) -> list[dict[str, Any]]:
        access = self._access(ctx, ModuleName.APPLICATION)
        if access == AccessLevel.NONE:
            return []
        scope = self.repositories.applications.scope_predicate(session, ctx, access)
        stmt = (
            select(Application.id, Application.application_id, Application.status)
            .where(scope, _contains(Application.application_id, search))
            .order_by(Application.created_at.desc())
        )
        rows = session.execute(self._capped(stmt)).all()
        return [_envelope(row.id, row.application_id, "application", status=row.status) for row in rows]

    def entity_search(
        self,
        session: Session,
        ctx: AuthContext,
        entity_type: str,
        search_string: str | None,
        *,
        page: int = 1,
        limit: int = 10,
    ) -> list[dict[str, Any]] | dict[str, Any]:
        """Typeahead rows when a search string is given, otherwise a paginated scoped listing."""

        normalized = normalize_entity_type(entity_type)
        module = entity_module(normalized)
        access = self._access(ctx, module)
        search = (search_string or "").strip()

        if normalized == "clients":
            scope = self.repositories.clients.scope_predicate(session, ctx, access)
            stmt: Select[Any] = select(Client.id, Client.name).where(scope).order_by(Client.name)
            text_column: Any = Client.name

            def to_row(row: Any) -> dict[str, Any]:
                return {"_id": row.id, "name": row.name}

        elif normalized == "debtors":
            scope = self.repositories.debtors.scope_predicate(session, ctx, access)
            stmt = select(Debtor.id, Debtor.entity_name).where(scope).order_by(Debtor.entity_name)
            text_column = Debtor.entity_name

            def to_row(row: Any) -> dict[str, Any]:
                return {"_id": row.id, "entityName": row.entity_name}

        else:
            scope = self.repositories.applications.scope_predicate(session, ctx, access)
            stmt = (
                select(Application.id, Application.application_id, Application.status)
                .where(scope)
                .order_by(Application.created_at.desc())
            )
            text_column = Application.application_id

            def to_row(row: Any) -> dict[str, Any]:
                return {"_id": row.id, "applicationId": row.application_id, "status": row.status}

        if search:
            rows = session.execute(self._capped(stmt.where(_contains(text_column, search)))).all()
            return [to_row(row) for row in rows]
        return paginate(session, stmt, to_row, page=page, limit=limit)


def paginate(
    session: Session,
    stmt: Select[Any],
    to_row: Callable[[Any], dict[str, Any]],
    *,
    page: int,
    limit: int,
) -> dict[str, Any]:
    page = max(1, page)
    limit = max(1, limit)
    total = session.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    rows = session.execute(stmt.offset((page - 1) * limit).limit(limit)).all()
    return {
        "docs": [to_row(row) for row in rows],
        "total": int(total),
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }


ModuleSearch = Callable[[SearchAggregator, Session, AuthContext, str], list[dict[str, Any]]]

MODULE_SEARCHES: Mapping[str, ModuleSearch] = MappingProxyType(
    {
        ModuleName.USER: SearchAggregator.search_users,
        ModuleName.CLIENT: SearchAggregator.search_clients,
        ModuleName.INSURER: SearchAggregator.search_insurers,
        ModuleName.DEBTOR: SearchAggregator.search_debtors,
        STAKEHOLDER_STEP: SearchAggregator.search_stakeholders,
        ModuleName.CREDIT_LIMIT: SearchAggregator.search_client_debtors,
        ModuleName.TASK: SearchAggregator.search_tasks,
        ModuleName.APPLICATION: SearchAggregator.search_applications,
    }
)
