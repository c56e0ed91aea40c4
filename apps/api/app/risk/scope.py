from __future__ import annotations

import uuid
from enum import StrEnum
from typing import Any

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import ColumnElement

from app.platform.security.context import ActorType, AuthContext
from app.platform.security.policies import AccessLevel
from app.platform.security.rls import match_all, match_nothing
from app.risk.models import (
    Application,
    Client,
    ClientDebtor,
    ClientUser,
    Debtor,
    DebtorDirector,
    Insurer,
    InsurerUser,
    Note,
    Policy,
    Task,
    User,
)


class ScopeEntity(StrEnum):
    USER = "user"
    CLIENT = "client"
    CLIENT_USER = "client-user"
    INSURER = "insurer"
    INSURER_USER = "insurer-user"
    DEBTOR = "debtor"
    DEBTOR_DIRECTOR = "debtor-director"
    CLIENT_DEBTOR = "client-debtor"
    APPLICATION = "application"
    TASK = "task"
    POLICY = "policy"
    CLAIM = "claim"
    NOTE = "note"


_MODELS: dict[ScopeEntity, type[Any]] = {
    ScopeEntity.USER: User,
    ScopeEntity.CLIENT: Client,
    ScopeEntity.CLIENT_USER: ClientUser,
    ScopeEntity.INSURER: Insurer,
    ScopeEntity.INSURER_USER: InsurerUser,
    ScopeEntity.DEBTOR: Debtor,
    ScopeEntity.DEBTOR_DIRECTOR: DebtorDirector,
    ScopeEntity.CLIENT_DEBTOR: ClientDebtor,
    ScopeEntity.APPLICATION: Application,
    ScopeEntity.TASK: Task,
    ScopeEntity.POLICY: Policy,
    # Claims live in the CRM; locally they are reached through the owning client.
    ScopeEntity.CLAIM: Client,
    ScopeEntity.NOTE: Note,
}

# Column an explicit entity id is matched against.
_ANCHORS: dict[ScopeEntity, str] = {
    ScopeEntity.USER: "id",
    ScopeEntity.CLIENT: "id",
    ScopeEntity.CLIENT_USER: "client_id",
    ScopeEntity.INSURER: "id",
    ScopeEntity.INSURER_USER: "insurer_id",
    ScopeEntity.DEBTOR: "id",
    ScopeEntity.DEBTOR_DIRECTOR: "debtor_id",
    ScopeEntity.CLIENT_DEBTOR: "client_id",
    ScopeEntity.APPLICATION: "client_id",
    ScopeEntity.TASK: "id",
    ScopeEntity.POLICY: "client_id",
    ScopeEntity.CLAIM: "id",
    ScopeEntity.NOTE: "entity_id",
}

_TENANT_COLUMNS: dict[ScopeEntity, str] = {
    ScopeEntity.CLIENT: "id",
    ScopeEntity.CLAIM: "id",
    ScopeEntity.CLIENT_USER: "client_id",
    ScopeEntity.CLIENT_DEBTOR: "client_id",
    ScopeEntity.APPLICATION: "client_id",
    ScopeEntity.POLICY: "client_id",
    ScopeEntity.NOTE: "client_id",
}

_GLOBAL_ENTITIES = {ScopeEntity.INSURER, ScopeEntity.INSURER_USER}


def model_for(entity: ScopeEntity) -> type[Any]:
    return _MODELS[entity]


class EntityScopeResolver:
    """Builds row-visibility predicates per entity type for an actor and access level.

    Ownership is resolved once per request context: the owned client id set
    and the derived debtor id set are cached on ``AuthContext._cache``.
    """

    def owned_client_ids(self, session: Session, ctx: AuthContext) -> list[uuid.UUID]:
        cached = ctx._cache.get("owned_client_ids")
        if cached is not None:
            return list(cached)

        if ctx.actor_type == ActorType.CLIENT_USER:
            owned = [ctx.client_id] if ctx.client_id is not None else []
        else:
            owned = list(
                session.scalars(
                    select(Client.id).where(
                        Client.is_deleted.is_(False),
                        or_(Client.risk_analyst_id == ctx.user_id, Client.service_manager_id == ctx.user_id),
                    )
                ).all()
            )
        ctx._cache["owned_client_ids"] = tuple(owned)
        return owned

    def owned_debtor_ids(self, session: Session, ctx: AuthContext) -> list[uuid.UUID]:
        cached = ctx._cache.get("owned_debtor_ids")
        if cached is not None:
            return list(cached)

        client_ids = self.owned_client_ids(session, ctx)
        owned: list[uuid.UUID] = []
        if client_ids:
            owned = list(
                session.scalars(
                    select(ClientDebtor.debtor_id)
                    .where(ClientDebtor.client_id.in_(client_ids), ClientDebtor.is_active.is_(True))
                    .distinct()
                ).all()
            )
        ctx._cache["owned_debtor_ids"] = tuple(owned)
        return owned

    def scope_filter(
        self,
        session: Session,
        entity: ScopeEntity,
        ctx: AuthContext,
        access: AccessLevel,
        explicit_entity_id: uuid.UUID | None = None,
    ) -> ColumnElement[bool]:
        model = _MODELS[entity]
        clauses: list[ColumnElement[bool]] = []
        if hasattr(model, "is_deleted"):
            clauses.append(model.is_deleted.is_(False))
        if entity == ScopeEntity.NOTE:
            clauses.append(self._note_visibility(ctx))

        if explicit_entity_id is not None:
            clauses.append(getattr(model, _ANCHORS[entity]) == explicit_entity_id)
            if ctx.is_client_user:
                # A client user can never address another tenant, explicit id or not.
                clauses.append(self._ownership(session, entity, ctx))
            return and_(*clauses)

        if access == AccessLevel.NONE:
            return match_nothing()
        if access == AccessLevel.FULL and not ctx.is_client_user:
            return and_(*clauses) if clauses else match_all()
        if entity in _GLOBAL_ENTITIES:
            return and_(*clauses) if clauses else match_all()

        clauses.append(self._ownership(session, entity, ctx))
        return and_(*clauses)

    def _ownership(self, session: Session, entity: ScopeEntity, ctx: AuthContext) -> ColumnElement[bool]:
        model = _MODELS[entity]
        if entity in _TENANT_COLUMNS:
            client_ids = self.owned_client_ids(session, ctx)
            if not client_ids:
                return match_nothing()
            return getattr(model, _TENANT_COLUMNS[entity]).in_(client_ids)

        if entity in (ScopeEntity.DEBTOR, ScopeEntity.DEBTOR_DIRECTOR):
            debtor_ids = self.owned_debtor_ids(session, ctx)
            if not debtor_ids:
                return match_nothing()
            column = Debtor.id if entity == ScopeEntity.DEBTOR else DebtorDirector.debtor_id
            return column.in_(debtor_ids)

        if entity == ScopeEntity.TASK:
            # Client-panel tasks are assigned to, or raised by, the tenant itself.
            owner_id = ctx.client_id if ctx.is_client_user else ctx.user_id
            if owner_id is None:
                return match_nothing()
            return or_(Task.assignee_id == owner_id, Task.created_by_id == owner_id)

        if entity == ScopeEntity.USER:
            if ctx.is_client_user:
                return match_nothing()
            return User.id == ctx.user_id

        if entity in _GLOBAL_ENTITIES:
            return match_all()
        return match_nothing()

    @staticmethod
    def _note_visibility(ctx: AuthContext) -> ColumnElement[bool]:
        public_internal = and_(Note.created_by_type == ActorType.USER.value, Note.is_public.is_(True))
        if ctx.is_client_user:
            return or_(
                public_internal,
                and_(Note.created_by_type == ActorType.CLIENT_USER.value, Note.client_id == ctx.client_id),
            )
        return or_(
            public_internal,
            and_(Note.created_by_type == ActorType.USER.value, Note.created_by_id == ctx.user_id),
            Note.created_by_type == ActorType.CLIENT_USER.value,
        )
