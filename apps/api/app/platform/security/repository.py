from __future__ import annotations

import uuid
from collections.abc import Iterable
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.sql import ColumnElement, Select

from app.platform.security.context import AuthContext
from app.platform.security.policies import AccessLevel
from app.platform.security.rls import apply_scope_filter, validate_scope_read


class ScopeResolver(Protocol):
    def scope_filter(
        self,
        session: Session,
        entity: Any,
        ctx: AuthContext,
        access: AccessLevel,
        explicit_entity_id: uuid.UUID | None = None,
    ) -> ColumnElement[bool]: ...


class BaseRepository:
    model: type[Any]
    scope_entity: Any = None
    display_column = "name"

    def __init__(self, scope_resolver: ScopeResolver) -> None:
        self.scope_resolver = scope_resolver

    def scope_predicate(
        self,
        session: Session,
        ctx: AuthContext,
        access: AccessLevel,
        explicit_entity_id: uuid.UUID | None = None,
    ) -> ColumnElement[bool]:
        return self.scope_resolver.scope_filter(session, self.scope_entity, ctx, access, explicit_entity_id)

    def apply_scope_query(
        self,
        session: Session,
        query: Select[Any],
        ctx: AuthContext,
        access: AccessLevel,
        explicit_entity_id: uuid.UUID | None = None,
    ) -> Select[Any]:
        return apply_scope_filter(query, self.scope_predicate(session, ctx, access, explicit_entity_id))

    def visible_query(
        self,
        session: Session,
        ctx: AuthContext,
        access: AccessLevel,
        explicit_entity_id: uuid.UUID | None = None,
    ) -> Select[Any]:
        return self.apply_scope_query(session, select(self.model), ctx, access, explicit_entity_id)

    def get(self, session: Session, entity_id: uuid.UUID) -> Any | None:
        return session.get(self.model, entity_id)

    def get_visible(self, session: Session, ctx: AuthContext, access: AccessLevel, entity_id: uuid.UUID) -> Any | None:
        """Load a record by id, raising when it exists but is outside the actor's scope."""

        row = self.get(session, entity_id)
        if row is None or getattr(row, "is_deleted", False):
            return None
        visible_id = session.scalar(
            self.visible_query(session, ctx, access).with_only_columns(self.model.id).where(self.model.id == entity_id)
        )
        validate_scope_read(str(self.scope_entity), entity_id, ctx, visible=visible_id is not None)
        return row

    def display_names(self, session: Session, ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, str]:
        wanted = [item for item in ids if item is not None]
        if not wanted:
            return {}
        column = getattr(self.model, self.display_column)
        rows = session.execute(select(self.model.id, column).where(self.model.id.in_(wanted))).all()
        return {row[0]: row[1] for row in rows}
