from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import false, true
from sqlalchemy.sql import ColumnElement, Select

from app.metrics import observe_scope_denied_read
from app.platform.security.context import AuthContext
from app.platform.security.errors import OutOfScopeError


logger = logging.getLogger("app.security.rls")


def match_all() -> ColumnElement[bool]:
    return true()


def match_nothing() -> ColumnElement[bool]:
    return false()


def apply_scope_filter(query: Select[Any], predicate: ColumnElement[bool] | None) -> Select[Any]:
    """Attach a row-level scope predicate to a select; ``None`` means unrestricted."""

    if predicate is None:
        return query
    return query.where(predicate)


def validate_scope_read(entity_type: str, entity_id: Any, ctx: AuthContext, *, visible: bool) -> None:
    """Reject a by-id read of a record the scope resolver did not return."""

    if visible:
        return
    _emit_scope_denied(entity_type=entity_type, entity_id=str(entity_id), ctx=ctx)
    raise OutOfScopeError(entity_type, str(entity_id))


def _emit_scope_denied(*, entity_type: str, entity_id: str, ctx: AuthContext) -> None:
    observe_scope_denied_read(entity_type=entity_type, actor_type=ctx.actor_type.value)
    logger.warning(
        "scope_denied",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "actor_id": str(ctx.user_id),
            "actor_type": ctx.actor_type.value,
        },
    )
