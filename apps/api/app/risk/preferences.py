from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from app.platform.security.context import AuthContext
from app.risk.catalog import ModuleCatalog
from app.risk.columns import ColumnProjectionEngine, column_projection_engine
from app.risk.models import ClientUser, User


class ColumnPreferenceStore:
    """Reads and writes the ``manage_columns`` documents kept on the actor's own record."""

    def __init__(self, projection: ColumnProjectionEngine = column_projection_engine) -> None:
        self.projection = projection

    def _actor_row(self, session: Session, ctx: AuthContext) -> User | ClientUser | None:
        model = ClientUser if ctx.is_client_user else User
        return session.get(model, ctx.user_id)

    def update_columns(
        self,
        session: Session,
        ctx: AuthContext,
        catalog: ModuleCatalog,
        columns: list[str],
        *,
        is_reset: bool = False,
    ) -> list[str]:
        """Overwrite the actor's selection for one module; a reset stores the catalog defaults.

        Unknown column names raise ``UnknownColumnError`` before anything is written.
        The caller commits.
        """

        if is_reset:
            stored = self.projection.reset_columns(catalog)
        else:
            stored = self.projection.validate_columns(catalog, columns)

        row = self._actor_row(session, ctx)
        if row is not None:
            documents: list[dict[str, Any]] = [
                dict(item) for item in row.manage_columns or [] if item.get("moduleName") != catalog.name
            ]
            documents.append({"moduleName": catalog.name, "columns": stored})
            # Reassigned rather than mutated so the JSON column is flagged dirty.
            row.manage_columns = documents
            session.flush()

        ctx.column_preferences[catalog.name] = list(stored)
        return stored


column_preference_store = ColumnPreferenceStore()
