from __future__ import annotations

import math
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.crm.gateway import CrmRecordType, CrmSyncGateway
from app.platform.security.context import AuthContext
from app.platform.security.policies import AccessLevel
from app.risk.catalog import MODULE_CATALOG
from app.risk.columns import ColumnProjectionEngine, column_projection_engine
from app.risk.models import Client
from app.risk.repositories import Repositories


CLAIM_FLAG_COLUMNS: tuple[str, ...] = (
    "claimsinforequested",
    "claimsinforeviewed",
    "reimbursementrequired",
    "tradinghistory",
)


def _flag(value: Any) -> str:
    return "Yes" if str(value) == "1" else "No"


class ClaimsService:
    """Claims are held in the CRM; this lists them for the clients an actor can see."""

    def __init__(
        self,
        repositories: Repositories,
        gateway: CrmSyncGateway,
        projection: ColumnProjectionEngine = column_projection_engine,
    ) -> None:
        self.repositories = repositories
        self.gateway = gateway
        self.projection = projection

    def _visible_clients(
        self,
        session: Session,
        ctx: AuthContext,
        access: AccessLevel,
        client_id: uuid.UUID | None,
    ) -> list[tuple[uuid.UUID, str, str]]:
        stmt = (
            select(Client.id, Client.name, Client.crm_client_id)
            .where(
                self.repositories.clients.scope_predicate(session, ctx, access, client_id),
                Client.crm_client_id.is_not(None),
            )
            .order_by(Client.name)
        )
        return [(row.id, row.name, str(row.crm_client_id)) for row in session.execute(stmt).all()]

    def _fetch(self, crm_ids: list[str], page: int, limit: int) -> tuple[list[dict[str, Any]], int]:
        if len(crm_ids) == 1:
            result = self.gateway.list_child_records(CrmRecordType.CLAIM, crm_ids[0], page, limit)
            return list(result.get("list") or []), int(result.get("totalCount") or 0)

        # Each client is read up to the end of the requested page, then merged in client order.
        window = page * limit
        merged: list[dict[str, Any]] = []
        total = 0
        for crm_id in crm_ids:
            result = self.gateway.list_child_records(CrmRecordType.CLAIM, crm_id, 1, window)
            merged.extend(result.get("list") or [])
            total += int(result.get("totalCount") or 0)
        return merged[(page - 1) * limit : window], total

    def list_claims(
        self,
        session: Session,
        ctx: AuthContext,
        access: AccessLevel,
        *,
        page: int = 1,
        limit: int = 10,
        client_id: uuid.UUID | None = None,
    ) -> dict[str, Any]:
        page = max(1, page)
        limit = max(1, limit)
        catalog = MODULE_CATALOG["claim"]
        selected = self.projection.selected_columns(catalog, ctx.column_preferences.get("claim"))
        headers = self.projection.headers(catalog, selected)

        clients = self._visible_clients(session, ctx, access, client_id)
        if not clients:
            return {"docs": [], "headers": headers, "total": 0, "page": page, "limit": limit, "pages": 0}

        claims, total = self._fetch([crm_id for _, _, crm_id in clients], page, limit)
        by_crm_id = {crm_id: (local_id, name) for local_id, name, crm_id in clients}

        docs: list[dict[str, Any]] = []
        for claim in self.projection.project(claims, selected, always=("id",)):
            for column in CLAIM_FLAG_COLUMNS:
                if column in claim:
                    claim[column] = _flag(claim[column])
            if "accountid" in claim:
                owner = by_crm_id.get(str(claim["accountid"]))
                claim["accountid"] = {"_id": owner[0], "value": owner[1]} if owner else ""
            docs.append(claim)

        return {
            "docs": docs,
            "headers": headers,
            "total": total,
            "page": page,
            "limit": limit,
            "pages": math.ceil(total / limit) if total else 0,
        }
