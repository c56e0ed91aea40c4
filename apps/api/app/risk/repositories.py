from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.platform.security.repository import BaseRepository
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
    Organization,
    Policy,
    Task,
    User,
)
from app.risk.scope import EntityScopeResolver, ScopeEntity


class UserRepository(BaseRepository):
    model = User
    scope_entity = ScopeEntity.USER


class ClientRepository(BaseRepository):
    model = Client
    scope_entity = ScopeEntity.CLIENT

    def crm_ids(self, session: Session, client_ids: list[uuid.UUID]) -> list[str]:
        if not client_ids:
            return []
        rows = session.scalars(
            select(Client.crm_client_id).where(Client.id.in_(client_ids), Client.crm_client_id.is_not(None))
        ).all()
        return [str(item) for item in rows]

    def by_crm_ids(self, session: Session, crm_ids: list[str]) -> dict[str, Client]:
        if not crm_ids:
            return {}
        rows = session.scalars(select(Client).where(Client.crm_client_id.in_(crm_ids))).all()
        return {str(row.crm_client_id): row for row in rows}


class ClientUserRepository(BaseRepository):
    model = ClientUser
    scope_entity = ScopeEntity.CLIENT_USER


class InsurerRepository(BaseRepository):
    model = Insurer
    scope_entity = ScopeEntity.INSURER


class InsurerUserRepository(BaseRepository):
    model = InsurerUser
    scope_entity = ScopeEntity.INSURER_USER


class DebtorRepository(BaseRepository):
    model = Debtor
    scope_entity = ScopeEntity.DEBTOR
    display_column = "entity_name"


class DebtorDirectorRepository(BaseRepository):
    model = DebtorDirector
    scope_entity = ScopeEntity.DEBTOR_DIRECTOR
    display_column = "entity_name"


class ClientDebtorRepository(BaseRepository):
    model = ClientDebtor
    scope_entity = ScopeEntity.CLIENT_DEBTOR

    def live_pair(self, session: Session, client_id: uuid.UUID, debtor_id: uuid.UUID) -> ClientDebtor | None:
        return session.scalar(
            select(ClientDebtor).where(
                ClientDebtor.client_id == client_id,
                ClientDebtor.debtor_id == debtor_id,
                ClientDebtor.is_active.is_(True),
            )
        )


class ApplicationRepository(BaseRepository):
    model = Application
    scope_entity = ScopeEntity.APPLICATION
    display_column = "application_id"


class TaskRepository(BaseRepository):
    model = Task
    scope_entity = ScopeEntity.TASK
    display_column = "description"


class PolicyRepository(BaseRepository):
    model = Policy
    scope_entity = ScopeEntity.POLICY
    display_column = "product"


class NoteRepository(BaseRepository):
    model = Note
    scope_entity = ScopeEntity.NOTE
    display_column = "description"


class OrganizationRepository(BaseRepository):
    model = Organization
    scope_entity = None

    def reset_application_counters(self, session: Session) -> int:
        rows = session.scalars(select(Organization).where(Organization.is_deleted.is_(False))).all()
        for row in rows:
            row.application_count = 0
        return len(rows)


@dataclass(frozen=True)
class Repositories:
    """Per-entity stores, built once at startup and handed to every service."""

    scope: EntityScopeResolver
    users: UserRepository
    clients: ClientRepository
    client_users: ClientUserRepository
    insurers: InsurerRepository
    insurer_users: InsurerUserRepository
    debtors: DebtorRepository
    debtor_directors: DebtorDirectorRepository
    client_debtors: ClientDebtorRepository
    applications: ApplicationRepository
    tasks: TaskRepository
    policies: PolicyRepository
    notes: NoteRepository
    organizations: OrganizationRepository


def build_repositories(scope_resolver: EntityScopeResolver | None = None) -> Repositories:
    resolver = scope_resolver or EntityScopeResolver()
    return Repositories(
        scope=resolver,
        users=UserRepository(resolver),
        clients=ClientRepository(resolver),
        client_users=ClientUserRepository(resolver),
        insurers=InsurerRepository(resolver),
        insurer_users=InsurerUserRepository(resolver),
        debtors=DebtorRepository(resolver),
        debtor_directors=DebtorDirectorRepository(resolver),
        client_debtors=ClientDebtorRepository(resolver),
        applications=ApplicationRepository(resolver),
        tasks=TaskRepository(resolver),
        policies=PolicyRepository(resolver),
        notes=NoteRepository(resolver),
        organizations=OrganizationRepository(resolver),
    )
