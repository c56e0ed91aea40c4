from __future__ import annotations

import uuid
from collections.abc import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.platform.security.context import ActorType, AuthContext, ModuleAccessEntry
from app.platform.security.policies import AccessPolicy
from app.risk.catalog import ModuleName
from app.risk.models import Application, Client, ClientDebtor, Debtor, User
from app.risk.repositories import build_repositories
from app.risk.search import SearchAggregator, UnknownEntityTypeError, normalize_entity_type


@pytest.fixture()
def session_factory() -> Generator[sessionmaker, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    try:
        yield factory
    finally:
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def aggregator(session_factory: sessionmaker) -> SearchAggregator:
    return SearchAggregator(
        build_repositories(),
        AccessPolicy(module.value for module in ModuleName),
        session_factory,
        max_workers=1,
        module_limit=2,
    )


@pytest.fixture()
def analyst(db_session: Session) -> User:
    user = User(name="Analyst", email="analyst@example.com")
    db_session.add(user)
    db_session.flush()

    owned = [Client(name=f"Owned {index}", risk_analyst_id=user.id) for index in range(3)]
    db_session.add_all([*owned, Client(name="Foreign")])
    db_session.flush()

    debtor = Debtor(entity_name="Harbour Freight")
    db_session.add(debtor)
    db_session.flush()
    db_session.add(ClientDebtor(client_id=owned[0].id, debtor_id=debtor.id))
    db_session.add(Application(application_id="APP-1", client_id=owned[0].id, debtor_id=debtor.id, status="DRAFT"))
    db_session.commit()
    return user


def _ctx(user: User, access_type: str = "read") -> AuthContext:
    return AuthContext(
        user_id=user.id,
        module_access=[
            ModuleAccessEntry(name=name, access_types=(access_type,)) for name in ("client", "debtor", "application")
        ],
    )


def test_without_search_string_returns_a_scoped_page(db_session: Session, aggregator: SearchAggregator, analyst: User) -> None:
    page = aggregator.entity_search(db_session, _ctx(analyst), "clients", None, page=1, limit=2)

    assert page["total"] == 3
    assert page["pages"] == 2
    assert [doc["name"] for doc in page["docs"]] == ["Owned 0", "Owned 1"]

    second = aggregator.entity_search(db_session, _ctx(analyst), "clients", "  ", page=2, limit=2)
    assert [doc["name"] for doc in second["docs"]] == ["Owned 2"]


def test_with_search_string_returns_bounded_matches(db_session: Session, aggregator: SearchAggregator, analyst: User) -> None:
    rows = aggregator.entity_search(db_session, _ctx(analyst, "full-access"), "clients", "o")
    assert isinstance(rows, list)
    assert len(rows) == 2


def test_alias_entity_types_resolve_to_debtors(db_session: Session, aggregator: SearchAggregator, analyst: User) -> None:
    assert normalize_entity_type("debtorId") == "debtors"
    rows = aggregator.entity_search(db_session, _ctx(analyst), "debtorIds", "harbour")
    assert [row["entityName"] for row in rows] == ["Harbour Freight"]


def test_application_rows_carry_status(db_session: Session, aggregator: SearchAggregator, analyst: User) -> None:
    rows = aggregator.entity_search(db_session, _ctx(analyst), "applications", "app")
    assert rows == [{"_id": rows[0]["_id"], "applicationId": "APP-1", "status": "DRAFT"}]


def test_client_user_only_sees_its_own_client(db_session: Session, aggregator: SearchAggregator, analyst: User) -> None:
    client_id = db_session.query(Client.id).filter(Client.name == "Foreign").scalar()
    ctx = AuthContext(user_id=uuid.uuid4(), actor_type=ActorType.CLIENT_USER, client_id=client_id)
    page = aggregator.entity_search(db_session, ctx, "clients", None)
    assert [doc["name"] for doc in page["docs"]] == ["Foreign"]


def test_unknown_entity_type_is_rejected(db_session: Session, aggregator: SearchAggregator, analyst: User) -> None:
    with pytest.raises(UnknownEntityTypeError):
        aggregator.entity_search(db_session, _ctx(analyst), "invoices", "x")
