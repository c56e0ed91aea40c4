from __future__ import annotations

import uuid
from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.platform.security.context import AuthContext, ModuleAccessEntry
from app.platform.security.policies import AccessPolicy
from app.platform.security.rls import match_all
from app.risk.catalog import ModuleName
from app.risk.models import Client, ClientDebtor, Debtor, DebtorDirector, DirectorType, User
from app.risk.repositories import build_repositories
from app.risk.search import SearchAggregator
from app.risk.stakeholders import display_name, narrow_stakeholders, search_stakeholders


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
def debtors(db_session: Session) -> dict[str, uuid.UUID]:
    owned = Debtor(entity_name="Owned Debtor")
    other = Debtor(entity_name="Other Debtor")
    db_session.add_all([owned, other])
    db_session.flush()
    db_session.add_all(
        [
            DebtorDirector(debtor_id=owned.id, first_name="John", last_name="Smith"),
            DebtorDirector(debtor_id=owned.id, first_name="Johnny", last_name="Smithers"),
            DebtorDirector(debtor_id=owned.id, first_name="John", middle_name="Paul", last_name="Jones"),
            DebtorDirector(
                debtor_id=other.id,
                type=DirectorType.COMPANY.value,
                entity_name="John Smith Holdings",
                abn="51824753556",
            ),
        ]
    )
    db_session.commit()
    return {"owned": owned.id, "other": other.id}


def _names(rows: list[DebtorDirector]) -> list[str]:
    return sorted(display_name(row) for row in rows)


def test_two_token_search_keeps_exact_names_and_entity_matches(db_session: Session, debtors: dict[str, uuid.UUID]) -> None:
    rows = search_stakeholders(db_session, "John Smith", match_all())
    assert _names(rows) == ["John Smith", "John Smith Holdings"]


def test_store_side_match_is_broader_than_the_final_result(db_session: Session, debtors: dict[str, uuid.UUID]) -> None:
    # "Johnny Smithers" passes the substring phase but not the exact-name phase.
    broad = [
        DebtorDirector(type=DirectorType.INDIVIDUAL.value, first_name="John", last_name="Smith"),
        DebtorDirector(type=DirectorType.INDIVIDUAL.value, first_name="Johnny", last_name="Smithers"),
    ]
    assert _names(narrow_stakeholders(broad, "John Smith")) == ["John Smith"]


def test_three_token_search_matches_first_middle_last(db_session: Session, debtors: dict[str, uuid.UUID]) -> None:
    rows = search_stakeholders(db_session, "john paul jones", match_all())
    assert _names(rows) == ["John Paul Jones"]


def test_single_token_search_keeps_substring_recall(db_session: Session, debtors: dict[str, uuid.UUID]) -> None:
    rows = search_stakeholders(db_session, "john", match_all())
    assert _names(rows) == ["John Paul Jones", "John Smith", "John Smith Holdings", "Johnny Smithers"]


def test_company_identifiers_are_searchable(db_session: Session, debtors: dict[str, uuid.UUID]) -> None:
    rows = search_stakeholders(db_session, "51824753556", match_all())
    assert _names(rows) == ["John Smith Holdings"]


def test_four_token_search_is_not_narrowed(db_session: Session, debtors: dict[str, uuid.UUID]) -> None:
    assert search_stakeholders(db_session, "john smith holdings pty", match_all()) == []
    rows = search_stakeholders(db_session, "John Smith Holdings", match_all())
    assert _names(rows) == ["John Smith Holdings"]


def test_global_search_reports_stakeholders_as_debtor_sub_module(
    session_factory: sessionmaker,
    db_session: Session,
    debtors: dict[str, uuid.UUID],
) -> None:
    analyst = User(name="Analyst", email="analyst@example.com")
    db_session.add(analyst)
    db_session.flush()
    client = Client(name="Owner", risk_analyst_id=analyst.id)
    db_session.add(client)
    db_session.flush()
    db_session.add(ClientDebtor(client_id=client.id, debtor_id=debtors["owned"]))
    db_session.commit()

    aggregator = SearchAggregator(
        build_repositories(),
        AccessPolicy(module.value for module in ModuleName),
        session_factory,
        max_workers=1,
    )
    ctx = AuthContext(user_id=analyst.id, module_access=[ModuleAccessEntry(name="debtor", access_types=("read",))])
    results = [item for item in aggregator.global_search(ctx, "John Smith") if item.get("subModule") == "stakeholder"]

    # The company director hangs off a debtor the analyst does not own.
    assert results == [
        {
            "_id": debtors["owned"],
            "title": "John Smith",
            "module": "debtor",
            "hasSubModule": True,
            "subModule": "stakeholder",
        }
    ]


def test_exact_name_survives_a_crowd_of_newer_near_misses(db_session: Session) -> None:
    debtor = Debtor(entity_name="Crowded Debtor")
    db_session.add(debtor)
    db_session.flush()
    long_ago = datetime(2020, 1, 1, tzinfo=timezone.utc)
    db_session.add(DebtorDirector(debtor_id=debtor.id, first_name="John", last_name="Smith", updated_at=long_ago))
    db_session.add_all(
        [
            DebtorDirector(
                debtor_id=debtor.id,
                first_name="Johnny",
                last_name=f"X{index}",
                updated_at=long_ago + timedelta(days=index + 1),
            )
            for index in range(60)
        ]
    )
    db_session.commit()

    assert _names(search_stakeholders(db_session, "John Smith", match_all(), limit=10)) == ["John Smith"]
    assert len(search_stakeholders(db_session, "Johnny", match_all(), limit=10)) == 10


def test_capped_global_search_still_finds_the_exact_stakeholder(
    session_factory: sessionmaker,
    db_session: Session,
) -> None:
    debtor = Debtor(entity_name="Crowded Debtor")
    db_session.add(debtor)
    db_session.flush()
    long_ago = datetime(2020, 1, 1, tzinfo=timezone.utc)
    db_session.add(DebtorDirector(debtor_id=debtor.id, first_name="John", last_name="Smith", updated_at=long_ago))
    db_session.add_all(
        [
            DebtorDirector(
                debtor_id=debtor.id,
                first_name="Johnny",
                last_name=f"X{index}",
                updated_at=long_ago + timedelta(days=index + 1),
            )
            for index in range(60)
        ]
    )
    db_session.commit()

    aggregator = SearchAggregator(
        build_repositories(),
        AccessPolicy(module.value for module in ModuleName),
        session_factory,
        max_workers=1,
        module_limit=50,
    )
    ctx = AuthContext(
        user_id=uuid.uuid4(),
        module_access=[ModuleAccessEntry(name="debtor", access_types=("full-access",))],
    )
    hits = [item for item in aggregator.global_search(ctx, "John Smith") if item.get("subModule") == "stakeholder"]
    assert [item["title"] for item in hits] == ["John Smith"]


def test_like_wildcards_in_names_are_literal(db_session: Session, debtors: dict[str, uuid.UUID]) -> None:
    assert search_stakeholders(db_session, "%", match_all()) == []
    assert search_stakeholders(db_session, "J_hn", match_all()) == []
