from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.risk.dashboard import dashboard_aggregator
from app.risk.models import Application, Client, ClientDebtor, Debtor, Policy


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _client(session: Session, name: str = "Dash Client") -> Client:
    client = Client(name=name)
    session.add(client)
    session.flush()
    return client


def _policy(session: Session, client: Client, product: str, **fields: object) -> Policy:
    policy = Policy(
        client_id=client.id,
        product=product,
        inception_date=_now() - timedelta(days=30),
        expiry_date=_now() + timedelta(days=335),
        **fields,
    )
    session.add(policy)
    session.flush()
    return policy


def _debtor(session: Session, name: str) -> Debtor:
    debtor = Debtor(entity_name=name)
    session.add(debtor)
    session.flush()
    return debtor


def test_client_without_rows_reports_zero_metrics(db_session: Session) -> None:
    client = _client(db_session)
    _policy(db_session, client, "Credit Insurance", aggregate_of_credit_limit=Decimal("250000"))
    db_session.commit()

    dashboard = dashboard_aggregator.client_dashboard(db_session, client.id)
    body = dashboard.model_dump(mode="json", by_alias=True)

    assert body["discretionaryLimit"] == 0
    assert body["endorsedLimit"] == {"endorsedLimitCount": 0, "totalCount": 250000}
    assert body["applicationStatus"] == []
    assert body["approvedAmount"] == {"total": 0, "approvedAmount": 0}
    assert body["approvedApplication"] == {"approved": 0, "partiallyApproved": 0, "rejected": 0, "cancelled": 0}
    assert body["resChecksCount"] == {"applicationCount": 0, "totalCount": 0}
    assert body["showGraphs"] is False


def test_client_without_policies_still_reports_numbers(db_session: Session) -> None:
    client = _client(db_session)
    db_session.commit()

    body = dashboard_aggregator.client_dashboard(db_session, client.id).model_dump(mode="json", by_alias=True)

    assert body["discretionaryLimit"] == 0
    assert body["endorsedLimit"] is None
    assert body["approvedAmount"] == {"total": 0, "approvedAmount": 0}
    assert body["resChecksCount"] == {"applicationCount": 0, "totalCount": 0}


def test_dashboard_aggregates_within_the_policy_period(db_session: Session) -> None:
    client = _client(db_session)
    _policy(
        db_session,
        client,
        "Credit Insurance - SME",
        discretionary_limit=Decimal("50000"),
        aggregate_of_credit_limit=Decimal("500000"),
        credit_checks=12,
    )
    endorsed_debtor = _debtor(db_session, "Endorsed Debtor")
    plain_debtor = _debtor(db_session, "Plain Debtor")
    declined_debtor = _debtor(db_session, "Declined Debtor")

    endorsed_limit = ClientDebtor(
        client_id=client.id,
        debtor_id=endorsed_debtor.id,
        credit_limit=Decimal("60000"),
        is_endorsed_limit=True,
    )
    plain_limit = ClientDebtor(client_id=client.id, debtor_id=plain_debtor.id, credit_limit=Decimal("10000"))
    db_session.add_all([endorsed_limit, plain_limit])
    db_session.flush()

    endorsed_app = Application(
        application_id="A-1",
        client_id=client.id,
        debtor_id=endorsed_debtor.id,
        client_debtor_id=endorsed_limit.id,
        status="APPROVED",
        credit_limit=Decimal("60000"),
    )
    plain_app = Application(
        application_id="A-2",
        client_id=client.id,
        debtor_id=plain_debtor.id,
        client_debtor_id=plain_limit.id,
        status="APPROVED",
        credit_limit=Decimal("20000"),
    )
    declined_app = Application(
        application_id="A-3",
        client_id=client.id,
        debtor_id=declined_debtor.id,
        status="DECLINED",
        credit_limit=Decimal("5000"),
    )
    check_app = Application(
        application_id="A-4",
        client_id=client.id,
        debtor_id=declined_debtor.id,
        status="SUBMITTED",
        limit_type="CREDIT_CHECK",
    )
    draft_check = Application(
        application_id="A-5",
        client_id=client.id,
        debtor_id=declined_debtor.id,
        status="DRAFT",
        limit_type="CREDIT_CHECK",
    )
    db_session.add_all([endorsed_app, plain_app, declined_app, check_app, draft_check])
    db_session.flush()
    endorsed_limit.active_application_id = endorsed_app.id
    plain_limit.active_application_id = plain_app.id
    db_session.commit()

    dashboard = dashboard_aggregator.client_dashboard(db_session, client.id)

    assert dashboard.discretionary_limit == Decimal("50000")
    assert dashboard.endorsed_limit is not None
    assert dashboard.endorsed_limit.endorsed_limit_count == Decimal("60000")
    assert dashboard.endorsed_limit.total_count == Decimal("500000")
    assert [(item.status, item.count) for item in dashboard.application_status] == [("SUBMITTED", 1)]
    assert dashboard.approved_amount.total == Decimal("80000")
    assert dashboard.approved_amount.approved_amount == Decimal("70000")
    assert dashboard.approved_application.approved == 1
    assert dashboard.approved_application.partially_approved == 1
    assert dashboard.approved_application.rejected == 1
    assert dashboard.approved_application.cancelled == 0
    assert dashboard.res_checks_count.application_count == 1
    assert dashboard.res_checks_count.total_count == 12
    assert dashboard.show_graphs is False


def test_rows_outside_the_policy_period_are_ignored(db_session: Session) -> None:
    client = _client(db_session)
    _policy(db_session, client, "Credit Insurance", aggregate_of_credit_limit=Decimal("1000"))
    debtor = _debtor(db_session, "Old Debtor")
    db_session.add(
        ClientDebtor(
            client_id=client.id,
            debtor_id=debtor.id,
            credit_limit=Decimal("9000"),
            is_endorsed_limit=True,
            updated_at=_now() - timedelta(days=400),
        )
    )
    db_session.commit()

    dashboard = dashboard_aggregator.client_dashboard(db_session, client.id)
    assert dashboard.endorsed_limit is not None
    assert dashboard.endorsed_limit.endorsed_limit_count == 0


def test_risk_management_policy_drives_graphs_and_credit_checks(db_session: Session) -> None:
    client = _client(db_session)
    _policy(db_session, client, "Credit Insurance", credit_checks=5)
    _policy(db_session, client, "Risk Management Package", credit_checks=20, nz_credit_checks=4)
    db_session.commit()

    dashboard = dashboard_aggregator.client_dashboard(db_session, client.id)
    assert dashboard.show_graphs is True
    assert dashboard.res_checks_count.total_count == 24


def test_discretionary_limit_falls_back_to_risk_management_policy(db_session: Session) -> None:
    client = _client(db_session)
    _policy(db_session, client, "Risk Management", discretionary_limit=Decimal("15000"))
    db_session.commit()

    dashboard = dashboard_aggregator.client_dashboard(db_session, client.id)
    assert dashboard.discretionary_limit == Decimal("15000")
    assert dashboard.endorsed_limit is None


def test_expired_policies_do_not_count(db_session: Session) -> None:
    client = _client(db_session)
    db_session.add(
        Policy(
            client_id=client.id,
            product="Credit Insurance",
            discretionary_limit=Decimal("99000"),
            inception_date=_now() - timedelta(days=400),
            expiry_date=_now() - timedelta(days=35),
        )
    )
    db_session.commit()

    dashboard = dashboard_aggregator.client_dashboard(db_session, client.id)
    assert dashboard.discretionary_limit == 0
    assert dashboard.endorsed_limit is None
