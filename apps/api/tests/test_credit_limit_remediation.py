from __future__ import annotations

import json
from collections.abc import Generator
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.models.audit import AuditLog
from app.risk.credit_limits import remove_redundant_credit_limits, update_credit_limits
from app.risk.models import Application, Client, ClientDebtor, Debtor


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


@dataclass
class DuplicatePair:
    client: Client
    debtor: Debtor
    original: ClientDebtor
    duplicate: ClientDebtor
    approved: Application
    declined: Application


@pytest.fixture()
def duplicate_pair(db_session: Session) -> DuplicatePair:
    client = Client(name="Dup Client")
    debtor = Debtor(entity_name="Dup Debtor")
    db_session.add_all([client, debtor])
    db_session.flush()

    created = datetime(2024, 3, 1, tzinfo=timezone.utc)
    original = ClientDebtor(
        client_id=client.id,
        debtor_id=debtor.id,
        credit_limit=Decimal("10000"),
        is_active=False,
        created_at=created,
    )
    duplicate = ClientDebtor(
        client_id=client.id,
        debtor_id=debtor.id,
        credit_limit=Decimal("15000"),
        is_active=True,
        created_at=created + timedelta(days=10),
    )
    db_session.add_all([original, duplicate])
    db_session.flush()

    approved = Application(
        application_id="APP-APPROVED",
        client_id=client.id,
        debtor_id=debtor.id,
        client_debtor_id=duplicate.id,
        status="APPROVED",
        accepted_amount=Decimal("30000"),
        is_endorsed_limit=True,
        expiry_date=date(2025, 3, 1),
        approval_or_declining_date=created + timedelta(days=20),
    )
    declined = Application(
        application_id="APP-DECLINED",
        client_id=client.id,
        debtor_id=debtor.id,
        client_debtor_id=original.id,
        status="DECLINED",
        approval_or_declining_date=created + timedelta(days=5),
    )
    db_session.add_all([approved, declined])
    db_session.commit()
    return DuplicatePair(client, debtor, original, duplicate, approved, declined)


def test_duplicates_collapse_into_the_earliest_row(db_session: Session, duplicate_pair: DuplicatePair) -> None:
    duplicate_id = duplicate_pair.duplicate.id
    report = remove_redundant_credit_limits(db_session)
    db_session.commit()

    assert report.pairs_processed == 1
    assert report.rows_deleted == 1
    assert report.applications_repointed == 2
    assert report.dump_path is None

    rows = db_session.scalars(select(ClientDebtor)).all()
    assert [row.id for row in rows] == [duplicate_pair.original.id]
    kept = rows[0]
    assert kept.is_active is True
    assert kept.active_application_id == duplicate_pair.approved.id
    assert kept.credit_limit == Decimal("30000")
    assert kept.is_endorsed_limit is True
    assert kept.status == "APPROVED"
    assert kept.expiry_date == date(2025, 3, 1)

    pointers = set(db_session.scalars(select(Application.client_debtor_id)).all())
    assert pointers == {kept.id}

    audit = db_session.scalars(select(AuditLog).order_by(AuditLog.action_type)).all()
    assert [(item.action_type, item.entity_ref_id) for item in audit] == [
        ("delete", str(duplicate_id)),
        ("update", str(kept.id)),
    ]
    assert audit[0].before["creditLimit"] is not None


def test_running_twice_is_a_no_op(db_session: Session, duplicate_pair: DuplicatePair) -> None:
    remove_redundant_credit_limits(db_session)
    db_session.commit()
    snapshot = [(row.id, row.credit_limit, row.is_active) for row in db_session.scalars(select(ClientDebtor)).all()]

    again = remove_redundant_credit_limits(db_session)
    db_session.commit()

    assert again.pairs_processed == 0
    assert again.rows_deleted == 0
    assert [(row.id, row.credit_limit, row.is_active) for row in db_session.scalars(select(ClientDebtor)).all()] == snapshot


def test_pairs_without_duplicates_are_untouched(db_session: Session) -> None:
    client = Client(name="Single Client")
    debtor = Debtor(entity_name="Single Debtor")
    db_session.add_all([client, debtor])
    db_session.flush()
    db_session.add(ClientDebtor(client_id=client.id, debtor_id=debtor.id, credit_limit=Decimal("5000")))
    db_session.commit()

    report = remove_redundant_credit_limits(db_session)
    assert report.pairs_processed == 0
    assert db_session.scalars(select(AuditLog)).all() == []


def test_changes_are_dumped_for_rollback(db_session: Session, duplicate_pair: DuplicatePair, tmp_path: Path) -> None:
    report = remove_redundant_credit_limits(db_session, dump_dir=tmp_path / "dumps")
    db_session.commit()

    assert report.dump_path is not None
    dump = json.loads(Path(report.dump_path).read_text(encoding="utf-8"))
    assert "runAt" in dump
    assert len(dump["changes"]) == 1
    change = dump["changes"][0]
    assert change["kept"] == str(duplicate_pair.original.id)
    assert len(change["before"]) == 2
    assert change["after"]["isActive"] is True


def test_update_credit_limits_syncs_from_active_application(db_session: Session, tmp_path: Path) -> None:
    client = Client(name="Sync Client")
    debtor = Debtor(entity_name="Sync Debtor")
    db_session.add_all([client, debtor])
    db_session.flush()
    client_debtor = ClientDebtor(client_id=client.id, debtor_id=debtor.id, credit_limit=Decimal("8000"))
    db_session.add(client_debtor)
    db_session.flush()
    application = Application(
        application_id="APP-SYNC",
        client_id=client.id,
        debtor_id=debtor.id,
        client_debtor_id=client_debtor.id,
        status="APPROVED",
        is_endorsed_limit=True,
        expiry_date=date(2026, 12, 31),
    )
    db_session.add(application)
    db_session.flush()
    client_debtor.active_application_id = application.id
    db_session.commit()

    report = update_credit_limits(db_session, dump_dir=tmp_path)
    db_session.commit()

    assert report.pairs_processed == 1
    db_session.refresh(client_debtor)
    assert client_debtor.expiry_date == date(2026, 12, 31)
    assert client_debtor.is_endorsed_limit is True
    assert Path(report.dump_path).exists()

    assert update_credit_limits(db_session).pairs_processed == 0
