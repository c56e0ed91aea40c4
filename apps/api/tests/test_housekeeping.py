from __future__ import annotations

import logging
from collections.abc import Generator
from decimal import Decimal
from pathlib import Path

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings
from app.core.database import Base
from app.risk import tasks
from app.risk.models import Client, ClientDebtor, Debtor, Organization


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
def dump_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    monkeypatch.setenv("REMEDIATION_DUMP_DIR", str(tmp_path))
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


def _runs(job_type: str, status: str) -> float:
    return REGISTRY.get_sample_value("housekeeping_jobs_total", {"job_type": job_type, "status": status}) or 0.0


def test_reset_counters_job_commits_and_logs(
    session_factory: sessionmaker,
    caplog: pytest.LogCaptureFixture,
) -> None:
    with session_factory() as session:
        session.add_all([Organization(name="Org", application_count=42), Organization(name="Gone", is_deleted=True)])
        session.commit()

    caplog.set_level(logging.INFO, logger="app.risk.tasks")
    before = _runs("reset_application_counter", "succeeded")

    result = tasks.run_housekeeping_job("reset_application_counter", tasks._reset_counters, session_factory)

    assert result == {"organizations_reset": 1}
    with session_factory() as session:
        counts = dict(session.execute(select(Organization.name, Organization.application_count)).all())
    assert counts["Org"] == 0

    assert _runs("reset_application_counter", "succeeded") == before + 1
    completed = [record for record in caplog.records if record.getMessage() == "housekeeping_job_completed"]
    assert completed
    assert getattr(completed[-1], "job_type", None) == "reset_application_counter"
    assert getattr(completed[-1], "organizations_reset", None) == 1


def test_failed_job_rolls_back_and_reraises(
    session_factory: sessionmaker,
    caplog: pytest.LogCaptureFixture,
) -> None:
    def broken(session: Session) -> dict:
        session.add(Organization(name="Half Written"))
        session.flush()
        raise RuntimeError("disk full")

    caplog.set_level(logging.ERROR, logger="app.risk.tasks")
    before = _runs("broken_job", "failed")

    with pytest.raises(RuntimeError, match="disk full"):
        tasks.run_housekeeping_job("broken_job", broken, session_factory)

    with session_factory() as session:
        assert session.scalars(select(Organization)).all() == []
    assert _runs("broken_job", "failed") == before + 1
    failures = [record for record in caplog.records if record.getMessage() == "housekeeping_job_failed"]
    assert failures
    assert failures[-1].exc_info is not None


def test_remove_redundant_job_writes_a_dump(session_factory: sessionmaker, dump_dir: Path) -> None:
    with session_factory() as session:
        client = Client(name="Job Client")
        debtor = Debtor(entity_name="Job Debtor")
        session.add_all([client, debtor])
        session.flush()
        session.add_all(
            [
                ClientDebtor(client_id=client.id, debtor_id=debtor.id, credit_limit=Decimal("100"), is_active=False),
                ClientDebtor(client_id=client.id, debtor_id=debtor.id, credit_limit=Decimal("200")),
            ]
        )
        session.commit()

    result = tasks.run_housekeeping_job("remove_redundant_credit_limits", tasks._remove_redundant, session_factory)

    assert result["pairs_processed"] == 1
    assert result["rows_deleted"] == 1
    assert Path(result["dump_path"]).parent == dump_dir
    with session_factory() as session:
        assert len(session.scalars(select(ClientDebtor)).all()) == 1


def test_housekeeping_tasks_are_registered() -> None:
    registered = set(tasks.celery_app.tasks.keys())
    assert {
        "app.risk.tasks.reset_application_counter",
        "app.risk.tasks.remove_redundant_credit_limits",
        "app.risk.tasks.update_credit_limits",
    } <= registered
