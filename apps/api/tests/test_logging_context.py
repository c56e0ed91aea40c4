from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.context import reset_correlation_id, set_correlation_id
from app.core.auth import create_token
from app.core.config import get_settings
from app.core.database import Base, get_db
from app.logging import JsonLogFormatter
from app.main import app
from app.risk.models import Client, User


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


@pytest.fixture(autouse=True)
def setup_env() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def analyst(db_session: Session) -> User:
    user = User(
        name="Log Analyst",
        email="log@example.com",
        module_access=[{"name": "debtor", "accessTypes": ["read"]}],
    )
    db_session.add(user)
    db_session.commit()
    return user


def test_logs_include_correlation_id_for_http(client: TestClient, analyst: User, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    path = f"/api/risk/dashboard/{uuid.uuid4()}"
    response = client.get(
        path,
        headers={"Authorization": f"Bearer {create_token(str(analyst.id))}", "X-Correlation-Id": "abc-123"},
    )
    assert response.status_code == 403

    records = [record for record in caplog.records if record.name == "app.request" and record.getMessage() == "http.request"]
    assert records
    assert any(
        getattr(record, "correlation_id", None) == "abc-123"
        and getattr(record, "method", None) == "GET"
        and getattr(record, "path", None) == "/api/risk/dashboard/{id}"
        and getattr(record, "status_code", None) == 403
        and getattr(record, "panel", None) == "risk"
        and getattr(record, "actor_id", None) == str(analyst.id)
        and isinstance(getattr(record, "duration_ms", None), float)
        for record in records
    )


def test_module_denial_is_logged_with_module_name(
    client: TestClient,
    analyst: User,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.INFO)

    response = client.get("/api/risk/client", headers={"Authorization": f"Bearer {create_token(str(analyst.id))}"})
    assert response.status_code == 403

    denials = [record for record in caplog.records if record.getMessage() == "module_access_denied"]
    assert denials
    assert getattr(denials[-1], "module_name", None) == "client"
    assert getattr(denials[-1], "method", None) == "GET"


def test_scope_denial_is_logged(
    client: TestClient,
    db_session: Session,
    caplog: pytest.LogCaptureFixture,
) -> None:
    user = User(name="Scoped", email="scoped@example.com", module_access=[{"name": "client", "accessTypes": ["read"]}])
    foreign = Client(name="Foreign Co")
    db_session.add_all([user, foreign])
    db_session.commit()
    caplog.set_level(logging.INFO)

    response = client.get(
        f"/api/risk/dashboard/{foreign.id}",
        headers={"Authorization": f"Bearer {create_token(str(user.id))}"},
    )
    assert response.status_code == 403

    denials = [record for record in caplog.records if record.getMessage() == "scope_denied"]
    assert denials
    assert getattr(denials[-1], "entity_type", None) == "client"


def test_json_formatter_keeps_known_fields_only() -> None:
    token = set_correlation_id("fmt-1")
    try:
        record = logging.getLogger("app.test").makeRecord(
            "app.test",
            logging.INFO,
            __file__,
            1,
            "housekeeping_job_completed",
            (),
            None,
            extra={"job_type": "update_credit_limits", "secret_value": "hidden"},
        )
    finally:
        reset_correlation_id(token)

    payload = json.loads(JsonLogFormatter().format(record))
    assert payload["msg"] == "housekeeping_job_completed"
    assert payload["correlation_id"] == "fmt-1"
    assert payload["fields"] == {"job_type": "update_credit_limits"}
