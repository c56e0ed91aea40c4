from __future__ import annotations

import io
import json
import logging

import httpx
import pytest

from app.core.config import Settings
from app.crm.gateway import (
    CrmGatewayError,
    CrmRecordType,
    HttpCrmGateway,
    InMemoryCrmGateway,
    build_crm_gateway,
)


def _gateway(handler) -> HttpCrmGateway:  # type: ignore[no-untyped-def]
    settings = Settings(crm_base_url="https://crm.test", crm_api_key="secret-key")
    client = httpx.Client(base_url=settings.crm_base_url, transport=httpx.MockTransport(handler))
    return HttpCrmGateway(settings, client=client)


def test_fetch_entity_returns_the_record() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"record": {"id": "77", "name": "Acme"}})

    gateway = _gateway(handler)
    assert gateway.fetch_entity(CrmRecordType.CLIENT, "77") == {"id": "77", "name": "Acme"}
    assert seen[0].url.path == "/accounts/77"
    assert seen[0].headers["Authorization"] == "Bearer secret-key"


def test_read_failures_degrade_to_empty_results(caplog: pytest.LogCaptureFixture) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"message": "maintenance"})

    gateway = _gateway(handler)
    caplog.set_level(logging.WARNING, logger="app.crm.gateway")

    assert gateway.fetch_entity(CrmRecordType.CLIENT, "77") is None
    assert gateway.search_entities(CrmRecordType.INSURER, "acme") == []
    assert gateway.list_child_records(CrmRecordType.CLAIM, "77", 1, 10) == {"list": [], "totalCount": 0}

    failures = [record for record in caplog.records if record.getMessage() == "crm_read_failed"]
    assert [getattr(record, "operation", None) for record in failures] == [
        "fetch_entity",
        "search_entities",
        "list_child_records",
    ]


def test_not_found_is_a_quiet_miss(caplog: pytest.LogCaptureFixture) -> None:
    gateway = _gateway(lambda request: httpx.Response(404))
    caplog.set_level(logging.WARNING, logger="app.crm.gateway")

    assert gateway.fetch_entity(CrmRecordType.POLICY, "missing") is None
    assert not [record for record in caplog.records if record.getMessage() == "crm_read_failed"]


def test_transport_errors_degrade_reads() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    gateway = _gateway(handler)
    assert gateway.search_entities(CrmRecordType.CLIENT, "acme") == []


def test_malformed_bodies_degrade_reads(caplog: pytest.LogCaptureFixture) -> None:
    gateway = _gateway(lambda request: httpx.Response(200, text="<html>maintenance</html>"))
    caplog.set_level(logging.WARNING, logger="app.crm.gateway")

    assert gateway.list_child_records(CrmRecordType.CLAIM, "1", 1, 10) == {"list": [], "totalCount": 0}
    assert gateway.fetch_entity(CrmRecordType.CLIENT, "1") is None
    assert gateway.search_entities(CrmRecordType.CLIENT, "acme") == []

    failures = [record for record in caplog.records if record.getMessage() == "crm_read_failed"]
    assert len(failures) == 3

    listed = _gateway(lambda request: httpx.Response(200, json=[{"id": "1"}]))
    assert listed.list_child_records(CrmRecordType.CLAIM, "1", 1, 10) == {"list": [], "totalCount": 0}


def test_malformed_body_on_write_raises() -> None:
    gateway = _gateway(lambda request: httpx.Response(201, text="created"))
    with pytest.raises(CrmGatewayError):
        gateway.create_record(CrmRecordType.CLIENT, {"name": "Acme"})


def test_search_sends_account_type_filter() -> None:
    queries: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        queries.append(json.loads(request.url.params["q"]))
        return httpx.Response(200, json={"list": [{"record": {"id": "1", "name": "Acme Insurance"}}]})

    gateway = _gateway(handler)
    assert gateway.search_entities(CrmRecordType.INSURER, "acme") == [{"id": "1", "name": "Acme Insurance"}]
    assert queries == [{"name": {"$con": "acme"}, "type": "Insurer"}]


def test_child_records_report_total_count() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/claims"
        return httpx.Response(
            200,
            json={"list": [{"record": {"id": "c1"}}, {"record": {"id": "c2"}}], "metadata": {"total_count": 12}},
        )

    page = _gateway(handler).list_child_records(CrmRecordType.CLAIM, "77", 2, 2)
    assert page == {"list": [{"id": "c1"}, {"id": "c2"}], "totalCount": 12}


def test_write_failures_raise() -> None:
    gateway = _gateway(lambda request: httpx.Response(500, json={"message": "boom"}))

    with pytest.raises(CrmGatewayError) as exc_info:
        gateway.create_record(CrmRecordType.CONTACT, {"name": "New Contact"})
    assert exc_info.value.operation == "create_record"
    assert exc_info.value.status_code == 500

    with pytest.raises(CrmGatewayError):
        gateway.upload_document("77", CrmRecordType.CLIENT, io.BytesIO(b"%PDF"), {"filename": "policy.pdf"})


def test_create_record_returns_the_stored_record() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(201, json={"record": {"id": "501", "name": "New Client"}})

    record = _gateway(handler).create_record(CrmRecordType.CLIENT, {"name": "New Client"})
    assert record == {"id": "501", "name": "New Client"}
    assert bodies == [{"name": "New Client", "type": "Client"}]


def test_in_memory_gateway_pages_children() -> None:
    gateway = InMemoryCrmGateway()
    for index in range(3):
        gateway.add_child(CrmRecordType.CLAIM, "acct-1", {"name": f"Claim {index}"})

    page = gateway.list_child_records(CrmRecordType.CLAIM, "acct-1", 2, 2)
    assert page["totalCount"] == 3
    assert [item["name"] for item in page["list"]] == ["Claim 2"]
    assert gateway.list_child_records(CrmRecordType.CLAIM, "other", 1, 2) == {"list": [], "totalCount": 0}


def test_in_memory_gateway_records_uploads() -> None:
    gateway = InMemoryCrmGateway()
    document = gateway.upload_document("acct-1", CrmRecordType.CLIENT, io.BytesIO(b"abc"), {"filename": "a.txt"})
    assert document["size"] == 3
    assert document["parentobject"] == "Accounts"
    assert gateway.documents == [document]


def test_build_gateway_picks_backend_from_settings() -> None:
    assert isinstance(build_crm_gateway(Settings(crm_backend="auto", crm_api_key="")), InMemoryCrmGateway)
    http_gateway = build_crm_gateway(Settings(crm_backend="auto", crm_api_key="key"))
    assert isinstance(http_gateway, HttpCrmGateway)
    http_gateway.close()
    assert isinstance(build_crm_gateway(Settings(crm_backend="memory", crm_api_key="key")), InMemoryCrmGateway)
