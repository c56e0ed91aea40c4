from __future__ import annotations

import itertools
import json
import logging
import time
from enum import StrEnum
from typing import Any, BinaryIO, Protocol

import httpx
from opentelemetry import trace

from app.context import get_correlation_id
from app.core.config import Settings, get_settings
from app.metrics import observe_crm_call


logger = logging.getLogger("app.crm.gateway")
tracer = trace.get_tracer("app.crm.gateway")


class CrmRecordType(StrEnum):
    CLIENT = "client"
    INSURER = "insurer"
    CONTACT = "contact"
    POLICY = "policy"
    CLAIM = "claim"
    DOCUMENT = "document"


_RESOURCES: dict[CrmRecordType, str] = {
    CrmRecordType.CLIENT: "accounts",
    CrmRecordType.INSURER: "accounts",
    CrmRecordType.CONTACT: "contacts",
    CrmRecordType.POLICY: "policies",
    CrmRecordType.CLAIM: "claims",
    CrmRecordType.DOCUMENT: "documents",
}

_ACCOUNT_TYPES: dict[CrmRecordType, str] = {
    CrmRecordType.CLIENT: "Client",
    CrmRecordType.INSURER: "Insurer",
}

_PARENT_OBJECTS: dict[CrmRecordType, str] = {
    CrmRecordType.CLIENT: "Accounts",
    CrmRecordType.INSURER: "Accounts",
    CrmRecordType.CLAIM: "Claims",
    CrmRecordType.POLICY: "Policies",
}


class CrmGatewayError(Exception):
    """A CRM call failed; raised on write paths only."""

    def __init__(self, operation: str, message: str, status_code: int | None = None) -> None:
        self.operation = operation
        self.status_code = status_code
        super().__init__(f"CRM {operation} failed: {message}")


class CrmSyncGateway(Protocol):
    def fetch_entity(self, record_type: CrmRecordType, crm_id: str) -> dict[str, Any] | None: ...

    def search_entities(self, record_type: CrmRecordType, keyword: str) -> list[dict[str, Any]]: ...

    def list_child_records(
        self,
        record_type: CrmRecordType,
        parent_crm_id: str,
        page: int,
        limit: int,
    ) -> dict[str, Any]: ...

    def create_record(self, record_type: CrmRecordType, fields: dict[str, Any]) -> dict[str, Any]: ...

    def upload_document(
        self,
        parent_crm_id: str,
        parent_type: CrmRecordType,
        file_stream: BinaryIO,
        metadata: dict[str, Any],
    ) -> dict[str, Any]: ...


def _empty_page() -> dict[str, Any]:
    return {"list": [], "totalCount": 0}


def _records(payload: dict[str, Any]) -> list[dict[str, Any]]:
    return [item.get("record", item) for item in payload.get("list") or [] if isinstance(item, dict)]


def _decode(response: httpx.Response) -> dict[str, Any]:
    """Body as a JSON object; anything else is a ``httpx.DecodingError``."""

    if not response.content:
        return {}
    try:
        payload = response.json()
    except ValueError as exc:
        raise httpx.DecodingError(f"CRM returned a non-JSON body: {exc}", request=response.request) from exc
    if not isinstance(payload, dict):
        raise httpx.DecodingError(
            f"CRM returned {type(payload).__name__} instead of an object", request=response.request
        )
    return payload


class HttpCrmGateway:
    """httpx-backed CRM client.

    Reads degrade to ``None`` / empty results after logging; writes raise
    ``CrmGatewayError`` so the calling operation is not reported as done.
    """

    def __init__(self, settings: Settings | None = None, client: httpx.Client | None = None) -> None:
        self.settings = settings or get_settings()
        self._client = client or httpx.Client(
            base_url=self.settings.crm_base_url,
            timeout=self.settings.crm_timeout_seconds,
        )

    def close(self) -> None:
        self._client.close()

    def _headers(self) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self.settings.crm_api_key}"}
        correlation_id = get_correlation_id()
        if correlation_id:
            headers["x-correlation-id"] = correlation_id
        return headers

    def _request(self, operation: str, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        started = time.perf_counter()
        with tracer.start_as_current_span(f"crm.{operation}") as span:
            span.set_attribute("http.method", method)
            span.set_attribute("crm.url", url)
            span.set_attribute("correlation_id", get_correlation_id() or "")
            try:
                response = self._client.request(method, url, headers=self._headers(), **kwargs)
                span.set_attribute("http.status_code", response.status_code)
                response.raise_for_status()
                payload = _decode(response)
            except httpx.HTTPError:
                observe_crm_call(operation=operation, outcome="error", duration=time.perf_counter() - started)
                raise
            observe_crm_call(operation=operation, outcome="ok", duration=time.perf_counter() - started)
            return payload

    def _log_read_failure(self, operation: str, exc: Exception, **fields: Any) -> None:
        logger.warning(
            "crm_read_failed",
            extra={"operation": operation, "error": str(exc)[:500], **fields},
        )

    def fetch_entity(self, record_type: CrmRecordType, crm_id: str) -> dict[str, Any] | None:
        url = f"/{_RESOURCES[record_type]}/{crm_id}"
        try:
            payload = self._request("fetch_entity", "GET", url)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code != 404:
                self._log_read_failure("fetch_entity", exc, record_type=record_type.value)
            return None
        except httpx.HTTPError as exc:
            self._log_read_failure("fetch_entity", exc, record_type=record_type.value)
            return None
        record = payload.get("record", payload)
        return record or None

    def search_entities(self, record_type: CrmRecordType, keyword: str) -> list[dict[str, Any]]:
        query: dict[str, Any] = {"name": {"$con": keyword}}
        if record_type in _ACCOUNT_TYPES:
            query["type"] = _ACCOUNT_TYPES[record_type]
        try:
            payload = self._request(
                "search_entities",
                "GET",
                f"/{_RESOURCES[record_type]}",
                params={"q": json.dumps(query), "limit": 100},
            )
        except httpx.HTTPError as exc:
            self._log_read_failure("search_entities", exc, record_type=record_type.value)
            return []
        return _records(payload)

    def list_child_records(
        self,
        record_type: CrmRecordType,
        parent_crm_id: str,
        page: int,
        limit: int,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"limit": limit, "page": page}
        if record_type == CrmRecordType.CLAIM:
            url = "/claims"
            params["q"] = json.dumps({"accountid": {"$in": [parent_crm_id]}})
        elif record_type == CrmRecordType.DOCUMENT:
            url = "/documents"
            params["q"] = json.dumps({"parentobject": "Accounts", "parentid": parent_crm_id})
        else:
            url = f"/accounts/{parent_crm_id}/{_RESOURCES[record_type]}"
        try:
            payload = self._request("list_child_records", "GET", url, params=params)
        except httpx.HTTPError as exc:
            self._log_read_failure("list_child_records", exc, record_type=record_type.value)
            return _empty_page()
        metadata = payload.get("metadata")
        total = metadata.get("total_count") if isinstance(metadata, dict) else None
        return {"list": _records(payload), "totalCount": int(total or 0)}

    def create_record(self, record_type: CrmRecordType, fields: dict[str, Any]) -> dict[str, Any]:
        body = dict(fields)
        if record_type in _ACCOUNT_TYPES:
            body.setdefault("type", _ACCOUNT_TYPES[record_type])
        try:
            payload = self._request("create_record", "POST", f"/{_RESOURCES[record_type]}", json=body)
        except httpx.HTTPStatusError as exc:
            raise CrmGatewayError("create_record", str(exc), exc.response.status_code) from exc
        except httpx.HTTPError as exc:
            raise CrmGatewayError("create_record", str(exc)) from exc
        return payload.get("record", payload)

    def upload_document(
        self,
        parent_crm_id: str,
        parent_type: CrmRecordType,
        file_stream: BinaryIO,
        metadata: dict[str, Any],
    ) -> dict[str, Any]:
        filename = str(metadata.get("filename") or "document")
        data = {key: str(value) for key, value in metadata.items() if key != "filename"}
        data["parentobject"] = _PARENT_OBJECTS.get(parent_type, "Accounts")
        data["parentid"] = parent_crm_id
        try:
            payload = self._request(
                "upload_document",
                "POST",
                "/documents",
                data=data,
                files={"file": (filename, file_stream)},
            )
        except httpx.HTTPStatusError as exc:
            raise CrmGatewayError("upload_document", str(exc), exc.response.status_code) from exc
        except httpx.HTTPError as exc:
            raise CrmGatewayError("upload_document", str(exc)) from exc
        return payload.get("record", payload) or {"status": "uploaded"}


class InMemoryCrmGateway:
    """Dictionary-backed CRM used for local runs and tests."""

    def __init__(self) -> None:
        self._ids = itertools.count(1000)
        self.records: dict[tuple[CrmRecordType, str], dict[str, Any]] = {}
        self.children: dict[tuple[CrmRecordType, str], list[dict[str, Any]]] = {}
        self.documents: list[dict[str, Any]] = []

    def add_record(self, record_type: CrmRecordType, record: dict[str, Any]) -> dict[str, Any]:
        record = dict(record)
        record.setdefault("id", str(next(self._ids)))
        self.records[(record_type, str(record["id"]))] = record
        return record

    def add_child(self, record_type: CrmRecordType, parent_crm_id: str, record: dict[str, Any]) -> dict[str, Any]:
        stored = self.add_record(record_type, record)
        self.children.setdefault((record_type, str(parent_crm_id)), []).append(stored)
        return stored

    def fetch_entity(self, record_type: CrmRecordType, crm_id: str) -> dict[str, Any] | None:
        return self.records.get((record_type, str(crm_id)))

    def search_entities(self, record_type: CrmRecordType, keyword: str) -> list[dict[str, Any]]:
        needle = keyword.lower()
        return [
            record
            for (kind, _), record in self.records.items()
            if kind == record_type and needle in str(record.get("name", "")).lower()
        ]

    def list_child_records(
        self,
        record_type: CrmRecordType,
        parent_crm_id: str,
        page: int,
        limit: int,
    ) -> dict[str, Any]:
        rows = self.children.get((record_type, str(parent_crm_id)), [])
        start = (max(page, 1) - 1) * limit
        return {"list": rows[start : start + limit], "totalCount": len(rows)}

    def create_record(self, record_type: CrmRecordType, fields: dict[str, Any]) -> dict[str, Any]:
        return self.add_record(record_type, fields)

    def upload_document(
        self,
        parent_crm_id: str,
        parent_type: CrmRecordType,
        file_stream: BinaryIO,
        metadata: dict[str, Any],
    ) -> dict[str, Any]:
        document = {
            "id": str(next(self._ids)),
            "parentid": parent_crm_id,
            "parentobject": _PARENT_OBJECTS.get(parent_type, "Accounts"),
            "size": len(file_stream.read()),
            **metadata,
        }
        self.documents.append(document)
        return document


def build_crm_gateway(settings: Settings | None = None) -> CrmSyncGateway:
    settings = settings or get_settings()
    backend = settings.crm_backend.lower()
    if backend == "auto":
        backend = "http" if settings.crm_api_key else "memory"
    if backend == "http":
        return HttpCrmGateway(settings)
    return InMemoryCrmGateway()
