from __future__ import annotations

import uuid

import pytest

from app.platform.security.context import ActorType, AuthContext, ModuleAccessEntry, parse_module_access
from app.platform.security.errors import ModuleAccessDeniedError
from app.platform.security.policies import AccessLevel, AccessPolicy
from app.risk.catalog import ModuleName


@pytest.fixture()
def policy() -> AccessPolicy:
    return AccessPolicy(module.value for module in ModuleName)


def _user(*entries: tuple[str, tuple[str, ...]]) -> AuthContext:
    return AuthContext(
        user_id=uuid.uuid4(),
        module_access=[ModuleAccessEntry(name=name, access_types=types) for name, types in entries],
    )


def _client_user() -> AuthContext:
    return AuthContext(user_id=uuid.uuid4(), actor_type=ActorType.CLIENT_USER, client_id=uuid.uuid4())


def test_full_access_entry_resolves_to_full(policy: AccessPolicy) -> None:
    ctx = _user(("client", ("read", "full-access")))
    assert policy.resolve_access(ctx, "client") == AccessLevel.FULL


def test_read_or_write_entry_resolves_to_own(policy: AccessPolicy) -> None:
    ctx = _user(("debtor", ("read",)), ("application", ("read", "write")))
    assert policy.resolve_access(ctx, "debtor") == AccessLevel.OWN
    assert policy.resolve_access(ctx, "application") == AccessLevel.OWN


def test_missing_or_empty_entry_resolves_to_none(policy: AccessPolicy) -> None:
    ctx = _user(("task", ()))
    assert policy.resolve_access(ctx, "task") == AccessLevel.NONE
    assert policy.resolve_access(ctx, "client") == AccessLevel.NONE


def test_unknown_module_is_never_granted(policy: AccessPolicy) -> None:
    ctx = _user(("reporting", ("full-access",)))
    assert policy.resolve_access(ctx, "reporting") == AccessLevel.NONE
    with pytest.raises(ModuleAccessDeniedError):
        policy.check_module_access(ctx, "reporting", "GET")


def test_client_user_is_always_scoped_to_own(policy: AccessPolicy) -> None:
    ctx = _client_user()
    assert policy.resolve_access(ctx, "application") == AccessLevel.OWN
    assert policy.check_module_access(ctx, "application", "POST") == ["read", "write", "full-access"]


def test_read_methods_need_read_or_full_access(policy: AccessPolicy) -> None:
    reader = _user(("client", ("read",)))
    writer = _user(("client", ("write",)))

    assert policy.check_module_access(reader, "client", "GET") == ["read"]
    with pytest.raises(ModuleAccessDeniedError):
        policy.check_module_access(writer, "client", "GET")


def test_write_methods_need_write_or_full_access(policy: AccessPolicy) -> None:
    reader = _user(("application", ("read",)))
    admin = _user(("application", ("full-access",)))

    with pytest.raises(ModuleAccessDeniedError):
        policy.check_module_access(reader, "application", "POST", "/api/risk/application")
    assert policy.check_module_access(admin, "application", "DELETE") == ["full-access"]


def test_column_preference_updates_only_need_read(policy: AccessPolicy) -> None:
    reader = _user(("debtor", ("read",)))
    granted = policy.check_module_access(reader, "debtor", "PUT", "/api/risk/debtor/column-name")
    assert granted == ["read"]


def test_denied_access_is_logged(policy: AccessPolicy, caplog: pytest.LogCaptureFixture) -> None:
    ctx = _user()
    with pytest.raises(ModuleAccessDeniedError):
        policy.check_module_access(ctx, "claim", "get")

    records = [record for record in caplog.records if record.getMessage() == "module_access_denied"]
    assert records
    assert getattr(records[-1], "module_name", None) == "claim"
    assert getattr(records[-1], "method", None) == "GET"


def test_parse_module_access_ignores_malformed_documents() -> None:
    entries = parse_module_access(
        [{"name": "client", "accessTypes": ["read", "full-access"]}, "garbage", {"name": "task"}]
    )
    assert entries == [
        ModuleAccessEntry(name="client", access_types=("read", "full-access")),
        ModuleAccessEntry(name="task", access_types=()),
    ]
