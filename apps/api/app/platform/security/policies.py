from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import StrEnum

from app.metrics import observe_module_access_denied
from app.platform.security.context import AuthContext
from app.platform.security.errors import ModuleAccessDeniedError


logger = logging.getLogger("app.security.policy")


class AccessLevel(StrEnum):
    NONE = "NONE"
    OWN = "OWN"
    FULL = "FULL"


class AccessType(StrEnum):
    READ = "read"
    WRITE = "write"
    FULL_ACCESS = "full-access"


_CLIENT_USER_ACCESS_TYPES = [AccessType.READ.value, AccessType.WRITE.value, AccessType.FULL_ACCESS.value]
_WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
_READ_ONLY_WRITE_SUFFIXES = ("/column-name", "/check-endorsed-limit")


class AccessPolicy:
    """Resolves module visibility for an actor from its module-access list.

    The policy is pure: it reads the access entries already loaded on the
    context and never touches the store.
    """

    def __init__(self, known_modules: Iterable[str]) -> None:
        self._known_modules = frozenset(known_modules)

    @property
    def known_modules(self) -> frozenset[str]:
        return self._known_modules

    def resolve_access(self, ctx: AuthContext, module_name: str) -> AccessLevel:
        if module_name not in self._known_modules:
            return AccessLevel.NONE
        if ctx.is_client_user:
            return AccessLevel.OWN

        entry = ctx.module_entry(module_name)
        if entry is None or not entry.access_types:
            return AccessLevel.NONE
        if AccessType.FULL_ACCESS.value in entry.access_types:
            return AccessLevel.FULL
        return AccessLevel.OWN

    def access_types(self, ctx: AuthContext, module_name: str) -> list[str]:
        if ctx.is_client_user:
            return list(_CLIENT_USER_ACCESS_TYPES)
        entry = ctx.module_entry(module_name)
        return list(entry.access_types) if entry is not None else []

    def check_module_access(self, ctx: AuthContext, module_name: str, method: str, path: str = "") -> list[str]:
        """Return the actor's access types for the module, or raise when the method is not allowed."""

        granted = self.access_types(ctx, module_name)
        if ctx.is_client_user:
            return granted

        method = method.upper()
        if method not in _WRITE_METHODS:
            required = {AccessType.READ.value, AccessType.FULL_ACCESS.value}
        elif path.rstrip("/").endswith(_READ_ONLY_WRITE_SUFFIXES):
            required = {AccessType.READ.value, AccessType.WRITE.value, AccessType.FULL_ACCESS.value}
        else:
            required = {AccessType.WRITE.value, AccessType.FULL_ACCESS.value}

        if module_name not in self._known_modules or not required.intersection(granted):
            observe_module_access_denied(module=module_name, method=method)
            logger.warning(
                "module_access_denied",
                extra={"module_name": module_name, "method": method, "actor_id": str(ctx.user_id)},
            )
            raise ModuleAccessDeniedError(module_name, method)
        return granted
