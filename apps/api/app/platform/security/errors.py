from __future__ import annotations


class AuthorizationError(Exception):
    """Base authorization error for module-access and scope enforcement failures."""


class ModuleAccessDeniedError(AuthorizationError):
    def __init__(self, module_name: str, method: str) -> None:
        self.module_name = module_name
        self.method = method
        super().__init__(f"Access denied for module '{module_name}' ({method})")


class OutOfScopeError(AuthorizationError):
    """Raised when a record addressed by id lies outside the actor's visibility scope."""

    def __init__(self, entity_type: str, entity_id: str) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"Out-of-scope {entity_type} '{entity_id}'")
