from app.platform.security.context import ActorType, AuthContext, ModuleAccessEntry
from app.platform.security.errors import AuthorizationError, ModuleAccessDeniedError, OutOfScopeError
from app.platform.security.policies import AccessLevel, AccessPolicy, AccessType
from app.platform.security.repository import BaseRepository, ScopeResolver
from app.platform.security.rls import apply_scope_filter, match_all, match_nothing, validate_scope_read

__all__ = [
    "AccessLevel",
    "AccessPolicy",
    "AccessType",
    "ActorType",
    "AuthContext",
    "AuthorizationError",
    "BaseRepository",
    "ModuleAccessDeniedError",
    "ModuleAccessEntry",
    "OutOfScopeError",
    "ScopeResolver",
    "apply_scope_filter",
    "match_all",
    "match_nothing",
    "validate_scope_read",
]
