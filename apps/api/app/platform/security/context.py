from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class ActorType(StrEnum):
    USER = "user"
    CLIENT_USER = "client-user"


@dataclass(frozen=True, slots=True)
class ModuleAccessEntry:
    name: str
    access_types: tuple[str, ...] = ()

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> ModuleAccessEntry:
        raw_types = document.get("accessTypes") or []
        return cls(name=str(document.get("name", "")), access_types=tuple(str(item) for item in raw_types))


@dataclass(slots=True)
class AuthContext:
    """The authenticated actor a request runs as: an internal user or a client user."""

    user_id: uuid.UUID
    actor_type: ActorType = ActorType.USER
    client_id: uuid.UUID | None = None
    name: str | None = None
    role: str | None = None
    correlation_id: str | None = None
    module_access: list[ModuleAccessEntry] = field(default_factory=list)
    column_preferences: dict[str, list[str]] = field(default_factory=dict)
    _cache: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_client_user(self) -> bool:
        return self.actor_type == ActorType.CLIENT_USER

    def module_entry(self, module_name: str) -> ModuleAccessEntry | None:
        for entry in self.module_access:
            if entry.name == module_name:
                return entry
        return None


def parse_module_access(documents: list[dict[str, Any]] | None) -> list[ModuleAccessEntry]:
    return [ModuleAccessEntry.from_document(item) for item in documents or [] if isinstance(item, dict)]


def parse_column_preferences(documents: list[dict[str, Any]] | None) -> dict[str, list[str]]:
    preferences: dict[str, list[str]] = {}
    for item in documents or []:
        if not isinstance(item, dict):
            continue
        module_name = item.get("moduleName")
        if not isinstance(module_name, str):
            continue
        preferences[module_name] = [str(column) for column in item.get("columns") or []]
    return preferences
