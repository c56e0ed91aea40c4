from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.platform.security.context import ActorType, AuthContext
from app.platform.security.policies import AccessLevel
from app.risk.catalog import ModuleName
from app.risk.models import Note
from app.risk.repositories import Repositories
from app.risk.search import paginate


# Notes are gated by the module of the record they are attached to.
NOTE_TARGETS: dict[str, ModuleName] = {
    "client": ModuleName.CLIENT,
    "debtor": ModuleName.DEBTOR,
    "application": ModuleName.APPLICATION,
    "claim": ModuleName.CLAIM,
    "insurer": ModuleName.INSURER,
}


class UnknownNoteTargetError(ValueError):
    def __init__(self, note_for: str) -> None:
        self.note_for = note_for
        super().__init__(f"Notes are not kept for '{note_for}'")


def target_module(note_for: str) -> ModuleName:
    try:
        return NOTE_TARGETS[note_for]
    except KeyError:
        raise UnknownNoteTargetError(note_for) from None


class NoteService:
    def __init__(self, repositories: Repositories) -> None:
        self.repositories = repositories

    def list_notes(
        self,
        session: Session,
        ctx: AuthContext,
        access: AccessLevel,
        note_for: str,
        entity_id: uuid.UUID,
        *,
        page: int = 1,
        limit: int = 10,
    ) -> dict[str, Any]:
        """Notes attached to one entity, newest first, filtered by note visibility."""

        target_module(note_for)
        if access == AccessLevel.NONE:
            return {"docs": [], "total": 0, "page": max(1, page), "limit": max(1, limit), "pages": 0}

        scope = self.repositories.notes.scope_predicate(session, ctx, access, entity_id)
        stmt = (
            select(Note)
            .where(scope, Note.note_for == note_for)
            .order_by(Note.created_at.desc(), Note.id)
        )
        result = paginate(session, stmt, lambda row: row[0], page=page, limit=limit)

        notes: list[Note] = result["docs"]
        user_names = self.repositories.users.display_names(
            session, {note.created_by_id for note in notes if note.created_by_type == ActorType.USER.value}
        )
        client_user_names = self.repositories.client_users.display_names(
            session, {note.created_by_id for note in notes if note.created_by_type == ActorType.CLIENT_USER.value}
        )
        result["docs"] = [
            {
                "_id": note.id,
                "noteFor": note.note_for,
                "entityId": note.entity_id,
                "description": note.description,
                "isPublic": note.is_public,
                "createdByType": note.created_by_type,
                "createdById": note.created_by_id,
                "createdByName": (
                    user_names if note.created_by_type == ActorType.USER.value else client_user_names
                ).get(note.created_by_id, ""),
                "isEditable": note.created_by_type == ctx.actor_type.value and note.created_by_id == ctx.user_id,
                "createdAt": note.created_at,
            }
            for note in notes
        ]
        return result
