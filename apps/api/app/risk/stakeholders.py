from __future__ import annotations

from sqlalchemy import or_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import ColumnElement

from app.risk.models import DebtorDirector, DirectorType


_NAME_COLUMNS = (DebtorDirector.first_name, DebtorDirector.middle_name, DebtorDirector.last_name)
_ENTITY_COLUMNS = (
    DebtorDirector.entity_name,
    DebtorDirector.abn,
    DebtorDirector.acn,
    DebtorDirector.registration_number,
)


def _contains(column, value: str) -> ColumnElement[bool]:  # type: ignore[no-untyped-def]
    return column.icontains(value, autoescape=True)


def name_tokens(search: str) -> list[str]:
    return search.split()


def is_structured_name(tokens: list[str]) -> bool:
    return len(tokens) in (2, 3)


def _positional_pairs(tokens: list[str]) -> list[tuple[object, str]]:
    if len(tokens) == 2:
        return [(DebtorDirector.first_name, tokens[0]), (DebtorDirector.last_name, tokens[1])]
    return [
        (DebtorDirector.first_name, tokens[0]),
        (DebtorDirector.middle_name, tokens[1]),
        (DebtorDirector.last_name, tokens[2]),
    ]


def stakeholder_match_clause(search: str) -> ColumnElement[bool]:
    """Broad store-side match: positional name tokens OR the whole string on entity fields."""

    search = search.strip()
    tokens = name_tokens(search)
    entity_clauses = [_contains(column, search) for column in _ENTITY_COLUMNS]
    if is_structured_name(tokens):
        name_clauses = [_contains(column, token) for column, token in _positional_pairs(tokens)]
    else:
        name_clauses = [_contains(column, search) for column in _NAME_COLUMNS]
    return or_(*name_clauses, *entity_clauses)


def _entity_match(director: DebtorDirector, search: str) -> bool:
    needle = search.lower()
    for value in (director.entity_name, director.abn, director.acn, director.registration_number):
        if value and needle in value.lower():
            return True
    return False


def _exact_name_match(director: DebtorDirector, tokens: list[str]) -> bool:
    if director.type != DirectorType.INDIVIDUAL.value:
        return False
    lowered = [token.lower() for token in tokens]
    first = (director.first_name or "").lower()
    middle = (director.middle_name or "").lower()
    last = (director.last_name or "").lower()
    if len(lowered) == 2:
        return first == lowered[0] and last == lowered[1]
    return first == lowered[0] and middle == lowered[1] and last == lowered[2]


def narrow_stakeholders(rows: list[DebtorDirector], search: str) -> list[DebtorDirector]:
    """Application-side pass keeping exact split-name matches or entity matches.

    Single-token (and 4+ token) queries are returned untouched so partial
    names keep the recall of the store-side substring match.
    """

    search = search.strip()
    tokens = name_tokens(search)
    if not is_structured_name(tokens):
        return rows
    return [row for row in rows if _exact_name_match(row, tokens) or _entity_match(row, search)]


def display_name(director: DebtorDirector) -> str:
    if director.type == DirectorType.INDIVIDUAL.value:
        parts = [director.first_name, director.middle_name, director.last_name]
        return " ".join(part for part in parts if part)
    return director.entity_name or ""


def search_stakeholders(
    session: Session,
    search: str,
    scope: ColumnElement[bool],
    limit: int | None = None,
) -> list[DebtorDirector]:
    stmt = select(DebtorDirector).where(scope, stakeholder_match_clause(search)).order_by(DebtorDirector.updated_at.desc())
    matches = narrow_stakeholders(list(session.scalars(stmt).all()), search)
    # cap after narrowing
    return matches if limit is None else matches[:limit]
