from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from app.risk.catalog import ModuleCatalog


class UnknownColumnError(ValueError):
    def __init__(self, module_name: str, columns: list[str]) -> None:
        self.module_name = module_name
        self.columns = sorted(set(columns))
        super().__init__(f"Unknown columns for module '{module_name}': {', '.join(self.columns)}")


ReferenceResolver = Callable[[Iterable[Any]], Mapping[Any, str]]


class ColumnProjectionEngine:
    """Merges per-actor column preferences with the module catalog and shapes list rows."""

    always_included: tuple[str, ...] = ("_id",)

    def resolve_columns(self, catalog: ModuleCatalog, actor_columns: Sequence[str] | None) -> dict[str, list[dict[str, Any]]]:
        selected = set(self.selected_columns(catalog, actor_columns))
        default_names = set(catalog.default_columns)
        default_fields: list[dict[str, Any]] = []
        custom_fields: list[dict[str, Any]] = []
        for column in catalog.columns:
            entry = {
                "name": column.name,
                "label": column.label,
                "type": column.type,
                "isChecked": column.name in selected,
            }
            if column.name in default_names:
                default_fields.append(entry)
            else:
                custom_fields.append(entry)
        return {"defaultFields": default_fields, "customFields": custom_fields}

    @staticmethod
    def selected_columns(catalog: ModuleCatalog, actor_columns: Sequence[str] | None) -> list[str]:
        """The actor's stored list, or the catalog defaults when nothing is stored yet."""

        if actor_columns is None:
            return list(catalog.default_columns)
        return list(actor_columns)

    @staticmethod
    def reset_columns(catalog: ModuleCatalog) -> list[str]:
        return list(catalog.default_columns)

    @staticmethod
    def validate_columns(catalog: ModuleCatalog, columns: Sequence[str]) -> list[str]:
        known = set(catalog.column_names)
        unknown = [column for column in columns if column not in known]
        if unknown:
            raise UnknownColumnError(catalog.name, unknown)
        # keep first occurrence order, drop repeats
        return list(dict.fromkeys(columns))

    def headers(self, catalog: ModuleCatalog, selected: Sequence[str]) -> list[dict[str, str]]:
        wanted = set(selected)
        return [
            {"name": column.name, "label": column.label, "type": column.type}
            for column in catalog.columns
            if column.name in wanted
        ]

    def project(
        self,
        rows: Iterable[Mapping[str, Any]],
        selected: Sequence[str],
        always: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]:
        keep = list(dict.fromkeys([*(always if always is not None else self.always_included), *selected]))
        return [{key: row.get(key) for key in keep} for row in rows]

    @staticmethod
    def map_references(
        rows: list[dict[str, Any]],
        resolvers: Mapping[str, ReferenceResolver],
    ) -> list[dict[str, Any]]:
        """Replace reference ids in projected rows by ``{_id, value}`` display pairs.

        Runs after projection, so only columns the actor selected are resolved.
        Ids that no longer resolve render as an empty string.
        """

        for column, resolver in resolvers.items():
            ids = {row[column] for row in rows if row.get(column) is not None}
            if not ids:
                continue
            names = resolver(ids)
            for row in rows:
                if column not in row:
                    continue
                value = row[column]
                if value is None:
                    continue
                name = names.get(value)
                row[column] = {"_id": value, "value": name} if name is not None else ""
        return rows


column_projection_engine = ColumnProjectionEngine()
