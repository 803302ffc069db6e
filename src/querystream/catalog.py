"""Type catalog: resolves column type OIDs to display names."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from sqlalchemy import Connection, text

from querystream.core.types import ResultField, TypeCatalogEntry
from querystream.exceptions import ConnectionError

logger = logging.getLogger(__name__)

TYPE_CATALOG_QUERY = (
    "SELECT oid, format_type(oid, typtypmod) AS display_type, typname FROM pg_type"
)

UNKNOWN_TYPE = "unknown"


class TypeCatalog:
    """In-memory copy of ``pg_type`` for one query execution.

    Loaded once, before the cursor opens, so field display types can be
    resolved synchronously when the first batch arrives.
    """

    def __init__(self, entries: Iterable[TypeCatalogEntry] = ()) -> None:
        self._entries: dict[int, TypeCatalogEntry] = {entry.oid: entry for entry in entries}

    @classmethod
    def load(cls, connection: Connection) -> TypeCatalog:
        """Run the introspection query on ``connection``.

        Databases without a ``pg_type`` catalog (SQLite) get an empty catalog,
        so every column resolves to ``unknown``.

        Raises:
            ConnectionError: If the introspection query fails
        """
        if connection.dialect.name != "postgresql":
            logger.debug(f"No type catalog for dialect {connection.dialect.name}")
            return cls()

        try:
            result = connection.execute(text(TYPE_CATALOG_QUERY))
            entries = [
                TypeCatalogEntry(oid=row.oid, display_type=row.display_type, type_name=row.typname)
                for row in result
            ]
        except Exception as e:
            raise ConnectionError(f"Failed to load type catalog: {e}") from e

        logger.debug(f"Loaded {len(entries)} type catalog entries")
        return cls(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, oid: object) -> bool:
        return oid in self._entries

    def get(self, oid: int | None) -> TypeCatalogEntry | None:
        if oid is None:
            return None
        return self._entries.get(oid)

    def display_type(self, oid: int | None) -> str:
        entry = self.get(oid)
        return entry.display_type if entry else UNKNOWN_TYPE

    def type_name(self, oid: int | None) -> str:
        entry = self.get(oid)
        return entry.type_name if entry else UNKNOWN_TYPE

    def as_mapping(self) -> dict[int, str]:
        """Return ``oid -> display type``."""
        return {oid: entry.display_type for oid, entry in self._entries.items()}

    def resolve_fields(self, columns: Sequence[tuple[str, int | None]]) -> list[ResultField]:
        """Build result fields from ``(name, type_oid)`` column descriptions."""
        return [
            ResultField(
                name=name,
                type_oid=oid,
                format=self.type_name(oid),
                display_type=self.display_type(oid),
                positional_key=str(index),
            )
            for index, (name, oid) in enumerate(columns)
        ]
