"""Core types for querystream.

Wire-facing types (fields, push messages, settings) are pydantic models so they
serialize cleanly. Per-session state (rows, batches, accumulated results) uses
plain dataclasses since it is mutated on every batch.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, Field

from querystream.core.compat import StrEnum


class CommandKind(StrEnum):
    """SQL command reported by the terminal batch of a stream."""

    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CREATE = "CREATE"
    EXPLAIN = "EXPLAIN"
    OTHER = "OTHER"

    @classmethod
    def values(cls) -> list[str]:
        """Return all command values."""
        return [c.value for c in cls]


class SessionState(StrEnum):
    """Lifecycle states of one query execution."""

    INITIALIZING = "initializing"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERRORED = "errored"
    DISPOSED = "disposed"


class TypeCatalogEntry(BaseModel):
    """One row of the database type catalog."""

    oid: int
    display_type: str
    type_name: str


class ResultField(BaseModel):
    """Column metadata for a result set.

    Rows are keyed by ``positional_key`` rather than ``name`` because two
    columns may share a name (``SELECT a.x, b.x``).
    """

    name: str
    type_oid: int | None = None
    format: str = Field(default="unknown", description="Catalog type name used for formatting")
    display_type: str = Field(default="unknown", description="Human-readable type, e.g. numeric(10,2)")
    positional_key: str


@dataclass(frozen=True)
class Row:
    """One result row as an ordered sequence of values.

    Values are addressed by positional key (``"0"``, ``"1"``, ...) or by index.
    """

    values: tuple[Any, ...]

    @classmethod
    def from_values(cls, values: Sequence[Any]) -> Row:
        return cls(tuple(values))

    def __len__(self) -> int:
        return len(self.values)

    def __getitem__(self, key: str | int) -> Any:
        return self.values[int(key)]

    def get(self, key: str | int, default: Any = None) -> Any:
        index = int(key)
        if 0 <= index < len(self.values):
            return self.values[index]
        return default

    def items(self) -> Iterator[tuple[str, Any]]:
        """Yield ``(positional_key, value)`` pairs in column order."""
        for index, value in enumerate(self.values):
            yield str(index), value

    def as_mapping(self) -> dict[str, Any]:
        return dict(self.items())


@dataclass
class ResultBatch:
    """One page of rows fetched from a cursor.

    ``command`` is None on every batch except the one that closes the cursor.
    """

    fields: list[ResultField]
    rows: list[Row]
    command: CommandKind | None = None
    row_count: int | None = None
    command_tag: str | None = None


@dataclass
class FullResults:
    """Everything accumulated for one session so far."""

    fields: list[ResultField] = field(default_factory=list)
    rows: list[Row] = field(default_factory=list)
    command: CommandKind | None = None
    row_count: int | None = None
    fields_fixed: bool = False
    command_tag: str | None = None

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def command_name(self) -> str | None:
        """Server command tag if known, else the detected command; None mid-stream."""
        if self.command is None:
            return None
        return self.command_tag or str(self.command)

    def to_payload(self) -> ResultsPayload:
        return ResultsPayload.from_parts(self.fields, self.rows)


class ResultsPayload(BaseModel):
    """The ``results`` member of a data message."""

    fields: list[ResultField]
    rows: list[dict[str, Any]]

    @classmethod
    def from_parts(cls, fields: list[ResultField], rows: list[Row]) -> ResultsPayload:
        return cls(fields=list(fields), rows=[row.as_mapping() for row in rows])


class DataMessage(BaseModel):
    """Batch (or full replay) pushed to a display surface."""

    command: str | None
    summary: str
    results: ResultsPayload
    offset: int


class ErrorMessage(BaseModel):
    """Terminal error pushed to a display surface."""

    command: Literal["ERROR"] = "ERROR"
    summary: str
    header: str = ""
    results: str = ""


class StreamSettings(BaseModel):
    """Tuning knobs for result streaming."""

    batch_size: int = Field(default=5000, gt=0, description="Rows requested per fetch")
    cooldown_ms: float = Field(default=500.0, ge=0, description="Delay between full batches")
    preview_text_limit: int = Field(default=150, gt=1, description="Max chars for text previews")
    strict_invariants: bool = Field(
        default=False, description="Raise ProtocolError on field-shape mismatch instead of logging"
    )

    @property
    def cooldown_seconds(self) -> float:
        return self.cooldown_ms / 1000.0
