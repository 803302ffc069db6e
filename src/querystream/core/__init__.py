"""Core components for querystream."""

from querystream.core.connection import DatabaseConnection
from querystream.core.types import (
    CommandKind,
    DataMessage,
    ErrorMessage,
    FullResults,
    ResultBatch,
    ResultField,
    ResultsPayload,
    Row,
    SessionState,
    StreamSettings,
    TypeCatalogEntry,
)

__all__ = [
    "DatabaseConnection",
    "CommandKind",
    "SessionState",
    "TypeCatalogEntry",
    "ResultField",
    "Row",
    "ResultBatch",
    "FullResults",
    "ResultsPayload",
    "DataMessage",
    "ErrorMessage",
    "StreamSettings",
]
