"""Append-only accumulation of batches into a session's full results."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from querystream.core.types import ResultBatch, ResultField
from querystream.exceptions import ProtocolError

if TYPE_CHECKING:
    from querystream.session import Session

logger = logging.getLogger(__name__)


def fields_compatible(fixed: Sequence[ResultField], incoming: Sequence[ResultField]) -> bool:
    """Same column count, order and names."""
    if len(fixed) != len(incoming):
        return False
    return all(
        a.positional_key == b.positional_key and a.name == b.name
        for a, b in zip(fixed, incoming, strict=True)
    )


class ResultAccumulator:
    """Merges batches into ``Session.full_results``.

    The field list is fixed by the first batch. Later batches with a different
    shape are a protocol violation: with ``strict`` it raises, otherwise it is
    logged and the prior field list is kept. Rows are only ever appended.
    """

    def __init__(self, strict: bool = False) -> None:
        self._strict = strict

    def merge(self, session: Session, batch: ResultBatch) -> int:
        """Append ``batch`` to the session's results.

        Returns:
            Offset of the batch's first row in the session's cumulative rows

        Raises:
            ProtocolError: If the session already failed, or (strict mode only)
                if the batch shape disagrees with the first batch
        """
        if session.last_error is not None:
            raise ProtocolError(
                f"Session '{session.id}' already failed; no further batches are accepted.",
                {"session_id": session.id},
            )

        results = session.full_results
        offset = len(results.rows)

        if not results.fields_fixed:
            results.fields = list(batch.fields)
            results.fields_fixed = True
        elif not fields_compatible(results.fields, batch.fields):
            self._violation(
                session,
                f"Batch fields {[f.name for f in batch.fields]} do not match "
                f"{[f.name for f in results.fields]}",
            )

        width = len(results.fields)
        if any(len(row) != width for row in batch.rows):
            self._violation(session, f"Batch contains rows that do not have {width} values")

        results.rows.extend(batch.rows)
        if batch.command is not None:
            results.command = batch.command
            results.command_tag = batch.command_tag
            results.row_count = batch.row_count

        return offset

    def _violation(self, session: Session, message: str) -> None:
        if self._strict:
            raise ProtocolError(message, {"session_id": session.id})
        logger.warning(f"Protocol violation in session {session.id}: {message}")
