"""Batch fetch loop: pulls pages from a session's cursor into its results."""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any

from querystream.accumulator import ResultAccumulator
from querystream.core.types import ResultBatch, Row, StreamSettings
from querystream.exceptions import FetchError, ProtocolError
from querystream.scheduler import Scheduler
from querystream.session import Session

logger = logging.getLogger(__name__)


class BatchFetcher:
    """Drives one fetch at a time per session.

    Each fetch is a scheduler job. A full batch means more rows may follow,
    so the job re-submits itself after the cooldown; a short batch (fewer
    rows than ``batch_size``, possibly zero) is the only end-of-stream signal.
    A result set that is an exact multiple of ``batch_size`` therefore costs
    one extra, empty fetch.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        accumulator: ResultAccumulator,
        settings: StreamSettings,
    ) -> None:
        self._scheduler = scheduler
        self._accumulator = accumulator
        self._settings = settings

    def start(self, session: Session) -> None:
        """Schedule the first fetch for a streaming session."""
        self._schedule(session, 0.0)

    def _schedule(self, session: Session, delay: float) -> None:
        self._scheduler.submit(
            partial(self.fetch_next, session),
            delay=delay,
            name=f"fetch-{session.id}-{session.batches_fetched + 1}",
        )

    async def fetch_next(self, session: Session) -> None:
        """Fetch, merge and push one batch, then schedule the next or finish."""
        if session.disposed:
            self._cleanup_disposed(session)
            return

        batch_size = self._settings.batch_size
        batch_number = session.batches_fetched + 1

        session.busy = True
        try:
            raw_rows = await asyncio.to_thread(session.cursor.read, batch_size)
        except Exception as e:
            if session.disposed:
                self._cleanup_disposed(session)
                return
            logger.error(f"Fetch {batch_number} failed for session {session.id}: {e}")
            session.fail(FetchError(session.id, batch_number, str(e)))
            return
        finally:
            session.busy = False

        # Disposal may have happened while the fetch was running
        if session.disposed:
            self._cleanup_disposed(session)
            return

        session.batches_fetched = batch_number
        exhausted = len(raw_rows) < batch_size
        batch = self._build_batch(session, raw_rows, exhausted)

        try:
            offset = self._accumulator.merge(session, batch)
        except ProtocolError as e:
            session.fail(e)
            raise

        logger.debug(
            f"Session {session.id} batch {batch_number}: {len(batch.rows)} rows at offset {offset}"
        )
        session.post(session.data_message(batch, offset))

        if not exhausted:
            logger.debug(
                f"Session {session.id}: next fetch in {self._settings.cooldown_seconds}s"
            )
            self._schedule(session, self._settings.cooldown_seconds)
            return

        try:
            await session.complete()
        except Exception as e:
            logger.error(f"Finishing session {session.id} failed: {e}")
            session.fail(FetchError(session.id, batch_number, str(e)))

    def _build_batch(
        self, session: Session, raw_rows: list[tuple[Any, ...]], exhausted: bool
    ) -> ResultBatch:
        results = session.full_results
        if results.fields_fixed:
            fields = results.fields
        else:
            fields = session.catalog.resolve_fields(session.cursor.columns)

        return ResultBatch(
            fields=fields,
            rows=[Row.from_values(values) for values in raw_rows],
            command=session.cursor.command if exhausted else None,
            row_count=session.cursor.row_count if exhausted else None,
            command_tag=session.cursor.command_tag if exhausted else None,
        )

    def _cleanup_disposed(self, session: Session) -> None:
        if session.release():
            logger.debug(f"Session {session.id} released after disposal")
