"""
Enrichment session scheduler.

An ``EnrichmentSession`` drives every row of one batch through the row
enricher inside a rolling concurrency window and exposes the run as an
ordered async stream of session events:

    session -> pending (all rows) -> processing / agent_progress / result ...
            -> complete | cancelled

or a single ``error`` event when the batch cannot start. The window is
refilled as soon as any row settles. Cancellation stops new rows from
starting; rows already running are left to finish on their own and their
results are dropped.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional, Sequence, Set

import structlog

from fire_enrich.core.exceptions import EnrichmentCancelledError, SessionError
from fire_enrich.core.logging import bind_session, clear_context, new_session_id
from fire_enrich.core.models import (
    AgentProgress,
    EnrichmentField,
    MessageType,
    Row,
    RowEnrichmentResult,
    RowPending,
    RowProcessing,
    RowResult,
    SessionCancelled,
    SessionComplete,
    SessionEvent,
    SessionFailed,
    SessionStarted,
)
from fire_enrich.intelligence.row_enricher import RowEnricher
from fire_enrich.utils.reliability import CancellationToken

logger = structlog.get_logger(__name__)

DEFAULT_CONCURRENCY = 10


class SessionRegistry:
    """Maps live session ids to their cancellation tokens."""

    def __init__(self):
        self._tokens: Dict[str, CancellationToken] = {}

    def register(self, session_id: str, token: CancellationToken) -> None:
        self._tokens[session_id] = token

    def unregister(self, session_id: str) -> None:
        self._tokens.pop(session_id, None)

    def cancel(self, session_id: str) -> bool:
        """Signal cancellation. False for unknown or already finished sessions."""
        token = self._tokens.get(session_id)
        if token is None:
            return False
        token.cancel("cancelled by request")
        logger.info("Session cancellation requested", session_id=session_id)
        return True

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._tokens

    @property
    def active_sessions(self) -> List[str]:
        return list(self._tokens)


@dataclass
class _Settled:
    row_index: int
    result: Optional[RowEnrichmentResult]


class EnrichmentSession:
    """One batch run. Iterate ``events()`` exactly once."""

    def __init__(
        self,
        rows: Sequence[Row],
        fields: Sequence[EnrichmentField],
        email_column: str,
        row_enricher: RowEnricher,
        name_column: Optional[str] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        max_fields: Optional[int] = None,
        session_id: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        registry: Optional[SessionRegistry] = None,
    ):
        self.rows = list(rows)
        self.fields = list(fields)
        self.email_column = email_column
        self.name_column = name_column
        self.row_enricher = row_enricher
        self.concurrency = max(1, int(concurrency))
        self.max_fields = max_fields
        self.session_id = session_id or new_session_id()
        self.cancel_token = cancel_token or CancellationToken()
        self.registry = registry
        self._detached: Set[asyncio.Task] = set()

    def cancel(self) -> None:
        self.cancel_token.cancel("cancelled by request")

    def validate(self) -> None:
        """
        Bootstrap checks run before any row event.

        Raises:
            SessionError: when the batch cannot start
        """
        if not self.rows:
            raise SessionError("No rows to enrich")
        if not self.email_column:
            raise SessionError("Email column is required")
        if not self.fields:
            raise SessionError("At least one field is required")
        if self.max_fields is not None and len(self.fields) > self.max_fields:
            raise SessionError(f"Maximum {self.max_fields} fields allowed")

    async def events(self) -> AsyncIterator[SessionEvent]:
        bind_session(self.session_id)
        try:
            self.validate()
        except SessionError as e:
            logger.warning("Session rejected", error=e.message)
            yield SessionFailed(message=e.message)
            return

        if self.registry is not None:
            self.registry.register(self.session_id, self.cancel_token)
        logger.info(
            "Session started",
            rows=len(self.rows),
            fields=[f.name for f in self.fields],
            concurrency=self.concurrency,
        )
        runner = self._run()
        finished = False
        try:
            async for event in runner:
                yield event
            finished = True
        finally:
            if not finished:
                # consumer went away before the terminal event
                self.cancel_token.cancel("stream closed")
                await runner.aclose()
            if self.registry is not None:
                self.registry.unregister(self.session_id)
            clear_context()

    async def _run(self) -> AsyncIterator[SessionEvent]:
        total = len(self.rows)
        yield SessionStarted(session_id=self.session_id)
        for index in range(total):
            yield RowPending(row_index=index, total_rows=total)

        queue: asyncio.Queue = asyncio.Queue()
        waiting = deque(enumerate(self.rows))
        in_flight: Set[int] = set()
        running: Set[asyncio.Task] = set()
        cancel_waiter = asyncio.ensure_future(self.cancel_token.wait())
        delivered = 0

        try:
            while True:
                while waiting and len(in_flight) < self.concurrency and not self.cancel_token.cancelled:
                    index, row = waiting.popleft()
                    yield RowProcessing(row_index=index, total_rows=total)
                    if self.cancel_token.cancelled:
                        break
                    in_flight.add(index)
                    task = asyncio.create_task(self._run_row(index, row, queue))
                    running.add(task)
                    task.add_done_callback(running.discard)

                # A row leaves the window only once its settlement is read.
                if self.cancel_token.cancelled or not (in_flight or waiting):
                    break

                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait(
                    {getter, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED
                )
                if getter not in done:
                    getter.cancel()
                    break

                item = getter.result()
                if self.cancel_token.cancelled:
                    break
                if isinstance(item, _Settled):
                    in_flight.discard(item.row_index)
                    if item.result is not None:
                        delivered += 1
                        yield RowResult(result=item.result)
                else:
                    yield item
        finally:
            cancel_waiter.cancel()
            for task in running:
                self._detached.add(task)
                task.add_done_callback(self._detached.discard)

        if self.cancel_token.cancelled:
            logger.info(
                "Session cancelled",
                delivered=delivered,
                abandoned=len(self._detached),
                never_started=len(waiting),
            )
            yield SessionCancelled()
        else:
            logger.info("Session complete", delivered=delivered)
            yield SessionComplete()

    async def _run_row(self, index: int, row: Row, queue: asyncio.Queue) -> None:
        def progress(message: str, message_type: MessageType) -> None:
            queue.put_nowait(
                AgentProgress(row_index=index, message=message, message_type=message_type)
            )

        result: Optional[RowEnrichmentResult] = None
        try:
            result = await self.row_enricher.enrich_row(
                index,
                row,
                self.fields,
                self.email_column,
                name_column=self.name_column,
                cancel_token=self.cancel_token,
                on_progress=progress,
            )
        except EnrichmentCancelledError:
            logger.debug("Row abandoned after cancellation", row_index=index)
        finally:
            queue.put_nowait(_Settled(row_index=index, result=result))
