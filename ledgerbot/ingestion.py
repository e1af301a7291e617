from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Any

from .db import DataSourceError
from .processor import EventProcessor, row_id
from .realtime import ChangeFeed
from .types import POLL_ORDER, IngestionState, SubscriptionStatus, Table

logger = logging.getLogger(__name__)

# POLLING is terminal: once the poller owns ingestion it never hands back.
ALLOWED_TRANSITIONS: dict[IngestionState, set[IngestionState]] = {
    IngestionState.subscribing: {IngestionState.live, IngestionState.polling},
    IngestionState.live: {IngestionState.polling},
    IngestionState.polling: set(),
}


def validate_transition(current: IngestionState, new: IngestionState) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid transition: {current.value} -> {new.value}")


@dataclass
class _Job:
    kind: str
    table: Table | None = None
    row: dict[str, Any] | None = None
    status: SubscriptionStatus | None = None
    error: Exception | None = None


class IngestionController:
    """Decides whether realtime pushes or polling feed the event processor.

    Starts on the realtime subscription. The first terminal subscription status
    switches to polling for good: cursors still at zero are seeded with each
    table's current max id (once), then every `poll_interval` seconds the three
    tables are scanned above their cursors. Resubscription keeps being retried
    but no longer changes the mode.

    Feed callbacks and poll ticks are queued and handled by one worker task, so
    rows are processed strictly one at a time.
    """

    def __init__(
        self,
        processor: EventProcessor,
        feed: ChangeFeed,
        *,
        poll_interval: float = 10.0,
        batch_size: int = 500,
        resubscribe_delay: float = 5.0,
    ) -> None:
        self.processor = processor
        self.store = processor.store
        self.cursors = processor.cursors
        self.feed = feed
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self.resubscribe_delay = resubscribe_delay

        self.state = IngestionState.subscribing
        self.polling_started = False
        self._tables_by_name = {name: table for table, name in self.store.tables.items()}
        self._queue: asyncio.Queue[_Job] = asyncio.Queue()
        self._poll_queued = False
        self._baseline_pending: set[Table] = set()
        self._worker: asyncio.Task | None = None
        self._poller: asyncio.Task | None = None
        self._retry: asyncio.Task | None = None

    # Lifecycle

    async def start(self) -> None:
        logger.info("Starting ingestion, cursors=%s", self.cursors.snapshot())
        self._worker = asyncio.create_task(self._run_worker())
        await self._subscribe()

    async def stop(self) -> None:
        for task in (self._retry, self._poller, self._worker):
            if task is None:
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._retry = self._poller = self._worker = None
        await self.feed.close()

    async def drain(self) -> None:
        """Waits until every queued job has been handled."""

        await self._queue.join()

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "polling_started": self.polling_started,
            "baseline_pending": sorted(t.value for t in self._baseline_pending),
            "cursors": self.cursors.snapshot(),
        }

    # Feed callbacks

    async def _subscribe(self) -> None:
        tables = [self.store.tables[t] for t in POLL_ORDER]
        await self.feed.subscribe(tables, self._on_insert, self._on_status)

    def _on_insert(self, table_name: str, row: dict[str, Any]) -> None:
        table = self._tables_by_name.get(table_name)
        if table is None:
            logger.warning("Insert for unknown table %s ignored", table_name)
            return
        self._queue.put_nowait(_Job("insert", table=table, row=row))

    def _on_status(self, status: SubscriptionStatus, error: Exception | None) -> None:
        self._queue.put_nowait(_Job("status", status=status, error=error))

    async def _run_worker(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                if job.kind == "insert":
                    await self.handle_insert(job.table, job.row or {})
                elif job.kind == "status":
                    await self.handle_status(job.status, job.error)
                elif job.kind == "poll":
                    self._poll_queued = False
                    await self.poll_once()
            except Exception:
                logger.exception("Ingestion job %s failed", job.kind)
            finally:
                self._queue.task_done()

    # State machine

    def _transition(self, new: IngestionState) -> None:
        if new is self.state:
            return
        validate_transition(self.state, new)
        logger.info("Ingestion state %s -> %s", self.state.value, new.value)
        self.state = new

    async def handle_status(self, status: SubscriptionStatus, error: Exception | None = None) -> None:
        logger.info("Realtime status: %s", status.value)
        if error is not None:
            logger.error("Realtime error: %s", error)

        if status is SubscriptionStatus.subscribed:
            if self.state is IngestionState.polling:
                logger.info("Realtime subscribed again, polling stays active")
                return
            self._transition(IngestionState.live)
            return

        await self.enter_polling()
        self._schedule_resubscribe()

    async def handle_insert(self, table: Table, row: dict[str, Any]) -> None:
        if self.state is IngestionState.polling:
            return

        rid = row_id(row)
        if rid is None:
            logger.warning("Realtime %s row without id ignored", table.value)
            return
        if rid <= self.cursors.get(table):
            logger.debug("Realtime %s row %s already processed", table.value, rid)
            return

        logger.info("Realtime insert detected on %s id=%s", table.value, rid)
        try:
            await self.processor.dispatch(table, row)
        except Exception:
            logger.exception("Failed processing %s row %s", table.value, rid)

    def _schedule_resubscribe(self) -> None:
        if self._retry is not None and not self._retry.done():
            return
        logger.info("Retrying realtime subscription in %s seconds", self.resubscribe_delay)
        self._retry = asyncio.create_task(self._resubscribe_later())

    async def _resubscribe_later(self) -> None:
        await asyncio.sleep(self.resubscribe_delay)
        self._retry = None
        await self._subscribe()

    # Polling

    async def enter_polling(self) -> None:
        if self.polling_started:
            return
        self.polling_started = True
        self._transition(IngestionState.polling)

        logger.info("Activating polling fallback every %ss (realtime unavailable)", self.poll_interval)
        await self.reconcile_baseline()
        self._poller = asyncio.create_task(self._tick())

    async def reconcile_baseline(self) -> None:
        """Seeds zero cursors with the current max id so history is not replayed.

        A table whose max id cannot be read stays pending: it is not polled and
        the seed is retried at the start of every poll cycle.
        """

        self._baseline_pending = {t for t in POLL_ORDER if not self.cursors.get(t)}
        await self._seed_pending()
        logger.info("Polling baseline: %s", self.cursors.snapshot())

    async def _seed_pending(self) -> None:
        for table in [t for t in POLL_ORDER if t in self._baseline_pending]:
            try:
                max_id = await self.store.max_id(table)
            except DataSourceError:
                logger.exception("Could not read max id of %s for baseline", table.value)
                continue
            self.cursors.advance(table, max_id)
            self._baseline_pending.discard(table)
        self.cursors.save()

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            if not self._poll_queued:
                self._poll_queued = True
                self._queue.put_nowait(_Job("poll"))

    async def poll_once(self) -> None:
        if self._baseline_pending:
            await self._seed_pending()

        for table in POLL_ORDER:
            if table in self._baseline_pending:
                logger.warning("Skipping %s until its baseline is known", table.value)
                continue
            try:
                rows = await self.store.fetch_after(table, self.cursors.get(table), self.batch_size)
            except DataSourceError:
                logger.exception("Polling %s failed", table.value)
                continue

            for row in rows:
                try:
                    await self.processor.dispatch(table, row)
                except Exception:
                    # Leave the rest of this table for the next cycle.
                    logger.exception("Failed processing %s row %s", table.value, row.get("id"))
                    break
