from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any
from urllib.parse import urlparse

from .cursor import CursorStore
from .db import LedgerStore
from .dedup import DedupWindow
from .ingestion import IngestionController
from .processor import EventProcessor
from .realtime import ChangeFeed, SupabaseChangeFeed
from .reminders import ReminderBroadcaster, ReminderSchedule, schedule_note
from .settings import Settings
from .whatsapp import WhatsAppTransport

logger = logging.getLogger(__name__)


class NotifierBot:
    """Owns every runtime component and their start/stop order."""

    def __init__(
        self,
        settings: Settings,
        *,
        store: LedgerStore | None = None,
        transport: WhatsAppTransport | None = None,
        feed: ChangeFeed | None = None,
    ) -> None:
        self.settings = settings
        self.store = store or LedgerStore.from_settings(settings)
        self.transport = transport or WhatsAppTransport.from_settings(settings)
        self.cursors = CursorStore.load(settings.bot_state_path)
        self.dedup = DedupWindow(settings.dedup_window_seconds)

        address = {"country_code": settings.phone_country_code, "address_suffix": settings.chat_address_suffix}
        self.processor = EventProcessor(
            self.store,
            self.transport,
            self.cursors,
            self.dedup,
            open_credit_statuses=settings.open_credit_statuses,
            ledger_sale_type=settings.ledger_sale_type,
            business_name=settings.business_name,
            **address,
        )
        self.controller = IngestionController(
            self.processor,
            feed or SupabaseChangeFeed(settings.supabase_url or "", settings.supabase_service_role_key or ""),
            poll_interval=settings.poll_interval_seconds,
            batch_size=settings.poll_batch_size,
            resubscribe_delay=settings.resubscribe_delay_seconds,
        )
        self.schedule = ReminderSchedule(
            days=settings.reminder_days,
            hour=settings.reminder_hour,
            timezone=settings.bot_timezone,
        )
        self.broadcaster = ReminderBroadcaster(
            self.store,
            self.transport,
            note=schedule_note(settings.reminder_days, settings.reminder_hour),
            business_name=settings.business_name,
            ledger_sale_type=settings.ledger_sale_type,
            **address,
        )
        self._reminder_task: asyncio.Task | None = None

    def log_startup(self) -> None:
        s = self.settings
        host = urlparse(s.supabase_url or "").netloc or "invalid URL"
        logger.info("Supabase host: %s", host)
        logger.info("Credit entries table: %s", s.credit_entries_table)
        logger.info("Sales table: %s", s.sales_table)
        logger.info("Bot timezone: %s", s.bot_timezone)
        logger.info("Initial cursors: %s", self.cursors.snapshot())

    async def start(self) -> None:
        self.log_startup()
        await self.controller.start()
        self._reminder_task = asyncio.create_task(self.schedule.run(self.broadcaster.broadcast))

    async def stop(self) -> None:
        if self._reminder_task is not None:
            self._reminder_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reminder_task
            self._reminder_task = None
        await self.controller.stop()
        await self.transport.aclose()
        await self.store.aclose()

    def status(self) -> dict[str, Any]:
        return {**self.controller.snapshot(), "dedup_entries": len(self.dedup)}
