from __future__ import annotations

import asyncio
import calendar
import datetime as dt
import logging
from typing import Awaitable, Callable, Iterable
from zoneinfo import ZoneInfo

from .balance import compute_balance
from .db import DataSourceError, LedgerStore
from .messages import reminder_message
from .processor import Transport
from .whatsapp import to_chat_address

logger = logging.getLogger(__name__)


def schedule_note(days: Iterable[int], hour: int, minute: int = 0) -> str:
    day_list = sorted(set(days))
    if len(day_list) > 1:
        days_txt = ", ".join(str(d) for d in day_list[:-1]) + f" and {day_list[-1]}"
    else:
        days_txt = ", ".join(str(d) for d in day_list)
    when = dt.time(hour, minute).strftime("%I:%M %p").lstrip("0")
    return (
        "This message is automated. While you have a pending balance you will get a "
        f"reminder on days {days_txt} of each month at {when}."
    )


class ReminderSchedule:
    """Fires a callback on fixed days of every month at a local time."""

    def __init__(self, days: Iterable[int] = (1, 16), hour: int = 10, minute: int = 0, timezone: str = "America/Bogota") -> None:
        self.days = sorted(set(int(d) for d in days))
        if not self.days or any(d < 1 or d > 31 for d in self.days):
            raise ValueError(f"Invalid reminder days: {self.days}")
        self.hour = hour
        self.minute = minute
        self.tz = ZoneInfo(timezone)

    def next_fire(self, now: dt.datetime) -> dt.datetime:
        now = now.astimezone(self.tz)
        year, month = now.year, now.month
        # A day like 31 may be missing for a few months in a row.
        for _ in range(13):
            last_day = calendar.monthrange(year, month)[1]
            for day in self.days:
                if day > last_day:
                    continue
                candidate = dt.datetime(year, month, day, self.hour, self.minute, tzinfo=self.tz)
                if candidate > now:
                    return candidate
            month += 1
            if month > 12:
                month = 1
                year += 1
        raise RuntimeError("No reminder date found within a year")

    async def run(self, callback: Callable[[], Awaitable[object]]) -> None:
        while True:
            now = dt.datetime.now(self.tz)
            fire_at = self.next_fire(now)
            logger.info("Next debt reminder run at %s", fire_at.isoformat())
            await asyncio.sleep(max(0.0, (fire_at - now).total_seconds()))
            logger.info("Running scheduled debt reminders")
            try:
                await callback()
            except Exception:
                logger.exception("Scheduled reminder run failed")


class ReminderBroadcaster:
    """Sends a payment reminder to every reachable customer who owes money.

    No dedup is applied: each call sends again to everyone with a positive balance.
    """

    def __init__(
        self,
        store: LedgerStore,
        transport: Transport,
        *,
        note: str = "",
        business_name: str = "",
        ledger_sale_type: str = "libriado",
        country_code: str = "57",
        address_suffix: str = "@c.us",
    ) -> None:
        self.store = store
        self.transport = transport
        self.note = note
        self.business_name = business_name
        self.ledger_sale_type = ledger_sale_type
        self.country_code = country_code
        self.address_suffix = address_suffix

    async def broadcast(self, *, dry_run: bool = False) -> int:
        try:
            customers = await self.store.list_contactable_customers()
        except DataSourceError:
            logger.exception("Could not list customers for reminders")
            return 0

        sent = 0
        for customer in customers:
            if not customer.has_contact:
                continue
            try:
                summary = await compute_balance(self.store, customer.id, ledger_sale_type=self.ledger_sale_type)
            except DataSourceError:
                logger.exception("Could not compute balance for customer %s", customer.id)
                continue
            if summary.balance <= 0:
                continue

            text = reminder_message(customer.name, summary.balance, self.note, self.business_name)
            address = to_chat_address(customer.phone, country_code=self.country_code, suffix=self.address_suffix)
            if dry_run:
                logger.info("[DRY RUN] Would remind %s: %s", address, text)
                sent += 1
                continue
            if await self.transport.send(address, text):
                sent += 1

        logger.info("Reminders sent: %s", sent)
        return sent
