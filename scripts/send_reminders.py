from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys


# Allow running as a script: `python scripts/send_reminders.py`
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from ledgerbot.db import LedgerStore
from ledgerbot.logging_config import setup_logging
from ledgerbot.reminders import ReminderBroadcaster, schedule_note
from ledgerbot.settings import require_secrets, settings
from ledgerbot.whatsapp import WhatsAppTransport

logger = logging.getLogger(__name__)


async def run(*, dry_run: bool) -> int:
    store = LedgerStore.from_settings(settings)
    transport = WhatsAppTransport.from_settings(settings)
    broadcaster = ReminderBroadcaster(
        store,
        transport,
        note=schedule_note(settings.reminder_days, settings.reminder_hour),
        business_name=settings.business_name,
        ledger_sale_type=settings.ledger_sale_type,
        country_code=settings.phone_country_code,
        address_suffix=settings.chat_address_suffix,
    )
    try:
        return await broadcaster.broadcast(dry_run=dry_run)
    finally:
        await transport.aclose()
        await store.aclose()


def main() -> None:
    setup_logging(settings.log_level)

    p = argparse.ArgumentParser(description="Send debt reminders now, outside the day 1/16 schedule")
    p.add_argument("--dry-run", action="store_true", help="Log the messages instead of sending them")
    args = p.parse_args()

    require_secrets()
    sent = asyncio.run(run(dry_run=bool(args.dry_run)))
    print(f"sent={sent}")


if __name__ == "__main__":
    main()
