from __future__ import annotations

import asyncio
import datetime as dt
from zoneinfo import ZoneInfo

import pytest

from ledgerbot.reminders import ReminderBroadcaster, ReminderSchedule, schedule_note

TZ = ZoneInfo("America/Bogota")


def _at(year, month, day, hour, minute=0) -> dt.datetime:
    return dt.datetime(year, month, day, hour, minute, tzinfo=TZ)


@pytest.mark.parametrize(
    "now, expected",
    [
        (_at(2026, 1, 1, 9), _at(2026, 1, 1, 10)),
        (_at(2026, 1, 1, 10), _at(2026, 1, 16, 10)),
        (_at(2026, 1, 20, 8), _at(2026, 2, 1, 10)),
        (_at(2026, 12, 20, 8), _at(2027, 1, 1, 10)),
    ],
)
def test_next_fire(now, expected):
    assert ReminderSchedule((1, 16), 10).next_fire(now) == expected


def test_next_fire_skips_months_without_the_day():
    schedule = ReminderSchedule((31,), 10)

    assert schedule.next_fire(_at(2026, 2, 10, 8)) == _at(2026, 3, 31, 10)


def test_invalid_days_rejected():
    with pytest.raises(ValueError):
        ReminderSchedule((0, 16))


def test_schedule_note():
    note = schedule_note([16, 1], 10)

    assert "days 1 and 16 of each month at 10:00 AM" in note
    assert "at 9:30 AM" in schedule_note([5], 9, 30)


def _seed(supa) -> None:
    supa.add("clientes", id=1, nombre="Ana", telefono="3001234567")
    supa.add("ventas", id=10, cliente_id=1, total=30000, tipo_venta="pie")
    supa.add("pagos", id=100, cliente_id=1, monto=10000)
    # Settled customer.
    supa.add("clientes", id=2, nombre="Luis", telefono="3105550000")
    supa.add("ventas", id=11, cliente_id=2, total=5000, tipo_venta="pie")
    supa.add("pagos", id=101, cliente_id=2, monto=5000)
    # Owes money but has no phone.
    supa.add("clientes", id=3, nombre="Marta", telefono=None)
    supa.add("ventas", id=12, cliente_id=3, total=7000, tipo_venta="pie")


def test_broadcast_reaches_only_debtors_with_contact(supa, store, transport):
    _seed(supa)
    broadcaster = ReminderBroadcaster(store, transport, note="NOTE", business_name="FARM")

    sent = asyncio.run(broadcaster.broadcast())

    assert sent == 1
    address, text = transport.sent[0]
    assert address == "573001234567@c.us"
    assert "$20,000" in text
    assert text.endswith("NOTE")


def test_broadcast_dry_run_sends_nothing(supa, store, transport):
    _seed(supa)

    sent = asyncio.run(ReminderBroadcaster(store, transport).broadcast(dry_run=True))

    assert sent == 1
    assert transport.sent == []


def test_broadcast_survives_listing_failure(supa, store, transport):
    supa.fail_tables.add("clientes")

    assert asyncio.run(ReminderBroadcaster(store, transport).broadcast()) == 0
