from __future__ import annotations

import json

from ledgerbot.cursor import CursorStore
from ledgerbot.types import Table


def test_cursor_only_moves_forward(tmp_path):
    store = CursorStore.load(tmp_path / "state.json")

    assert store.advance(Table.payments, 10)
    assert not store.advance(Table.payments, 7)
    assert not store.advance(Table.payments, None)
    assert store.get(Table.payments) == 10
    assert store.get(Table.credit_entries) == 0


def test_cursor_survives_restart(tmp_path):
    path = tmp_path / "state.json"
    store = CursorStore.load(path)
    store.advance(Table.credit_entries, 42)
    store.advance(Table.direct_sales, 7)

    reloaded = CursorStore.load(path)

    assert reloaded.snapshot() == {"credit_entries": 42, "direct_sales": 7, "payments": 0}
    assert json.loads(path.read_text())["credit_entries"] == 42


def test_unreadable_state_starts_from_zero(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json")

    store = CursorStore.load(path)

    assert store.snapshot() == {"credit_entries": 0, "direct_sales": 0, "payments": 0}


def test_failed_write_keeps_value_in_memory(tmp_path):
    # The parent directory does not exist, so every save fails.
    store = CursorStore.load(tmp_path / "missing" / "state.json")

    assert store.advance(Table.direct_sales, 3)
    assert store.get(Table.direct_sales) == 3


def test_interrupted_write_keeps_previous_file(tmp_path, monkeypatch):
    path = tmp_path / "state.json"
    store = CursorStore.load(path)
    store.advance(Table.payments, 5)

    def fail(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr("ledgerbot.cursor.os.replace", fail)
    store.advance(Table.payments, 9)

    assert store.get(Table.payments) == 9
    assert CursorStore.load(path).get(Table.payments) == 5


def test_save_leaves_no_temp_file(tmp_path):
    store = CursorStore.load(tmp_path / "state.json")
    store.advance(Table.direct_sales, 2)

    assert sorted(p.name for p in tmp_path.iterdir()) == ["state.json"]
