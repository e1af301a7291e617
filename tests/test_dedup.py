from __future__ import annotations

from ledgerbot.dedup import DedupWindow


def test_marked_sale_expires_after_window(clock):
    window = DedupWindow(120, clock=clock)
    window.mark(10)

    clock.now += 119
    assert window.recently_notified(10)

    clock.now += 2
    assert not window.recently_notified(10)
    assert len(window) == 0


def test_empty_ids_are_never_marked(clock):
    window = DedupWindow(120, clock=clock)
    window.mark(None)
    window.mark(0)

    assert len(window) == 0
    assert not window.recently_notified(None)


def test_prune_drops_only_expired(clock):
    window = DedupWindow(60, clock=clock)
    window.mark(1)
    clock.now += 50
    window.mark(2)
    clock.now += 20

    assert window.prune() == 1
    assert window.recently_notified(2)
    assert not window.recently_notified(1)
