from __future__ import annotations

from collections import defaultdict
from typing import Any

import httpx
import pytest

from ledgerbot.cursor import CursorStore
from ledgerbot.db import LedgerStore
from ledgerbot.dedup import DedupWindow
from ledgerbot.processor import EventProcessor


def _match(actual: Any, expr: str) -> bool:
    op, _, operand = expr.partition(".")
    if op == "eq":
        return actual is not None and str(actual) == operand
    if op == "gt":
        return actual is not None and float(actual) > float(operand)
    if op == "in":
        return actual is not None and str(actual) in operand.strip("()").split(",")
    if op == "not" and operand == "is.null":
        return actual is not None
    raise AssertionError(f"unsupported filter {expr}")


class FakeSupabase:
    """Tiny in-memory PostgREST: eq/gt/in/not.is.null filters, order and limit."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.requests: list[tuple[str, dict[str, str]]] = []
        self.fail_tables: set[str] = set()

    def add(self, table: str, **row: Any) -> dict[str, Any]:
        self.tables[table].append(row)
        return row

    def requests_for(self, table: str) -> list[dict[str, str]]:
        return [params for name, params in self.requests if name == table]

    def handler(self, request: httpx.Request) -> httpx.Response:
        table = request.url.path.rsplit("/", 1)[-1]
        params = dict(request.url.params.multi_items())
        self.requests.append((table, dict(params)))
        if table in self.fail_tables:
            return httpx.Response(500, text="internal error")

        rows = [dict(r) for r in self.tables.get(table, [])]
        order = params.pop("order", None)
        limit = params.pop("limit", None)
        params.pop("select", None)
        for column, expr in params.items():
            rows = [r for r in rows if _match(r.get(column), expr)]
        if order:
            column, _, direction = order.partition(".")
            rows.sort(key=lambda r: r.get(column) or 0, reverse=direction == "desc")
        if limit is not None:
            rows = rows[: int(limit)]
        return httpx.Response(200, json=rows)


class FakeTransport:
    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.sent: list[tuple[str, str]] = []

    async def send(self, address: str, text: str) -> bool:
        self.sent.append((address, text))
        return self.ok

    async def aclose(self) -> None:
        return None


class FakeFeed:
    def __init__(self) -> None:
        self.subscribe_calls = 0
        self.tables: list[str] = []
        self.on_insert = None
        self.on_status = None
        self.closed = False

    async def subscribe(self, tables, on_insert, on_status) -> None:
        self.subscribe_calls += 1
        self.tables = list(tables)
        self.on_insert = on_insert
        self.on_status = on_status

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def supa() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def store(supa: FakeSupabase) -> LedgerStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(supa.handler))
    return LedgerStore("https://demo.supabase.co", "service-key", client=client)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cursors(tmp_path) -> CursorStore:
    return CursorStore.load(tmp_path / "bot_state.json")


@pytest.fixture
def processor(store, transport, cursors, clock) -> EventProcessor:
    return EventProcessor(
        store,
        transport,
        cursors,
        DedupWindow(120, clock=clock),
        business_name="TEST FARM",
    )


@pytest.fixture
def feed() -> FakeFeed:
    return FakeFeed()
