from __future__ import annotations

import asyncio

from realtime import RealtimeSubscribeStates

from ledgerbot.realtime import SupabaseChangeFeed, extract_record, realtime_url
from ledgerbot.types import SubscriptionStatus


def test_realtime_url():
    assert realtime_url("https://demo.supabase.co/") == "wss://demo.supabase.co/realtime/v1"
    assert realtime_url("http://localhost:54321") == "ws://localhost:54321/realtime/v1"


def test_extract_record_from_payload_shapes():
    row = {"id": 5, "cliente_id": 1}

    assert extract_record({"data": {"type": "INSERT", "record": row}}) == row
    assert extract_record({"new": row}) == row
    assert extract_record({"data": {"type": "INSERT"}}) is None


class _FakeChannel:
    def __init__(self) -> None:
        self.listeners: dict[str, object] = {}
        self.is_closed = False
        self.is_errored = False

    def on_postgres_changes(self, event, *, schema, table, callback):
        self.listeners[table] = callback
        return self

    async def subscribe(self, callback):
        callback(RealtimeSubscribeStates.SUBSCRIBED, None)
        return self


class _FakeClient:
    def __init__(self, url: str, key: str) -> None:
        self.url = url
        self.is_connected = False
        self.closed = False
        self.channels: list[_FakeChannel] = []

    async def connect(self) -> None:
        self.is_connected = True

    def channel(self, name: str) -> _FakeChannel:
        ch = _FakeChannel()
        self.channels.append(ch)
        return ch

    async def remove_channel(self, channel) -> None:
        channel.is_closed = True

    async def close(self) -> None:
        self.closed = True
        self.is_connected = False


def _feed(clients: list[_FakeClient]) -> SupabaseChangeFeed:
    def factory(url: str, key: str) -> _FakeClient:
        clients.append(_FakeClient(url, key))
        return clients[-1]

    return SupabaseChangeFeed("https://demo.supabase.co", "key", watch_interval=0.01, client_factory=factory)


def test_inserts_are_routed_per_table():
    clients: list[_FakeClient] = []
    inserts: list[tuple[str, dict]] = []
    statuses: list[SubscriptionStatus] = []

    async def scenario():
        feed = _feed(clients)
        await feed.subscribe(["ventas", "pagos"], lambda t, r: inserts.append((t, r)), lambda s, e: statuses.append(s))
        channel = clients[0].channels[0]
        channel.listeners["pagos"]({"data": {"record": {"id": 7}}})
        channel.listeners["ventas"]({"data": {}})
        await feed.close()

    asyncio.run(scenario())

    assert clients[0].url == "wss://demo.supabase.co/realtime/v1"
    assert inserts == [("pagos", {"id": 7})]
    assert statuses == [SubscriptionStatus.subscribed]
    assert clients[0].closed


def test_dropped_socket_is_reported_once_as_closed():
    clients: list[_FakeClient] = []
    statuses: list[SubscriptionStatus] = []

    async def scenario():
        feed = _feed(clients)
        await feed.subscribe(["ventas"], lambda t, r: None, lambda s, e: statuses.append(s))
        await asyncio.sleep(0.03)
        assert statuses == [SubscriptionStatus.subscribed]

        # Reconnects exhausted: the client gives up silently.
        clients[0].is_connected = False
        await asyncio.sleep(0.05)
        await feed.close()

    asyncio.run(scenario())

    assert statuses == [SubscriptionStatus.subscribed, SubscriptionStatus.closed]


def test_errored_channel_is_reported_as_closed():
    clients: list[_FakeClient] = []
    statuses: list[SubscriptionStatus] = []

    async def scenario():
        feed = _feed(clients)
        await feed.subscribe(["ventas"], lambda t, r: None, lambda s, e: statuses.append(s))
        clients[0].channels[0].is_errored = True
        await asyncio.sleep(0.05)
        await feed.close()

    asyncio.run(scenario())

    assert statuses[-1] is SubscriptionStatus.closed


def test_connect_failure_reports_channel_error():
    statuses: list[SubscriptionStatus] = []

    def factory(url: str, key: str):
        raise OSError("refused")

    async def scenario():
        feed = SupabaseChangeFeed("https://demo.supabase.co", "key", client_factory=factory)
        await feed.subscribe(["ventas"], lambda t, r: None, lambda s, e: statuses.append(s))

    asyncio.run(scenario())

    assert statuses == [SubscriptionStatus.channel_error]
