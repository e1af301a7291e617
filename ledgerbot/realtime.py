from __future__ import annotations

import asyncio
import contextlib
import logging
from functools import partial
from typing import Any, Callable, Protocol

from realtime import AsyncRealtimeChannel, AsyncRealtimeClient, RealtimeSubscribeStates

from .types import SubscriptionStatus

logger = logging.getLogger(__name__)

InsertCallback = Callable[[str, dict[str, Any]], None]
StatusCallback = Callable[[SubscriptionStatus, Exception | None], None]


class ChangeFeed(Protocol):
    async def subscribe(self, tables: list[str], on_insert: InsertCallback, on_status: StatusCallback) -> None: ...

    async def close(self) -> None: ...


def realtime_url(supabase_url: str) -> str:
    base = supabase_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}/realtime/v1"


def extract_record(payload: dict[str, Any]) -> dict[str, Any] | None:
    """Pulls the inserted row out of a postgres_changes payload."""

    data = payload.get("data") if isinstance(payload.get("data"), dict) else payload
    record = data.get("record") or data.get("new")
    return record if isinstance(record, dict) else None


_STATUS_MAP = {
    RealtimeSubscribeStates.SUBSCRIBED: SubscriptionStatus.subscribed,
    RealtimeSubscribeStates.TIMED_OUT: SubscriptionStatus.timed_out,
    RealtimeSubscribeStates.CHANNEL_ERROR: SubscriptionStatus.channel_error,
    RealtimeSubscribeStates.CLOSED: SubscriptionStatus.closed,
}


class SupabaseChangeFeed:
    """INSERT notifications for a set of tables over Supabase Realtime.

    Each `subscribe` call opens a fresh socket and channel, replacing any
    previous one.

    The realtime client only reports join outcomes to the subscribe callback.
    A socket that drops later (clean close or exhausted reconnects) is found by
    a watchdog that checks the connection and channel state every
    `watch_interval` seconds and reports it once as `closed`.
    """

    def __init__(
        self,
        supabase_url: str,
        api_key: str,
        *,
        channel_name: str = "ledger-inserts",
        schema: str = "public",
        watch_interval: float = 5.0,
        client_factory: Callable[[str, str], AsyncRealtimeClient] = AsyncRealtimeClient,
    ) -> None:
        self._url = realtime_url(supabase_url)
        self._key = api_key
        self._channel_name = channel_name
        self._schema = schema
        self._watch_interval = watch_interval
        self._client_factory = client_factory
        self._client: AsyncRealtimeClient | None = None
        self._channel: AsyncRealtimeChannel | None = None
        self._watchdog: asyncio.Task | None = None

    async def subscribe(self, tables: list[str], on_insert: InsertCallback, on_status: StatusCallback) -> None:
        await self.close()

        def _on_change(table: str, payload: dict[str, Any]) -> None:
            record = extract_record(payload)
            if record is None:
                logger.warning("Realtime payload without record for %s", table)
                return
            on_insert(table, record)

        def _on_subscribe(state: RealtimeSubscribeStates, err: Exception | None) -> None:
            status = _STATUS_MAP.get(state, SubscriptionStatus.channel_error)
            if status is SubscriptionStatus.subscribed:
                self._start_watchdog(on_status)
            on_status(status, err)

        try:
            self._client = self._client_factory(self._url, self._key)
            await self._client.connect()
            channel = self._client.channel(self._channel_name)
            for table in tables:
                channel.on_postgres_changes(
                    "INSERT",
                    schema=self._schema,
                    table=table,
                    callback=partial(_on_change, table),
                )
            self._channel = channel
            await channel.subscribe(_on_subscribe)
        except Exception as e:
            logger.exception("Realtime subscription could not be established")
            on_status(SubscriptionStatus.channel_error, e)

    def connection_lost(self) -> bool:
        client, channel = self._client, self._channel
        if client is None or channel is None:
            return False
        if not client.is_connected:
            return True
        return bool(channel.is_closed or channel.is_errored)

    def _start_watchdog(self, on_status: StatusCallback) -> None:
        if self._watchdog is not None and not self._watchdog.done():
            return
        self._watchdog = asyncio.create_task(self._watch(on_status))

    async def _watch(self, on_status: StatusCallback) -> None:
        while True:
            await asyncio.sleep(self._watch_interval)
            if self.connection_lost():
                logger.error("Realtime connection lost")
                on_status(SubscriptionStatus.closed, None)
                return

    async def close(self) -> None:
        watchdog, self._watchdog = self._watchdog, None
        if watchdog is not None and watchdog is not asyncio.current_task():
            watchdog.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watchdog

        client, channel = self._client, self._channel
        self._client = None
        self._channel = None
        if client is None:
            return
        try:
            if channel is not None:
                await client.remove_channel(channel)
            await client.close()
        except Exception:
            logger.exception("Error closing realtime client")
