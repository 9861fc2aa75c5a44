"""Recurring fetches of remote resources, one independent timer per key.

Each registered :class:`ResourceKey` owns an asyncio task that sleeps for the
key's interval and then fetches. A tick that finds the previous fetch still
in flight is skipped. Snapshots keep the last good value when a fetch fails,
and every fetch carries an issue sequence number so a slow, older response
can never replace a newer one.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable

from tablesync.client.resources import ResourceKey

logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]
Listener = Callable[["Snapshot"], None]


@dataclass(frozen=True)
class Snapshot:
    key: ResourceKey
    value: Any = None
    error: str | None = None
    fetched_at: float | None = None
    sequence: int = 0

    @property
    def has_value(self) -> bool:
        return self.fetched_at is not None

    @property
    def stale(self) -> bool:
        return self.error is not None and self.has_value


@dataclass
class _PollEntry:
    key: ResourceKey
    fetcher: Fetcher
    interval: float
    snapshot: Snapshot
    active: bool = True
    issued: int = 0
    published: int = 0
    timer: asyncio.Task | None = None
    in_flight: set[asyncio.Task] = field(default_factory=set)
    clock_reset: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def busy(self) -> bool:
        return bool(self.in_flight)


class ResourcePoller:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[ResourceKey, _PollEntry] = {}
        self._snapshots: dict[ResourceKey, Snapshot] = {}
        self._listeners: list[Listener] = []
        self._fetch_count = 0
        self._skipped_ticks = 0

    def register(self, key: ResourceKey, fetcher: Fetcher, interval: float) -> None:
        """Start polling ``key``; the first fetch is issued immediately."""
        if not key.is_valid:
            raise ValueError(f"Cannot poll {key}: missing scope id")
        if interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {interval}")

        entry = self._entries.get(key)
        if entry is not None and entry.active:
            entry.fetcher = fetcher
            entry.interval = interval
            return

        entry = _PollEntry(
            key=key,
            fetcher=fetcher,
            interval=interval,
            snapshot=self._snapshots.get(key, Snapshot(key=key)),
        )
        self._entries[key] = entry
        self._start_fetch(entry)
        entry.timer = asyncio.create_task(self._tick_loop(entry), name=f"poll:{key}")
        logger.info(f"Started polling {key} every {interval}s")

    def disable(self, key: ResourceKey) -> None:
        """Stop the timer for ``key``; a late in-flight result is discarded."""
        entry = self._entries.pop(key, None)
        if entry is None:
            return
        entry.active = False
        if entry.timer is not None:
            entry.timer.cancel()
        logger.info(f"Stopped polling {key}")

    def is_active(self, key: ResourceKey) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.active

    def active_keys(self) -> list[ResourceKey]:
        return list(self._entries)

    def snapshot(self, key: ResourceKey) -> Snapshot:
        entry = self._entries.get(key)
        if entry is not None:
            return entry.snapshot
        return self._snapshots.get(key, Snapshot(key=key))

    def forget(self, key: ResourceKey) -> None:
        """Drop the retained snapshot of an inactive key."""
        if key not in self._entries:
            self._snapshots.pop(key, None)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def refresh(self, key: ResourceKey) -> Snapshot:
        """Fetch ``key`` now and restart its tick clock."""
        entry = self._entries.get(key)
        if entry is None or not entry.active:
            return self.snapshot(key)
        entry.clock_reset.set()
        task = self._start_fetch(entry)
        await asyncio.shield(task)
        return entry.snapshot

    async def close(self) -> None:
        entries = list(self._entries.values())
        for entry in entries:
            self.disable(entry.key)
        tasks = [entry.timer for entry in entries if entry.timer is not None]
        for entry in entries:
            for task in list(entry.in_flight):
                task.cancel()
                tasks.append(task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def get_stats(self) -> dict:
        return {
            "active_keys": [str(key) for key in self._entries],
            "fetch_count": self._fetch_count,
            "skipped_ticks": self._skipped_ticks,
        }

    async def _tick_loop(self, entry: _PollEntry) -> None:
        while entry.active:
            try:
                await asyncio.wait_for(entry.clock_reset.wait(), timeout=entry.interval)
            except asyncio.TimeoutError:
                pass
            except asyncio.CancelledError:
                break
            else:
                entry.clock_reset.clear()
                continue

            if not entry.active:
                break
            if entry.busy:
                self._skipped_ticks += 1
                logger.debug(f"Skipping tick for {entry.key}: fetch still in flight")
                continue
            self._start_fetch(entry)

    def _start_fetch(self, entry: _PollEntry) -> asyncio.Task:
        entry.issued += 1
        task = asyncio.create_task(self._fetch(entry, entry.issued))
        entry.in_flight.add(task)
        task.add_done_callback(entry.in_flight.discard)
        return task

    async def _fetch(self, entry: _PollEntry, sequence: int) -> None:
        self._fetch_count += 1
        try:
            value = await entry.fetcher()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(f"Fetch failed for {entry.key}: {exc}")
            self._publish(entry, sequence, error=str(exc) or exc.__class__.__name__)
            return
        self._publish(entry, sequence, value=value)

    def _publish(self, entry: _PollEntry, sequence: int, value: Any = None, error: str | None = None) -> None:
        if not entry.active or self._entries.get(entry.key) is not entry:
            logger.debug(f"Discarding result for inactive key {entry.key}")
            return
        if sequence < entry.published:
            logger.debug(f"Dropping out-of-order result #{sequence} for {entry.key} (have #{entry.published})")
            return

        entry.published = sequence
        if error is not None:
            snapshot = replace(entry.snapshot, error=error, sequence=sequence)
        else:
            snapshot = Snapshot(key=entry.key, value=value, error=None, fetched_at=self._clock(), sequence=sequence)
        entry.snapshot = snapshot
        self._snapshots[entry.key] = snapshot

        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception(f"Snapshot listener failed for {entry.key}")
