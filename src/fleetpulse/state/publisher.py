"""Change publisher.

Fans out state mutations to live subscribers.  A subscriber is any
callable accepting an :class:`OutboundEvent`; it receives a ``snapshot``
event when it subscribes and then every ``update``/``fault`` event in the
order mutations were applied.  Delivery is best-effort: a subscriber that
raises is logged and skipped, the others still receive the event.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from fleetpulse.models.asset import AssetState
from fleetpulse.models.fault import Fault
from fleetpulse.state.events import EventKind, OutboundEvent
from fleetpulse.state.store import AssetStateStore

_logger = logging.getLogger(__name__)

Subscriber = Callable[[OutboundEvent], None]


def asset_record(asset: AssetState) -> dict[str, Any]:
    return asset.model_dump(mode="json")


def fault_record(asset: AssetState, fault: Fault) -> dict[str, Any]:
    """Flatten *fault* with the owning asset's identity.

    ``id`` carries the asset id; the fault's own id moves to ``fault_id``.
    """
    record = fault.model_dump(mode="json")
    record["fault_id"] = fault.id
    record["id"] = asset.identity.primary_id
    record["vin"] = asset.identity.vin
    record["serial"] = asset.identity.serial
    return record


class QueueSubscriber:
    """Subscriber adapter that buffers events on an :class:`asyncio.Queue`.

    When the queue is full the newest event is dropped and counted.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self.queue: asyncio.Queue[OutboundEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def __call__(self, event: OutboundEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            _logger.debug("Subscriber queue full; dropped %s event", event.kind)

    async def get(self) -> OutboundEvent:
        return await self.queue.get()


class ChangePublisher:
    """Emit ``snapshot``/``update``/``fault`` events for store mutations."""

    def __init__(self, store: AssetStateStore) -> None:
        self._store = store
        self._subscribers: list[Subscriber] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def snapshot(self) -> list[AssetState]:
        return self._store.snapshot()

    def subscribe(self, subscriber: Subscriber) -> None:
        """Register *subscriber* and deliver the current snapshot to it."""
        event = OutboundEvent(
            kind=EventKind.SNAPSHOT,
            payload=[asset_record(asset) for asset in self.snapshot()],
        )
        self._subscribers.append(subscriber)
        self._deliver(subscriber, event)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        try:
            self._subscribers.remove(subscriber)
        except ValueError:
            _logger.debug("Unsubscribe for unknown subscriber ignored")

    def on_asset_changed(self, asset_state: AssetState) -> None:
        self._broadcast(OutboundEvent(kind=EventKind.UPDATE, payload=asset_record(asset_state)))

    def on_fault_event(self, asset_id: str, fault: Fault) -> None:
        asset = self._store.get(asset_id)
        if asset is None:
            _logger.debug("Fault event for unknown asset %s not published", asset_id)
            return
        self._broadcast(OutboundEvent(kind=EventKind.FAULT, payload=fault_record(asset, fault)))

    def _broadcast(self, event: OutboundEvent) -> None:
        for subscriber in list(self._subscribers):
            self._deliver(subscriber, event)

    def _deliver(self, subscriber: Subscriber, event: OutboundEvent) -> None:
        try:
            subscriber(event)
        except Exception:
            _logger.debug("Subscriber failed to accept %s event", event.kind, exc_info=True)
