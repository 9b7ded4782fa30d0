from __future__ import annotations

from datetime import UTC, datetime

import pytest

from fleetpulse.models.fault import Fault
from fleetpulse.models.identity import Identity
from fleetpulse.models.location import LocationRecord
from fleetpulse.state.events import EventKind, OutboundEvent
from fleetpulse.state.publisher import ChangePublisher, QueueSubscriber
from fleetpulse.state.store import AssetStateStore


def _store() -> AssetStateStore:
    return AssetStateStore(clock=lambda: datetime(2026, 1, 1, tzinfo=UTC))


def _fault(code: str = "SPN 1 FMI 2") -> Fault:
    return Fault(
        id=f"{code}@t",
        code=code,
        description="Diagnostic fault",
        severity="critical",
        time="t",
    )


def test_subscribe_delivers_snapshot_first() -> None:
    store = _store()
    store.upsert(Identity(primary_id="a1", vin="VIN1"), LocationRecord(lat=1.0))
    publisher = ChangePublisher(store)
    events: list[OutboundEvent] = []

    publisher.subscribe(events.append)
    publisher.on_asset_changed(store.upsert(Identity(primary_id="a1"), LocationRecord(lon=2.0)))

    assert [e.kind for e in events] == [EventKind.SNAPSHOT, EventKind.UPDATE]
    snapshot = events[0].payload
    assert isinstance(snapshot, list)
    assert snapshot[0]["identity"]["primary_id"] == "a1"
    assert snapshot[0]["last_location"]["lon"] is None
    update = events[1].payload
    assert isinstance(update, dict)
    assert update["last_location"]["lat"] == 1.0
    assert update["last_location"]["lon"] == 2.0
    assert update["last_update_timestamp"].startswith("2026-01-01T00:00:00")


def test_fault_event_flattens_identity() -> None:
    store = _store()
    asset = store.upsert(Identity(primary_id="a1", vin="VIN1", serial="S1"))
    fault = _fault()
    store.merge_fault(asset, fault)
    publisher = ChangePublisher(store)
    events: list[OutboundEvent] = []
    publisher.subscribe(events.append)

    publisher.on_fault_event("a1", fault)
    publisher.on_fault_event("missing", fault)

    assert [e.kind for e in events] == [EventKind.SNAPSHOT, EventKind.FAULT]
    record = events[1].payload
    assert isinstance(record, dict)
    assert record["id"] == "a1"
    assert record["fault_id"] == "SPN 1 FMI 2@t"
    assert record["vin"] == "VIN1"
    assert record["serial"] == "S1"
    assert record["code"] == "SPN 1 FMI 2"
    assert record["severity"] == "critical"


def test_failing_subscriber_does_not_block_others() -> None:
    store = _store()
    publisher = ChangePublisher(store)
    events: list[OutboundEvent] = []

    def broken(_event: OutboundEvent) -> None:
        raise RuntimeError("socket closed")

    publisher.subscribe(broken)
    publisher.subscribe(events.append)
    publisher.on_asset_changed(store.upsert(Identity(primary_id="a1")))

    assert [e.kind for e in events] == [EventKind.SNAPSHOT, EventKind.UPDATE]
    assert publisher.subscriber_count == 2


def test_unsubscribe_stops_delivery() -> None:
    store = _store()
    publisher = ChangePublisher(store)
    events: list[OutboundEvent] = []

    publisher.subscribe(events.append)
    publisher.unsubscribe(events.append)
    publisher.unsubscribe(events.append)
    publisher.on_asset_changed(store.upsert(Identity(primary_id="a1")))

    assert [e.kind for e in events] == [EventKind.SNAPSHOT]
    assert publisher.subscriber_count == 0


@pytest.mark.asyncio
async def test_queue_subscriber_buffers_and_drops_when_full() -> None:
    store = _store()
    publisher = ChangePublisher(store)
    subscriber = QueueSubscriber(maxsize=2)

    publisher.subscribe(subscriber)
    publisher.on_asset_changed(store.upsert(Identity(primary_id="a1")))
    publisher.on_asset_changed(store.upsert(Identity(primary_id="a2")))

    assert subscriber.dropped == 1
    first = await subscriber.get()
    second = await subscriber.get()
    assert first.kind is EventKind.SNAPSHOT
    assert second.kind is EventKind.UPDATE
    assert isinstance(second.payload, dict)
    assert second.payload["identity"]["primary_id"] == "a1"
