from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from fleetpulse.ingestion.identity import IdentityResolver, ResolutionMode, payload_serial, payload_vin
from fleetpulse.models.identity import Identity, ResolutionTier
from fleetpulse.models.message import BrokerMessage
from fleetpulse.state.store import AssetStateStore

FAULTS = [{"spnId": 1327, "fmiId": 11, "milStatus": 1}]


def _store() -> AssetStateStore:
    return AssetStateStore(clock=lambda: datetime(2026, 1, 1, tzinfo=UTC))


def _message(topic: str = "samsara.location", **kwargs: Any) -> BrokerMessage:
    return BrokerMessage(topic=topic, **kwargs)


def _fault_message(**kwargs: Any) -> BrokerMessage:
    return _message(topic="samsara.faults", **kwargs)


def test_envelope_id_wins() -> None:
    resolver = IdentityResolver(_store())
    payload = {"asset": {"id": "a1"}, "vehicleId": "other", "location": {}}
    resolution = resolver.resolve(payload, _message(key=b"k"))
    assert resolution.tier is ResolutionTier.ENVELOPE
    assert resolution.identity is not None
    assert resolution.identity.primary_id == "a1"
    # No VIN anywhere: the VIN falls back to the primary id.
    assert resolution.identity.vin == "a1"


def test_vehicle_wrapper_external_ids() -> None:
    resolver = IdentityResolver(_store())
    payload = {
        "vehicle": {
            "id": "v1",
            "externalIds": {"samsara.vin": "1FTFW1E50PFA00001", "samsara.serial": "G9XX"},
        }
    }
    identity = resolver.resolve(payload, _message()).identity
    assert identity == Identity(primary_id="v1", vin="1FTFW1E50PFA00001", serial="G9XX")
    assert payload_vin(payload) == "1FTFW1E50PFA00001"
    assert payload_serial(payload) == "G9XX"


def test_flat_payload_id() -> None:
    resolver = IdentityResolver(_store())
    resolution = resolver.resolve({"assetId": " v2 ", "spnId": 1}, _fault_message())
    assert resolution.tier is ResolutionTier.PAYLOAD
    assert resolution.identity is not None
    assert resolution.identity.primary_id == "v2"


def test_payload_vin_used_as_id() -> None:
    resolver = IdentityResolver(_store())
    resolution = resolver.resolve({"vin": "VIN9", "faults": FAULTS}, _fault_message())
    assert resolution.tier is ResolutionTier.EXTERNAL_ID
    assert resolution.identity == Identity(primary_id="VIN9", vin="VIN9")


def test_message_key_and_headers_on_location_path() -> None:
    resolver = IdentityResolver(_store())
    by_key = resolver.resolve({"ecuSpeedMph": 5}, _message(key=b"truck-7"))
    by_header = resolver.resolve({"ecuSpeedMph": 5}, _message(headers={"VehicleId": [b"truck-8"]}))
    assert by_key.tier is ResolutionTier.MESSAGE_KEY
    assert by_key.identity is not None
    assert by_key.identity.primary_id == "truck-7"
    assert by_header.tier is ResolutionTier.HEADER
    assert by_header.identity is not None
    assert by_header.identity.primary_id == "truck-8"


def test_fault_transport_ids_must_name_known_assets() -> None:
    store = _store()
    store.upsert(Identity(primary_id="a1", vin="VIN7"))
    store.upsert(Identity(primary_id="a2"))
    resolver = IdentityResolver(store, singleton_fallback=False, partition_fallback=False)

    unknown = resolver.resolve(FAULTS, _fault_message(key=b"mystery"))
    known_key = resolver.resolve(FAULTS, _fault_message(key=b"a2"))
    known_vin_header = resolver.resolve(FAULTS, _fault_message(headers={"vin": b"VIN7"}))

    assert unknown.tier is ResolutionTier.UNRESOLVED
    assert unknown.identity is None
    assert known_key.tier is ResolutionTier.MESSAGE_KEY
    assert known_key.identity is not None
    assert known_key.identity.primary_id == "a2"
    assert known_vin_header.tier is ResolutionTier.HEADER
    assert known_vin_header.identity == Identity(primary_id="a1", vin="VIN7")


def test_unknown_transport_ids_accepted_when_enabled() -> None:
    resolver = IdentityResolver(_store(), accept_unknown_transport_ids=True)
    resolution = resolver.resolve(FAULTS, _fault_message(key="new-asset"))
    assert resolution.tier is ResolutionTier.MESSAGE_KEY
    assert resolution.identity is not None
    assert resolution.identity.primary_id == "new-asset"


def test_partition_sticky_fallback() -> None:
    store = _store()
    store.upsert(Identity(primary_id="a1", vin="VIN1"))
    store.upsert(Identity(primary_id="a2"))
    resolver = IdentityResolver(store)
    resolver.remember_partition(3, "a1")

    resolution = resolver.resolve(FAULTS, _fault_message(partition=3))
    other_partition = resolver.resolve(FAULTS, _fault_message(partition=4))

    assert resolution.tier is ResolutionTier.PARTITION
    assert resolution.identity == Identity(primary_id="a1", vin="VIN1")
    # Two assets held and nothing seen on partition 4.
    assert other_partition.tier is ResolutionTier.UNRESOLVED


def test_singleton_fallback_attaches_to_only_asset() -> None:
    store = _store()
    store.upsert(Identity(primary_id="a1", vin="VIN1"))
    resolver = IdentityResolver(store)

    resolution = resolver.resolve(FAULTS, _fault_message(partition=7, key=b"mystery"))

    assert resolution.tier is ResolutionTier.SINGLETON
    assert resolution.tier.is_heuristic
    assert resolution.identity == Identity(primary_id="a1", vin="VIN1")


def test_heuristics_can_be_disabled() -> None:
    store = _store()
    store.upsert(Identity(primary_id="a1"))
    resolver = IdentityResolver(store, singleton_fallback=False, partition_fallback=False)
    resolver.remember_partition(0, "a1")
    assert not resolver.resolve(FAULTS, _fault_message()).resolved


def test_heuristics_never_apply_to_location_messages() -> None:
    store = _store()
    store.upsert(Identity(primary_id="a1"))
    resolver = IdentityResolver(store)
    resolver.remember_partition(0, "a1")
    assert resolver.resolve({"ecuSpeedMph": 5}, _message()).tier is ResolutionTier.UNRESOLVED


def test_tier_counts() -> None:
    resolver = IdentityResolver(_store())
    resolver.resolve({"assetId": "a"}, _message())
    resolver.resolve({"assetId": "b"}, _message())
    resolver.resolve({}, _message())
    assert resolver.tier_counts[ResolutionTier.PAYLOAD] == 2
    assert resolver.tier_counts[ResolutionTier.UNRESOLVED] == 1


def test_known_message_key_wins_over_payload_vin() -> None:
    store = _store()
    store.upsert(Identity(primary_id="k1"))
    store.upsert(Identity(primary_id="k2"))
    resolver = IdentityResolver(store)

    resolution = resolver.resolve({"vin": "V1", "faults": FAULTS}, _fault_message(key=b"k1"))

    assert resolution.tier is ResolutionTier.MESSAGE_KEY
    assert resolution.identity == Identity(primary_id="k1", vin="V1")


def test_payload_vin_of_known_asset_resolves_to_that_asset() -> None:
    store = _store()
    store.upsert(Identity(primary_id="a1", vin="VIN7"))
    store.upsert(Identity(primary_id="a2"))
    resolver = IdentityResolver(store)

    resolution = resolver.resolve({"vin": "VIN7", "faults": FAULTS}, _fault_message())

    assert resolution.tier is ResolutionTier.EXTERNAL_ID
    assert resolution.identity == Identity(primary_id="a1", vin="VIN7")


def test_unknown_id_header_does_not_hide_known_vin_header() -> None:
    store = _store()
    store.upsert(Identity(primary_id="a1", vin="VIN7"))
    store.upsert(Identity(primary_id="a2"))
    resolver = IdentityResolver(store, singleton_fallback=False, partition_fallback=False)

    resolution = resolver.resolve(FAULTS, _fault_message(headers={"id": b"nobody", "vin": b"VIN7"}))

    assert resolution.tier is ResolutionTier.HEADER
    assert resolution.identity == Identity(primary_id="a1", vin="VIN7")
