"""Identity resolution.

Feeds omit identity fields inconsistently across message types, so the
canonical asset id is chosen by a fixed precedence list:

==================  =====================================================
tier                source
==================  =====================================================
``envelope``        ``asset.id`` / ``vehicle.id``
``payload``         top-level ``id`` / ``vehicleId`` / ``assetId``
``message_key``     transport message key
``header``          id headers, then VIN headers, each tried in turn
``external_id``     VIN or serial found in the payload (backfill)
``partition``       id last seen on the same partition (heuristic)
``singleton``       the only asset in the store (heuristic)
==================  =====================================================

The two heuristic tiers only apply to fault messages and can be disabled.
On the fault path transport-derived ids (key, headers) must name an asset
the store already knows, unless ``accept_unknown_transport_ids`` is set:
fault messages carrying nothing but transport metadata do not create
assets on their own.
"""

from __future__ import annotations

import logging
from collections import Counter
from enum import StrEnum

from pydantic import JsonValue

from fleetpulse.ingestion.normalize import safe_str
from fleetpulse.models.identity import Identity, IdentityResolution, ResolutionTier
from fleetpulse.models.message import BrokerMessage
from fleetpulse.state.store import AssetStateStore

_logger = logging.getLogger(__name__)

_FLAT_ID_KEYS: tuple[str, ...] = ("id", "vehicleId", "assetId")
_WRAPPER_KEYS: tuple[str, ...] = ("asset", "vehicle")


def _clean(value: object) -> str | None:
    text = safe_str(value)
    if text is None:
        return None
    return text.strip() or None


class ResolutionMode(StrEnum):
    LOCATION = "location"
    FAULT = "fault"


def _wrapper_value(payload: JsonValue, *path: str) -> str | None:
    """Return the first non-empty ``<wrapper>.<path>`` across asset/vehicle."""
    if not isinstance(payload, dict):
        return None
    for wrapper_key in _WRAPPER_KEYS:
        node: JsonValue = payload.get(wrapper_key)
        for key in path:
            node = node.get(key) if isinstance(node, dict) else None
        text = _clean(node)
        if text:
            return text
    return None


def _flat_value(payload: JsonValue, *keys: str) -> str | None:
    if not isinstance(payload, dict):
        return None
    for key in keys:
        text = _clean(payload.get(key))
        if text:
            return text
    return None


def payload_vin(payload: JsonValue) -> str | None:
    return (
        _wrapper_value(payload, "externalIds", "samsara.vin")
        or _flat_value(payload, "vin", "VIN")
        or _wrapper_value(payload, "vin")
    )


def payload_serial(payload: JsonValue) -> str | None:
    return (
        _wrapper_value(payload, "externalIds", "samsara.serial")
        or _flat_value(payload, "serial")
        or _wrapper_value(payload, "serial")
    )


class IdentityResolver:
    """Resolve a canonical :class:`Identity` for each inbound message.

    Keeps the partition-sticky cache: the id of the last accepted location
    message per partition.  Faults on that partition are assumed to come
    from the same physical source until a new location arrives.
    """

    def __init__(
        self,
        store: AssetStateStore,
        *,
        id_header_names: tuple[str, ...] = ("id", "vehicleId", "assetId"),
        vin_header_names: tuple[str, ...] = ("vin", "VIN"),
        serial_header_names: tuple[str, ...] = ("serial",),
        partition_fallback: bool = True,
        singleton_fallback: bool = True,
        accept_unknown_transport_ids: bool = False,
    ) -> None:
        self._store = store
        self._id_header_names = id_header_names
        self._vin_header_names = vin_header_names
        self._serial_header_names = serial_header_names
        self._partition_fallback = partition_fallback
        self._singleton_fallback = singleton_fallback
        self._accept_unknown_transport_ids = accept_unknown_transport_ids
        self._partition_last_id: dict[int, str] = {}
        self.tier_counts: Counter[ResolutionTier] = Counter()

    def remember_partition(self, partition: int, asset_id: str) -> None:
        """Record *asset_id* as the last location source seen on *partition*."""
        self._partition_last_id[partition] = asset_id

    def last_id_for_partition(self, partition: int) -> str | None:
        return self._partition_last_id.get(partition)

    def _known_asset_id(self, candidate: str) -> str | None:
        if candidate in self._store:
            return candidate
        return self._store.asset_id_for_vin(candidate)

    def _transport_candidate(self, candidate: str | None, mode: ResolutionMode) -> str | None:
        candidate = _clean(candidate)
        if not candidate:
            return None
        if mode is ResolutionMode.LOCATION or self._accept_unknown_transport_ids:
            return candidate
        return self._known_asset_id(candidate)

    def _resolve_primary_id(
        self,
        payload: JsonValue,
        message: BrokerMessage,
        mode: ResolutionMode,
    ) -> tuple[str | None, ResolutionTier]:
        envelope_id = _wrapper_value(payload, "id")
        if envelope_id:
            return envelope_id, ResolutionTier.ENVELOPE

        flat_id = _flat_value(payload, *_FLAT_ID_KEYS)
        if flat_id:
            return flat_id, ResolutionTier.PAYLOAD

        key_id = self._transport_candidate(message.key_text, mode)
        if key_id:
            return key_id, ResolutionTier.MESSAGE_KEY

        for name in (*self._id_header_names, *self._vin_header_names):
            header_id = self._transport_candidate(message.header(name), mode)
            if header_id:
                return header_id, ResolutionTier.HEADER

        external_id = payload_vin(payload) or payload_serial(payload)
        if external_id:
            return self._known_asset_id(external_id) or external_id, ResolutionTier.EXTERNAL_ID

        if mode is ResolutionMode.FAULT:
            if self._partition_fallback:
                sticky_id = self._partition_last_id.get(message.partition)
                if sticky_id:
                    return sticky_id, ResolutionTier.PARTITION
            if self._singleton_fallback:
                sole_id = self._store.sole_asset_id()
                if sole_id:
                    return sole_id, ResolutionTier.SINGLETON

        return None, ResolutionTier.UNRESOLVED

    def resolve(
        self,
        payload: JsonValue,
        message: BrokerMessage,
        *,
        mode: ResolutionMode = ResolutionMode.LOCATION,
    ) -> IdentityResolution:
        """Resolve the identity of *message* with decoded *payload*."""

        primary_id, tier = self._resolve_primary_id(payload, message, mode)
        self.tier_counts[tier] += 1
        if primary_id is None:
            return IdentityResolution.unresolved()

        known = self._store.get(primary_id)
        vin = (
            payload_vin(payload)
            or message.header(*self._vin_header_names)
            or (known.identity.vin if known is not None else None)
            or primary_id
        )
        serial = payload_serial(payload) or message.header(*self._serial_header_names)

        if tier.is_heuristic:
            _logger.info(
                "Identity resolved by %s heuristic id=%s topic=%s partition=%s offset=%s",
                tier,
                primary_id,
                message.topic,
                message.partition,
                message.offset,
            )
        else:
            _logger.debug("Identity resolved tier=%s id=%s", tier, primary_id)

        return IdentityResolution(
            tier=tier,
            identity=Identity(primary_id=primary_id, vin=vin, serial=serial),
        )
