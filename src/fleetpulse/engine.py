"""Telemetry pipeline: the single mutation entry point.

Every broker message flows through :meth:`TelemetryPipeline.ingest`:

    decode → classify → resolve identity + normalize → store → publish

Processing is synchronous and runs to completion per message, so the
store never exposes a half-applied mutation to subscribers or snapshot
readers.  Messages that cannot be classified, attributed to an asset, or
that carry no faults are dropped and counted; nothing here is fatal.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import AsyncIterable, Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import JsonValue

from fleetpulse._redact import redact_for_log
from fleetpulse.config import FleetPulseConfig
from fleetpulse.exceptions import FleetPulseBrokerError, UnresolvedIdentityError
from fleetpulse.ingestion.faults import DEFAULT_DESCRIPTION, normalize_fault_items, normalize_faults
from fleetpulse.ingestion.identity import IdentityResolver, ResolutionMode
from fleetpulse.ingestion.location import normalize_location
from fleetpulse.ingestion.matchers import Classification, PayloadKind, classify
from fleetpulse.ingestion.normalize import decode_payload, message_time_iso, to_iso
from fleetpulse.models.asset import AssetState
from fleetpulse.models.fault import Fault, Severity
from fleetpulse.models.identity import Identity, IdentityResolution, ResolutionTier
from fleetpulse.models.location import LocationRecord
from fleetpulse.models.message import BrokerMessage
from fleetpulse.state.policy import Freshness
from fleetpulse.state.publisher import ChangePublisher, Subscriber, asset_record, fault_record
from fleetpulse.state.store import AssetStateStore

_logger = logging.getLogger(__name__)

MANUAL_TOPIC = "manual"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class IngestStatus(StrEnum):
    ACCEPTED = "accepted"
    UNKNOWN_SHAPE = "unknown_shape"
    KIND_MISMATCH = "kind_mismatch"
    UNRESOLVED_IDENTITY = "unresolved_identity"
    NO_FAULTS = "no_faults"


@dataclass(frozen=True)
class IngestResult:
    """Outcome of processing one broker message."""

    status: IngestStatus
    asset_id: str | None = None
    fault_count: int = 0
    tier: ResolutionTier | None = None

    @property
    def accepted(self) -> bool:
        return self.status is IngestStatus.ACCEPTED


def _payload_shape(payload: JsonValue) -> list[str] | str:
    if isinstance(payload, dict):
        return sorted(payload)
    return type(payload).__name__


class TelemetryPipeline:
    """Identity resolution, normalization and aggregation for a fleet feed.

    Usage::

        pipeline = TelemetryPipeline(FleetPulseConfig.from_env())
        pipeline.subscribe(on_event)
        await pipeline.run(broker_messages)
    """

    def __init__(
        self,
        config: FleetPulseConfig | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config = config if config is not None else FleetPulseConfig()
        self._clock = clock
        self._store = AssetStateStore(clock=clock, history_capacity=self._config.history_capacity)
        self._resolver = IdentityResolver(
            self._store,
            id_header_names=self._config.id_header_names,
            vin_header_names=self._config.vin_header_names,
            partition_fallback=self._config.partition_fallback,
            singleton_fallback=self._config.singleton_fallback,
        )
        self._publisher = ChangePublisher(self._store)
        self.outcome_counts: Counter[IngestStatus] = Counter()

    @property
    def config(self) -> FleetPulseConfig:
        return self._config

    @property
    def store(self) -> AssetStateStore:
        return self._store

    @property
    def resolver(self) -> IdentityResolver:
        return self._resolver

    @property
    def publisher(self) -> ChangePublisher:
        return self._publisher

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def subscribe(self, subscriber: Subscriber) -> None:
        self._publisher.subscribe(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        self._publisher.unsubscribe(subscriber)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest(self, message: BrokerMessage | Mapping[str, Any]) -> IngestResult:
        """Process one broker message and publish the resulting changes."""
        if not isinstance(message, BrokerMessage):
            message = BrokerMessage.model_validate(message)

        timestamp = message_time_iso(message.timestamp, self._clock)
        payload = decode_payload(message.value)
        classification = classify(payload)

        if classification.kind is PayloadKind.UNKNOWN:
            _logger.debug(
                "Dropped unrecognized payload topic=%s partition=%s offset=%s shape=%s",
                message.topic,
                message.partition,
                message.offset,
                _payload_shape(payload),
            )
            return self._record(IngestResult(status=IngestStatus.UNKNOWN_SHAPE))

        if self._config.is_fault_topic(message.topic):
            result = self._ingest_faults(message, payload, classification, timestamp)
        else:
            result = self._ingest_location(message, payload, classification, timestamp)
        return self._record(result)

    def _record(self, result: IngestResult) -> IngestResult:
        self.outcome_counts[result.status] += 1
        return result

    def _ingest_faults(
        self,
        message: BrokerMessage,
        payload: JsonValue,
        classification: Classification,
        timestamp: str,
    ) -> IngestResult:
        faults: list[Fault] = []
        if classification.kind.is_fault:
            faults = normalize_fault_items(classification.fault_items, timestamp)

        # Tier counters only cover messages that carry faults.
        if not faults:
            self._warn_dropped(message, payload, "no codes found")
            return IngestResult(status=IngestStatus.NO_FAULTS)

        resolution = self._resolver.resolve(payload, message, mode=ResolutionMode.FAULT)
        if resolution.identity is None:
            self._warn_dropped(message, payload, "missing id/vin")
            return IngestResult(status=IngestStatus.UNRESOLVED_IDENTITY, tier=resolution.tier)

        asset = self._store.upsert(resolution.identity, None, message.topic)
        for fault in faults:
            self._store.merge_fault(asset, fault)
            self._publisher.on_fault_event(asset.asset_id, fault)
        self._publish_update(asset.asset_id)
        return IngestResult(
            status=IngestStatus.ACCEPTED,
            asset_id=asset.asset_id,
            fault_count=len(faults),
            tier=resolution.tier,
        )

    def _ingest_location(
        self,
        message: BrokerMessage,
        payload: JsonValue,
        classification: Classification,
        timestamp: str,
    ) -> IngestResult:
        if classification.kind is not PayloadKind.LOCATION:
            _logger.debug(
                "Dropped %s payload on location topic=%s partition=%s offset=%s",
                classification.kind,
                message.topic,
                message.partition,
                message.offset,
            )
            return IngestResult(status=IngestStatus.KIND_MISMATCH)

        record = normalize_location(classification.location, timestamp)
        resolution: IdentityResolution = self._resolver.resolve(payload, message, mode=ResolutionMode.LOCATION)
        if resolution.identity is None:
            self._warn_dropped(message, payload, "missing id/vin")
            return IngestResult(status=IngestStatus.UNRESOLVED_IDENTITY, tier=resolution.tier)

        asset = self._store.upsert(resolution.identity, record, message.topic)
        self._resolver.remember_partition(message.partition, asset.asset_id)
        self._publisher.on_asset_changed(asset)
        return IngestResult(status=IngestStatus.ACCEPTED, asset_id=asset.asset_id, tier=resolution.tier)

    def _publish_update(self, asset_id: str) -> None:
        asset = self._store.get(asset_id)
        if asset is not None:
            self._publisher.on_asset_changed(asset)

    def _warn_dropped(self, message: BrokerMessage, payload: JsonValue, reason: str) -> None:
        _logger.warning(
            "Dropped message reason=%s topic=%s partition=%s offset=%s key=%s headers=%s keys=%s",
            reason,
            message.topic,
            message.partition,
            message.offset,
            redact_for_log(message.key_text),
            redact_for_log(message.header_texts()),
            _payload_shape(payload),
        )

    async def run(self, source: AsyncIterable[BrokerMessage | Mapping[str, Any]]) -> None:
        """Consume *source* sequentially until it is exhausted.

        A message that fails processing is logged and skipped.  A failure of
        the source itself is surfaced as :class:`FleetPulseBrokerError`.
        """

        iterator = aiter(source)
        while True:
            try:
                message = await anext(iterator)
            except StopAsyncIteration:
                return
            except Exception as exc:
                raise FleetPulseBrokerError(f"Broker source failed: {exc}") from exc

            try:
                self.ingest(message)
            except Exception:
                _logger.warning("Message processing failed; continuing", exc_info=True)
            # Let subscriber tasks drain between messages.
            await asyncio.sleep(0)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def snapshot(self) -> list[AssetState]:
        return self._publisher.snapshot()

    def get_snapshot_array(self) -> list[dict[str, Any]]:
        return [asset_record(asset) for asset in self.snapshot()]

    def get_active_faults_flattened(self) -> list[dict[str, Any]]:
        """Every active fault across all assets, with identity and location context."""
        items: list[dict[str, Any]] = []
        for asset in self.snapshot():
            location = asset.last_location
            for fault in asset.last_fault_snapshot.active_faults:
                record = fault_record(asset, fault)
                record.update(city=location.city, state=location.state, lat=location.lat, lon=location.lon)
                items.append(record)
        return items

    def freshness(self) -> dict[str, Freshness]:
        result: dict[str, Freshness] = {}
        for asset_id in self._store:
            bucket = self._store.freshness(asset_id)
            if bucket is not None:
                result[asset_id] = bucket
        return result

    def stats(self) -> dict[str, Any]:
        return {
            "size": len(self._store),
            "topics": list(self._config.topics),
            "group_id": self._config.group_id,
            "subscribers": self._publisher.subscriber_count,
            "tiers": {str(tier): count for tier, count in self._resolver.tier_counts.items()},
            "outcomes": {str(status): count for status, count in self.outcome_counts.items()},
        }

    # ------------------------------------------------------------------
    # Manual injection (operator/debug paths)
    # ------------------------------------------------------------------

    def _manual_identity(self, asset_id: str | None, vin: str | None, serial: str | None = None) -> Identity:
        primary_id = (asset_id or "").strip() or (vin or "").strip()
        if not primary_id:
            raise UnresolvedIdentityError(
                "asset_id or vin required",
                candidates={"asset_id": asset_id, "vin": vin},
            )
        known = self._store.get(primary_id)
        known_vin = known.identity.vin if known is not None else None
        return Identity(primary_id=primary_id, vin=vin or known_vin or primary_id, serial=serial)

    def inject_location(
        self,
        asset_id: str | None = None,
        *,
        vin: str | None = None,
        serial: str | None = None,
        location: LocationRecord | None = None,
        topic: str = MANUAL_TOPIC,
    ) -> AssetState:
        """Upsert an asset directly, bypassing the broker path."""
        identity = self._manual_identity(asset_id, vin, serial)
        if location is None:
            location = LocationRecord(time=to_iso(self._clock()))
        asset = self._store.upsert(identity, location, topic)
        self._publisher.on_asset_changed(asset)
        return asset

    def inject_fault(
        self,
        code: str,
        *,
        asset_id: str | None = None,
        vin: str | None = None,
        description: str | None = None,
        severity: Severity | str = Severity.UNKNOWN,
        active: bool = True,
        topic: str = MANUAL_TOPIC,
    ) -> Fault:
        """Merge an operator-supplied fault.  ``active=False`` clears *code*."""
        identity = self._manual_identity(asset_id, vin)
        now = to_iso(self._clock())
        fault = Fault(
            id=f"{code}@{now}",
            code=code,
            description=description or DEFAULT_DESCRIPTION,
            severity=severity,
            active=active,
            time=now,
        )
        asset = self._store.upsert(identity, None, topic)
        self._store.merge_fault(asset, fault)
        self._publisher.on_fault_event(asset.asset_id, fault)
        self._publish_update(asset.asset_id)
        return fault

    def clear_fault(self, code: str, *, asset_id: str | None = None, vin: str | None = None) -> Fault:
        return self.inject_fault(code, asset_id=asset_id, vin=vin, active=False)

    def inject_fault_codes(
        self,
        codes: JsonValue,
        *,
        asset_id: str | None = None,
        vin: str | None = None,
        topic: str = MANUAL_TOPIC,
    ) -> list[Fault]:
        """Normalize raw J1939 items and merge them as if they came from the feed."""
        identity = self._manual_identity(asset_id, vin)
        faults = normalize_faults(codes, to_iso(self._clock()))
        asset = self._store.upsert(identity, None, topic)
        for fault in faults:
            self._store.merge_fault(asset, fault)
            self._publisher.on_fault_event(asset.asset_id, fault)
        self._publish_update(asset.asset_id)
        return faults
