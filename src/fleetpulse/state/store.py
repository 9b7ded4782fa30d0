"""In-memory asset state store.

This is the only component allowed to mutate asset state.  Every
:class:`AssetState` handed out of the store is a deep copy, so callers and
subscribers can never observe a record mid-mutation.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime

from fleetpulse.models.asset import AssetState
from fleetpulse.models.fault import Fault, FaultCounts, Severity
from fleetpulse.models.identity import Identity
from fleetpulse.models.location import LocationRecord
from fleetpulse.state.policy import Freshness, classify_freshness

DEFAULT_HISTORY_CAPACITY = 600


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _merge_identity(previous: Identity, incoming: Identity) -> Identity:
    return Identity(
        primary_id=previous.primary_id,
        vin=incoming.vin if incoming.vin is not None else previous.vin,
        serial=incoming.serial if incoming.serial is not None else previous.serial,
    )


def tally_severities(faults: list[Fault]) -> FaultCounts:
    counts = {severity.value: 0 for severity in Severity}
    for fault in faults:
        counts[Severity(fault.severity).value] += 1
    return FaultCounts(**counts)


class AssetStateStore:
    """Map from canonical asset id to :class:`AssetState`.

    Mutation goes exclusively through :meth:`upsert` and
    :meth:`merge_fault`.  Both stamp ``last_update_timestamp`` from the
    processing clock, not from event time.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        history_capacity: int = DEFAULT_HISTORY_CAPACITY,
    ) -> None:
        if history_capacity <= 0:
            raise ValueError("history_capacity must be positive")
        self._clock = clock
        self._history_capacity = history_capacity
        self._assets: dict[str, AssetState] = {}

    @property
    def history_capacity(self) -> int:
        return self._history_capacity

    def _entry(self, identity: Identity) -> AssetState:
        state = self._assets.get(identity.primary_id)
        if state is None:
            state = AssetState(identity=identity, last_update_timestamp=self._clock())
            self._assets[identity.primary_id] = state
        return state

    def upsert(
        self,
        identity: Identity,
        partial_location: LocationRecord | None = None,
        topic: str | None = None,
    ) -> AssetState:
        """Create or update an asset with a sparse location patch.

        Present fields of *partial_location* overwrite; absent fields keep
        the stored value.  Returns a copy of the updated state.
        """

        state = self._entry(identity)
        state.identity = _merge_identity(state.identity, identity)
        if partial_location is not None:
            state.last_location = partial_location.merged_over(state.last_location)
        if topic is not None:
            state.last_topic = topic
        state.last_update_timestamp = self._clock()
        return state.model_copy(deep=True)

    def merge_fault(self, asset_state: AssetState, fault: Fault) -> None:
        """Record *fault* in history and reconcile the asset's active faults.

        Active faults are unique by code: an active fault replaces any prior
        entry with the same code, an inactive one removes it.
        """

        state = self._entry(asset_state.identity)
        snapshot = state.last_fault_snapshot

        snapshot.history.append(fault)
        overflow = len(snapshot.history) - self._history_capacity
        if overflow > 0:
            del snapshot.history[:overflow]

        index = next((i for i, f in enumerate(snapshot.active_faults) if f.code == fault.code), None)
        if fault.active:
            if index is None:
                snapshot.active_faults.append(fault)
            else:
                snapshot.active_faults[index] = fault
        elif index is not None:
            del snapshot.active_faults[index]

        snapshot.counts = tally_severities(snapshot.active_faults)
        snapshot.mil_on = any(f.meta is not None and f.meta.mil_status == 1 for f in snapshot.active_faults)
        state.last_update_timestamp = self._clock()

    def get(self, asset_id: str) -> AssetState | None:
        state = self._assets.get(asset_id)
        return state.model_copy(deep=True) if state is not None else None

    def snapshot(self) -> list[AssetState]:
        """Return copies of every asset, consistent at the instant of the call."""
        return [state.model_copy(deep=True) for state in self._assets.values()]

    def asset_ids(self) -> list[str]:
        return list(self._assets)

    def asset_id_for_vin(self, vin: str) -> str | None:
        for asset_id, state in self._assets.items():
            if state.identity.vin == vin:
                return asset_id
        return None

    def sole_asset_id(self) -> str | None:
        """Return the only asset id when exactly one asset is held."""
        if len(self._assets) != 1:
            return None
        return next(iter(self._assets))

    def freshness(self, asset_id: str) -> Freshness | None:
        state = self._assets.get(asset_id)
        if state is None:
            return None
        return classify_freshness(self._clock(), state.last_update_timestamp)

    def __len__(self) -> int:
        return len(self._assets)

    def __contains__(self, asset_id: object) -> bool:
        return asset_id in self._assets

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._assets))
