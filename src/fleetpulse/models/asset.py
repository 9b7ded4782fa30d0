"""Per-asset aggregated state."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from fleetpulse.models._base import FleetModel
from fleetpulse.models.fault import FaultSnapshot
from fleetpulse.models.identity import Identity
from fleetpulse.models.location import LocationRecord


class AssetState(FleetModel):
    """Canonical state of one asset, keyed by ``identity.primary_id``.

    Instances held by the store are mutated in place; everything handed
    out of the store is a deep copy.
    """

    identity: Identity
    last_location: LocationRecord = Field(default_factory=LocationRecord)
    last_fault_snapshot: FaultSnapshot = Field(default_factory=FaultSnapshot)
    last_topic: str | None = None
    last_update_timestamp: datetime

    @property
    def asset_id(self) -> str:
        return self.identity.primary_id
