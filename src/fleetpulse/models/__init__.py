"""Canonical data models for fleetpulse."""

from fleetpulse.models._base import FleetModel, JsonObject, PayloadModel
from fleetpulse.models.asset import AssetState
from fleetpulse.models.fault import Fault, FaultCounts, FaultMeta, FaultSnapshot, Severity
from fleetpulse.models.identity import Identity, IdentityResolution, ResolutionTier
from fleetpulse.models.location import LocationRecord
from fleetpulse.models.message import BrokerMessage

__all__ = [
    "AssetState",
    "BrokerMessage",
    "Fault",
    "FaultCounts",
    "FaultMeta",
    "FaultSnapshot",
    "FleetModel",
    "Identity",
    "IdentityResolution",
    "JsonObject",
    "LocationRecord",
    "PayloadModel",
    "ResolutionTier",
    "Severity",
]
