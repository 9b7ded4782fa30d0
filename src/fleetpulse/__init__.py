"""fleetpulse - Identity resolution, normalization and live state for fleet telemetry."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fleetpulse")
except PackageNotFoundError:
    __version__ = "0+local"
from fleetpulse.config import BrokerCredentials, FleetPulseConfig
from fleetpulse.engine import IngestResult, IngestStatus, TelemetryPipeline
from fleetpulse.exceptions import (
    FleetPulseBrokerError,
    FleetPulseConfigError,
    FleetPulseError,
    UnresolvedIdentityError,
)
from fleetpulse.models import (
    AssetState,
    BrokerMessage,
    Fault,
    FaultCounts,
    FaultMeta,
    FaultSnapshot,
    Identity,
    LocationRecord,
    ResolutionTier,
    Severity,
)
from fleetpulse.state.events import EventKind, OutboundEvent
from fleetpulse.state.publisher import QueueSubscriber

__all__ = [
    "__version__",
    "AssetState",
    "BrokerCredentials",
    "BrokerMessage",
    "EventKind",
    "Fault",
    "FaultCounts",
    "FaultMeta",
    "FaultSnapshot",
    "FleetPulseBrokerError",
    "FleetPulseConfig",
    "FleetPulseConfigError",
    "FleetPulseError",
    "Identity",
    "IngestResult",
    "IngestStatus",
    "LocationRecord",
    "OutboundEvent",
    "QueueSubscriber",
    "ResolutionTier",
    "Severity",
    "TelemetryPipeline",
    "UnresolvedIdentityError",
]
