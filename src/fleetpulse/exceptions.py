"""Custom exception hierarchy for fleetpulse."""

from __future__ import annotations


class FleetPulseError(Exception):
    """Base exception for all fleetpulse errors."""


class FleetPulseConfigError(FleetPulseError):
    """Invalid or conflicting configuration."""


class FleetPulseBrokerError(FleetPulseError):
    """The broker message source failed.

    Raised by :meth:`fleetpulse.engine.TelemetryPipeline.run` when the
    source iterator itself raises.  Individual message failures never
    surface here; they are logged and skipped.
    """

    def __init__(self, message: str, *, topic: str | None = None) -> None:
        self.topic = topic
        super().__init__(message)


class UnresolvedIdentityError(FleetPulseError):
    """No canonical asset id could be determined for a manual injection."""

    def __init__(self, message: str, *, candidates: dict[str, str | None] | None = None) -> None:
        self.candidates = candidates or {}
        super().__init__(message)
