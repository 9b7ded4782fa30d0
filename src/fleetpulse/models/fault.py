"""Diagnostic fault records and per-asset fault snapshot."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import ConfigDict, Field, field_validator

from fleetpulse.models._base import FleetModel


class Severity(StrEnum):
    """Fault severity.

    Values without a mapped member resolve to ``UNKNOWN`` instead of
    raising ``ValueError``.
    """

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"
    UNKNOWN = "unknown"

    @classmethod
    def _missing_(cls, value: object) -> Severity:
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
        return cls.UNKNOWN


class FaultMeta(FleetModel):
    """Raw J1939 fields retained alongside a normalized fault."""

    model_config = ConfigDict(frozen=True)

    spn: int | None = None
    fmi: int | None = None
    spn_description: str | None = None
    fmi_description: str | None = None
    mil_status: int | None = None
    occurrence_count: int | None = None
    source_address_name: str | None = None
    tx_id: int | None = None


class Fault(FleetModel):
    """A single normalized fault event.

    ``code`` is the de-duplication key within an asset's active faults.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    code: str
    description: str
    severity: Severity = Severity.UNKNOWN
    active: bool = True
    time: str
    meta: FaultMeta | None = None

    @field_validator("severity", mode="before")
    @classmethod
    def _coerce_severity(cls, value: Any) -> Severity:
        if isinstance(value, Severity):
            return value
        return Severity(value)


class FaultCounts(FleetModel):
    critical: int = 0
    warning: int = 0
    info: int = 0
    unknown: int = 0


class FaultSnapshot(FleetModel):
    """Active faults, bounded history and derived counters for one asset.

    Only :class:`fleetpulse.state.store.AssetStateStore` mutates this.
    """

    active_faults: list[Fault] = Field(default_factory=list)
    history: list[Fault] = Field(default_factory=list)
    counts: FaultCounts = Field(default_factory=FaultCounts)
    mil_on: bool = False
