"""Canonical asset identity and identity-resolution result."""

from __future__ import annotations

from enum import StrEnum

from pydantic import ConfigDict, Field, field_validator

from fleetpulse.models._base import FleetModel


class ResolutionTier(StrEnum):
    """Which precedence rule produced an asset's primary id.

    Tiers are listed in precedence order.  ``PARTITION`` and ``SINGLETON``
    are heuristics: they correlate a message to an asset without any
    identifying field in the message itself.
    """

    ENVELOPE = "envelope"
    PAYLOAD = "payload"
    EXTERNAL_ID = "external_id"
    MESSAGE_KEY = "message_key"
    HEADER = "header"
    PARTITION = "partition"
    SINGLETON = "singleton"
    UNRESOLVED = "unresolved"

    @property
    def is_heuristic(self) -> bool:
        return self in (ResolutionTier.PARTITION, ResolutionTier.SINGLETON)


class Identity(FleetModel):
    """Canonical identity of a physical asset."""

    model_config = ConfigDict(frozen=True)

    primary_id: str = Field(..., description="Canonical id, used as the store key")
    vin: str | None = None
    serial: str | None = None

    @field_validator("primary_id")
    @classmethod
    def _normalize_primary_id(cls, value: str) -> str:
        primary_id = value.strip()
        if not primary_id:
            raise ValueError("primary_id must be non-empty")
        return primary_id


class IdentityResolution(FleetModel):
    """Outcome of identity resolution: resolved with a tier, or unresolved.

    ``identity`` is ``None`` exactly when ``tier`` is
    :attr:`ResolutionTier.UNRESOLVED`.
    """

    model_config = ConfigDict(frozen=True)

    tier: ResolutionTier
    identity: Identity | None = None

    @property
    def resolved(self) -> bool:
        return self.identity is not None

    @classmethod
    def unresolved(cls) -> IdentityResolution:
        return cls(tier=ResolutionTier.UNRESOLVED)
