"""Vendor payload shapes recognized by the schema matchers.

Enum values and field meanings follow the telematics provider's
location stream and the J1939 diagnostic trouble-code stream.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator, model_validator

from fleetpulse.ingestion.normalize import safe_float, safe_int, safe_str
from fleetpulse.models._base import PayloadModel


class ExternalIds(PayloadModel):
    samsara_vin: str | None = Field(default=None, alias="samsara.vin")
    samsara_serial: str | None = Field(default=None, alias="samsara.serial")

    @field_validator("samsara_vin", "samsara_serial", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str | None:
        return safe_str(value)


class AssetRef(PayloadModel):
    """The ``asset`` / ``vehicle`` wrapper of an enveloped message."""

    id: str | None = None
    vin: str | None = None
    serial: str | None = None
    external_ids: ExternalIds | None = None

    @field_validator("id", "vin", "serial", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str | None:
        return safe_str(value)

    @property
    def external_vin(self) -> str | None:
        return self.external_ids.samsara_vin if self.external_ids is not None else None

    @property
    def external_serial(self) -> str | None:
        return self.external_ids.samsara_serial if self.external_ids is not None else None


class Address(PayloadModel):
    city: str | None = None
    state: str | None = None
    country: str | None = None
    postal_code: str | None = None
    street: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str | None:
        return safe_str(value)


class LocationBlock(PayloadModel):
    latitude: float | None = None
    longitude: float | None = None
    heading_degrees: float | None = None
    accuracy_meters: float | None = None
    address: Address | None = None

    @field_validator("latitude", "longitude", "heading_degrees", "accuracy_meters", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)


class SpeedBlock(PayloadModel):
    ecu_speed_meters_per_second: float | None = None

    @field_validator("ecu_speed_meters_per_second", mode="before")
    @classmethod
    def _coerce_float(cls, value: Any) -> float | None:
        return safe_float(value)


class SpeedSample(PayloadModel):
    time: str | None = None
    value: float | None = None

    @model_validator(mode="before")
    @classmethod
    def _wrap_bare_number(cls, values: Any) -> Any:
        if isinstance(values, (int, float, str)) and not isinstance(values, bool):
            return {"value": values}
        return values

    @field_validator("time", mode="before")
    @classmethod
    def _coerce_time(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_value(cls, value: Any) -> float | None:
        return safe_float(value)


class LocationPayload(PayloadModel):
    """Location and/or speed report.

    Covers both the enveloped asset-location shape (``asset`` or
    ``vehicle`` wrapper plus ``location`` block) and the flat vehicle-speed
    shape (``ecuSpeedMph`` sample without a location block).
    """

    asset: AssetRef | None = None
    vehicle: AssetRef | None = None
    happened_at_time: str | None = None
    time: str | None = None
    location: LocationBlock | None = None
    speed: SpeedBlock | None = None
    ecu_speed_mph: SpeedSample | None = None

    @field_validator("happened_at_time", "time", mode="before")
    @classmethod
    def _coerce_time(cls, value: Any) -> str | None:
        return safe_str(value)

    @property
    def wrapper(self) -> AssetRef | None:
        return self.asset if self.asset is not None else self.vehicle


class J1939FaultItem(PayloadModel):
    """One J1939 diagnostic trouble code as reported by the feed."""

    spn_id: int | None = None
    fmi_id: int | None = None
    spn_description: str | None = None
    fmi_description: str | None = None
    mil_status: int | None = None
    occurrence_count: int | None = None
    source_address_name: str | None = None
    tx_id: int | None = None

    @field_validator("spn_id", "fmi_id", "mil_status", "occurrence_count", "tx_id", mode="before")
    @classmethod
    def _coerce_ints(cls, value: Any) -> int | None:
        return safe_int(value)

    @field_validator("spn_description", "fmi_description", "source_address_name", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str | None:
        return safe_str(value)
