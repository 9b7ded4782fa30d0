"""Location/speed normalization."""

from __future__ import annotations

import math

from pydantic import JsonValue, ValidationError

from fleetpulse.models.location import LocationRecord
from fleetpulse.models.payloads import LocationPayload

MPS_TO_MPH = 2.2369362920544


def _speed_mph(payload: LocationPayload) -> float | None:
    mph: float | None = None
    if payload.ecu_speed_mph is not None and payload.ecu_speed_mph.value is not None:
        mph = payload.ecu_speed_mph.value
    # The ECU m/s field is the more authoritative one when both are sent.
    if payload.speed is not None and payload.speed.ecu_speed_meters_per_second is not None:
        mph = payload.speed.ecu_speed_meters_per_second * MPS_TO_MPH
    if mph is None or not math.isfinite(mph):
        return None
    return mph


def normalize_location(payload: LocationPayload | JsonValue, fallback_timestamp: str) -> LocationRecord:
    """Convert a location or speed payload into a :class:`LocationRecord`.

    Timestamp precedence: ``happenedAtTime``, ``ecuSpeedMph.time``, the
    payload ``time`` field, then *fallback_timestamp* (the broker time).
    Fields the payload does not carry stay ``None``.
    """

    if not isinstance(payload, LocationPayload):
        try:
            payload = LocationPayload.model_validate(payload if isinstance(payload, dict) else {})
        except ValidationError:
            payload = LocationPayload()

    sample_time = payload.ecu_speed_mph.time if payload.ecu_speed_mph is not None else None
    time = payload.happened_at_time or sample_time or payload.time or fallback_timestamp

    block = payload.location
    address = block.address if block is not None else None

    return LocationRecord(
        time=time,
        lat=block.latitude if block is not None else None,
        lon=block.longitude if block is not None else None,
        heading_degrees=block.heading_degrees if block is not None else None,
        city=address.city if address is not None else None,
        state=address.state if address is not None else None,
        country=address.country if address is not None else None,
        postal_code=address.postal_code if address is not None else None,
        street=address.street if address is not None else None,
        speed_mph=_speed_mph(payload),
    )
