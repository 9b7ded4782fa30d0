"""Schema matchers.

Classifies a decoded payload into one of the known shapes.  Matchers run
in a fixed order and the first match wins:

1. enveloped location (``asset``/``vehicle`` wrapper + ``location`` block)
2. flat speed-only (``ecuSpeedMph`` without a ``location`` block)
3. explicit fault container (list payload, ``faults``, ``items``, ``j1939``)
4. single fault object (``spnId``/``fmiId`` on the payload itself)
5. nested fault array found by a bounded-depth walk
6. unknown

Classification is pure; callers decide what to drop and log.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from pydantic import JsonValue, ValidationError

from fleetpulse.models._base import JsonObject
from fleetpulse.models.payloads import LocationPayload

FAULT_CONTAINER_KEYS: tuple[str, ...] = ("faults", "items", "j1939")
FAULT_IDENTIFIER_KEYS: tuple[str, ...] = ("spnId", "fmiId")
MAX_SEARCH_DEPTH = 5


class PayloadKind(StrEnum):
    LOCATION = "location"
    FAULT_SINGLE = "fault_single"
    FAULT_ARRAY = "fault_array"
    FAULT_NESTED = "fault_nested"
    UNKNOWN = "unknown"

    @property
    def is_fault(self) -> bool:
        return self in (PayloadKind.FAULT_SINGLE, PayloadKind.FAULT_ARRAY, PayloadKind.FAULT_NESTED)


@dataclass(frozen=True)
class Classification:
    """Result of :func:`classify`.

    ``location`` is set for :attr:`PayloadKind.LOCATION`; ``fault_items``
    holds the raw fault entries for the fault kinds (possibly empty when
    an explicit container is present but holds nothing).
    """

    kind: PayloadKind
    location: LocationPayload | None = None
    fault_items: tuple[JsonValue, ...] = ()


_UNKNOWN = Classification(kind=PayloadKind.UNKNOWN)


def has_fault_identifier(value: JsonValue) -> bool:
    if not isinstance(value, dict):
        return False
    return any(value.get(key) is not None for key in FAULT_IDENTIFIER_KEYS)


def _match_enveloped_location(payload: JsonObject) -> LocationPayload | None:
    wrapper = payload.get("asset")
    if not isinstance(wrapper, dict):
        wrapper = payload.get("vehicle")
    if not isinstance(wrapper, dict) or not isinstance(payload.get("location"), dict):
        return None
    try:
        return LocationPayload.model_validate(payload)
    except ValidationError:
        return None


def _match_flat_speed(payload: JsonObject) -> LocationPayload | None:
    if payload.get("ecuSpeedMph") is None or isinstance(payload.get("location"), dict):
        return None
    try:
        model = LocationPayload.model_validate(payload)
    except ValidationError:
        return None
    if model.ecu_speed_mph is None or model.ecu_speed_mph.value is None:
        return None
    return model


def _match_fault_container(payload: JsonValue) -> list[JsonValue] | None:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in FAULT_CONTAINER_KEYS:
            candidate = payload.get(key)
            if isinstance(candidate, list):
                return candidate
    return None


def find_fault_array(node: JsonValue, max_depth: int = MAX_SEARCH_DEPTH) -> list[JsonValue] | None:
    """Depth-first search for a list whose first element looks like a fault.

    Objects and arrays are walked; scalars end the branch.  The walk stops
    descending once *max_depth* levels have been consumed.
    """

    if max_depth < 0 or not isinstance(node, (dict, list)):
        return None
    if isinstance(node, list) and node and has_fault_identifier(node[0]):
        return node

    children = node.values() if isinstance(node, dict) else node
    for child in children:
        if not isinstance(child, (dict, list)) or not child:
            continue
        found = find_fault_array(child, max_depth - 1)
        if found is not None:
            return found
    return None


def classify(payload: JsonValue) -> Classification:
    """Classify a decoded payload."""

    if isinstance(payload, dict):
        location = _match_enveloped_location(payload)
        if location is None:
            location = _match_flat_speed(payload)
        if location is not None:
            return Classification(kind=PayloadKind.LOCATION, location=location)

    container = _match_fault_container(payload)
    if container is not None:
        return Classification(kind=PayloadKind.FAULT_ARRAY, fault_items=tuple(container))

    if has_fault_identifier(payload):
        return Classification(kind=PayloadKind.FAULT_SINGLE, fault_items=(payload,))

    nested = find_fault_array(payload)
    if nested is not None:
        return Classification(kind=PayloadKind.FAULT_NESTED, fault_items=tuple(nested))

    return _UNKNOWN
