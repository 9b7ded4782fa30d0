"""J1939 fault normalization.

Turns single fault objects, fault arrays and deeply nested fault arrays
into canonical :class:`Fault` records.

Severity classification is a two-stage escalation:

- every fault starts as ``info``;
- a lit malfunction indicator lamp (``milStatus == 1``) raises it to
  ``warning``;
- a lit lamp *and* a misfire condition (SPN in :data:`MISFIRE_SPNS` or
  "misfire" in the SPN description) raises it to ``critical``.

A lamp-on fault that is not a misfire stays ``warning``.
"""

from __future__ import annotations

import logging

from pydantic import JsonValue, ValidationError

from fleetpulse.ingestion.matchers import classify
from fleetpulse.models.fault import Fault, FaultMeta, Severity
from fleetpulse.models.payloads import J1939FaultItem

_logger = logging.getLogger(__name__)

# SPN 1322 = multiple cylinder misfire, 1327/1328 = cylinder 5/6 misfire rate.
MISFIRE_SPNS: frozenset[int] = frozenset({1322, 1327, 1328})

UNKNOWN_CODE = "UNKNOWN"
DEFAULT_DESCRIPTION = "Diagnostic fault"


def fault_code(spn: int | None, fmi: int | None) -> str:
    parts: list[str] = []
    if spn is not None:
        parts.append(f"SPN {spn}")
    if fmi is not None:
        parts.append(f"FMI {fmi}")
    return " ".join(parts) or UNKNOWN_CODE


def fault_description(item: J1939FaultItem) -> str:
    text = item.spn_description or ""
    if item.fmi_description:
        text += f" - {item.fmi_description}"
    if item.source_address_name:
        text += f" ({item.source_address_name})"
    return text.strip() or DEFAULT_DESCRIPTION


def is_misfire(item: J1939FaultItem) -> bool:
    if item.spn_id is not None and item.spn_id in MISFIRE_SPNS:
        return True
    return "misfire" in (item.spn_description or "").lower()


def classify_severity(item: J1939FaultItem) -> Severity:
    if item.mil_status != 1:
        return Severity.INFO
    if is_misfire(item):
        return Severity.CRITICAL
    return Severity.WARNING


def normalize_fault_item(item: J1939FaultItem | JsonValue, timestamp: str) -> Fault | None:
    """Normalize one raw fault entry; returns ``None`` for non-object entries."""

    if not isinstance(item, J1939FaultItem):
        if not isinstance(item, dict):
            return None
        try:
            item = J1939FaultItem.model_validate(item)
        except ValidationError:
            _logger.debug("Fault item failed validation; skipping", exc_info=True)
            return None

    code = fault_code(item.spn_id, item.fmi_id)
    return Fault(
        id=f"{code}@{timestamp}",
        code=code,
        description=fault_description(item),
        severity=classify_severity(item),
        active=True,
        time=timestamp,
        meta=FaultMeta(
            spn=item.spn_id,
            fmi=item.fmi_id,
            spn_description=item.spn_description,
            fmi_description=item.fmi_description,
            mil_status=item.mil_status,
            occurrence_count=item.occurrence_count,
            source_address_name=item.source_address_name,
            tx_id=item.tx_id,
        ),
    )


def normalize_fault_items(items: tuple[JsonValue, ...] | list[JsonValue], timestamp: str) -> list[Fault]:
    faults: list[Fault] = []
    for raw in items:
        fault = normalize_fault_item(raw, timestamp)
        if fault is not None:
            faults.append(fault)
    return faults


def normalize_faults(payload: JsonValue, timestamp: str) -> list[Fault]:
    """Normalize any fault-bearing payload into a list of faults.

    Non-fault payloads yield an empty list.
    """

    classification = classify(payload)
    if not classification.kind.is_fault:
        return []
    return normalize_fault_items(classification.fault_items, timestamp)
