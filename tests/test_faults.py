from __future__ import annotations

import pytest

from fleetpulse.ingestion.faults import (
    DEFAULT_DESCRIPTION,
    classify_severity,
    fault_code,
    fault_description,
    normalize_fault_item,
    normalize_fault_items,
    normalize_faults,
)
from fleetpulse.models.fault import Severity
from fleetpulse.models.payloads import J1939FaultItem

TS = "2024-05-29T16:26:40.000Z"


def test_fault_code_formats() -> None:
    assert fault_code(1327, 11) == "SPN 1327 FMI 11"
    assert fault_code(100, None) == "SPN 100"
    assert fault_code(None, 4) == "FMI 4"
    assert fault_code(None, None) == "UNKNOWN"


def test_fault_description_composition() -> None:
    item = J1939FaultItem.model_validate(
        {
            "spnDescription": "Engine Misfire Cylinder 5",
            "fmiDescription": "Data erratic",
            "sourceAddressName": "Engine #1",
        }
    )
    assert fault_description(item) == "Engine Misfire Cylinder 5 - Data erratic (Engine #1)"
    assert fault_description(J1939FaultItem()) == DEFAULT_DESCRIPTION


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ({"spnId": 1327, "milStatus": 0}, Severity.INFO),
        ({"spnId": 100}, Severity.INFO),
        ({"spnId": 100, "milStatus": 1, "spnDescription": "Oil pressure low"}, Severity.WARNING),
        ({"spnId": 1322, "milStatus": 1}, Severity.CRITICAL),
        ({"spnId": 1328, "milStatus": "1"}, Severity.CRITICAL),
        ({"spnId": 9999, "milStatus": 1, "spnDescription": "Cylinder MISFIRE detected"}, Severity.CRITICAL),
        ({"spnId": 9999, "milStatus": 0, "spnDescription": "misfire"}, Severity.INFO),
    ],
)
def test_severity_escalation(raw: dict, expected: Severity) -> None:
    assert classify_severity(J1939FaultItem.model_validate(raw)) is expected


def test_normalize_fault_item_keeps_meta() -> None:
    fault = normalize_fault_item(
        {"spnId": 1327, "fmiId": 11, "milStatus": 1, "occurrenceCount": 3, "txId": 0},
        TS,
    )
    assert fault is not None
    assert fault.id == f"SPN 1327 FMI 11@{TS}"
    assert fault.code == "SPN 1327 FMI 11"
    assert fault.severity is Severity.CRITICAL
    assert fault.active is True
    assert fault.time == TS
    assert fault.meta is not None
    assert fault.meta.spn == 1327
    assert fault.meta.occurrence_count == 3
    assert fault.meta.tx_id == 0


def test_normalize_fault_items_skips_non_objects() -> None:
    faults = normalize_fault_items([1, "x", None, {"spnId": 5, "fmiId": 1}], TS)
    assert [f.code for f in faults] == ["SPN 5 FMI 1"]


def test_normalize_faults_handles_every_fault_shape() -> None:
    single = normalize_faults({"spnId": 1, "fmiId": 2}, TS)
    array = normalize_faults({"j1939": [{"spnId": 1}, {"spnId": 2}]}, TS)
    nested = normalize_faults({"data": {"diag": [{"fmiId": 7}]}}, TS)
    assert [f.code for f in single] == ["SPN 1 FMI 2"]
    assert [f.code for f in array] == ["SPN 1", "SPN 2"]
    assert [f.code for f in nested] == ["FMI 7"]


def test_normalize_faults_ignores_location_payloads() -> None:
    assert normalize_faults({"asset": {"id": "a1"}, "location": {"latitude": 1}}, TS) == []
    assert normalize_faults({}, TS) == []
