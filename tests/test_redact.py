from __future__ import annotations

from fleetpulse._redact import redact_for_log


def test_redact_for_log_redacts_sensitive_keys() -> None:
    headers = {
        "vehicleId": "a1",
        "Authorization": "Bearer abc",
        "token": {"userId": "123"},
        "password": "pw",
        "nested": {"x-api-key": "k"},
    }

    redacted = redact_for_log(headers)
    assert redacted["vehicleId"] == "a1"
    assert redacted["Authorization"] == "<redacted>"
    assert redacted["password"] == "<redacted>"
    assert redacted["token"] == "<redacted>"
    assert redacted["nested"]["x-api-key"] == "<redacted>"


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_for_log_decodes_header_bytes() -> None:
    redacted = redact_for_log({"vin": b"1FTFW1E50PFA00001", "blob": b"\xff\xfe"})
    assert redacted["vin"] == "1FTFW1E50PFA00001"
    assert redacted["blob"] == "<bytes:2b>"


def test_redact_for_log_passes_scalars_and_lists_through() -> None:
    assert redact_for_log(None) is None
    assert redact_for_log(7) == 7
    assert redact_for_log(["a", {"secret": "s"}]) == ["a", {"secret": "<redacted>"}]
