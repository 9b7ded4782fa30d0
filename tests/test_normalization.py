from __future__ import annotations

import math
from datetime import UTC, datetime

import pytest

from fleetpulse.ingestion.normalize import (
    decode_payload,
    message_time_iso,
    normalize_timestamp_seconds,
    safe_float,
    safe_int,
    safe_str,
    to_iso,
)


def _clock() -> datetime:
    return datetime(2026, 1, 1, tzinfo=UTC)


@pytest.mark.parametrize("value", [None, "", "--", True, "abc", "nan", math.inf, {"a": 1}])
def test_safe_float_rejects_placeholders_and_non_finite(value: object) -> None:
    assert safe_float(value) is None


def test_safe_float_and_int_parse_numeric_strings() -> None:
    assert safe_float("12.5") == 12.5
    assert safe_int("12.7") == 12
    assert safe_int(3) == 3


def test_safe_str_rejects_containers() -> None:
    assert safe_str({"a": 1}) is None
    assert safe_str([1]) is None
    assert safe_str("") is None
    assert safe_str(42) == "42"


def test_decode_payload_strips_trailing_commas() -> None:
    assert decode_payload(b'{"a": 1},') == {"a": 1}
    assert decode_payload('  [{"spnId": 1}],,\n') == [{"spnId": 1}]


@pytest.mark.parametrize("raw", [None, b"", "   ", "not json", "{broken", "42", '"text"', "null"])
def test_decode_payload_falls_back_to_empty_object(raw: bytes | str | None) -> None:
    assert decode_payload(raw) == {}


def test_normalize_timestamp_seconds_handles_milliseconds() -> None:
    assert normalize_timestamp_seconds(1_717_000_000_000) == 1_717_000_000.0
    assert normalize_timestamp_seconds("1717000000") == 1_717_000_000.0
    assert normalize_timestamp_seconds(0) is None
    assert normalize_timestamp_seconds("") is None


def test_message_time_iso_uses_broker_timestamp() -> None:
    assert message_time_iso(1_717_000_000_000, _clock) == "2024-05-29T16:26:40.000Z"


def test_message_time_iso_defaults_to_processing_clock() -> None:
    assert message_time_iso(None, _clock) == "2026-01-01T00:00:00.000Z"
    assert message_time_iso("garbage", _clock) == "2026-01-01T00:00:00.000Z"


def test_to_iso_treats_naive_datetimes_as_utc() -> None:
    assert to_iso(datetime(2026, 3, 4, 5, 6, 7, 890000)) == "2026-03-04T05:06:07.890Z"


def test_decode_payload_survives_pathological_nesting() -> None:
    assert decode_payload("[" * 200_000 + "]" * 200_000) == {}


def test_message_time_iso_out_of_range_uses_processing_clock() -> None:
    assert message_time_iso(10**20, _clock) == "2026-01-01T00:00:00.000Z"
