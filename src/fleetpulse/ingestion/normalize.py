"""Normalization helpers.

Centralizes defensive parsing of payload values and message decoding.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import JsonValue

_logger = logging.getLogger(__name__)


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or value == "--" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None:
        return None
    return int(parsed)


def safe_str(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value)
    return text if text else None


def decode_payload(raw: bytes | str | None) -> JsonValue:
    """Decode a raw message value into a JSON object or array.

    Anything that does not decode to an object or array, including empty
    and malformed payloads, becomes ``{}``.  Trailing commas left by some
    producers are stripped before decoding.
    """

    if raw is None:
        return {}
    if isinstance(raw, (bytes, bytearray)):
        text = bytes(raw).decode("utf-8", errors="replace")
    else:
        text = raw
    trimmed = text.strip().rstrip(",")
    if not trimmed:
        return {}
    try:
        decoded = json.loads(trimmed)
    except (ValueError, RecursionError):
        # JSONDecodeError is a ValueError.
        _logger.debug("Payload is not decodable JSON; treating as empty object (%d chars)", len(trimmed))
        return {}
    if isinstance(decoded, (dict, list)):
        return decoded
    return {}


def normalize_timestamp_seconds(value: Any) -> float | None:
    """Normalize epoch timestamps to seconds.

    - Empty/missing -> None
    - <= 0 -> None
    - Milliseconds (> 1e11) -> seconds
    """

    if value is None or value == "":
        return None
    try:
        ts = float(value)
    except (TypeError, ValueError):
        return None
    if ts <= 0 or not math.isfinite(ts):
        return None
    if ts > 1e11:
        ts /= 1000.0
    return ts


def to_iso(moment: datetime) -> str:
    """Format a datetime as a millisecond-precision ISO-8601 UTC string."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def message_time_iso(value: Any, clock: Callable[[], datetime]) -> str:
    """Convert a broker timestamp to ISO-8601, defaulting to the processing clock."""
    seconds = normalize_timestamp_seconds(value)
    if seconds is None:
        return to_iso(clock())
    try:
        moment = datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError):
        _logger.debug("Broker timestamp %r out of range; using processing time", value)
        return to_iso(clock())
    return to_iso(moment)
