"""Staleness policy for asset state.

``last_update_timestamp`` is stamped from the processing clock on every
accepted mutation; downstream consumers classify an asset's signal from
its age.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import StrEnum

FRESH_WINDOW = timedelta(seconds=15)
WARM_WINDOW = timedelta(seconds=60)


class Freshness(StrEnum):
    FRESH = "fresh"
    WARM = "warm"
    STALE = "stale"


def classify_freshness(
    now: datetime,
    last_update: datetime | None,
    *,
    fresh_window: timedelta = FRESH_WINDOW,
    warm_window: timedelta = WARM_WINDOW,
) -> Freshness:
    """Bucket the age of *last_update* relative to *now*."""
    if last_update is None:
        return Freshness.STALE
    age = now - last_update
    if age < fresh_window:
        return Freshness.FRESH
    if age < warm_window:
        return Freshness.WARM
    return Freshness.STALE
