"""Canonical location record."""

from __future__ import annotations

from typing import Any

from pydantic import ConfigDict

from fleetpulse.models._base import FleetModel


class LocationRecord(FleetModel):
    """Last known position and speed of an asset.

    Every field is independently optional.  ``None`` means "not reported",
    never zero.

    Parameters
    ----------
    time : str or None
        ISO-8601 event time of the report.
    lat, lon : float or None
        Position in degrees.
    heading_degrees : float or None
        Heading in degrees.
    city, state, country, postal_code, street : str or None
        Reverse-geocoded address parts as delivered by the feed.
    speed_mph : float or None
        Speed in miles per hour.
    """

    model_config = ConfigDict(frozen=True)

    time: str | None = None
    lat: float | None = None
    lon: float | None = None
    heading_degrees: float | None = None
    city: str | None = None
    state: str | None = None
    country: str | None = None
    postal_code: str | None = None
    street: str | None = None
    speed_mph: float | None = None

    def present_fields(self) -> dict[str, Any]:
        """Return only the fields that carry a value."""
        return self.model_dump(exclude_none=True)

    def merged_over(self, previous: LocationRecord | None) -> LocationRecord:
        """Return *previous* with every present field of this record applied."""
        if previous is None:
            return self
        return previous.model_copy(update=self.present_fields())
