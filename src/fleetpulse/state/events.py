"""Outbound events published to live subscribers.

Payloads are plain JSON-ready structures rendered at emission time, so an
event never changes after it has been handed to a subscriber.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventKind(StrEnum):
    SNAPSHOT = "snapshot"
    UPDATE = "update"
    FAULT = "fault"


class OutboundEvent(BaseModel):
    """A single event for subscribers.

    ``payload`` is a list of asset records for ``snapshot``, one asset
    record for ``update`` and a flattened fault record for ``fault``.
    """

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    payload: dict[str, Any] | list[dict[str, Any]] = Field(default_factory=dict)
