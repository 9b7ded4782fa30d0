"""Inbound broker message envelope."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        text = bytes(value).decode("utf-8", errors="replace")
    elif isinstance(value, (list, tuple)):
        return _to_text(value[0]) if value else None
    else:
        text = str(value)
    return text if text else None


class BrokerMessage(BaseModel):
    """A single message as delivered by the broker collaborator.

    Parameters
    ----------
    topic : str
        Source topic; routes the message to the fault or location path.
    partition : int
        Source partition.  Used for partition-sticky identity correlation.
    offset : str or int or None
        Offset or sequence number, only used for diagnostics.
    timestamp : str or int or float or None
        Broker timestamp in epoch milliseconds (seconds are tolerated).
    key : bytes or str or None
        Message key.
    headers : dict
        Transport headers; values may be bytes, str or lists of either.
    value : bytes or str or None
        Opaque payload, expected to decode as JSON.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    topic: str
    partition: int = 0
    offset: str | int | None = None
    timestamp: str | int | float | None = None
    key: bytes | str | None = None
    headers: dict[str, Any] = Field(default_factory=dict)
    value: bytes | str | None = None

    @field_validator("headers", mode="before")
    @classmethod
    def _none_headers(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def key_text(self) -> str | None:
        return _to_text(self.key)

    def header(self, *names: str) -> str | None:
        """Return the first non-empty header among *names* (case-insensitive)."""
        if not self.headers:
            return None
        lowered = {str(k).lower(): v for k, v in self.headers.items()}
        for name in names:
            value = self.headers.get(name)
            if value is None:
                value = lowered.get(name.lower())
            text = _to_text(value)
            if text:
                return text
        return None

    def header_texts(self) -> dict[str, str | None]:
        return {str(k): _to_text(v) for k, v in self.headers.items()}
