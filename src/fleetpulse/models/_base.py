"""Base models shared by the canonical records and raw payload shapes.

Two families of models live in this package:

* canonical records (:class:`FleetModel` subclasses) that the state store
  owns and publishes, using snake_case field names;
* raw payload shapes (:class:`PayloadModel` subclasses) used by the
  schema matchers to validate vendor payloads.  These map camelCase keys
  via ``alias_generator=to_camel`` and drop placeholder values so the
  field default is used instead.
"""

from __future__ import annotations

import math
from typing import Any, TypeAlias

from pydantic import BaseModel, ConfigDict, JsonValue, model_validator
from pydantic.alias_generators import to_camel

JsonObject: TypeAlias = dict[str, JsonValue]

# Placeholder strings some feeds send for "not available".
_SENTINELS = frozenset({"", "--", "NaN", "nan", "null"})


class FleetModel(BaseModel):
    """Base for canonical records owned by the state store."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class PayloadModel(BaseModel):
    """Base for raw vendor payload shapes.

    Handles:
    * camelCase → snake_case via ``alias_generator=to_camel``
    * placeholder values (``""``, ``"--"``, NaN) → dropped so the field
      default is used
    * unknown keys are ignored
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @staticmethod
    def _clean_dict(values: dict[str, Any]) -> dict[str, Any]:
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and value.strip() in _SENTINELS:
                continue
            if isinstance(value, float) and math.isnan(value):
                continue
            cleaned[key] = value
        return cleaned

    @model_validator(mode="before")
    @classmethod
    def _clean_placeholders(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        return PayloadModel._clean_dict(values)
