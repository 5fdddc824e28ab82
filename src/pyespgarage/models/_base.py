"""Base model for payloads decoded from the ESPHome web server.

Every device payload model inherits from :class:`GarageBaseModel` which
provides:

* frozen instances, so decoded events can be buffered and shared safely.
* ``extra="ignore"`` so newer firmware keys never break decoding.
* A ``model_validator(mode="before")`` that stashes the original payload
  in ``raw``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class GarageBaseModel(BaseModel):
    """Base for ESPHome payload models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    raw: dict[str, Any] = Field(default_factory=dict, repr=False)
    """Original payload dict."""

    @model_validator(mode="before")
    @classmethod
    def _stash_raw(cls, values: Any) -> Any:
        # Only auto-stash raw when decoding a payload; keep an explicit raw=.
        if not isinstance(values, dict) or "raw" in values:
            return values
        return {**values, "raw": dict(values)}
