"""Shared Pydantic base models and utilities."""

from __future__ import annotations

import time

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


class SurfSenseBase(BaseModel):
    """Base model for every serialized Surf Sense record.

    Records are stored and transported as camelCase JSON and are immutable
    once produced.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        str_strip_whitespace=True,
    )

    def to_json_dict(self) -> dict:
        """Serialize to the camelCase JSON shape used in storage."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
