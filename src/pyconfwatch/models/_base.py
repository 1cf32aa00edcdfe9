"""Base model for Kubernetes API payloads.

* ``alias_generator=to_camel`` so camelCase API keys map automatically to
  snake_case fields.
* Unknown keys are ignored; the API adds fields across versions.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class KubeBaseModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )
