"""ConfigMap, list and watch-event models."""

from __future__ import annotations

import base64
import binascii
import logging
from enum import StrEnum
from typing import Any

from pydantic import Field, field_validator

from pyconfwatch.models._base import KubeBaseModel

_logger = logging.getLogger(__name__)


class WatchEventType(StrEnum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"
    ERROR = "ERROR"


class ObjectMeta(KubeBaseModel):
    name: str | None = None
    namespace: str | None = None
    resource_version: str | None = None


class ListMeta(KubeBaseModel):
    resource_version: str | None = None


class ConfigMap(KubeBaseModel):
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    data: dict[str, str] = Field(default_factory=dict)
    binary_data: dict[str, str] = Field(default_factory=dict)

    @field_validator("data", "binary_data", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    def files(self) -> dict[str, str]:
        """Every key as filename -> text content.

        ``binaryData`` values are base64-decoded and read as UTF-8 with
        replacement characters for invalid bytes.
        """
        files = dict(self.data)
        for filename, encoded in self.binary_data.items():
            try:
                files[filename] = base64.b64decode(encoded, validate=True).decode("utf-8", errors="replace")
            except (binascii.Error, ValueError):
                _logger.warning("ConfigMap %s: binaryData key %s is not valid base64", self.metadata.name, filename)
        return files


class ConfigMapList(KubeBaseModel):
    metadata: ListMeta = Field(default_factory=ListMeta)
    items: list[ConfigMap] = Field(default_factory=list)


class Status(KubeBaseModel):
    """``metav1.Status`` as sent inside ERROR watch events."""

    code: int | None = None
    reason: str | None = None
    message: str | None = None


class WatchEvent(KubeBaseModel):
    type: WatchEventType
    object: dict[str, Any] = Field(default_factory=dict)

    def config_map(self) -> ConfigMap:
        return ConfigMap.model_validate(self.object)

    def status(self) -> Status:
        return Status.model_validate(self.object)

    @property
    def resource_version(self) -> str | None:
        metadata = self.object.get("metadata")
        if isinstance(metadata, dict):
            value = metadata.get("resourceVersion")
            return value if isinstance(value, str) and value else None
        return None
