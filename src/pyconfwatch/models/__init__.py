"""Wire models for Kubernetes API responses."""

from pyconfwatch.models._base import KubeBaseModel
from pyconfwatch.models.kube import (
    ConfigMap,
    ConfigMapList,
    ListMeta,
    ObjectMeta,
    Status,
    WatchEvent,
    WatchEventType,
)

__all__ = [
    "ConfigMap",
    "ConfigMapList",
    "KubeBaseModel",
    "ListMeta",
    "ObjectMeta",
    "Status",
    "WatchEvent",
    "WatchEventType",
]
