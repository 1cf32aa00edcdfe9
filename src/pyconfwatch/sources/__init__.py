"""Source drivers.

Drivers turn provider-native events (filesystem notifications, Kubernetes
watch frames) into whole-file :class:`ConfigFileChange` notifications.
Which one runs is decided by :class:`pyconfwatch.config.WatcherConfig`.
"""

from __future__ import annotations

from pyconfwatch.config import WatcherConfig
from pyconfwatch.sources.base import ChangeKind, ConfigFileChange, FileSnapshot, SourceDriver
from pyconfwatch.sources.configmap import ConfigMapSourceDriver
from pyconfwatch.sources.files import FileSourceDriver


def build_source_driver(config: WatcherConfig) -> SourceDriver:
    """Build the driver selected by ``config.source``."""
    if config.source == "configmap":
        assert config.configmap_name is not None  # noqa: S101
        return ConfigMapSourceDriver(
            config.configmap_name,
            namespace=config.namespace,
            kubeconfig=config.kubeconfig,
            verify_tls=config.verify_tls,
            retry_initial_delay=config.retry_initial_delay,
            retry_max_delay=config.retry_max_delay,
            max_retries=config.max_retries,
            watch_timeout_seconds=config.watch_timeout_seconds,
        )
    return FileSourceDriver(
        config.paths,
        patterns=config.patterns,
        debounce_seconds=config.debounce_seconds,
    )


__all__ = [
    "ChangeKind",
    "ConfigFileChange",
    "ConfigMapSourceDriver",
    "FileSnapshot",
    "FileSourceDriver",
    "SourceDriver",
    "build_source_driver",
]
