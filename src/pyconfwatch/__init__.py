"""pyconfwatch - Hot-reloadable, schema-validated configuration from files or Kubernetes ConfigMaps."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyconfwatch")
except PackageNotFoundError:
    __version__ = "0+local"
from pyconfwatch.config import WatcherConfig
from pyconfwatch.emitter import Broadcaster
from pyconfwatch.exceptions import (
    ConfigValidationError,
    ConfWatchConfigError,
    ConfWatchError,
    IdentityError,
    SourceAuthenticationError,
    SourceConnectivityError,
)
from pyconfwatch.sources import (
    ChangeKind,
    ConfigFileChange,
    ConfigMapSourceDriver,
    FileSnapshot,
    FileSourceDriver,
    SourceDriver,
    build_source_driver,
)
from pyconfwatch.state import (
    Action,
    ActionName,
    AddAction,
    ConfigMirror,
    ConfigSet,
    ConfigStore,
    IdentityConflict,
    MovedAction,
    RemoveAction,
    UpdateAction,
)
from pyconfwatch.validation import SchemaValidator, ValidationPipeline
from pyconfwatch.watcher import ConfigWatcher

__all__ = [
    "__version__",
    "Action",
    "ActionName",
    "AddAction",
    "Broadcaster",
    "ChangeKind",
    "ConfWatchConfigError",
    "ConfWatchError",
    "ConfigFileChange",
    "ConfigMapSourceDriver",
    "ConfigMirror",
    "ConfigSet",
    "ConfigStore",
    "ConfigValidationError",
    "ConfigWatcher",
    "FileSnapshot",
    "FileSourceDriver",
    "IdentityConflict",
    "IdentityError",
    "MovedAction",
    "RemoveAction",
    "SchemaValidator",
    "SourceAuthenticationError",
    "SourceConnectivityError",
    "SourceDriver",
    "UpdateAction",
    "ValidationPipeline",
    "WatcherConfig",
    "build_source_driver",
]
