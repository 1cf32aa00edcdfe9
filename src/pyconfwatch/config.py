"""Watcher configuration for pyconfwatch."""

from __future__ import annotations

import dataclasses
import os
from typing import Any, Literal

from pyconfwatch.exceptions import ConfWatchConfigError

SourceKind = Literal["file", "configmap"]

_SOURCE_KINDS: frozenset[str] = frozenset({"file", "configmap"})


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_list(value: str, sep: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in value.split(sep) if part.strip())


@dataclasses.dataclass(frozen=True)
class WatcherConfig:
    """Watcher configuration.

    Parameters
    ----------
    source : str
        Which source driver to build: ``"file"`` or ``"configmap"``.
    paths : tuple of str
        Files and/or directories watched by the file driver.
    patterns : tuple of str
        Glob patterns a file inside a watched directory must match.
        Explicitly listed files are always watched.
    configmap_name : str or None
        Name of the ConfigMap watched by the configmap driver.
    namespace : str or None
        Namespace override. When unset the kubeconfig context namespace,
        then the in-cluster service account namespace, then ``"default"``
        are tried in that order.
    kubeconfig : str or None
        Path to a kubeconfig file. Defaults to ``$KUBECONFIG`` or
        ``~/.kube/config`` when not running inside a cluster.
    debounce_seconds : float
        Quiescence window after a raw file event before the file is read.
    retry_initial_delay : float
        First reconnect delay after losing the watch connection.
    retry_max_delay : float
        Upper bound of the exponential reconnect delay.
    max_retries : int or None
        Consecutive failed connection attempts tolerated before the driver
        reports a terminal failure. ``None`` retries forever.
    watch_timeout_seconds : int
        Server-side timeout requested for each watch call. The driver
        reconnects transparently when it expires.
    verify_tls : bool
        Verify the API server certificate.
    """

    source: SourceKind = "file"
    paths: tuple[str, ...] = ()
    patterns: tuple[str, ...] = ("*.yaml", "*.yml")
    configmap_name: str | None = None
    namespace: str | None = None
    kubeconfig: str | None = None
    debounce_seconds: float = 0.5
    retry_initial_delay: float = 1.0
    retry_max_delay: float = 30.0
    max_retries: int | None = None
    watch_timeout_seconds: int = 300
    verify_tls: bool = True

    def __post_init__(self) -> None:
        if self.source not in _SOURCE_KINDS:
            raise ConfWatchConfigError(f"Unknown source {self.source!r}; expected one of {sorted(_SOURCE_KINDS)}")
        if self.source == "file" and not self.paths:
            raise ConfWatchConfigError("File source requires at least one path")
        if self.source == "configmap" and not self.configmap_name:
            raise ConfWatchConfigError("ConfigMap source requires configmap_name")
        if self.debounce_seconds < 0:
            raise ConfWatchConfigError("debounce_seconds must be >= 0")
        if self.retry_initial_delay <= 0 or self.retry_max_delay < self.retry_initial_delay:
            raise ConfWatchConfigError("retry delays must satisfy 0 < retry_initial_delay <= retry_max_delay")
        if self.max_retries is not None and self.max_retries < 0:
            raise ConfWatchConfigError("max_retries must be >= 0 or None")

    @classmethod
    def from_env(cls, **overrides: Any) -> WatcherConfig:
        """Create configuration from environment variables.

        Reads ``CONFWATCH_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        WatcherConfig
            Populated configuration.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        _ENV_STR_MAP = {
            "CONFWATCH_SOURCE": "source",
            "CONFWATCH_CONFIGMAP": "configmap_name",
            "CONFWATCH_NAMESPACE": "namespace",
            "CONFWATCH_KUBECONFIG": "kubeconfig",
        }
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None and val.strip():
                config_kwargs[field_name] = val.strip()

        paths_env = env.get("CONFWATCH_PATHS")
        if paths_env is not None:
            config_kwargs["paths"] = _env_list(paths_env, os.pathsep)

        patterns_env = env.get("CONFWATCH_PATTERNS")
        if patterns_env is not None:
            config_kwargs["patterns"] = _env_list(patterns_env, ",")

        _ENV_NUMERIC_MAP: dict[str, tuple[str, type]] = {
            "CONFWATCH_DEBOUNCE_SECONDS": ("debounce_seconds", float),
            "CONFWATCH_RETRY_INITIAL_DELAY": ("retry_initial_delay", float),
            "CONFWATCH_RETRY_MAX_DELAY": ("retry_max_delay", float),
            "CONFWATCH_WATCH_TIMEOUT_SECONDS": ("watch_timeout_seconds", int),
        }
        for env_key, (field_name, cast) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = cast(val)
            except ValueError as exc:
                raise ConfWatchConfigError(f"{env_key} must be a number, got {val!r}") from exc

        retries_env = env.get("CONFWATCH_MAX_RETRIES")
        if retries_env is not None and "max_retries" not in overrides:
            # Empty or negative means "retry forever".
            try:
                retries = int(retries_env) if retries_env.strip() else -1
            except ValueError as exc:
                raise ConfWatchConfigError(f"CONFWATCH_MAX_RETRIES must be an integer, got {retries_env!r}") from exc
            config_kwargs["max_retries"] = retries if retries >= 0 else None

        if "verify_tls" not in overrides:
            config_kwargs["verify_tls"] = _env_bool(env.get("CONFWATCH_VERIFY_TLS"), True)

        paths_override = overrides.get("paths")
        if isinstance(paths_override, (list, str)):
            overrides["paths"] = (paths_override,) if isinstance(paths_override, str) else tuple(paths_override)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
