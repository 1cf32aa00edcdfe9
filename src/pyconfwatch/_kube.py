"""Internal Kubernetes bootstrap: API server, credentials and namespace.

Two setups are supported: in-cluster (service account mount plus the
``KUBERNETES_SERVICE_*`` environment) and a kubeconfig file using a bearer
token or client certificates. Exec and auth-provider plugins are not.
"""

from __future__ import annotations

import base64
import logging
import os
import ssl
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from pyconfwatch._constants import DEFAULT_NAMESPACE, SERVICEACCOUNT_ROOT
from pyconfwatch.exceptions import ConfWatchConfigError

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KubeBootstrap:
    """Everything needed to talk to one API server."""

    server: str
    namespace: str
    token: str | None = None
    token_path: str | None = None
    ca_file: str | None = None
    client_cert_file: str | None = None
    client_key_file: str | None = None
    verify_tls: bool = True
    # inline kubeconfig credentials written to disk for ssl
    temp_files: tuple[str, ...] = ()

    def bearer_token(self) -> str | None:
        """Current bearer token.

        A token file is re-read on every call because projected service
        account tokens are rotated on disk.
        """
        if self.token_path:
            try:
                return Path(self.token_path).read_text(encoding="utf-8").strip() or None
            except OSError:
                _logger.warning("Cannot read token file %s", self.token_path)
                return self.token
        return self.token

    def ssl_context(self) -> ssl.SSLContext | bool:
        if not self.server.startswith("https://"):
            return False
        if not self.verify_tls:
            return False
        context = ssl.create_default_context(cafile=self.ca_file)
        if self.client_cert_file:
            context.load_cert_chain(self.client_cert_file, self.client_key_file)
        return context

    def discard_temp_files(self) -> None:
        """Delete materialized credential files once ssl has loaded them."""
        for name in self.temp_files:
            try:
                os.unlink(name)
            except FileNotFoundError:
                pass
            except OSError as exc:
                _logger.warning("Cannot remove credential file %s: %s", name, exc)


@dataclass(frozen=True)
class _KubeContext:
    server: str
    namespace: str | None
    token: str | None
    token_path: str | None
    ca_file: str | None
    client_cert_file: str | None
    client_key_file: str | None
    insecure: bool
    temp_files: tuple[str, ...] = ()


def _read_optional(path: Path) -> str | None:
    try:
        value = path.read_text(encoding="utf-8").strip()
    except OSError:
        return None
    return value or None


def _named(entries: Any, name: str, key: str) -> dict[str, Any]:
    if isinstance(entries, list):
        for entry in entries:
            if isinstance(entry, dict) and entry.get("name") == name:
                value = entry.get(key)
                return value if isinstance(value, dict) else {}
    return {}


def _materialize(data_b64: str, suffix: str) -> str:
    """Write inline ``*-data`` credentials to a private temp file for ssl."""
    try:
        raw = base64.b64decode(data_b64)
    except ValueError as exc:
        raise ConfWatchConfigError(f"kubeconfig contains invalid base64 {suffix} data") from exc
    fd, path = tempfile.mkstemp(prefix="pyconfwatch-", suffix=suffix)
    with os.fdopen(fd, "wb") as handle:
        handle.write(raw)
    return path


def _relative_to(base: Path, value: Any) -> str | None:
    if not isinstance(value, str) or not value:
        return None
    path = Path(value).expanduser()
    return str(path if path.is_absolute() else base / path)


def default_kubeconfig_path(env: Mapping[str, str] | None = None) -> Path:
    env = os.environ if env is None else env
    configured = env.get("KUBECONFIG")
    if configured:
        first = next((p for p in configured.split(os.pathsep) if p), "")
        if first:
            return Path(first).expanduser()
    return Path.home() / ".kube" / "config"


def load_kubeconfig(path: Path) -> _KubeContext:
    """Parse the current context of a kubeconfig file."""
    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except OSError as exc:
        raise ConfWatchConfigError(f"Cannot read kubeconfig {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfWatchConfigError(f"Invalid kubeconfig {path}: {exc}") from exc
    if not isinstance(document, dict):
        raise ConfWatchConfigError(f"Invalid kubeconfig {path}: not a mapping")

    current = document.get("current-context")
    if not current:
        raise ConfWatchConfigError(f"kubeconfig {path} has no current-context")
    context = _named(document.get("contexts"), current, "context")
    if not context:
        raise ConfWatchConfigError(f"kubeconfig {path}: context {current!r} not found")

    cluster = _named(document.get("clusters"), str(context.get("cluster", "")), "cluster")
    user = _named(document.get("users"), str(context.get("user", "")), "user")
    server = cluster.get("server")
    if not isinstance(server, str) or not server:
        raise ConfWatchConfigError(f"kubeconfig {path}: cluster for context {current!r} has no server")
    if "exec" in user or "auth-provider" in user:
        _logger.warning("kubeconfig user for context %s uses an auth plugin, which is not supported", current)

    base = path.parent
    temp_files: list[str] = []

    def _file_or_data(file_key: str, data_key: str, section: dict[str, Any], suffix: str) -> str | None:
        found = _relative_to(base, section.get(file_key))
        if found is None and section.get(data_key):
            found = _materialize(section[data_key], suffix)
            temp_files.append(found)
        return found

    try:
        ca_file = _file_or_data("certificate-authority", "certificate-authority-data", cluster, ".crt")
        cert_file = _file_or_data("client-certificate", "client-certificate-data", user, ".crt")
        key_file = _file_or_data("client-key", "client-key-data", user, ".key")
    except ConfWatchConfigError:
        for name in temp_files:
            os.unlink(name)
        raise

    namespace = context.get("namespace")
    return _KubeContext(
        server=server.rstrip("/"),
        namespace=namespace if isinstance(namespace, str) and namespace else None,
        token=user.get("token") if isinstance(user.get("token"), str) else None,
        token_path=_relative_to(base, user.get("tokenFile")),
        ca_file=ca_file,
        client_cert_file=cert_file,
        client_key_file=key_file,
        insecure=bool(cluster.get("insecure-skip-tls-verify", False)),
        temp_files=tuple(temp_files),
    )


def resolve_namespace(
    explicit: str | None,
    context_namespace: str | None,
    *,
    serviceaccount_root: str | Path = SERVICEACCOUNT_ROOT,
) -> str:
    """Explicit setting, then kubeconfig context, then service account, then default."""
    if explicit:
        return explicit
    if context_namespace:
        return context_namespace
    from_sa = _read_optional(Path(serviceaccount_root) / "namespace")
    if from_sa:
        return from_sa
    return DEFAULT_NAMESPACE


def resolve_kube_bootstrap(
    *,
    namespace: str | None = None,
    kubeconfig: str | None = None,
    verify_tls: bool = True,
    env: Mapping[str, str] | None = None,
    serviceaccount_root: str | Path = SERVICEACCOUNT_ROOT,
) -> KubeBootstrap:
    """Build connection details for the current environment.

    An explicit ``kubeconfig`` always wins. Otherwise the in-cluster
    service account is used when ``KUBERNETES_SERVICE_HOST`` is set, then
    the default kubeconfig location.
    """
    env = os.environ if env is None else env
    sa_root = Path(serviceaccount_root)

    host = env.get("KUBERNETES_SERVICE_HOST")
    if kubeconfig is None and host:
        port = env.get("KUBERNETES_SERVICE_PORT", "443")
        if ":" in host and not host.startswith("["):
            host = f"[{host}]"
        token_path = sa_root / "token"
        ca_path = sa_root / "ca.crt"
        _logger.debug("Using in-cluster configuration host=%s port=%s", host, port)
        return KubeBootstrap(
            server=f"https://{host}:{port}",
            namespace=resolve_namespace(namespace, None, serviceaccount_root=sa_root),
            token_path=str(token_path),
            ca_file=str(ca_path) if ca_path.exists() else None,
            verify_tls=verify_tls,
        )

    path = Path(kubeconfig).expanduser() if kubeconfig else default_kubeconfig_path(env)
    if not path.exists():
        raise ConfWatchConfigError(f"No in-cluster environment and no kubeconfig at {path}")
    context = load_kubeconfig(path)
    _logger.debug("Using kubeconfig %s server=%s", path, context.server)
    return KubeBootstrap(
        server=context.server,
        namespace=resolve_namespace(namespace, context.namespace, serviceaccount_root=sa_root),
        token=context.token,
        token_path=context.token_path,
        ca_file=context.ca_file,
        client_cert_file=context.client_cert_file,
        client_key_file=context.client_key_file,
        verify_tls=verify_tls and not context.insecure,
        temp_files=context.temp_files,
    )
