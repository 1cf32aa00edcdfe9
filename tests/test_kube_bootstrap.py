from __future__ import annotations

import base64
from pathlib import Path
from typing import Any

import pytest
import yaml

from pyconfwatch._kube import resolve_kube_bootstrap, resolve_namespace
from pyconfwatch.exceptions import ConfWatchConfigError


def _write_kubeconfig(path: Path, *, cluster: dict[str, Any], user: dict[str, Any], namespace: str | None) -> Path:
    context: dict[str, Any] = {"cluster": "dev", "user": "dev-user"}
    if namespace:
        context["namespace"] = namespace
    document = {
        "apiVersion": "v1",
        "kind": "Config",
        "current-context": "dev",
        "contexts": [{"name": "other", "context": {"cluster": "x", "user": "y"}}, {"name": "dev", "context": context}],
        "clusters": [{"name": "dev", "cluster": cluster}],
        "users": [{"name": "dev-user", "user": user}],
    }
    path.write_text(yaml.safe_dump(document), encoding="utf-8")
    return path


@pytest.fixture
def service_account(tmp_path: Path) -> Path:
    root = tmp_path / "serviceaccount"
    root.mkdir()
    (root / "token").write_text("sa-token-1\n", encoding="utf-8")
    (root / "namespace").write_text("from-sa\n", encoding="utf-8")
    (root / "ca.crt").write_text("not-a-real-cert", encoding="utf-8")
    return root


def test_namespace_resolution_order(tmp_path: Path, service_account: Path) -> None:
    assert resolve_namespace("explicit", "ctx", serviceaccount_root=service_account) == "explicit"
    assert resolve_namespace(None, "ctx", serviceaccount_root=service_account) == "ctx"
    assert resolve_namespace(None, None, serviceaccount_root=service_account) == "from-sa"
    assert resolve_namespace(None, None, serviceaccount_root=tmp_path / "missing") == "default"


def test_in_cluster_bootstrap(service_account: Path) -> None:
    env = {"KUBERNETES_SERVICE_HOST": "10.0.0.1", "KUBERNETES_SERVICE_PORT": "6443"}

    bootstrap = resolve_kube_bootstrap(env=env, serviceaccount_root=service_account)

    assert bootstrap.server == "https://10.0.0.1:6443"
    assert bootstrap.namespace == "from-sa"
    assert bootstrap.ca_file == str(service_account / "ca.crt")
    assert bootstrap.bearer_token() == "sa-token-1"

    # Projected tokens rotate on disk.
    (service_account / "token").write_text("sa-token-2", encoding="utf-8")
    assert bootstrap.bearer_token() == "sa-token-2"


def test_in_cluster_ipv6_host(service_account: Path) -> None:
    bootstrap = resolve_kube_bootstrap(
        namespace="apps",
        env={"KUBERNETES_SERVICE_HOST": "fd00::1"},
        serviceaccount_root=service_account,
    )
    assert bootstrap.server == "https://[fd00::1]:443"
    assert bootstrap.namespace == "apps"


def test_kubeconfig_with_token_and_relative_ca(tmp_path: Path) -> None:
    path = _write_kubeconfig(
        tmp_path / "config",
        cluster={"server": "https://api.example:6443/", "certificate-authority": "ca.pem"},
        user={"token": "kube-token"},
        namespace="team-a",
    )

    bootstrap = resolve_kube_bootstrap(kubeconfig=str(path), env={}, serviceaccount_root=tmp_path / "no-sa")

    assert bootstrap.server == "https://api.example:6443"
    assert bootstrap.namespace == "team-a"
    assert bootstrap.ca_file == str(tmp_path / "ca.pem")
    assert bootstrap.bearer_token() == "kube-token"
    assert bootstrap.verify_tls is True


def test_explicit_kubeconfig_wins_over_in_cluster(tmp_path: Path, service_account: Path) -> None:
    path = _write_kubeconfig(
        tmp_path / "config",
        cluster={"server": "http://127.0.0.1:8001"},
        user={},
        namespace=None,
    )

    bootstrap = resolve_kube_bootstrap(
        kubeconfig=str(path),
        env={"KUBERNETES_SERVICE_HOST": "10.0.0.1"},
        serviceaccount_root=service_account,
    )

    assert bootstrap.server == "http://127.0.0.1:8001"
    # No context namespace: falls through to the service account file.
    assert bootstrap.namespace == "from-sa"
    assert bootstrap.ssl_context() is False


def test_inline_certificate_data_is_materialized(tmp_path: Path) -> None:
    ca_pem = b"-----BEGIN CERTIFICATE-----\nfake\n-----END CERTIFICATE-----\n"
    path = _write_kubeconfig(
        tmp_path / "config",
        cluster={"server": "https://api", "certificate-authority-data": base64.b64encode(ca_pem).decode()},
        user={"token": "t"},
        namespace="ns",
    )

    bootstrap = resolve_kube_bootstrap(kubeconfig=str(path), env={}, serviceaccount_root=tmp_path)

    assert bootstrap.ca_file is not None
    assert Path(bootstrap.ca_file).read_bytes() == ca_pem
    assert bootstrap.temp_files == (bootstrap.ca_file,)
    bootstrap.discard_temp_files()
    assert not Path(bootstrap.ca_file).exists()


def test_inline_client_credentials_are_discarded(tmp_path: Path) -> None:
    path = _write_kubeconfig(
        tmp_path / "config",
        cluster={"server": "https://api", "certificate-authority": "ca.crt"},
        user={
            "client-certificate-data": base64.b64encode(b"cert").decode(),
            "client-key-data": base64.b64encode(b"key").decode(),
        },
        namespace="ns",
    )

    bootstrap = resolve_kube_bootstrap(kubeconfig=str(path), env={}, serviceaccount_root=tmp_path)

    # a file reference is the user's own file and never discarded
    assert bootstrap.ca_file == str(tmp_path / "ca.crt")
    assert bootstrap.temp_files == (bootstrap.client_cert_file, bootstrap.client_key_file)
    assert Path(bootstrap.client_key_file or "").read_bytes() == b"key"

    bootstrap.discard_temp_files()
    bootstrap.discard_temp_files()

    assert not any(Path(name).exists() for name in bootstrap.temp_files)


def test_insecure_skip_tls_verify(tmp_path: Path) -> None:
    path = _write_kubeconfig(
        tmp_path / "config",
        cluster={"server": "https://api", "insecure-skip-tls-verify": True},
        user={"token": "t"},
        namespace="ns",
    )

    bootstrap = resolve_kube_bootstrap(kubeconfig=str(path), env={}, serviceaccount_root=tmp_path)

    assert bootstrap.verify_tls is False
    assert bootstrap.ssl_context() is False


def test_kubeconfig_env_path_is_used(tmp_path: Path) -> None:
    path = _write_kubeconfig(tmp_path / "kc", cluster={"server": "https://api"}, user={}, namespace="envns")
    bootstrap = resolve_kube_bootstrap(env={"KUBECONFIG": str(path)}, serviceaccount_root=tmp_path)
    assert bootstrap.namespace == "envns"


def test_missing_kubeconfig_is_a_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfWatchConfigError):
        resolve_kube_bootstrap(env={"KUBECONFIG": str(tmp_path / "missing")}, serviceaccount_root=tmp_path)


@pytest.mark.parametrize(
    "document",
    [
        "- not\n- a mapping\n",
        "apiVersion: v1\nkind: Config\n",
        "current-context: ghost\ncontexts: []\n",
        "current-context: dev\ncontexts:\n- name: dev\n  context: {cluster: c, user: u}\nclusters: []\n",
    ],
)
def test_unusable_kubeconfig_is_a_config_error(tmp_path: Path, document: str) -> None:
    path = tmp_path / "config"
    path.write_text(document, encoding="utf-8")
    with pytest.raises(ConfWatchConfigError):
        resolve_kube_bootstrap(kubeconfig=str(path), env={}, serviceaccount_root=tmp_path)
