"""Kubernetes ConfigMap source driver.

Every key of the ConfigMap (``data`` and ``binaryData``) is one config file.
Each connection cycle lists the ConfigMap, reconciles the snapshot against
it, then watches from the list's resourceVersion so no change between
cycles is lost. Connection problems are retried with exponential backoff;
only an authentication rejection or exhausted retries reach ``on_failure``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import aiohttp
from pydantic import ValidationError

from pyconfwatch._constants import HTTP_GONE
from pyconfwatch._kube import KubeBootstrap, resolve_kube_bootstrap, resolve_namespace
from pyconfwatch._transport import KubeTransport, Transport
from pyconfwatch.exceptions import ConfWatchConfigError, SourceAuthenticationError, SourceConnectivityError
from pyconfwatch.models.kube import ConfigMap, ConfigMapList, WatchEvent, WatchEventType
from pyconfwatch.sources.base import ChangeSink, ConfigFileChange, FailureSink, FileSnapshot

_logger = logging.getLogger(__name__)


class _Relist(Exception):
    """The watch resourceVersion expired; list again."""


class ConfigMapSourceDriver:
    """Watches a single ConfigMap by name.

    ``transport`` and ``namespace`` can be injected (tests, custom auth);
    otherwise both are resolved from the environment on :meth:`start`.
    """

    def __init__(
        self,
        name: str,
        *,
        namespace: str | None = None,
        transport: Transport | None = None,
        kubeconfig: str | None = None,
        verify_tls: bool = True,
        retry_initial_delay: float = 1.0,
        retry_max_delay: float = 30.0,
        max_retries: int | None = None,
        watch_timeout_seconds: int = 300,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if not name:
            raise ConfWatchConfigError("ConfigMapSourceDriver needs a ConfigMap name")
        self._name = name
        self._namespace = namespace
        self._transport = transport
        self._kubeconfig = kubeconfig
        self._verify_tls = verify_tls
        self._retry_initial_delay = retry_initial_delay
        self._retry_max_delay = retry_max_delay
        self._max_retries = max_retries
        self._watch_timeout_seconds = watch_timeout_seconds
        self._sleep = sleep
        self._snapshot = FileSnapshot()
        self._http_session: aiohttp.ClientSession | None = None
        self._task: asyncio.Task[None] | None = None
        self._sink: ChangeSink | None = None
        self._on_failure: FailureSink | None = None
        self._frames_seen = False
        self._running = False

    @property
    def snapshot(self) -> Mapping[str, str]:
        return self._snapshot.view()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def namespace(self) -> str | None:
        return self._namespace

    def _list_path(self) -> str:
        return f"/api/v1/namespaces/{self._namespace}/configmaps"

    def _selector(self) -> dict[str, str]:
        return {"fieldSelector": f"metadata.name={self._name}"}

    async def start(self, sink: ChangeSink, on_failure: FailureSink) -> None:
        if self._running:
            return
        self._sink = sink
        self._on_failure = on_failure

        if self._transport is None:
            bootstrap: KubeBootstrap = await asyncio.to_thread(
                resolve_kube_bootstrap,
                namespace=self._namespace,
                kubeconfig=self._kubeconfig,
                verify_tls=self._verify_tls,
            )
            self._namespace = bootstrap.namespace
            try:
                self._http_session = aiohttp.ClientSession()
                self._transport = KubeTransport(bootstrap, self._http_session)
            finally:
                # the ssl context holds the credentials from here on
                bootstrap.discard_temp_files()
        elif self._namespace is None:
            self._namespace = await asyncio.to_thread(resolve_namespace, None, None)

        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"configmap-watch-{self._name}")
        _logger.info("ConfigMap watcher started for %s/%s", self._namespace, self._name)

    async def stop(self) -> None:
        if not self._running and self._task is None:
            return
        self._running = False
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        _logger.debug("ConfigMap watcher stopped for %s/%s", self._namespace, self._name)

    def _emit(self, changes: list[ConfigFileChange]) -> None:
        for change in changes:
            _logger.info("%s - [%s] (configmap %s)", change.kind, change.filename, self._name)
            if self._sink is not None and self._running:
                self._sink(change)

    def _apply_config_map(self, config_map: ConfigMap) -> None:
        self._emit(self._snapshot.sync(config_map.files()))

    def _apply_deleted(self) -> None:
        _logger.info("ConfigMap %s/%s deleted", self._namespace, self._name)
        self._emit(self._snapshot.clear())

    def _backoff(self, failures: int) -> float:
        return float(min(self._retry_initial_delay * (2 ** (failures - 1)), self._retry_max_delay))

    async def _run(self) -> None:
        failures = 0
        resource_version: str | None = None
        while self._running:
            try:
                if resource_version is None:
                    resource_version = await self._relist()
                    failures = 0
                resource_version = await self._watch(resource_version)
                failures = 0
            except _Relist:
                _logger.debug("Watch on %s expired, relisting", self._name)
                resource_version = None
            except SourceAuthenticationError as exc:
                self._fail(exc)
                return
            except SourceConnectivityError as exc:
                # A watch that delivered frames before dropping was healthy.
                if self._frames_seen:
                    failures = 0
                    self._frames_seen = False
                failures += 1
                if self._max_retries is not None and failures > self._max_retries:
                    self._fail(
                        SourceConnectivityError(
                            f"Giving up on ConfigMap {self._namespace}/{self._name} after {failures} attempt(s): {exc}",
                            status_code=exc.status_code,
                            endpoint=exc.endpoint,
                        )
                    )
                    return
                delay = self._backoff(failures)
                _logger.warning(
                    "ConfigMap %s/%s watch failed (%s); retrying in %.1fs",
                    self._namespace,
                    self._name,
                    exc,
                    delay,
                )
                await self._sleep(delay)
            except Exception as exc:
                _logger.exception("ConfigMap %s/%s watch crashed", self._namespace, self._name)
                self._fail(
                    SourceConnectivityError(
                        f"ConfigMap {self._namespace}/{self._name} watch crashed: {type(exc).__name__}: {exc}",
                        endpoint=self._list_path(),
                    )
                )
                return

    def _fail(self, exc: SourceConnectivityError) -> None:
        self._running = False
        _logger.error("ConfigMap %s/%s watch stopped: %s", self._namespace, self._name, exc)
        if self._on_failure is not None:
            self._on_failure(exc)

    async def _relist(self) -> str | None:
        assert self._transport is not None  # noqa: S101
        body = await self._transport.get_json(self._list_path(), self._selector())
        try:
            listing = ConfigMapList.model_validate(body)
        except ValidationError as exc:
            raise SourceConnectivityError(f"Malformed ConfigMap list: {exc}", endpoint=self._list_path()) from exc

        matches = [cm for cm in listing.items if cm.metadata.name in (None, self._name)]
        if matches:
            self._apply_config_map(matches[0])
        elif len(self._snapshot):
            self._apply_deleted()
        else:
            _logger.warning("ConfigMap %s/%s does not exist (yet)", self._namespace, self._name)
        return listing.metadata.resource_version

    async def _watch(self, resource_version: str | None) -> str | None:
        """Consume one watch call; returns the last seen resourceVersion."""
        assert self._transport is not None  # noqa: S101
        params = {
            **self._selector(),
            "watch": "1",
            "allowWatchBookmarks": "true",
            "timeoutSeconds": str(self._watch_timeout_seconds),
        }
        if resource_version:
            params["resourceVersion"] = resource_version

        self._frames_seen = False

        async for frame in self._transport.watch(self._list_path(), params):
            if not self._running:
                break
            self._frames_seen = True
            try:
                event = WatchEvent.model_validate(frame)
            except ValidationError:
                _logger.debug("Ignoring unrecognized watch frame type=%s", frame.get("type"))
                continue

            if event.type == WatchEventType.ERROR:
                status = event.status()
                if status.code == HTTP_GONE:
                    raise _Relist()
                raise SourceConnectivityError(
                    f"Watch error: {status.reason or ''} {status.message or ''}".strip(),
                    status_code=status.code,
                    endpoint=self._list_path(),
                )

            if event.type in (WatchEventType.ADDED, WatchEventType.MODIFIED):
                try:
                    config_map = event.config_map()
                except ValidationError as exc:
                    _logger.warning(
                        "Ignoring malformed ConfigMap %s/%s in %s event: %s",
                        self._namespace,
                        self._name,
                        event.type,
                        exc,
                    )
                else:
                    self._apply_config_map(config_map)
            elif event.type == WatchEventType.DELETED:
                self._apply_deleted()
            resource_version = event.resource_version or resource_version
        return resource_version
