"""High-level config watcher.

Wires a source driver, the validation pipeline and the config store
together behind one serialized event queue::

    driver --(ConfigFileChange)--> queue --> consumer --> validate --> store --> actions

Drivers may produce changes from several tasks or threads; the queue
funnels them into a single consumer which handles one change completely
(validation, diff, state mutation, publication) before taking the next.
"""

from __future__ import annotations

import asyncio
import logging
import operator
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pyconfwatch.config import WatcherConfig
from pyconfwatch.emitter import Broadcaster
from pyconfwatch.exceptions import ConfigValidationError, ConfWatchError, SourceConnectivityError
from pyconfwatch.sources import build_source_driver
from pyconfwatch.sources.base import ChangeKind, ConfigFileChange, SourceDriver
from pyconfwatch.state.actions import Action, ConfigSet, IdentityConflict
from pyconfwatch.state.store import ConfigStore
from pyconfwatch.validation.pipeline import ValidationPipeline
from pyconfwatch.validation.schema import SchemaValidator

_logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class _SourceFailure:
    error: Exception


_STOP = object()


class ConfigWatcher(Generic[T]):
    """Keeps an identity -> :class:`ConfigSet` state in sync with a source.

    Usage::

        async with ConfigWatcher(driver, schema, identity=lambda item: item["id"]) as watcher:
            watcher.subscribe(print)
            ...

    ``identity`` must be pure and total over schema-valid items. ``equals``
    must be a deep structural comparison for the item type; the default
    ``==`` is one for the plain dict/list/scalar values YAML produces.

    All methods must be called from the event loop the watcher was started
    on.
    """

    def __init__(
        self,
        driver: SourceDriver,
        schema: Mapping[str, Any] | SchemaValidator,
        identity: Callable[[T], str],
        *,
        equals: Callable[[T, T], bool] = operator.eq,
    ) -> None:
        self._driver = driver
        self._pipeline: ValidationPipeline[T] = ValidationPipeline(schema, identity)
        self._actions: Broadcaster[Action[T]] = Broadcaster("actions")
        self._errors: Broadcaster[ConfWatchError] = Broadcaster("errors")
        self._conflicts: Broadcaster[IdentityConflict] = Broadcaster("conflicts")
        self._store: ConfigStore[T] = ConfigStore(identity, equals=equals, on_conflict=self._conflicts.publish)
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._consumer: asyncio.Task[None] | None = None
        self._driver_stop: asyncio.Task[None] | None = None
        self._started = False
        self._stopped = False

    @classmethod
    def from_config(
        cls,
        config: WatcherConfig,
        schema: Mapping[str, Any] | SchemaValidator,
        identity: Callable[[T], str],
        *,
        equals: Callable[[T, T], bool] = operator.eq,
    ) -> ConfigWatcher[T]:
        """Build a watcher with the source driver selected by ``config``."""
        return cls(build_source_driver(config), schema, identity, equals=equals)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ConfigWatcher[T]:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.stop()
        await self.wait_closed()

    @property
    def is_running(self) -> bool:
        return self._started and not self._stopped

    @property
    def driver(self) -> SourceDriver:
        return self._driver

    async def start(self) -> None:
        """Start consuming the source. Calling it again is a no-op."""
        if self._stopped:
            raise ConfWatchError("A stopped ConfigWatcher cannot be restarted")
        if self._started:
            return
        self._started = True
        self._consumer = asyncio.create_task(self._consume(), name="pyconfwatch-consumer")
        try:
            await self._driver.start(self._on_change, self._on_source_failure)
        except BaseException:
            self.stop()
            await self.wait_closed()
            raise
        _logger.debug("Config watcher started")

    def stop(self) -> None:
        """Request shutdown and return immediately.

        Changes accepted before this call are still processed; anything the
        driver delivers afterwards is dropped. State is cleared and the
        action, error and conflict streams end once the queue is drained.
        Use :meth:`wait_closed` to wait for that. Idempotent.
        """
        if self._stopped:
            return
        self._stopped = True
        if not self._started:
            self._close_channels()
            return
        self._queue.put_nowait(_STOP)
        self._driver_stop = asyncio.ensure_future(self._driver.stop())
        _logger.debug("Config watcher stop requested")

    async def wait_closed(self) -> None:
        """Wait until a requested shutdown has fully completed."""
        pending = [task for task in (self._consumer, self._driver_stop) if task is not None]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Subscriptions and state
    # ------------------------------------------------------------------

    def current_state(self) -> dict[str, ConfigSet[T]]:
        """Snapshot of the state at call time; not a live view."""
        return self._store.snapshot()

    def subscribe(self, callback: Callable[[Action[T]], None]) -> Callable[[], None]:
        """Receive every future action in commit order. Returns an unsubscribe function."""
        return self._actions.subscribe(callback)

    def subscribe_errors(self, callback: Callable[[ConfWatchError], None]) -> Callable[[], None]:
        """Receive rejected files (:class:`ConfigValidationError`) and terminal source failures."""
        return self._errors.subscribe(callback)

    def subscribe_conflicts(self, callback: Callable[[IdentityConflict], None]) -> Callable[[], None]:
        return self._conflicts.subscribe(callback)

    def actions(self) -> AsyncIterator[Action[T]]:
        """Async iterator over future actions; ends when the watcher stops."""
        return self._actions.stream()

    def errors(self) -> AsyncIterator[ConfWatchError]:
        return self._errors.stream()

    # ------------------------------------------------------------------
    # Driver callbacks (always on the loop)
    # ------------------------------------------------------------------

    def _on_change(self, change: ConfigFileChange) -> None:
        if self._stopped:
            _logger.debug("Dropping %s for %s after shutdown", change.kind, change.filename)
            return
        self._queue.put_nowait(change)

    def _on_source_failure(self, error: Exception) -> None:
        if self._stopped:
            return
        self._queue.put_nowait(_SourceFailure(error))

    # ------------------------------------------------------------------
    # Consumer
    # ------------------------------------------------------------------

    async def _consume(self) -> None:
        try:
            while True:
                item = await self._queue.get()
                if item is _STOP:
                    break
                try:
                    self._handle(item)
                except Exception as exc:
                    _logger.exception("Unexpected failure while processing %r", item)
                    self._errors.publish(ConfWatchError(f"Unexpected failure while processing {item!r}: {exc}"))
        finally:
            self._store.clear()
            self._close_channels()
            _logger.debug("Config watcher stopped")

    def _handle(self, item: object) -> None:
        if isinstance(item, _SourceFailure):
            self._handle_failure(item.error)
        elif isinstance(item, ConfigFileChange):
            self._handle_change(item)

    def _handle_failure(self, error: Exception) -> None:
        wrapped = error if isinstance(error, ConfWatchError) else SourceConnectivityError(str(error))
        _logger.error("Config source failed permanently: %s; keeping last known state", wrapped)
        self._errors.publish(wrapped)

    def _handle_change(self, change: ConfigFileChange) -> None:
        if change.kind == ChangeKind.REMOVE:
            actions = self._store.remove_file(change.filename, emit=self._actions.publish)
        else:
            assert change.content is not None  # noqa: S101
            try:
                items = self._pipeline.validate(change.filename, change.content)
            except ConfigValidationError as exc:
                _logger.warning("%s; keeping previous state for %s", exc, change.filename)
                for detail in exc.errors:
                    _logger.warning("Config file %s : %s", change.filename, detail)
                self._errors.publish(exc)
                return
            actions = self._store.apply_file(change.filename, items, emit=self._actions.publish)

        _logger.info(
            "[%s] %s processed: %d action(s), %d item(s) tracked",
            change.filename,
            change.kind,
            len(actions),
            len(self._store),
        )

    def _close_channels(self) -> None:
        self._actions.close()
        self._errors.close()
        self._conflicts.close()
