"""Local file source driver.

watchdog delivers raw filesystem events on its observer thread; they are
handed to the event loop with ``call_soon_threadsafe``. Each path then waits
out a quiescence window (restarted by every new raw event) before it is
re-read and diffed against the snapshot.
"""

from __future__ import annotations

import asyncio
import fnmatch
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from pyconfwatch.exceptions import ConfWatchConfigError
from pyconfwatch.sources.base import ChangeSink, ConfigFileChange, FailureSink, FileSnapshot

_logger = logging.getLogger(__name__)


def _read_text(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
        return None


class _RawEventHandler(FileSystemEventHandler):
    """Forwards every raw event path to the driver on its event loop."""

    def __init__(self, driver: FileSourceDriver, loop: asyncio.AbstractEventLoop) -> None:
        self._driver = driver
        self._loop = loop

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type in ("opened", "closed", "closed_no_write"):
            return
        for raw in (event.src_path, getattr(event, "dest_path", "")):
            if not raw:
                continue
            path = Path(raw if isinstance(raw, str) else raw.decode())
            try:
                self._loop.call_soon_threadsafe(self._driver.notify, path)
            except RuntimeError:
                # Loop already closed during shutdown.
                return


class FileSourceDriver:
    """Watches files and directories; files are keyed by basename.

    Explicitly listed files are always watched. Files inside a listed
    directory are watched when they match one of ``patterns``. Dotfiles are
    never reported, but an event on one (for example the ``..data`` symlink
    swap of a mounted ConfigMap volume) re-checks every watched file in
    that directory.

    This driver has no terminal failure mode: unreadable files are logged
    and skipped.
    """

    def __init__(
        self,
        paths: Sequence[str | Path],
        *,
        patterns: Sequence[str] = ("*.yaml", "*.yml"),
        debounce_seconds: float = 0.5,
    ) -> None:
        if not paths:
            raise ConfWatchConfigError("FileSourceDriver needs at least one path")
        self._paths = [Path(p).expanduser() for p in paths]
        self._patterns = tuple(patterns)
        self._debounce = debounce_seconds
        self._snapshot = FileSnapshot()
        # filename -> path its snapshot content was read from
        self._origins: dict[str, Path] = {}
        self._files: set[Path] = set()
        self._dirs: set[Path] = set()
        self._timers: dict[Path, asyncio.TimerHandle] = {}
        self._refreshing: dict[Path, asyncio.Task[None]] = {}
        self._observer: BaseObserver | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._sink: ChangeSink | None = None
        self._running = False

    @property
    def snapshot(self) -> Mapping[str, str]:
        return self._snapshot.view()

    @property
    def is_running(self) -> bool:
        return self._running

    def _resolve_paths(self) -> None:
        # Paths are kept unresolved so a symlinked file keeps its own name
        # and directory; the link target is followed when reading.
        for path in self._paths:
            absolute = path.absolute()
            if absolute.is_dir():
                self._dirs.add(absolute)
            else:
                self._files.add(absolute)

    def _watch_dirs(self) -> set[Path]:
        return self._dirs | {f.parent for f in self._files}

    def _is_watched(self, path: Path) -> bool:
        if path.name.startswith("."):
            return False
        if path in self._files:
            return True
        if path.parent in self._dirs:
            return any(fnmatch.fnmatch(path.name, pattern) for pattern in self._patterns)
        return False

    def _candidates_in(self, directory: Path) -> list[Path]:
        found = {f for f in self._files if f.parent == directory}
        if directory in self._dirs:
            if directory.is_dir():
                found.update(p.absolute() for p in directory.iterdir() if self._is_watched(p.absolute()))
            found.update(origin for origin in self._origins.values() if origin.parent == directory)
        return sorted(found)

    async def start(self, sink: ChangeSink, on_failure: FailureSink) -> None:
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        self._sink = sink
        self._resolve_paths()
        self._running = True

        observer = Observer()
        handler = _RawEventHandler(self, self._loop)
        for directory in sorted(self._watch_dirs()):
            if not directory.is_dir():
                _logger.warning("Not watching %s: directory does not exist", directory)
                continue
            observer.schedule(handler, str(directory), recursive=False)
            _logger.debug("Watching directory %s", directory)

        try:
            await self._loop.run_in_executor(None, observer.start)
        except OSError as exc:
            self._running = False
            raise ConfWatchConfigError(f"Cannot watch {[str(p) for p in self._paths]}: {exc}") from exc
        self._observer = observer

        await self._initial_scan()
        _logger.info("File watcher started for %d path(s)", len(self._paths))

    async def _initial_scan(self) -> None:
        for directory in sorted(self._watch_dirs()):
            for path in self._candidates_in(directory):
                try:
                    await self._refresh(path)
                except (OSError, UnicodeDecodeError) as exc:
                    _logger.warning("Reading %s failed: %s", path, exc)

    def notify(self, path: Path) -> None:
        """Record a raw event for ``path`` and (re)start its quiescence timer."""
        if not self._running or self._loop is None:
            return
        path = Path(path).absolute()
        if path.name.startswith(".") and path.parent in self._watch_dirs():
            for candidate in self._candidates_in(path.parent):
                self._schedule(candidate)
            return
        if self._is_watched(path):
            self._schedule(path)

    def _schedule(self, path: Path) -> None:
        assert self._loop is not None  # noqa: S101
        timer = self._timers.pop(path, None)
        if timer is not None:
            timer.cancel()
        self._timers[path] = self._loop.call_later(self._debounce, self._quiesced, path)

    def _quiesced(self, path: Path) -> None:
        self._timers.pop(path, None)
        if not self._running:
            return
        previous = self._refreshing.get(path)
        task = asyncio.ensure_future(self._refresh_after(previous, path))
        self._refreshing[path] = task
        task.add_done_callback(lambda t, p=path: self._refresh_done(p, t))

    def _refresh_done(self, path: Path, task: asyncio.Task[None]) -> None:
        if self._refreshing.get(path) is task:
            self._refreshing.pop(path, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.warning("Reading %s failed: %s", path, exc)

    async def _refresh_after(self, previous: asyncio.Task[None] | None, path: Path) -> None:
        # Reads of one path complete in the order their windows closed.
        if previous is not None and not previous.done():
            await asyncio.wait({previous})
        await self._refresh(path)

    async def _refresh(self, path: Path) -> None:
        content = await asyncio.to_thread(_read_text, path)
        if not self._running:
            return
        filename = path.name
        origin = self._origins.get(filename)
        change: ConfigFileChange | None
        if content is None:
            if origin is not None and origin != path:
                # Same basename, now owned by another watched path.
                return
            self._origins.pop(filename, None)
            change = self._snapshot.forget(filename)
        else:
            self._origins[filename] = path
            change = self._snapshot.observe(filename, content)
        if change is None:
            return
        _logger.info("%s - [%s]", change.kind, change.filename)
        if self._sink is not None:
            self._sink(change)

    async def stop(self) -> None:
        if not self._running and self._observer is None:
            return
        self._running = False
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        for task in self._refreshing.values():
            task.cancel()
        self._refreshing.clear()

        observer = self._observer
        self._observer = None
        if observer is not None:
            loop = self._loop or asyncio.get_running_loop()
            await loop.run_in_executor(None, self._stop_observer, observer)
        _logger.debug("File watcher stopped")

    @staticmethod
    def _stop_observer(observer: BaseObserver) -> None:
        try:
            observer.stop()
        finally:
            observer.join(timeout=5.0)
