"""Source driver contract.

Every driver (local files, Kubernetes ConfigMap, ...) reduces its
provider-native events to whole-file :class:`ConfigFileChange`
notifications. Only the watcher consumes them.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from enum import StrEnum
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ChangeKind(StrEnum):
    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"


class ConfigFileChange(BaseModel):
    """The entire content of one source file changed."""

    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    filename: str = Field(..., min_length=1)
    content: str | None = Field(default=None, description="New file content; None only for removals")

    @model_validator(mode="after")
    def _content_matches_kind(self) -> ConfigFileChange:
        if self.kind == ChangeKind.REMOVE and self.content is not None:
            raise ValueError("remove changes carry no content")
        if self.kind != ChangeKind.REMOVE and self.content is None:
            raise ValueError(f"{self.kind} changes require content")
        return self


ChangeSink = Callable[[ConfigFileChange], None]
FailureSink = Callable[[Exception], None]


class SourceDriver(Protocol):
    """Structural interface implemented by every source driver.

    ``sink`` and ``on_failure`` are always invoked on the event loop the
    driver was started on, never from a foreign thread.
    """

    @property
    def snapshot(self) -> Mapping[str, str]: ...

    async def start(self, sink: ChangeSink, on_failure: FailureSink) -> None: ...

    async def stop(self) -> None: ...


class FileSnapshot:
    """Last known raw content per filename.

    Used purely to turn "something happened to this file" into add,
    update, remove or nothing. Each ``observe``/``forget`` call updates the
    snapshot and returns the change it implies.
    """

    def __init__(self) -> None:
        self._files: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._files)

    def __contains__(self, filename: object) -> bool:
        return filename in self._files

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._files))

    def view(self) -> Mapping[str, str]:
        return dict(self._files)

    def observe(self, filename: str, content: str) -> ConfigFileChange | None:
        previous = self._files.get(filename)
        if previous is None:
            self._files[filename] = content
            return ConfigFileChange(kind=ChangeKind.ADD, filename=filename, content=content)
        if previous != content:
            self._files[filename] = content
            return ConfigFileChange(kind=ChangeKind.UPDATE, filename=filename, content=content)
        return None

    def forget(self, filename: str) -> ConfigFileChange | None:
        if self._files.pop(filename, None) is None:
            return None
        return ConfigFileChange(kind=ChangeKind.REMOVE, filename=filename)

    def sync(self, files: Mapping[str, str]) -> list[ConfigFileChange]:
        """Diff a complete filename -> content listing against the snapshot.

        Files missing from ``files`` are removed.
        """
        changes: list[ConfigFileChange] = []
        for filename, content in files.items():
            change = self.observe(filename, content)
            if change is not None:
                changes.append(change)
        for filename in self:
            if filename not in files:
                change = self.forget(filename)
                if change is not None:
                    changes.append(change)
        return changes

    def clear(self) -> list[ConfigFileChange]:
        """Forget everything, returning one removal per known file."""
        changes = [ConfigFileChange(kind=ChangeKind.REMOVE, filename=filename) for filename in self._files]
        self._files.clear()
        return changes
