"""Subscriber-side state mirror.

A late subscriber seeds a :class:`ConfigMirror` from
``ConfigWatcher.current_state()`` and then replays every action it
receives. The mirror never talks to the source itself.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Generic, TypeVar

from pyconfwatch.state.actions import Action, ConfigSet, RemoveAction

T = TypeVar("T")


class ConfigMirror(Generic[T]):
    def __init__(self, initial: Mapping[str, ConfigSet[T]] | None = None) -> None:
        self._state: dict[str, ConfigSet[T]] = dict(initial or {})

    def seed(self, snapshot: Mapping[str, ConfigSet[T]]) -> None:
        self._state = dict(snapshot)

    def apply(self, action: Action[T]) -> ConfigSet[T] | None:
        """Apply one action; returns the affected (removed or new) config set."""
        if isinstance(action, RemoveAction):
            return self._state.pop(action.id, None)
        self._state[action.id] = action.config_set
        return action.config_set

    @property
    def state(self) -> dict[str, ConfigSet[T]]:
        return dict(self._state)

    def items(self) -> dict[str, T]:
        """Plain identity -> item mapping."""
        return {item_id: cfg_set.item for item_id, cfg_set in self._state.items()}
