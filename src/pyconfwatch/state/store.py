"""Deterministic in-memory config store.

This is the only component allowed to mutate the item-level state. Given
the same sequence of per-file inputs it produces the same actions and the
same final state.
"""

from __future__ import annotations

import logging
import operator
from collections.abc import Callable, Sequence
from typing import Generic, TypeVar

from pyconfwatch.state.actions import (
    Action,
    ActionName,
    AddAction,
    ConfigSet,
    IdentityConflict,
    MovedAction,
    RemoveAction,
    UpdateAction,
)
from pyconfwatch.state.policy import decide, is_cross_file

_logger = logging.getLogger(__name__)

T = TypeVar("T")


def _ignore(_: object) -> None:
    return None


class ConfigStore(Generic[T]):
    """In-memory store mapping identity -> :class:`ConfigSet`.

    ``identity`` must be pure and total over schema-valid items.
    ``equals`` must implement deep structural equality for the payload
    type; the default ``==`` does so for the dict/list/scalar trees YAML
    produces, any other payload type has to bring its own comparator.

    Every action is applied to the state *before* it is handed to the
    ``emit`` callback, so a subscriber reading :meth:`snapshot` from inside
    its callback always sees the transition it was just told about.
    """

    def __init__(
        self,
        identity: Callable[[T], str],
        *,
        equals: Callable[[T, T], bool] = operator.eq,
        on_conflict: Callable[[IdentityConflict], None] | None = None,
    ) -> None:
        self._identity = identity
        self._equals = equals
        self._on_conflict = on_conflict or _ignore
        self._state: dict[str, ConfigSet[T]] = {}

    def __len__(self) -> int:
        return len(self._state)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._state

    def get(self, item_id: str) -> ConfigSet[T] | None:
        return self._state.get(item_id)

    def snapshot(self) -> dict[str, ConfigSet[T]]:
        """Copy of the current state. Not a live view."""
        return dict(self._state)

    def ids_for_file(self, filename: str) -> list[str]:
        return [item_id for item_id, cfg_set in self._state.items() if cfg_set.filename == filename]

    def clear(self) -> None:
        self._state.clear()

    def apply_file(
        self,
        filename: str,
        items: Sequence[T],
        emit: Callable[[Action[T]], None] = _ignore,
    ) -> list[Action[T]]:
        """Reconcile the full, validated item list of one file.

        Identities this file used to declare but no longer does are removed
        first, then every item is added, updated or moved in file order.
        """
        actions: list[Action[T]] = []
        incoming_ids = {self._identity(item) for item in items}

        for item_id in self.ids_for_file(filename):
            if item_id not in incoming_ids:
                self._commit(RemoveAction(id=item_id), actions, emit)

        for item in items:
            item_id = self._identity(item)
            existing = self._state.get(item_id)
            name = decide(existing, filename=filename, item=item, equals=self._equals)
            if name is None:
                continue

            cfg_set = ConfigSet(filename=filename, item=item)
            action: Action[T]
            if name == ActionName.ADD:
                action = AddAction(id=item_id, config_set=cfg_set)
            elif name == ActionName.UPDATE:
                action = UpdateAction(id=item_id, config_set=cfg_set)
            else:
                action = MovedAction(id=item_id, config_set=cfg_set)

            if existing is not None and is_cross_file(existing, filename):
                self._report_conflict(
                    IdentityConflict(
                        id=item_id,
                        previous_filename=existing.filename,
                        filename=filename,
                        value_changed=name == ActionName.UPDATE,
                    )
                )
            self._commit(action, actions, emit)

        return actions

    def remove_file(
        self,
        filename: str,
        emit: Callable[[Action[T]], None] = _ignore,
    ) -> list[Action[T]]:
        """Remove every identity currently tracked under ``filename``.

        Identities that have since moved to another file are left alone.
        """
        actions: list[Action[T]] = []
        for item_id in self.ids_for_file(filename):
            self._commit(RemoveAction(id=item_id), actions, emit)
        return actions

    def _commit(
        self,
        action: Action[T],
        actions: list[Action[T]],
        emit: Callable[[Action[T]], None],
    ) -> None:
        if isinstance(action, RemoveAction):
            self._state.pop(action.id, None)
        else:
            self._state[action.id] = action.config_set
        actions.append(action)
        _logger.debug("State %s id=%s", action.name, action.id)
        emit(action)

    def _report_conflict(self, conflict: IdentityConflict) -> None:
        if conflict.value_changed:
            _logger.warning(
                "Identity %s redefined by %s with a different value (was %s); last processed file wins",
                conflict.id,
                conflict.filename,
                conflict.previous_filename,
            )
        else:
            _logger.info(
                "Identity %s moved from %s to %s",
                conflict.id,
                conflict.previous_filename,
                conflict.filename,
            )
        try:
            self._on_conflict(conflict)
        except Exception:
            _logger.debug("Conflict callback failed", exc_info=True)
