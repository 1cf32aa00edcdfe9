"""Per-item reconciliation policy.

This module contains *no* state access. The store feeds it the currently
tracked entry for an identity and the freshly validated item, and gets back
which action (if any) the transition requires.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from pyconfwatch.state.actions import ActionName, ConfigSet

T = TypeVar("T")


def decide(
    existing: ConfigSet[T] | None,
    *,
    filename: str,
    item: T,
    equals: Callable[[T, T], bool],
) -> ActionName | None:
    """Decide the action for one incoming item.

    Policy:
    - unknown identity: add
    - known identity with a different value: update (regardless of file)
    - same value declared by a different file: moved
    - same value, same file: nothing
    """
    if existing is None:
        return ActionName.ADD
    if not equals(existing.item, item):
        return ActionName.UPDATE
    if existing.filename != filename:
        return ActionName.MOVED
    return None


def is_cross_file(existing: ConfigSet[T] | None, filename: str) -> bool:
    return existing is not None and existing.filename != filename
