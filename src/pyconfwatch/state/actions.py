"""Reconciliation actions.

Every state transition made by :class:`pyconfwatch.state.store.ConfigStore`
is described by exactly one of these actions. Subscribers replay them to
keep their own view in sync.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import ClassVar, Generic, TypeAlias, TypeVar

T = TypeVar("T")


class ActionName(StrEnum):
    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"
    MOVED = "moved"


@dataclass(frozen=True, slots=True)
class ConfigSet(Generic[T]):
    """An item together with the file it currently belongs to."""

    filename: str
    item: T


@dataclass(frozen=True, slots=True)
class AddAction(Generic[T]):
    """Identity newly observed."""

    name: ClassVar[ActionName] = ActionName.ADD

    id: str
    config_set: ConfigSet[T]


@dataclass(frozen=True, slots=True)
class UpdateAction(Generic[T]):
    """Identity already tracked, value changed."""

    name: ClassVar[ActionName] = ActionName.UPDATE

    id: str
    config_set: ConfigSet[T]


@dataclass(frozen=True, slots=True)
class MovedAction(Generic[T]):
    """Identity already tracked, value unchanged, now declared by another file."""

    name: ClassVar[ActionName] = ActionName.MOVED

    id: str
    config_set: ConfigSet[T]


@dataclass(frozen=True, slots=True)
class RemoveAction:
    """Identity no longer present in the file it was tracked under."""

    name: ClassVar[ActionName] = ActionName.REMOVE

    id: str


Action: TypeAlias = AddAction[T] | UpdateAction[T] | MovedAction[T] | RemoveAction


@dataclass(frozen=True, slots=True)
class IdentityConflict:
    """An identity tracked under one file was claimed by another file.

    This is either an intentional relocation (``value_changed`` is usually
    ``False``) or two files defining the same identity at once. The store
    cannot tell these apart; the last processed file wins either way.
    """

    id: str
    previous_filename: str
    filename: str
    value_changed: bool
