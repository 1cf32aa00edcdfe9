"""State/store layer.

This package is the single source of truth for how validated config file
contents are merged into the item-level state, and for the actions that
describe each transition.
"""

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
from pyconfwatch.state.mirror import ConfigMirror
from pyconfwatch.state.store import ConfigStore

__all__ = [
    "Action",
    "ActionName",
    "AddAction",
    "ConfigMirror",
    "ConfigSet",
    "ConfigStore",
    "IdentityConflict",
    "MovedAction",
    "RemoveAction",
    "UpdateAction",
]
