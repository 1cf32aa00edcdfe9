from __future__ import annotations

from typing import Any

from pyconfwatch.state.actions import (
    ActionName,
    AddAction,
    ConfigSet,
    IdentityConflict,
    MovedAction,
    RemoveAction,
    UpdateAction,
)
from pyconfwatch.state.store import ConfigStore


def _identity(item: dict[str, Any]) -> str:
    return str(item["id"])


def _store(conflicts: list[IdentityConflict] | None = None) -> ConfigStore[dict[str, Any]]:
    on_conflict = conflicts.append if conflicts is not None else None
    return ConfigStore(_identity, on_conflict=on_conflict)


def test_add_update_remove_single_file() -> None:
    store = _store()

    actions = store.apply_file("a.yaml", [{"id": "x", "val": 1}])
    assert actions == [AddAction(id="x", config_set=ConfigSet("a.yaml", {"id": "x", "val": 1}))]
    assert store.snapshot() == {"x": ConfigSet("a.yaml", {"id": "x", "val": 1})}

    actions = store.apply_file("a.yaml", [{"id": "x", "val": 2}])
    assert actions == [UpdateAction(id="x", config_set=ConfigSet("a.yaml", {"id": "x", "val": 2}))]
    assert store.get("x") == ConfigSet("a.yaml", {"id": "x", "val": 2})

    actions = store.apply_file("a.yaml", [])
    assert actions == [RemoveAction(id="x")]
    assert store.snapshot() == {}


def test_reapplying_identical_content_is_a_noop() -> None:
    store = _store()
    items = [{"id": "x", "val": 1}, {"id": "y", "val": {"nested": [1, 2]}}]
    store.apply_file("a.yaml", items)
    before = store.snapshot()

    # Fresh but structurally equal objects.
    again = [{"id": "x", "val": 1}, {"id": "y", "val": {"nested": [1, 2]}}]
    assert store.apply_file("a.yaml", again) == []
    assert store.snapshot() == before


def test_vanished_identities_are_removed_before_new_ones_are_added() -> None:
    store = _store()
    store.apply_file("a.yaml", [{"id": "x"}, {"id": "y"}])

    actions = store.apply_file("a.yaml", [{"id": "z"}, {"id": "y"}])

    assert [(a.name, a.id) for a in actions] == [(ActionName.REMOVE, "x"), (ActionName.ADD, "z")]
    assert set(store.snapshot()) == {"y", "z"}


def test_remove_file_removes_exactly_its_entries() -> None:
    store = _store()
    store.apply_file("a.yaml", [{"id": "a1"}, {"id": "a2"}, {"id": "a3"}])
    store.apply_file("b.yaml", [{"id": "b1"}])

    actions = store.remove_file("a.yaml")

    assert sorted(a.id for a in actions) == ["a1", "a2", "a3"]
    assert all(isinstance(a, RemoveAction) for a in actions)
    assert store.ids_for_file("a.yaml") == []
    assert set(store.snapshot()) == {"b1"}


def test_remove_unknown_file_emits_nothing() -> None:
    store = _store()
    store.apply_file("a.yaml", [{"id": "x"}])
    assert store.remove_file("missing.yaml") == []
    assert "x" in store


def test_move_with_new_file_first_emits_single_moved() -> None:
    conflicts: list[IdentityConflict] = []
    store = _store(conflicts)
    store.apply_file("b.yaml", [{"id": "y", "val": 7}])

    actions = store.apply_file("c.yaml", [{"id": "y", "val": 7}])
    assert actions == [MovedAction(id="y", config_set=ConfigSet("c.yaml", {"id": "y", "val": 7}))]

    # The old file's removal arrives later and no longer owns "y".
    assert store.remove_file("b.yaml") == []
    assert store.get("y") == ConfigSet("c.yaml", {"id": "y", "val": 7})
    assert conflicts == [IdentityConflict(id="y", previous_filename="b.yaml", filename="c.yaml", value_changed=False)]


def test_move_with_old_file_removed_first_emits_remove_then_add() -> None:
    conflicts: list[IdentityConflict] = []
    store = _store(conflicts)
    store.apply_file("b.yaml", [{"id": "y", "val": 7}])

    removed = store.remove_file("b.yaml")
    added = store.apply_file("c.yaml", [{"id": "y", "val": 7}])

    assert removed == [RemoveAction(id="y")]
    assert added == [AddAction(id="y", config_set=ConfigSet("c.yaml", {"id": "y", "val": 7}))]
    assert conflicts == []


def test_same_identity_in_two_files_last_processed_wins_and_is_reported() -> None:
    conflicts: list[IdentityConflict] = []
    store = _store(conflicts)
    store.apply_file("a.yaml", [{"id": "k", "val": "from-a"}])

    actions = store.apply_file("b.yaml", [{"id": "k", "val": "from-b"}])

    assert actions == [UpdateAction(id="k", config_set=ConfigSet("b.yaml", {"id": "k", "val": "from-b"}))]
    assert conflicts == [IdentityConflict(id="k", previous_filename="a.yaml", filename="b.yaml", value_changed=True)]

    # a.yaml dropping "k" later does not touch b.yaml's definition.
    assert store.apply_file("a.yaml", []) == []
    assert store.get("k") == ConfigSet("b.yaml", {"id": "k", "val": "from-b"})


def test_duplicate_identity_within_one_file_last_occurrence_wins() -> None:
    store = _store()

    actions = store.apply_file("a.yaml", [{"id": "x", "val": 1}, {"id": "x", "val": 2}])

    assert [a.name for a in actions] == [ActionName.ADD, ActionName.UPDATE]
    assert store.get("x") == ConfigSet("a.yaml", {"id": "x", "val": 2})


def test_state_is_mutated_before_each_action_is_emitted() -> None:
    store = _store()
    seen: list[tuple[str, bool]] = []

    def emit(action: Any) -> None:
        seen.append((action.id, action.id in store))

    store.apply_file("a.yaml", [{"id": "x"}, {"id": "y"}], emit=emit)
    store.remove_file("a.yaml", emit=emit)

    assert seen == [("x", True), ("y", True), ("x", False), ("y", False)]


def test_custom_equality_comparator_is_used() -> None:
    # Treat items as equal when only their "comment" differs.
    def equals(a: dict[str, Any], b: dict[str, Any]) -> bool:
        return {k: v for k, v in a.items() if k != "comment"} == {k: v for k, v in b.items() if k != "comment"}

    store: ConfigStore[dict[str, Any]] = ConfigStore(_identity, equals=equals)
    store.apply_file("a.yaml", [{"id": "x", "comment": "one"}])

    assert store.apply_file("a.yaml", [{"id": "x", "comment": "two"}]) == []


def test_snapshot_is_not_a_live_view() -> None:
    store = _store()
    store.apply_file("a.yaml", [{"id": "x"}])
    snapshot = store.snapshot()

    store.apply_file("a.yaml", [])

    assert "x" in snapshot
    assert len(store) == 0


def test_final_state_matches_latest_content_of_remaining_files() -> None:
    store = _store()
    store.apply_file("a.yaml", [{"id": "1", "v": 1}, {"id": "2", "v": 1}])
    store.apply_file("b.yaml", [{"id": "3", "v": 1}])
    store.apply_file("a.yaml", [{"id": "2", "v": 2}])
    store.apply_file("b.yaml", [{"id": "3", "v": 3}, {"id": "4", "v": 1}])
    store.remove_file("a.yaml")

    assert {k: (v.filename, v.item["v"]) for k, v in store.snapshot().items()} == {
        "3": ("b.yaml", 3),
        "4": ("b.yaml", 1),
    }
