"""Tests for the Completion Aggregator — rounding, parent chains, project roll-up."""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ANTHROPIC_API_KEY", "test")

from taskpilot.engines.completion import mean_percent, round_percent


def _make_project(store, name="Website"):
    return store.create_project(name=name)


def _make_task(store, project, name, parent=None, percent=0, status="pending", sort_order=0):
    return store.create_task(
        project_id=project.id,
        parent_task_id=parent.id if parent else None,
        name=name,
        percent_complete=percent,
        is_completed=percent == 100,
        status=status,
        sort_order=sort_order,
    )


# === Rounding ===


def test_round_percent_half_up():
    assert round_percent(125, 2) == 63  # 62.5
    assert round_percent(187, 3) == 62  # 62.33
    assert round_percent(150, 2) == 75
    assert round_percent(1, 2) == 1  # 0.5
    assert round_percent(0, 0) == 0
    assert mean_percent([]) == 0
    assert mean_percent([100, 100, 100]) == 100
    print("  PASS: round_percent_half_up")


# === Project ===


def test_project_is_mean_of_roots(store, aggregator):
    project = _make_project(store)
    parent = _make_task(store, project, "Design", percent=100)
    _make_task(store, project, "Build", percent=50)
    # Subtasks never count toward the project directly
    _make_task(store, project, "Nested", parent=parent, percent=0)

    assert aggregator.recalc_project(project.id) == 75
    assert store.get_project(project.id).percent_complete == 75
    print("  PASS: project_is_mean_of_roots")


def test_project_without_tasks_is_zero(store, aggregator):
    project = store.create_project(name="Empty", percent_complete=40)
    assert aggregator.recalc_project(project.id) == 0
    assert store.get_project(project.id).percent_complete == 0
    print("  PASS: project_without_tasks_is_zero")


def test_unknown_project_is_noop(aggregator):
    assert aggregator.recalc_project("nope") is None
    print("  PASS: unknown_project_is_noop")


def test_project_rounds_half_up(store, aggregator):
    project = _make_project(store)
    _make_task(store, project, "A", percent=100)
    _make_task(store, project, "B", percent=25)
    assert aggregator.recalc_project(project.id) == 63
    print("  PASS: project_rounds_half_up")


# === Parent chain ===


def test_parent_is_mean_of_children(store, aggregator):
    project = _make_project(store)
    parent = _make_task(store, project, "Parent")
    _make_task(store, project, "C1", parent=parent, percent=100)
    _make_task(store, project, "C2", parent=parent, percent=50)

    assert aggregator.recalc_parent(parent.id) == 1
    refreshed = store.get_task(parent.id)
    assert refreshed.percent_complete == 75
    assert refreshed.status == "in-progress"
    assert refreshed.is_completed is False
    assert aggregator.recalc_project(project.id) == 75
    print("  PASS: parent_is_mean_of_children")


def test_three_level_chain_propagates(store, aggregator):
    project = _make_project(store)
    top = _make_task(store, project, "Top")
    middle = _make_task(store, project, "Middle", parent=top)
    leaf = _make_task(store, project, "Leaf", parent=middle)

    store.update_task(leaf.id, percent_complete=100, is_completed=True, status="completed")
    aggregator.cascade(store.get_task(leaf.id))

    for task_id in (middle.id, top.id):
        task = store.get_task(task_id)
        assert task.percent_complete == 100
        assert task.is_completed is True
        assert task.status == "completed"
    assert store.get_project(project.id).percent_complete == 100
    print("  PASS: three_level_chain_propagates")


def test_leaf_is_never_overwritten(store, aggregator):
    project = _make_project(store)
    leaf = _make_task(store, project, "Leaf", percent=40)
    assert aggregator.recalc_parent(leaf.id) == 0
    assert store.get_task(leaf.id).percent_complete == 40
    print("  PASS: leaf_is_never_overwritten")


def test_missing_parent_is_noop(aggregator):
    assert aggregator.recalc_parent("missing") == 0
    assert aggregator.recalc_parent(None) == 0
    print("  PASS: missing_parent_is_noop")


def test_zero_average_keeps_custom_status(store, aggregator):
    project = _make_project(store)
    parent = _make_task(store, project, "Blocked parent", status="blocked")
    _make_task(store, project, "Child", parent=parent, percent=0)

    aggregator.recalc_parent(parent.id)
    assert store.get_task(parent.id).status == "blocked"
    print("  PASS: zero_average_keeps_custom_status")


def test_cascade_on_parent_starts_at_itself(store, aggregator):
    project = _make_project(store)
    parent = _make_task(store, project, "Parent", percent=90)
    _make_task(store, project, "Child", parent=parent, percent=20)

    aggregator.cascade(store.get_task(parent.id))

    assert store.get_task(parent.id).percent_complete == 20
    assert store.get_project(project.id).percent_complete == 20
    print("  PASS: cascade_on_parent_starts_at_itself")


def test_cycle_stops_walk(store, aggregator, caplog):
    project = _make_project(store)
    a = _make_task(store, project, "A")
    b = _make_task(store, project, "B", parent=a, percent=50)
    store.update_task(a.id, parent_task_id=b.id)

    assert aggregator.recalc_parent(a.id) == 2
    assert "cycle" in caplog.text
    print("  PASS: cycle_stops_walk")


def test_recalc_all_bottom_up(store, aggregator):
    project = _make_project(store)
    top = _make_task(store, project, "Top", percent=0)
    middle = _make_task(store, project, "Middle", parent=top, percent=0)
    _make_task(store, project, "L1", parent=middle, percent=100)
    _make_task(store, project, "L2", parent=middle, percent=0)
    _make_task(store, project, "Sibling", parent=top, percent=100)

    aggregator.recalc_all(project.id)

    assert store.get_task(middle.id).percent_complete == 50
    assert store.get_task(top.id).percent_complete == 75
    assert store.get_project(project.id).percent_complete == 75
    print("  PASS: recalc_all_bottom_up")


if __name__ == "__main__":
    print("Testing Completion Aggregator:")
    test_round_percent_half_up()
    print("\nRun the store-backed tests with pytest.")
