"""Tests for the demo data seeder."""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ANTHROPIC_API_KEY", "test")

from taskpilot.seed import CATEGORIES, PROJECTS, seed_demo_data


def _project(store, name):
    return next(p for p in store.list_projects() if p.name == name)


def test_seed_counts(store):
    result = seed_demo_data(store)
    assert result.skipped is False
    assert result.errors == []
    assert result.categories == len(CATEGORIES) == 4
    assert result.projects == len(PROJECTS) == 5
    assert result.tasks == 29
    print("  PASS: seed_counts")


def test_seed_aggregates_match_children(store):
    seed_demo_data(store)
    expected = {
        "Website Redesign": 54,
        "Mobile App Launch": 77,
        "Q1 Marketing Campaign": 40,
        "Brand Guidelines Update": 90,
        "Engineering Hiring": 48,
    }
    for name, percent in expected.items():
        assert _project(store, name).percent_complete == percent, name
    print("  PASS: seed_aggregates_match_children")


def test_seed_parent_tasks_are_derived(store):
    seed_demo_data(store)
    project = _project(store, "Website Redesign")
    by_name = {t.name: t for t in store.get_tasks_by_project(project.id)}

    assert by_name["Planning & Research"].percent_complete == 100
    assert by_name["Planning & Research"].status == "completed"
    assert by_name["Planning & Research"].is_completed is True
    assert by_name["UI/UX Design"].percent_complete == 70
    assert by_name["Frontend Development"].percent_complete == 47
    assert by_name["Frontend Development"].status == "in-progress"
    assert by_name["Wireframes"].parent_task_id == by_name["UI/UX Design"].id
    print("  PASS: seed_parent_tasks_are_derived")


def test_seed_assigns_categories(store):
    seed_demo_data(store)
    names = {c.id: c.name for c in store.list_categories()}
    assert [c.name for c in store.list_categories()] == [
        "Development", "Marketing", "Design", "Operations",
    ]
    assert names[_project(store, "Engineering Hiring").category_id] == "Operations"
    assert _project(store, "Engineering Hiring").roadblocks
    print("  PASS: seed_assigns_categories")


def test_seed_skips_when_data_present(store):
    store.create_category("Existing")
    result = seed_demo_data(store)
    assert result.skipped is True
    assert store.list_projects() == []
    print("  PASS: seed_skips_when_data_present")


def test_seed_force(store):
    store.create_category("Existing")
    result = seed_demo_data(store, force=True)
    assert result.skipped is False
    assert len(store.list_categories()) == 5
    print("  PASS: seed_force")
