"""Demo data seeder — categories, projects and nested tasks.

Seeds only an empty database (no categories yet). Leaf percentages are
taken from the definitions below; parent tasks and projects are then
recomputed by the CompletionAggregator so every stored aggregate matches
its children.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from taskpilot.engines.completion import CompletionAggregator
from taskpilot.models.tracker import status_for_percent
from taskpilot.storage.store import TrackerStore

logger = logging.getLogger(__name__)


@dataclass
class SeedResult:
    """Result of a seeding operation."""

    skipped: bool = False
    categories: int = 0
    projects: int = 0
    tasks: int = 0
    errors: list[str] = field(default_factory=list)


# ── Demo definitions ───────────────────────────────────────────────
CATEGORIES: list[dict] = [
    {"name": "Development", "color": "#3B82F6"},
    {"name": "Marketing", "color": "#10B981"},
    {"name": "Design", "color": "#8B5CF6"},
    {"name": "Operations", "color": "#F59E0B"},
]

PROJECTS: list[dict] = [
    {
        "name": "Website Redesign",
        "description": "Complete overhaul of the company website with modern design and improved UX",
        "category": "Development",
        "tasks": [
            {
                "name": "Planning & Research",
                "description": "Initial planning phase including competitor analysis",
                "children": [
                    {"name": "Competitor Analysis", "percent": 100},
                    {"name": "User Research", "percent": 100},
                ],
            },
            {
                "name": "UI/UX Design",
                "description": "Create wireframes and high-fidelity mockups",
                "children": [
                    {"name": "Wireframes", "percent": 100},
                    {"name": "High-fidelity mockups", "percent": 80},
                    {
                        "name": "Design review with stakeholders",
                        "percent": 30,
                        "roadblocks": "Waiting for VP approval on color palette",
                    },
                ],
            },
            {
                "name": "Frontend Development",
                "description": "Build the new website using React",
                "children": [
                    {"name": "Setup project structure", "percent": 100},
                    {"name": "Build homepage components", "percent": 40},
                    {"name": "Implement responsive design", "percent": 0},
                ],
            },
            {"name": "Testing & QA", "description": "Complete testing before launch", "percent": 0},
        ],
    },
    {
        "name": "Mobile App Launch",
        "description": "Launch the mobile application on iOS and Android",
        "category": "Development",
        "tasks": [
            {
                "name": "Beta Testing",
                "children": [
                    {"name": "Internal testing", "percent": 100},
                    {"name": "External beta program", "percent": 100},
                ],
            },
            {
                "name": "App Store Submission",
                "percent": 50,
                "roadblocks": "Need updated screenshots for App Store",
                "ai_suggestions": "Consider using automated screenshot tools like Fastlane to speed up the process",
            },
            {"name": "Marketing Launch Prep", "percent": 80},
        ],
    },
    {
        "name": "Q1 Marketing Campaign",
        "description": "Integrated marketing campaign for product launch",
        "category": "Marketing",
        "tasks": [
            {"name": "Campaign Strategy", "percent": 100},
            {"name": "Content Creation", "percent": 40},
            {"name": "Social Media Setup", "percent": 20},
            {"name": "Paid Advertising", "percent": 0},
        ],
    },
    {
        "name": "Brand Guidelines Update",
        "description": "Refresh brand guidelines and create new style guide",
        "category": "Design",
        "tasks": [
            {"name": "Logo Variations", "percent": 100},
            {"name": "Typography Guidelines", "percent": 100},
            {"name": "Color Palette Documentation", "percent": 100},
            {
                "name": "Final Review & Export",
                "percent": 60,
                "ai_suggestions": "Consider creating multiple format exports (PDF, Figma, Sketch) for different team needs",
            },
        ],
    },
    {
        "name": "Engineering Hiring",
        "description": "Hire 3 senior engineers for the platform team",
        "category": "Operations",
        "roadblocks": "Limited candidate pool for specialized skills",
        "tasks": [
            {"name": "Job Posting & Outreach", "percent": 100},
            {"name": "Initial Screening", "percent": 70},
            {"name": "Technical Interviews", "percent": 20},
            {"name": "Final Interviews & Offers", "percent": 0},
        ],
    },
]


def _create_tasks(store: TrackerStore, project_id: str, definitions: list[dict]) -> int:
    """Create a task forest breadth-first. Returns the number created."""
    created = 0
    queue: list[tuple[str | None, list[dict]]] = [(None, definitions)]
    while queue:
        parent_id, siblings = queue.pop(0)
        for order, defn in enumerate(siblings):
            percent = defn.get("percent", 0)
            task = store.create_task(
                project_id=project_id,
                parent_task_id=parent_id,
                name=defn["name"],
                description=defn.get("description"),
                percent_complete=percent,
                is_completed=percent == 100,
                status=status_for_percent(percent),
                roadblocks=defn.get("roadblocks"),
                ai_suggestions=defn.get("ai_suggestions"),
                sort_order=order,
            )
            created += 1
            if defn.get("children"):
                queue.append((task.id, defn["children"]))
    return created


def seed_demo_data(store: TrackerStore, force: bool = False) -> SeedResult:
    """Insert the demo categories and projects into an empty database.

    Args:
        store: Store bound to the target session.
        force: Seed even if categories already exist.

    Returns:
        SeedResult with counts; ``skipped`` when data was already present.
    """
    result = SeedResult()
    if store.list_categories() and not force:
        logger.info("Demo data already present, skipping seed")
        result.skipped = True
        return result

    category_ids: dict[str, str] = {}
    for defn in CATEGORIES:
        category = store.create_category(name=defn["name"], color=defn["color"])
        category_ids[category.name] = category.id
        result.categories += 1

    aggregator = CompletionAggregator(store)
    for defn in PROJECTS:
        try:
            project = store.create_project(
                name=defn["name"],
                description=defn.get("description"),
                category_id=category_ids.get(defn.get("category", "")),
                roadblocks=defn.get("roadblocks"),
            )
            result.projects += 1
            result.tasks += _create_tasks(store, project.id, defn.get("tasks", []))
            aggregator.recalc_all(project.id)
        except Exception as e:
            logger.error("Seeding project %s failed: %s", defn["name"], e)
            result.errors.append(f"{defn['name']}: {e}")

    logger.info(
        "Seeded %d categories, %d projects, %d tasks",
        result.categories, result.projects, result.tasks,
    )
    return result
