#!/usr/bin/env python3
"""Seed demo categories, projects and tasks into the database.

Usage:
    cd backend
    python -m scripts.seed_demo_data [--force] [--database-url URL]
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

BACKEND_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(BACKEND_DIR))

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Seed TaskPilot demo data")
    parser.add_argument("--force", action="store_true", help="Seed even if data already exists")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    if args.database_url:
        os.environ["DATABASE_URL"] = args.database_url
    else:
        # sqlite:///data/taskpilot.db resolves relative to backend/
        os.chdir(BACKEND_DIR)

    from sqlmodel import Session

    from taskpilot.db.database import create_db_and_tables, engine
    from taskpilot.logging_setup import configure_logging
    from taskpilot.seed import seed_demo_data
    from taskpilot.storage.store import TrackerStore

    configure_logging(args.log_level)
    create_db_and_tables()

    with Session(engine) as session:
        result = seed_demo_data(TrackerStore(session), force=args.force)

    if result.skipped:
        logger.info("Nothing to do: database already has data (use --force to seed anyway)")
    for error in result.errors:
        logger.error("  %s", error)
    return 1 if result.errors else 0


if __name__ == "__main__":
    sys.exit(main())
