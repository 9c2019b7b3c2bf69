#!/usr/bin/env python3
"""
Productitask: Demo Data Generator
Generates realistic users, projects, tasks, meetings, notes and tags for
development and demo environments.

Usage:
    python seed.py
    python seed.py --users 5 --tasks 20 --output demo-data.json
    python seed.py --users 2 --tasks 10 --apply     # insert into the configured storage

Every demo account uses the password ``password123``. Accounts whose email
already exists are skipped, so --apply can be re-run safely.
"""

import argparse
import asyncio
import json
import random
import sys
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from auth import AuthService, UserRegister
from config import Settings, load_settings
from entities import Services, build_services
from logging_system import LogCategory, build_logger
from models import DEFAULT_TAG_COLOR, ProjectStatus, TaskPriority, TaskStatus
from storage import build_storage

DEMO_PASSWORD = "password123"

FIRST_NAMES = ["Alex", "Jordan", "Taylor", "Morgan", "Casey", "Riley", "Quinn", "Avery", "Sage", "River"]
LAST_NAMES = ["Chen", "Patel", "Kim", "Santos", "Okafor", "Tanaka", "Silva", "Nguyen", "Rossi", "Park"]

PROJECTS = [
    ("Work Project", "Important work-related tasks and deadlines"),
    ("Personal Project", "Side project for learning new skills"),
    ("Home Renovation", "Planning and tracking home improvement tasks"),
    ("Fitness Plan", "Training schedule and nutrition goals"),
]

TASK_TITLES = [
    "Complete project proposal", "Research new technologies", "Buy paint supplies",
    "Review pull requests", "Book dentist appointment", "Update CV", "Plan sprint backlog",
    "Renew car insurance", "Write blog post", "Clean up email inbox", "Prepare quarterly report",
    "Call the plumber", "Read chapter 4", "Organise team lunch", "Back up laptop",
]

MEETINGS = [
    ("Client Presentation", "Present project proposal to the client", 60),
    ("Team Standup", "Daily team check-in", 15),
    ("One-on-one", "Weekly catch-up with manager", 30),
    ("Architecture Review", "Walk through the new service design", 90),
]

NOTES = [
    ("Project Ideas", "Brainstorming ideas for the next project:\n- Mobile app for productivity\n- Web dashboard for analytics"),
    ("Meeting Notes", "Key points from the last meeting:\n1. Deliver proposal by Friday\n2. Address budget concerns"),
    ("Reading List", "Designing Data-Intensive Applications\nThe Pragmatic Programmer"),
    ("Groceries", "Milk, eggs, coffee, spinach"),
]

TAGS = [
    ("Urgent", "#EF4444"), ("Work", "#3B82F6"), ("Personal", "#22C55E"),
    ("Errand", "#F59E0B"), ("Learning", "#8B5CF6"), ("Someday", DEFAULT_TAG_COLOR),
]


class DemoDataGenerator:
    """Generates per-user bundles of demo records."""

    def __init__(self, seed: int = 42, now: Optional[datetime] = None):
        self.random = random.Random(seed)
        self.seed = seed
        self.now = now or datetime.now(timezone.utc)

    def _offset(self, min_days: int, max_days: int) -> str:
        delta = timedelta(days=self.random.randint(min_days, max_days), hours=self.random.randint(0, 23))
        return (self.now + delta).isoformat()

    # ── Generators ──────────────────────────────────────────

    def generate_user(self, index: int) -> dict:
        first = self.random.choice(FIRST_NAMES)
        last = self.random.choice(LAST_NAMES)
        return {
            "email": f"{first.lower()}.{last.lower()}{index}@example.com",
            "name": f"{first} {last}",
            "password": DEMO_PASSWORD,
        }

    def generate_task(self, project_count: int, tag_count: int) -> dict:
        status = self.random.choice([s.value for s in TaskStatus])
        return {
            "title": self.random.choice(TASK_TITLES),
            "description": self.random.choice([None, "Follow up by end of week", "Needs input from the team"]),
            "status": status,
            "priority": self.random.choice([p.value for p in TaskPriority]),
            "due_date": self._offset(-5, 14) if self.random.random() > 0.2 else None,
            "project_index": self.random.randrange(project_count) if project_count and self.random.random() > 0.3 else None,
            "tag_indexes": sorted(self.random.sample(range(tag_count), k=self.random.randint(0, min(2, tag_count)))),
        }

    def generate_meeting(self, title: str, description: str, minutes: int) -> dict:
        start = datetime.fromisoformat(self._offset(-3, 10)).replace(minute=0, second=0, microsecond=0)
        return {
            "title": title,
            "description": description,
            "start_time": start.isoformat(),
            "end_time": (start + timedelta(minutes=minutes)).isoformat(),
        }

    def generate_bundle(self, index: int, tasks: int) -> dict:
        projects = [
            {"title": title, "description": desc, "status": ProjectStatus.ACTIVE.value}
            for title, desc in self.random.sample(PROJECTS, k=3)
        ]
        tags = [{"name": name, "color": color} for name, color in self.random.sample(TAGS, k=4)]
        return {
            "user": self.generate_user(index),
            "projects": projects,
            "tags": tags,
            "tasks": [self.generate_task(len(projects), len(tags)) for _ in range(tasks)],
            "meetings": [self.generate_meeting(*m) for m in self.random.sample(MEETINGS, k=2)],
            "notes": [{"title": t, "content": c} for t, c in self.random.sample(NOTES, k=2)],
        }

    # ── Main Generator ──────────────────────────────────────

    def generate_all(self, users: int = 2, tasks: int = 10) -> Dict[str, Any]:
        bundles = [self.generate_bundle(i, tasks) for i in range(users)]
        return {
            "generated_at": self.now.isoformat(),
            "seed": self.seed,
            "counts": {
                "users": len(bundles),
                "projects": sum(len(b["projects"]) for b in bundles),
                "tasks": sum(len(b["tasks"]) for b in bundles),
                "meetings": sum(len(b["meetings"]) for b in bundles),
                "notes": sum(len(b["notes"]) for b in bundles),
                "tags": sum(len(b["tags"]) for b in bundles),
            },
            "data": bundles,
        }


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


async def apply_demo_data(data: Dict[str, Any], services: Services, auth: AuthService) -> Dict[str, int]:
    """Insert generated bundles through the services. Returns how many users were created."""
    created = {"users": 0, "skipped": 0}
    for bundle in data["data"]:
        account = bundle["user"]
        if await services.users.find_one(email=account["email"].lower()):
            created["skipped"] += 1
            continue
        user = await auth.register_user(UserRegister(**account))
        owner_id = user["id"]

        project_ids: List[str] = []
        for project in bundle["projects"]:
            project_ids.append((await services.projects.create(owner_id, project))["id"])

        tag_ids: List[str] = []
        for tag in bundle["tags"]:
            tag_ids.append((await services.tags.create(owner_id, tag))["id"])

        for spec in bundle["tasks"]:
            index = spec["project_index"]
            task = await services.tasks.create(owner_id, {
                "title": spec["title"],
                "description": spec["description"],
                "status": spec["status"],
                "priority": spec["priority"],
                "due_date": _parse_time(spec["due_date"]),
                "project_id": project_ids[index] if index is not None else None,
            })
            for tag_index in spec["tag_indexes"]:
                await services.task_links.attach(task, tag_ids[tag_index])

        for meeting in bundle["meetings"]:
            await services.meetings.create(owner_id, {
                **meeting,
                "start_time": _parse_time(meeting["start_time"]),
                "end_time": _parse_time(meeting["end_time"]),
            })

        for note in bundle["notes"]:
            await services.notes.create(owner_id, note)

        created["users"] += 1
    return created


async def _apply(data: Dict[str, Any], settings: Settings) -> Dict[str, int]:
    logger = build_logger(settings)
    logger.setup()
    storage = build_storage(settings)
    await storage.init()
    try:
        services = build_services(storage, logger)
        result = await apply_demo_data(data, services, AuthService(settings, services, logger))
        logger.info("Demo data applied", category=LogCategory.BUSINESS, metadata=result)
        return result
    finally:
        await storage.close()
        logger.shutdown()


# ── CLI ─────────────────────────────────────────────────────

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Productitask Demo Data Generator")
    parser.add_argument("--users", type=int, default=2, help="Number of demo users")
    parser.add_argument("--tasks", type=int, default=10, help="Tasks per user")
    parser.add_argument("--output", type=str, default=None, help="Write JSON to this file")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--apply", action="store_true", help="Insert into the configured storage")
    args = parser.parse_args(argv)

    settings = load_settings() if args.apply else None
    if settings is not None and settings.resolved_backend == "memory":
        # The in-memory store is emptied when the process exits
        print("--apply needs the sql storage backend: set STORAGE_BACKEND=sql and DATABASE_URL", file=sys.stderr)
        return 2

    data = DemoDataGenerator(seed=args.seed).generate_all(users=args.users, tasks=args.tasks)

    if args.output:
        with open(args.output, "w") as f:
            json.dump(data, f, indent=2)
        print(f"Demo data written: {args.output}")
    elif not args.apply:
        print(json.dumps(data, indent=2))

    if args.apply:
        result = asyncio.run(_apply(data, settings))
        print(f"Users created: {result['users']} (skipped existing: {result['skipped']})")

    counts = data["counts"]
    if args.output or args.apply:
        for name, count in counts.items():
            print(f"   {name.title()}: {count}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
