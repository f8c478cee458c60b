#!/usr/bin/env python3
"""
Brand Tasks — Sample Data Generator
Generates realistic users, brands (with collaborators and history) and
tasks aligned with the current database models. Used for development and
demo environments.

Usage:
    python scripts/generate-sample-data.py
    python scripts/generate-sample-data.py --users 20 --brands 8 --tasks 60 --output sample-data.json
    python scripts/generate-sample-data.py --load   # insert into DATABASE_URL instead of writing JSON
"""

import json
import random
import uuid
import asyncio
import argparse
from datetime import datetime, timedelta, timezone
from typing import Any


# ── Configuration ───────────────────────────────────────────

FIRST_NAMES = ["Alex", "Jordan", "Taylor", "Morgan", "Casey", "Riley", "Quinn", "Avery", "Sage", "River",
               "Kai", "Rowan", "Phoenix", "Skyler", "Dakota", "Reese", "Finley", "Harper", "Emery", "Blake"]
LAST_NAMES = ["Chen", "Patel", "Kim", "Santos", "Müller", "Okafor", "Tanaka", "Johansson", "Silva", "Kowalski",
              "Nguyen", "Andersen", "Dubois", "Rossi", "Yamamoto", "Petrov", "Larsson", "Fernandez", "Ali", "Park"]
DOMAINS = ["example.com", "brandtasks.dev", "agency.test"]
COMPANIES = ["Northwind", "Contoso", "Globex", "Initech", "Umbrella"]
BRAND_WORDS = ["Aurora", "Summit", "Harbor", "Ember", "Nimbus", "Cascade", "Meridian", "Quartz", "Atlas", "Willow"]
CATEGORIES = ["Fashion", "Food", "Technology", "Health", "Travel", "Other"]
TASK_VERBS = ["Draft", "Review", "Publish", "Design", "Schedule", "Approve", "Shoot", "Edit"]
TASK_OBJECTS = ["campaign brief", "social calendar", "product photos", "launch email", "press kit",
                "landing page copy", "influencer list", "quarterly report"]
DEFAULT_PASSWORD = "password123"


class SampleDataGenerator:
    """Generates realistic sample data for Brand Tasks."""

    def __init__(self, seed: int = 42):
        random.seed(seed)
        self.seed = seed
        self.now = datetime.now(timezone.utc)

    def _uuid(self) -> str:
        return str(uuid.uuid4())

    def _past_date(self, max_days: int = 365) -> datetime:
        return self.now - timedelta(days=random.randint(0, max_days), hours=random.randint(0, 23))

    def _due_date(self) -> datetime:
        # Roughly a quarter of tasks land in the past
        return self.now + timedelta(days=random.randint(-10, 30), hours=random.randint(0, 23))

    @staticmethod
    def _actor(user: dict) -> dict:
        return {
            "user_id": user["id"],
            "user_name": user["name"],
            "user_email": user["email"],
            "user_role": user["role"],
        }

    # ── Generators ──────────────────────────────────────────

    def generate_user(self, index: int) -> dict:
        first = random.choice(FIRST_NAMES)
        last = random.choice(LAST_NAMES)
        return {
            "id": self._uuid(),
            "name": f"{first} {last}",
            "email": f"{first.lower()}.{last.lower()}{index}@{random.choice(DOMAINS)}",
            "role": "admin" if index == 0 else "user",
            "created_at": self._past_date(365),
        }

    def generate_brand(self, index: int, owner: dict, users: list) -> dict:
        name = f"{random.choice(BRAND_WORDS)} {index}"
        company = random.choice(COMPANIES)
        created_at = self._past_date(180)
        history = [{
            "id": self._uuid(),
            "action": "brand_created",
            "description": f"Brand created: {name}",
            **self._actor(owner),
            "timestamp": created_at.isoformat(),
            "metadata": {"name": name, "company": company},
        }]

        collaborators = []
        candidates = [u for u in users if u["id"] != owner["id"]]
        for invitee in random.sample(candidates, k=min(len(candidates), random.randint(0, 3))):
            status = random.choice(["pending", "accepted", "accepted", "declined"])
            invited_at = created_at + timedelta(days=random.randint(0, 10))
            collaborators.append({
                "id": self._uuid(),
                "user_id": invitee["id"] if status == "accepted" else None,
                "email": invitee["email"],
                "name": invitee["name"],
                "role": random.choice(["admin", "member", "member"]),
                "status": status,
                "invited_at": invited_at.isoformat(),
                "joined_at": (invited_at + timedelta(hours=6)).isoformat() if status == "accepted" else None,
                "invited_by": owner["email"],
            })
            history.append({
                "id": self._uuid(),
                "action": "collaborator_invited",
                "description": f"Invitation sent to {invitee['email']}",
                **self._actor(owner),
                "timestamp": invited_at.isoformat(),
                "metadata": {"email": invitee["email"]},
            })
            if status != "pending":
                history.append({
                    "id": self._uuid(),
                    "action": f"collaborator_{status}",
                    "description": f"{invitee['email']} {status} the invite",
                    **self._actor(invitee),
                    "timestamp": (invited_at + timedelta(hours=6)).isoformat(),
                    "metadata": {"email": invitee["email"]},
                })

        return {
            "id": self._uuid(),
            "name": name,
            "company": company,
            "description": f"{name} brand workspace for {company}",
            "category": random.choice(CATEGORIES),
            "website": f"https://{name.lower().replace(' ', '-')}.example.com",
            "logo": "",
            "status": random.choice(["active", "active", "active", "inactive", "archived"]),
            "owner_id": owner["id"],
            "collaborators": collaborators,
            "history": history,
            "created_at": created_at,
        }

    def generate_task(self, brand: dict, users: list) -> dict:
        by_id = {u["id"]: u for u in users}
        owner = by_id[brand["owner_id"]]
        members = [owner] + [by_id[c["user_id"]] for c in brand["collaborators"] if c["user_id"]]
        assignee = random.choice(members)
        status = random.choice(["pending", "in-progress", "completed"])
        return {
            "id": self._uuid(),
            "title": f"{random.choice(TASK_VERBS)} {random.choice(TASK_OBJECTS)}",
            "description": "",
            "status": status,
            "completed_approval": status == "completed" and random.random() > 0.5,
            "priority": random.choice(["high", "medium", "medium", "low"]),
            "task_type": "regular",
            "due_date": self._due_date(),
            "assigned_to": assignee["email"],
            "assigned_by": owner["email"],
            "brand_id": brand["id"],
            "brand": brand["name"],
            "company_name": brand["company"],
            "created_at": self._past_date(60),
        }

    # ── Main Generator ──────────────────────────────────────

    def generate_all(self, counts: dict[str, int] | None = None) -> dict[str, Any]:
        c = counts or {"users": 15, "brands": 6, "tasks": 40}

        users = [self.generate_user(i) for i in range(max(c["users"], 2))]
        brands = []
        for i in range(c["brands"]):
            brands.append(self.generate_brand(i, random.choice(users), users))
        tasks = [self.generate_task(random.choice(brands), users) for _ in range(c["tasks"])] if brands else []

        return {
            "generated_at": self.now.isoformat(),
            "generator": "Brand Tasks Sample Data Generator v1.0",
            "seed": self.seed,
            "default_password": DEFAULT_PASSWORD,
            "counts": {"users": len(users), "brands": len(brands), "tasks": len(tasks)},
            "data": {"users": users, "brands": brands, "tasks": tasks},
        }


# ── Loader ──────────────────────────────────────────────────

async def load_into_database(data: dict) -> None:
    """Insert generated records through the application's models."""
    from auth import AuthService
    from database import init_db, close_db, get_db_context
    from models import User, Brand, Task, UserRole, BrandStatus, TaskStatus, TaskPriority

    await init_db()
    password_hash = AuthService.hash_password(DEFAULT_PASSWORD)
    async with get_db_context() as db:
        for u in data["data"]["users"]:
            db.add(User(password_hash=password_hash, **{**u, "role": UserRole(u["role"])}))
        await db.flush()
        for b in data["data"]["brands"]:
            db.add(Brand(**{**b, "status": BrandStatus(b["status"])}))
        await db.flush()
        for t in data["data"]["tasks"]:
            db.add(Task(**{
                **t,
                "status": TaskStatus(t["status"]),
                "priority": TaskPriority(t["priority"]),
            }))
    await close_db()


# ── CLI ─────────────────────────────────────────────────────

def main():
    parser = argparse.ArgumentParser(description="Brand Tasks Sample Data Generator")
    parser.add_argument("--users", type=int, default=15, help="Number of users")
    parser.add_argument("--brands", type=int, default=6, help="Number of brands")
    parser.add_argument("--tasks", type=int, default=40, help="Number of tasks")
    parser.add_argument("--output", type=str, default="sample-data.json", help="Output file")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--load", action="store_true", help="Insert into DATABASE_URL instead of writing JSON")
    args = parser.parse_args()

    generator = SampleDataGenerator(seed=args.seed)
    data = generator.generate_all({"users": args.users, "brands": args.brands, "tasks": args.tasks})
    counts = data["counts"]

    if args.load:
        asyncio.run(load_into_database(data))
        print("Sample data loaded into the database")
    else:
        with open(args.output, "w") as f:
            json.dump(data, f, indent=2, default=str)
        print(f"Sample data generated: {args.output}")

    print(f"   Users: {counts['users']} (password: {DEFAULT_PASSWORD})")
    print(f"   Brands: {counts['brands']}")
    print(f"   Tasks: {counts['tasks']}")


if __name__ == "__main__":
    main()
