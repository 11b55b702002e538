#!/usr/bin/env python3
"""
Seed script to create demo users and print their access tokens.
Requires DATABASE_URL; in-memory storage does not outlive this process.

Usage:
    python scripts/seed_users.py
"""
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database
from auth.jwt_handler import create_access_token
from models import Plan, utcnow
from services.usage_tracker import SqlUsageBackend, add_one_month


DEMO_USERS = [
    # (id, email, name, plan)
    ("demo-free", "free@example.com", "Demo Free User", Plan.FREE.value),
    ("demo-pro", "pro@example.com", "Demo Pro User", Plan.PRO.value),
]


def seed():
    """Create the demo users if they don't exist"""
    if not database.DATABASE_AVAILABLE:
        print("[ERROR] Database not available, set DATABASE_URL first")
        return 1

    database.init_db()
    backend = SqlUsageBackend(database.SessionLocal)

    print("\n[Users]")
    for user_id, email, name, plan in DEMO_USERS:
        expires_at = add_one_month(utcnow()) if plan == Plan.PRO.value else None
        backend.register_user(user_id, email=email, name=name, plan=plan, plan_expires_at=expires_at)
        state = backend.get_plan(user_id)
        print(f"  {email} ({state.plan})")
        print(f"    token: {create_access_token(user_id, email=email)}")

    print("\n[DONE] Seed complete")
    return 0


if __name__ == "__main__":
    sys.exit(seed())
