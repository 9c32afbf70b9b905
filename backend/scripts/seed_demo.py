"""CLI script to seed demo users and free time slots into the backend DB.
Usage: python scripts/seed_demo.py [--users N] [--slots N]
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `minidoodle` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from minidoodle.database import engine, create_db_and_tables
from minidoodle.demo import DEMO_USERS, seed_demo_data


def main(users: int = 3, slots: int = 4):
    """Create the tables if needed and seed demo data.

    Results are printed to stdout for a quick CLI feedback loop.
    """
    create_db_and_tables()
    with Session(engine) as session:
        result = seed_demo_data(session, users=users, slots_per_user=slots)
    print(f"Created users: {result['users']}, slots: {result['slots']}, skipped slots: {result['skipped_slots']}")


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--users', type=int, default=3, choices=range(1, len(DEMO_USERS) + 1), help='Number of demo users')
    parser.add_argument('--slots', type=int, default=4, help='Hourly slots per user')
    args = parser.parse_args()
    main(users=args.users, slots=args.slots)
