#!/usr/bin/env python3
"""
Create the SafeHER stories schema and tables.

Creates the ``safeher`` schema (if missing) and the ``stories`` and
``story_reactions`` tables from the ORM models.

Usage:
    python scripts/init_db.py            # Create missing tables
    python scripts/init_db.py --drop     # Drop and recreate (destroys data)

Environment Variables:
    DATABASE_URL or DATABASE_HOST/PORT/USER/PASSWORD/NAME
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Allow imports from parent directory
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import text

from libs.db import engine
from models.story import SCHEMA, Base


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create SafeHER database tables")
    parser.add_argument(
        "--drop",
        action="store_true",
        help="Drop existing story tables before creating them",
    )
    return parser.parse_args()


async def init_db(drop: bool = False) -> None:
    async with engine.begin() as conn:
        await conn.execute(text(f"CREATE SCHEMA IF NOT EXISTS {SCHEMA}"))
        if drop:
            print(f"Dropping tables in schema '{SCHEMA}'")
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    for table in Base.metadata.sorted_tables:
        print(f"  ✓ {table.fullname}")
    await engine.dispose()


def main() -> int:
    args = parse_args()
    asyncio.run(init_db(drop=args.drop))
    print("Database initialised")
    return 0


if __name__ == "__main__":
    sys.exit(main())
