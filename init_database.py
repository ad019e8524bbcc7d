#!/usr/bin/env python3
"""
Database initialization script

This script initializes the database without starting the API.
Useful for setting up a new database or checking database health.

Usage:
    python init_database.py
"""

import asyncio
import sys
from loguru import logger

from tikka.database.session import engine
from tikka.database.init_db import init_database, check_db_health
from tikka.main import bootstrap_contract


async def main():
    """Initialize database and contract configuration"""
    try:
        logger.remove()
        logger.add(sys.stderr, level="INFO")

        print("=" * 80)
        print("DATABASE INITIALIZATION")
        print("=" * 80)

        print("\n[1/2] Checking database health...")
        is_healthy = await check_db_health(engine)

        if is_healthy:
            print("✅ Database is already initialized and healthy!")
        else:
            print("⚠️  Database needs initialization")
            await init_database(engine)

        print("\n[2/2] Bootstrapping contract configuration...")
        await bootstrap_contract()

        print("\n" + "=" * 80)
        print("DATABASE INITIALIZATION COMPLETE!")
        print("=" * 80)
        print("\nYou can now start the API with: python -m tikka.main\n")

    except Exception as e:
        logger.exception(f"Database initialization failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
