#!/usr/bin/env python3
"""
Database reset script

This script drops all existing tables, then re-creates them from scratch.
USE WITH CAUTION - this will delete all data!

Usage:
    python reset_database.py
"""

import asyncio
import sys
from loguru import logger

from tikka.database.session import engine
from tikka.database.init_db import drop_all, init_database


async def main():
    """Reset database by dropping everything and re-creating"""
    print("=" * 80)
    print("DATABASE RESET SCRIPT")
    print("=" * 80)
    print("\nWARNING: This will DELETE ALL DATA in the database!")
    print("This includes all raffles, tickets, balances, events and contract settings.\n")

    response = input("Are you sure you want to continue? (yes/no): ")

    if response.lower() not in ['yes', 'y']:
        print("\nOperation cancelled.")
        sys.exit(0)

    print("\nConfirm again by typing 'DELETE ALL DATA': ")
    confirm = input()

    if confirm != 'DELETE ALL DATA':
        print("\nOperation cancelled.")
        sys.exit(0)

    try:
        logger.info("Starting database reset...")

        print("\n[1/2] Dropping all tables...")
        await drop_all(engine)
        logger.success("✅ All tables dropped")

        print("[2/2] Re-creating database from scratch...")
        await init_database(engine)
        logger.success("✅ Database re-created successfully")

        print("\n" + "=" * 80)
        print("DATABASE RESET COMPLETE!")
        print("=" * 80)
        print("\nYou can now start the API with: python -m tikka.main\n")

    except Exception as e:
        logger.exception(f"Database reset failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
