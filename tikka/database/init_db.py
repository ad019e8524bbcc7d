"""
Database initialization module

Creates all tables from the SQLAlchemy models without running migrations,
and checks that an existing database has the expected schema.
"""

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine
from loguru import logger

from .models import Base

REQUIRED_TABLES = ("raffles", "tickets", "events", "token_balances", "contract_config", "ledger_sequence")


async def init_database(engine: AsyncEngine):
    """
    Initialize database from scratch

    Idempotent: existing tables are left untouched.

    Args:
        engine: SQLAlchemy async engine
    """
    try:
        logger.info("Initializing database...")

        async with engine.begin() as conn:
            logger.info("Creating database tables...")
            await conn.run_sync(Base.metadata.create_all)
            logger.info("✅ All tables created successfully")

        logger.success("Database initialization completed successfully!")
        return True

    except Exception as e:
        logger.exception(f"Database initialization failed: {e}")
        raise


async def drop_all(engine: AsyncEngine):
    """
    Drop all tables (USE WITH CAUTION!)

    This is useful for development/testing to get a clean slate
    """
    async with engine.begin() as conn:
        logger.warning("Dropping all tables...")
        await conn.run_sync(Base.metadata.drop_all)
        logger.warning("All tables dropped!")


async def check_db_health(engine: AsyncEngine) -> bool:
    """
    Check if database is healthy and properly initialized

    Returns True if all required tables exist
    """
    try:
        async with engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))

        missing = [name for name in REQUIRED_TABLES if name not in tables]
        if missing:
            logger.warning(f"Missing tables: {', '.join(missing)}")
            return False

        logger.debug("Database health check passed")
        return True

    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False
