import sys
from typing import Optional

from loguru import logger

from tikka.config import settings
from tikka.database.init_db import check_db_health, init_database
from tikka.database.session import engine, get_session, run_migrations
from tikka.services.random_service import OracleRelay
from tikka.services.raffle_service import RaffleService
from tikka.services.unit_of_work import SqlUnitOfWork, sql_clock

# Global oracle relay instance
oracle_relay: Optional[OracleRelay] = None


def setup_logging():
    """Configure loguru sinks"""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=settings.LOG_LEVEL,
    )
    logger.add(
        "logs/tikka_{time:YYYY-MM-DD}.log",
        rotation="00:00",
        retention="30 days",
        level=settings.LOG_LEVEL,
    )


async def prepare_database():
    """Create or migrate the schema"""
    if settings.RUN_MIGRATIONS:
        await run_migrations()
        return

    is_healthy = await check_db_health(engine)
    if not is_healthy:
        logger.info("Database needs initialization...")
        await init_database(engine)
    else:
        logger.info("Database is already initialized and healthy")


async def bootstrap_contract():
    """Initialize the contract from settings on first start"""
    if not settings.ADMIN_ACCOUNT:
        logger.warning("ADMIN_ACCOUNT not configured, contract left uninitialized")
        return

    async with get_session() as session:
        service = RaffleService(SqlUnitOfWork(session), sql_clock(session))
        if await service.store.get_config() is not None:
            logger.info("Contract already initialized")
            return
        await service.initialize(
            settings.ADMIN_ACCOUNT,
            protocol_fee_bp=settings.PROTOCOL_FEE_BP,
            treasury=settings.TREASURY_ACCOUNT,
            oracle=settings.ORACLE_ACCOUNT,
        )


async def on_startup():
    """Actions on API startup"""
    global oracle_relay

    logger.info("Tikka is starting...")

    try:
        await prepare_database()
        logger.success("✅ Database ready")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        logger.error("API cannot start until database is initialized successfully")
        sys.exit(1)

    await bootstrap_contract()

    # Oracle relay answers External raffles when this node is the oracle
    if settings.ORACLE_ACCOUNT and settings.RANDOM_ORG_API_KEY:
        oracle_relay = OracleRelay(settings.ORACLE_ACCOUNT)
        await oracle_relay.start()
    else:
        logger.info("Oracle relay disabled (ORACLE_ACCOUNT or RANDOM_ORG_API_KEY not set)")

    logger.success("Tikka started successfully!")


async def on_shutdown():
    """Actions on API shutdown"""
    global oracle_relay

    logger.info("Tikka is shutting down...")

    if oracle_relay:
        try:
            await oracle_relay.stop()
        except Exception as e:
            logger.error(f"Error stopping oracle relay: {e}")
        oracle_relay = None

    await engine.dispose()
    logger.info("Tikka shutdown complete")


def main():
    """Run the API server"""
    import uvicorn

    setup_logging()
    logger.info("Starting Tikka raffle escrow API...")
    uvicorn.run("tikka.api.main:app", host="0.0.0.0", port=8000, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    try:
        main()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Tikka stopped by user")
