"""Shared fixtures: in-memory service, sqlite-backed sessions and funded accounts."""
from contextlib import asynccontextmanager

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tikka.core.clock import ManualClock
from tikka.database.init_db import init_database
from tikka.database.session import enable_sqlite_savepoints
from tikka.services.raffle_service import RaffleService
from tikka.services.unit_of_work import InMemoryUnitOfWork

CONTRACT = "tikka:escrow"
TOKEN = "USDC"
ADMIN = "admin"
TREASURY = "treasury"
ORACLE = "oracle"
CREATOR = "alice"
BUYERS = ("bob", "carol", "dave")
FUNDING = 10_000

START = 1_700_000_000
END = START + 3600


def raffle_params(**overrides):
    params = dict(
        creator=CREATOR,
        description="Weekly draw",
        end_time=END,
        max_tickets=10,
        ticket_price=10,
        payment_token=TOKEN,
        prize_amount=100,
    )
    params.update(overrides)
    return params


def names(events):
    return [e.name for e in events]


@pytest.fixture
def clock():
    return ManualClock(now=START, sequence=100)


@pytest.fixture
def uow():
    uow = InMemoryUnitOfWork()
    for account in (CREATOR,) + BUYERS:
        uow.ledger.mint(TOKEN, account, FUNDING)
    return uow


@pytest.fixture
async def service(uow, clock):
    service = RaffleService(uow, clock, contract_account=CONTRACT, namespace="tikka")
    await service.initialize(ADMIN, protocol_fee_bp=250, treasury=TREASURY, oracle=ORACLE)
    return service


@pytest.fixture
def make_raffle(service):
    """Create a raffle and, unless told otherwise, deposit its prize"""

    async def _make(deposit=True, **overrides):
        params = raffle_params(**overrides)
        raffle_id = await service.create(**params)
        if deposit:
            await service.deposit_prize(raffle_id, params["creator"])
        return raffle_id

    return _make


@pytest.fixture
def assert_escrow_consistent(service, uow):
    """Contract balance equals the sum of raffle escrows plus accrued fees"""

    async def _check(token=TOKEN):
        raffles = await service.list_raffles()
        config = await service.get_config()
        expected = sum(r.escrow_balance for r in raffles if r.payment_token == token)
        expected += config.accrued_fees.get(token, 0)
        assert await uow.ledger.balance(token, CONTRACT) == expected

    return _check


# ==================== SQL FIXTURES ====================

@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    enable_sqlite_savepoints(engine)
    await init_database(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest.fixture
def get_test_session(session_factory):
    """Drop-in replacement for ``tikka.database.session.get_session``"""

    @asynccontextmanager
    async def _get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return _get_session
