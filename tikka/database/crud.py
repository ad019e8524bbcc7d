from typing import Optional, List, Dict, Any, Iterable

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from tikka.core.types import ContractConfig, Raffle, RaffleStatus, RandomnessSource, Ticket
from .models import (
    RaffleRecord, TicketRecord, EventRecord, TokenBalance, ContractConfigRecord, LedgerSequence
)

_RAFFLE_FIELDS = tuple(Raffle.model_fields)


# ==================== RAFFLE OPERATIONS ====================

def raffle_from_record(record: RaffleRecord) -> Raffle:
    """Convert a stored row into the domain record"""
    return Raffle.model_validate(
        {name: getattr(record, name) for name in _RAFFLE_FIELDS}
    )


async def get_raffle_record(
    session: AsyncSession,
    raffle_id: int,
    for_update: bool = False,
) -> Optional[RaffleRecord]:
    """Get raffle row by ID; ``for_update`` locks it until the transaction ends"""
    return await session.get(RaffleRecord, raffle_id, with_for_update=for_update)


async def save_raffle(session: AsyncSession, raffle: Raffle) -> RaffleRecord:
    """Insert or overwrite the raffle row"""
    values = raffle.model_dump()
    record = await session.get(RaffleRecord, raffle.id)
    if not record:
        record = RaffleRecord(**values)
        session.add(record)
    else:
        for name, value in values.items():
            setattr(record, name, value)

    await session.flush()
    return record


async def get_max_raffle_id(session: AsyncSession) -> int:
    """Highest allocated raffle ID (0 when empty)"""
    result = await session.execute(select(func.max(RaffleRecord.id)))
    return result.scalar() or 0


async def list_raffle_ids(
    session: AsyncSession,
    status: Optional[RaffleStatus] = None,
) -> List[int]:
    """List raffle IDs, optionally filtered by status"""
    stmt = select(RaffleRecord.id).order_by(RaffleRecord.id)
    if status is not None:
        stmt = stmt.where(RaffleRecord.status == status)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_pending_randomness_ids(session: AsyncSession) -> List[int]:
    """Raffles waiting for an oracle seed"""
    result = await session.execute(
        select(RaffleRecord.id)
        .where(RaffleRecord.status == RaffleStatus.DRAWING)
        .where(RaffleRecord.randomness_source == RandomnessSource.EXTERNAL)
        .where(RaffleRecord.random_seed.is_(None))
        .order_by(RaffleRecord.id)
    )
    return list(result.scalars().all())


# ==================== TICKET OPERATIONS ====================

async def get_tickets(session: AsyncSession, raffle_id: int) -> List[Ticket]:
    """Get all tickets for a raffle ordered by ticket ID"""
    result = await session.execute(
        select(TicketRecord)
        .where(TicketRecord.raffle_id == raffle_id)
        .order_by(TicketRecord.ticket_id)
    )
    return [
        Ticket(
            raffle_id=row.raffle_id,
            ticket_id=row.ticket_id,
            buyer=row.buyer,
            purchase_time=row.purchase_time,
            refunded=row.refunded,
        )
        for row in result.scalars().all()
    ]


async def add_tickets(session: AsyncSession, tickets: Iterable[Ticket]) -> None:
    """Insert newly sold tickets"""
    session.add_all([TicketRecord(**ticket.model_dump()) for ticket in tickets])
    await session.flush()


async def mark_tickets_refunded(
    session: AsyncSession,
    raffle_id: int,
    ticket_ids: List[int],
) -> int:
    """Flag tickets as refunded; returns number of rows changed"""
    result = await session.execute(
        update(TicketRecord)
        .where(TicketRecord.raffle_id == raffle_id)
        .where(TicketRecord.ticket_id.in_(ticket_ids))
        .where(TicketRecord.refunded == False)  # noqa: E712
        .values(refunded=True)
    )
    await session.flush()
    return result.rowcount


async def count_buyer_tickets(session: AsyncSession, raffle_id: int, buyer: str) -> int:
    """Number of tickets a buyer holds in a raffle"""
    result = await session.execute(
        select(func.count(TicketRecord.ticket_id)).where(
            TicketRecord.raffle_id == raffle_id,
            TicketRecord.buyer == buyer,
        )
    )
    return result.scalar() or 0


# ==================== CONTRACT CONFIG OPERATIONS ====================

async def get_contract_config(session: AsyncSession, for_update: bool = False) -> Optional[ContractConfig]:
    """Get contract configuration, if initialized"""
    record = await session.get(ContractConfigRecord, 1, with_for_update=for_update)
    if not record:
        return None
    return ContractConfig(
        admin=record.admin,
        pending_admin=record.pending_admin,
        protocol_fee_bp=record.protocol_fee_bp,
        treasury=record.treasury,
        oracle_address=record.oracle_address,
        paused=record.paused,
        accrued_fees={token: int(amount) for token, amount in (record.accrued_fees or {}).items()},
    )


async def save_contract_config(session: AsyncSession, config: ContractConfig) -> ContractConfigRecord:
    """Insert or overwrite the contract configuration row"""
    values = config.model_dump()
    values["accrued_fees"] = {token: str(amount) for token, amount in config.accrued_fees.items()}

    record = await session.get(ContractConfigRecord, 1)
    if not record:
        record = ContractConfigRecord(id=1, **values)
        session.add(record)
    else:
        for name, value in values.items():
            setattr(record, name, value)

    await session.flush()
    return record


# ==================== LEDGER SEQUENCE ====================

async def next_ledger_sequence(session: AsyncSession) -> int:
    """Advance the persisted ledger sequence and return the new value"""
    result = await session.execute(
        update(LedgerSequence)
        .where(LedgerSequence.id == 1)
        .values(value=LedgerSequence.value + 1)
        .returning(LedgerSequence.value)
        .execution_options(synchronize_session=False)
    )
    value = result.scalar()
    if value is None:
        session.add(LedgerSequence(id=1, value=1))
        await session.flush()
        value = 1
    return value


# ==================== BALANCE OPERATIONS ====================

async def get_balance(session: AsyncSession, token: str, account: str, for_update: bool = False) -> int:
    """Get token balance of an account (0 if never funded)"""
    record = await session.get(TokenBalance, (token, account), with_for_update=for_update)
    return record.balance if record else 0


async def set_balance(session: AsyncSession, token: str, account: str, balance: int) -> TokenBalance:
    """Set token balance of an account"""
    record = await session.get(TokenBalance, (token, account))
    if not record:
        record = TokenBalance(token=token, account=account, balance=balance)
        session.add(record)
    else:
        record.balance = balance

    await session.flush()
    return record


# ==================== EVENT LOG OPERATIONS ====================

async def append_event(
    session: AsyncSession,
    namespace: str,
    name: str,
    payload: Dict[str, Any],
) -> EventRecord:
    """Append one event to the log"""
    record = EventRecord(
        namespace=namespace,
        name=name,
        raffle_id=payload.get("raffle_id"),
        payload=payload,
    )
    session.add(record)
    await session.flush()
    return record


async def list_events(
    session: AsyncSession,
    raffle_id: Optional[int] = None,
    after_id: int = 0,
    limit: Optional[int] = None,
) -> List[EventRecord]:
    """Get events in publication order"""
    stmt = select(EventRecord).where(EventRecord.id > after_id).order_by(EventRecord.id)
    if raffle_id is not None:
        stmt = stmt.where(EventRecord.raffle_id == raffle_id)
    if limit:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())
