from .models import Base, RaffleRecord, TicketRecord, EventRecord, TokenBalance, ContractConfigRecord, LedgerSequence
from .session import get_session, engine
from .init_db import init_database, check_db_health

__all__ = [
    "Base",
    "RaffleRecord",
    "TicketRecord",
    "EventRecord",
    "TokenBalance",
    "ContractConfigRecord",
    "LedgerSequence",
    "get_session",
    "engine",
    "init_database",
    "check_db_health",
]
