from .raffle_service import RaffleService
from .unit_of_work import InMemoryUnitOfWork, SqlUnitOfWork, sql_clock
from .indexer import RaffleIndexer

__all__ = [
    "RaffleService",
    "InMemoryUnitOfWork",
    "SqlUnitOfWork",
    "sql_clock",
    "RaffleIndexer",
]
