from .errors import RaffleError
from .types import ContractConfig, Raffle, RaffleStatus, RandomnessSource, Ticket

__all__ = [
    "RaffleError",
    "ContractConfig",
    "Raffle",
    "RaffleStatus",
    "RandomnessSource",
    "Ticket",
]
