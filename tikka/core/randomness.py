"""
Winner selection

Internal draws mix public ledger data and are reproducible by anyone from
``(end_time, sequence, tickets_sold)``; they are not unpredictable and must
not be used where that matters. External draws reduce an oracle-supplied
seed. Both return a 1-based ticket id.
"""
import hashlib

from .errors import ZeroTickets
from .types import U32_MAX, U64_MAX


def internal_entropy(end_time: int, sequence: int, tickets_sold: int) -> int:
    """SHA-256 of the big-endian packed triple, as an unsigned integer"""
    data = (
        (end_time & U64_MAX).to_bytes(8, "big")
        + (sequence & U64_MAX).to_bytes(8, "big")
        + (tickets_sold & U32_MAX).to_bytes(4, "big")
    )
    return int.from_bytes(hashlib.sha256(data).digest(), "big")


def internal_winning_ticket(end_time: int, sequence: int, tickets_sold: int) -> int:
    """
    Pick the winning ticket id from ledger-derived entropy

    Args:
        end_time: Raffle end time (0 for raffles without a time limit)
        sequence: Ledger sequence number at draw time
        tickets_sold: Number of tickets in the draw

    Returns:
        Ticket id in ``[1, tickets_sold]``

    Raises:
        ZeroTickets: If no tickets were sold
    """
    if tickets_sold <= 0:
        raise ZeroTickets("cannot draw from zero tickets")
    return internal_entropy(end_time, sequence, tickets_sold) % tickets_sold + 1


def ticket_from_seed(seed: int, tickets_sold: int) -> int:
    """Reduce an oracle seed to a ticket id in ``[1, tickets_sold]``"""
    if tickets_sold <= 0:
        raise ZeroTickets("cannot draw from zero tickets")
    return seed % tickets_sold + 1
