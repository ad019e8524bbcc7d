"""Post-transition invariant checks for raffle records"""
from typing import Dict, List, Optional

from .errors import InvariantViolation
from .types import (
    I128_MAX,
    TRANSITIONS,
    U32_MAX,
    Raffle,
    RaffleStatus,
    Ticket,
)

_WINNER_STATUSES = {RaffleStatus.FINALIZED, RaffleStatus.CLAIMED}


def _fail(raffle: Raffle, reason: str) -> None:
    raise InvariantViolation(f"raffle {raffle.id}: {reason}", raffle_id=raffle.id)


def check_transition(raffle: Raffle, old: RaffleStatus, new: RaffleStatus) -> None:
    """Reject any status move that is not an edge of the lifecycle graph"""
    if old != new and new not in TRANSITIONS[old]:
        _fail(raffle, f"illegal transition {old.value} -> {new.value}")


def check_raffle(raffle: Raffle, tickets: Optional[List[Ticket]] = None) -> None:
    """
    Verify the invariants that must hold after every transition

    Args:
        raffle: Record about to be written back
        tickets: All tickets of the raffle, if the caller has them loaded

    Raises:
        InvariantViolation: If any invariant is broken
    """
    if not 1 <= raffle.max_tickets <= U32_MAX:
        _fail(raffle, "max_tickets out of range")
    if raffle.ticket_price <= 0 or raffle.prize_amount <= 0:
        _fail(raffle, "non-positive amounts")
    if raffle.ticket_price > I128_MAX or raffle.prize_amount > I128_MAX:
        _fail(raffle, "amount exceeds i128")

    if raffle.tickets_sold > raffle.max_tickets:
        _fail(raffle, "tickets_sold exceeds max_tickets")

    if raffle.tickets_sold > 0 and not raffle.prize_deposited:
        _fail(raffle, "tickets sold without a deposited prize")
    if raffle.status in _WINNER_STATUSES and not raffle.prize_deposited:
        _fail(raffle, "finalized without a deposited prize")

    if (raffle.winner is not None) != (raffle.status in _WINNER_STATUSES):
        _fail(raffle, "winner must be set exactly when finalized or claimed")
    if raffle.winner is not None and not 1 <= (raffle.winning_ticket_id or 0) <= raffle.tickets_sold:
        _fail(raffle, "winning ticket outside sold range")

    if raffle.prize_claimed and raffle.status != RaffleStatus.CLAIMED:
        _fail(raffle, "prize claimed outside Claimed status")
    if raffle.prize_refunded and raffle.status != RaffleStatus.CANCELLED:
        _fail(raffle, "prize refunded outside Cancelled status")
    if raffle.tickets_refunded > raffle.tickets_sold:
        _fail(raffle, "more refunds than tickets")

    if raffle.escrow_balance < 0:
        _fail(raffle, "escrow balance negative")
    expected_paid = raffle.ticket_price * raffle.tickets_refunded
    if raffle.prize_claimed or raffle.prize_refunded:
        expected_paid += raffle.prize_amount
    if raffle.paid_out != expected_paid:
        _fail(raffle, f"paid_out {raffle.paid_out} != {expected_paid}")

    if tickets is not None:
        _check_tickets(raffle, tickets)


def _check_tickets(raffle: Raffle, tickets: List[Ticket]) -> None:
    if [t.ticket_id for t in tickets] != list(range(1, raffle.tickets_sold + 1)):
        _fail(raffle, "ticket ids are not contiguous from 1")

    if sum(1 for t in tickets if t.refunded) != raffle.tickets_refunded:
        _fail(raffle, "refunded ticket count mismatch")

    if not raffle.allow_multiple:
        held: Dict[str, int] = {}
        for ticket in tickets:
            held[ticket.buyer] = held.get(ticket.buyer, 0) + 1
            if held[ticket.buyer] > 1:
                _fail(raffle, f"{ticket.buyer} holds more than one ticket")

    if raffle.winner is not None:
        if tickets[raffle.winning_ticket_id - 1].buyer != raffle.winner:
            _fail(raffle, "winner does not own the winning ticket")
