"""Raffle data model: statuses, records and fixed-width bounds"""
from enum import Enum as PyEnum
from typing import Dict, Optional

from pydantic import BaseModel, Field

U32_MAX = 2**32 - 1
U64_MAX = 2**64 - 1
I128_MAX = 2**127 - 1

BASIS_POINTS = 10000

Account = str


class RaffleStatus(PyEnum):
    PROPOSED = "proposed"
    ACTIVE = "active"
    DRAWING = "drawing"
    FINALIZED = "finalized"
    CLAIMED = "claimed"
    CANCELLED = "cancelled"


class RandomnessSource(PyEnum):
    INTERNAL = "internal"
    EXTERNAL = "external"


# Legal edges of the lifecycle graph (cancellation included)
TRANSITIONS = {
    RaffleStatus.PROPOSED: {RaffleStatus.ACTIVE, RaffleStatus.CANCELLED},
    RaffleStatus.ACTIVE: {RaffleStatus.DRAWING, RaffleStatus.CANCELLED},
    RaffleStatus.DRAWING: {RaffleStatus.FINALIZED},
    RaffleStatus.FINALIZED: {RaffleStatus.CLAIMED},
    RaffleStatus.CLAIMED: set(),
    RaffleStatus.CANCELLED: set(),
}


class PendingSeed(BaseModel):
    """Marker for a randomness request awaiting the oracle callback"""

    oracle: Account
    requested_at: int
    request_sequence: int


class Raffle(BaseModel):
    id: int
    creator: Account
    description: str
    end_time: int = 0
    max_tickets: int
    allow_multiple: bool = False
    ticket_price: int
    payment_token: str
    prize_amount: int
    randomness_source: RandomnessSource = RandomnessSource.INTERNAL
    protocol_fee_bp: int = 0

    tickets_sold: int = 0
    status: RaffleStatus = RaffleStatus.PROPOSED
    prize_deposited: bool = False
    prize_claimed: bool = False
    prize_refunded: bool = False
    tickets_refunded: int = 0
    paid_out: int = 0

    winner: Optional[Account] = None
    winning_ticket_id: Optional[int] = None
    draw_sequence: Optional[int] = None
    oracle_address: Optional[Account] = None
    pending_seed: Optional[PendingSeed] = None
    random_seed: Optional[int] = None

    created_at: int = 0
    finalized_at: Optional[int] = None

    @property
    def escrow_balance(self) -> int:
        """Funds this raffle holds in the contract account"""
        deposited = self.prize_amount if self.prize_deposited else 0
        return deposited + self.ticket_price * self.tickets_sold - self.paid_out

    def copy_for_update(self) -> "Raffle":
        return self.model_copy(deep=True)


class Ticket(BaseModel):
    raffle_id: int
    ticket_id: int
    buyer: Account
    purchase_time: int = 0
    refunded: bool = False


class ContractConfig(BaseModel):
    """Contract-wide admin settings shared by all raffles"""

    admin: Account
    pending_admin: Optional[Account] = None
    protocol_fee_bp: int = 0
    treasury: Optional[Account] = None
    oracle_address: Optional[Account] = None
    paused: bool = False
    accrued_fees: Dict[str, int] = Field(default_factory=dict)

    def copy_for_update(self) -> "ContractConfig":
        return self.model_copy(deep=True)
