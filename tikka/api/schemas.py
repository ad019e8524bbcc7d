from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from tikka.core.types import (
    I128_MAX, U32_MAX, U64_MAX, BASIS_POINTS, PendingSeed, Raffle, RaffleStatus, RandomnessSource
)


class CreateRaffleRequest(BaseModel):
    description: str = ""
    end_time: int = Field(0, ge=0, le=U64_MAX)
    max_tickets: int = Field(..., gt=0, le=U32_MAX)
    allow_multiple: bool = False
    ticket_price: int = Field(..., gt=0, le=I128_MAX)
    payment_token: str = Field(..., min_length=1, max_length=128)
    prize_amount: int = Field(..., gt=0, le=I128_MAX)
    randomness_source: RandomnessSource = RandomnessSource.INTERNAL


class CreateRaffleResponse(BaseModel):
    raffle_id: int


class BuyTicketsRequest(BaseModel):
    quantity: int = Field(1, gt=0, le=U32_MAX)


class BuyTicketsResponse(BaseModel):
    ticket_ids: List[int]


class ProvideRandomnessRequest(BaseModel):
    seed: int = Field(..., ge=0, le=U64_MAX)


class CancelRaffleRequest(BaseModel):
    reason: str = ""


class WinnerResponse(BaseModel):
    winner: Optional[str] = None


class AmountResponse(BaseModel):
    amount: int


class RaffleResponse(BaseModel):
    id: int
    creator: str
    description: str
    end_time: int
    max_tickets: int
    allow_multiple: bool
    ticket_price: int
    payment_token: str
    prize_amount: int
    randomness_source: RandomnessSource
    protocol_fee_bp: int
    tickets_sold: int
    status: RaffleStatus
    prize_deposited: bool
    prize_claimed: bool
    prize_refunded: bool
    tickets_refunded: int
    winner: Optional[str] = None
    winning_ticket_id: Optional[int] = None
    oracle_address: Optional[str] = None
    pending_seed: Optional[PendingSeed] = None
    random_seed: Optional[int] = None
    created_at: int
    finalized_at: Optional[int] = None
    escrow_balance: int

    @classmethod
    def from_raffle(cls, raffle: Raffle) -> "RaffleResponse":
        return cls(**raffle.model_dump(), escrow_balance=raffle.escrow_balance)


class TicketsResponse(BaseModel):
    raffle_id: int
    buyers: List[str]


class EventResponse(BaseModel):
    seq: int
    namespace: str
    name: str
    raffle_id: Optional[int] = None
    payload: Dict[str, Any]


class InitializeRequest(BaseModel):
    protocol_fee_bp: int = Field(0, ge=0, le=BASIS_POINTS)
    treasury: Optional[str] = None
    oracle: Optional[str] = None


class OracleRequest(BaseModel):
    oracle: str = Field(..., min_length=1)


class FeeRequest(BaseModel):
    fee_bp: int = Field(..., ge=0, le=BASIS_POINTS)


class TreasuryRequest(BaseModel):
    treasury: str = Field(..., min_length=1)


class WithdrawFeesRequest(BaseModel):
    token: str = Field(..., min_length=1)
    recipient: str = Field(..., min_length=1)


class ProposeAdminRequest(BaseModel):
    new_admin: str = Field(..., min_length=1)


class ConfigResponse(BaseModel):
    admin: str
    pending_admin: Optional[str] = None
    protocol_fee_bp: int
    treasury: Optional[str] = None
    oracle_address: Optional[str] = None
    paused: bool
    accrued_fees: Dict[str, int]


class ErrorResponse(BaseModel):
    kind: str
    detail: str
