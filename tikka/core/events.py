"""
Event catalog and emitter

Every event is published under a two-part topic ``(namespace, event_name)``
where ``event_name`` is the snake-case name of the event class. Payloads are
JSON-safe dicts that decode back into the same typed event, so an indexer can
rebuild raffle state from the log alone.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple, Type

from loguru import logger
from pydantic import BaseModel, ConfigDict

from .types import Account, RaffleStatus, RandomnessSource

DEFAULT_NAMESPACE = "tikka"

Topic = Tuple[str, str]


class RaffleEvent(BaseModel):
    model_config = ConfigDict(frozen=True)


# ==================== LIFECYCLE EVENTS ====================

class RaffleCreated(RaffleEvent):
    raffle_id: int
    creator: Account
    description: str
    end_time: int
    max_tickets: int
    allow_multiple: bool
    ticket_price: int
    payment_token: str
    prize_amount: int
    randomness_source: RandomnessSource
    protocol_fee_bp: int
    timestamp: int


class PrizeDeposited(RaffleEvent):
    raffle_id: int
    creator: Account
    amount: int
    token: str
    timestamp: int


class TicketPurchased(RaffleEvent):
    raffle_id: int
    buyer: Account
    ticket_ids: List[int]
    quantity: int
    total_paid: int
    timestamp: int


class DrawTriggered(RaffleEvent):
    raffle_id: int
    triggered_by: Account
    total_tickets_sold: int
    timestamp: int


class RandomnessRequested(RaffleEvent):
    raffle_id: int
    oracle: Account
    request_sequence: int
    timestamp: int


class RandomnessReceived(RaffleEvent):
    raffle_id: int
    oracle: Account
    seed: int
    timestamp: int


class RaffleFinalized(RaffleEvent):
    raffle_id: int
    winner: Account
    winning_ticket_id: int
    total_tickets_sold: int
    randomness_source: RandomnessSource
    finalized_at: int
    # ledger sequence the Internal draw hashed; None for External draws
    draw_sequence: Optional[int] = None


class RaffleCancelled(RaffleEvent):
    raffle_id: int
    creator: Account
    reason: str
    tickets_sold: int
    prize_returned: int
    timestamp: int


class TicketRefunded(RaffleEvent):
    raffle_id: int
    buyer: Account
    ticket_id: int
    amount: int
    timestamp: int


class PrizeClaimed(RaffleEvent):
    raffle_id: int
    winner: Account
    gross_amount: int
    net_amount: int
    platform_fee: int
    treasury: Optional[Account] = None
    claimed_at: int


class StatusChanged(RaffleEvent):
    raffle_id: int
    old_status: RaffleStatus
    new_status: RaffleStatus
    timestamp: int


# ==================== ADMIN EVENTS ====================

class OracleAddressUpdated(RaffleEvent):
    old_oracle: Optional[Account] = None
    new_oracle: Account
    updated_by: Account
    timestamp: int


class FeeUpdated(RaffleEvent):
    old_fee_bp: int
    new_fee_bp: int
    updated_by: Account
    timestamp: int


class TreasuryUpdated(RaffleEvent):
    old_treasury: Optional[Account] = None
    new_treasury: Account
    updated_by: Account
    timestamp: int


class FeesWithdrawn(RaffleEvent):
    recipient: Account
    amount: int
    token: str
    timestamp: int


class ContractPaused(RaffleEvent):
    paused_by: Account
    timestamp: int


class ContractUnpaused(RaffleEvent):
    unpaused_by: Account
    timestamp: int


class AdminTransferProposed(RaffleEvent):
    current_admin: Account
    proposed_admin: Account
    timestamp: int


class AdminTransferAccepted(RaffleEvent):
    old_admin: Account
    new_admin: Account
    timestamp: int


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


EVENT_TYPES: Dict[str, Type[RaffleEvent]] = {
    _snake_case(cls.__name__): cls
    for cls in (
        RaffleCreated,
        PrizeDeposited,
        TicketPurchased,
        DrawTriggered,
        RandomnessRequested,
        RandomnessReceived,
        RaffleFinalized,
        RaffleCancelled,
        TicketRefunded,
        PrizeClaimed,
        StatusChanged,
        OracleAddressUpdated,
        FeeUpdated,
        TreasuryUpdated,
        FeesWithdrawn,
        ContractPaused,
        ContractUnpaused,
        AdminTransferProposed,
        AdminTransferAccepted,
    )
}


def event_name(event: RaffleEvent) -> str:
    return _snake_case(type(event).__name__)


def encode_payload(event: RaffleEvent) -> Dict[str, Any]:
    """Encode an event into a JSON-safe payload dict"""
    return event.model_dump(mode="json")


def decode_event(name: str, payload: Dict[str, Any]) -> RaffleEvent:
    """
    Decode a published payload back into its typed event

    Raises:
        KeyError: If ``name`` is not part of the catalog
    """
    return EVENT_TYPES[name].model_validate(payload)


@dataclass
class EmittedEvent:
    """One entry of the event log as an indexer sees it"""

    topic: Topic
    payload: Dict[str, Any]
    seq: int = 0
    raffle_id: Optional[int] = field(default=None)

    @property
    def name(self) -> str:
        return self.topic[1]

    def decode(self) -> RaffleEvent:
        return decode_event(self.name, self.payload)


class EventSink(Protocol):
    async def publish(self, topic: Topic, payload: Dict[str, Any]) -> None:
        ...

    async def events(self, raffle_id: Optional[int] = None, after_id: int = 0) -> List[EmittedEvent]:
        ...


class InMemoryEventLog:
    """Append-only in-memory event sink"""

    def __init__(self):
        self._events: List[EmittedEvent] = []

    async def publish(self, topic: Topic, payload: Dict[str, Any]) -> None:
        self._events.append(
            EmittedEvent(
                topic=topic,
                payload=payload,
                seq=len(self._events) + 1,
                raffle_id=payload.get("raffle_id"),
            )
        )

    async def events(self, raffle_id: Optional[int] = None, after_id: int = 0) -> List[EmittedEvent]:
        return [
            e for e in self._events[after_id:]
            if raffle_id is None or e.raffle_id == raffle_id
        ]

    def snapshot(self) -> int:
        return len(self._events)

    def restore(self, snapshot: int) -> None:
        del self._events[snapshot:]


class EventEmitter:
    """Publishes catalog events; publish failures propagate to the caller"""

    def __init__(self, sink: EventSink, namespace: str = DEFAULT_NAMESPACE):
        self.sink = sink
        self.namespace = namespace

    async def emit(self, event: RaffleEvent) -> None:
        name = event_name(event)
        await self.sink.publish((self.namespace, name), encode_payload(event))
        logger.debug(f"Published {self.namespace}:{name}")

    async def emit_transition(
        self,
        event: RaffleEvent,
        raffle_id: int,
        old_status: RaffleStatus,
        new_status: RaffleStatus,
        timestamp: int,
    ) -> None:
        """Publish the primary event followed by its ``status_changed`` companion"""
        await self.emit(event)
        await self.emit(
            StatusChanged(
                raffle_id=raffle_id,
                old_status=old_status,
                new_status=new_status,
                timestamp=timestamp,
            )
        )
