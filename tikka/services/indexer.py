"""
Event-sourced raffle view

Rebuilds raffles and their tickets from the published event log alone, the
way an off-chain indexer would. The rebuilt records match what the store
holds field for field.
"""
from typing import Dict, Iterable, List

from loguru import logger

from tikka.core import events as ev
from tikka.core.events import EmittedEvent, RaffleEvent
from tikka.core.types import PendingSeed, Raffle, Ticket


class RaffleIndexer:
    def __init__(self, namespace: str = ev.DEFAULT_NAMESPACE):
        self.namespace = namespace
        self.raffles: Dict[int, Raffle] = {}
        self.tickets: Dict[int, List[Ticket]] = {}
        self.last_seq = 0

    def replay(self, emitted: Iterable[EmittedEvent]) -> "RaffleIndexer":
        for item in emitted:
            self.apply(item)
        return self

    def apply(self, item: EmittedEvent) -> None:
        """Fold one published event into the view; foreign namespaces are ignored"""
        namespace, _ = item.topic
        if namespace != self.namespace:
            return
        self.last_seq = max(self.last_seq, item.seq)

        event = item.decode()
        if isinstance(event, ev.RaffleCreated):
            self._created(event)
            return

        raffle_id = getattr(event, "raffle_id", None)
        if raffle_id is None:
            return
        raffle = self.raffles.get(raffle_id)
        if raffle is None:
            logger.warning(f"Event {item.name} for unknown raffle {raffle_id} skipped")
            return
        self._fold(raffle, event)

    def _created(self, event: ev.RaffleCreated) -> None:
        self.raffles[event.raffle_id] = Raffle(
            id=event.raffle_id,
            creator=event.creator,
            description=event.description,
            end_time=event.end_time,
            max_tickets=event.max_tickets,
            allow_multiple=event.allow_multiple,
            ticket_price=event.ticket_price,
            payment_token=event.payment_token,
            prize_amount=event.prize_amount,
            randomness_source=event.randomness_source,
            protocol_fee_bp=event.protocol_fee_bp,
            created_at=event.timestamp,
        )
        self.tickets[event.raffle_id] = []

    def _fold(self, raffle: Raffle, event: RaffleEvent) -> None:
        if isinstance(event, ev.StatusChanged):
            raffle.status = event.new_status
        elif isinstance(event, ev.PrizeDeposited):
            raffle.prize_deposited = True
        elif isinstance(event, ev.TicketPurchased):
            raffle.tickets_sold += event.quantity
            self.tickets[raffle.id].extend(
                Ticket(raffle_id=raffle.id, ticket_id=ticket_id, buyer=event.buyer, purchase_time=event.timestamp)
                for ticket_id in event.ticket_ids
            )
        elif isinstance(event, ev.RandomnessRequested):
            raffle.oracle_address = event.oracle
            raffle.pending_seed = PendingSeed(
                oracle=event.oracle,
                requested_at=event.timestamp,
                request_sequence=event.request_sequence,
            )
        elif isinstance(event, ev.RandomnessReceived):
            raffle.random_seed = event.seed
            raffle.pending_seed = None
        elif isinstance(event, ev.RaffleFinalized):
            raffle.winner = event.winner
            raffle.winning_ticket_id = event.winning_ticket_id
            raffle.finalized_at = event.finalized_at
            raffle.draw_sequence = event.draw_sequence
        elif isinstance(event, ev.RaffleCancelled):
            if event.prize_returned:
                raffle.prize_refunded = True
                raffle.paid_out += event.prize_returned
        elif isinstance(event, ev.TicketRefunded):
            raffle.tickets_refunded += 1
            raffle.paid_out += event.amount
            for ticket in self.tickets[raffle.id]:
                if ticket.ticket_id == event.ticket_id:
                    ticket.refunded = True
        elif isinstance(event, ev.PrizeClaimed):
            raffle.prize_claimed = True
            raffle.paid_out += event.gross_amount

    def buyers(self, raffle_id: int) -> List[str]:
        return [t.buyer for t in self.tickets.get(raffle_id, [])]
