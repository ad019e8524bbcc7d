"""
Raffle Store

Durable mapping from raffle id to ``Raffle`` and from (raffle id, ticket id)
to buyer. Only the state machine writes it.
"""
import copy
from typing import Dict, List, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from tikka.core.errors import NotFound
from tikka.core.types import ContractConfig, Raffle, Ticket
from tikka.database import crud


class RaffleStore(Protocol):
    async def get(self, raffle_id: int) -> Raffle:
        ...

    async def put(self, raffle: Raffle) -> None:
        ...

    async def next_id(self) -> int:
        ...

    async def list_ids(self) -> List[int]:
        ...

    async def get_tickets(self, raffle_id: int) -> List[Ticket]:
        ...

    async def add_tickets(self, tickets: List[Ticket]) -> None:
        ...

    async def mark_refunded(self, raffle_id: int, ticket_ids: List[int]) -> None:
        ...

    async def count_tickets(self, raffle_id: int, buyer: str) -> int:
        ...

    async def get_config(self) -> Optional[ContractConfig]:
        ...

    async def put_config(self, config: ContractConfig) -> None:
        ...


class InMemoryRaffleStore:
    """Dict-backed store; every read returns a private copy"""

    def __init__(self):
        self._raffles: Dict[int, Raffle] = {}
        self._tickets: Dict[int, List[Ticket]] = {}
        self._config: Optional[ContractConfig] = None
        self._last_id = 0

    async def get(self, raffle_id: int) -> Raffle:
        raffle = self._raffles.get(raffle_id)
        if raffle is None:
            raise NotFound(f"Raffle {raffle_id} not found", raffle_id=raffle_id)
        return raffle.copy_for_update()

    async def put(self, raffle: Raffle) -> None:
        self._raffles[raffle.id] = raffle.copy_for_update()

    async def next_id(self) -> int:
        self._last_id += 1
        return self._last_id

    async def list_ids(self) -> List[int]:
        return sorted(self._raffles)

    async def get_tickets(self, raffle_id: int) -> List[Ticket]:
        return [t.model_copy() for t in self._tickets.get(raffle_id, [])]

    async def add_tickets(self, tickets: List[Ticket]) -> None:
        for ticket in tickets:
            self._tickets.setdefault(ticket.raffle_id, []).append(ticket.model_copy())

    async def mark_refunded(self, raffle_id: int, ticket_ids: List[int]) -> None:
        wanted = set(ticket_ids)
        self._tickets[raffle_id] = [
            t.model_copy(update={"refunded": True}) if t.ticket_id in wanted else t
            for t in self._tickets.get(raffle_id, [])
        ]

    async def count_tickets(self, raffle_id: int, buyer: str) -> int:
        return sum(1 for t in self._tickets.get(raffle_id, []) if t.buyer == buyer)

    async def get_config(self) -> Optional[ContractConfig]:
        return self._config.copy_for_update() if self._config else None

    async def put_config(self, config: ContractConfig) -> None:
        self._config = config.copy_for_update()

    def snapshot(self):
        return copy.deepcopy((self._raffles, self._tickets, self._config, self._last_id))

    def restore(self, snapshot) -> None:
        self._raffles, self._tickets, self._config, self._last_id = snapshot


class SqlRaffleStore:
    """Store backed by the ``raffles`` / ``tickets`` / ``contract_config`` tables"""

    def __init__(self, session: AsyncSession):
        self.session = session

    @property
    def _locking(self) -> bool:
        # rows read inside uow.atomic() stay locked until the outer commit
        return self.session.in_nested_transaction()

    async def get(self, raffle_id: int) -> Raffle:
        record = await crud.get_raffle_record(self.session, raffle_id, for_update=self._locking)
        if not record:
            raise NotFound(f"Raffle {raffle_id} not found", raffle_id=raffle_id)
        return crud.raffle_from_record(record)

    async def put(self, raffle: Raffle) -> None:
        await crud.save_raffle(self.session, raffle)

    async def next_id(self) -> int:
        # Raffles are never deleted, so max + 1 is never reused
        return await crud.get_max_raffle_id(self.session) + 1

    async def list_ids(self) -> List[int]:
        return await crud.list_raffle_ids(self.session)

    async def get_tickets(self, raffle_id: int) -> List[Ticket]:
        return await crud.get_tickets(self.session, raffle_id)

    async def add_tickets(self, tickets: List[Ticket]) -> None:
        await crud.add_tickets(self.session, tickets)

    async def mark_refunded(self, raffle_id: int, ticket_ids: List[int]) -> None:
        await crud.mark_tickets_refunded(self.session, raffle_id, ticket_ids)

    async def count_tickets(self, raffle_id: int, buyer: str) -> int:
        return await crud.count_buyer_tickets(self.session, raffle_id, buyer)

    async def get_config(self) -> Optional[ContractConfig]:
        return await crud.get_contract_config(self.session, for_update=self._locking)

    async def put_config(self, config: ContractConfig) -> None:
        await crud.save_contract_config(self.session, config)
