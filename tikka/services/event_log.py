"""SQL-backed event sink (the in-memory one lives next to the emitter)"""
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tikka.core.events import EmittedEvent, Topic
from tikka.database import crud


class SqlEventLog:
    """Appends events to the ``events`` table in the operation's transaction"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def publish(self, topic: Topic, payload: Dict[str, Any]) -> None:
        namespace, name = topic
        await crud.append_event(self.session, namespace, name, payload)

    async def events(self, raffle_id: Optional[int] = None, after_id: int = 0) -> List[EmittedEvent]:
        records = await crud.list_events(self.session, raffle_id=raffle_id, after_id=after_id)
        return [
            EmittedEvent(
                topic=(record.namespace, record.name),
                payload=record.payload,
                seq=record.id,
                raffle_id=record.raffle_id,
            )
            for record in records
        ]
