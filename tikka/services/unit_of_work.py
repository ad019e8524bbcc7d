"""
Unit of work

Bundles the store, the value-transfer ledger and the event sink of one
operation. ``atomic()`` makes validation, transfers, writes and event
publication a single all-or-nothing step.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tikka.core.clock import SystemClock
from tikka.core.events import InMemoryEventLog
from tikka.database import crud
from .event_log import SqlEventLog
from .ledger import InMemoryLedger, SqlTokenLedger
from .store import InMemoryRaffleStore, SqlRaffleStore


class InMemoryUnitOfWork:
    """Snapshots every collaborator on entry and restores them on error"""

    def __init__(
        self,
        store: Optional[InMemoryRaffleStore] = None,
        ledger: Optional[InMemoryLedger] = None,
        sink: Optional[InMemoryEventLog] = None,
    ):
        self.store = store or InMemoryRaffleStore()
        self.ledger = ledger or InMemoryLedger()
        self.sink = sink or InMemoryEventLog()

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        saved = (self.store.snapshot(), self.ledger.snapshot(), self.sink.snapshot())
        try:
            yield
        except BaseException:
            self.store.restore(saved[0])
            self.ledger.restore(saved[1])
            self.sink.restore(saved[2])
            raise


class SqlUnitOfWork:
    """
    All three collaborators share one ``AsyncSession``

    ``atomic()`` opens a SAVEPOINT so a failed operation is rolled back even
    when the caller keeps using the session afterwards; the outer commit is
    left to ``get_session()``.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.store = SqlRaffleStore(session)
        self.ledger = SqlTokenLedger(session)
        self.sink = SqlEventLog(session)

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        async with self.session.begin_nested():
            yield


def sql_clock(session: AsyncSession) -> SystemClock:
    """System clock whose sequence is the ``ledger_sequence`` row, advanced in ``session``"""
    return SystemClock(lambda: crud.next_ledger_sequence(session))
