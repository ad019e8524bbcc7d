"""Ledger clock sources: timestamp and sequence number, read once per operation"""
import time
from typing import Awaitable, Callable, Protocol


class LedgerClock(Protocol):
    def timestamp(self) -> int:
        ...

    async def sequence(self) -> int:
        ...


class SystemClock:
    """
    Wall-clock seconds plus a sequence taken from ``next_sequence``

    The sequence has to outlive the process and be shared by every clock
    writing to the same ledger, so it is always read from persisted state.
    """

    def __init__(self, next_sequence: Callable[[], Awaitable[int]]):
        self._next_sequence = next_sequence

    def timestamp(self) -> int:
        return int(time.time())

    async def sequence(self) -> int:
        return await self._next_sequence()


class ManualClock:
    """Clock driven explicitly by the caller (tests, replays)"""

    def __init__(self, now: int = 0, sequence: int = 1):
        self.now = now
        self.seq = sequence

    def timestamp(self) -> int:
        return self.now

    async def sequence(self) -> int:
        return self.seq

    def advance(self, seconds: int, ledgers: int = 1) -> None:
        self.now += seconds
        self.seq += ledgers
