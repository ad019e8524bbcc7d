"""
Value Transfer

Moves a positive quantity of a fungible token between two accounts. A
rejected move raises ``TransferFailed`` and leaves both balances unchanged.
"""
import copy
from typing import Dict, Protocol, Tuple

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from tikka.core.errors import TransferFailed
from tikka.core.types import I128_MAX
from tikka.database import crud


class ValueTransfer(Protocol):
    async def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        ...

    async def balance(self, token: str, account: str) -> int:
        ...


def _check_amount(token: str, sender: str, recipient: str, amount: int) -> None:
    if amount <= 0 or amount > I128_MAX:
        raise TransferFailed(
            f"Invalid transfer amount {amount}",
            token=token, sender=sender, recipient=recipient, amount=amount,
        )


class InMemoryLedger:
    """Token balances held in a dict; ``mint`` funds accounts for tests and demos"""

    def __init__(self):
        self._balances: Dict[Tuple[str, str], int] = {}

    async def balance(self, token: str, account: str) -> int:
        return self._balances.get((token, account), 0)

    async def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        _check_amount(token, sender, recipient, amount)
        available = self._balances.get((token, sender), 0)
        if available < amount:
            raise TransferFailed(
                f"Insufficient {token} balance for {sender}: {available} < {amount}",
                token=token, sender=sender, recipient=recipient, amount=amount,
            )
        self._balances[(token, sender)] = available - amount
        self._balances[(token, recipient)] = self._balances.get((token, recipient), 0) + amount

    def mint(self, token: str, account: str, amount: int) -> None:
        self._balances[(token, account)] = self._balances.get((token, account), 0) + amount

    def snapshot(self) -> Dict[Tuple[str, str], int]:
        return copy.copy(self._balances)

    def restore(self, snapshot: Dict[Tuple[str, str], int]) -> None:
        self._balances = snapshot


class SqlTokenLedger:
    """Balances in the ``token_balances`` table, sharing the caller's session"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def balance(self, token: str, account: str) -> int:
        return await crud.get_balance(self.session, token, account)

    async def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        _check_amount(token, sender, recipient, amount)
        # lock both rows in a fixed order so opposite transfers cannot deadlock
        locking = self.session.in_nested_transaction()
        balances = {
            account: await crud.get_balance(self.session, token, account, for_update=locking)
            for account in sorted({sender, recipient})
        }
        available = balances[sender]
        if available < amount:
            raise TransferFailed(
                f"Insufficient {token} balance for {sender}: {available} < {amount}",
                token=token, sender=sender, recipient=recipient, amount=amount,
            )
        if sender == recipient:
            return
        await crud.set_balance(self.session, token, sender, available - amount)
        await crud.set_balance(self.session, token, recipient, balances[recipient] + amount)
        logger.debug(f"Transferred {amount} {token}: {sender} -> {recipient}")

    async def mint(self, token: str, account: str, amount: int) -> None:
        current = await crud.get_balance(
            self.session, token, account, for_update=self.session.in_nested_transaction()
        )
        await crud.set_balance(self.session, token, account, current + amount)
        logger.info(f"Minted {amount} {token} to {account}")
