import hashlib
import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from tikka.config import settings
from tikka.database.session import get_db
from tikka.services.raffle_service import RaffleService
from tikka.services.unit_of_work import SqlUnitOfWork, sql_clock


def _secret_key(secret: Optional[str] = None) -> bytes:
    return hmac.new(
        "TikkaAccount".encode(),
        (secret or settings.API_SHARED_SECRET).encode(),
        hashlib.sha256
    ).digest()


def sign_account(account: str, secret: Optional[str] = None) -> str:
    """HMAC-SHA256 signature a client sends along with its account id"""
    return hmac.new(_secret_key(secret), account.encode(), hashlib.sha256).hexdigest()


def verify_account(credentials: str) -> str:
    """
    Verify ``<account>:<hmac>`` credentials and return the account

    The account id may itself contain colons; the signature is everything
    after the last one.
    """
    account, _, received_hash = credentials.rpartition(":")
    if not account or not received_hash:
        raise HTTPException(status_code=401, detail="Malformed account credentials")

    if not hmac.compare_digest(sign_account(account), received_hash):
        raise HTTPException(status_code=401, detail="Invalid account signature")

    return account


async def get_current_account(authorization: str = Header(...)) -> str:
    """
    Extract and verify caller account from Authorization header
    Header format: "acct <account>:<hmac>"
    """
    if not authorization.startswith("acct "):
        raise HTTPException(
            status_code=401,
            detail="Invalid authorization header format"
        )

    return verify_account(authorization[5:])


def get_clock(db: AsyncSession = Depends(get_db)):
    return sql_clock(db)


async def get_raffle_service(
    db: AsyncSession = Depends(get_db),
    ledger_clock=Depends(get_clock),
) -> RaffleService:
    return RaffleService(SqlUnitOfWork(db), ledger_clock)
