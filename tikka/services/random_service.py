import asyncio
import base64
import json
from typing import Any, Callable, Dict, Optional
from urllib.parse import quote

import requests
from loguru import logger

from tikka.config import settings
from tikka.core.clock import LedgerClock
from tikka.core.errors import RaffleError
from tikka.core.types import U64_MAX
from tikka.database import crud
from tikka.database.session import get_session
from .raffle_service import RaffleService
from .unit_of_work import SqlUnitOfWork, sql_clock

SEED_BITS = 64


class RandomOrgError(Exception):
    """Random.org API error"""
    pass


class RandomOrgService:
    """Service for Random.org Signed API integration"""

    API_URL = "https://api.random.org/json-rpc/4/invoke"

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key or settings.RANDOM_ORG_API_KEY

    def _invoke(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": {"apiKey": self.api_key, **params},
            "id": 1,
        }

        try:
            response = requests.post(self.API_URL, json=payload, timeout=10)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            logger.error(f"Random.org request failed: {e}")
            raise RandomOrgError(f"Failed to connect to Random.org: {e}")

        if "error" in data:
            error_msg = data["error"].get("message", "Unknown error")
            logger.error(f"Random.org API error: {error_msg}")
            raise RandomOrgError(f"Random.org API error: {error_msg}")

        return data.get("result", {})

    def get_signed_seed(self) -> Dict[str, Any]:
        """
        Get a signed 64-bit seed from Random.org

        Returns:
            Dictionary containing:
            - seed: Unsigned 64-bit integer
            - signature: Cryptographic signature
            - serial_number: Serial number for verification
            - full_response: Complete API response

        Raises:
            RandomOrgError: If API call fails
        """
        logger.info("Requesting signed seed from Random.org")
        result = self._invoke(
            "generateSignedBlobs",
            {"n": 1, "size": SEED_BITS, "format": "hex"},
        )

        random_data = result.get("random", {})
        blob = (random_data.get("data") or [None])[0]
        if not blob:
            raise RandomOrgError("No random blob in response")

        seed = int(blob, 16)
        if seed > U64_MAX:
            raise RandomOrgError(f"Seed {blob} does not fit in 64 bits")

        serial_number = random_data.get("serialNumber")
        logger.info(f"Received seed {seed}")
        logger.debug(f"Serial number: {serial_number}")

        return {
            "seed": seed,
            "signature": result.get("signature"),
            "serial_number": serial_number,
            "full_response": result,
        }

    def get_verification_url(self, full_response: Dict[str, Any]) -> str:
        """
        Get URL for public verification of a signed seed

        Args:
            full_response: Full response from Random.org containing random object and signature

        Returns:
            URL for verification page with encoded random data and signature
        """
        random_object = full_response.get("random", {})
        signature = full_response.get("signature") or ""

        random_json = json.dumps(random_object, separators=(',', ':'))
        random_base64 = base64.b64encode(random_json.encode('utf-8')).decode('utf-8')

        return (
            f"https://api.random.org/signatures/form"
            f"?format=json"
            f"&random={quote(random_base64, safe='')}"
            f"&signature={quote(signature, safe='')}"
        )


class OracleRelay:
    """
    Off-chain oracle for External raffles

    Polls for raffles in Drawing that wait on this oracle and answers each
    with a Random.org seed through ``provide_randomness``.
    """

    def __init__(
        self,
        oracle_account: Optional[str] = None,
        random_org: Optional[RandomOrgService] = None,
        session_factory: Callable = get_session,
        clock: Optional[LedgerClock] = None,
    ):
        self.oracle_account = oracle_account or settings.ORACLE_ACCOUNT
        self.random_org = random_org or RandomOrgService()
        self.session_factory = session_factory
        self.clock = clock
        self.running = False
        self.task: Optional[asyncio.Task] = None

    async def start(self):
        """Start polling in the background"""
        if self.running:
            logger.warning("Oracle relay already running")
            return

        self.running = True
        self.task = asyncio.create_task(self._relay_loop())
        logger.info(f"Oracle relay started for {self.oracle_account}")

    async def stop(self):
        """Stop polling"""
        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None
        logger.info("Oracle relay stopped")

    async def _relay_loop(self):
        while self.running:
            try:
                await self.fulfil_pending()
            except Exception as e:
                logger.exception(f"Error in oracle relay loop: {e}")

            await asyncio.sleep(settings.ORACLE_POLL_INTERVAL)

    async def fulfil_pending(self) -> Dict[int, str]:
        """
        Answer every randomness request addressed to this oracle

        Returns:
            Mapping of raffle id to winner for raffles finalized in this pass
        """
        async with self.session_factory() as session:
            pending_ids = await crud.get_pending_randomness_ids(session)

        if not pending_ids:
            logger.debug("No pending randomness requests")
            return {}

        logger.info(f"Found {len(pending_ids)} raffles awaiting randomness")
        winners = {}
        for raffle_id in pending_ids:
            winner = await self._fulfil(raffle_id)
            if winner:
                winners[raffle_id] = winner
        return winners

    async def _fulfil(self, raffle_id: int) -> Optional[str]:
        async with self.session_factory() as session:
            service = RaffleService(SqlUnitOfWork(session), self.clock or sql_clock(session))
            raffle = await service.get_raffle(raffle_id)
            if raffle.pending_seed is None or raffle.pending_seed.oracle != self.oracle_account:
                logger.debug(f"Raffle {raffle_id} waits on another oracle")
                return None

        try:
            signed = await asyncio.to_thread(self.random_org.get_signed_seed)
        except RandomOrgError as e:
            logger.warning(f"No seed for raffle {raffle_id} (will retry on next check): {e}")
            return None

        try:
            async with self.session_factory() as session:
                service = RaffleService(SqlUnitOfWork(session), self.clock or sql_clock(session))
                winner = await service.provide_randomness(raffle_id, self.oracle_account, signed["seed"])
        except RaffleError as e:
            logger.warning(f"Randomness for raffle {raffle_id} rejected: {e.kind}")
            return None

        logger.info(
            f"Raffle {raffle_id} won by {winner}; verify at "
            f"{self.random_org.get_verification_url(signed['full_response'])}"
        )
        return winner
