"""
Raffle state machine

Every mutating operation loads the record, validates all guards, moves funds,
mutates a private copy, checks invariants, writes it back and publishes its
events, inside one ``uow.atomic()`` block: a failure at any step leaves the
store, balances and event log exactly as they were.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Union

from loguru import logger

from tikka.config import settings
from tikka.core.clock import LedgerClock
from tikka.core.errors import (
    AlreadyInitialized,
    AlreadyProcessed,
    ContractPaused,
    DuplicateTicket,
    Expired,
    InvalidParameters,
    InvalidState,
    NotInitialized,
    NotYetExpired,
    RaffleError,
    SoldOut,
    Unauthorized,
)
from tikka.core.events import (
    AdminTransferAccepted,
    AdminTransferProposed,
    ContractPaused as ContractPausedEvent,
    ContractUnpaused,
    DrawTriggered,
    EmittedEvent,
    EventEmitter,
    FeesWithdrawn,
    FeeUpdated,
    OracleAddressUpdated,
    PrizeClaimed,
    PrizeDeposited,
    RaffleCancelled,
    RaffleCreated,
    RaffleFinalized,
    RandomnessReceived,
    RandomnessRequested,
    TicketPurchased,
    TicketRefunded,
    TreasuryUpdated,
)
from tikka.core.invariants import check_raffle, check_transition
from tikka.core.randomness import internal_winning_ticket, ticket_from_seed
from tikka.core.types import (
    BASIS_POINTS,
    I128_MAX,
    U32_MAX,
    U64_MAX,
    ContractConfig,
    PendingSeed,
    Raffle,
    RaffleStatus,
    RandomnessSource,
    Ticket,
)

NO_TICKETS_REASON = "no tickets sold"
DEFAULT_CANCEL_REASON = "cancelled by creator"


class RaffleService:
    """Raffle lifecycle operations plus contract administration"""

    def __init__(
        self,
        uow,
        clock: LedgerClock,
        contract_account: Optional[str] = None,
        namespace: Optional[str] = None,
    ):
        """
        Args:
            uow: Unit of work exposing ``store``, ``ledger``, ``sink`` and ``atomic()``
            clock: Source of ledger timestamp and sequence number
            contract_account: Account holding escrowed funds
            namespace: First element of every event topic
        """
        self.uow = uow
        self.clock = clock
        self.contract = contract_account or settings.CONTRACT_ACCOUNT
        self.emitter = EventEmitter(uow.sink, namespace or settings.EVENT_NAMESPACE)

    @property
    def store(self):
        return self.uow.store

    @property
    def ledger(self):
        return self.uow.ledger

    # ==================== HELPERS ====================

    @asynccontextmanager
    async def _operation(self, name: str) -> AsyncIterator[None]:
        try:
            async with self.uow.atomic():
                yield
        except RaffleError as e:
            logger.warning(f"{name} rejected ({e.kind}): {e.message}")
            raise

    async def _require_config(self, check_paused: bool = False) -> ContractConfig:
        config = await self.store.get_config()
        if config is None:
            raise NotInitialized("Contract is not initialized")
        if check_paused and config.paused:
            raise ContractPaused("Contract is paused")
        return config

    async def _require_admin(self, caller: str) -> ContractConfig:
        config = await self._require_config()
        if caller != config.admin:
            raise Unauthorized(f"{caller} is not the admin", caller=caller)
        return config

    async def _write(self, raffle: Raffle, tickets: Optional[List[Ticket]] = None) -> None:
        check_raffle(raffle, tickets)
        await self.store.put(raffle)

    @staticmethod
    def _move(raffle: Raffle, new_status: RaffleStatus) -> RaffleStatus:
        old_status = raffle.status
        check_transition(raffle, old_status, new_status)
        raffle.status = new_status
        return old_status

    @staticmethod
    def _require_range(name: str, value: int, low: int, high: int) -> None:
        if not isinstance(value, int) or isinstance(value, bool) or not low <= value <= high:
            raise InvalidParameters(f"{name} must be in [{low}, {high}], got {value!r}")

    # ==================== LIFECYCLE ====================

    async def create(
        self,
        creator: str,
        description: str,
        end_time: int,
        max_tickets: int,
        ticket_price: int,
        payment_token: str,
        prize_amount: int,
        allow_multiple: bool = False,
        randomness_source: Union[RandomnessSource, str] = RandomnessSource.INTERNAL,
    ) -> int:
        """
        Create a raffle in Proposed status

        Returns:
            The new raffle id

        Raises:
            NotInitialized, ContractPaused, InvalidParameters
        """
        now = self.clock.timestamp()

        async with self._operation("create"):
            config = await self._require_config(check_paused=True)

            if not creator or not payment_token:
                raise InvalidParameters("creator and payment_token are required")
            self._require_range("max_tickets", max_tickets, 1, U32_MAX)
            self._require_range("ticket_price", ticket_price, 1, I128_MAX)
            self._require_range("prize_amount", prize_amount, 1, I128_MAX)
            self._require_range("end_time", end_time, 0, U64_MAX)
            if end_time != 0 and end_time < now:
                raise InvalidParameters(f"end_time {end_time} is in the past")
            if ticket_price * max_tickets > I128_MAX:
                raise InvalidParameters("ticket_price * max_tickets overflows i128")
            try:
                source = RandomnessSource(randomness_source)
            except ValueError:
                raise InvalidParameters(f"Unknown randomness source {randomness_source!r}")
            if source == RandomnessSource.EXTERNAL and not config.oracle_address:
                raise InvalidParameters("External randomness requires a configured oracle")

            raffle = Raffle(
                id=await self.store.next_id(),
                creator=creator,
                description=description,
                end_time=end_time,
                max_tickets=max_tickets,
                allow_multiple=bool(allow_multiple),
                ticket_price=ticket_price,
                payment_token=payment_token,
                prize_amount=prize_amount,
                randomness_source=source,
                protocol_fee_bp=config.protocol_fee_bp,
                created_at=now,
            )
            await self._write(raffle, [])

            await self.emitter.emit(
                RaffleCreated(
                    raffle_id=raffle.id,
                    creator=creator,
                    description=description,
                    end_time=end_time,
                    max_tickets=max_tickets,
                    allow_multiple=raffle.allow_multiple,
                    ticket_price=ticket_price,
                    payment_token=payment_token,
                    prize_amount=prize_amount,
                    randomness_source=source,
                    protocol_fee_bp=raffle.protocol_fee_bp,
                    timestamp=now,
                )
            )

        logger.info(
            f"Raffle {raffle.id} created by {creator}: "
            f"{max_tickets} tickets at {ticket_price} {payment_token}, prize {prize_amount}"
        )
        return raffle.id

    async def deposit_prize(self, raffle_id: int, creator: str) -> None:
        """Escrow the prize and open ticket sales (Proposed -> Active)"""
        now = self.clock.timestamp()

        async with self._operation("deposit_prize"):
            await self._require_config(check_paused=True)
            raffle = await self.store.get(raffle_id)

            if creator != raffle.creator:
                raise Unauthorized(f"{creator} is not the creator of raffle {raffle_id}")
            if raffle.prize_deposited:
                raise AlreadyProcessed(f"Prize for raffle {raffle_id} already deposited")
            if raffle.status != RaffleStatus.PROPOSED:
                raise InvalidState(f"Raffle {raffle_id} is {raffle.status.value}")

            await self.ledger.transfer(raffle.payment_token, creator, self.contract, raffle.prize_amount)

            raffle.prize_deposited = True
            old_status = self._move(raffle, RaffleStatus.ACTIVE)
            await self._write(raffle)

            await self.emitter.emit_transition(
                PrizeDeposited(
                    raffle_id=raffle_id,
                    creator=creator,
                    amount=raffle.prize_amount,
                    token=raffle.payment_token,
                    timestamp=now,
                ),
                raffle_id, old_status, raffle.status, now,
            )

        logger.info(f"Prize {raffle.prize_amount} {raffle.payment_token} deposited for raffle {raffle_id}")

    async def buy_ticket(self, raffle_id: int, buyer: str) -> int:
        """Buy one ticket; returns its 1-based ticket id"""
        ticket_ids = await self.buy_tickets(raffle_id, buyer, 1)
        return ticket_ids[0]

    async def buy_tickets(self, raffle_id: int, buyer: str, quantity: int) -> List[int]:
        """
        Buy ``quantity`` tickets in one payment

        Returns:
            The assigned ticket ids, contiguous and in order

        Raises:
            InvalidParameters, InvalidState, Expired, SoldOut, DuplicateTicket, TransferFailed
        """
        now = self.clock.timestamp()

        async with self._operation("buy_tickets"):
            await self._require_config(check_paused=True)
            self._require_range("quantity", quantity, 1, U32_MAX)
            raffle = await self.store.get(raffle_id)

            if raffle.status != RaffleStatus.ACTIVE:
                raise InvalidState(f"Raffle {raffle_id} is {raffle.status.value}")
            if raffle.end_time != 0 and now >= raffle.end_time:
                raise Expired(f"Raffle {raffle_id} ended at {raffle.end_time}")
            if raffle.tickets_sold + quantity > raffle.max_tickets:
                raise SoldOut(
                    f"Raffle {raffle_id} has {raffle.max_tickets - raffle.tickets_sold} tickets left"
                )
            if not raffle.allow_multiple:
                if quantity > 1 or await self.store.count_tickets(raffle_id, buyer) > 0:
                    raise DuplicateTicket(f"{buyer} may hold only one ticket in raffle {raffle_id}")

            total_paid = raffle.ticket_price * quantity
            await self.ledger.transfer(raffle.payment_token, buyer, self.contract, total_paid)

            first = raffle.tickets_sold + 1
            ticket_ids = list(range(first, first + quantity))
            await self.store.add_tickets([
                Ticket(raffle_id=raffle_id, ticket_id=ticket_id, buyer=buyer, purchase_time=now)
                for ticket_id in ticket_ids
            ])
            raffle.tickets_sold += quantity
            await self._write(raffle)

            await self.emitter.emit(
                TicketPurchased(
                    raffle_id=raffle_id,
                    buyer=buyer,
                    ticket_ids=ticket_ids,
                    quantity=quantity,
                    total_paid=total_paid,
                    timestamp=now,
                )
            )

        logger.info(f"{buyer} bought tickets {ticket_ids} in raffle {raffle_id}")
        return ticket_ids

    async def finalize_raffle(self, raffle_id: int, caller: str) -> Optional[str]:
        """
        Trigger the draw (Active -> Drawing) once the raffle has ended or sold out

        Internal raffles are finalized in the same call and the winner is
        returned. External raffles record a randomness request and return
        ``None``; the oracle completes them via ``provide_randomness``.
        A raffle that sold no tickets is cancelled and its prize returned.
        """
        now = self.clock.timestamp()

        async with self._operation("finalize_raffle"):
            config = await self._require_config(check_paused=True)
            raffle = await self.store.get(raffle_id)

            if raffle.status == RaffleStatus.DRAWING:
                raise AlreadyProcessed(f"Draw for raffle {raffle_id} already triggered")
            if raffle.status != RaffleStatus.ACTIVE:
                raise InvalidState(f"Raffle {raffle_id} is {raffle.status.value}")
            expired = raffle.end_time != 0 and now >= raffle.end_time
            if not expired and raffle.tickets_sold < raffle.max_tickets:
                raise NotYetExpired(f"Raffle {raffle_id} is still running")

            if raffle.tickets_sold == 0:
                await self._cancel(raffle, NO_TICKETS_REASON, now)
                logger.info(f"Raffle {raffle_id} sold no tickets and was cancelled")
                return None

            sequence = await self.clock.sequence()
            self._move(raffle, RaffleStatus.DRAWING)
            draw_triggered = DrawTriggered(
                raffle_id=raffle_id,
                triggered_by=caller,
                total_tickets_sold=raffle.tickets_sold,
                timestamp=now,
            )

            if raffle.randomness_source == RandomnessSource.EXTERNAL:
                oracle = config.oracle_address
                if not oracle:
                    raise InvalidState("No oracle configured for external randomness")
                raffle.oracle_address = oracle
                raffle.pending_seed = PendingSeed(oracle=oracle, requested_at=now, request_sequence=sequence)
                await self._write(raffle)

                await self.emitter.emit_transition(
                    draw_triggered, raffle_id, RaffleStatus.ACTIVE, RaffleStatus.DRAWING, now
                )
                await self.emitter.emit(
                    RandomnessRequested(
                        raffle_id=raffle_id, oracle=oracle, request_sequence=sequence, timestamp=now
                    )
                )
                logger.info(f"Raffle {raffle_id} requested randomness from oracle {oracle}")
                return None

            ticket_id = internal_winning_ticket(raffle.end_time, sequence, raffle.tickets_sold)
            tickets = await self.store.get_tickets(raffle_id)
            raffle.draw_sequence = sequence
            self._set_winner(raffle, tickets, ticket_id, now)
            await self._write(raffle, tickets)

            await self.emitter.emit_transition(
                draw_triggered, raffle_id, RaffleStatus.ACTIVE, RaffleStatus.DRAWING, now
            )
            await self.emitter.emit_transition(
                self._finalized_event(raffle),
                raffle_id, RaffleStatus.DRAWING, RaffleStatus.FINALIZED, now,
            )

        logger.info(f"Raffle {raffle_id} finalized: ticket #{ticket_id} won by {raffle.winner}")
        return raffle.winner

    async def provide_randomness(self, raffle_id: int, oracle: str, seed: int) -> str:
        """Oracle callback completing an External draw (Drawing -> Finalized)"""
        now = self.clock.timestamp()

        async with self._operation("provide_randomness"):
            config = await self._require_config(check_paused=True)
            self._require_range("seed", seed, 0, U64_MAX)
            raffle = await self.store.get(raffle_id)

            if raffle.random_seed is not None:
                raise AlreadyProcessed(f"Randomness for raffle {raffle_id} already received")
            if (
                raffle.status != RaffleStatus.DRAWING
                or raffle.randomness_source != RandomnessSource.EXTERNAL
                or raffle.pending_seed is None
            ):
                raise InvalidState(f"Raffle {raffle_id} is not awaiting randomness")
            if oracle not in (raffle.pending_seed.oracle, config.oracle_address):
                raise Unauthorized(f"{oracle} is not the registered oracle for raffle {raffle_id}")

            ticket_id = ticket_from_seed(seed, raffle.tickets_sold)
            tickets = await self.store.get_tickets(raffle_id)
            raffle.random_seed = seed
            raffle.pending_seed = None
            self._set_winner(raffle, tickets, ticket_id, now)
            await self._write(raffle, tickets)

            await self.emitter.emit(
                RandomnessReceived(raffle_id=raffle_id, oracle=oracle, seed=seed, timestamp=now)
            )
            await self.emitter.emit_transition(
                self._finalized_event(raffle),
                raffle_id, RaffleStatus.DRAWING, RaffleStatus.FINALIZED, now,
            )

        logger.info(f"Raffle {raffle_id} finalized by oracle: ticket #{ticket_id} won by {raffle.winner}")
        return raffle.winner

    def _set_winner(self, raffle: Raffle, tickets: List[Ticket], ticket_id: int, now: int) -> None:
        self._move(raffle, RaffleStatus.FINALIZED)
        raffle.winning_ticket_id = ticket_id
        raffle.winner = tickets[ticket_id - 1].buyer
        raffle.finalized_at = now

    @staticmethod
    def _finalized_event(raffle: Raffle) -> RaffleFinalized:
        return RaffleFinalized(
            raffle_id=raffle.id,
            winner=raffle.winner,
            winning_ticket_id=raffle.winning_ticket_id,
            total_tickets_sold=raffle.tickets_sold,
            randomness_source=raffle.randomness_source,
            finalized_at=raffle.finalized_at,
            draw_sequence=raffle.draw_sequence,
        )

    async def cancel_raffle(self, raffle_id: int, creator: str, reason: str = "") -> None:
        """Cancel a Proposed or Active raffle and return the escrowed prize"""
        now = self.clock.timestamp()

        async with self._operation("cancel_raffle"):
            raffle = await self.store.get(raffle_id)

            if creator != raffle.creator:
                raise Unauthorized(f"{creator} is not the creator of raffle {raffle_id}")
            if raffle.status == RaffleStatus.CANCELLED:
                raise AlreadyProcessed(f"Raffle {raffle_id} already cancelled")
            if raffle.status not in (RaffleStatus.PROPOSED, RaffleStatus.ACTIVE):
                raise InvalidState(f"Raffle {raffle_id} is {raffle.status.value}")

            await self._cancel(raffle, reason or DEFAULT_CANCEL_REASON, now)

        logger.info(f"Raffle {raffle_id} cancelled by {creator}: {reason or DEFAULT_CANCEL_REASON}")

    async def _cancel(self, raffle: Raffle, reason: str, now: int) -> None:
        prize_returned = 0
        if raffle.prize_deposited:
            await self.ledger.transfer(raffle.payment_token, self.contract, raffle.creator, raffle.prize_amount)
            prize_returned = raffle.prize_amount
            raffle.prize_refunded = True
            raffle.paid_out += prize_returned

        old_status = self._move(raffle, RaffleStatus.CANCELLED)
        await self._write(raffle)

        await self.emitter.emit_transition(
            RaffleCancelled(
                raffle_id=raffle.id,
                creator=raffle.creator,
                reason=reason,
                tickets_sold=raffle.tickets_sold,
                prize_returned=prize_returned,
                timestamp=now,
            ),
            raffle.id, old_status, raffle.status, now,
        )

    async def claim_refund(self, raffle_id: int, buyer: str) -> int:
        """
        Refund every not-yet-refunded ticket a buyer holds in a cancelled raffle

        Returns:
            Amount paid back

        Raises:
            InvalidState, Unauthorized, AlreadyProcessed, TransferFailed
        """
        now = self.clock.timestamp()

        async with self._operation("claim_refund"):
            raffle = await self.store.get(raffle_id)
            if raffle.status != RaffleStatus.CANCELLED:
                raise InvalidState(f"Raffle {raffle_id} is {raffle.status.value}")

            tickets = await self.store.get_tickets(raffle_id)
            held = [t for t in tickets if t.buyer == buyer]
            if not held:
                raise Unauthorized(f"{buyer} holds no tickets in raffle {raffle_id}")
            pending = [t for t in held if not t.refunded]
            if not pending:
                raise AlreadyProcessed(f"Tickets of {buyer} in raffle {raffle_id} already refunded")

            amount = raffle.ticket_price * len(pending)
            await self.ledger.transfer(raffle.payment_token, self.contract, buyer, amount)

            refunded_ids = [t.ticket_id for t in pending]
            await self.store.mark_refunded(raffle_id, refunded_ids)
            for ticket in pending:
                ticket.refunded = True
            raffle.tickets_refunded += len(pending)
            raffle.paid_out += amount
            await self._write(raffle, tickets)

            for ticket in pending:
                await self.emitter.emit(
                    TicketRefunded(
                        raffle_id=raffle_id,
                        buyer=buyer,
                        ticket_id=ticket.ticket_id,
                        amount=raffle.ticket_price,
                        timestamp=now,
                    )
                )

        logger.info(f"Refunded {amount} {raffle.payment_token} to {buyer} for tickets {refunded_ids}")
        return amount

    async def claim_prize(self, raffle_id: int, winner: str) -> int:
        """
        Pay the prize minus the platform fee to the winner (Finalized -> Claimed)

        The fee goes to the treasury when one is configured, otherwise it
        accrues in the contract for ``withdraw_fees``.

        Returns:
            Net amount paid to the winner
        """
        now = self.clock.timestamp()

        async with self._operation("claim_prize"):
            config = await self._require_config()
            raffle = await self.store.get(raffle_id)

            if raffle.prize_claimed or raffle.status == RaffleStatus.CLAIMED:
                raise AlreadyProcessed(f"Prize of raffle {raffle_id} already claimed")
            if raffle.status != RaffleStatus.FINALIZED:
                raise InvalidState(f"Raffle {raffle_id} is {raffle.status.value}")
            if winner != raffle.winner:
                raise Unauthorized(f"{winner} is not the winner of raffle {raffle_id}")

            platform_fee = raffle.prize_amount * raffle.protocol_fee_bp // BASIS_POINTS
            net_amount = raffle.prize_amount - platform_fee
            treasury = config.treasury if platform_fee > 0 else None

            if net_amount > 0:
                await self.ledger.transfer(raffle.payment_token, self.contract, winner, net_amount)
            if treasury:
                await self.ledger.transfer(raffle.payment_token, self.contract, treasury, platform_fee)
            elif platform_fee > 0:
                accrued = config.accrued_fees.get(raffle.payment_token, 0)
                config.accrued_fees[raffle.payment_token] = accrued + platform_fee
                await self.store.put_config(config)

            raffle.prize_claimed = True
            raffle.paid_out += raffle.prize_amount
            old_status = self._move(raffle, RaffleStatus.CLAIMED)
            await self._write(raffle)

            await self.emitter.emit_transition(
                PrizeClaimed(
                    raffle_id=raffle_id,
                    winner=winner,
                    gross_amount=raffle.prize_amount,
                    net_amount=net_amount,
                    platform_fee=platform_fee,
                    treasury=treasury,
                    claimed_at=now,
                ),
                raffle_id, old_status, raffle.status, now,
            )

        logger.info(
            f"Raffle {raffle_id} prize claimed by {winner}: net {net_amount}, fee {platform_fee}"
        )
        return net_amount

    # ==================== READ-ONLY ====================

    async def get_raffle(self, raffle_id: int) -> Raffle:
        return await self.store.get(raffle_id)

    async def get_tickets(self, raffle_id: int) -> List[str]:
        """Buyer accounts ordered by ticket id (index 0 is ticket #1)"""
        await self.store.get(raffle_id)
        return [t.buyer for t in await self.store.get_tickets(raffle_id)]

    async def get_ticket_records(self, raffle_id: int) -> List[Ticket]:
        await self.store.get(raffle_id)
        return await self.store.get_tickets(raffle_id)

    async def list_raffles(self) -> List[Raffle]:
        return [await self.store.get(raffle_id) for raffle_id in await self.store.list_ids()]

    async def get_config(self) -> ContractConfig:
        return await self._require_config()

    async def get_events(self, raffle_id: Optional[int] = None, after_id: int = 0) -> List[EmittedEvent]:
        """Published events in order, optionally for one raffle and only those after ``after_id``"""
        return await self.uow.sink.events(raffle_id, after_id)

    # ==================== ADMINISTRATION ====================

    async def initialize(
        self,
        admin: str,
        protocol_fee_bp: int = 0,
        treasury: Optional[str] = None,
        oracle: Optional[str] = None,
    ) -> ContractConfig:
        """One-time contract setup; previous-value fields of the emitted events are ``None``"""
        now = self.clock.timestamp()

        async with self._operation("initialize"):
            if await self.store.get_config() is not None:
                raise AlreadyInitialized("Contract already initialized")
            if not admin:
                raise InvalidParameters("admin is required")
            self._require_range("protocol_fee_bp", protocol_fee_bp, 0, BASIS_POINTS)

            config = ContractConfig(
                admin=admin,
                protocol_fee_bp=protocol_fee_bp,
                treasury=treasury,
                oracle_address=oracle,
            )
            await self.store.put_config(config)

            await self.emitter.emit(
                FeeUpdated(old_fee_bp=0, new_fee_bp=protocol_fee_bp, updated_by=admin, timestamp=now)
            )
            if treasury:
                await self.emitter.emit(
                    TreasuryUpdated(old_treasury=None, new_treasury=treasury, updated_by=admin, timestamp=now)
                )
            if oracle:
                await self.emitter.emit(
                    OracleAddressUpdated(old_oracle=None, new_oracle=oracle, updated_by=admin, timestamp=now)
                )

        logger.info(f"Contract initialized: admin={admin}, fee={protocol_fee_bp}bp")
        return config

    async def set_oracle(self, caller: str, new_oracle: str) -> None:
        now = self.clock.timestamp()
        async with self._operation("set_oracle"):
            config = await self._require_admin(caller)
            if not new_oracle:
                raise InvalidParameters("oracle address is required")
            old_oracle = config.oracle_address
            config.oracle_address = new_oracle
            await self.store.put_config(config)
            await self.emitter.emit(
                OracleAddressUpdated(old_oracle=old_oracle, new_oracle=new_oracle, updated_by=caller, timestamp=now)
            )
        logger.info(f"Oracle changed {old_oracle} -> {new_oracle}")

    async def set_fee(self, caller: str, fee_bp: int) -> None:
        """Change the fee applied to raffles created from now on"""
        now = self.clock.timestamp()
        async with self._operation("set_fee"):
            config = await self._require_admin(caller)
            self._require_range("fee_bp", fee_bp, 0, BASIS_POINTS)
            old_fee_bp = config.protocol_fee_bp
            config.protocol_fee_bp = fee_bp
            await self.store.put_config(config)
            await self.emitter.emit(
                FeeUpdated(old_fee_bp=old_fee_bp, new_fee_bp=fee_bp, updated_by=caller, timestamp=now)
            )
        logger.info(f"Protocol fee changed {old_fee_bp}bp -> {fee_bp}bp")

    async def set_treasury(self, caller: str, new_treasury: str) -> None:
        now = self.clock.timestamp()
        async with self._operation("set_treasury"):
            config = await self._require_admin(caller)
            if not new_treasury:
                raise InvalidParameters("treasury address is required")
            old_treasury = config.treasury
            config.treasury = new_treasury
            await self.store.put_config(config)
            await self.emitter.emit(
                TreasuryUpdated(
                    old_treasury=old_treasury, new_treasury=new_treasury, updated_by=caller, timestamp=now
                )
            )
        logger.info(f"Treasury changed {old_treasury} -> {new_treasury}")

    async def withdraw_fees(self, caller: str, token: str, recipient: str) -> int:
        """Send fees accrued while no treasury was set; returns the amount"""
        now = self.clock.timestamp()
        async with self._operation("withdraw_fees"):
            config = await self._require_admin(caller)
            amount = config.accrued_fees.get(token, 0)
            if amount <= 0:
                raise InvalidParameters(f"No accrued {token} fees to withdraw")

            await self.ledger.transfer(token, self.contract, recipient, amount)
            del config.accrued_fees[token]
            await self.store.put_config(config)
            await self.emitter.emit(
                FeesWithdrawn(recipient=recipient, amount=amount, token=token, timestamp=now)
            )
        logger.info(f"Withdrew {amount} {token} in fees to {recipient}")
        return amount

    async def pause(self, caller: str) -> None:
        now = self.clock.timestamp()
        async with self._operation("pause"):
            config = await self._require_admin(caller)
            if config.paused:
                raise AlreadyProcessed("Contract already paused")
            config.paused = True
            await self.store.put_config(config)
            await self.emitter.emit(ContractPausedEvent(paused_by=caller, timestamp=now))
        logger.warning(f"Contract paused by {caller}")

    async def unpause(self, caller: str) -> None:
        now = self.clock.timestamp()
        async with self._operation("unpause"):
            config = await self._require_admin(caller)
            if not config.paused:
                raise AlreadyProcessed("Contract is not paused")
            config.paused = False
            await self.store.put_config(config)
            await self.emitter.emit(ContractUnpaused(unpaused_by=caller, timestamp=now))
        logger.info(f"Contract unpaused by {caller}")

    async def propose_admin(self, caller: str, new_admin: str) -> None:
        """First step of the two-step admin handover"""
        now = self.clock.timestamp()
        async with self._operation("propose_admin"):
            config = await self._require_admin(caller)
            if not new_admin:
                raise InvalidParameters("new admin is required")
            config.pending_admin = new_admin
            await self.store.put_config(config)
            await self.emitter.emit(
                AdminTransferProposed(current_admin=caller, proposed_admin=new_admin, timestamp=now)
            )
        logger.info(f"Admin transfer proposed: {caller} -> {new_admin}")

    async def accept_admin(self, caller: str) -> None:
        now = self.clock.timestamp()
        async with self._operation("accept_admin"):
            config = await self._require_config()
            if config.pending_admin is None:
                raise InvalidState("No admin transfer pending")
            if caller != config.pending_admin:
                raise Unauthorized(f"{caller} is not the proposed admin")
            old_admin = config.admin
            config.admin = caller
            config.pending_admin = None
            await self.store.put_config(config)
            await self.emitter.emit(AdminTransferAccepted(old_admin=old_admin, new_admin=caller, timestamp=now))
        logger.info(f"Admin transfer accepted: {old_admin} -> {caller}")
