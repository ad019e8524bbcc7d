import pytest

from tikka.core.errors import (
    AlreadyProcessed,
    DuplicateTicket,
    Expired,
    InvalidParameters,
    InvalidState,
    NotFound,
    NotYetExpired,
    SoldOut,
    Unauthorized,
)
from tikka.core.randomness import internal_winning_ticket
from tikka.core.types import I128_MAX, RaffleStatus
from tests.conftest import (
    BUYERS, CONTRACT, CREATOR, END, FUNDING, START, TOKEN, TREASURY, names, raffle_params
)


async def test_full_lifecycle_with_internal_draw(service, uow, clock, assert_escrow_consistent):
    raffle_id = await service.create(**raffle_params())
    raffle = await service.get_raffle(raffle_id)
    assert raffle.status == RaffleStatus.PROPOSED
    assert raffle.protocol_fee_bp == 250
    assert names(await service.get_events(raffle_id)) == ["raffle_created"]

    await service.deposit_prize(raffle_id, CREATOR)
    assert await uow.ledger.balance(TOKEN, CREATOR) == FUNDING - 100
    assert await uow.ledger.balance(TOKEN, CONTRACT) == 100

    ticket_ids = [await service.buy_ticket(raffle_id, buyer) for buyer in BUYERS]
    assert ticket_ids == [1, 2, 3]
    assert await uow.ledger.balance(TOKEN, CONTRACT) == 130
    await assert_escrow_consistent()

    clock.advance(3600)
    winner = await service.finalize_raffle(raffle_id, "anyone")

    expected_ticket = internal_winning_ticket(END, clock.seq, 3)
    assert winner == BUYERS[expected_ticket - 1]
    raffle = await service.get_raffle(raffle_id)
    assert raffle.status == RaffleStatus.FINALIZED
    assert raffle.winning_ticket_id == expected_ticket
    assert raffle.draw_sequence == clock.seq
    assert raffle.finalized_at == END

    net = await service.claim_prize(raffle_id, winner)
    assert net == 98
    assert await uow.ledger.balance(TOKEN, TREASURY) == 2
    assert await uow.ledger.balance(TOKEN, winner) == FUNDING - 10 + 98
    # ticket proceeds stay in escrow
    assert await uow.ledger.balance(TOKEN, CONTRACT) == 30
    await assert_escrow_consistent()

    raffle = await service.get_raffle(raffle_id)
    assert raffle.status == RaffleStatus.CLAIMED
    assert raffle.prize_claimed

    assert names(await service.get_events(raffle_id)) == [
        "raffle_created",
        "prize_deposited", "status_changed",
        "ticket_purchased", "ticket_purchased", "ticket_purchased",
        "draw_triggered", "status_changed",
        "raffle_finalized", "status_changed",
        "prize_claimed", "status_changed",
    ]


async def test_status_changed_events_trace_every_transition(service, make_raffle, clock):
    raffle_id = await make_raffle()
    await service.buy_ticket(raffle_id, "bob")
    clock.advance(3600)
    await service.finalize_raffle(raffle_id, "bob")
    await service.claim_prize(raffle_id, "bob")

    transitions = [
        (e.payload["old_status"], e.payload["new_status"])
        for e in await service.get_events(raffle_id)
        if e.name == "status_changed"
    ]
    assert transitions == [
        ("proposed", "active"),
        ("active", "drawing"),
        ("drawing", "finalized"),
        ("finalized", "claimed"),
    ]


class TestCreate:
    @pytest.mark.parametrize("overrides", [
        {"max_tickets": 0},
        {"ticket_price": 0},
        {"prize_amount": -5},
        {"end_time": START - 1},
        {"ticket_price": I128_MAX, "max_tickets": 2},
        {"randomness_source": "chainlink"},
        {"payment_token": ""},
    ])
    async def test_invalid_parameters(self, service, overrides):
        with pytest.raises(InvalidParameters):
            await service.create(**raffle_params(**overrides))
        assert await service.list_raffles() == []

    async def test_ids_are_sequential(self, service):
        first = await service.create(**raffle_params())
        second = await service.create(**raffle_params(end_time=0))
        assert (first, second) == (1, 2)

    async def test_fee_is_fixed_at_creation(self, service, make_raffle, clock):
        raffle_id = await make_raffle()
        await service.set_fee("admin", 1000)
        await service.buy_ticket(raffle_id, "bob")
        clock.advance(3600)
        await service.finalize_raffle(raffle_id, "bob")
        assert await service.claim_prize(raffle_id, "bob") == 98


class TestDeposit:
    async def test_only_creator_may_deposit(self, service, make_raffle):
        raffle_id = await make_raffle(deposit=False)
        with pytest.raises(Unauthorized):
            await service.deposit_prize(raffle_id, "bob")

    async def test_second_deposit_rejected(self, service, make_raffle, uow):
        raffle_id = await make_raffle()
        with pytest.raises(AlreadyProcessed):
            await service.deposit_prize(raffle_id, CREATOR)
        assert await uow.ledger.balance(TOKEN, CONTRACT) == 100

    async def test_unknown_raffle(self, service):
        with pytest.raises(NotFound):
            await service.deposit_prize(42, CREATOR)


class TestBuy:
    async def test_requires_active_raffle(self, service, make_raffle):
        raffle_id = await make_raffle(deposit=False)
        with pytest.raises(InvalidState):
            await service.buy_ticket(raffle_id, "bob")

    async def test_sold_out(self, service, make_raffle):
        raffle_id = await make_raffle(max_tickets=2)
        await service.buy_ticket(raffle_id, "bob")
        await service.buy_ticket(raffle_id, "carol")
        with pytest.raises(SoldOut):
            await service.buy_ticket(raffle_id, "dave")

        raffle = await service.get_raffle(raffle_id)
        assert raffle.tickets_sold == 2
        assert raffle.status == RaffleStatus.ACTIVE

    async def test_batch_larger_than_remaining_is_sold_out(self, service, make_raffle):
        raffle_id = await make_raffle(max_tickets=2, allow_multiple=True)
        with pytest.raises(SoldOut):
            await service.buy_tickets(raffle_id, "bob", 3)

    async def test_duplicate_ticket_when_single_entry(self, service, make_raffle):
        raffle_id = await make_raffle()
        await service.buy_ticket(raffle_id, "bob")
        with pytest.raises(DuplicateTicket):
            await service.buy_ticket(raffle_id, "bob")
        with pytest.raises(DuplicateTicket):
            await service.buy_tickets(raffle_id, "carol", 2)

    async def test_multiple_tickets_get_contiguous_ids(self, service, make_raffle, uow):
        raffle_id = await make_raffle(allow_multiple=True)
        assert await service.buy_tickets(raffle_id, "bob", 3) == [1, 2, 3]
        assert await service.buy_ticket(raffle_id, "carol") == 4
        assert await service.buy_ticket(raffle_id, "bob") == 5

        assert await service.get_tickets(raffle_id) == ["bob", "bob", "bob", "carol", "bob"]
        assert await uow.ledger.balance(TOKEN, "bob") == FUNDING - 40

        purchase = (await service.get_events(raffle_id))[3]
        assert purchase.name == "ticket_purchased"
        assert purchase.payload["ticket_ids"] == [1, 2, 3]
        assert purchase.payload["total_paid"] == 30

    async def test_zero_quantity_rejected(self, service, make_raffle):
        raffle_id = await make_raffle(allow_multiple=True)
        with pytest.raises(InvalidParameters):
            await service.buy_tickets(raffle_id, "bob", 0)

    async def test_expired(self, service, make_raffle, clock):
        raffle_id = await make_raffle()
        clock.advance(3600)
        with pytest.raises(Expired):
            await service.buy_ticket(raffle_id, "bob")

    async def test_no_time_limit_never_expires(self, service, make_raffle, clock):
        raffle_id = await make_raffle(end_time=0)
        clock.advance(10 ** 9)
        assert await service.buy_ticket(raffle_id, "bob") == 1


class TestFinalize:
    async def test_not_yet_expired(self, service, make_raffle):
        raffle_id = await make_raffle()
        await service.buy_ticket(raffle_id, "bob")
        with pytest.raises(NotYetExpired):
            await service.finalize_raffle(raffle_id, "bob")

    async def test_sold_out_raffle_can_draw_early(self, service, make_raffle):
        raffle_id = await make_raffle(max_tickets=3)
        for buyer in BUYERS:
            await service.buy_ticket(raffle_id, buyer)
        assert await service.finalize_raffle(raffle_id, "anyone") in BUYERS

    async def test_unlimited_raffle_needs_sell_out(self, service, make_raffle, clock):
        raffle_id = await make_raffle(end_time=0, max_tickets=2)
        await service.buy_ticket(raffle_id, "bob")
        clock.advance(10 ** 6)
        with pytest.raises(NotYetExpired):
            await service.finalize_raffle(raffle_id, "bob")

    async def test_no_tickets_sold_cancels_and_returns_prize(self, service, make_raffle, clock, uow):
        raffle_id = await make_raffle()
        clock.advance(3600)

        assert await service.finalize_raffle(raffle_id, "anyone") is None

        raffle = await service.get_raffle(raffle_id)
        assert raffle.status == RaffleStatus.CANCELLED
        assert raffle.prize_refunded
        assert await uow.ledger.balance(TOKEN, CREATOR) == FUNDING
        assert await uow.ledger.balance(TOKEN, CONTRACT) == 0

        events = await service.get_events(raffle_id)
        assert names(events)[-2:] == ["raffle_cancelled", "status_changed"]
        assert events[-2].payload["reason"] == "no tickets sold"
        assert events[-2].payload["prize_returned"] == 100

    async def test_finalize_twice(self, service, make_raffle, clock):
        raffle_id = await make_raffle()
        await service.buy_ticket(raffle_id, "bob")
        clock.advance(3600)
        await service.finalize_raffle(raffle_id, "bob")
        with pytest.raises(InvalidState):
            await service.finalize_raffle(raffle_id, "bob")

    async def test_proposed_raffle_cannot_draw(self, service, make_raffle, clock):
        raffle_id = await make_raffle(deposit=False)
        clock.advance(3600)
        with pytest.raises(InvalidState):
            await service.finalize_raffle(raffle_id, "bob")


class TestClaimPrize:
    @pytest.fixture
    async def finalized(self, service, make_raffle, clock):
        raffle_id = await make_raffle()
        await service.buy_ticket(raffle_id, "bob")
        await service.buy_ticket(raffle_id, "carol")
        clock.advance(3600)
        winner = await service.finalize_raffle(raffle_id, "dave")
        return raffle_id, winner

    async def test_claim_twice(self, service, finalized, uow):
        raffle_id, winner = finalized
        await service.claim_prize(raffle_id, winner)
        balance = await uow.ledger.balance(TOKEN, winner)

        with pytest.raises(AlreadyProcessed):
            await service.claim_prize(raffle_id, winner)
        assert await uow.ledger.balance(TOKEN, winner) == balance

    async def test_non_winner_rejected(self, service, finalized):
        raffle_id, winner = finalized
        loser = "carol" if winner == "bob" else "bob"
        with pytest.raises(Unauthorized):
            await service.claim_prize(raffle_id, loser)

    async def test_claim_before_draw(self, service, make_raffle):
        raffle_id = await make_raffle()
        await service.buy_ticket(raffle_id, "bob")
        with pytest.raises(InvalidState):
            await service.claim_prize(raffle_id, "bob")

    async def test_prize_claimed_event(self, service, finalized):
        raffle_id, winner = finalized
        await service.claim_prize(raffle_id, winner)
        claimed = [e for e in await service.get_events(raffle_id) if e.name == "prize_claimed"][0]
        assert claimed.payload == {
            "raffle_id": raffle_id,
            "winner": winner,
            "gross_amount": 100,
            "net_amount": 98,
            "platform_fee": 2,
            "treasury": TREASURY,
            "claimed_at": END,
        }


class TestCancel:
    async def test_cancel_proposed_raffle(self, service, make_raffle, uow):
        raffle_id = await make_raffle(deposit=False)
        await service.cancel_raffle(raffle_id, CREATOR, "changed my mind")

        raffle = await service.get_raffle(raffle_id)
        assert raffle.status == RaffleStatus.CANCELLED
        assert not raffle.prize_refunded
        assert await uow.ledger.balance(TOKEN, CREATOR) == FUNDING

        cancelled = (await service.get_events(raffle_id))[-2]
        assert cancelled.payload["reason"] == "changed my mind"
        assert cancelled.payload["prize_returned"] == 0

    async def test_cancel_active_raffle_returns_prize(self, service, make_raffle, uow, assert_escrow_consistent):
        raffle_id = await make_raffle()
        await service.buy_ticket(raffle_id, "bob")
        await service.cancel_raffle(raffle_id, CREATOR)

        assert await uow.ledger.balance(TOKEN, CREATOR) == FUNDING
        assert await uow.ledger.balance(TOKEN, CONTRACT) == 10
        await assert_escrow_consistent()

    async def test_only_creator_may_cancel(self, service, make_raffle):
        raffle_id = await make_raffle()
        with pytest.raises(Unauthorized):
            await service.cancel_raffle(raffle_id, "bob")

    async def test_cancel_twice(self, service, make_raffle):
        raffle_id = await make_raffle()
        await service.cancel_raffle(raffle_id, CREATOR)
        with pytest.raises(AlreadyProcessed):
            await service.cancel_raffle(raffle_id, CREATOR)

    async def test_cannot_cancel_after_draw(self, service, make_raffle, clock):
        raffle_id = await make_raffle()
        await service.buy_ticket(raffle_id, "bob")
        clock.advance(3600)
        await service.finalize_raffle(raffle_id, "bob")
        with pytest.raises(InvalidState):
            await service.cancel_raffle(raffle_id, CREATOR)

        await service.claim_prize(raffle_id, "bob")
        with pytest.raises(InvalidState):
            await service.cancel_raffle(raffle_id, CREATOR)


class TestRefunds:
    async def test_buyers_reclaim_ticket_prices(self, service, make_raffle, uow, assert_escrow_consistent):
        raffle_id = await make_raffle(allow_multiple=True)
        await service.buy_tickets(raffle_id, "bob", 2)
        await service.buy_ticket(raffle_id, "carol")
        await service.cancel_raffle(raffle_id, CREATOR)

        assert await service.claim_refund(raffle_id, "bob") == 20
        assert await uow.ledger.balance(TOKEN, "bob") == FUNDING
        await assert_escrow_consistent()

        assert await service.claim_refund(raffle_id, "carol") == 10
        assert await uow.ledger.balance(TOKEN, CONTRACT) == 0

        raffle = await service.get_raffle(raffle_id)
        assert raffle.tickets_refunded == 3
        assert raffle.escrow_balance == 0

        refunds = [e.payload for e in await service.get_events(raffle_id) if e.name == "ticket_refunded"]
        assert [(r["buyer"], r["ticket_id"], r["amount"]) for r in refunds] == [
            ("bob", 1, 10), ("bob", 2, 10), ("carol", 3, 10),
        ]

    async def test_refund_twice(self, service, make_raffle):
        raffle_id = await make_raffle()
        await service.buy_ticket(raffle_id, "bob")
        await service.cancel_raffle(raffle_id, CREATOR)
        await service.claim_refund(raffle_id, "bob")
        with pytest.raises(AlreadyProcessed):
            await service.claim_refund(raffle_id, "bob")

    async def test_refund_without_ticket(self, service, make_raffle):
        raffle_id = await make_raffle()
        await service.buy_ticket(raffle_id, "bob")
        await service.cancel_raffle(raffle_id, CREATOR)
        with pytest.raises(Unauthorized):
            await service.claim_refund(raffle_id, "dave")

    async def test_refund_requires_cancellation(self, service, make_raffle):
        raffle_id = await make_raffle()
        await service.buy_ticket(raffle_id, "bob")
        with pytest.raises(InvalidState):
            await service.claim_refund(raffle_id, "bob")


async def test_escrow_matches_ledger_across_raffles(service, make_raffle, clock, assert_escrow_consistent):
    first = await make_raffle(allow_multiple=True)
    second = await make_raffle(max_tickets=2)
    third = await make_raffle()

    await service.buy_tickets(first, "bob", 4)
    await service.buy_ticket(second, "carol")
    await service.buy_ticket(second, "dave")
    await service.buy_ticket(third, "bob")
    await assert_escrow_consistent()

    winner = await service.finalize_raffle(second, "anyone")
    await service.claim_prize(second, winner)
    await service.cancel_raffle(third, CREATOR)
    await service.claim_refund(third, "bob")
    await assert_escrow_consistent()

    clock.advance(3600)
    winner = await service.finalize_raffle(first, "anyone")
    assert winner == "bob"
    await service.claim_prize(first, winner)
    await assert_escrow_consistent()


async def test_read_only_queries(service, make_raffle):
    raffle_id = await make_raffle()
    await service.buy_ticket(raffle_id, "carol")
    await service.buy_ticket(raffle_id, "bob")
    before = len(await service.get_events())

    assert await service.get_tickets(raffle_id) == ["carol", "bob"]
    assert [r.id for r in await service.list_raffles()] == [raffle_id]
    assert len(await service.get_events()) == before

    with pytest.raises(NotFound):
        await service.get_raffle(99)
    with pytest.raises(NotFound):
        await service.get_tickets(99)
