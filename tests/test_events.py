import pytest

from tikka.core.events import (
    EVENT_TYPES,
    EventEmitter,
    InMemoryEventLog,
    PrizeClaimed,
    RaffleCreated,
    StatusChanged,
    TicketPurchased,
    decode_event,
    encode_payload,
    event_name,
)
from tikka.core.types import I128_MAX, U64_MAX, RaffleStatus, RandomnessSource
from tikka.services.raffle_service import RaffleService
from tests.conftest import ADMIN, CONTRACT, names


def test_catalog_names_are_snake_case():
    assert {
        "raffle_created", "prize_deposited", "ticket_purchased", "draw_triggered",
        "randomness_requested", "randomness_received", "raffle_finalized",
        "raffle_cancelled", "ticket_refunded", "prize_claimed", "status_changed",
        "oracle_address_updated", "fee_updated", "treasury_updated", "fees_withdrawn",
        "contract_paused", "contract_unpaused", "admin_transfer_proposed",
        "admin_transfer_accepted",
    } == set(EVENT_TYPES)


@pytest.mark.parametrize("event", [
    RaffleCreated(
        raffle_id=7,
        creator="alice",
        description="ünïcode ✓",
        end_time=U64_MAX,
        max_tickets=2**32 - 1,
        allow_multiple=True,
        ticket_price=1,
        payment_token="USDC",
        prize_amount=I128_MAX,
        randomness_source=RandomnessSource.EXTERNAL,
        protocol_fee_bp=10000,
        timestamp=0,
    ),
    TicketPurchased(raffle_id=1, buyer="bob", ticket_ids=[4, 5, 6], quantity=3, total_paid=30, timestamp=5),
    PrizeClaimed(
        raffle_id=1, winner="bob", gross_amount=I128_MAX, net_amount=I128_MAX,
        platform_fee=0, treasury=None, claimed_at=U64_MAX,
    ),
])
def test_payload_decodes_to_same_event(event):
    payload = encode_payload(event)
    assert decode_event(event_name(event), payload) == event


def test_enum_fields_encode_as_values():
    payload = encode_payload(
        StatusChanged(raffle_id=1, old_status=RaffleStatus.ACTIVE, new_status=RaffleStatus.DRAWING, timestamp=9)
    )
    assert payload == {"raffle_id": 1, "old_status": "active", "new_status": "drawing", "timestamp": 9}


def test_unknown_event_name():
    with pytest.raises(KeyError):
        decode_event("raffle_exploded", {})


async def test_emit_transition_publishes_primary_event_first():
    log = InMemoryEventLog()
    emitter = EventEmitter(log, namespace="lotto")
    await emitter.emit_transition(
        TicketPurchased(raffle_id=3, buyer="bob", ticket_ids=[1], quantity=1, total_paid=10, timestamp=1),
        3, RaffleStatus.ACTIVE, RaffleStatus.DRAWING, 1,
    )

    events = await log.events()
    assert [e.topic for e in events] == [("lotto", "ticket_purchased"), ("lotto", "status_changed")]
    assert [e.seq for e in events] == [1, 2]
    assert all(e.raffle_id == 3 for e in events)


async def test_service_events_use_configured_namespace(uow, clock):
    service = RaffleService(uow, clock, contract_account=CONTRACT, namespace="lotto")
    await service.initialize(ADMIN)
    assert {e.topic[0] for e in await service.get_events()} == {"lotto"}


async def test_every_raffle_event_names_its_raffle(service, make_raffle, clock):
    first = await make_raffle()
    second = await make_raffle(allow_multiple=True)
    await service.buy_ticket(first, "bob")
    await service.buy_tickets(second, "carol", 2)
    clock.advance(3600)
    await service.finalize_raffle(first, "carol")
    await service.cancel_raffle(second, "alice")
    await service.claim_refund(second, "carol")

    for event in await service.get_events(first):
        assert event.payload["raffle_id"] == first
        assert event.decode().raffle_id == first
    assert names(await service.get_events(second))[-2:] == ["ticket_refunded", "ticket_refunded"]


async def test_log_restore_truncates():
    log = InMemoryEventLog()
    await log.publish(("tikka", "contract_paused"), {"paused_by": "a", "timestamp": 1})
    mark = log.snapshot()
    await log.publish(("tikka", "contract_unpaused"), {"unpaused_by": "a", "timestamp": 2})
    log.restore(mark)
    assert names(await log.events()) == ["contract_paused"]
