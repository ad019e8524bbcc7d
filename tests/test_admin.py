import pytest

from tikka.core.clock import ManualClock
from tikka.core.errors import (
    AlreadyInitialized,
    AlreadyProcessed,
    ContractPaused,
    InvalidParameters,
    InvalidState,
    NotInitialized,
    Unauthorized,
)
from tikka.core.types import RandomnessSource
from tikka.services.raffle_service import RaffleService
from tikka.services.unit_of_work import InMemoryUnitOfWork
from tests.conftest import (
    ADMIN, CONTRACT, CREATOR, FUNDING, ORACLE, START, TOKEN, TREASURY, names, raffle_params
)


@pytest.fixture
def bare_service():
    uow = InMemoryUnitOfWork()
    uow.ledger.mint(TOKEN, CREATOR, FUNDING)
    uow.ledger.mint(TOKEN, "bob", FUNDING)
    return RaffleService(uow, ManualClock(now=START), contract_account=CONTRACT)


async def test_operations_require_initialization(bare_service):
    with pytest.raises(NotInitialized):
        await bare_service.create(**raffle_params())
    with pytest.raises(NotInitialized):
        await bare_service.set_fee(ADMIN, 100)


async def test_initialize_once(service):
    with pytest.raises(AlreadyInitialized):
        await service.initialize("someone-else")
    assert (await service.get_config()).admin == ADMIN


async def test_initialize_events_report_no_previous_value(service):
    events = await service.get_events()
    assert names(events) == ["fee_updated", "treasury_updated", "oracle_address_updated"]
    assert events[1].payload["old_treasury"] is None
    assert events[1].payload["new_treasury"] == TREASURY
    assert events[2].payload["old_oracle"] is None
    assert all(e.raffle_id is None for e in events)


async def test_initialize_rejects_fee_above_100_percent(bare_service):
    with pytest.raises(InvalidParameters):
        await bare_service.initialize(ADMIN, protocol_fee_bp=10001)


async def test_external_raffle_requires_oracle(bare_service):
    await bare_service.initialize(ADMIN)
    with pytest.raises(InvalidParameters):
        await bare_service.create(**raffle_params(randomness_source=RandomnessSource.EXTERNAL))


class TestSetters:
    async def test_set_fee(self, service):
        await service.set_fee(ADMIN, 500)
        assert (await service.get_config()).protocol_fee_bp == 500

        event = (await service.get_events())[-1]
        assert event.name == "fee_updated"
        assert (event.payload["old_fee_bp"], event.payload["new_fee_bp"]) == (250, 500)

    async def test_set_fee_bounds(self, service):
        with pytest.raises(InvalidParameters):
            await service.set_fee(ADMIN, 10001)

    async def test_admin_only(self, service):
        with pytest.raises(Unauthorized):
            await service.set_fee("bob", 0)
        with pytest.raises(Unauthorized):
            await service.set_oracle("bob", "bob")
        with pytest.raises(Unauthorized):
            await service.set_treasury("bob", "bob")
        with pytest.raises(Unauthorized):
            await service.pause("bob")

    async def test_set_treasury_and_oracle(self, service):
        await service.set_treasury(ADMIN, "vault")
        await service.set_oracle(ADMIN, "oracle-2")

        config = await service.get_config()
        assert (config.treasury, config.oracle_address) == ("vault", "oracle-2")

        treasury_event, oracle_event = (await service.get_events())[-2:]
        assert treasury_event.payload["old_treasury"] == TREASURY
        assert oracle_event.payload["old_oracle"] == ORACLE


class TestFees:
    async def test_fees_accrue_without_treasury(self, bare_service):
        service = bare_service
        await service.initialize(ADMIN, protocol_fee_bp=250)
        raffle_id = await service.create(**raffle_params(max_tickets=1))
        await service.deposit_prize(raffle_id, CREATOR)
        await service.buy_ticket(raffle_id, "bob")
        await service.finalize_raffle(raffle_id, "bob")

        assert await service.claim_prize(raffle_id, "bob") == 98
        assert (await service.get_config()).accrued_fees == {TOKEN: 2}
        claimed = [e for e in await service.get_events(raffle_id) if e.name == "prize_claimed"][0]
        assert claimed.payload["treasury"] is None

        assert await service.withdraw_fees(ADMIN, TOKEN, "vault") == 2
        assert await service.uow.ledger.balance(TOKEN, "vault") == 2
        assert (await service.get_config()).accrued_fees == {}
        assert (await service.get_events())[-1].name == "fees_withdrawn"

        with pytest.raises(InvalidParameters):
            await service.withdraw_fees(ADMIN, TOKEN, "vault")

    async def test_zero_fee_pays_full_prize(self, service, make_raffle):
        await service.set_fee(ADMIN, 0)
        raffle_id = await make_raffle(max_tickets=1)
        await service.buy_ticket(raffle_id, "bob")
        await service.finalize_raffle(raffle_id, "bob")
        assert await service.claim_prize(raffle_id, "bob") == 100
        assert await service.uow.ledger.balance(TOKEN, TREASURY) == 0

    async def test_full_fee_sends_everything_to_treasury(self, service, make_raffle):
        await service.set_fee(ADMIN, 10000)
        raffle_id = await make_raffle(max_tickets=1)
        await service.buy_ticket(raffle_id, "bob")
        await service.finalize_raffle(raffle_id, "bob")
        assert await service.claim_prize(raffle_id, "bob") == 0
        assert await service.uow.ledger.balance(TOKEN, TREASURY) == 100


class TestPause:
    async def test_pause_blocks_entry_operations(self, service, make_raffle):
        raffle_id = await make_raffle()
        proposed_id = await make_raffle(deposit=False)
        await service.pause(ADMIN)

        with pytest.raises(ContractPaused):
            await service.create(**raffle_params())
        with pytest.raises(ContractPaused):
            await service.deposit_prize(proposed_id, CREATOR)
        with pytest.raises(ContractPaused):
            await service.buy_ticket(raffle_id, "bob")

        await service.unpause(ADMIN)
        assert await service.buy_ticket(raffle_id, "bob") == 1

    async def test_exits_stay_open_while_paused(self, service, make_raffle):
        raffle_id = await make_raffle()
        await service.buy_ticket(raffle_id, "bob")
        await service.pause(ADMIN)

        await service.cancel_raffle(raffle_id, CREATOR)
        assert await service.claim_refund(raffle_id, "bob") == 10

    async def test_pause_twice(self, service):
        await service.pause(ADMIN)
        with pytest.raises(AlreadyProcessed):
            await service.pause(ADMIN)
        await service.unpause(ADMIN)
        with pytest.raises(AlreadyProcessed):
            await service.unpause(ADMIN)

        assert names(await service.get_events())[-2:] == ["contract_paused", "contract_unpaused"]


class TestAdminTransfer:
    async def test_two_step_handover(self, service):
        await service.propose_admin(ADMIN, "erin")
        with pytest.raises(Unauthorized):
            await service.accept_admin("mallory")

        await service.accept_admin("erin")
        config = await service.get_config()
        assert (config.admin, config.pending_admin) == ("erin", None)

        with pytest.raises(Unauthorized):
            await service.set_fee(ADMIN, 0)
        await service.set_fee("erin", 0)

        proposed, accepted = [
            e for e in await service.get_events()
            if e.name.startswith("admin_transfer")
        ]
        assert proposed.payload["proposed_admin"] == "erin"
        assert accepted.payload["old_admin"] == ADMIN

    async def test_accept_without_proposal(self, service):
        with pytest.raises(InvalidState):
            await service.accept_admin("erin")
