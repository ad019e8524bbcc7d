from typing import List

from fastapi import APIRouter, Depends, Query

from tikka.api.dependencies import get_current_account, get_raffle_service
from tikka.api.schemas import (
    AmountResponse,
    BuyTicketsRequest,
    BuyTicketsResponse,
    CancelRaffleRequest,
    CreateRaffleRequest,
    CreateRaffleResponse,
    EventResponse,
    ProvideRandomnessRequest,
    RaffleResponse,
    TicketsResponse,
    WinnerResponse,
)
from tikka.services.raffle_service import RaffleService

router = APIRouter(prefix="/raffles", tags=["raffles"])
events_router = APIRouter(prefix="/events", tags=["events"])


def _event_response(item) -> EventResponse:
    return EventResponse(
        seq=item.seq,
        namespace=item.topic[0],
        name=item.name,
        raffle_id=item.raffle_id,
        payload=item.payload,
    )


@router.post("", response_model=CreateRaffleResponse, status_code=201)
async def create_raffle(
    request: CreateRaffleRequest,
    account: str = Depends(get_current_account),
    service: RaffleService = Depends(get_raffle_service),
):
    """
    Create a raffle owned by the caller
    """
    raffle_id = await service.create(creator=account, **request.model_dump())
    return CreateRaffleResponse(raffle_id=raffle_id)


@router.get("", response_model=List[RaffleResponse])
async def list_raffles(service: RaffleService = Depends(get_raffle_service)):
    return [RaffleResponse.from_raffle(raffle) for raffle in await service.list_raffles()]


@router.get("/{raffle_id}", response_model=RaffleResponse)
async def get_raffle(raffle_id: int, service: RaffleService = Depends(get_raffle_service)):
    return RaffleResponse.from_raffle(await service.get_raffle(raffle_id))


@router.get("/{raffle_id}/tickets", response_model=TicketsResponse)
async def get_tickets(raffle_id: int, service: RaffleService = Depends(get_raffle_service)):
    """
    Buyers ordered by ticket ID (first entry holds ticket #1)
    """
    return TicketsResponse(raffle_id=raffle_id, buyers=await service.get_tickets(raffle_id))


@router.get("/{raffle_id}/events", response_model=List[EventResponse])
async def get_events(raffle_id: int, service: RaffleService = Depends(get_raffle_service)):
    await service.get_raffle(raffle_id)
    return [_event_response(item) for item in await service.get_events(raffle_id)]


@router.post("/{raffle_id}/deposit", status_code=204)
async def deposit_prize(
    raffle_id: int,
    account: str = Depends(get_current_account),
    service: RaffleService = Depends(get_raffle_service),
):
    await service.deposit_prize(raffle_id, account)


@router.post("/{raffle_id}/tickets", response_model=BuyTicketsResponse)
async def buy_tickets(
    raffle_id: int,
    request: BuyTicketsRequest,
    account: str = Depends(get_current_account),
    service: RaffleService = Depends(get_raffle_service),
):
    ticket_ids = await service.buy_tickets(raffle_id, account, request.quantity)
    return BuyTicketsResponse(ticket_ids=ticket_ids)


@router.post("/{raffle_id}/finalize", response_model=WinnerResponse)
async def finalize_raffle(
    raffle_id: int,
    account: str = Depends(get_current_account),
    service: RaffleService = Depends(get_raffle_service),
):
    """
    Trigger the draw; ``winner`` is empty while an oracle seed is pending
    or when the raffle was cancelled for lack of tickets
    """
    return WinnerResponse(winner=await service.finalize_raffle(raffle_id, account))


@router.post("/{raffle_id}/randomness", response_model=WinnerResponse)
async def provide_randomness(
    raffle_id: int,
    request: ProvideRandomnessRequest,
    account: str = Depends(get_current_account),
    service: RaffleService = Depends(get_raffle_service),
):
    return WinnerResponse(winner=await service.provide_randomness(raffle_id, account, request.seed))


@router.post("/{raffle_id}/cancel", status_code=204)
async def cancel_raffle(
    raffle_id: int,
    request: CancelRaffleRequest,
    account: str = Depends(get_current_account),
    service: RaffleService = Depends(get_raffle_service),
):
    await service.cancel_raffle(raffle_id, account, request.reason)


@router.post("/{raffle_id}/refund", response_model=AmountResponse)
async def claim_refund(
    raffle_id: int,
    account: str = Depends(get_current_account),
    service: RaffleService = Depends(get_raffle_service),
):
    return AmountResponse(amount=await service.claim_refund(raffle_id, account))


@router.post("/{raffle_id}/claim", response_model=AmountResponse)
async def claim_prize(
    raffle_id: int,
    account: str = Depends(get_current_account),
    service: RaffleService = Depends(get_raffle_service),
):
    """
    Claim the prize; returns the net amount after the platform fee
    """
    return AmountResponse(amount=await service.claim_prize(raffle_id, account))


@events_router.get("", response_model=List[EventResponse])
async def list_events(
    after_id: int = Query(0, ge=0),
    service: RaffleService = Depends(get_raffle_service),
):
    """
    Contract-wide event log, admin events included

    Indexers poll with the ``seq`` of the last event they applied.
    """
    return [_event_response(item) for item in await service.get_events(after_id=after_id)]
