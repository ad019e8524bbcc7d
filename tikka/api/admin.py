from fastapi import APIRouter, Depends

from tikka.api.dependencies import get_current_account, get_raffle_service
from tikka.api.schemas import (
    AmountResponse,
    ConfigResponse,
    FeeRequest,
    InitializeRequest,
    OracleRequest,
    ProposeAdminRequest,
    TreasuryRequest,
    WithdrawFeesRequest,
)
from tikka.services.raffle_service import RaffleService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/config", response_model=ConfigResponse)
async def get_config(service: RaffleService = Depends(get_raffle_service)):
    config = await service.get_config()
    return ConfigResponse(**config.model_dump())


@router.post("/initialize", response_model=ConfigResponse, status_code=201)
async def initialize(
    request: InitializeRequest,
    account: str = Depends(get_current_account),
    service: RaffleService = Depends(get_raffle_service),
):
    """
    One-time setup; the caller becomes admin
    """
    config = await service.initialize(account, **request.model_dump())
    return ConfigResponse(**config.model_dump())


@router.post("/oracle", status_code=204)
async def set_oracle(
    request: OracleRequest,
    account: str = Depends(get_current_account),
    service: RaffleService = Depends(get_raffle_service),
):
    await service.set_oracle(account, request.oracle)


@router.post("/fee", status_code=204)
async def set_fee(
    request: FeeRequest,
    account: str = Depends(get_current_account),
    service: RaffleService = Depends(get_raffle_service),
):
    await service.set_fee(account, request.fee_bp)


@router.post("/treasury", status_code=204)
async def set_treasury(
    request: TreasuryRequest,
    account: str = Depends(get_current_account),
    service: RaffleService = Depends(get_raffle_service),
):
    await service.set_treasury(account, request.treasury)


@router.post("/fees/withdraw", response_model=AmountResponse)
async def withdraw_fees(
    request: WithdrawFeesRequest,
    account: str = Depends(get_current_account),
    service: RaffleService = Depends(get_raffle_service),
):
    amount = await service.withdraw_fees(account, request.token, request.recipient)
    return AmountResponse(amount=amount)


@router.post("/pause", status_code=204)
async def pause(
    account: str = Depends(get_current_account),
    service: RaffleService = Depends(get_raffle_service),
):
    await service.pause(account)


@router.post("/unpause", status_code=204)
async def unpause(
    account: str = Depends(get_current_account),
    service: RaffleService = Depends(get_raffle_service),
):
    await service.unpause(account)


@router.post("/propose", status_code=204)
async def propose_admin(
    request: ProposeAdminRequest,
    account: str = Depends(get_current_account),
    service: RaffleService = Depends(get_raffle_service),
):
    await service.propose_admin(account, request.new_admin)


@router.post("/accept", status_code=204)
async def accept_admin(
    account: str = Depends(get_current_account),
    service: RaffleService = Depends(get_raffle_service),
):
    await service.accept_admin(account)
