"""
钱包API路由（只读）
"""
from typing import List

from fastapi import APIRouter, Depends, Query

from api.dependencies import CurrentUser, get_current_user, get_wallet_service
from application.dto import WalletDTO, WalletTransactionDTO
from application.services.wallet_service import WalletApplicationService
from core.config import settings
from core.response import Response as ApiResponse, success_response


router = APIRouter(
    prefix="/wallet",
    tags=["Wallet"]
)


@router.get("", summary="钱包余额", response_model=ApiResponse[WalletDTO])
async def get_wallet(
    current_user: CurrentUser = Depends(get_current_user),
    service: WalletApplicationService = Depends(get_wallet_service),
):
    wallet = await service.get_wallet(current_user.id)
    return success_response(data=wallet)


@router.get("/transactions", summary="钱包流水", response_model=ApiResponse[List[WalletTransactionDTO]])
async def list_transactions(
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    current_user: CurrentUser = Depends(get_current_user),
    service: WalletApplicationService = Depends(get_wallet_service),
):
    txs = await service.list_transactions(current_user.id, skip=skip, limit=limit)
    return success_response(data=txs)
