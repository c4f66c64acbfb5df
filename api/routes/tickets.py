"""
票据API路由 - 购票、支付核实、入场核验、取消
"""
from typing import List

from fastapi import APIRouter, Depends, Path

from api.dependencies import (
    CurrentUser,
    get_current_user,
    get_purchase_coordinator,
    get_ticket_service,
)
from application.dto import (
    CancelResultDTO,
    PurchaseRequestDTO,
    PurchaseResultDTO,
    ReconcileResultDTO,
    TicketDTO,
    VerificationResultDTO,
)
from application.services.purchase_coordinator import PurchaseCoordinator
from application.services.ticket_service import TicketApplicationService
from core.i18n import t
from core.response import Response as ApiResponse, success_response
from domain.common.exceptions import DomainValidationException


router = APIRouter(
    prefix="/tickets",
    tags=["Tickets"]
)


def _msg(key: str, default: str) -> str:
    return t(key, default=default)


@router.post("/purchase", summary="发起购票", response_model=ApiResponse[PurchaseResultDTO])
async def purchase(
    payload: PurchaseRequestDTO,
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: PurchaseCoordinator = Depends(get_purchase_coordinator),
):
    """
    发起购票并返回支付跳转地址

    - **event_id**: 活动ID
    - **quantity**: 购买数量（1-20）
    - **email**: 买家邮箱（可选，缺省使用令牌中的邮箱）

    发起阶段只做余票软检查，不占用库存。
    """
    email = payload.email or current_user.email
    if not email:
        raise DomainValidationException("Buyer email is required", field="email")
    result = await coordinator.initiate_purchase(payload.event_id, current_user.id, payload.quantity, email)
    return success_response(data=result, message=_msg("ticket.purchase.initiated", "Payment initialized"))


@router.get("/reconcile/{reference}", summary="核实支付并出票", response_model=ApiResponse[ReconcileResultDTO])
async def reconcile(
    reference: str = Path(..., min_length=1, max_length=100),
    current_user: CurrentUser = Depends(get_current_user),
    coordinator: PurchaseCoordinator = Depends(get_purchase_coordinator),
):
    """买家从支付页返回后轮询；与 webhook 共享同一幂等逻辑"""
    result = await coordinator.reconcile_payment(reference)
    return success_response(data=result, message=result.message)


@router.get("/verify/{code:path}", summary="入场核验", response_model=ApiResponse[VerificationResultDTO])
async def verify(
    code: str = Path(..., min_length=1, max_length=2048),
    current_user: CurrentUser = Depends(get_current_user),
    service: TicketApplicationService = Depends(get_ticket_service),
):
    """按票号或二维码载荷核验；有效票据被标记为已使用"""
    result = await service.verify_ticket(code)
    return success_response(data=result, message=result.message)


@router.post("/{ticket_id}/cancel", summary="取消票据", response_model=ApiResponse[CancelResultDTO])
async def cancel(
    ticket_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: TicketApplicationService = Depends(get_ticket_service),
):
    result = await service.cancel_ticket(ticket_id, current_user.id)
    return success_response(data=result, message=_msg("ticket.cancel.success", "Ticket cancelled"))


@router.get("/mine", summary="我的票据", response_model=ApiResponse[List[TicketDTO]])
async def my_tickets(
    current_user: CurrentUser = Depends(get_current_user),
    service: TicketApplicationService = Depends(get_ticket_service),
):
    tickets = await service.list_user_tickets(current_user.id)
    return success_response(data=tickets)


@router.get("/events/{event_id}", summary="活动售出票据（主办方）", response_model=ApiResponse[List[TicketDTO]])
async def event_tickets(
    event_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: TicketApplicationService = Depends(get_ticket_service),
):
    tickets = await service.list_event_tickets(event_id, organizer_id=current_user.id)
    return success_response(data=tickets)


@router.get("/by-reference/{reference}", summary="按支付流水号查询票据", response_model=ApiResponse[TicketDTO])
async def ticket_by_reference(
    reference: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: TicketApplicationService = Depends(get_ticket_service),
):
    ticket = await service.get_ticket_by_reference(reference, current_user.id)
    return success_response(data=ticket)


@router.get("/{ticket_id}", summary="票据详情", response_model=ApiResponse[TicketDTO])
async def get_ticket(
    ticket_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: TicketApplicationService = Depends(get_ticket_service),
):
    ticket = await service.get_ticket(ticket_id, current_user.id)
    return success_response(data=ticket)
