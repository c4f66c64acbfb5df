"""
退款API路由 - 报价、单张退款、活动级退款、退款政策
"""
from fastapi import APIRouter, Depends, Query

from api.dependencies import CurrentUser, get_current_user, get_refund_service
from application.dto import (
    EventRefundSummaryDTO,
    RefundPolicyDTO,
    RefundQuoteDTO,
    RefundRequestDTO,
    RefundResultDTO,
    RefundStatusDTO,
)
from application.services.refund_service import RefundApplicationService
from core.response import Response as ApiResponse, success_response
from infrastructure.tasks.utils.dispatcher import TaskDispatcher


router = APIRouter(
    prefix="/refunds",
    tags=["Refunds"]
)


@router.get("/tickets/{ticket_id}/quote", summary="退款报价", response_model=ApiResponse[RefundQuoteDTO])
async def quote(
    ticket_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: RefundApplicationService = Depends(get_refund_service),
):
    result = await service.quote_refund(ticket_id, current_user.id)
    return success_response(data=result, message=result.message)


@router.get("/tickets/{ticket_id}/status", summary="退款状态", response_model=ApiResponse[RefundStatusDTO])
async def refund_status(
    ticket_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: RefundApplicationService = Depends(get_refund_service),
):
    result = await service.get_refund_status(ticket_id, current_user.id)
    return success_response(data=result)


@router.post("/tickets/{ticket_id}", summary="处理退款", response_model=ApiResponse[RefundResultDTO])
async def refund_ticket(
    ticket_id: str,
    payload: RefundRequestDTO,
    current_user: CurrentUser = Depends(get_current_user),
    service: RefundApplicationService = Depends(get_refund_service),
):
    """
    退款按距离活动开始的时间分档：

    - 7 天以上：100%
    - 3-7 天：50%
    - 1-3 天：25%
    - 不足 24 小时：不可退款

    退款金额记入钱包。主办方可直接处理；持票人仅在活动被主办方取消后可自助退款，
    其余情况请先查看报价并等待主办方审批。
    """
    result = await service.process_refund(ticket_id, payload.reason, user_id=current_user.id)
    return success_response(data=result, message=result.message)


@router.post("/events/{event_id}", summary="活动级退款", response_model=ApiResponse[EventRefundSummaryDTO])
async def refund_event(
    event_id: int,
    payload: RefundRequestDTO,
    background: bool = Query(False, description="交由后台任务处理"),
    current_user: CurrentUser = Depends(get_current_user),
    service: RefundApplicationService = Depends(get_refund_service),
):
    """主办方取消活动后为所有已支付票据退款"""
    if background:
        await service.authorize_event_refund(event_id, current_user.id)
        TaskDispatcher().refund_event(event_id, payload.reason)
        return success_response(data=None, message="Event refunds scheduled")
    result = await service.refund_event(event_id, payload.reason, organizer_id=current_user.id)
    return success_response(data=result, message="Event refunds processed")


@router.get("/policy/{event_id}", summary="退款政策", response_model=ApiResponse[RefundPolicyDTO])
async def refund_policy(
    event_id: int,
    service: RefundApplicationService = Depends(get_refund_service),
):
    result = await service.refund_policy(event_id)
    return success_response(data=result)
