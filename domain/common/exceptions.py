"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
        message_key: Optional[str] = None,
        format_params: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        self.message_key = message_key
        self.format_params = format_params
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
        message_key: str | None = None,
        format_params: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
            message_key=message_key or "validation.domain",
            format_params=format_params,
        )


# ---- NotFound ----

class NotFoundException(BusinessException):
    def __init__(
        self,
        message: str = "Resource not found",
        *,
        code: int = BusinessCode.NOT_FOUND,
        error_type: str = "NotFound",
        details: Optional[dict] = None,
        message_key: Optional[str] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=details,
            message_key=message_key or "resource.not_found",
        )


class EventNotFoundException(NotFoundException):
    def __init__(self, event_id: Optional[int] = None):
        super().__init__(
            "Event not found",
            code=BusinessCode.EVENT_NOT_FOUND,
            error_type="EventNotFound",
            details={"event_id": event_id} if event_id is not None else None,
            message_key="event.not_found",
        )


class TicketNotFoundException(NotFoundException):
    def __init__(self, ticket_id: Optional[str] = None, *, ticket_number: Optional[str] = None):
        details = {}
        if ticket_id is not None:
            details["ticket_id"] = ticket_id
        if ticket_number is not None:
            details["ticket_number"] = ticket_number
        super().__init__(
            "Ticket not found",
            code=BusinessCode.TICKET_NOT_FOUND,
            error_type="TicketNotFound",
            details=details or None,
            message_key="ticket.not_found",
        )


class IntentExpiredOrUnknownException(NotFoundException):
    """支付意向不存在或已过期（不代表支付失败）"""

    def __init__(self, reference: str):
        super().__init__(
            "Payment session expired or unknown reference",
            code=BusinessCode.INTENT_EXPIRED_OR_UNKNOWN,
            error_type="IntentExpiredOrUnknown",
            details={"reference": reference},
            message_key="payment.intent.unknown",
        )


# ---- InvalidState ----

class InvalidStateException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        code: int = BusinessCode.INVALID_STATE,
        error_type: str = "InvalidState",
        details: Optional[dict] = None,
        message_key: Optional[str] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=details,
            field="status",
            message_key=message_key or "state.invalid",
        )


class InvalidTicketTransitionException(InvalidStateException):
    def __init__(self, ticket_id: Optional[str], current: str, target: str, reason: Optional[str] = None):
        super().__init__(
            reason or f"Cannot move ticket from {current} to {target}",
            error_type="InvalidTicketTransition",
            details={"ticket_id": ticket_id, "from": current, "to": target},
            message_key="ticket.transition.invalid",
        )


class TicketAlreadyUsedException(InvalidStateException):
    def __init__(self, ticket_number: str, used_at=None):
        super().__init__(
            "Ticket has already been used",
            code=BusinessCode.TICKET_ALREADY_USED,
            error_type="TicketAlreadyUsed",
            details={
                "ticket_number": ticket_number,
                "used_at": used_at.isoformat() if used_at else None,
            },
            message_key="ticket.already_used",
        )


class RefundNotEligibleException(InvalidStateException):
    def __init__(self, ticket_id: str, reason: str):
        super().__init__(
            reason,
            code=BusinessCode.REFUND_NOT_ELIGIBLE,
            error_type="RefundNotEligible",
            details={"ticket_id": ticket_id, "reason": reason},
            message_key="refund.not_eligible",
        )


class EventNotOnSaleException(InvalidStateException):
    def __init__(self, event_id: int, status: str):
        super().__init__(
            "Event is not available for purchase",
            code=BusinessCode.EVENT_NOT_ON_SALE,
            error_type="EventNotOnSale",
            details={"event_id": event_id, "status": status},
            message_key="event.not_on_sale",
        )


class WalletInactiveException(InvalidStateException):
    def __init__(self, user_id: int):
        super().__init__(
            "Wallet is inactive",
            code=BusinessCode.WALLET_INACTIVE,
            error_type="WalletInactive",
            details={"user_id": user_id},
            message_key="wallet.inactive",
        )


# ---- Inventory ----

class InsufficientInventoryException(BusinessException):
    """购买发起时余票不足（无副作用）"""

    def __init__(self, event_id: int, requested: int, available: int):
        super().__init__(
            code=BusinessCode.INSUFFICIENT_INVENTORY,
            message=f"Only {available} tickets available",
            error_type="InsufficientInventory",
            details={"event_id": event_id, "requested": requested, "available": available},
            field="quantity",
            message_key="inventory.insufficient",
            format_params={"available": available},
        )


class InventoryExhaustedException(BusinessException):
    """支付已成功但出票时原子扣减失败，需要人工对账"""

    def __init__(self, event_id: int, requested: int, *, reference: Optional[str] = None):
        super().__init__(
            code=BusinessCode.INVENTORY_EXHAUSTED,
            message="Tickets sold out before payment could be fulfilled",
            error_type="InventoryExhausted",
            details={"event_id": event_id, "requested": requested, "reference": reference},
            message_key="inventory.exhausted",
        )


# ---- Payment ----

class PaymentNotSuccessfulException(BusinessException):
    def __init__(self, reference: str, status: str, *, reason: Optional[str] = None):
        details = {"reference": reference, "status": status}
        if reason:
            details["reason"] = reason
        super().__init__(
            code=BusinessCode.PAYMENT_NOT_SUCCESSFUL,
            message="Payment verification failed",
            error_type="PaymentNotSuccessful",
            details=details,
            message_key="payment.not_successful",
        )


class TransientUpstreamFailure(BusinessException):
    """网关/缓存超时或 5xx；状态未改变，可安全重试"""

    def __init__(self, upstream: str, message: str = "Upstream temporarily unavailable", *, details: Optional[dict] = None):
        super().__init__(
            code=BusinessCode.UPSTREAM_TRANSIENT,
            message=message,
            error_type="TransientUpstreamFailure",
            details={"upstream": upstream, **(details or {})},
            message_key="upstream.unavailable",
        )


# ---- Ownership ----

class TicketOwnershipException(BusinessException):
    def __init__(self, ticket_id: str):
        super().__init__(
            code=BusinessCode.NOT_TICKET_OWNER,
            message="Unauthorized to act on this ticket",
            error_type="Unauthorized",
            details={"ticket_id": ticket_id},
            message_key="ticket.not_owner",
        )


class EventOrganizerRequiredException(BusinessException):
    def __init__(self, event_id: int):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message="Only the event organizer can perform this action",
            error_type="Forbidden",
            details={"event_id": event_id},
            message_key="event.organizer_required",
        )


class RefundApprovalRequiredException(BusinessException):
    """活动未被主办方取消时，持票人只能申请报价，退款需主办方审批"""

    def __init__(self, ticket_id: str, event_id: int):
        super().__init__(
            code=BusinessCode.REFUND_APPROVAL_REQUIRED,
            message="Refund requires approval by the event organizer",
            error_type="Forbidden",
            details={"ticket_id": ticket_id, "event_id": event_id},
            message_key="refund.approval_required",
        )
