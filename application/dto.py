"""
数据传输对象（DTO）- 应用层与表现层之间的数据传输
"""
from pydantic import BaseModel, EmailStr, Field, model_serializer
from typing import Optional, Any
from datetime import datetime, timezone

from domain.common.money import Money
from domain.ticket.entity import Ticket
from domain.wallet.entity import Wallet, WalletTransaction


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class MoneyDTO(DTOBase):
    """金额（最小货币单位）"""
    amount: int = Field(..., ge=0, description="最小货币单位，例如 kobo")
    currency: str

    @classmethod
    def from_money(cls, money: Money) -> "MoneyDTO":
        return cls(amount=money.amount, currency=money.currency)


# ---- 购买 ----

class PurchaseRequestDTO(DTOBase):
    """购票请求DTO"""
    event_id: int = Field(..., gt=0)
    quantity: int = Field(default=1, ge=1, le=20, description="购买数量")
    email: Optional[EmailStr] = Field(None, description="买家邮箱，缺省使用账号邮箱")


class PurchaseResultDTO(DTOBase):
    """购票发起结果"""
    payment_url: str
    reference: str
    amount: MoneyDTO
    expires_in: int


class TicketDTO(DTOBase):
    """票据响应DTO"""
    id: str
    ticket_number: str
    event_id: int
    user_id: int
    quantity: int
    price: MoneyDTO
    total_paid: MoneyDTO
    qr_payload: Optional[str]
    payment_reference: str
    payment_status: str
    status: str
    purchase_date: Optional[datetime]
    used_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_amount: Optional[MoneyDTO] = None

    @classmethod
    def from_entity(cls, ticket: Ticket) -> "TicketDTO":
        return cls(
            id=ticket.id,
            ticket_number=ticket.ticket_number,
            event_id=ticket.event_id,
            user_id=ticket.user_id,
            quantity=ticket.quantity,
            price=MoneyDTO.from_money(ticket.price),
            total_paid=MoneyDTO.from_money(ticket.total_paid),
            qr_payload=ticket.qr_payload,
            payment_reference=ticket.payment_reference,
            payment_status=ticket.payment_status.value,
            status=ticket.status.value,
            purchase_date=ticket.purchase_date,
            used_at=ticket.used_at,
            cancelled_at=ticket.cancelled_at,
            refunded_amount=MoneyDTO.from_money(ticket.refunded_amount) if ticket.refunded_amount else None,
        )


class ReconcileResultDTO(DTOBase):
    """支付核实结果；duplicate=True 表示幂等命中已有票据"""
    success: bool
    message: str
    ticket: Optional[TicketDTO] = None
    duplicate: bool = False


class VerificationResultDTO(DTOBase):
    """入场核验结果"""
    is_valid: bool
    message: str
    ticket: Optional[TicketDTO] = None


class CancelResultDTO(DTOBase):
    ticket: TicketDTO
    released_quantity: int


# ---- 退款 ----

class RefundRequestDTO(DTOBase):
    reason: str = Field(default="Requested by ticket holder", max_length=500)


class RefundQuoteDTO(DTOBase):
    ticket_id: str
    eligible: bool
    percentage: int
    amount: MoneyDTO
    message: str
    deadline: Optional[datetime] = None
    requires_approval: bool = False


class RefundResultDTO(DTOBase):
    ticket_id: str
    success: bool
    amount: MoneyDTO
    percentage: int
    reference: str
    message: str
    duplicate: bool = False


class RefundStatusDTO(DTOBase):
    """持票人查看退款状态：票据现状、已退金额与当前可退报价"""
    ticket_id: str
    ticket_number: str
    event_title: str
    event_date: datetime
    purchase_date: Optional[datetime]
    price: MoneyDTO
    payment_status: str
    ticket_status: str
    refunded_amount: Optional[MoneyDTO] = None
    refund_reference: Optional[str] = None
    refunded_at: Optional[datetime] = None
    eligibility: RefundQuoteDTO


class EventRefundSummaryDTO(DTOBase):
    event_id: int
    total_refunded: MoneyDTO
    tickets_processed: int
    failed_tickets: int


class RefundDeadlineDTO(DTOBase):
    percentage: int
    until: datetime


class RefundPolicyDTO(DTOBase):
    event_id: int
    event_date: datetime
    deadlines: list[RefundDeadlineDTO]


# ---- 钱包 ----

class WalletDTO(DTOBase):
    user_id: int
    balance: MoneyDTO
    is_active: bool
    last_transaction_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, wallet: Wallet) -> "WalletDTO":
        return cls(
            user_id=wallet.user_id,
            balance=MoneyDTO.from_money(wallet.balance),
            is_active=wallet.is_active,
            last_transaction_at=wallet.last_transaction_at,
        )


class WalletTransactionDTO(DTOBase):
    id: Optional[int]
    type: str
    amount: MoneyDTO
    balance_after: Optional[MoneyDTO]
    reference: str
    description: str
    status: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    related_ticket_id: Optional[str] = None
    related_event_id: Optional[int] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, tx: WalletTransaction) -> "WalletTransactionDTO":
        return cls(
            id=tx.id,
            type=tx.type.value,
            amount=MoneyDTO.from_money(tx.amount),
            balance_after=MoneyDTO.from_money(tx.balance_after) if tx.balance_after else None,
            reference=tx.reference,
            description=tx.description,
            status=tx.status.value,
            metadata=tx.metadata,
            related_ticket_id=tx.related_ticket_id,
            related_event_id=tx.related_event_id,
            created_at=tx.created_at,
        )
