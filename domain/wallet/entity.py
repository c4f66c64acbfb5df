"""
钱包领域实体 - 余额与流水
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.common.money import Money
from domain.event.entity import ensure_utc


class TransactionType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"
    REFUND = "refund"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def refund_reference(payment_reference: str) -> str:
    """退款流水号与原支付流水号一一对应"""
    return f"REF-{payment_reference}"


@dataclass
class Wallet:
    id: Optional[int]
    user_id: int
    balance: Money
    is_active: bool = True
    last_transaction_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.last_transaction_at = ensure_utc(self.last_transaction_at)
        self.created_at = ensure_utc(self.created_at)

    @property
    def currency(self) -> str:
        return self.balance.currency


@dataclass
class WalletTransaction:
    """
    钱包流水

    业务规则：reference 全局唯一，重复入账由唯一索引拒绝
    """

    id: Optional[int]
    user_id: int
    type: TransactionType
    amount: Money
    reference: str
    description: str
    balance_after: Optional[Money] = None
    status: TransactionStatus = TransactionStatus.COMPLETED
    metadata: dict = field(default_factory=dict)
    related_ticket_id: Optional[str] = None
    related_event_id: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.reference:
            raise DomainValidationException("Transaction reference is required", field="reference")
        if self.metadata is None:
            self.metadata = {}
        self.created_at = ensure_utc(self.created_at)
