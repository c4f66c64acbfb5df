"""
退款策略引擎 - 纯函数，不访问存储与时钟以外的任何状态
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from domain.common.money import Money
from domain.event.entity import EventStatus, ensure_utc
from domain.ticket.entity import TicketStatus


# (剩余天数严格大于 threshold, 退款百分比)，按阈值从高到低
REFUND_TIERS: tuple[tuple[int, int], ...] = ((7, 100), (3, 50), (1, 25))

_TIER_REASONS = {
    100: "Full refund available up to 7 days before event",
    50: "50% refund available up to 3 days before event",
    25: "25% refund available up to 1 day before event",
}

_DAY_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class RefundOutcome:
    eligible: bool
    percentage: int
    reason: str
    deadline: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "eligible": self.eligible,
            "percentage": self.percentage,
            "reason": self.reason,
            "deadline": self.deadline.isoformat() if self.deadline else None,
        }


@dataclass(frozen=True)
class RefundDeadline:
    percentage: int
    until: datetime


def days_until(event_date: datetime, now: datetime) -> int:
    """ceil((event_date - now) / 1 day)"""
    delta = (ensure_utc(event_date) - ensure_utc(now)).total_seconds()
    return math.ceil(delta / _DAY_SECONDS)


class RefundPolicyEngine:
    """
    退款资格判定

    规则（按优先级）：
    1. 已使用 -> 不可退
    2. 已取消 -> 不可退
    3. 主办方取消活动 -> 全额退
    4. 距活动 >7 天 100%，>3 天 50%，>1 天 25%，0..1 天不可退，已过期不可退
    """

    @staticmethod
    def evaluate(
        event_date: datetime,
        purchase_date: Optional[datetime],
        ticket_status: TicketStatus | str,
        event_status: EventStatus | str,
        now: Optional[datetime] = None,
    ) -> RefundOutcome:
        now = ensure_utc(now) or datetime.now(timezone.utc)
        ticket_status = TicketStatus(ticket_status)
        event_status = EventStatus(event_status)

        if ticket_status == TicketStatus.USED:
            return RefundOutcome(False, 0, "Ticket has already been used")
        if ticket_status == TicketStatus.CANCELLED:
            return RefundOutcome(False, 0, "Ticket is already cancelled")
        if event_status == EventStatus.CANCELLED:
            return RefundOutcome(True, 100, "Event cancelled by organizer - full refund")

        days = days_until(event_date, now)
        for threshold, percentage in REFUND_TIERS:
            if days > threshold:
                deadline = ensure_utc(event_date) - timedelta(days=threshold)
                return RefundOutcome(True, percentage, _TIER_REASONS[percentage], deadline)
        if days >= 0:
            return RefundOutcome(False, 0, "Refunds not available within 24 hours of event")
        return RefundOutcome(False, 0, "Event has already passed")

    @staticmethod
    def refund_amount(paid: Money, outcome: RefundOutcome) -> Money:
        """统一舍入规则：最小货币单位四舍五入（half-up）"""
        if not outcome.eligible:
            return Money.zero(paid.currency)
        return paid.percent(outcome.percentage)

    @staticmethod
    def schedule(event_date: datetime) -> list[RefundDeadline]:
        """各档退款截止时间，供展示"""
        event_date = ensure_utc(event_date)
        return [
            RefundDeadline(percentage, event_date - timedelta(days=threshold))
            for threshold, percentage in REFUND_TIERS
        ]
