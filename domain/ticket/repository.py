"""
票据仓储接口 - 定义票据数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List, Tuple

from .entity import Ticket, TicketStatus, TicketPaymentStatus


class TicketRepository(ABC):
    """票据仓储抽象接口"""

    @abstractmethod
    async def add_if_absent(self, ticket: Ticket) -> Tuple[Ticket, bool]:
        """
        按 payment_reference 幂等插入

        Returns:
            (票据, 是否新建)；已存在时返回已有票据且不做任何修改
        """
        pass

    @abstractmethod
    async def get_by_id(self, ticket_id: str) -> Optional[Ticket]:
        pass

    @abstractmethod
    async def get_by_number(self, ticket_number: str) -> Optional[Ticket]:
        pass

    @abstractmethod
    async def get_by_payment_reference(self, reference: str) -> Optional[Ticket]:
        pass

    @abstractmethod
    async def list_by_user(self, user_id: int, skip: int = 0, limit: int = 100) -> List[Ticket]:
        pass

    @abstractmethod
    async def list_by_event(
        self,
        event_id: int,
        *,
        payment_status: Optional[TicketPaymentStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Ticket]:
        pass

    @abstractmethod
    async def update_if_state(
        self,
        ticket: Ticket,
        *,
        expected_status: TicketStatus,
        expected_payment_status: TicketPaymentStatus,
    ) -> bool:
        """
        条件更新（compare-and-set）

        仅当数据库中的状态仍为期望值时写入 ticket 的当前字段，返回是否写入成功
        """
        pass
