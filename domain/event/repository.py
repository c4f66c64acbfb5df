"""
活动仓储接口
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Event


class EventRepository(ABC):
    """活动仓储抽象接口"""

    @abstractmethod
    async def get_by_id(self, event_id: int) -> Optional[Event]:
        """根据ID获取活动"""
        pass

    @abstractmethod
    async def create(self, event: Event) -> Event:
        """创建活动（仅供初始化数据与测试使用）"""
        pass

    @abstractmethod
    async def decrement_available(self, event_id: int, quantity: int) -> bool:
        """原子扣减库存：仅当 available >= quantity 时成功，返回是否扣减"""
        pass

    @abstractmethod
    async def increment_available(self, event_id: int, quantity: int) -> bool:
        """原子归还库存：仅当 available + quantity <= total 时成功，返回是否归还"""
        pass
