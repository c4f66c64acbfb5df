"""
钱包仓储接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import Wallet, WalletTransaction


class WalletRepository(ABC):
    """钱包仓储抽象接口"""

    @abstractmethod
    async def get_by_user(self, user_id: int) -> Optional[Wallet]:
        pass

    @abstractmethod
    async def get_or_create(self, user_id: int, currency: str) -> Wallet:
        pass

    @abstractmethod
    async def credit(self, transaction: WalletTransaction) -> WalletTransaction:
        """
        原子入账：余额增加与流水写入在同一事务中完成

        reference 重复时抛出 DuplicateTransactionError，调用方决定如何处理
        """
        pass

    @abstractmethod
    async def get_transaction_by_reference(self, reference: str) -> Optional[WalletTransaction]:
        pass

    @abstractmethod
    async def list_transactions(self, user_id: int, skip: int = 0, limit: int = 50) -> List[WalletTransaction]:
        pass


class DuplicateTransactionError(Exception):
    """流水号重复（同一笔退款重复入账）"""

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Duplicate wallet transaction reference: {reference}")
