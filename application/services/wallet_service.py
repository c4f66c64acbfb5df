"""
钱包应用服务（只读）
"""
from typing import Callable, List

from application.dto import WalletDTO, WalletTransactionDTO
from domain.common.money import Money
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.wallet.entity import Wallet


class WalletApplicationService:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork], *, currency: str = "NGN"):
        self._uow_factory = uow_factory
        self._currency = currency

    async def get_wallet(self, user_id: int) -> WalletDTO:
        async with self._uow_factory(readonly=True) as uow:
            wallet = await uow.wallet_repository.get_by_user(user_id)
        if wallet is None:
            # 尚未发生任何入账的用户视为零余额
            wallet = Wallet(id=None, user_id=user_id, balance=Money.zero(self._currency))
        return WalletDTO.from_entity(wallet)

    async def list_transactions(self, user_id: int, skip: int = 0, limit: int = 50) -> List[WalletTransactionDTO]:
        async with self._uow_factory(readonly=True) as uow:
            txs = await uow.wallet_repository.list_transactions(user_id, skip=skip, limit=limit)
        return [WalletTransactionDTO.from_entity(tx) for tx in txs]
