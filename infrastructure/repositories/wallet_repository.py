"""
钱包仓储实现 - 余额原子累加与流水写入
"""
from typing import Optional, List
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from domain.common.exceptions import DomainValidationException, WalletInactiveException
from domain.common.money import Money
from domain.wallet.entity import (
    Wallet, WalletTransaction, TransactionType, TransactionStatus
)
from domain.wallet.repository import WalletRepository, DuplicateTransactionError
from infrastructure.models.wallet import WalletModel, WalletTransactionModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyWalletRepository(WalletRepository):
    """钱包仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: WalletModel) -> Wallet:
        return Wallet(
            id=model.id,
            user_id=model.user_id,
            balance=Money(int(model.balance), model.currency),
            is_active=model.is_active,
            last_transaction_at=model.last_transaction_at,
            created_at=model.created_at,
        )

    def _tx_to_entity(self, model: WalletTransactionModel) -> WalletTransaction:
        return WalletTransaction(
            id=model.id,
            user_id=model.user_id,
            type=TransactionType(model.type),
            amount=Money(int(model.amount), model.currency),
            reference=model.reference,
            description=model.description,
            balance_after=Money(int(model.balance_after), model.currency) if model.balance_after is not None else None,
            status=TransactionStatus(model.status),
            metadata=model.extra_metadata or {},
            related_ticket_id=model.related_ticket_id,
            related_event_id=model.related_event_id,
            created_at=model.created_at,
        )

    async def _get_model(self, user_id: int) -> Optional[WalletModel]:
        result = await self.session.execute(
            select(WalletModel)
            .where(WalletModel.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_user(self, user_id: int) -> Optional[Wallet]:
        db_wallet = await self._get_model(user_id)
        return self._to_entity(db_wallet) if db_wallet else None

    async def get_or_create(self, user_id: int, currency: str) -> Wallet:
        db_wallet = await self._get_model(user_id)
        if db_wallet is not None:
            return self._to_entity(db_wallet)
        try:
            async with self.session.begin_nested():
                db_wallet = WalletModel(user_id=user_id, balance=0, currency=currency, is_active=True)
                self.session.add(db_wallet)
                await self.session.flush()
        except IntegrityError:
            # 并发创建：使用已存在的钱包
            db_wallet = await self._get_model(user_id)
            if db_wallet is None:
                raise
        else:
            logger.info("wallet_created", user_id=user_id, currency=currency)
        return self._to_entity(db_wallet)

    async def credit(self, transaction: WalletTransaction) -> WalletTransaction:
        wallet = await self.get_or_create(transaction.user_id, transaction.amount.currency)
        if not wallet.is_active:
            raise WalletInactiveException(transaction.user_id)
        if wallet.currency != transaction.amount.currency:
            raise DomainValidationException(
                f"Currency mismatch: wallet {wallet.currency}, transaction {transaction.amount.currency}",
                field="currency",
            )

        now = transaction.created_at or datetime.now(timezone.utc)
        db_tx = WalletTransactionModel(
            user_id=transaction.user_id,
            wallet_id=wallet.id,
            type=transaction.type.value,
            amount=transaction.amount.amount,
            currency=transaction.amount.currency,
            description=transaction.description,
            reference=transaction.reference,
            status=transaction.status.value,
            extra_metadata=transaction.metadata,
            related_ticket_id=transaction.related_ticket_id,
            related_event_id=transaction.related_event_id,
            created_at=now,
        )
        # 先写流水：唯一流水号先于余额变更拦截重复入账
        try:
            async with self.session.begin_nested():
                self.session.add(db_tx)
                await self.session.flush()
        except IntegrityError as exc:
            logger.warning("wallet_transaction_duplicate", reference=transaction.reference)
            raise DuplicateTransactionError(transaction.reference) from exc

        await self.session.execute(
            update(WalletModel)
            .where(WalletModel.id == wallet.id)
            .values(
                balance=WalletModel.balance + transaction.amount.amount,
                last_transaction_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        db_wallet = await self._get_model(transaction.user_id)
        db_tx.balance_after = db_wallet.balance
        await self.session.flush()
        logger.info(
            "wallet_credited",
            user_id=transaction.user_id,
            amount=transaction.amount.amount,
            reference=transaction.reference,
            balance_after=int(db_wallet.balance),
        )
        return self._tx_to_entity(db_tx)

    async def get_transaction_by_reference(self, reference: str) -> Optional[WalletTransaction]:
        result = await self.session.execute(
            select(WalletTransactionModel).where(WalletTransactionModel.reference == reference)
        )
        db_tx = result.scalar_one_or_none()
        return self._tx_to_entity(db_tx) if db_tx else None

    async def list_transactions(self, user_id: int, skip: int = 0, limit: int = 50) -> List[WalletTransaction]:
        result = await self.session.execute(
            select(WalletTransactionModel)
            .where(WalletTransactionModel.user_id == user_id)
            .order_by(WalletTransactionModel.created_at.desc(), WalletTransactionModel.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return [self._tx_to_entity(m) for m in result.scalars().all()]
