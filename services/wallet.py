import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.models import (
    OwnerType,
    PaymentTransaction,
    Seller,
    TransactionDirection,
    TransactionGateway,
    TransactionStatus,
    Wallet,
)
from services.errors import BusinessRuleError, InsufficientBalance, NotFound, ValidationFailed


class WalletService:
    """
    Balance mutations and their ledger rows.

    Nothing here commits: the caller owns the transaction, so the balance
    change, the ledger row and the rest of the caller's work land together.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_wallet(self, owner_type: OwnerType, owner_id: uuid.UUID, lock: bool = False) -> Wallet | None:
        query = select(Wallet).where(Wallet.owner_type == owner_type, Wallet.owner_id == owner_id)
        if lock:
            query = query.with_for_update()
        return (await self.session.execute(query)).scalar_one_or_none()

    async def ensure_wallet(self, owner_type: OwnerType, owner_id: uuid.UUID, lock: bool = False) -> Wallet:
        wallet = await self.get_wallet(owner_type, owner_id, lock=lock)
        if wallet is None:
            wallet = Wallet(
                owner_type=owner_type,
                owner_id=owner_id,
                balance_minor=0,
                total_spent_minor=0,
                total_earned_minor=0,
                total_withdrawn_minor=0,
            )
            self.session.add(wallet)
            await self.session.flush()
        return wallet

    async def debit(
        self,
        owner_type: OwnerType,
        owner_id: uuid.UUID,
        amount_minor: int,
        gateway: TransactionGateway,
        description: str,
        review_request_id: uuid.UUID | None = None,
        gst_amount_minor: int = 0,
        base_amount_minor: int | None = None,
        reference_id: uuid.UUID | None = None,
        reference_type: str | None = None,
        status: TransactionStatus = TransactionStatus.SUCCESS,
        count_as_spent: bool = False,
        count_as_withdrawn: bool = False,
    ) -> PaymentTransaction:
        if amount_minor <= 0:
            raise ValidationFailed("Amount must be positive")

        wallet = await self.get_wallet(owner_type, owner_id, lock=True)
        available = wallet.balance_minor if wallet else 0
        if wallet is None or wallet.balance_minor < amount_minor:
            raise InsufficientBalance(amount_minor, available)

        wallet.balance_minor -= amount_minor
        if count_as_spent:
            wallet.total_spent_minor += amount_minor
        if count_as_withdrawn:
            wallet.total_withdrawn_minor += amount_minor

        tx = PaymentTransaction(
            owner_type=owner_type,
            owner_id=owner_id,
            review_request_id=review_request_id,
            direction=TransactionDirection.DEBIT,
            amount_minor=amount_minor,
            base_amount_minor=base_amount_minor,
            gst_amount_minor=gst_amount_minor,
            balance_after_minor=wallet.balance_minor,
            gateway=gateway,
            reference_id=reference_id,
            reference_type=reference_type,
            status=status,
            description=description,
        )
        self.session.add(tx)
        await self.session.flush()
        logging.info(f"Wallet debit {owner_type.value}:{owner_id} amount={amount_minor} balance={wallet.balance_minor}")
        return tx

    async def credit(
        self,
        owner_type: OwnerType,
        owner_id: uuid.UUID,
        amount_minor: int,
        gateway: TransactionGateway,
        description: str,
        review_request_id: uuid.UUID | None = None,
        reference_id: uuid.UUID | None = None,
        reference_type: str | None = None,
        count_as_earned: bool = False,
        undo_spent: bool = False,
        undo_withdrawn: bool = False,
    ) -> PaymentTransaction:
        if amount_minor <= 0:
            raise ValidationFailed("Amount must be positive")

        wallet = await self.ensure_wallet(owner_type, owner_id, lock=True)
        wallet.balance_minor += amount_minor
        if count_as_earned:
            wallet.total_earned_minor += amount_minor
        if undo_spent:
            wallet.total_spent_minor = max(0, wallet.total_spent_minor - amount_minor)
        if undo_withdrawn:
            wallet.total_withdrawn_minor = max(0, wallet.total_withdrawn_minor - amount_minor)

        tx = PaymentTransaction(
            owner_type=owner_type,
            owner_id=owner_id,
            review_request_id=review_request_id,
            direction=TransactionDirection.CREDIT,
            amount_minor=amount_minor,
            gst_amount_minor=0,
            balance_after_minor=wallet.balance_minor,
            gateway=gateway,
            reference_id=reference_id,
            reference_type=reference_type,
            status=TransactionStatus.SUCCESS,
            description=description,
        )
        self.session.add(tx)
        await self.session.flush()
        logging.info(f"Wallet credit {owner_type.value}:{owner_id} amount={amount_minor} balance={wallet.balance_minor}")
        return tx

    async def add_spent(self, owner_type: OwnerType, owner_id: uuid.UUID, amount_minor: int) -> None:
        """Account money paid through a gateway, which never touches the balance."""
        wallet = await self.ensure_wallet(owner_type, owner_id, lock=True)
        wallet.total_spent_minor += amount_minor

    async def history(self, owner_type: OwnerType, owner_id: uuid.UUID, limit: int = 100) -> list[PaymentTransaction]:
        query = (
            select(PaymentTransaction)
            .where(PaymentTransaction.owner_type == owner_type, PaymentTransaction.owner_id == owner_id)
            .order_by(PaymentTransaction.created_at.desc())
            .limit(limit)
        )
        return list((await self.session.execute(query)).scalars().all())

    async def adjust_seller_wallet(
        self,
        seller_id: uuid.UUID,
        amount_minor: int,
        direction: TransactionDirection,
        note: str | None = None,
    ) -> PaymentTransaction:
        """Admin top-up or deduction. Commits."""
        seller = await self.session.get(Seller, seller_id)
        if not seller:
            raise NotFound("Seller not found")

        description = note or "Admin wallet adjustment"
        try:
            if direction == TransactionDirection.CREDIT:
                tx = await self.credit(OwnerType.SELLER, seller_id, amount_minor, TransactionGateway.ADMIN, description)
            elif direction == TransactionDirection.DEBIT:
                tx = await self.debit(OwnerType.SELLER, seller_id, amount_minor, TransactionGateway.ADMIN, description)
            else:
                raise BusinessRuleError(f"Unknown direction {direction}")
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return tx
