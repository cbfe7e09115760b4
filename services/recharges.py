import logging
import uuid
from dataclasses import dataclass
from datetime import date
from urllib.parse import urlparse

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.models import (
    OwnerType,
    PaymentTransaction,
    RechargeStatus,
    Seller,
    TransactionGateway,
    WalletRechargeRequest,
)
from api.security import AuthContext
from config import ENV, get_env
from services.errors import BusinessRuleError, NotFound, ValidationFailed
from services.pricing import rupees_to_minor
from services.wallet import WalletService
from utils.clock import utcnow

RECHARGE_REFERENCE = "wallet_recharge"


@dataclass
class RechargeDraft:
    amount_minor: int
    utr_number: str
    transfer_date: date | None
    screenshot_url: str


@dataclass
class RechargeApproval:
    recharge: WalletRechargeRequest
    transaction: PaymentTransaction


class RechargeService:
    """Seller wallet top-ups paid by bank transfer and confirmed by an admin."""

    def __init__(self, session: AsyncSession, env: ENV | None = None):
        self.session = session
        self.env = env or get_env()
        self.wallets = WalletService(session)

    def _validate(self, draft: RechargeDraft) -> RechargeDraft:
        min_minor = rupees_to_minor(self.env.MIN_RECHARGE)
        max_minor = rupees_to_minor(self.env.MAX_RECHARGE)
        if draft.amount_minor < min_minor:
            raise ValidationFailed(f"Minimum amount to add is {self.env.MIN_RECHARGE} rupees")
        if draft.amount_minor > max_minor:
            raise ValidationFailed(f"Maximum amount to add is {self.env.MAX_RECHARGE} rupees")

        utr = (draft.utr_number or "").strip().upper()
        if not utr:
            raise ValidationFailed("UTR number is required")
        if len(utr) > 50:
            raise ValidationFailed("UTR number is too long")
        if draft.transfer_date is None:
            raise ValidationFailed("Transfer date is required")
        if draft.transfer_date > utcnow().date():
            raise ValidationFailed("Transfer date cannot be in the future")

        screenshot_url = (draft.screenshot_url or "").strip()
        parsed = urlparse(screenshot_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationFailed("Payment screenshot is required")
        return RechargeDraft(draft.amount_minor, utr, draft.transfer_date, screenshot_url)

    async def submit(self, ctx: AuthContext, draft: RechargeDraft) -> WalletRechargeRequest:
        draft = self._validate(draft)

        seller = await self.session.get(Seller, ctx.actor_id)
        if not seller or not seller.is_active:
            raise NotFound("Seller not found")

        # the same transfer cannot be claimed twice while it is open or credited
        used = await self.session.scalar(
            select(func.count())
            .select_from(WalletRechargeRequest)
            .where(
                WalletRechargeRequest.utr_number == draft.utr_number,
                WalletRechargeRequest.status.in_((RechargeStatus.PENDING, RechargeStatus.APPROVED)),
            )
        )
        if used:
            raise BusinessRuleError(f"UTR {draft.utr_number} is already submitted")

        recharge = WalletRechargeRequest(
            seller_id=seller.id,
            amount_minor=draft.amount_minor,
            utr_number=draft.utr_number,
            transfer_date=draft.transfer_date,
            screenshot_url=draft.screenshot_url,
            status=RechargeStatus.PENDING,
        )
        self.session.add(recharge)
        try:
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        logging.info(f"Seller {seller.id} submitted recharge {recharge.id} of {draft.amount_minor} (UTR {draft.utr_number})")
        return recharge

    async def list_seller_recharges(self, ctx: AuthContext) -> list[WalletRechargeRequest]:
        query = (
            select(WalletRechargeRequest)
            .where(WalletRechargeRequest.seller_id == ctx.actor_id)
            .order_by(WalletRechargeRequest.created_at.desc())
        )
        return list((await self.session.execute(query)).scalars().all())

    async def list_recharges(self, status: RechargeStatus | None = None) -> list[WalletRechargeRequest]:
        query = select(WalletRechargeRequest).order_by(WalletRechargeRequest.created_at.desc())
        if status:
            query = query.where(WalletRechargeRequest.status == status)
        return list((await self.session.execute(query)).scalars().all())

    async def _lock_pending(self, recharge_id: uuid.UUID) -> WalletRechargeRequest:
        recharge = (
            await self.session.execute(
                select(WalletRechargeRequest).where(WalletRechargeRequest.id == recharge_id).with_for_update()
            )
        ).scalar_one_or_none()
        if not recharge:
            raise NotFound("Recharge request not found")
        if recharge.status != RechargeStatus.PENDING:
            raise BusinessRuleError("This request has already been processed")
        return recharge

    async def approve(self, ctx: AuthContext, recharge_id: uuid.UUID, remarks: str | None = None) -> RechargeApproval:
        try:
            recharge = await self._lock_pending(recharge_id)
            tx = await self.wallets.credit(
                OwnerType.SELLER,
                recharge.seller_id,
                recharge.amount_minor,
                TransactionGateway.BANK_TRANSFER,
                f"Wallet recharge UTR:{recharge.utr_number}",
                reference_id=recharge.id,
                reference_type=RECHARGE_REFERENCE,
            )
            tx.gateway_payment_id = f"UTR:{recharge.utr_number}"

            recharge.status = RechargeStatus.APPROVED
            recharge.admin_remarks = remarks
            recharge.processed_by = ctx.actor_id
            recharge.processed_at = utcnow()
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logging.info(f"Recharge {recharge_id} approved by admin {ctx.actor_id}, credited {recharge.amount_minor}")
        return RechargeApproval(recharge=recharge, transaction=tx)

    async def reject(self, ctx: AuthContext, recharge_id: uuid.UUID, remarks: str) -> WalletRechargeRequest:
        if not (remarks or "").strip():
            raise ValidationFailed("Rejection remarks are required")
        try:
            recharge = await self._lock_pending(recharge_id)
            recharge.status = RechargeStatus.REJECTED
            recharge.admin_remarks = remarks.strip()
            recharge.processed_by = ctx.actor_id
            recharge.processed_at = utcnow()
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logging.info(f"Recharge {recharge_id} rejected by admin {ctx.actor_id}")
        return recharge
