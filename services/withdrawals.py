import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from api.models import (
    OwnerType,
    PaymentTransaction,
    TransactionGateway,
    TransactionStatus,
    User,
    WithdrawalRequest,
    WithdrawalStatus,
)
from api.security import AuthContext
from config import ENV, get_env
from services.errors import BusinessRuleError, NotFound, ValidationFailed
from services.gateways import PaymentGateway, get_gateway
from services.pricing import rupees_to_minor
from services.wallet import WalletService
from utils.clock import utcnow

WITHDRAWAL_REFERENCE = "withdrawal"
OPEN_STATUSES = (WithdrawalStatus.PENDING, WithdrawalStatus.APPROVED)
PAYOUT_FIELDS = {
    "upi": (("upi_id", "UPI ID"),),
    "bank": (("bank_name", "Bank name"), ("bank_account", "Account number"), ("bank_ifsc", "IFSC code")),
    "paytm": (("paytm_number", "Paytm number"),),
}
UPI_ID_RE = re.compile(r"^[\w.-]+@[\w.-]+$")
IFSC_RE = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")
MOBILE_RE = re.compile(r"^[6-9]\d{9}$")


@dataclass
class PayoutBatchReport:
    total: int
    succeeded: int
    failed: int

    @property
    def status(self) -> str:
        if self.total == 0:
            return "empty"
        if self.succeeded == self.total:
            return "completed"
        return "partial" if self.succeeded else "failed"


class WithdrawalService:
    def __init__(
        self,
        session: AsyncSession,
        env: ENV | None = None,
        gateway_factory: Callable[[str], PaymentGateway] | None = None,
    ):
        self.session = session
        self.env = env or get_env()
        self.gateway_factory = gateway_factory or (lambda code: get_gateway(code, self.env))
        self.wallets = WalletService(session)

    async def _set_ledger_status(self, withdrawal_id: uuid.UUID, status: TransactionStatus) -> None:
        await self.session.execute(
            update(PaymentTransaction)
            .where(
                PaymentTransaction.reference_id == withdrawal_id,
                PaymentTransaction.reference_type == WITHDRAWAL_REFERENCE,
                PaymentTransaction.gateway == TransactionGateway.WITHDRAWAL,
                PaymentTransaction.status == TransactionStatus.PENDING,
            )
            .values(status=status)
        )

    @staticmethod
    def _validate_requisites(requisites: Dict[str, Any]) -> Dict[str, Any]:
        """Normalized payout details for one of the supported methods; extra gateway keys are kept."""
        if not requisites:
            raise ValidationFailed("Payout requisites are required")
        method = str(requisites.get("method") or "").strip().lower()
        if method not in PAYOUT_FIELDS:
            raise ValidationFailed("Payout method must be upi, bank or paytm")

        cleaned = dict(requisites, method=method)
        for key, label in PAYOUT_FIELDS[method]:
            value = str(cleaned.get(key) or "").strip()
            if not value:
                raise ValidationFailed(f"{label} is required")
            cleaned[key] = value

        if method == "upi" and not UPI_ID_RE.match(cleaned["upi_id"]):
            raise ValidationFailed("Invalid UPI ID format")
        if method == "bank":
            cleaned["bank_ifsc"] = cleaned["bank_ifsc"].upper()
            if not IFSC_RE.match(cleaned["bank_ifsc"]):
                raise ValidationFailed("Invalid IFSC code format")
        if method == "paytm" and not MOBILE_RE.match(cleaned["paytm_number"]):
            raise ValidationFailed("Invalid mobile number")
        return cleaned

    async def request_withdrawal(self, ctx: AuthContext, amount_minor: int, requisites: Dict[str, Any]) -> WithdrawalRequest:
        min_minor = rupees_to_minor(self.env.MIN_WITHDRAWAL)
        if amount_minor < min_minor:
            raise ValidationFailed(f"Minimum withdrawal amount is {self.env.MIN_WITHDRAWAL} rupees")
        requisites = self._validate_requisites(requisites)

        try:
            user = await self.session.get(User, ctx.actor_id)
            if not user or not user.is_active:
                raise NotFound("User not found")

            # the wallet row lock serializes requests of one user
            await self.wallets.ensure_wallet(OwnerType.USER, user.id, lock=True)
            pending = await self.session.scalar(
                select(func.count())
                .select_from(WithdrawalRequest)
                .where(WithdrawalRequest.user_id == user.id, WithdrawalRequest.status == WithdrawalStatus.PENDING)
            )
            if pending:
                raise BusinessRuleError("A withdrawal request is already pending")

            withdrawal = WithdrawalRequest(
                user_id=user.id,
                amount_minor=amount_minor,
                status=WithdrawalStatus.PENDING,
                requisites_json=requisites,
            )
            self.session.add(withdrawal)
            await self.session.flush()

            # hold the money right away; rejection credits it back
            await self.wallets.debit(
                OwnerType.USER,
                user.id,
                amount_minor,
                TransactionGateway.WITHDRAWAL,
                "Withdrawal request",
                reference_id=withdrawal.id,
                reference_type=WITHDRAWAL_REFERENCE,
                status=TransactionStatus.PENDING,
                count_as_withdrawn=True,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logging.info(f"User {ctx.actor_id} requested withdrawal {withdrawal.id} of {amount_minor}")
        return withdrawal

    async def cancel(self, ctx: AuthContext, withdrawal_id: uuid.UUID) -> WithdrawalRequest:
        try:
            withdrawal = await self._lock(withdrawal_id)
            if withdrawal.user_id != ctx.actor_id:
                raise NotFound("Withdrawal request not found")
            if withdrawal.status != WithdrawalStatus.PENDING:
                raise BusinessRuleError(f"Cannot cancel request with status {withdrawal.status.value}")

            await self.wallets.credit(
                OwnerType.USER,
                withdrawal.user_id,
                withdrawal.amount_minor,
                TransactionGateway.WITHDRAWAL,
                "Withdrawal cancelled, amount returned",
                reference_id=withdrawal.id,
                reference_type=WITHDRAWAL_REFERENCE,
                undo_withdrawn=True,
            )
            await self._set_ledger_status(withdrawal.id, TransactionStatus.FAILED)

            withdrawal.status = WithdrawalStatus.CANCELLED
            withdrawal.processed_at = utcnow()
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logging.info(f"Withdrawal {withdrawal_id} cancelled by user {ctx.actor_id}")
        return withdrawal

    async def list_user_withdrawals(self, ctx: AuthContext) -> list[WithdrawalRequest]:
        query = (
            select(WithdrawalRequest)
            .where(WithdrawalRequest.user_id == ctx.actor_id)
            .order_by(WithdrawalRequest.created_at.desc())
        )
        return list((await self.session.execute(query)).scalars().all())

    async def get_requests_by_status(self, status: WithdrawalStatus) -> list[WithdrawalRequest]:
        query = select(WithdrawalRequest).where(WithdrawalRequest.status == status).order_by(WithdrawalRequest.created_at.asc())
        return list((await self.session.execute(query)).scalars().all())

    async def _lock(self, withdrawal_id: uuid.UUID) -> WithdrawalRequest:
        withdrawal = (
            await self.session.execute(
                select(WithdrawalRequest).where(WithdrawalRequest.id == withdrawal_id).with_for_update()
            )
        ).scalar_one_or_none()
        if not withdrawal:
            raise NotFound("Withdrawal request not found")
        return withdrawal

    async def approve(self, ctx: AuthContext, withdrawal_id: uuid.UUID) -> WithdrawalRequest:
        try:
            withdrawal = await self._lock(withdrawal_id)
            if withdrawal.status != WithdrawalStatus.PENDING:
                raise BusinessRuleError(f"Cannot approve request with status {withdrawal.status.value}")

            withdrawal.status = WithdrawalStatus.APPROVED
            withdrawal.processed_by = ctx.actor_id
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return withdrawal

    async def reject(self, ctx: AuthContext, withdrawal_id: uuid.UUID, note: str | None = None) -> WithdrawalRequest:
        try:
            withdrawal = await self._lock(withdrawal_id)
            if withdrawal.status not in OPEN_STATUSES:
                raise BusinessRuleError(f"Cannot reject request with status {withdrawal.status.value}")

            await self.wallets.credit(
                OwnerType.USER,
                withdrawal.user_id,
                withdrawal.amount_minor,
                TransactionGateway.WITHDRAWAL,
                "Withdrawal rejected, amount returned",
                reference_id=withdrawal.id,
                reference_type=WITHDRAWAL_REFERENCE,
                undo_withdrawn=True,
            )
            await self._set_ledger_status(withdrawal.id, TransactionStatus.FAILED)

            withdrawal.status = WithdrawalStatus.REJECTED
            withdrawal.admin_note = note
            withdrawal.processed_by = ctx.actor_id
            withdrawal.processed_at = utcnow()
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logging.info(f"Withdrawal {withdrawal_id} rejected by admin {ctx.actor_id}")
        return withdrawal

    async def complete(
        self,
        ctx: AuthContext | None,
        withdrawal_id: uuid.UUID,
        gateway_ref: str | None = None,
    ) -> WithdrawalRequest:
        try:
            withdrawal = await self._lock(withdrawal_id)
            if withdrawal.status not in OPEN_STATUSES:
                raise BusinessRuleError(f"Cannot complete request with status {withdrawal.status.value}")

            await self._set_ledger_status(withdrawal.id, TransactionStatus.SUCCESS)
            withdrawal.status = WithdrawalStatus.COMPLETED
            withdrawal.gateway_ref = gateway_ref
            withdrawal.processed_by = ctx.actor_id if ctx else None
            withdrawal.processed_at = utcnow()
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logging.info(f"Withdrawal {withdrawal_id} completed (ref {gateway_ref})")
        return withdrawal

    async def process_auto_payout(self, payload: Dict[str, Any]) -> PayoutBatchReport:
        """Pay out open withdrawal requests within [min_amount, max_amount]; one failure does not stop the batch."""
        min_amount = int(payload.get("min_amount", 0))
        max_amount = payload.get("max_amount")
        gateway = self.gateway_factory(payload.get("gateway", "razorpay"))

        query = (
            select(WithdrawalRequest.id, WithdrawalRequest.amount_minor, WithdrawalRequest.requisites_json)
            .where(WithdrawalRequest.status.in_(OPEN_STATUSES), WithdrawalRequest.amount_minor >= min_amount)
            .order_by(WithdrawalRequest.created_at.asc())
        )
        if max_amount is not None:
            query = query.where(WithdrawalRequest.amount_minor <= int(max_amount))
        candidates = (await self.session.execute(query)).all()
        await self.session.commit()

        succeeded = 0
        for withdrawal_id, amount_minor, requisites in candidates:
            try:
                payout = await gateway.create_payout(amount_minor, requisites, f"WD{withdrawal_id.hex[:20]}")
                await self.complete(None, withdrawal_id, gateway_ref=payout.payout_id)
                succeeded += 1
            except Exception as e:
                logging.error(f"Auto payout failed for withdrawal {withdrawal_id}: {e}")

        report = PayoutBatchReport(total=len(candidates), succeeded=succeeded, failed=len(candidates) - succeeded)
        logging.info(f"Auto payout batch {report.status}: {succeeded}/{report.total} paid")
        return report
