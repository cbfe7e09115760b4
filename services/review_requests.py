import logging
import uuid
from dataclasses import dataclass
from urllib.parse import urlparse

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.models import AdminStatus, OwnerType, PaymentStatus, ReviewRequest, Seller, Task, TransactionGateway
from api.security import AuthContext
from config import ENV, get_env
from services.errors import BusinessRuleError, NotFound, ValidationFailed
from services.pricing import quote, rupees_to_minor
from services.tasks import TaskService, completed_step_numbers, derive_status
from services.wallet import WalletService
from utils.clock import utcnow

NEXT_STEP_PAY = "pay"


@dataclass
class ReviewRequestDraft:
    product_link: str
    product_name: str
    brand_name: str
    product_price_minor: int
    reviews_needed: int
    platform: str | None = None


@dataclass
class RequestEntry:
    task: Task
    status_label: str


@dataclass
class RequestListing:
    request: ReviewRequest
    # derived from tasks; the stored counter is not touched on reads
    reviews_completed: int


def _is_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class ReviewRequestService:
    def __init__(self, session: AsyncSession, env: ENV | None = None):
        self.session = session
        self.env = env or get_env()
        self.tasks = TaskService(session, self.env)

    def _validate(self, draft: ReviewRequestDraft) -> None:
        for field_name in ("product_link", "product_name", "brand_name"):
            if not (getattr(draft, field_name) or "").strip():
                raise ValidationFailed(f"{field_name} is required")
        if not _is_url(draft.product_link.strip()):
            raise ValidationFailed("product_link must be a valid URL")
        if draft.product_price_minor <= 0:
            raise ValidationFailed("Product price must be positive")
        if not 1 <= draft.reviews_needed <= self.env.MAX_REVIEWS_PER_REQUEST:
            raise ValidationFailed(
                f"reviews_needed must be between 1 and {self.env.MAX_REVIEWS_PER_REQUEST}"
            )

    async def create_request(self, ctx: AuthContext, draft: ReviewRequestDraft) -> ReviewRequest:
        self._validate(draft)
        seller = await self.session.get(Seller, ctx.actor_id)
        if not seller or not seller.is_active:
            raise NotFound("Seller not found")

        commission_minor = rupees_to_minor(self.env.ADMIN_COMMISSION_PER_REVIEW)
        totals = quote(draft.product_price_minor, commission_minor, draft.reviews_needed, self.env.GST_RATE)

        request = ReviewRequest(
            seller_id=seller.id,
            product_link=draft.product_link.strip(),
            product_name=draft.product_name.strip(),
            brand_name=draft.brand_name.strip(),
            platform=draft.platform or "amazon",
            product_price_minor=draft.product_price_minor,
            admin_commission_minor=commission_minor,
            reviews_needed=draft.reviews_needed,
            reviews_completed=0,
            gst_rate=self.env.GST_RATE,
            total_amount_minor=totals.subtotal_minor,
            gst_amount_minor=totals.gst_minor,
            grand_total_minor=totals.grand_total_minor,
            payment_status=PaymentStatus.PENDING,
            admin_status=AdminStatus.PENDING,
        )
        self.session.add(request)
        await self.session.commit()
        logging.info(f"Seller {seller.id} created review request {request.id} for {totals.grand_total_minor}")
        return request

    async def list_requests(self, ctx: AuthContext, admin_status: AdminStatus | None = None) -> list[RequestListing]:
        query = select(ReviewRequest).order_by(ReviewRequest.created_at.desc())
        if not ctx.is_admin:
            query = query.where(ReviewRequest.seller_id == ctx.actor_id)
        if admin_status:
            query = query.where(ReviewRequest.admin_status == admin_status)
        requests = (await self.session.execute(query)).scalars().all()
        return [
            RequestListing(request=request, reviews_completed=await self.tasks.count_completed_reviews(request))
            for request in requests
        ]

    async def get_request(self, ctx: AuthContext, request_id: uuid.UUID) -> ReviewRequest:
        request = await self.session.get(ReviewRequest, request_id)
        if not request or (not ctx.is_admin and request.seller_id != ctx.actor_id):
            raise NotFound("Review request not found")
        return request

    async def request_entries(self, ctx: AuthContext, request_id: uuid.UUID) -> list[RequestEntry]:
        request = await self.get_request(ctx, request_id)
        tasks = await self.tasks.tasks_for_request(request)
        return [RequestEntry(task=task, status_label=derive_status(completed_step_numbers(task.steps))) for task in tasks]

    async def _lock(self, request_id: uuid.UUID) -> ReviewRequest:
        request = (
            await self.session.execute(select(ReviewRequest).where(ReviewRequest.id == request_id).with_for_update())
        ).scalar_one_or_none()
        if not request:
            raise NotFound("Review request not found")
        return request

    async def approve(self, ctx: AuthContext, request_id: uuid.UUID, note: str | None = None) -> ReviewRequest:
        try:
            request = await self._lock(request_id)
            if request.admin_status != AdminStatus.PENDING:
                raise BusinessRuleError(f"Cannot approve request with status {request.admin_status.value}")
            if request.payment_status != PaymentStatus.PAID:
                raise BusinessRuleError("Only paid requests can be approved")

            request.admin_status = AdminStatus.APPROVED
            request.admin_note = note
            request.approved_by = ctx.actor_id
            request.approved_at = utcnow()
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logging.info(f"Review request {request_id} approved by admin {ctx.actor_id}")
        return request

    async def reject(self, ctx: AuthContext, request_id: uuid.UUID, reason: str) -> ReviewRequest:
        """Reject a pending request; a paid one is refunded to the seller wallet in the same transaction."""
        if not (reason or "").strip():
            raise ValidationFailed("Rejection reason is required")

        try:
            request = await self._lock(request_id)
            if request.admin_status != AdminStatus.PENDING:
                raise BusinessRuleError(f"Cannot reject request with status {request.admin_status.value}")

            if request.payment_status == PaymentStatus.PAID:
                await WalletService(self.session).credit(
                    OwnerType.SELLER,
                    request.seller_id,
                    request.grand_total_minor,
                    TransactionGateway.REFUND,
                    f"Refund for rejected review request {request.id}",
                    review_request_id=request.id,
                    reference_id=request.id,
                    reference_type="review_request",
                    undo_spent=True,
                )
                request.payment_status = PaymentStatus.REFUNDED

            request.admin_status = AdminStatus.REJECTED
            request.rejection_reason = reason.strip()
            request.rejected_at = utcnow()
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logging.info(f"Review request {request_id} rejected by admin {ctx.actor_id}")
        return request
