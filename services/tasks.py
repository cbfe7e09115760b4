import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Iterable

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.models import (
    AdminStatus,
    OwnerType,
    PaymentStatus,
    ReviewRequest,
    StepStatus,
    Task,
    TaskStatus,
    TaskStep,
    TransactionGateway,
    User,
)
from api.security import AuthContext
from config import ENV, get_env
from services.errors import BusinessRuleError, DuplicateOrderNumber, NotFound, StepOrderError, ValidationFailed
from services.wallet import WalletService
from utils.clock import utcnow

STEP_NAMES = {
    1: "Order Placed",
    2: "Delivered",
    3: "Review Submitted",
    4: "Refund Requested",
}

# label shown for the highest completed step
STATUS_LABELS = {
    4: "Refund Completed",
    3: "Review Submitted",
    2: "Delivered",
    1: "Order Placed",
}
PENDING_LABEL = "Pending"
FINAL_STEP = 4
REVIEW_STEP = 3


def derive_status(completed_steps: Iterable[int]) -> str:
    """Highest completed step wins."""
    done = set(completed_steps)
    for step_number in range(FINAL_STEP, 0, -1):
        if step_number in done:
            return STATUS_LABELS[step_number]
    return PENDING_LABEL


def completed_step_numbers(steps: Iterable[TaskStep]) -> set[int]:
    return {step.step_number for step in steps if step.step_status == StepStatus.COMPLETED}


def request_match_clause(request: ReviewRequest, legacy: bool):
    """Tasks that belong to a review request."""
    clause = Task.review_request_id == request.id
    if legacy:
        clause = or_(
            clause,
            and_(
                Task.review_request_id.is_(None),
                Task.seller_id == request.seller_id,
                Task.product_link == request.product_link,
            ),
        )
    return clause


@dataclass
class TaskAssign:
    review_request_id: uuid.UUID
    user_id: uuid.UUID
    commission_minor: int | None = None
    deadline: date | None = None
    admin_notes: str | None = None


@dataclass
class StepProof:
    order_number: str | None = None
    order_date: date | None = None
    order_name: str | None = None
    product_name: str | None = None
    order_amount_minor: int | None = None
    screenshot_url: str | None = None
    payment_qr_url: str | None = None


class TaskService:
    def __init__(self, session: AsyncSession, env: ENV | None = None):
        self.session = session
        self.env = env or get_env()
        self.wallets = WalletService(session)

    async def count_completed_reviews(self, request: ReviewRequest) -> int:
        query = (
            select(func.count(func.distinct(Task.id)))
            .join(TaskStep, TaskStep.task_id == Task.id)
            .where(
                request_match_clause(request, self.env.LEGACY_LINK_MATCHING),
                TaskStep.step_number == REVIEW_STEP,
                TaskStep.step_status == StepStatus.COMPLETED,
            )
        )
        return (await self.session.execute(query)).scalar_one()

    async def tasks_for_request(self, request: ReviewRequest) -> list[Task]:
        query = (
            select(Task)
            .where(request_match_clause(request, self.env.LEGACY_LINK_MATCHING))
            .order_by(Task.created_at.asc())
        )
        return list((await self.session.execute(query)).scalars().all())

    async def _lock_task(self, task_id: uuid.UUID) -> Task:
        task = (
            await self.session.execute(select(Task).where(Task.id == task_id).with_for_update())
        ).scalar_one_or_none()
        if not task:
            raise NotFound("Task not found")
        return task

    async def _request_for_task(self, task: Task) -> ReviewRequest | None:
        if task.review_request_id:
            return await self.session.get(ReviewRequest, task.review_request_id)
        if not self.env.LEGACY_LINK_MATCHING:
            return None
        query = (
            select(ReviewRequest)
            .where(ReviewRequest.seller_id == task.seller_id, ReviewRequest.product_link == task.product_link)
            .order_by(ReviewRequest.created_at.desc())
            .limit(1)
        )
        return (await self.session.execute(query)).scalar_one_or_none()

    async def _refresh_request_progress(self, task: Task) -> None:
        request = await self._request_for_task(task)
        if not request:
            return
        await self.session.flush()
        request.reviews_completed = await self.count_completed_reviews(request)
        if request.reviews_completed >= request.reviews_needed and request.admin_status == AdminStatus.APPROVED:
            request.admin_status = AdminStatus.COMPLETED
            logging.info(f"Review request {request.id} reached its target of {request.reviews_needed} reviews")

    @staticmethod
    def _check_previous(steps: dict[int, TaskStep], step_number: int) -> None:
        previous = steps.get(step_number - 1)
        if step_number > 1 and (previous is None or previous.step_status != StepStatus.COMPLETED):
            raise StepOrderError(f"Step {step_number - 1} must be completed before step {step_number}")

    async def assign_task(self, ctx: AuthContext, dto: TaskAssign) -> Task:
        request = await self.session.get(ReviewRequest, dto.review_request_id)
        if not request:
            raise NotFound("Review request not found")
        if request.payment_status != PaymentStatus.PAID or request.admin_status != AdminStatus.APPROVED:
            raise BusinessRuleError("Tasks can only be assigned for paid and approved requests")

        user = await self.session.get(User, dto.user_id)
        if not user or not user.is_active:
            raise NotFound("User not found")

        active = (
            await self.session.execute(
                select(Task.user_id).where(
                    Task.review_request_id == request.id, Task.task_status != TaskStatus.REJECTED
                )
            )
        ).scalars().all()
        if dto.user_id in active:
            raise BusinessRuleError("User already has a task for this request")
        if len(active) >= request.reviews_needed:
            raise BusinessRuleError("All review slots of this request are assigned")

        task = Task(
            review_request_id=request.id,
            user_id=user.id,
            seller_id=request.seller_id,
            product_link=request.product_link,
            brand_name=request.brand_name,
            commission_minor=request.admin_commission_minor if dto.commission_minor is None else dto.commission_minor,
            task_status=TaskStatus.ASSIGNED,
            refund_requested=False,
            deadline=dto.deadline,
            admin_notes=dto.admin_notes,
            assigned_by=ctx.actor_id,
            steps=[],
        )
        self.session.add(task)
        await self.session.commit()
        logging.info(f"Task {task.id} assigned to user {user.id} for request {request.id}")
        return task

    def _validate_proof(self, step_number: int, proof: StepProof) -> None:
        if step_number == 1:
            if not (proof.order_number and proof.order_number.strip()):
                raise ValidationFailed("Order number is required")
            if proof.order_date is None:
                raise ValidationFailed("Order date is required")
            if proof.order_amount_minor is None or proof.order_amount_minor <= 0:
                raise ValidationFailed("Order amount must be positive")
            if proof.order_date > utcnow().date():
                raise ValidationFailed("Order date cannot be in the future")
        elif step_number in (2, 3):
            if not proof.screenshot_url:
                raise ValidationFailed("Screenshot is required")
        elif step_number == FINAL_STEP:
            if not proof.screenshot_url:
                raise ValidationFailed("Live review screenshot is required")
            if not proof.payment_qr_url:
                raise ValidationFailed("Payment QR code is required")

    async def _ensure_unique_order_number(self, task: Task, order_number: str) -> None:
        query = select(TaskStep.id).where(
            TaskStep.step_number == 1,
            TaskStep.order_number == order_number,
            TaskStep.task_id != task.id,
            TaskStep.step_status != StepStatus.REJECTED,
        )
        if (await self.session.execute(query.limit(1))).first():
            raise DuplicateOrderNumber("This order number is already used on another task")

    async def submit_step(self, ctx: AuthContext, task_id: uuid.UUID, step_number: int, proof: StepProof) -> Task:
        if step_number not in STEP_NAMES:
            raise ValidationFailed("Step number must be between 1 and 4")

        try:
            task = await self._lock_task(task_id)
            if task.user_id != ctx.actor_id:
                raise NotFound("Task not found")
            if task.task_status in (TaskStatus.COMPLETED, TaskStatus.REJECTED):
                raise BusinessRuleError(f"Task is {task.task_status.value}")

            steps = {step.step_number: step for step in task.steps}
            self._check_previous(steps, step_number)

            step = steps.get(step_number)
            if step and step.step_status == StepStatus.COMPLETED:
                raise BusinessRuleError(f"Step {step_number} is already completed")

            self._validate_proof(step_number, proof)
            if step_number == 1:
                await self._ensure_unique_order_number(task, proof.order_number.strip())

            if step is None:
                step = TaskStep(step_number=step_number, step_name=STEP_NAMES[step_number])
                task.steps.append(step)

            if step_number == 1:
                step.order_number = proof.order_number.strip()
                step.order_date = proof.order_date
                step.order_name = proof.order_name
                step.product_name = proof.product_name
                step.order_amount_minor = proof.order_amount_minor
            step.screenshot_url = proof.screenshot_url or step.screenshot_url
            if step_number == FINAL_STEP:
                step.payment_qr_url = proof.payment_qr_url
                task.refund_requested = True

            now = utcnow()
            step.submitted_at = now
            step.rejection_reason = None
            if step_number < FINAL_STEP and self.env.AUTO_APPROVE_PROOFS:
                step.step_status = StepStatus.COMPLETED
                step.completed_at = now
            else:
                step.step_status = StepStatus.PENDING

            if task.task_status == TaskStatus.ASSIGNED:
                task.task_status = TaskStatus.IN_PROGRESS
            if step_number == REVIEW_STEP and step.step_status == StepStatus.COMPLETED:
                await self._refresh_request_progress(task)

            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logging.info(f"User {ctx.actor_id} submitted step {step_number} of task {task_id}")
        return task

    async def approve_step(self, ctx: AuthContext, task_id: uuid.UUID, step_number: int) -> Task:
        if step_number == FINAL_STEP:
            raise BusinessRuleError("Step 4 is completed by releasing the refund")
        if step_number not in STEP_NAMES:
            raise ValidationFailed("Step number must be between 1 and 4")

        try:
            task = await self._lock_task(task_id)
            steps = {step.step_number: step for step in task.steps}
            step = steps.get(step_number)
            if step is None or step.submitted_at is None:
                raise BusinessRuleError(f"Step {step_number} has not been submitted")
            if step.step_status == StepStatus.COMPLETED:
                raise BusinessRuleError(f"Step {step_number} is already completed")
            self._check_previous(steps, step_number)

            step.step_status = StepStatus.COMPLETED
            step.completed_at = utcnow()
            step.processed_by = ctx.actor_id
            step.rejection_reason = None
            if step_number == REVIEW_STEP:
                await self._refresh_request_progress(task)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logging.info(f"Admin {ctx.actor_id} approved step {step_number} of task {task_id}")
        return task

    async def reject_step(self, ctx: AuthContext, task_id: uuid.UUID, step_number: int, reason: str) -> Task:
        """Send a submitted proof back to the reviewer for resubmission."""
        if step_number == FINAL_STEP:
            raise BusinessRuleError("Use the refund rejection for step 4")
        try:
            task = await self._lock_task(task_id)
            step = next((s for s in task.steps if s.step_number == step_number), None)
            if step is None or step.step_status != StepStatus.PENDING:
                raise BusinessRuleError(f"Step {step_number} has no pending submission")
            step.step_status = StepStatus.REJECTED
            step.rejection_reason = reason
            step.processed_by = ctx.actor_id
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return task

    async def release_refund(self, ctx: AuthContext, task_id: uuid.UUID, refund_amount_minor: int) -> Task:
        if refund_amount_minor <= 0:
            raise ValidationFailed("Refund amount must be positive")

        try:
            task = await self._lock_task(task_id)
            steps = {step.step_number: step for step in task.steps}
            for step_number in range(1, FINAL_STEP):
                step = steps.get(step_number)
                if step is None or step.step_status != StepStatus.COMPLETED:
                    raise StepOrderError(f"Step {step_number} must be completed before the refund")

            final = steps.get(FINAL_STEP)
            if final is None or final.step_status != StepStatus.PENDING:
                raise BusinessRuleError("No refund request is waiting for this task")

            now = utcnow()
            final.step_status = StepStatus.COMPLETED
            final.refund_amount_minor = refund_amount_minor
            final.completed_at = now
            final.processed_by = ctx.actor_id

            await self.wallets.credit(
                OwnerType.USER,
                task.user_id,
                refund_amount_minor,
                TransactionGateway.REFUND,
                f"Refund for task {task.id}",
                review_request_id=task.review_request_id,
                reference_id=task.id,
                reference_type="task",
            )
            if task.commission_minor > 0:
                await self.wallets.credit(
                    OwnerType.USER,
                    task.user_id,
                    task.commission_minor,
                    TransactionGateway.COMMISSION,
                    f"Commission for task {task.id}",
                    review_request_id=task.review_request_id,
                    reference_id=task.id,
                    reference_type="task",
                    count_as_earned=True,
                )

            task.task_status = TaskStatus.COMPLETED
            task.refund_requested = False
            task.completed_at = now
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logging.info(f"Refund {refund_amount_minor} released for task {task_id} by admin {ctx.actor_id}")
        return task

    async def reject_refund(self, ctx: AuthContext, task_id: uuid.UUID, reason: str) -> Task:
        try:
            task = await self._lock_task(task_id)
            final = next((s for s in task.steps if s.step_number == FINAL_STEP), None)
            if final is None or final.step_status != StepStatus.PENDING:
                raise BusinessRuleError("No refund request is waiting for this task")

            final.step_status = StepStatus.REJECTED
            final.rejection_reason = reason
            final.processed_by = ctx.actor_id
            task.task_status = TaskStatus.REJECTED
            task.refund_requested = False
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logging.info(f"Refund rejected for task {task_id} by admin {ctx.actor_id}: {reason}")
        return task

    async def list_user_tasks(self, ctx: AuthContext, status: TaskStatus | None = None) -> list[Task]:
        query = select(Task).where(Task.user_id == ctx.actor_id).order_by(Task.created_at.desc())
        if status:
            query = query.where(Task.task_status == status)
        return list((await self.session.execute(query)).scalars().all())

    async def backfill_request_links(self) -> int:
        """Attach legacy tasks to their request when exactly one request has the same seller and link."""
        orphans = (await self.session.execute(select(Task).where(Task.review_request_id.is_(None)))).scalars().all()
        linked = 0
        for task in orphans:
            candidates = (
                await self.session.execute(
                    select(ReviewRequest.id).where(
                        ReviewRequest.seller_id == task.seller_id,
                        ReviewRequest.product_link == task.product_link,
                    )
                )
            ).scalars().all()
            if len(candidates) == 1:
                task.review_request_id = candidates[0]
                linked += 1
            elif candidates:
                logging.warning(f"Task {task.id} matches {len(candidates)} requests, left unlinked")
        await self.session.commit()
        logging.info(f"Linked {linked} of {len(orphans)} legacy tasks to their review requests")
        return linked
