import uuid
from datetime import date, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select

from api.models import (
    AdminStatus,
    OwnerType,
    PaymentStatus,
    PaymentTransaction,
    ReviewRequest,
    StepStatus,
    Task,
    TaskStatus,
    TransactionGateway,
    User,
    Wallet,
)
from api.security import ActorRole, AuthContext
from services.errors import BusinessRuleError, DuplicateOrderNumber, NotFound, StepOrderError, ValidationFailed
from services.tasks import StepProof, TaskAssign, TaskService, derive_status
from tests.conftest import make_request

ORDER_PROOF = StepProof(
    order_number="402-1234567-7654321",
    order_date=date(2024, 5, 1),
    order_name="Ravi",
    product_name="Steel Bottle",
    order_amount_minor=49900,
)
SCREENSHOT = StepProof(screenshot_url="https://cdn.example.com/shot.png")
REFUND_PROOF = StepProof(screenshot_url="https://cdn.example.com/live.png", payment_qr_url="https://cdn.example.com/qr.png")


@pytest.mark.parametrize(
    "completed, label",
    [
        (set(), "Pending"),
        ({1}, "Order Placed"),
        ({1, 2}, "Delivered"),
        ({1, 2, 3}, "Review Submitted"),
        ({1, 2, 3, 4}, "Refund Completed"),
    ],
)
def test_derive_status(completed, label):
    assert derive_status(completed) == label


@pytest.fixture
def tasks(session, env):
    return TaskService(session, env)


@pytest_asyncio.fixture
async def live_request(session, seller) -> ReviewRequest:
    return await make_request(
        session, seller, payment_status=PaymentStatus.PAID, admin_status=AdminStatus.APPROVED
    )


@pytest_asyncio.fixture
async def task(tasks, admin_ctx, live_request, reviewer) -> Task:
    return await tasks.assign_task(admin_ctx, TaskAssign(review_request_id=live_request.id, user_id=reviewer.id))


async def _new_user(session, name: str) -> User:
    user = User(name=name, email=f"{name.lower()}-{uuid.uuid4().hex[:6]}@example.com")
    session.add(user)
    await session.commit()
    return user


async def _walk_to_refund(tasks, user_ctx, task_id) -> Task:
    await tasks.submit_step(user_ctx, task_id, 1, ORDER_PROOF)
    await tasks.submit_step(user_ctx, task_id, 2, SCREENSHOT)
    await tasks.submit_step(user_ctx, task_id, 3, SCREENSHOT)
    return await tasks.submit_step(user_ctx, task_id, 4, REFUND_PROOF)


async def test_assign_requires_paid_and_approved(session, tasks, admin_ctx, seller, reviewer):
    request = await make_request(session, seller, payment_status=PaymentStatus.PAID)

    with pytest.raises(BusinessRuleError):
        await tasks.assign_task(admin_ctx, TaskAssign(review_request_id=request.id, user_id=reviewer.id))


async def test_assign_copies_request_terms(task, live_request, reviewer):
    assert task.review_request_id == live_request.id
    assert task.user_id == reviewer.id
    assert task.seller_id == live_request.seller_id
    assert task.product_link == live_request.product_link
    assert task.commission_minor == 5000
    assert task.task_status == TaskStatus.ASSIGNED


async def test_same_user_cannot_take_request_twice(tasks, admin_ctx, task, live_request, reviewer):
    with pytest.raises(BusinessRuleError):
        await tasks.assign_task(admin_ctx, TaskAssign(review_request_id=live_request.id, user_id=reviewer.id))


async def test_assignment_stops_at_reviews_needed(session, tasks, admin_ctx, task, live_request):
    second = await _new_user(session, "Meena")
    third = await _new_user(session, "Arjun")
    await tasks.assign_task(admin_ctx, TaskAssign(review_request_id=live_request.id, user_id=second.id))

    with pytest.raises(BusinessRuleError):
        await tasks.assign_task(admin_ctx, TaskAssign(review_request_id=live_request.id, user_id=third.id))


async def test_steps_must_be_submitted_in_order(tasks, user_ctx, task):
    task_id = task.id
    with pytest.raises(StepOrderError):
        await tasks.submit_step(user_ctx, task_id, 2, SCREENSHOT)

    submitted = await tasks.submit_step(user_ctx, task_id, 1, ORDER_PROOF)
    assert submitted.task_status == TaskStatus.IN_PROGRESS
    assert derive_status(s.step_number for s in submitted.steps if s.step_status == StepStatus.COMPLETED) == "Order Placed"


async def test_completed_step_cannot_be_resubmitted(tasks, user_ctx, task):
    await tasks.submit_step(user_ctx, task.id, 1, ORDER_PROOF)

    with pytest.raises(BusinessRuleError):
        await tasks.submit_step(user_ctx, task.id, 1, ORDER_PROOF)


async def test_order_proof_is_validated(tasks, user_ctx, task):
    task_id = task.id
    future = StepProof(
        order_number="402-1",
        order_date=date.today() + timedelta(days=3),
        order_amount_minor=100,
    )
    with pytest.raises(ValidationFailed):
        await tasks.submit_step(user_ctx, task_id, 1, future)
    with pytest.raises(ValidationFailed):
        await tasks.submit_step(user_ctx, task_id, 1, StepProof(order_date=date(2024, 5, 1), order_amount_minor=100))


async def test_order_number_is_unique_across_tasks(session, tasks, admin_ctx, user_ctx, task, live_request):
    await tasks.submit_step(user_ctx, task.id, 1, ORDER_PROOF)
    other = await _new_user(session, "Meena")
    other_task = await tasks.assign_task(admin_ctx, TaskAssign(review_request_id=live_request.id, user_id=other.id))
    other_task_id = other_task.id

    with pytest.raises(DuplicateOrderNumber):
        await tasks.submit_step(AuthContext(actor_id=other.id, role=ActorRole.USER), other_task_id, 1, ORDER_PROOF)


async def test_foreign_task_is_hidden(tasks, task):
    with pytest.raises(NotFound):
        await tasks.submit_step(AuthContext(actor_id=uuid.uuid4(), role=ActorRole.USER), task.id, 1, ORDER_PROOF)


async def test_review_step_counts_towards_request(session_maker, tasks, user_ctx, task, live_request):
    request_id = live_request.id
    await tasks.submit_step(user_ctx, task.id, 1, ORDER_PROOF)
    await tasks.submit_step(user_ctx, task.id, 2, SCREENSHOT)
    await tasks.submit_step(user_ctx, task.id, 3, SCREENSHOT)

    async with session_maker() as fresh:
        request = await fresh.get(ReviewRequest, request_id)
        assert request.reviews_completed == 1
        assert request.admin_status == AdminStatus.APPROVED


async def test_request_completes_when_every_review_is_in(session, session_maker, tasks, admin_ctx, seller, reviewer, user_ctx):
    request = await make_request(
        session, seller, reviews_needed=1, payment_status=PaymentStatus.PAID, admin_status=AdminStatus.APPROVED
    )
    request_id = request.id
    task = await tasks.assign_task(admin_ctx, TaskAssign(review_request_id=request_id, user_id=reviewer.id))
    await tasks.submit_step(user_ctx, task.id, 1, ORDER_PROOF)
    await tasks.submit_step(user_ctx, task.id, 2, SCREENSHOT)
    await tasks.submit_step(user_ctx, task.id, 3, SCREENSHOT)

    async with session_maker() as fresh:
        assert (await fresh.get(ReviewRequest, request_id)).admin_status == AdminStatus.COMPLETED


async def test_refund_step_waits_for_admin(tasks, user_ctx, task):
    submitted = await _walk_to_refund(tasks, user_ctx, task.id)

    final = next(s for s in submitted.steps if s.step_number == 4)
    assert final.step_status == StepStatus.PENDING
    assert submitted.refund_requested is True
    assert submitted.task_status == TaskStatus.IN_PROGRESS


async def test_release_refund_credits_refund_and_commission(session_maker, tasks, admin_ctx, user_ctx, task, reviewer):
    user_id = reviewer.id
    await _walk_to_refund(tasks, user_ctx, task.id)

    released = await tasks.release_refund(admin_ctx, task.id, 49900)

    assert released.task_status == TaskStatus.COMPLETED
    assert released.refund_requested is False
    assert derive_status(s.step_number for s in released.steps if s.step_status == StepStatus.COMPLETED) == "Refund Completed"
    async with session_maker() as fresh:
        wallet = await fresh.get(Wallet, (OwnerType.USER, user_id))
        assert wallet.balance_minor == 49900 + 5000
        assert wallet.total_earned_minor == 5000
        gateways = (
            await fresh.execute(select(PaymentTransaction.gateway).where(PaymentTransaction.owner_id == user_id))
        ).scalars().all()
        assert sorted(g.value for g in gateways) == [TransactionGateway.COMMISSION.value, TransactionGateway.REFUND.value]


async def test_refund_cannot_be_released_twice(tasks, admin_ctx, user_ctx, task):
    await _walk_to_refund(tasks, user_ctx, task.id)
    await tasks.release_refund(admin_ctx, task.id, 49900)

    with pytest.raises(BusinessRuleError):
        await tasks.release_refund(admin_ctx, task.id, 49900)


async def test_refund_needs_earlier_steps(tasks, admin_ctx, user_ctx, task):
    await tasks.submit_step(user_ctx, task.id, 1, ORDER_PROOF)

    with pytest.raises(StepOrderError):
        await tasks.release_refund(admin_ctx, task.id, 49900)


async def test_reject_refund_closes_task_without_money(session_maker, tasks, admin_ctx, user_ctx, task, reviewer):
    user_id = reviewer.id
    await _walk_to_refund(tasks, user_ctx, task.id)

    rejected = await tasks.reject_refund(admin_ctx, task.id, "Review was removed")

    assert rejected.task_status == TaskStatus.REJECTED
    async with session_maker() as fresh:
        assert await fresh.get(Wallet, (OwnerType.USER, user_id)) is None


async def test_manual_approval_flow(env, monkeypatch, tasks, admin_ctx, user_ctx, task):
    task_id = task.id
    monkeypatch.setattr(env, "AUTO_APPROVE_PROOFS", False)

    submitted = await tasks.submit_step(user_ctx, task_id, 1, ORDER_PROOF)
    assert submitted.steps[0].step_status == StepStatus.PENDING
    with pytest.raises(StepOrderError):
        await tasks.submit_step(user_ctx, task_id, 2, SCREENSHOT)

    approved = await tasks.approve_step(admin_ctx, task_id, 1)
    assert approved.steps[0].step_status == StepStatus.COMPLETED


async def test_rejected_step_can_be_resubmitted(env, monkeypatch, tasks, admin_ctx, user_ctx, task):
    monkeypatch.setattr(env, "AUTO_APPROVE_PROOFS", False)
    await tasks.submit_step(user_ctx, task.id, 1, ORDER_PROOF)

    rejected = await tasks.reject_step(admin_ctx, task.id, 1, "Blurry screenshot")
    assert rejected.steps[0].step_status == StepStatus.REJECTED

    resubmitted = await tasks.submit_step(user_ctx, task.id, 1, ORDER_PROOF)
    assert resubmitted.steps[0].step_status == StepStatus.PENDING
    assert resubmitted.steps[0].rejection_reason is None


async def test_final_step_is_not_approved_directly(tasks, admin_ctx, task):
    with pytest.raises(BusinessRuleError):
        await tasks.approve_step(admin_ctx, task.id, 4)


async def test_legacy_task_matches_by_seller_and_link(session, tasks, seller, reviewer, live_request):
    legacy = Task(
        user_id=reviewer.id,
        seller_id=seller.id,
        product_link=live_request.product_link,
        commission_minor=0,
        task_status=TaskStatus.ASSIGNED,
        refund_requested=False,
    )
    session.add(legacy)
    await session.commit()

    assert [t.id for t in await tasks.tasks_for_request(live_request)] == [legacy.id]


async def test_legacy_matching_can_be_disabled(env, monkeypatch, session, tasks, seller, reviewer, live_request):
    session.add(
        Task(
            user_id=reviewer.id,
            seller_id=seller.id,
            product_link=live_request.product_link,
            commission_minor=0,
            task_status=TaskStatus.ASSIGNED,
            refund_requested=False,
        )
    )
    await session.commit()
    monkeypatch.setattr(env, "LEGACY_LINK_MATCHING", False)

    assert await tasks.tasks_for_request(live_request) == []


async def test_backfill_links_only_unambiguous_tasks(session, session_maker, tasks, seller, reviewer, live_request):
    duplicate_link = "https://www.amazon.in/dp/B0DUPLICATE"
    await make_request(session, seller, product_link=duplicate_link)
    await make_request(session, seller, product_link=duplicate_link)
    unique = Task(user_id=reviewer.id, seller_id=seller.id, product_link=live_request.product_link, commission_minor=0)
    ambiguous = Task(user_id=reviewer.id, seller_id=seller.id, product_link=duplicate_link, commission_minor=0)
    session.add_all([unique, ambiguous])
    await session.commit()
    unique_id, ambiguous_id, request_id = unique.id, ambiguous.id, live_request.id

    assert await tasks.backfill_request_links() == 1

    async with session_maker() as fresh:
        assert (await fresh.get(Task, unique_id)).review_request_id == request_id
        assert (await fresh.get(Task, ambiguous_id)).review_request_id is None
