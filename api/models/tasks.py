import enum
import uuid
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from utils.clock import utcnow
from .base import Base, enum_type


class TaskStatus(str, enum.Enum):
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"


class StepStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # NULL for rows created before requests were linked; those match by (seller_id, product_link)
    review_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(ForeignKey("review_requests.id"), nullable=True, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    seller_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("sellers.id"), nullable=False)
    product_link: Mapped[str] = mapped_column(String, nullable=False)
    brand_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    commission_minor: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    task_status: Mapped[TaskStatus] = mapped_column(
        enum_type(TaskStatus, "taskstatus"), default=TaskStatus.ASSIGNED, nullable=False
    )
    refund_requested: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deadline: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    admin_notes: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    assigned_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    steps: Mapped[List["TaskStep"]] = relationship(
        back_populates="task", lazy="selectin", order_by="TaskStep.step_number", cascade="all, delete-orphan"
    )


class TaskStep(Base):
    __tablename__ = "task_steps"
    __table_args__ = (UniqueConstraint("task_id", "step_number", name="uq_task_steps_task_step"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    task_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("tasks.id"), nullable=False)
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    step_name: Mapped[str] = mapped_column(String(50), nullable=False)
    step_status: Mapped[StepStatus] = mapped_column(
        enum_type(StepStatus, "stepstatus"), default=StepStatus.PENDING, nullable=False
    )

    # step 1 proof
    order_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    order_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    order_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    product_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    order_amount_minor: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # steps 1-4 screenshot (order, delivery, review, live review)
    screenshot_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    # step 4
    payment_qr_url: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    refund_amount_minor: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    processed_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    rejection_reason: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    task: Mapped["Task"] = relationship(back_populates="steps")
