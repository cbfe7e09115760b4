from .base import Base
from .user import User, Seller, UserRole
from .review_request import ReviewRequest, PaymentStatus, AdminStatus
from .tasks import Task, TaskStep, TaskStatus, StepStatus
from .payments import (
    Wallet,
    PaymentTransaction,
    TaxInvoice,
    PaymentOrder,
    WithdrawalRequest,
    WalletRechargeRequest,
    OwnerType,
    TransactionDirection,
    TransactionGateway,
    TransactionStatus,
    PaymentOrderStatus,
    WithdrawalStatus,
    RechargeStatus,
)
from .job import Job, JobStatus
from .seo import SeoPage
