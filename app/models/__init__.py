"""Import all models so SQLModel.metadata picks them up."""

from app.models.account import Account, AccountCreate, AccountRead, AccountStatus
from app.models.company import Company, CompanyRead, SubscriptionStatus
from app.models.pending_checkout import PendingCheckout
from app.models.platform_setting import PlatformSetting
from app.models.point_transaction import (
    PointTransaction,
    PointTransactionRead,
    TransactionKind,
)
from app.models.subscription_event import (
    SubscriptionEvent,
    SubscriptionEventRead,
    SubscriptionEventType,
)

__all__ = [
    "Account",
    "AccountCreate",
    "AccountRead",
    "AccountStatus",
    "Company",
    "CompanyRead",
    "PendingCheckout",
    "PlatformSetting",
    "PointTransaction",
    "PointTransactionRead",
    "SubscriptionEvent",
    "SubscriptionEventRead",
    "SubscriptionEventType",
    "SubscriptionStatus",
    "TransactionKind",
]
