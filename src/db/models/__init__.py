"""Database models package exports."""

from src.db.models.billing_key import BillingKey, BillingKeyStatus
from src.db.models.plan import Plan
from src.db.models.storage_usage import StorageUsage
from src.db.models.subscription import OwnerType, Subscription, SubscriptionStatus

__all__ = [
    "BillingKey",
    "BillingKeyStatus",
    "OwnerType",
    "Plan",
    "StorageUsage",
    "Subscription",
    "SubscriptionStatus",
]
