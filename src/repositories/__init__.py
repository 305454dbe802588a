"""Repository layer package."""

from src.repositories.billing_key_repo import BillingKeyRepo
from src.repositories.plan_repo import PlanRepo
from src.repositories.storage_repo import StorageUsageRepo
from src.repositories.subscription_repo import SubscriptionRepo

__all__ = [
    "BillingKeyRepo",
    "PlanRepo",
    "StorageUsageRepo",
    "SubscriptionRepo",
]
