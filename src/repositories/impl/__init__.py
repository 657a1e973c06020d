"""Repositories implementation package."""

from .budget_repository import BudgetRepository
from .job_repository import JobRepository
from .listing_repository import ListingRepository, WebhookEventRepository
from .price_cache_repository import PriceCacheRepository
from .run_repository import RunRepository
from .tracked_product_repository import TrackedProductRepository

__all__ = [
    "BudgetRepository",
    "JobRepository",
    "ListingRepository",
    "PriceCacheRepository",
    "RunRepository",
    "TrackedProductRepository",
    "WebhookEventRepository",
]
