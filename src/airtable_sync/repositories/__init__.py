"""Storage repositories."""

from .base import OrderStore, UpsertSummary
from .job_repository import SyncJobRepository
from .sql_repository import SQLOrderRepository

__all__ = ["OrderStore", "UpsertSummary", "SQLOrderRepository", "SyncJobRepository"]
