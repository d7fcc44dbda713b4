"""Database module."""

from .base import Base, get_engine, get_session_factory, init_db
from .models import InvalidJobTransition, JobStatus, Order, SyncJob, TriggeredBy

__all__ = [
    "Base",
    "get_engine",
    "get_session_factory",
    "init_db",
    "InvalidJobTransition",
    "JobStatus",
    "Order",
    "SyncJob",
    "TriggeredBy",
]
