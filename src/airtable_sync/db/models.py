"""SQLAlchemy models for stored orders and sync jobs."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from shopify_api.config.constants import DEFAULT_MAX_RETRIES, JOB_TYPE_FULL_SYNC

from .base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; treat naive values as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


class Order(Base):
    """
    Order mirrored from Shopify.

    ``shopify_id`` is the immutable merge key. The Airtable back-reference
    columns are written only by the Airtable push stage.
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Upstream-sourced fields (replaced on every sync)
    shopify_id: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    legacy_resource_id: Mapped[Optional[str]] = mapped_column(String(50), index=True, nullable=True)
    customer: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    display_financial_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    display_fulfillment_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    order_created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    status_page_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    metafields: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    fulfillments: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)

    # Airtable back-reference
    airtable_record_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    airtable_table_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "shopify_id": self.shopify_id,
            "name": self.name,
            "legacy_resource_id": self.legacy_resource_id,
            "customer": self.customer,
            "display_financial_status": self.display_financial_status,
            "display_fulfillment_status": self.display_fulfillment_status,
            "order_created_at": _iso(self.order_created_at),
            "status_page_url": self.status_page_url,
            "metafields": list(self.metafields or []),
            "fulfillments": list(self.fulfillments or []),
            "airtable_record_id": self.airtable_record_id,
            "airtable_table_name": self.airtable_table_name,
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Order {self.name} ({self.shopify_id})>"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TriggeredBy(str, Enum):
    MANUAL = "manual"
    SCHEDULED = "scheduled"
    WEBHOOK = "webhook"


TERMINAL_STATUSES = (JobStatus.COMPLETED.value, JobStatus.FAILED.value, JobStatus.CANCELLED.value)


class InvalidJobTransition(ValueError):
    """Raised when a sync job is asked to move to a state it cannot reach."""


class SyncJob(Base):
    """
    One orchestration run.

    Lifecycle: pending -> running -> completed | failed | cancelled, plus
    failed -> pending through ``increment_retry``. Rows are never deleted.
    """

    __tablename__ = "sync_jobs"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    job_type: Mapped[str] = mapped_column(String(50), default=JOB_TYPE_FULL_SYNC, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=JobStatus.PENDING.value, index=True, nullable=False)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Stage counters
    shopify_orders_fetched: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    shopify_orders_upserted: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    airtable_records_created: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    airtable_records_updated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    errors: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    summary: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)

    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_retries: Mapped[int] = mapped_column(Integer, default=DEFAULT_MAX_RETRIES, nullable=False)
    last_retry_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    triggered_by: Mapped[str] = mapped_column(String(20), default=TriggeredBy.MANUAL.value, nullable=False)
    job_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    def __init__(self, **kwargs):
        kwargs.setdefault("id", uuid.uuid4().hex)
        kwargs.setdefault("job_type", JOB_TYPE_FULL_SYNC)
        kwargs.setdefault("status", JobStatus.PENDING.value)
        kwargs.setdefault("shopify_orders_fetched", 0)
        kwargs.setdefault("shopify_orders_upserted", 0)
        kwargs.setdefault("airtable_records_created", 0)
        kwargs.setdefault("airtable_records_updated", 0)
        kwargs.setdefault("errors", [])
        kwargs.setdefault("retry_count", 0)
        kwargs.setdefault("max_retries", DEFAULT_MAX_RETRIES)
        kwargs.setdefault("triggered_by", TriggeredBy.MANUAL.value)
        kwargs.setdefault("created_at", utcnow())
        super().__init__(**kwargs)

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    def _finish(self, status: JobStatus) -> None:
        self.status = status.value
        self.completed_at = utcnow()
        started = as_utc(self.started_at) or as_utc(self.created_at)
        self.duration_ms = int((self.completed_at - started).total_seconds() * 1000)

    def mark_running(self) -> None:
        if self.status != JobStatus.PENDING.value:
            raise InvalidJobTransition(f"Cannot start job {self.id} in status {self.status}")
        self.status = JobStatus.RUNNING.value
        self.started_at = utcnow()
        self.completed_at = None
        self.duration_ms = None
        self.shopify_orders_fetched = 0
        self.shopify_orders_upserted = 0
        self.airtable_records_created = 0
        self.airtable_records_updated = 0

    def mark_completed(self, summary: Optional[Dict[str, Any]] = None) -> bool:
        """Returns False when the job was cancelled while in flight."""
        if self.status == JobStatus.CANCELLED.value:
            return False
        if self.status != JobStatus.RUNNING.value:
            raise InvalidJobTransition(f"Cannot complete job {self.id} in status {self.status}")
        self._finish(JobStatus.COMPLETED)
        self.summary = summary or {}
        return True

    def mark_failed(self, error: Optional[Dict[str, Any]] = None) -> bool:
        """Returns False when the job was cancelled while in flight."""
        if self.status == JobStatus.CANCELLED.value:
            if error:
                self.add_error(error.get("stage", "unknown"), error.get("message"), error.get("stack"))
            return False
        if self.status not in (JobStatus.PENDING.value, JobStatus.RUNNING.value):
            raise InvalidJobTransition(f"Cannot fail job {self.id} in status {self.status}")
        if error:
            self.add_error(error.get("stage", "unknown"), error.get("message"), error.get("stack"))
        self._finish(JobStatus.FAILED)
        return True

    def add_error(self, stage: str, message: Optional[str], stack: Optional[str] = None) -> None:
        self.errors = [
            *(self.errors or []),
            {
                "stage": stage,
                "message": message or "Unknown error",
                "stack": stack,
                "timestamp": utcnow().isoformat(),
            },
        ]

    def can_retry(self) -> bool:
        return self.status == JobStatus.FAILED.value and self.retry_count < self.max_retries

    def increment_retry(self) -> None:
        if not self.can_retry():
            raise InvalidJobTransition(
                f"Job {self.id} cannot be retried "
                f"(status={self.status}, retries={self.retry_count}/{self.max_retries})"
            )
        self.retry_count += 1
        self.last_retry_at = utcnow()
        self.status = JobStatus.PENDING.value
        self.completed_at = None
        self.duration_ms = None

    def cancel(self) -> None:
        if self.status != JobStatus.RUNNING.value:
            raise InvalidJobTransition("Job is not running and cannot be cancelled")
        self._finish(JobStatus.CANCELLED)

    @property
    def last_error(self) -> Optional[Dict[str, Any]]:
        return self.errors[-1] if self.errors else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_type": self.job_type,
            "status": self.status,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "duration_ms": self.duration_ms,
            "shopify_orders_fetched": self.shopify_orders_fetched,
            "shopify_orders_upserted": self.shopify_orders_upserted,
            "airtable_records_created": self.airtable_records_created,
            "airtable_records_updated": self.airtable_records_updated,
            "errors": list(self.errors or []),
            "summary": self.summary,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "last_retry_at": _iso(self.last_retry_at),
            "triggered_by": self.triggered_by,
            "metadata": self.job_metadata or {},
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<SyncJob {self.id} {self.status}>"
