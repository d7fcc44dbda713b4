"""Mapping of stored orders to Airtable columns.

Everything here is pure: the current time is passed in as ``now`` so that
results are reproducible. Stored fulfillments use the document shape written
by the order repository (``in_transit_at``, ``delivered_at``,
``tracking_info``, ``events``); GraphQL connection wrappers are tolerated.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from shopify_api.config.constants import FAILED_DELIVERY_STATUSES, SECONDS_PER_DAY

# Column names must match the Airtable table byte for byte.
COL_ORDER_NUMBER = "Order Number"
COL_REMARKS = "Fulfillment Team Remarks"
COL_PHONE = "Phone"
COL_EMAIL = "Email"
COL_PAYMENT_STATUS = "Payment Status"
COL_CUSTOMER_NAME = "Customer Name"
COL_ORDER_AGE = "Order Age - In Days"
COL_TRACKING_NUMBER = "Tracking Number"
COL_FULFILLMENT_STATUS = "Fulfillment Status"
COL_LINK = "Link To Order "
COL_ORDER_STAGE = "Order Stage"
COL_TRANSIT_DAYS = "Transit At - In Days"
COL_DELIVERED_DAYS = "Delivered At - In Days"
COL_DELIVERY_FAILED = "Delivery Failed Status"

AIRTABLE_COLUMNS = (
    COL_ORDER_NUMBER,
    COL_REMARKS,
    COL_PHONE,
    COL_EMAIL,
    COL_PAYMENT_STATUS,
    COL_CUSTOMER_NAME,
    COL_ORDER_AGE,
    COL_TRACKING_NUMBER,
    COL_FULFILLMENT_STATUS,
    COL_LINK,
    COL_ORDER_STAGE,
    COL_TRANSIT_DAYS,
    COL_DELIVERED_DAYS,
    COL_DELIVERY_FAILED,
)


def _now(now: Optional[datetime]) -> datetime:
    return _as_aware(now) if now is not None else datetime.now(timezone.utc)


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string or datetime; anything unusable becomes None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _as_aware(value)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return _as_aware(datetime.fromisoformat(text))
    except ValueError:
        return None


def days_between(timestamp: Any, now: Optional[datetime] = None) -> Optional[int]:
    """Whole days, rounded up, between ``timestamp`` and ``now`` (either direction)."""
    parsed = parse_timestamp(timestamp)
    if parsed is None:
        return None
    seconds = abs((_now(now) - parsed).total_seconds())
    return math.ceil(seconds / SECONDS_PER_DAY)


def _nodes(value: Any) -> List[Any]:
    if not value:
        return []
    if isinstance(value, dict):
        return value.get("nodes") or []
    return list(value)


def _events(fulfillment: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [e for e in _nodes((fulfillment or {}).get("events")) if e is not None]


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _fulfillments(order: Any) -> List[Dict[str, Any]]:
    return [f for f in _nodes(_field(order, "fulfillments")) if f is not None]


def _max_days(timestamps: Iterable[Any], now: Optional[datetime]) -> Optional[int]:
    days = [d for d in (days_between(ts, now) for ts in timestamps) if d is not None]
    return max(days) if days else None


# ----------------------------------------------------------------------
# Column derivations
# ----------------------------------------------------------------------

def get_order_number(order: Any) -> str:
    """``<name>-<legacy id>``, e.g. ``#1001-5551234``."""
    return f"{_field(order, 'name')}-{_field(order, 'legacy_resource_id')}"


def extract_legacy_id(order_number: Optional[str]) -> Optional[str]:
    """Inverse of ``get_order_number``: the part after the last dash."""
    if not order_number or "-" not in order_number:
        return None
    legacy_id = order_number.rsplit("-", 1)[1].strip()
    return legacy_id or None


def get_order_age_in_days(order: Any, now: Optional[datetime] = None) -> Optional[int]:
    return days_between(_field(order, "order_created_at"), now)


def get_transit_at_in_days(
    fulfillments: Optional[List[Dict[str, Any]]], now: Optional[datetime] = None
) -> Optional[int]:
    if not fulfillments:
        return None
    return _max_days((f.get("in_transit_at") for f in fulfillments if f), now)


def get_delivered_at_in_days(
    fulfillments: Optional[List[Dict[str, Any]]], now: Optional[datetime] = None
) -> Optional[int]:
    if not fulfillments:
        return None
    return _max_days((f.get("delivered_at") for f in fulfillments if f), now)


def check_delivery_failed(fulfillments: Optional[List[Dict[str, Any]]]) -> Optional[str]:
    """
    Classify delivery failure from the last event of each fulfillment.

    The last event is taken by list order, not by timestamp.

    Returns:
        None for no failures, "Failed" for one, "Partially Failed" for more
    """
    failed = 0
    for fulfillment in fulfillments or []:
        events = _events(fulfillment)
        if events and events[-1].get("status") in FAILED_DELIVERY_STATUSES:
            failed += 1

    if failed == 0:
        return None
    if failed == 1:
        return "Failed"
    return "Partially Failed"


def get_order_stage(fulfillments: Optional[List[Dict[str, Any]]]) -> Optional[str]:
    """Status of the last event of the last fulfillment that has events."""
    stage = None
    for fulfillment in fulfillments or []:
        events = _events(fulfillment)
        if events:
            stage = events[-1].get("status")
    return stage or None


def get_remarks(fulfillments: Optional[List[Dict[str, Any]]]) -> str:
    return ", ".join(
        event.get("message") or ""
        for fulfillment in fulfillments or []
        for event in _events(fulfillment)
    )


def get_tracking_numbers(fulfillments: Optional[List[Dict[str, Any]]]) -> str:
    return ", ".join(
        (info or {}).get("number") or ""
        for fulfillment in fulfillments or []
        for info in _nodes((fulfillment or {}).get("tracking_info"))
    )


def build_fields(order: Any, now: Optional[datetime] = None) -> Dict[str, Any]:
    """All Airtable columns for one stored order."""
    now = _now(now)
    fulfillments = _fulfillments(order)
    customer = _field(order, "customer") or {}

    return {
        COL_ORDER_NUMBER: get_order_number(order),
        COL_REMARKS: get_remarks(fulfillments),
        COL_PHONE: customer.get("phone"),
        COL_EMAIL: customer.get("email"),
        COL_PAYMENT_STATUS: _field(order, "display_financial_status"),
        COL_CUSTOMER_NAME: customer.get("display_name"),
        COL_ORDER_AGE: get_order_age_in_days(order, now),
        COL_TRACKING_NUMBER: get_tracking_numbers(fulfillments),
        COL_FULFILLMENT_STATUS: _field(order, "display_fulfillment_status"),
        COL_LINK: _field(order, "status_page_url"),
        COL_ORDER_STAGE: get_order_stage(fulfillments),
        COL_TRANSIT_DAYS: get_transit_at_in_days(fulfillments, now),
        COL_DELIVERED_DAYS: get_delivered_at_in_days(fulfillments, now),
        COL_DELIVERY_FAILED: check_delivery_failed(fulfillments),
    }


# ----------------------------------------------------------------------
# Record shapes
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class NewRecord:
    """Order with no Airtable record yet; pushed with a create call."""

    fields: Dict[str, Any]

    def payload(self) -> Dict[str, Any]:
        return {"fields": self.fields}


@dataclass(frozen=True)
class ExistingRecord:
    """Order already mirrored in Airtable; pushed with an update call."""

    record_id: str
    fields: Dict[str, Any]

    def payload(self) -> Dict[str, Any]:
        return {"id": self.record_id, "fields": self.fields}


AirtableRecord = Union[NewRecord, ExistingRecord]


def to_airtable_record(order: Any, now: Optional[datetime] = None) -> AirtableRecord:
    fields = build_fields(order, now)
    record_id = _field(order, "airtable_record_id")
    if record_id:
        return ExistingRecord(record_id=record_id, fields=fields)
    return NewRecord(fields=fields)
