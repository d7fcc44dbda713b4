import json
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

from airtable_sync.db import get_engine, get_session_factory, init_db
from airtable_sync.repositories.job_repository import SyncJobRepository
from airtable_sync.repositories.sql_repository import SQLOrderRepository


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    await init_db(engine)
    yield get_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def order_store(session_factory) -> SQLOrderRepository:
    return SQLOrderRepository(session_factory)


@pytest.fixture
def job_repository(session_factory) -> SyncJobRepository:
    return SyncJobRepository(session_factory)


def _order_node(
    number: int,
    *,
    fulfillments: Optional[List[Dict[str, Any]]] = None,
    created_at: str = "2024-01-01T00:00:00Z",
    financial_status: str = "PAID",
    fulfillment_status: str = "UNFULFILLED",
) -> Dict[str, Any]:
    return {
        "id": f"gid://shopify/Order/{5000 + number}",
        "name": f"#{1000 + number}",
        "legacyResourceId": str(5000 + number),
        "customer": {
            "defaultEmailAddress": {"emailAddress": f"customer{number}@example.com"},
            "defaultPhoneNumber": {"phoneNumber": f"+44700000{number:04d}"},
            "displayName": f"Customer {number}",
        },
        "displayFinancialStatus": financial_status,
        "displayFulfillmentStatus": fulfillment_status,
        "createdAt": created_at,
        "statusPageUrl": f"https://shop.example.com/orders/{number}",
        "metafields": {"nodes": []},
        "fulfillments": fulfillments or [],
    }


@pytest.fixture
def order_node() -> Callable[..., Dict[str, Any]]:
    """Factory for Shopify order nodes as returned by the orders query."""
    return _order_node


class ShopifyStub:
    """MockTransport handler serving order pages from a list of page sizes."""

    def __init__(self, page_sizes: List[int], fail_on_page: Optional[int] = None, status: int = 500):
        self.pages = []
        start = 0
        for size in page_sizes:
            self.pages.append([_order_node(n) for n in range(start, start + size)])
            start += size
        self.fail_on_page = fail_on_page
        self.status = status
        self.requests: List[Dict[str, Any]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        cursor = body["variables"].get("after")
        index = int(cursor) if cursor else 0

        if self.fail_on_page is not None and index == self.fail_on_page:
            return httpx.Response(self.status, json={"errors": [{"message": "Internal error"}]})

        has_next = index + 1 < len(self.pages)
        return httpx.Response(200, json={
            "data": {
                "orders": {
                    "nodes": self.pages[index] if self.pages else [],
                    "pageInfo": {
                        "hasNextPage": has_next,
                        "endCursor": str(index + 1) if has_next else None,
                    },
                }
            }
        })


class AirtableStub:
    """MockTransport handler echoing created/updated Airtable records."""

    def __init__(self, fail_statuses: Optional[List[int]] = None):
        # One status per request; None or missing means success
        self.fail_statuses = list(fail_statuses or [])
        self.requests: List[Dict[str, Any]] = []
        self._next_id = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        self.requests.append({"method": request.method, "url": str(request.url), "body": body})

        status = self.fail_statuses.pop(0) if self.fail_statuses else None
        if status:
            return httpx.Response(status, json={"error": {"type": "FAILED", "message": f"status {status}"}})

        records = []
        for record in body.get("records", []):
            record_id = record.get("id")
            if record_id is None:
                self._next_id += 1
                record_id = f"rec{self._next_id:05d}"
            records.append({"id": record_id, "fields": record["fields"], "createdTime": "2024-01-01T00:00:00.000Z"})
        return httpx.Response(200, json={"records": records})

    def calls(self, method: str) -> List[Dict[str, Any]]:
        return [r for r in self.requests if r["method"] == method]


@pytest.fixture
def shopify_stub_factory():
    return ShopifyStub


@pytest.fixture
def airtable_stub_factory():
    return AirtableStub
