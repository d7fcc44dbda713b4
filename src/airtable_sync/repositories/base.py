"""Abstract base repository for the intermediate order store."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from shopify_api.models.order import ShopifyOrder
from airtable_sync.db.models import Order


@dataclass
class UpsertSummary:
    """Aggregate outcome of a batch upsert."""

    created: int = 0
    updated: int = 0
    errors: int = 0
    errors_list: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def upserted(self) -> int:
        return self.created + self.updated

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created": self.created,
            "updated": self.updated,
            "errors": self.errors,
            "errors_list": self.errors_list,
        }


class OrderStore(ABC):
    """Abstract store for orders mirrored from Shopify.

    Orders are keyed by their immutable Shopify id. The Airtable
    back-reference is owned by the push stage: upstream upserts must
    never change it.
    """

    @abstractmethod
    async def upsert_order(self, order: ShopifyOrder) -> str:
        """Insert or update one order.

        If an order with the same Shopify id exists, every upstream-sourced
        field is replaced and the Airtable back-reference is left as is.
        Otherwise a new row is inserted with an empty back-reference.

        Args:
            order: Validated upstream order

        Returns:
            "created" or "updated"
        """
        pass

    @abstractmethod
    async def upsert_orders(self, nodes: List[Dict[str, Any]]) -> UpsertSummary:
        """Upsert a batch of raw order nodes one record at a time.

        A failure on one record is recorded in the summary and does not
        stop the remaining records.

        Args:
            nodes: Order nodes as returned by the orders query

        Returns:
            UpsertSummary with created/updated/error counts
        """
        pass

    @abstractmethod
    async def set_airtable_reference(
        self, legacy_resource_id: str, record_id: str, table_name: Optional[str] = None
    ) -> bool:
        """Store the Airtable record id for an order.

        Args:
            legacy_resource_id: Numeric Shopify order id
            record_id: Airtable record id
            table_name: Airtable table the record lives in

        Returns:
            True if an order was updated
        """
        pass

    @abstractmethod
    async def get_all_orders(self) -> List[Order]:
        """Every stored order."""
        pass

    @abstractmethod
    async def get_order(self, shopify_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if storage backend is accessible.

        Returns:
            True if healthy, False otherwise
        """
        pass
