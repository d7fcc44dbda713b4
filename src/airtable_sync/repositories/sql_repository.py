"""SQLAlchemy implementation of the order store."""

from typing import Any, Dict, List, Optional

from sqlalchemy import select, text, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shopify_api.core.logger import setup_logger
from shopify_api.models.order import ShopifyOrder
from airtable_sync.db.models import Order
from .base import OrderStore, UpsertSummary

logger = setup_logger(__name__)


class SQLOrderRepository(OrderStore):
    """Order store backed by an async SQLAlchemy engine.

    Each upsert runs in its own session and transaction so that one bad
    record cannot roll back the others.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize repository.

        Args:
            session_factory: Async session factory from ``get_session_factory``
        """
        self.session_factory = session_factory

    async def upsert_order(self, order: ShopifyOrder) -> str:
        document = order.to_document()

        async with self.session_factory() as session:
            result = await session.execute(
                select(Order).where(Order.shopify_id == order.id)
            )
            existing = result.scalar_one_or_none()

            if existing is None:
                session.add(Order(**document))
                outcome = "created"
            else:
                # Back-reference columns are not part of the document
                for key, value in document.items():
                    setattr(existing, key, value)
                outcome = "updated"

            await session.commit()

        return outcome

    async def upsert_orders(self, nodes: List[Dict[str, Any]]) -> UpsertSummary:
        summary = UpsertSummary()

        for node in nodes:
            node = node or {}
            try:
                order = ShopifyOrder.model_validate(node)
                outcome = await self.upsert_order(order)
                if outcome == "created":
                    summary.created += 1
                else:
                    summary.updated += 1

            except Exception as e:
                summary.errors += 1
                summary.errors_list.append({
                    "order_id": node.get("id"),
                    "order_name": node.get("name"),
                    "error": str(e),
                })
                logger.warning(f"Failed to upsert order {node.get('name') or node.get('id')}: {e}")

        logger.info(
            f"Upserted orders: {summary.created} created, "
            f"{summary.updated} updated, {summary.errors} errors"
        )
        return summary

    async def set_airtable_reference(
        self, legacy_resource_id: str, record_id: str, table_name: Optional[str] = None
    ) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                update(Order)
                .where(Order.legacy_resource_id == str(legacy_resource_id))
                .values(airtable_record_id=record_id, airtable_table_name=table_name)
            )
            await session.commit()

        if not result.rowcount:
            logger.warning(
                f"No stored order with legacy id {legacy_resource_id} for Airtable record {record_id}"
            )
            return False
        return True

    async def get_all_orders(self) -> List[Order]:
        async with self.session_factory() as session:
            result = await session.execute(select(Order).order_by(Order.id))
            return list(result.scalars().all())

    async def get_order(self, shopify_id: str) -> Optional[Order]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Order).where(Order.shopify_id == shopify_id)
            )
            return result.scalar_one_or_none()

    async def health_check(self) -> bool:
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Order store health check failed: {e}")
            return False
