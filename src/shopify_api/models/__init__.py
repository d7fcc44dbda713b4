"""Pydantic models for Shopify data."""

from .order import CustomerSchema, FulfillmentSchema, ShopifyOrder

__all__ = ["CustomerSchema", "FulfillmentSchema", "ShopifyOrder"]
