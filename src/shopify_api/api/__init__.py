"""Shopify API module."""

from .client import ShopifyAPIClient

__all__ = ["ShopifyAPIClient"]
