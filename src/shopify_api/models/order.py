"""Pydantic models for Shopify order nodes.

GraphQL connections (``{"nodes": [...]}``) and the nested customer contact
objects are flattened on validation, so the stored document shape is the
same whether it came from a list query or a single-order lookup.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


def _unwrap_nodes(value: Any) -> List[Any]:
    """Accept a plain list, a GraphQL connection, or null."""
    if value is None:
        return []
    if isinstance(value, dict):
        return value.get("nodes") or []
    return value


class FulfillmentEventSchema(BaseModel):
    """Single fulfillment event."""

    status: Optional[str] = None
    message: Optional[str] = None

    class Config:
        extra = "allow"


class TrackingInfoSchema(BaseModel):
    """Tracking info attached to a fulfillment."""

    number: Optional[str] = None

    class Config:
        extra = "allow"


class FulfillmentSchema(BaseModel):
    """Fulfillment sub-record of an order."""

    in_transit_at: Optional[str] = Field(default=None, alias="inTransitAt")
    delivered_at: Optional[str] = Field(default=None, alias="deliveredAt")
    tracking_info: List[TrackingInfoSchema] = Field(default_factory=list, alias="trackingInfo")
    display_status: Optional[str] = Field(default=None, alias="displayStatus")
    events: List[FulfillmentEventSchema] = Field(default_factory=list)

    @field_validator("events", "tracking_info", mode="before")
    @classmethod
    def _unwrap_connections(cls, value):
        return _unwrap_nodes(value)

    class Config:
        populate_by_name = True
        extra = "allow"


class CustomerSchema(BaseModel):
    """Customer contact fields."""

    email: Optional[str] = None
    phone: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")

    @classmethod
    def from_node(cls, node: Optional[Dict[str, Any]]) -> Optional["CustomerSchema"]:
        if not node:
            return None
        email = node.get("email")
        if email is None:
            email = (node.get("defaultEmailAddress") or {}).get("emailAddress")
        phone = node.get("phone")
        if phone is None:
            phone = (node.get("defaultPhoneNumber") or {}).get("phoneNumber")
        display_name = node.get("display_name", node.get("displayName"))
        return cls(email=email, phone=phone, displayName=display_name)

    class Config:
        populate_by_name = True


class ShopifyOrder(BaseModel):
    """Order node as returned by the orders query."""

    id: str
    name: Optional[str] = None
    legacy_resource_id: Optional[str] = Field(default=None, alias="legacyResourceId")
    customer: Optional[CustomerSchema] = None
    display_financial_status: Optional[str] = Field(default=None, alias="displayFinancialStatus")
    display_fulfillment_status: Optional[str] = Field(default=None, alias="displayFulfillmentStatus")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    status_page_url: Optional[str] = Field(default=None, alias="statusPageUrl")
    metafields: List[Dict[str, Any]] = Field(default_factory=list)
    fulfillments: List[FulfillmentSchema] = Field(default_factory=list)

    @field_validator("customer", mode="before")
    @classmethod
    def _flatten_customer(cls, value):
        if isinstance(value, CustomerSchema):
            return value
        return CustomerSchema.from_node(value)

    @field_validator("metafields", "fulfillments", mode="before")
    @classmethod
    def _unwrap_connections(cls, value):
        return _unwrap_nodes(value)

    @field_validator("legacy_resource_id", mode="before")
    @classmethod
    def _legacy_id_as_str(cls, value):
        return str(value) if value is not None else None

    def to_document(self) -> Dict[str, Any]:
        """Upstream-sourced fields in the shape stored by the order repository."""
        return {
            "shopify_id": self.id,
            "name": self.name,
            "legacy_resource_id": self.legacy_resource_id,
            "customer": self.customer.model_dump(mode="json") if self.customer else None,
            "display_financial_status": self.display_financial_status,
            "display_fulfillment_status": self.display_fulfillment_status,
            "order_created_at": self.created_at,
            "status_page_url": self.status_page_url,
            "metafields": self.metafields,
            "fulfillments": [f.model_dump(mode="json") for f in self.fulfillments],
        }

    class Config:
        populate_by_name = True
        extra = "allow"
