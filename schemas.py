"""
Database Schemas for the Storefront API

Each Pydantic model represents a collection in MongoDB. The collection name is the
lowercase of the class name (e.g., Customer -> "customer"). Request models wrap
the collection schemas for partial updates and order placement; the ``*Out``
models are the read views shared by the REST and GraphQL layers.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from money import as_float, to_cents


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})
TRACKABLE_STATUSES = frozenset({OrderStatus.SHIPPED, OrderStatus.DELIVERED})


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


def _strip(value):
    return value.strip() if isinstance(value, str) else value


class Customer(BaseModel):
    """
    Customers collection schema
    Collection name: "customer"
    """
    name: str = Field(..., min_length=1, description="Full name")
    email: EmailStr = Field(..., description="Email address, unique regardless of case")
    address: Optional[Address] = Field(None, description="Postal address")
    phone: Optional[str] = Field(None, description="Phone number")

    @field_validator("name", "phone", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @field_validator("email", mode="after")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    address: Optional[Address] = None
    phone: Optional[str] = None

    @field_validator("name", "phone", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @field_validator("email", mode="after")
    @classmethod
    def lowercase_email(cls, value: Optional[str]) -> Optional[str]:
        return value.lower() if value else value


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"

    Stored with ``price_cents`` in place of ``price``.
    """
    name: str = Field(..., min_length=1, description="Product name")
    description: str = Field(..., description="Product description")
    price: Decimal = Field(..., ge=0, decimal_places=2, description="Price in dollars")
    category: str = Field(..., min_length=1, description="Product category")
    inventory: int = Field(0, ge=0, description="Units in stock")
    image_url: Optional[str] = Field(None, description="Product image")

    @field_validator("name", "category", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    def to_document(self) -> Dict[str, Any]:
        doc = self.model_dump(exclude={"price"})
        doc["price_cents"] = to_cents(self.price)
        return doc


class ProductUpdate(BaseModel):
    """Partial product update. Stock moves only by a signed adjustment."""
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    category: Optional[str] = Field(None, min_length=1)
    image_url: Optional[str] = None
    inventory_adjustment: Optional[int] = None

    def field_changes(self) -> Dict[str, Any]:
        changes = self.model_dump(exclude_unset=True, exclude={"price", "inventory_adjustment"})
        changes = {key: value for key, value in changes.items() if value is not None}
        if self.price is not None:
            changes["price_cents"] = to_cents(self.price)
        return changes


class InventoryAdjustment(BaseModel):
    adjustment: int = Field(..., description="Units to add (positive) or remove (negative)")


class OrderItemRequest(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)


class OrderCreate(BaseModel):
    items: List[OrderItemRequest] = Field(..., min_length=1)
    shipping_address: Optional[Address] = None


class OrderUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    shipping_address: Optional[Address] = None


class OrderItem(BaseModel):
    """Line item embedded in an order; ``price_cents`` is the price at order time."""
    product_id: str
    quantity: int = Field(..., ge=1)
    price_cents: int = Field(..., ge=0)


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "order"
    """
    customer_id: str
    items: List[OrderItem]
    total_cents: int = Field(..., ge=0)
    status: OrderStatus = Field(OrderStatus.PENDING, description="Order status: pending, processing, shipped, delivered, cancelled")
    shipping_address: Optional[Address] = None
    tracking_number: Optional[str] = None


# Read views


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CustomerOut(BaseModel):
    id: str
    name: str
    email: str
    address: Optional[Address] = None
    phone: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "CustomerOut":
        return cls(
            id=str(doc["_id"]),
            name=doc["name"],
            email=doc["email"],
            address=doc.get("address"),
            phone=doc.get("phone"),
            created_at=as_utc(doc.get("created_at")),
            updated_at=as_utc(doc.get("updated_at")),
        )


class ProductOut(BaseModel):
    id: str
    name: str
    description: str
    price: float
    category: str
    inventory: int
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "ProductOut":
        return cls(
            id=str(doc["_id"]),
            name=doc["name"],
            description=doc.get("description", ""),
            price=as_float(doc["price_cents"]),
            category=doc["category"],
            inventory=doc["inventory"],
            image_url=doc.get("image_url"),
            created_at=as_utc(doc.get("created_at")),
            updated_at=as_utc(doc.get("updated_at")),
        )


class CustomerSummary(BaseModel):
    id: str
    name: str
    email: str


class ProductSummary(BaseModel):
    id: str
    name: str
    price: float
    image_url: Optional[str] = None


class OrderItemOut(BaseModel):
    product_id: str
    quantity: int
    price: float
    product: Optional[ProductSummary] = None


class OrderOut(BaseModel):
    id: str
    customer_id: str
    status: OrderStatus
    items: List[OrderItemOut]
    shipping_address: Optional[Address] = None
    total_amount: float
    tracking_number: Optional[str] = None
    order_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    customer: Optional[CustomerSummary] = None

    @classmethod
    def from_document(
        cls,
        doc: Dict[str, Any],
        customer: Optional[Dict[str, Any]] = None,
        products: Optional[Dict[str, Dict[str, Any]]] = None,
    ) -> "OrderOut":
        items = []
        for item in doc.get("items", []):
            product_id = str(item["product_id"])
            summary = None
            if products is not None and product_id in products:
                product = products[product_id]
                summary = ProductSummary(
                    id=product_id,
                    name=product["name"],
                    price=as_float(product["price_cents"]),
                    image_url=product.get("image_url"),
                )
            items.append(OrderItemOut(
                product_id=product_id,
                quantity=item["quantity"],
                price=as_float(item["price_cents"]),
                product=summary,
            ))
        return cls(
            id=str(doc["_id"]),
            customer_id=str(doc["customer_id"]),
            status=doc["status"],
            items=items,
            shipping_address=doc.get("shipping_address"),
            total_amount=as_float(doc["total_cents"]),
            tracking_number=doc.get("tracking_number"),
            order_date=as_utc(doc.get("created_at")),
            created_at=as_utc(doc.get("created_at")),
            updated_at=as_utc(doc.get("updated_at")),
            customer=CustomerSummary(
                id=str(customer["_id"]), name=customer["name"], email=customer["email"]
            ) if customer else None,
        )
