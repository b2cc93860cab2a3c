"""
Database Schemas

Each Pydantic model represents a MongoDB collection.
Model name lowercased is the collection name. Field aliases are the
stored (camelCase) keys.
"""

from datetime import datetime, timezone
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field

Role = Literal["customer", "admin"]
OrderStatus = Literal["pending", "confirmed", "shipped", "delivered", "cancelled"]

ROLES = ("customer", "admin")
ORDER_STATUSES = ("pending", "confirmed", "shipped", "delivered", "cancelled")
CANCELLABLE_STATUSES = ("pending", "confirmed")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    created_at: datetime = Field(default_factory=_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=_now, alias="updatedAt")

    def to_mongo(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class User(Document):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address, stored lower-cased")
    password: Optional[str] = Field(None, description="BCrypt hashed password")
    google_id: Optional[str] = Field(None, alias="googleId")
    role: Role = Field("customer", description="Role: customer | admin")
    phone: Optional[str] = None
    address: Optional[str] = None


class Product(Document):
    name: str
    description: str = ""
    price: float = Field(..., ge=0)
    category: str
    stock: int = Field(0, ge=0)
    sizes: List[str] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    images: List[str] = Field(default_factory=list)
    featured: bool = False
    is_active: bool = Field(True, alias="isActive")


class OrderItem(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    product: ObjectId
    quantity: int = Field(..., ge=1)
    size: Optional[str] = None
    color: Optional[str] = None
    price: float = Field(..., ge=0, description="Unit price at order time")


class ShippingAddress(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    street: str
    city: str
    state: Optional[str] = None
    zip_code: Optional[str] = Field(None, alias="zipCode")
    country: Optional[str] = None
    phone: Optional[str] = None


class Order(Document):
    customer: ObjectId
    items: List[OrderItem]
    total_amount: float = Field(..., ge=0, alias="totalAmount")
    status: OrderStatus = "pending"
    shipping_address: ShippingAddress = Field(..., alias="shippingAddress")
