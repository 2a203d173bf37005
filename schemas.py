"""
Database Schemas for the Furniture Store

Each Pydantic model corresponds to one MongoDB collection:
- Product -> "products"
- Category -> "categories"
- Contact -> "contacts"
- Order -> "orders"
- PaymentRequest -> "paymentrequests"
- PaymentSettings -> "paymentsettings"
- SavedAddress -> "shippingaddresses"
- User -> "users"

Field names are camelCase because they travel unchanged to the storefront client.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, EmailStr, Field

PAYMENT_METHODS = ("credit_card", "paypal", "upi", "rupay", "bank_transfer", "cod")
PAYMENT_STATUSES = ("pending", "completed", "rejected", "cancelled")
ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")


class User(BaseModel):
    name: str = Field(..., min_length=1, description="Full name")
    email: EmailStr
    password_hash: str = Field(..., description="bcrypt password hash")
    role: Literal["customer", "admin"] = "customer"


class Dimensions(BaseModel):
    length: Optional[float] = Field(None, ge=0)
    width: Optional[float] = Field(None, ge=0)
    height: Optional[float] = Field(None, ge=0)


class Review(BaseModel):
    user: str = Field(..., description="Reviewer user id")
    name: str = "Anonymous User"
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=1000)
    createdAt: Optional[datetime] = None


class Product(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    slug: Optional[str] = None
    description: str = Field(..., min_length=1, max_length=2000)
    price: float = Field(..., gt=0)
    discountPrice: Optional[float] = Field(None, ge=0)
    category: str = Field(..., description="Category ObjectId as string")
    stock: int = Field(..., ge=0)
    images: List[str] = Field(default_factory=list)
    material: Optional[str] = None
    color: Optional[str] = None
    dimensions: Optional[Dimensions] = None
    featured: bool = False
    reviews: List[Review] = Field(default_factory=list)
    numReviews: int = Field(0, ge=0)
    ratings: float = Field(0, ge=0, le=5)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    price: Optional[float] = Field(None, gt=0)
    discountPrice: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    images: Optional[List[str]] = None
    material: Optional[str] = None
    color: Optional[str] = None
    dimensions: Optional[Dimensions] = None
    featured: Optional[bool] = None


class Category(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    slug: Optional[str] = None
    description: str = Field("", max_length=500)
    image: Optional[str] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    image: Optional[str] = None


class Contact(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=20)
    subject: str = Field(..., min_length=1, max_length=100)
    message: str = Field(..., min_length=1, max_length=1000)
    status: Literal["unread", "read"] = "unread"


class OrderItem(BaseModel):
    product: str
    name: str
    quantity: int = Field(1, ge=1)
    price: float = Field(..., ge=0)
    image: Optional[str] = None


class ShippingAddress(BaseModel):
    address: str
    city: str
    postalCode: str
    country: str
    phone: Optional[str] = None


class Order(BaseModel):
    user: str
    orderItems: List[OrderItem] = Field(..., min_length=1)
    shippingAddress: ShippingAddress
    paymentMethod: Literal[PAYMENT_METHODS] = "cod"
    totalPrice: float = Field(..., ge=0)
    isPaid: bool = False
    paidAt: Optional[datetime] = None
    status: Literal[ORDER_STATUSES] = "pending"


class PaymentRequest(BaseModel):
    user: str
    order: str
    amount: float = Field(..., ge=0)
    paymentMethod: Literal[PAYMENT_METHODS]
    transactionId: Optional[str] = None
    status: Literal[PAYMENT_STATUSES] = "pending"
    notes: Optional[str] = None


class PaymentSettings(BaseModel):
    accountNumber: str = Field(..., min_length=1)
    ifscCode: str = Field(..., min_length=1)
    accountHolder: str = Field(..., min_length=1)
    bankName: Optional[str] = None
    branchName: Optional[str] = None
    isActive: bool = True


class PaymentSettingsUpdate(BaseModel):
    accountNumber: Optional[str] = Field(None, min_length=1)
    ifscCode: Optional[str] = Field(None, min_length=1)
    accountHolder: Optional[str] = Field(None, min_length=1)
    bankName: Optional[str] = None
    branchName: Optional[str] = None
    isActive: Optional[bool] = None


class SavedAddress(BaseModel):
    """A shipping address kept on file by the store, distinct from the one embedded in an order."""
    name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    postalCode: str = Field(..., min_length=1)
    country: str = "India"
    phone: str = Field(..., min_length=1)
    isDefault: bool = False


class SavedAddressUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    address: Optional[str] = Field(None, min_length=1)
    city: Optional[str] = Field(None, min_length=1)
    state: Optional[str] = Field(None, min_length=1)
    postalCode: Optional[str] = Field(None, min_length=1)
    country: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = Field(None, min_length=1)
    isDefault: Optional[bool] = None


# ----------------------- Category references -----------------------
@dataclass(frozen=True)
class CategoryId:
    """A stored category reference that has not been resolved."""
    id: str


@dataclass(frozen=True)
class ResolvedCategory:
    category: dict

    @property
    def id(self) -> str:
        return str(self.category.get("_id") or self.category.get("id"))


CategoryRef = Union[CategoryId, ResolvedCategory]


def category_ref(value) -> Optional[CategoryRef]:
    """Normalize whatever a product stores under ``category``."""
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        return ResolvedCategory(value)
    return CategoryId(str(value))
