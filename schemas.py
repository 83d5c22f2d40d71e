"""
Database and request schemas for Karigari

Collections:
- user: customers, artisans (pending until approved by an admin) and admins
- product: handcrafted items listed by artisans
- order: customer orders; every line item names the artisan who fulfils it
- customization: bespoke request threads between a customer and an artisan
- chat: direct message rooms
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

PRODUCT_CATEGORIES = (
    "Pottery", "Textiles", "Jewelry", "Woodwork", "Metalcraft", "Paintings",
    "Sculptures", "Home Decor", "Handicrafts", "Traditional Art", "Modern Art",
)

ORDER_STATUSES = ("pending", "confirmed", "processing", "shipped", "delivered", "cancelled", "refunded")

ProductStatus = Literal["draft", "published", "pending", "approved", "rejected", "out-of-stock", "discontinued"]
UserStatus = Literal["pending", "approved", "rejected", "suspended"]
PaymentMethod = Literal["credit-card", "debit-card", "paypal", "bank-transfer", "cash-on-delivery"]
CustomizationStatus = Literal[
    "pending", "under-review", "quoted", "accepted", "rejected", "in-progress", "completed", "cancelled"
]


# ---------- users ----------

class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class SocialLinks(BaseModel):
    instagram: Optional[str] = None
    facebook: Optional[str] = None
    website: Optional[str] = None


class Profile(BaseModel):
    avatar: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[Address] = None
    bio: Optional[str] = None
    skills: List[str] = Field(default_factory=list, description="Artisan skills")
    experience: Optional[str] = None
    business_name: Optional[str] = None
    location: Optional[str] = None
    social_links: Optional[SocialLinks] = None


class UserStats(BaseModel):
    total_orders: int = 0
    total_sales: int = 0
    rating: float = Field(0, ge=0, le=5)
    review_count: int = 0


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Lower-cased email address")
    password_hash: str = Field(..., description="BCrypt hash of the password")
    role: str = Field("customer", description="customer, artisan, artisan-pending or admin")
    status: str = Field("approved", description="pending, approved, rejected or suspended")
    profile: Profile = Field(default_factory=Profile)
    stats: UserStats = Field(default_factory=UserStats)
    favorites: list = Field(default_factory=list, description="Product ObjectIds")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RegisterPayload(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Literal["customer", "artisan"] = "customer"
    profile: Optional[Profile] = None


class LoginPayload(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    profile: Optional[Profile] = None


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


class AdminBootstrap(BaseModel):
    admin_password: str = Field("admin123", min_length=6)


class UserStatusUpdate(BaseModel):
    status: UserStatus


class FavoritePayload(BaseModel):
    product_id: str


# ---------- products ----------

class ProductStatusUpdate(BaseModel):
    status: ProductStatus
    rejection_reason: Optional[str] = None


class DescriptionRequest(BaseModel):
    category: str = Field(..., min_length=1)
    materials: str = Field(..., min_length=1)
    title: Optional[str] = None


# ---------- orders ----------

class ItemCustomizations(BaseModel):
    color: Optional[str] = None
    size: Optional[str] = None
    material: Optional[str] = None
    personalization: Optional[str] = None
    notes: Optional[str] = None


class OrderItemIn(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    customizations: Optional[ItemCustomizations] = None


class ShippingAddress(BaseModel):
    name: str
    street: str
    city: str
    state: str
    zip_code: str
    country: str
    phone: Optional[str] = None


class BillingAddress(Address):
    name: Optional[str] = None
    phone: Optional[str] = None
    same_as_shipping: bool = True


class OrderCreate(BaseModel):
    items: List[OrderItemIn] = Field(..., min_length=1)
    shipping_address: ShippingAddress
    billing_address: Optional[BillingAddress] = None
    payment_method: PaymentMethod = "credit-card"
    customer_note: Optional[str] = None


class TrackingInfo(BaseModel):
    carrier: Optional[str] = None
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None


class OrderStatusUpdate(BaseModel):
    status: str = Field(..., min_length=1)
    note: Optional[str] = None
    tracking: Optional[TrackingInfo] = None


# ---------- customizations ----------

class Dimensions(BaseModel):
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    unit: Optional[str] = None


class Budget(BaseModel):
    min: Optional[float] = Field(None, ge=0)
    max: Optional[float] = Field(None, ge=0)
    currency: str = "USD"


class Specifications(BaseModel):
    color: Optional[str] = None
    size: Optional[str] = None
    material: Optional[str] = None
    dimensions: Optional[Dimensions] = None
    quantity: int = Field(1, ge=1)
    budget: Optional[Budget] = None


class RequestDetails(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    specifications: Specifications = Field(default_factory=Specifications)
    reference_images: List[str] = Field(default_factory=list)
    deadline: Optional[datetime] = None
    notes: Optional[str] = None


class CustomizationCreate(BaseModel):
    artisan_id: str
    product_id: str
    request_details: RequestDetails
    priority: Literal["low", "medium", "high", "urgent"] = "medium"
    tags: List[str] = Field(default_factory=list)


class CustomizationStatusUpdate(BaseModel):
    status: CustomizationStatus
    note: Optional[str] = None


class QuotePayload(BaseModel):
    base_price: float = Field(0, ge=0)
    customization_fee: float = Field(0, ge=0)
    material_cost: float = Field(0, ge=0)
    labor_cost: float = Field(0, ge=0)
    total_price: Optional[float] = Field(None, ge=0)
    currency: str = "USD"
    valid_until: Optional[datetime] = None
    terms: Optional[str] = None
    message: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    alternative_options: Optional[str] = None


# ---------- chat ----------

class RoomCreate(BaseModel):
    participant_id: str
    entity_type: Optional[Literal["product", "order", "customization", "general"]] = None
    entity_id: Optional[str] = None
    subject: Optional[str] = None


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1)
    message_type: Literal["text", "image", "file", "system", "quote", "order"] = "text"
