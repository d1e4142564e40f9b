"""
Database Schemas for Darpan Wears

Each Pydantic model describes the documents of one collection:
- Product -> "products"
- Order -> "orders"
- HeroImage -> "heroImages"
- ChatMessage -> "messages"
- *Setting -> singleton documents in "settings", keyed by name
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, HttpUrl, field_validator

PHONE_PATTERN = r"^\+?[1-9][0-9]{7,14}$"

PaymentMethod = Literal["cash", "online"]


class ProductImage(BaseModel):
    id: str
    url: str
    alt: str = ""
    hint: str = "product photo"


class Product(BaseModel):
    id: Optional[str] = None
    name: str
    description: str = ""
    category: Optional[str] = Field(None, description="Absent means uncategorized")
    original_price: int = Field(..., ge=0)
    sale_price: int = Field(..., ge=0)
    price_formatted: str = ""
    images: List[ProductImage] = Field(..., min_length=1, description="First image is the thumbnail")
    sizes: List[str] = []
    is_cash_on_delivery_available: bool = True
    product_link: Optional[str] = Field(None, description="Admin only")
    video_url: Optional[str] = None


class ProductDetails(BaseModel):
    """Snapshot of the product taken when the order is placed."""
    name: str
    price: int
    size: str


class CustomerDetails(BaseModel):
    name: str = Field(..., min_length=2, description="Full name")
    phone: str = Field(..., pattern=PHONE_PATTERN, description="WhatsApp number, e.g. +919876543210")
    address: str = Field(..., min_length=10, description="House no, street, city, state, pincode")


class Order(BaseModel):
    id: Optional[str] = None
    product_id: str
    product_details: Optional[ProductDetails] = None
    customer_name: str
    customer_contact: str
    customer_address: str
    order_date: str = Field(..., description="ISO timestamp, set once")
    is_completed: bool = False
    completed_date: str = Field("", description="ISO timestamp while completed, empty while pending")


class HeroImage(BaseModel):
    id: Optional[str] = None
    image_url: str
    title: Optional[str] = None
    subtitle: Optional[str] = None


class ChatMessage(BaseModel):
    session_id: Optional[str] = None
    sender: Literal["user", "ai"]
    text: str


# ----------------------- Settings -----------------------

class FooterSetting(BaseModel):
    content: str = Field(..., min_length=1)


class PrivacyPolicySetting(BaseModel):
    content: str = Field(..., min_length=1)


class AnnouncementSetting(BaseModel):
    content: str = ""


class PaymentSetting(BaseModel):
    is_cash_on_delivery_enabled: bool = True


class AssistantPromptSetting(BaseModel):
    base_prompt: str = Field(..., min_length=20)


# ----------------------- Admin forms -----------------------

def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


class ProductForm(BaseModel):
    name: str = Field(..., min_length=3)
    category: str = Field(..., min_length=3)
    description: str = Field(..., min_length=10)
    original_price: int = Field(..., ge=0)
    sale_price: int = Field(..., ge=0)
    image_urls: List[HttpUrl] = Field(..., min_length=1)
    sizes: str = Field(..., min_length=1, description="Comma-separated, e.g. S, M, L, XL")
    is_cash_on_delivery_available: bool = True
    product_link: Optional[HttpUrl] = None
    video_url: Optional[HttpUrl] = None

    @field_validator("product_link", "video_url", mode="before")
    @classmethod
    def blank_url(cls, v):
        return _blank_to_none(v)

    @field_validator("sizes")
    @classmethod
    def has_size(cls, v: str) -> str:
        if not any(s.strip() for s in v.split(",")):
            raise ValueError("Please enter at least one size (comma-separated)")
        return v


class HeroImageForm(BaseModel):
    image_url: HttpUrl
    title: Optional[str] = None
    subtitle: Optional[str] = None
