from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, HttpUrl, field_validator

from hasta.models import AddressType, OrderStatus, RequestType, ReturnStatus


# =====================================================
# AUTH
# =====================================================

class RegisterPayload(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    full_name: Optional[str] = None
    phone: Optional[str] = None


class LoginPayload(BaseModel):
    email: EmailStr
    password: str


# =====================================================
# CATALOG
# =====================================================

class VariantIn(BaseModel):
    size: str = Field(min_length=1)
    price: float = Field(gt=0)


def _unique_sizes(variants: Optional[List[VariantIn]]) -> Optional[List[VariantIn]]:
    if variants:
        sizes = [v.size for v in variants]
        if len(sizes) != len(set(sizes)):
            raise ValueError("Variant sizes must be unique")
    return variants


class ProductCreate(BaseModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    material: Optional[str] = None
    images: List[str] = []
    in_stock: bool = True
    base_mrp: Optional[float] = Field(default=None, ge=0)
    gst: float = Field(default=5, ge=0, le=28)
    variants: List[VariantIn] = []

    @field_validator("variants")
    @classmethod
    def check_sizes(cls, value):
        return _unique_sizes(value)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    material: Optional[str] = None
    images: Optional[List[str]] = None
    in_stock: Optional[bool] = None
    base_mrp: Optional[float] = Field(default=None, ge=0)
    gst: Optional[float] = Field(default=None, ge=0, le=28)
    variants: Optional[List[VariantIn]] = None

    @field_validator("variants")
    @classmethod
    def check_sizes(cls, value):
        return _unique_sizes(value)


# =====================================================
# CART
# =====================================================

class AddToCartPayload(BaseModel):
    product_id: str
    selected_size: Optional[str] = None


class UpdateQuantityPayload(BaseModel):
    quantity: int


class UpdateSizePayload(BaseModel):
    selected_size: str = Field(min_length=1)


# =====================================================
# ADDRESSES
# =====================================================

class AddressCreate(BaseModel):
    name: str = Field(min_length=1)
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    pincode: str = Field(pattern=r"^\d{6}$")
    phone: str = Field(min_length=10)
    address_type: AddressType = AddressType.home
    is_default: bool = False


class AddressUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    address: Optional[str] = Field(default=None, min_length=1)
    city: Optional[str] = Field(default=None, min_length=1)
    state: Optional[str] = Field(default=None, min_length=1)
    pincode: Optional[str] = Field(default=None, pattern=r"^\d{6}$")
    phone: Optional[str] = Field(default=None, min_length=10)
    address_type: Optional[AddressType] = None
    is_default: Optional[bool] = None


# =====================================================
# CHECKOUT / ORDERS
# =====================================================

class CheckoutPayload(BaseModel):
    address_id: str
    utr: str = ""
    payment_percentage: float = 1
    transaction_id: Optional[str] = None


class OrderStatusPayload(BaseModel):
    status: OrderStatus


class DeliveryDatePayload(BaseModel):
    delivery_date: datetime


# =====================================================
# RETURNS
# =====================================================

class ReturnItemIn(BaseModel):
    order_item_id: Optional[str] = None
    product_id: Optional[str] = None
    size: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=1)


class CreateReturnPayload(BaseModel):
    order_id: str
    items: List[ReturnItemIn] = []
    reason: Optional[str] = None
    comments: str = ""
    damage_images: List[str] = []


class ReviewReturnPayload(BaseModel):
    status: ReturnStatus


# =====================================================
# B2B REQUESTS
# =====================================================

class MaterialLineIn(BaseModel):
    material_id: str = Field(min_length=1)
    material_name: str = Field(min_length=1)
    quantity: int = Field(ge=1)
    customization_details: Optional[str] = None
    reference_images: List[HttpUrl] = []
    product_name: Optional[str] = None
    budget_per_piece: Optional[float] = None
    description: Optional[str] = None
    height: Optional[str] = None
    length: Optional[str] = None
    width: Optional[str] = None
    shape: Optional[str] = None


class CustomerDetailsIn(BaseModel):
    name: str = Field(min_length=1)
    mobile: str = Field(min_length=10)
    email: Optional[EmailStr] = None
    state: Optional[str] = None
    gst_number: Optional[str] = None
    total_budget: Optional[float] = None

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_none(cls, value):
        return value or None


class OrderRequestCreate(BaseModel):
    order_type: RequestType
    materials: List[MaterialLineIn] = Field(min_length=1)
    requirement_date: str = Field(min_length=1)
    customer_details: CustomerDetailsIn


class RequestDecisionPayload(BaseModel):
    status: Literal["approved", "rejected"]


class AdminNotePayload(BaseModel):
    admin_note: str
