"""
Database Schemas for the Storefront API

User and Product mirror MongoDB collections ("user", "product") and validate
documents before they are written. Stock movements and carts reference other
documents by ObjectId and are built directly in stock.py and cart.py.
Request bodies follow.
"""

from pydantic import BaseModel, ConfigDict, Field, EmailStr, StrictInt
from typing import Optional, List, Literal

# upper bound for any stock or cart quantity, far inside the BSON int64 range
MAX_QUANTITY = 1_000_000_000


class User(BaseModel):
    """
    Users collection schema
    `password` holds the bcrypt hash, never the plain password.
    """
    name: str = Field(..., min_length=1, description="Full name")
    email: EmailStr = Field(..., description="Email address, stored lowercase")
    password: str = Field(..., description="bcrypt hash")
    role: Literal["admin", "client"] = Field("client", description="Role: admin or client")


class Product(BaseModel):
    """Products collection schema"""
    name: str = Field(..., min_length=1, description="Product name")
    description: str = Field(..., min_length=1)
    images: List[str] = Field(default_factory=list, description="Image filenames or URLs")
    price: float = Field(..., ge=0)
    category: str = Field(..., min_length=1)
    available: bool = Field(True)
    stock: int = Field(..., ge=0, le=MAX_QUANTITY, description="Units in stock")


# ---------- Request bodies ----------

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6)


class StockAdjustRequest(BaseModel):
    quantity: StrictInt = Field(..., ge=-MAX_QUANTITY, le=MAX_QUANTITY)
    description: Optional[str] = None


class MovementUpdateRequest(BaseModel):
    quantity: Optional[StrictInt] = Field(None, ge=-MAX_QUANTITY, le=MAX_QUANTITY)
    description: Optional[str] = None


class CartAddRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(..., alias="productId")
    quantity: int = Field(1, ge=1, le=MAX_QUANTITY)


class CartUpdateRequest(BaseModel):
    quantity: int = Field(..., ge=1, le=MAX_QUANTITY)


class ContactRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    message: str = Field(..., min_length=1)
