from typing import Optional, List
from pydantic import BaseModel, EmailStr, Field, conint, field_validator
from datetime import datetime

from models import OrderStatus, Role


def _normalize_role(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    role = value.strip().upper()
    if role not in (Role.USER.value, Role.ADMIN.value):
        raise ValueError("role must be USER or ADMIN")
    return role


# --- Users ---
class UserBase(BaseModel):
    username: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)


class UserCreate(UserBase):
    password: str = Field(..., min_length=1, max_length=72)
    role: Optional[str] = None  # Defaults to USER

    @field_validator("role")
    @classmethod
    def normalize_role(cls, value):
        return _normalize_role(value)


class UserUpdate(BaseModel):
    username: Optional[str] = Field(None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    name: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    role: Optional[str] = None
    password: Optional[str] = Field(None, max_length=72)  # Re-hashed only when non-empty

    @field_validator("role")
    @classmethod
    def normalize_role(cls, value):
        return _normalize_role(value)


class User(UserBase):
    id: int
    role: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserSummary(BaseModel):
    id: int
    username: str
    name: Optional[str] = None

    class Config:
        from_attributes = True


# --- Auth ---
class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    token: str


# --- Categories & Tags ---
class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    slug: Optional[str] = Field(None, max_length=120)  # Derived from the name when omitted
    parent_id: Optional[int] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    slug: Optional[str] = Field(None, max_length=120)
    parent_id: Optional[int] = None


class Category(BaseModel):
    id: int
    name: str
    slug: Optional[str] = None
    parent_id: Optional[int] = None

    class Config:
        from_attributes = True


class CategoryRef(BaseModel):
    id: Optional[int] = None


class TagCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    slug: Optional[str] = Field(None, max_length=120)


class TagUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    slug: Optional[str] = Field(None, max_length=120)


class Tag(BaseModel):
    id: int
    name: str
    slug: Optional[str] = None

    class Config:
        from_attributes = True


# --- Product media ---
class ProductImageCreate(BaseModel):
    image_url: str = Field(..., min_length=1, max_length=500)
    alt_text: Optional[str] = Field(None, max_length=255)
    order_index: int = 0


class ProductImagePatch(BaseModel):
    # Entries with a blank URL are skipped on update
    image_url: Optional[str] = Field(None, max_length=500)
    alt_text: Optional[str] = Field(None, max_length=255)
    order_index: Optional[int] = None


class ProductImage(BaseModel):
    id: int
    image_url: str
    alt_text: Optional[str] = None
    order_index: int

    class Config:
        from_attributes = True


class ProductFileCreate(BaseModel):
    file_url: str = Field(..., min_length=1, max_length=500)
    file_type: Optional[str] = Field(None, max_length=20, examples=["STL", "OBJ", "PDF"])
    downloadable: bool = False


class ProductFile(BaseModel):
    id: int
    file_url: str
    file_type: Optional[str] = None
    downloadable: Optional[bool] = None

    class Config:
        from_attributes = True


# --- Products ---
class ProductCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = Field(None, max_length=10)
    stock: Optional[int] = Field(0, ge=0)
    material: Optional[str] = Field(None, max_length=100)
    dimensions: Optional[str] = Field(None, max_length=100)
    weight: Optional[float] = Field(None, ge=0)
    main_image_url: Optional[str] = Field(None, max_length=500)
    category: Optional[CategoryRef] = None
    tag_ids: List[int] = []
    images: List[ProductImageCreate] = []
    files: List[ProductFileCreate] = []


class ProductUpdate(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = Field(None, max_length=10)
    stock: Optional[int] = Field(None, ge=0)
    material: Optional[str] = Field(None, max_length=100)
    dimensions: Optional[str] = Field(None, max_length=100)
    weight: Optional[float] = Field(None, ge=0)
    main_image_url: Optional[str] = Field(None, max_length=500)
    # Omitting the category clears it
    category: Optional[CategoryRef] = None
    images: Optional[List[ProductImagePatch]] = None


class Product(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    price: Optional[float] = None
    currency: Optional[str] = None
    stock: Optional[int] = None
    material: Optional[str] = None
    dimensions: Optional[str] = None
    weight: Optional[float] = None
    main_image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    category: Optional[Category] = None
    images: List[ProductImage] = []
    files: List[ProductFile] = []
    tags: List[Tag] = []

    class Config:
        from_attributes = True


class ProductSummary(BaseModel):
    id: int
    title: str
    price: Optional[float] = None
    currency: Optional[str] = None
    main_image_url: Optional[str] = None

    class Config:
        from_attributes = True


# --- Cart ---
class CartItemCreate(BaseModel):
    product_id: int
    quantity: conint(gt=0) = 1


class CartItemUpdate(BaseModel):
    quantity: conint(gt=0)


class CartItem(BaseModel):
    id: int
    quantity: int
    price_at_add: Optional[float] = None
    created_at: Optional[datetime] = None
    user_id: int
    product: ProductSummary

    class Config:
        from_attributes = True


# --- Orders ---
class OrderItemCreate(BaseModel):
    product_id: int
    quantity: conint(gt=0) = 1


class OrderItem(BaseModel):
    id: int
    quantity: int
    price: Optional[float] = None
    product_id: int

    class Config:
        from_attributes = True


class OrderCreate(BaseModel):
    status: OrderStatus = OrderStatus.NEW
    address: Optional[str] = None
    payment_method: Optional[str] = Field(None, max_length=50)
    # Ignored when items are given; the total is then computed from the frozen item prices
    total_amount: Optional[float] = Field(None, ge=0)
    items: List[OrderItemCreate] = []


class OrderUpdate(BaseModel):
    status: Optional[str] = Field(None, examples=[s.value for s in OrderStatus])
    address: Optional[str] = None
    payment_method: Optional[str] = Field(None, max_length=50)
    total_amount: Optional[float] = Field(None, ge=0)


class Order(BaseModel):
    id: int
    status: str
    total_amount: float
    address: Optional[str] = None
    payment_method: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user_id: int
    items: List[OrderItem] = []

    class Config:
        from_attributes = True


# --- Reviews ---
class ReviewCreate(BaseModel):
    rating: conint(ge=1, le=5)  # Rating between 1 and 5
    comment: Optional[str] = Field(None, max_length=2000)


class Review(BaseModel):
    id: int
    rating: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None
    product_id: int
    user: Optional[UserSummary] = None

    class Config:
        from_attributes = True
