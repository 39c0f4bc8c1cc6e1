"""Pydantic request/response schemas used by the API.

Schemas keep API input/output shapes stable and provide validation for
controller handlers and tests. Fields are snake_case in Python and
camelCase on the wire; services build DTOs straight from SQLModel rows
via `from_attributes`.
"""

from datetime import date
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel


class DTO(BaseModel):
    """Base class for camelCase transfer objects.

    Strings are stripped before length checks so blank values fail
    `min_length` validation.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
    )


class CategoryDTO(DTO):
    category_id: Optional[int] = None
    category_name: str = Field(min_length=5)


class ProductDTO(DTO):
    """Product as exchanged with clients.

    On requests only name, description, quantity, price and discount are
    used; id, image and special price are assigned server-side.
    """
    product_id: Optional[int] = None
    product_name: str = Field(min_length=3)
    image: Optional[str] = None
    description: str = Field(min_length=6)
    quantity: int = Field(default=0, ge=0)
    price: float = Field(default=0.0, ge=0)
    discount: float = Field(default=0.0, ge=0, le=100)
    special_price: float = 0.0


class PageResponse(DTO):
    page_number: int
    page_size: int
    total_elements: int
    total_pages: int
    last_page: bool


class CategoryResponse(PageResponse):
    content: List[CategoryDTO]


class ProductResponse(PageResponse):
    content: List[ProductDTO]


class CartDTO(DTO):
    """A cart with its products; each product's `quantity` is the cart quantity."""
    cart_id: Optional[int] = None
    total_price: float = 0.0
    products: List[ProductDTO] = Field(default_factory=list)


class AddressDTO(DTO):
    address_id: Optional[int] = None
    street: str = Field(min_length=5)
    building_name: str = Field(min_length=5)
    city: str = Field(min_length=4)
    state: str = Field(min_length=2)
    country: str = Field(min_length=2)
    pincode: str = Field(min_length=5)


class PaymentDTO(DTO):
    payment_id: Optional[int] = None
    payment_method: str
    pg_payment_id: Optional[str] = None
    pg_status: Optional[str] = None
    pg_response_message: Optional[str] = None
    pg_name: Optional[str] = None


class OrderItemDTO(DTO):
    order_item_id: Optional[int] = None
    product: Optional[ProductDTO] = None
    quantity: int
    discount: float
    ordered_product_price: float


class OrderDTO(DTO):
    order_id: Optional[int] = None
    email: str
    order_items: List[OrderItemDTO] = Field(default_factory=list)
    order_date: date
    payment: Optional[PaymentDTO] = None
    total_amount: float
    order_status: str
    address_id: Optional[int] = None


class OrderRequestDTO(DTO):
    """Checkout payload; the payment method itself comes from the URL."""
    address_id: int
    pg_name: Optional[str] = None
    pg_payment_id: Optional[str] = None
    pg_status: Optional[str] = None
    pg_response_message: Optional[str] = None


class LoginRequest(BaseModel):
    """Payload for the sign-in endpoint."""
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class SignupRequest(BaseModel):
    """Payload for user registration.

    `role` is an optional set of role keywords (`admin`, `seller`,
    anything else meaning a plain user).
    """
    username: str = Field(min_length=3, max_length=20)
    email: EmailStr
    role: Optional[Set[str]] = None
    password: str = Field(min_length=6, max_length=40)

    @field_validator('email')
    @classmethod
    def _email_length(cls, value: str) -> str:
        if len(value) > 50:
            raise ValueError('email must be at most 50 characters')
        return value


class UserInfoResponse(DTO):
    """Authenticated user summary; `jwt_token` is only set on sign-in."""
    id: int
    username: str
    roles: List[str]
    jwt_token: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    """Shape of every error body produced by the exception handlers."""
    message: str
    success: bool = False
    errors: Optional[Dict[str, str]] = None
