"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table and uses relationships where appropriate.
Tables whose default name would clash with SQL keywords (`user`,
`order`) are given explicit plural names.
"""

from enum import Enum
from typing import List, Optional
from sqlmodel import SQLModel, Field, Relationship
from datetime import datetime, date


class AppRole(str, Enum):
    """Role names granted to users."""
    USER = 'ROLE_USER'
    SELLER = 'ROLE_SELLER'
    ADMIN = 'ROLE_ADMIN'


class UserRoleLink(SQLModel, table=True):
    """Association table between `User` and `Role`."""
    __tablename__ = 'user_role'
    user_id: Optional[int] = Field(default=None, foreign_key='users.user_id', primary_key=True)
    role_id: Optional[int] = Field(default=None, foreign_key='roles.role_id', primary_key=True)


class Role(SQLModel, table=True):
    __tablename__ = 'roles'
    role_id: Optional[int] = Field(default=None, primary_key=True)
    role_name: str = Field(index=True, unique=True)


class User(SQLModel, table=True):
    """A registered user.

    Fields:
    - `username`: unique login name
    - `email`: unique address, also used to locate the user's cart
    - `password`: hashed password string (never store plaintext)
    - `last_logout_date`: tokens issued before this instant are rejected
    """
    __tablename__ = 'users'
    user_id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True)
    email: str = Field(index=True, nullable=False, unique=True)
    password: str
    last_logout_date: Optional[datetime] = None
    roles: List[Role] = Relationship(link_model=UserRoleLink)
    addresses: List['Address'] = Relationship(back_populates='user')


class Category(SQLModel, table=True):
    """A catalog category grouping products."""
    category_id: Optional[int] = Field(default=None, primary_key=True)
    category_name: str = Field(index=True, unique=True)
    products: List['Product'] = Relationship(back_populates='category')


class Product(SQLModel, table=True):
    """A product offered in the catalog.

    `special_price` is derived from `price` and the percentage `discount`
    and is stored so carts and orders can snapshot it.
    """
    product_id: Optional[int] = Field(default=None, primary_key=True)
    product_name: str = Field(index=True)
    image: Optional[str] = None
    description: Optional[str] = None
    quantity: int = 0
    price: float = 0.0
    discount: float = 0.0
    special_price: float = 0.0
    category_id: Optional[int] = Field(default=None, foreign_key='category.category_id')
    category: Optional[Category] = Relationship(back_populates='products')


class Address(SQLModel, table=True):
    """A shipping/billing address owned by a user."""
    address_id: Optional[int] = Field(default=None, primary_key=True)
    street: str
    building_name: str
    city: str
    state: str
    country: str
    pincode: str
    user_id: Optional[int] = Field(default=None, foreign_key='users.user_id')
    user: Optional[User] = Relationship(back_populates='addresses')


class Cart(SQLModel, table=True):
    """The single shopping cart of a user."""
    cart_id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='users.user_id', unique=True)
    total_price: float = 0.0
    user: Optional[User] = Relationship()
    cart_items: List['CartItem'] = Relationship(back_populates='cart')


class CartItem(SQLModel, table=True):
    """A product line inside a `Cart`.

    `product_price` and `discount` are copied from the product when the
    line is created or repriced.
    """
    __tablename__ = 'cart_item'
    cart_item_id: Optional[int] = Field(default=None, primary_key=True)
    cart_id: int = Field(foreign_key='cart.cart_id')
    product_id: int = Field(foreign_key='product.product_id')
    quantity: int = 0
    discount: float = 0.0
    product_price: float = 0.0
    cart: Optional[Cart] = Relationship(back_populates='cart_items')
    product: Optional[Product] = Relationship()


class Payment(SQLModel, table=True):
    """Payment gateway details captured when an order is placed."""
    payment_id: Optional[int] = Field(default=None, primary_key=True)
    payment_method: str
    pg_payment_id: Optional[str] = None
    pg_status: Optional[str] = None
    pg_response_message: Optional[str] = None
    pg_name: Optional[str] = None


class Order(SQLModel, table=True):
    __tablename__ = 'orders'
    order_id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True)
    order_date: date = Field(default_factory=date.today)
    total_amount: float = 0.0
    order_status: str
    address_id: Optional[int] = Field(default=None, foreign_key='address.address_id')
    payment_id: Optional[int] = Field(default=None, foreign_key='payment.payment_id')
    payment: Optional[Payment] = Relationship()
    order_items: List['OrderItem'] = Relationship(back_populates='order')


class OrderItem(SQLModel, table=True):
    """A snapshot of a cart line at the time the order was placed."""
    __tablename__ = 'order_item'
    order_item_id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key='orders.order_id')
    product_id: int = Field(foreign_key='product.product_id')
    quantity: int
    discount: float = 0.0
    ordered_product_price: float = 0.0
    order: Optional[Order] = Relationship(back_populates='order_items')
    product: Optional[Product] = Relationship()
