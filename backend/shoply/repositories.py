"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
roles, categories, products, carts, addresses, orders). Repositories
return SQLModel objects. `save`/`delete` commit immediately; the
`stage_*` helpers only add to the session so a service can commit a
multi-row change once.
"""

import math
from dataclasses import dataclass
from typing import Generic, List, Optional, Type, TypeVar

from sqlalchemy import func
from sqlmodel import Session, SQLModel, select

from . import models
from .exceptions import APIException

T = TypeVar('T', bound=SQLModel)


@dataclass
class Page(Generic[T]):
    """One page of query results plus the paging metadata."""
    content: List[T]
    page_number: int
    page_size: int
    total_elements: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_elements / self.page_size) if self.page_size else 0

    @property
    def last(self) -> bool:
        return self.page_number + 1 >= self.total_pages


def _snake(name: str) -> str:
    """Convert a camelCase API field name (`productName`) to `product_name`."""
    out = []
    for ch in name:
        if ch.isupper():
            out.append('_')
            out.append(ch.lower())
        else:
            out.append(ch)
    return ''.join(out)


def sort_column(model: Type[SQLModel], sort_by: str, sort_order: str):
    """Return an ORDER BY clause for `sort_by` on `model`.

    `sort_by` may be given in camelCase or snake_case. Anything other
    than `asc` (case-insensitive) sorts descending.
    """
    attr = _snake(sort_by)
    if attr not in model.model_fields:
        raise APIException(f"Invalid sort field: {sort_by}")
    column = getattr(model, attr)
    return column.asc() if sort_order.lower() == 'asc' else column.desc()


def paginate(session: Session, stmt, page_number: int, page_size: int, *order_by) -> Page:
    """Execute `stmt` for a single page and count the total matches."""
    total = session.exec(select(func.count()).select_from(stmt.order_by(None).subquery())).one()
    rows = session.exec(stmt.order_by(*order_by).offset(page_number * page_size).limit(page_size)).all()
    return Page(content=list(rows), page_number=page_number, page_size=page_size, total_elements=total)


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def save(self, user: models.User) -> models.User:
        self.session.add(user)
        self.session.commit()
        return user

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)

    def get_by_username(self, username: str) -> Optional[models.User]:
        """Return a `User` by username or `None` if not found."""
        stmt = select(models.User).where(models.User.username == username)
        return self.session.exec(stmt).first()

    def exists_by_username(self, username: str) -> bool:
        stmt = select(models.User.user_id).where(models.User.username == username)
        return self.session.exec(stmt).first() is not None

    def exists_by_email(self, email: str) -> bool:
        stmt = select(models.User.user_id).where(models.User.email == email)
        return self.session.exec(stmt).first() is not None


class RoleRepository:
    """Lookup and creation of `Role` rows."""
    def __init__(self, session: Session):
        self.session = session

    def get_by_name(self, role_name: models.AppRole) -> Optional[models.Role]:
        stmt = select(models.Role).where(models.Role.role_name == role_name.value)
        return self.session.exec(stmt).first()

    def create(self, role_name: models.AppRole) -> models.Role:
        role = models.Role(role_name=role_name.value)
        self.session.add(role)
        self.session.commit()
        self.session.refresh(role)
        return role


class CategoryRepository:
    """CRUD and paging for `Category` rows."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, category: models.Category) -> models.Category:
        """Insert or update a category and return the refreshed row."""
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def get(self, category_id: int) -> Optional[models.Category]:
        return self.session.get(models.Category, category_id)

    def get_by_name(self, category_name: str) -> Optional[models.Category]:
        stmt = select(models.Category).where(models.Category.category_name == category_name)
        return self.session.exec(stmt).first()

    def delete(self, category: models.Category) -> None:
        self.session.delete(category)
        self.session.commit()

    def page(self, page_number: int, page_size: int, sort_by: str, sort_order: str) -> Page:
        order = sort_column(models.Category, sort_by, sort_order)
        return paginate(self.session, select(models.Category), page_number, page_size, order)


class ProductRepository:
    """CRUD, search and paging for `Product` rows."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, product: models.Product) -> models.Product:
        self.session.add(product)
        self.session.commit()
        self.session.refresh(product)
        return product

    def stage(self, product: models.Product) -> None:
        self.session.add(product)

    def get(self, product_id: int) -> Optional[models.Product]:
        return self.session.get(models.Product, product_id)

    def delete(self, product: models.Product) -> None:
        self.session.delete(product)
        self.session.commit()

    def exists_in_category(self, category_id: int, product_name: str) -> bool:
        """Return True if `category_id` already holds a product called `product_name`."""
        stmt = select(models.Product.product_id).where(
            models.Product.category_id == category_id,
            models.Product.product_name == product_name
        )
        return self.session.exec(stmt).first() is not None

    def list_by_category(self, category_id: int) -> List[models.Product]:
        stmt = select(models.Product).where(models.Product.category_id == category_id)
        return self.session.exec(stmt).all()

    def page(self, page_number: int, page_size: int, sort_by: str, sort_order: str) -> Page:
        order = sort_column(models.Product, sort_by, sort_order)
        return paginate(self.session, select(models.Product), page_number, page_size, order)

    def page_by_category(self, category_id: int, page_number: int, page_size: int, sort_by: str, sort_order: str) -> Page:
        """Page through a category's products, cheapest first, then by `sort_by`."""
        order = sort_column(models.Product, sort_by, sort_order)
        stmt = select(models.Product).where(models.Product.category_id == category_id)
        return paginate(self.session, stmt, page_number, page_size, models.Product.price.asc(), order)

    def page_by_keyword(self, keyword: str, page_number: int, page_size: int, sort_by: str, sort_order: str) -> Page:
        """Page through products whose name contains `keyword` (case-insensitive)."""
        order = sort_column(models.Product, sort_by, sort_order)
        stmt = select(models.Product).where(models.Product.product_name.ilike(f"%{keyword}%"))
        return paginate(self.session, stmt, page_number, page_size, order)


class CartRepository:
    """Queries for `Cart` aggregates."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, cart: models.Cart) -> models.Cart:
        self.session.add(cart)
        self.session.commit()
        self.session.refresh(cart)
        return cart

    def stage(self, cart: models.Cart) -> None:
        self.session.add(cart)

    def get(self, cart_id: int) -> Optional[models.Cart]:
        return self.session.get(models.Cart, cart_id)

    def list_all(self) -> List[models.Cart]:
        return self.session.exec(select(models.Cart)).all()

    def get_by_email(self, email: str) -> Optional[models.Cart]:
        """Return the cart owned by the user with `email`."""
        stmt = select(models.Cart).join(models.User).where(models.User.email == email)
        return self.session.exec(stmt).first()

    def get_by_email_and_id(self, email: str, cart_id: int) -> Optional[models.Cart]:
        stmt = select(models.Cart).join(models.User).where(
            models.User.email == email,
            models.Cart.cart_id == cart_id
        )
        return self.session.exec(stmt).first()

    def list_containing_product(self, product_id: int) -> List[models.Cart]:
        """Return every cart holding a line for `product_id`."""
        stmt = select(models.Cart).join(models.CartItem).where(models.CartItem.product_id == product_id)
        return self.session.exec(stmt).all()


class CartItemRepository:
    """Lookup and mutation of individual cart lines."""
    def __init__(self, session: Session):
        self.session = session

    def get_by_cart_and_product(self, cart_id: int, product_id: int) -> Optional[models.CartItem]:
        stmt = select(models.CartItem).where(
            models.CartItem.cart_id == cart_id,
            models.CartItem.product_id == product_id
        )
        return self.session.exec(stmt).first()

    def stage(self, item: models.CartItem) -> None:
        self.session.add(item)

    def stage_delete(self, item: models.CartItem) -> None:
        self.session.delete(item)


class AddressRepository:
    """CRUD operations for `Address` rows."""
    def __init__(self, session: Session):
        self.session = session

    def save(self, address: models.Address) -> models.Address:
        self.session.add(address)
        self.session.commit()
        self.session.refresh(address)
        return address

    def get(self, address_id: int) -> Optional[models.Address]:
        return self.session.get(models.Address, address_id)

    def list_all(self) -> List[models.Address]:
        return self.session.exec(select(models.Address)).all()

    def list_for_user(self, user_id: int) -> List[models.Address]:
        stmt = select(models.Address).where(models.Address.user_id == user_id)
        return self.session.exec(stmt).all()

    def delete(self, address: models.Address) -> None:
        self.session.delete(address)
        self.session.commit()


class OrderRepository:
    """Persist orders together with their payment and items."""
    def __init__(self, session: Session):
        self.session = session

    def stage(self, order: models.Order, payment: models.Payment, items: List[models.OrderItem]) -> models.Order:
        """Add the order graph to the session and flush to assign ids.

        The caller commits, so the order, its payment and any follow-up
        stock/cart changes land in one transaction.
        """
        self.session.add(payment)
        self.session.flush()
        order.payment_id = payment.payment_id
        self.session.add(order)
        self.session.flush()
        for it in items:
            it.order_id = order.order_id
            self.session.add(it)
        self.session.flush()
        return order

    def get(self, order_id: int) -> Optional[models.Order]:
        return self.session.get(models.Order, order_id)
