"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories
and map SQLModel rows to transfer objects. Services validate business
rules, raise `ResourceNotFoundException`/`APIException` (translated to
HTTP responses by the global handlers) and persist aggregates via
repositories.
"""

import logging
from datetime import datetime, date, timedelta, timezone
from typing import List, Optional, Set

import jwt
from passlib.context import CryptContext
from sqlmodel import Session

from . import models, repositories, schemas
from .config import settings
from .exceptions import APIException, ResourceNotFoundException
from .utils.images import upload_image

logger = logging.getLogger("shoply.services")

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
DEFAULT_PRODUCT_IMAGE = "default.png"
ORDER_PLACED = "Order Placed"


def special_price(price: float, discount: float) -> float:
    """Return `price` reduced by `discount` percent."""
    return price - ((discount * 0.01) * price)


def _page_fields(page: repositories.Page) -> dict:
    return {
        'page_number': page.page_number,
        'page_size': page.page_size,
        'total_elements': page.total_elements,
        'total_pages': page.total_pages,
        'last_page': page.last,
    }


class CategoryService:
    """Create, list, rename and delete catalog categories."""
    def __init__(self, session: Session):
        self.session = session
        self.category_repo = repositories.CategoryRepository(session)
        self.product_repo = repositories.ProductRepository(session)

    def get_all_categories(self, page_number: int, page_size: int, sort_by: str, sort_order: str) -> schemas.CategoryResponse:
        page = self.category_repo.page(page_number, page_size, sort_by, sort_order)
        if not page.content:
            raise APIException("No category created till now")
        content = [schemas.CategoryDTO.model_validate(c) for c in page.content]
        return schemas.CategoryResponse(content=content, **_page_fields(page))

    def create_category(self, dto: schemas.CategoryDTO) -> schemas.CategoryDTO:
        if self.category_repo.get_by_name(dto.category_name) is not None:
            raise APIException(f"Category with this name {dto.category_name} already exists !!!")
        category = self.category_repo.save(models.Category(category_name=dto.category_name))
        logger.info("category created id=%s name=%s", category.category_id, category.category_name)
        return schemas.CategoryDTO.model_validate(category)

    def update_category(self, dto: schemas.CategoryDTO, category_id: int) -> schemas.CategoryDTO:
        category = self.category_repo.get(category_id)
        if category is None:
            raise ResourceNotFoundException("Category", "categoryId", category_id)
        existing = self.category_repo.get_by_name(dto.category_name)
        if existing is not None and existing.category_id != category_id:
            raise APIException(f"Category with this name {dto.category_name} already exists !!!")
        category.category_name = dto.category_name
        category = self.category_repo.save(category)
        return schemas.CategoryDTO.model_validate(category)

    def delete_category(self, category_id: int) -> schemas.CategoryDTO:
        """Delete a category together with its products.

        Products are removed through `ProductService.delete_product` so
        any carts holding them are adjusted first.
        """
        category = self.category_repo.get(category_id)
        if category is None:
            raise ResourceNotFoundException("Category", "categoryId", category_id)
        dto = schemas.CategoryDTO.model_validate(category)
        product_service = ProductService(self.session)
        for product in self.product_repo.list_by_category(category_id):
            product_service.delete_product(product.product_id)
        self.category_repo.delete(category)
        logger.info("category deleted id=%s", category_id)
        return dto


class ProductService:
    """Catalog management: add, search, update, delete and image upload."""
    def __init__(self, session: Session):
        self.session = session
        self.product_repo = repositories.ProductRepository(session)
        self.category_repo = repositories.CategoryRepository(session)
        self.cart_repo = repositories.CartRepository(session)
        self.cart_service = CartService(session)

    def add_product(self, category_id: int, dto: schemas.ProductDTO) -> schemas.ProductDTO:
        """Create a product under `category_id`.

        The category must exist and must not already contain a product
        with the same name. The special price is derived from price and
        discount; the image starts as the default placeholder.
        """
        category = self.category_repo.get(category_id)
        if category is None:
            raise ResourceNotFoundException("Category", "categoryId", category_id)
        if self.product_repo.exists_in_category(category_id, dto.product_name):
            raise APIException("Product already exists!!")
        product = models.Product(
            product_name=dto.product_name,
            description=dto.description,
            quantity=dto.quantity,
            price=dto.price,
            discount=dto.discount,
            special_price=special_price(dto.price, dto.discount),
            image=DEFAULT_PRODUCT_IMAGE,
            category_id=category.category_id,
        )
        product = self.product_repo.save(product)
        logger.info("product created id=%s category=%s", product.product_id, category_id)
        return schemas.ProductDTO.model_validate(product)

    def _response(self, page: repositories.Page) -> schemas.ProductResponse:
        content = [schemas.ProductDTO.model_validate(p) for p in page.content]
        return schemas.ProductResponse(content=content, **_page_fields(page))

    def get_all_products(self, page_number: int, page_size: int, sort_by: str, sort_order: str) -> schemas.ProductResponse:
        return self._response(self.product_repo.page(page_number, page_size, sort_by, sort_order))

    def search_by_category(self, category_id: int, page_number: int, page_size: int, sort_by: str, sort_order: str) -> schemas.ProductResponse:
        category = self.category_repo.get(category_id)
        if category is None:
            raise ResourceNotFoundException("Category", "categoryId", category_id)
        page = self.product_repo.page_by_category(category_id, page_number, page_size, sort_by, sort_order)
        if not page.content:
            raise APIException(f"{category.category_name} Category does not have any products")
        return self._response(page)

    def search_product_by_keyword(self, keyword: str, page_number: int, page_size: int, sort_by: str, sort_order: str) -> schemas.ProductResponse:
        page = self.product_repo.page_by_keyword(keyword, page_number, page_size, sort_by, sort_order)
        if not page.content:
            raise APIException(f"Product not found with keyword: {keyword}")
        return self._response(page)

    def update_product(self, product_id: int, dto: schemas.ProductDTO) -> schemas.ProductDTO:
        """Overwrite the editable fields and reprice every cart holding the product."""
        product = self.product_repo.get(product_id)
        if product is None:
            raise ResourceNotFoundException("Product", "productId", product_id)
        product.product_name = dto.product_name
        product.description = dto.description
        product.quantity = dto.quantity
        product.discount = dto.discount
        product.price = dto.price
        product.special_price = special_price(dto.price, dto.discount)
        product = self.product_repo.save(product)
        for cart in self.cart_repo.list_containing_product(product_id):
            self.cart_service.update_product_in_carts(cart.cart_id, product_id)
        self.session.refresh(product)
        return schemas.ProductDTO.model_validate(product)

    def delete_product(self, product_id: int) -> schemas.ProductDTO:
        product = self.product_repo.get(product_id)
        if product is None:
            raise ResourceNotFoundException("Product", "productId", product_id)
        for cart in self.cart_repo.list_containing_product(product_id):
            self.cart_service.delete_product_from_cart(cart.cart_id, product_id)
        dto = schemas.ProductDTO.model_validate(product)
        self.product_repo.delete(product)
        logger.info("product deleted id=%s", product_id)
        return dto

    def update_product_image(self, product_id: int, payload: bytes, filename: str) -> schemas.ProductDTO:
        """Store an uploaded image and point the product at the new file."""
        product = self.product_repo.get(product_id)
        if product is None:
            raise ResourceNotFoundException("Product", "productId", product_id)
        product.image = upload_image(settings.IMAGE_DIR, payload, filename)
        product = self.product_repo.save(product)
        return schemas.ProductDTO.model_validate(product)


class CartService:
    """Shopping cart operations.

    The cart total is kept equal to the sum of `product_price * quantity`
    over its items: every mutation adjusts it by the affected line only.
    """
    def __init__(self, session: Session):
        self.session = session
        self.cart_repo = repositories.CartRepository(session)
        self.item_repo = repositories.CartItemRepository(session)
        self.product_repo = repositories.ProductRepository(session)

    def to_dto(self, cart: models.Cart) -> schemas.CartDTO:
        """Map a cart; each product's `quantity` reports the cart quantity."""
        products = []
        for item in cart.cart_items:
            dto = schemas.ProductDTO.model_validate(item.product)
            dto.quantity = item.quantity
            products.append(dto)
        return schemas.CartDTO(cart_id=cart.cart_id, total_price=cart.total_price, products=products)

    def _get_or_create_cart(self, user: models.User) -> models.Cart:
        cart = self.cart_repo.get_by_email(user.email)
        if cart is not None:
            return cart
        return self.cart_repo.save(models.Cart(user_id=user.user_id, total_price=0.0))

    def _require_product(self, product_id: int) -> models.Product:
        product = self.product_repo.get(product_id)
        if product is None:
            raise ResourceNotFoundException("Product", "productId", product_id)
        return product

    @staticmethod
    def _check_stock(product: models.Product, quantity: int):
        if product.quantity == 0:
            raise APIException(f"{product.product_name} is not available")
        if product.quantity < quantity:
            raise APIException(
                f"Please, make an order of the {product.product_name} "
                f"less than or equal to the quantity {product.quantity}."
            )

    def detach_item(self, cart: models.Cart, item: models.CartItem):
        """Stage removal of `item` and subtract its line total; caller commits."""
        cart.total_price = cart.total_price - (item.product_price * item.quantity)
        self.item_repo.stage_delete(item)
        self.cart_repo.stage(cart)

    def add_product_to_cart(self, user: models.User, product_id: int, quantity: int) -> schemas.CartDTO:
        cart = self._get_or_create_cart(user)
        product = self._require_product(product_id)
        if self.item_repo.get_by_cart_and_product(cart.cart_id, product_id) is not None:
            raise APIException(f"Product {product.product_name} already exists in the cart")
        self._check_stock(product, quantity)
        item = models.CartItem(
            cart_id=cart.cart_id,
            product_id=product.product_id,
            quantity=quantity,
            discount=product.discount,
            product_price=product.special_price,
        )
        self.item_repo.stage(item)
        cart.total_price = cart.total_price + (product.special_price * quantity)
        self.cart_repo.stage(cart)
        self.session.commit()
        self.session.refresh(cart)
        logger.info("cart %s: added product %s x%s", cart.cart_id, product_id, quantity)
        return self.to_dto(cart)

    def get_all_carts(self) -> List[schemas.CartDTO]:
        carts = self.cart_repo.list_all()
        if not carts:
            raise APIException("No cart exists")
        return [self.to_dto(c) for c in carts]

    def get_cart(self, email: str, cart_id: int) -> schemas.CartDTO:
        cart = self.cart_repo.get_by_email_and_id(email, cart_id)
        if cart is None:
            raise ResourceNotFoundException("Cart", "cartId", cart_id)
        return self.to_dto(cart)

    def get_user_cart(self, user: models.User) -> schemas.CartDTO:
        cart = self.cart_repo.get_by_email(user.email)
        if cart is None:
            raise ResourceNotFoundException("Cart", "email", user.email)
        return self.get_cart(user.email, cart.cart_id)

    def update_product_quantity_in_cart(self, user: models.User, product_id: int, delta: int) -> schemas.CartDTO:
        """Change a cart line's quantity by `delta` (+1 or -1 from the API).

        Stock is only checked when the quantity grows. A resulting
        quantity of zero removes the line; a negative one is rejected.
        """
        cart = self.cart_repo.get_by_email(user.email)
        if cart is None:
            raise ResourceNotFoundException("Cart", "email", user.email)
        product = self._require_product(product_id)
        item = self.item_repo.get_by_cart_and_product(cart.cart_id, product_id)
        if item is None:
            raise APIException(f"Product {product.product_name} not available in the cart!!!")
        new_quantity = item.quantity + delta
        if new_quantity < 0:
            raise APIException("The resulting quantity cannot be negative.")
        if delta > 0:
            self._check_stock(product, new_quantity)
        if new_quantity == 0:
            self.detach_item(cart, item)
        else:
            item.product_price = product.special_price
            item.discount = product.discount
            item.quantity = new_quantity
            cart.total_price = cart.total_price + (item.product_price * delta)
            self.item_repo.stage(item)
            self.cart_repo.stage(cart)
        self.session.commit()
        self.session.refresh(cart)
        return self.to_dto(cart)

    def delete_product_from_cart(self, cart_id: int, product_id: int, email: Optional[str] = None) -> str:
        """Remove a product line from a cart.

        When `email` is given the cart must belong to that user.
        """
        if email is None:
            cart = self.cart_repo.get(cart_id)
        else:
            cart = self.cart_repo.get_by_email_and_id(email, cart_id)
        if cart is None:
            raise ResourceNotFoundException("Cart", "cartId", cart_id)
        item = self.item_repo.get_by_cart_and_product(cart_id, product_id)
        if item is None:
            raise ResourceNotFoundException("Product", "productId", product_id)
        product_name = item.product.product_name
        self.detach_item(cart, item)
        self.session.commit()
        logger.info("cart %s: removed product %s", cart_id, product_id)
        return f"Product {product_name} removed from the cart !!!"

    def update_product_in_carts(self, cart_id: int, product_id: int):
        """Reprice one cart line after the product's special price changed."""
        cart = self.cart_repo.get(cart_id)
        if cart is None:
            raise ResourceNotFoundException("Cart", "cartId", cart_id)
        product = self._require_product(product_id)
        item = self.item_repo.get_by_cart_and_product(cart_id, product_id)
        if item is None:
            raise APIException(f"Product {product.product_name} not available in the cart!!!")
        cart_price = cart.total_price - (item.product_price * item.quantity)
        item.product_price = product.special_price
        item.discount = product.discount
        cart.total_price = cart_price + (item.product_price * item.quantity)
        self.item_repo.stage(item)
        self.cart_repo.stage(cart)
        self.session.commit()


class AddressService:
    """Manage user addresses."""
    def __init__(self, session: Session):
        self.session = session
        self.address_repo = repositories.AddressRepository(session)

    def _require(self, address_id: int) -> models.Address:
        address = self.address_repo.get(address_id)
        if address is None:
            raise ResourceNotFoundException("Address", "addressId", address_id)
        return address

    def create_address(self, dto: schemas.AddressDTO, user: models.User) -> schemas.AddressDTO:
        address = models.Address(**dto.model_dump(exclude={'address_id'}), user_id=user.user_id)
        address = self.address_repo.save(address)
        return schemas.AddressDTO.model_validate(address)

    def get_addresses(self) -> List[schemas.AddressDTO]:
        return [schemas.AddressDTO.model_validate(a) for a in self.address_repo.list_all()]

    def get_address_by_id(self, address_id: int) -> schemas.AddressDTO:
        return schemas.AddressDTO.model_validate(self._require(address_id))

    def get_user_addresses(self, user: models.User) -> List[schemas.AddressDTO]:
        return [schemas.AddressDTO.model_validate(a) for a in self.address_repo.list_for_user(user.user_id)]

    def update_address(self, address_id: int, dto: schemas.AddressDTO) -> schemas.AddressDTO:
        address = self._require(address_id)
        for field, value in dto.model_dump(exclude={'address_id'}).items():
            setattr(address, field, value)
        address = self.address_repo.save(address)
        return schemas.AddressDTO.model_validate(address)

    def delete_address(self, address_id: int) -> str:
        address = self._require(address_id)
        self.address_repo.delete(address)
        return f"Address deleted successfully with addressId: {address_id}"


class OrderService:
    """Turn the caller's cart into an order."""
    def __init__(self, session: Session):
        self.session = session
        self.cart_repo = repositories.CartRepository(session)
        self.address_repo = repositories.AddressRepository(session)
        self.order_repo = repositories.OrderRepository(session)
        self.product_repo = repositories.ProductRepository(session)
        self.cart_service = CartService(session)

    def place_order(self, user: models.User, address_id: int, payment_method: str, pg_name: Optional[str],
                    pg_payment_id: Optional[str], pg_status: Optional[str], pg_response_message: Optional[str]) -> schemas.OrderDTO:
        """Place an order from the user's cart.

        The payment, order and order items are written together with the
        stock decrements and the emptied cart in a single commit. The
        address must belong to the ordering user.
        """
        cart = self.cart_repo.get_by_email(user.email)
        if cart is None:
            raise ResourceNotFoundException("Cart", "email", user.email)
        address = self.address_repo.get(address_id)
        if address is None or address.user_id != user.user_id:
            raise ResourceNotFoundException("Address", "addressId", address_id)
        cart_items = list(cart.cart_items)
        if not cart_items:
            raise APIException("Cart is empty")
        for item in cart_items:
            if item.product.quantity < item.quantity:
                raise APIException(
                    f"Please, make an order of the {item.product.product_name} "
                    f"less than or equal to the quantity {item.product.quantity}."
                )

        payment = models.Payment(
            payment_method=payment_method,
            pg_name=pg_name,
            pg_payment_id=pg_payment_id,
            pg_status=pg_status,
            pg_response_message=pg_response_message,
        )
        order = models.Order(
            email=user.email,
            order_date=date.today(),
            total_amount=cart.total_price,
            order_status=ORDER_PLACED,
            address_id=address.address_id,
        )
        order_items = [
            models.OrderItem(
                product_id=item.product_id,
                quantity=item.quantity,
                discount=item.discount,
                ordered_product_price=item.product_price,
            )
            for item in cart_items
        ]
        self.order_repo.stage(order, payment, order_items)

        for item in cart_items:
            product = item.product
            product.quantity = product.quantity - item.quantity
            self.product_repo.stage(product)
            self.cart_service.detach_item(cart, item)
        cart.total_price = 0.0
        self.session.commit()
        self.session.refresh(order)
        logger.info("order %s placed by %s total=%.2f", order.order_id, user.email, order.total_amount)
        return schemas.OrderDTO.model_validate(order)


class AuthService:
    """Authentication related operations (register, authenticate, sign out)."""
    ROLE_KEYWORDS = {'admin': models.AppRole.ADMIN, 'seller': models.AppRole.SELLER}

    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)
        self.role_repo = repositories.RoleRepository(session)

    def _resolve_roles(self, requested: Optional[Set[str]]) -> List[models.Role]:
        names = {self.ROLE_KEYWORDS.get(r, models.AppRole.USER) for r in (requested or {'user'})}
        roles = []
        for name in sorted(names, key=lambda n: n.value):
            role = self.role_repo.get_by_name(name)
            if role is None:
                raise RuntimeError(f"Error: Role {name.value} is not found.")
            roles.append(role)
        return roles

    def register(self, payload: schemas.SignupRequest) -> models.User:
        """Create a new user with a hashed password and the requested roles."""
        if self.user_repo.exists_by_username(payload.username):
            raise APIException("Error: Username is already taken!")
        if self.user_repo.exists_by_email(payload.email):
            raise APIException("Error: Email is already in use!")
        user = models.User(
            username=payload.username,
            email=payload.email,
            password=PWD_CTX.hash(payload.password),
        )
        user.roles = self._resolve_roles(payload.role)
        user = self.user_repo.create(user)
        logger.info("user registered id=%s username=%s", user.user_id, user.username)
        return user

    def authenticate(self, username: str, password: str) -> Optional[models.User]:
        """Return the user if the credentials match, otherwise `None`."""
        user = self.user_repo.get_by_username(username)
        if not user:
            return None
        if not PWD_CTX.verify(password, user.password):
            return None
        return user

    @staticmethod
    def create_token(user: models.User) -> str:
        """Sign a JWT for `user`.

        `iat` keeps sub-second precision so a token issued right after a
        sign-out is not mistaken for one issued before it.
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user.username,
            "user_id": user.user_id,
            "iat": now.timestamp(),
            "exp": int((now + timedelta(hours=settings.JWT_EXPIRE_HOURS)).timestamp()),
        }
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

    def sign_out(self, user: models.User):
        """Invalidate every token issued to `user` so far."""
        user.last_logout_date = datetime.now(timezone.utc)
        self.user_repo.save(user)

    @staticmethod
    def user_info(user: models.User, token: Optional[str] = None) -> schemas.UserInfoResponse:
        return schemas.UserInfoResponse(
            id=user.user_id,
            username=user.username,
            roles=[r.role_name for r in user.roles],
            jwt_token=token,
        )
