"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the Shoply e-commerce backend.
Controllers are intentionally thin: they accept requests, resolve the
current user, delegate to services and return DTOs with the right
status code. Domain errors raised by services are turned into the
uniform error envelope by the handlers in `exceptions.py`.

Endpoints implemented (all under /api):
- auth:       POST /auth/signin, /auth/signup, /auth/signout; GET /auth/user, /auth/username
- categories: GET/POST /public/categories, PUT /public/categories/{id}, DELETE /admin/categories/{id}
- products:   POST /admin/categories/{id}/product, GET /public/products,
              GET /public/categories/{id}/products, GET /public/products/keyword/{kw},
              PUT/DELETE /admin/products/{id}, PUT /products/{id}/image
- cart:       POST /carts/products/{id}/quantity/{qty}, GET /carts, GET /carts/users/cart,
              PUT /cart/products/{id}/quantity/{operation}, DELETE /carts/{cartId}/product/{id}
- addresses:  POST /addresses, GET /admin/addresses, GET/PUT/DELETE /addresses/{id}, GET /users/addresses
- orders:     POST /order/users/payments/{paymentMethod}
"""

import json
import logging
import time
import uuid
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Path as PathParam, Query, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from fastapi.staticfiles import StaticFiles
from sqlmodel import Session

from . import models, schemas, services
from .auth import get_current_user, get_optional_user, require_admin
from .config import settings
from .database import create_db_and_tables, engine, get_session
from .exceptions import register_exception_handlers
from .seed import seed_default_data
from .utils.images import ensure_image, validate_upload_filename

PAGE_NUMBER = 0
PAGE_SIZE = 50
SORT_CATEGORIES_BY = "categoryId"
SORT_PRODUCTS_BY = "productId"
SORT_DIR = "asc"

TAGS = [
    {"name": "Authentication", "description": "Endpoints for user login, signup, and session management"},
    {"name": "Categories", "description": "Catalog management for product categories"},
    {"name": "Products", "description": "Manage and browse the product inventory"},
    {"name": "Shopping Cart", "description": "Manage items in the user's shopping cart"},
    {"name": "Addresses", "description": "Manage shipping and billing addresses"},
    {"name": "Orders", "description": "Checkout flow and order history"},
]

app = FastAPI(
    title="Shoply E-Commerce API",
    description=(
        "Backend API for the Shoply platform. Supports Product Management, Cart, and Order Processing.\n\n"
        "Sign in with `POST /api/auth/signin` (default users `admin`/`adminPass`, `user1`/`password1`) "
        "and send the returned `jwtToken` as a Bearer token."
    ),
    version="1.0",
    contact={"name": "Shoply Team"},
    license_info={"name": "Apache 2.0", "url": "https://www.apache.org/licenses/LICENSE-2.0"},
    openapi_tags=TAGS,
)
logger = logging.getLogger("shoply.api")
if not logger.handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

register_exception_handlers(app)

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Uploaded product images are served from here.
Path(settings.IMAGE_DIR).mkdir(parents=True, exist_ok=True)
app.mount("/images", StaticFiles(directory=settings.IMAGE_DIR), name="images")

create_db_and_tables()
if settings.SEED_DEFAULT_DATA:
    with Session(engine) as _session:
        seed_default_data(_session)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
        if request.url.path.startswith("/api"):
            logger.exception(
                "request_failed %s",
                json.dumps(
                    {
                        "request_id": req_id,
                        "path": request.url.path,
                        "method": request.method,
                        "duration_ms": elapsed_ms,
                        "client": request.client.host if request.client else "unknown",
                    },
                    ensure_ascii=True,
                ),
            )
        raise
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    if request.url.path.startswith("/api"):
        logger.info(
            "request_done %s",
            json.dumps(
                {
                    "request_id": req_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    "duration_ms": elapsed_ms,
                    "client": request.client.host if request.client else "unknown",
                },
                ensure_ascii=True,
            ),
        )
    return response


def _paging(
    page_number: int = Query(PAGE_NUMBER, alias="pageNumber", ge=0),
    page_size: int = Query(PAGE_SIZE, alias="pageSize", ge=1),
    sort_order: str = Query(SORT_DIR, alias="sortOrder"),
) -> dict:
    return {'page_number': page_number, 'page_size': page_size, 'sort_order': sort_order}


# ---------------------------------------------------------------- auth

@app.post('/api/auth/signin', response_model=schemas.UserInfoResponse, tags=["Authentication"])
def signin(payload: schemas.LoginRequest, response: Response, db: Session = Depends(get_session)):
    """Authenticate a user and return their profile plus a JWT.

    The token is returned in the body (`jwtToken`) and also set as an
    HTTP-only cookie so browser clients need no extra handling.
    """
    auth = services.AuthService(db)
    user = auth.authenticate(payload.username, payload.password)
    if not user:
        raise HTTPException(status_code=401, detail='Bad credentials')
    token = auth.create_token(user)
    response.set_cookie(
        key=settings.JWT_COOKIE_NAME,
        value=token,
        max_age=settings.JWT_EXPIRE_HOURS * 3600,
        path="/api",
        httponly=True,
        samesite="lax",
    )
    return auth.user_info(user, token)


@app.post('/api/auth/signup', response_model=schemas.MessageResponse, tags=["Authentication"])
def signup(payload: schemas.SignupRequest, db: Session = Depends(get_session)):
    """Register a new user with the requested roles (default: user)."""
    services.AuthService(db).register(payload)
    return schemas.MessageResponse(message="User registered successfully!")


@app.get('/api/auth/user', response_model=schemas.UserInfoResponse, tags=["Authentication"])
def current_user_details(user: models.User = Depends(get_current_user)):
    return services.AuthService.user_info(user)


@app.get('/api/auth/username', response_class=PlainTextResponse, tags=["Authentication"])
def current_username(user: models.User = Depends(get_current_user)):
    return user.username


@app.post('/api/auth/signout', response_model=schemas.MessageResponse, tags=["Authentication"])
def signout(response: Response, db: Session = Depends(get_session), user: Optional[models.User] = Depends(get_optional_user)):
    """Clear the auth cookie and revoke tokens issued to the caller so far."""
    if user is not None:
        services.AuthService(db).sign_out(user)
    response.delete_cookie(settings.JWT_COOKIE_NAME, path="/api")
    return schemas.MessageResponse(message="You've been signed out!")


# ---------------------------------------------------------------- categories

@app.get('/api/public/categories', response_model=schemas.CategoryResponse, tags=["Categories"])
def get_all_categories(
    paging: dict = Depends(_paging),
    sort_by: str = Query(SORT_CATEGORIES_BY, alias="sortBy"),
    db: Session = Depends(get_session),
):
    return services.CategoryService(db).get_all_categories(sort_by=sort_by, **paging)


@app.post('/api/public/categories', response_model=schemas.CategoryDTO, status_code=201, tags=["Categories"])
def create_category(category: schemas.CategoryDTO, db: Session = Depends(get_session)):
    return services.CategoryService(db).create_category(category)


@app.put('/api/public/categories/{category_id}', response_model=schemas.CategoryDTO, tags=["Categories"])
def update_category(category_id: int, category: schemas.CategoryDTO, db: Session = Depends(get_session)):
    return services.CategoryService(db).update_category(category, category_id)


@app.delete('/api/admin/categories/{category_id}', response_model=schemas.CategoryDTO, tags=["Categories"])
def delete_category(category_id: int, db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    """Delete a category and every product in it. Admin access required."""
    return services.CategoryService(db).delete_category(category_id)


# ---------------------------------------------------------------- products

@app.post('/api/admin/categories/{category_id}/product', response_model=schemas.ProductDTO, status_code=201, tags=["Products"])
def add_product(category_id: int, product: schemas.ProductDTO, db: Session = Depends(get_session),
                admin: models.User = Depends(require_admin)):
    """Create a new product within a specific category. Admin access required."""
    return services.ProductService(db).add_product(category_id, product)


@app.get('/api/public/products', response_model=schemas.ProductResponse, tags=["Products"])
def get_all_products(
    paging: dict = Depends(_paging),
    sort_by: str = Query(SORT_PRODUCTS_BY, alias="sortBy"),
    db: Session = Depends(get_session),
):
    return services.ProductService(db).get_all_products(sort_by=sort_by, **paging)


@app.get('/api/public/categories/{category_id}/products', response_model=schemas.ProductResponse, tags=["Products"])
def get_products_by_category(
    category_id: int,
    paging: dict = Depends(_paging),
    sort_by: str = Query(SORT_PRODUCTS_BY, alias="sortBy"),
    db: Session = Depends(get_session),
):
    """Retrieve the products of a category, cheapest first."""
    return services.ProductService(db).search_by_category(category_id, sort_by=sort_by, **paging)


@app.get('/api/public/products/keyword/{keyword}', response_model=schemas.ProductResponse, tags=["Products"])
def get_products_by_keyword(
    keyword: str,
    paging: dict = Depends(_paging),
    sort_by: str = Query(SORT_PRODUCTS_BY, alias="sortBy"),
    db: Session = Depends(get_session),
):
    """Search for products whose names contain the given keyword."""
    return services.ProductService(db).search_product_by_keyword(keyword, sort_by=sort_by, **paging)


@app.put('/api/admin/products/{product_id}', response_model=schemas.ProductDTO, tags=["Products"])
def update_product(product_id: int, product: schemas.ProductDTO, db: Session = Depends(get_session),
                   admin: models.User = Depends(require_admin)):
    return services.ProductService(db).update_product(product_id, product)


@app.delete('/api/admin/products/{product_id}', response_model=schemas.ProductDTO, tags=["Products"])
def delete_product(product_id: int, db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return services.ProductService(db).delete_product(product_id)


@app.put('/api/products/{product_id}/image', response_model=schemas.ProductDTO, tags=["Products"])
def update_product_image(product_id: int, image: UploadFile = File(...), db: Session = Depends(get_session),
                         user: models.User = Depends(get_current_user)):
    """Upload or replace the image of an existing product."""
    validate_upload_filename(image.filename)
    payload = image.file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(payload) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail='file too large')
    ensure_image(payload)
    return services.ProductService(db).update_product_image(product_id, payload, image.filename)


# ---------------------------------------------------------------- cart

@app.post('/api/carts/products/{product_id}/quantity/{quantity}', response_model=schemas.CartDTO, status_code=201,
          tags=["Shopping Cart"])
def add_product_to_cart(product_id: int, quantity: int = PathParam(..., ge=1), db: Session = Depends(get_session),
                        user: models.User = Depends(get_current_user)):
    return services.CartService(db).add_product_to_cart(user, product_id, quantity)


@app.get('/api/carts', response_model=List[schemas.CartDTO], tags=["Shopping Cart"])
def get_carts(db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    """List every cart in the system. Admin access required."""
    return services.CartService(db).get_all_carts()


@app.get('/api/carts/users/cart', response_model=schemas.CartDTO, tags=["Shopping Cart"])
def get_cart_by_user(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return services.CartService(db).get_user_cart(user)


@app.put('/api/cart/products/{product_id}/quantity/{operation}', response_model=schemas.CartDTO, tags=["Shopping Cart"])
def update_cart_product(product_id: int, operation: str, db: Session = Depends(get_session),
                        user: models.User = Depends(get_current_user)):
    """Increment the quantity of a cart line; the operation `delete` decrements it."""
    delta = -1 if operation.lower() == "delete" else 1
    return services.CartService(db).update_product_quantity_in_cart(user, product_id, delta)


@app.delete('/api/carts/{cart_id}/product/{product_id}', response_class=PlainTextResponse, tags=["Shopping Cart"])
def delete_product_from_cart(cart_id: int, product_id: int, db: Session = Depends(get_session),
                             user: models.User = Depends(get_current_user)):
    return services.CartService(db).delete_product_from_cart(cart_id, product_id, email=user.email)


# ---------------------------------------------------------------- addresses

@app.post('/api/addresses', response_model=schemas.AddressDTO, status_code=201, tags=["Addresses"])
def create_address(address: schemas.AddressDTO, db: Session = Depends(get_session),
                   user: models.User = Depends(get_current_user)):
    return services.AddressService(db).create_address(address, user)


@app.get('/api/admin/addresses', response_model=List[schemas.AddressDTO], tags=["Addresses"])
def get_addresses(db: Session = Depends(get_session), admin: models.User = Depends(require_admin)):
    return services.AddressService(db).get_addresses()


@app.get('/api/addresses/{address_id}', response_model=schemas.AddressDTO, tags=["Addresses"])
def get_address_by_id(address_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return services.AddressService(db).get_address_by_id(address_id)


@app.get('/api/users/addresses', response_model=List[schemas.AddressDTO], tags=["Addresses"])
def get_user_addresses(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return services.AddressService(db).get_user_addresses(user)


@app.put('/api/addresses/{address_id}', response_model=schemas.AddressDTO, tags=["Addresses"])
def update_address(address_id: int, address: schemas.AddressDTO, db: Session = Depends(get_session),
                   user: models.User = Depends(get_current_user)):
    return services.AddressService(db).update_address(address_id, address)


@app.delete('/api/addresses/{address_id}', response_class=PlainTextResponse, tags=["Addresses"])
def delete_address(address_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return services.AddressService(db).delete_address(address_id)


# ---------------------------------------------------------------- orders

@app.post('/api/order/users/payments/{payment_method}', response_model=schemas.OrderDTO, status_code=201, tags=["Orders"])
def order_products(payment_method: str, order_request: schemas.OrderRequestDTO, db: Session = Depends(get_session),
                   user: models.User = Depends(get_current_user)):
    """Place an order for everything in the caller's cart."""
    return services.OrderService(db).place_order(
        user,
        order_request.address_id,
        payment_method,
        order_request.pg_name,
        order_request.pg_payment_id,
        order_request.pg_status,
        order_request.pg_response_message,
    )


@app.get("/health")
def health():
    """Lightweight health check for uptime monitoring."""
    return {"status": "ok"}
