import os
import tempfile
from pathlib import Path

import pytest

# Point the app at throwaway storage before it is imported.
_TMP = Path(tempfile.mkdtemp(prefix="shoply-tests-"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP / 'test.db'}")
os.environ.setdefault("IMAGE_DIR", str(_TMP / "images"))

from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session  # noqa: E402

from shoply.database import engine, create_db_and_tables, drop_db_and_tables  # noqa: E402
from shoply.main import app  # noqa: E402
from shoply.seed import seed_default_data  # noqa: E402


@pytest.fixture(autouse=True)
def reset_db():
    """Give every test a freshly created and seeded database."""
    drop_db_and_tables()
    create_db_and_tables()
    with Session(engine) as session:
        seed_default_data(session)
    yield


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def db():
    with Session(engine) as session:
        yield session


@pytest.fixture
def login(client):
    """Return a helper that signs in and yields Bearer headers.

    The auth cookie set by sign-in is cleared so requests made without
    the returned headers stay anonymous.
    """
    def _login(username: str, password: str) -> dict:
        r = client.post('/api/auth/signin', json={'username': username, 'password': password})
        assert r.status_code == 200, r.text
        client.cookies.clear()
        return {'Authorization': f"Bearer {r.json()['jwtToken']}"}
    return _login


@pytest.fixture
def admin_headers(login):
    return login('admin', 'adminPass')


@pytest.fixture
def user_headers(login):
    return login('user1', 'password1')


@pytest.fixture
def category(client):
    r = client.post('/api/public/categories', json={'categoryName': 'Electronics'})
    assert r.status_code == 201, r.text
    return r.json()


@pytest.fixture
def make_product(client, admin_headers, category):
    """Create products in the default category through the admin API."""
    def _make(name='iPhone 15 Pro', price=1000.0, discount=10.0, quantity=50, category_id=None):
        body = {
            'productName': name,
            'description': 'Latest Apple smartphone',
            'quantity': quantity,
            'price': price,
            'discount': discount,
        }
        cid = category_id or category['categoryId']
        r = client.post(f'/api/admin/categories/{cid}/product', json=body, headers=admin_headers)
        assert r.status_code == 201, r.text
        return r.json()
    return _make
