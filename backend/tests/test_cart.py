import pytest


def _add(client, headers, product_id, quantity):
    return client.post(f'/api/carts/products/{product_id}/quantity/{quantity}', headers=headers)


def test_add_product_to_cart(client, make_product, user_headers):
    product = make_product(price=1000.0, discount=10.0, quantity=50)
    r = _add(client, user_headers, product['productId'], 2)
    assert r.status_code == 201
    cart = r.json()
    assert cart['cartId'] is not None
    assert cart['totalPrice'] == pytest.approx(1800.0)
    assert len(cart['products']) == 1
    # product quantity reports the cart quantity, not the stock
    assert cart['products'][0]['quantity'] == 2


def test_cart_total_tracks_every_line(client, make_product, user_headers):
    a = make_product(name='Pixel 8', price=100.0, discount=0.0)
    b = make_product(name='Galaxy S24', price=50.0, discount=20.0)
    _add(client, user_headers, a['productId'], 1)
    r = _add(client, user_headers, b['productId'], 3)
    assert r.json()['totalPrice'] == pytest.approx(100.0 + 3 * 40.0)


def test_adding_same_product_twice_fails(client, make_product, user_headers):
    pid = make_product()['productId']
    _add(client, user_headers, pid, 1)
    r = _add(client, user_headers, pid, 1)
    assert r.status_code == 400
    assert r.json()['message'] == 'Product iPhone 15 Pro already exists in the cart'


def test_stock_limits(client, make_product, user_headers):
    pid = make_product(quantity=3)['productId']
    r = _add(client, user_headers, pid, 5)
    assert r.status_code == 400
    assert r.json()['message'] == (
        'Please, make an order of the iPhone 15 Pro less than or equal to the quantity 3.'
    )

    sold_out = make_product(name='Pixel 8', quantity=0)['productId']
    r = _add(client, user_headers, sold_out, 1)
    assert r.status_code == 400
    assert r.json()['message'] == 'Pixel 8 is not available'


def test_add_unknown_product(client, user_headers):
    r = _add(client, user_headers, 999, 1)
    assert r.status_code == 404
    assert r.json()['message'] == 'Product not found with productId: 999'


def test_add_requires_positive_quantity(client, make_product, user_headers):
    pid = make_product()['productId']
    assert _add(client, user_headers, pid, 0).status_code == 400


def test_cart_requires_authentication(client, make_product):
    pid = make_product()['productId']
    r = client.post(f'/api/carts/products/{pid}/quantity/1')
    assert r.status_code == 401
    assert r.json() == {'message': 'Full authentication is required to access this resource', 'success': False}


def test_user_cart_missing(client, user_headers):
    r = client.get('/api/carts/users/cart', headers=user_headers)
    assert r.status_code == 404
    assert r.json()['message'] == 'Cart not found with email: user1@example.com'


def test_update_quantity(client, make_product, user_headers):
    pid = make_product(price=10.0, discount=0.0, quantity=3)['productId']
    _add(client, user_headers, pid, 1)

    r = client.put(f'/api/cart/products/{pid}/quantity/add', headers=user_headers)
    assert r.status_code == 200
    assert r.json()['products'][0]['quantity'] == 2
    assert r.json()['totalPrice'] == pytest.approx(20.0)

    client.put(f'/api/cart/products/{pid}/quantity/add', headers=user_headers)
    r = client.put(f'/api/cart/products/{pid}/quantity/add', headers=user_headers)
    assert r.status_code == 400

    r = client.put(f'/api/cart/products/{pid}/quantity/delete', headers=user_headers)
    assert r.json()['products'][0]['quantity'] == 2
    assert r.json()['totalPrice'] == pytest.approx(20.0)


def test_decrement_to_zero_removes_line(client, make_product, user_headers):
    pid = make_product(price=10.0, discount=0.0)['productId']
    _add(client, user_headers, pid, 1)
    r = client.put(f'/api/cart/products/{pid}/quantity/delete', headers=user_headers)
    assert r.status_code == 200
    assert r.json()['products'] == []
    assert r.json()['totalPrice'] == pytest.approx(0.0)


def test_update_product_not_in_cart(client, make_product, user_headers):
    a = make_product(name='Pixel 8')['productId']
    b = make_product(name='Galaxy S24')['productId']
    _add(client, user_headers, a, 1)
    r = client.put(f'/api/cart/products/{b}/quantity/add', headers=user_headers)
    assert r.status_code == 400
    assert r.json()['message'] == 'Product Galaxy S24 not available in the cart!!!'


def test_delete_product_from_cart(client, make_product, user_headers):
    pid = make_product(price=10.0, discount=0.0)['productId']
    cart_id = _add(client, user_headers, pid, 2).json()['cartId']

    r = client.delete(f'/api/carts/{cart_id}/product/{pid}', headers=user_headers)
    assert r.status_code == 200
    assert r.text == 'Product iPhone 15 Pro removed from the cart !!!'

    cart = client.get('/api/carts/users/cart', headers=user_headers).json()
    assert cart['products'] == []
    assert cart['totalPrice'] == pytest.approx(0.0)


def test_cannot_delete_from_someone_elses_cart(client, make_product, user_headers, admin_headers):
    pid = make_product()['productId']
    cart_id = _add(client, user_headers, pid, 1).json()['cartId']
    r = client.delete(f'/api/carts/{cart_id}/product/{pid}', headers=admin_headers)
    assert r.status_code == 404
    assert r.json()['message'] == f'Cart not found with cartId: {cart_id}'


def test_list_all_carts_is_admin_only(client, make_product, user_headers, admin_headers):
    assert client.get('/api/carts', headers=user_headers).status_code == 403

    r = client.get('/api/carts', headers=admin_headers)
    assert r.status_code == 400
    assert r.json()['message'] == 'No cart exists'

    _add(client, user_headers, make_product()['productId'], 1)
    r = client.get('/api/carts', headers=admin_headers)
    assert r.status_code == 200
    assert len(r.json()) == 1
