import jwt
from sqlmodel import select

from shoply import models
from shoply.config import settings


SIGNUP = {'username': 'jane', 'email': 'jane@shoply.io', 'password': 'secret123'}

def test_signin_returns_token_and_roles(client):
    r = client.post('/api/auth/signin', json={'username': 'admin', 'password': 'adminPass'})
    assert r.status_code == 200
    body = r.json()
    assert body['username'] == 'admin'
    assert set(body['roles']) == {'ROLE_USER', 'ROLE_SELLER', 'ROLE_ADMIN'}
    payload = jwt.decode(body['jwtToken'], settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    assert payload['sub'] == 'admin'
    assert settings.JWT_COOKIE_NAME in r.headers['set-cookie']

def test_signin_bad_credentials(client):
    r = client.post('/api/auth/signin', json={'username': 'admin', 'password': 'wrong'})
    assert r.status_code == 401
    assert r.json() == {'message': 'Bad credentials', 'success': False}
    r = client.post('/api/auth/signin', json={'username': 'ghost', 'password': 'wrong'})
    assert r.status_code == 401

def test_cookie_authenticates_requests(client):
    client.post('/api/auth/signin', json={'username': 'user1', 'password': 'password1'})
    r = client.get('/api/auth/user')
    assert r.status_code == 200
    assert r.json()['username'] == 'user1'
    assert r.json()['roles'] == ['ROLE_USER']

def test_current_username_is_plain_text(client, user_headers):
    r = client.get('/api/auth/username', headers=user_headers)
    assert r.status_code == 200
    assert r.text == 'user1'

def test_signup_then_signin(client):
    r = client.post('/api/auth/signup', json=SIGNUP)
    assert r.status_code == 200
    assert r.json() == {'message': 'User registered successfully!'}

    r = client.post('/api/auth/signin', json={'username': 'jane', 'password': 'secret123'})
    assert r.status_code == 200
    assert r.json()['roles'] == ['ROLE_USER']

def test_signup_with_requested_roles(client):
    client.post('/api/auth/signup', json={**SIGNUP, 'role': ['admin', 'seller']})
    r = client.post('/api/auth/signin', json={'username': 'jane', 'password': 'secret123'})
    assert set(r.json()['roles']) == {'ROLE_ADMIN', 'ROLE_SELLER'}

def test_signup_rejects_duplicates(client):
    r = client.post('/api/auth/signup', json={**SIGNUP, 'username': 'user1'})
    assert r.status_code == 400
    assert r.json()['message'] == 'Error: Username is already taken!'

    client.post('/api/auth/signup', json=SIGNUP)
    r = client.post('/api/auth/signup', json={**SIGNUP, 'username': 'janet'})
    assert r.status_code == 400
    assert r.json()['message'] == 'Error: Email is already in use!'

def test_signup_validation(client):
    r = client.post('/api/auth/signup', json={'username': 'jo', 'email': 'not-an-email', 'password': '123'})
    assert r.status_code == 400
    assert set(r.json()['errors']) == {'username', 'email', 'password'}

def test_signout_revokes_issued_tokens(client, login):
    headers = login('user1', 'password1')
    r = client.post('/api/auth/signout', headers=headers)
    assert r.status_code == 200
    assert r.json() == {'message': "You've been signed out!"}

    r = client.get('/api/auth/user', headers=headers)
    assert r.status_code == 401
    assert r.json()['message'] == 'token has been invalidated'

    fresh = login('user1', 'password1')
    assert client.get('/api/auth/user', headers=fresh).status_code == 200

def test_anonymous_signout_is_allowed(client):
    r = client.post('/api/auth/signout')
    assert r.status_code == 200

def test_invalid_and_expired_tokens(client):
    r = client.get('/api/auth/user', headers={'Authorization': 'Bearer not.a.token'})
    assert r.status_code == 401
    assert r.json() == {'message': 'invalid token', 'success': False}

    expired = jwt.encode({'sub': 'user1', 'iat': 1, 'exp': 2}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    r = client.get('/api/auth/user', headers={'Authorization': f'Bearer {expired}'})
    assert r.status_code == 401
    assert r.json()['message'] == 'token expired'

def test_signout_records_logout_instant(client, login, db):
    headers = login('user1', 'password1')
    r = client.post('/api/auth/signout', headers=headers)
    assert r.status_code == 200
    user = db.exec(select(models.User).where(models.User.username == 'user1')).one()
    assert user.last_logout_date is not None
