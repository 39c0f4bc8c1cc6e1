"""Authentication helpers and FastAPI security dependencies.

This module decodes JWT tokens and exposes dependencies that resolve the
current `User`:

- `get_current_user` requires a valid token, read from the
  `Authorization: Bearer` header first and the auth cookie second;
- `get_optional_user` returns `None` instead of failing;
- `require_roles(...)` additionally checks the user's roles (403).

Verification failures raise HTTPExceptions so they can be used directly
inside route dependencies.
"""

from datetime import timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .database import get_session

bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises an HTTPException
    with status 401 on failure.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail='token expired')
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail='invalid token')


def extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(settings.JWT_COOKIE_NAME)


def _user_from_token(token: str, session: Session) -> models.User:
    payload = decode_token(token)
    username = payload.get('sub')
    if not username:
        raise HTTPException(status_code=401, detail='invalid token payload')
    user = repositories.UserRepository(session).get_by_username(username)
    if not user:
        raise HTTPException(status_code=401, detail='user not found')
    # tokens issued before the last sign-out are revoked; stored as UTC,
    # possibly read back naive
    if user.last_logout_date is not None:
        logout_ts = user.last_logout_date.replace(tzinfo=timezone.utc).timestamp()
        if float(payload.get('iat', 0)) < logout_ts:
            raise HTTPException(status_code=401, detail='token has been invalidated')
    return user


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    session: Session = Depends(get_session),
) -> models.User:
    """FastAPI dependency that returns the authenticated user.

    The user is loaded through the request's own session so services can
    keep working with it. Raises HTTPException(401) for any
    authentication issue.
    """
    token = extract_token(request, credentials)
    if not token:
        raise HTTPException(status_code=401, detail='Full authentication is required to access this resource')
    return _user_from_token(token, session)


def get_optional_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    session: Session = Depends(get_session),
) -> Optional[models.User]:
    token = extract_token(request, credentials)
    if not token:
        return None
    try:
        return _user_from_token(token, session)
    except HTTPException:
        return None


def require_roles(*roles: models.AppRole):
    """Build a dependency that admits users holding any of `roles`."""
    wanted = {r.value for r in roles}

    def dependency(user: models.User = Depends(get_current_user)) -> models.User:
        if not wanted.intersection(r.role_name for r in user.roles):
            raise HTTPException(status_code=403, detail='Access Denied')
        return user

    return dependency


require_admin = require_roles(models.AppRole.ADMIN)
