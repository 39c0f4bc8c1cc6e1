"""Database seeding with default roles and users.

Seeding is idempotent: roles and users that already exist are left
untouched. Default accounts:

- `user1` / `password1`   -> ROLE_USER
- `seller1` / `password2` -> ROLE_SELLER
- `admin` / `adminPass`   -> ROLE_USER, ROLE_SELLER, ROLE_ADMIN
"""

import logging

from sqlmodel import Session

from . import models, repositories
from .services import PWD_CTX

logger = logging.getLogger("shoply.seed")

DEFAULT_USERS = (
    ("user1", "user1@example.com", "password1", (models.AppRole.USER,)),
    ("seller1", "seller1@example.com", "password2", (models.AppRole.SELLER,)),
    ("admin", "admin@example.com", "adminPass", (models.AppRole.USER, models.AppRole.SELLER, models.AppRole.ADMIN)),
)


def _ensure_roles(session: Session) -> dict:
    role_repo = repositories.RoleRepository(session)
    roles = {}
    for name in models.AppRole:
        role = role_repo.get_by_name(name)
        if role is None:
            role = role_repo.create(name)
            logger.debug("created role %s", name.value)
        roles[name] = role
    return roles


def seed_default_data(session: Session):
    """Create the roles and default users if they are missing."""
    roles = _ensure_roles(session)
    user_repo = repositories.UserRepository(session)
    for username, email, password, role_names in DEFAULT_USERS:
        if user_repo.exists_by_username(username):
            continue
        user = models.User(username=username, email=email, password=PWD_CTX.hash(password))
        user.roles = [roles[name] for name in role_names]
        user_repo.create(user)
        logger.info("seeded default user %s", username)
