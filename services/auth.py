import logging

from sqlalchemy.ext.asyncio import AsyncSession

import models
from errors import AuthError, AuthFailure
from security import TokenService, verify_password
from services import users

logger = logging.getLogger(__name__)


async def authenticate(db: AsyncSession, username: str, password: str) -> models.User:
    db_user = await users.get_by_username(db, username)
    if db_user is None:
        logger.info(f"Login rejected: unknown username '{username}'")
        raise AuthError(AuthFailure.INVALID_USERNAME)
    if not verify_password(password, db_user.password_hash):
        logger.info(f"Login rejected: wrong password for '{username}'")
        raise AuthError(AuthFailure.INVALID_PASSWORD)
    return db_user


async def login(db: AsyncSession, tokens: TokenService, username: str, password: str) -> str:
    """Checks the credentials and returns a signed token carrying the user's id and role."""
    db_user = await authenticate(db, username, password)
    token = tokens.issue(db_user.id, db_user.username, db_user.role or models.Role.USER.value)
    logger.info(f"User logged in: {db_user.username} (ID: {db_user.id})")
    return token
