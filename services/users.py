import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

import models
from errors import ConflictError, NotFoundError
from schemas import UserCreate, UserUpdate
from security import hash_password

logger = logging.getLogger(__name__)

ADMIN_LIMIT_MESSAGE = "Admin user already exists. Only one admin is allowed."


def is_admin(role: Optional[str]) -> bool:
    return role is not None and role.upper() == models.Role.ADMIN.value


async def list_users(db: AsyncSession) -> List[models.User]:
    result = await db.execute(select(models.User).order_by(models.User.id))
    return result.scalars().all()


async def get_user(db: AsyncSession, user_id: int) -> models.User:
    db_user = await db.get(models.User, user_id)
    if db_user is None:
        logger.warning(f"User with ID {user_id} not found.")
        raise NotFoundError("User not found")
    return db_user


async def get_by_username(db: AsyncSession, username: str) -> Optional[models.User]:
    result = await db.execute(select(models.User).where(models.User.username == username))
    return result.scalars().first()


async def get_by_email(db: AsyncSession, email: str) -> Optional[models.User]:
    result = await db.execute(select(models.User).where(models.User.email == email))
    return result.scalars().first()


async def count_admins(db: AsyncSession, exclude_user_id: Optional[int] = None) -> int:
    query = select(func.count(models.User.id)).where(func.upper(models.User.role) == models.Role.ADMIN.value)
    if exclude_user_id is not None:
        query = query.where(models.User.id != exclude_user_id)
    result = await db.execute(query)
    return result.scalar_one()


async def _flush_user(db: AsyncSession, db_user: models.User) -> None:
    # A concurrent writer can still win between the checks above and this flush
    try:
        await db.flush()
    except IntegrityError as e:
        logger.warning(f"Uniqueness violation while saving user '{db_user.username}': {e.orig}")
        raise ConflictError("Username, email or admin role already taken") from e
    await db.refresh(db_user)


async def register(db: AsyncSession, user_in: UserCreate) -> models.User:
    """
    Registers a new user.
    - **username** and **email** must be unused.
    - Only one ADMIN may exist; the role defaults to USER.
    """
    if await get_by_username(db, user_in.username) is not None:
        raise ConflictError("Username already taken")
    if await get_by_email(db, user_in.email) is not None:
        raise ConflictError("Email already registered")

    role = user_in.role or models.Role.USER.value
    if is_admin(role) and await count_admins(db) >= 1:
        raise ConflictError(ADMIN_LIMIT_MESSAGE)

    db_user = models.User(
        username=user_in.username,
        email=user_in.email,
        password_hash=hash_password(user_in.password),
        role=role,
        name=user_in.name,
        phone=user_in.phone,
    )
    db.add(db_user)
    await _flush_user(db, db_user)
    logger.info(f"User registered: {db_user.username} (ID: {db_user.id}, role: {db_user.role})")
    return db_user


async def update_user(db: AsyncSession, user_id: int, user_in: UserUpdate) -> models.User:
    """
    Updates only the fields present in the request.
    Uniqueness is re-checked only for a changed username/email, and the admin
    limit only when a non-admin is being promoted.
    """
    db_user = await get_user(db, user_id)
    update_data = user_in.model_dump(exclude_unset=True)

    username = update_data.get("username")
    if username is not None and username != db_user.username:
        if await get_by_username(db, username) is not None:
            raise ConflictError("Username already taken")
        db_user.username = username

    email = update_data.get("email")
    if email is not None and email != db_user.email:
        if await get_by_email(db, email) is not None:
            raise ConflictError("Email already registered")
        db_user.email = email

    role = update_data.get("role")
    if role is not None:
        if is_admin(role) and not is_admin(db_user.role):
            if await count_admins(db, exclude_user_id=db_user.id) >= 1:
                raise ConflictError(ADMIN_LIMIT_MESSAGE)
        db_user.role = role

    for key in ("name", "phone"):
        if key in update_data:
            setattr(db_user, key, update_data[key])

    password = update_data.get("password")
    if password:
        db_user.password_hash = hash_password(password)

    await _flush_user(db, db_user)
    logger.info(f"User updated: {db_user.username} (ID: {db_user.id})")
    return db_user


async def delete_user(db: AsyncSession, user_id: int) -> None:
    db_user = await get_user(db, user_id)
    await db.delete(db_user)
    try:
        await db.flush()
    except IntegrityError as e:
        # No cascade is defined for users; rows that still reference the user block the delete
        logger.warning(f"User {user_id} could not be deleted: {e.orig}")
        raise ConflictError("User still has cart items, orders or reviews") from e
    logger.info(f"User deleted: ID {user_id}")
