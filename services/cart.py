import logging
from typing import List

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

import models
from errors import NotFoundError
from schemas import CartItemCreate
from services import users

logger = logging.getLogger(__name__)


def _cart_query():
    return select(models.CartItem).options(selectinload(models.CartItem.product))


async def _reload(db: AsyncSession, item_id: int) -> models.CartItem:
    result = await db.execute(
        _cart_query().where(models.CartItem.id == item_id).execution_options(populate_existing=True)
    )
    return result.scalars().one()


async def get_cart(db: AsyncSession, user_id: int) -> List[models.CartItem]:
    await users.get_user(db, user_id)
    result = await db.execute(
        _cart_query().where(models.CartItem.user_id == user_id).order_by(models.CartItem.created_at, models.CartItem.id)
    )
    return result.scalars().all()


async def _get_owned_item(db: AsyncSession, user_id: int, item_id: int) -> models.CartItem:
    db_item = await db.get(models.CartItem, item_id)
    if db_item is None or db_item.user_id != user_id:
        logger.warning(f"Cart item {item_id} not found for User {user_id}.")
        raise NotFoundError("Cart item not found")
    return db_item


async def add_to_cart(db: AsyncSession, user_id: int, item_in: CartItemCreate) -> models.CartItem:
    """
    Adds a product to the user's cart.
    The product's current price is frozen into `price_at_add`; adding the same
    product again only increases the quantity.
    """
    await users.get_user(db, user_id)
    db_product = await db.get(models.Product, item_in.product_id)
    if db_product is None:
        raise NotFoundError(f"Product with id {item_in.product_id} not found")

    result = await db.execute(
        select(models.CartItem).where(
            models.CartItem.user_id == user_id,
            models.CartItem.product_id == item_in.product_id,
        )
    )
    db_item = result.scalars().first()
    if db_item is not None:
        db_item.quantity += item_in.quantity
    else:
        db_item = models.CartItem(
            user_id=user_id,
            product_id=db_product.id,
            quantity=item_in.quantity,
            price_at_add=db_product.price,
        )
        db.add(db_item)
    await db.flush()
    logger.info(f"Cart item {db_item.id}: Product {db_product.id} x{db_item.quantity} for User {user_id}")
    return await _reload(db, db_item.id)


async def update_quantity(db: AsyncSession, user_id: int, item_id: int, quantity: int) -> models.CartItem:
    db_item = await _get_owned_item(db, user_id, item_id)
    db_item.quantity = quantity
    await db.flush()
    return await _reload(db, db_item.id)


async def remove_item(db: AsyncSession, user_id: int, item_id: int) -> None:
    db_item = await _get_owned_item(db, user_id, item_id)
    await db.delete(db_item)
    await db.flush()
    logger.info(f"Cart item {item_id} removed for User {user_id}")


async def clear_cart(db: AsyncSession, user_id: int) -> int:
    await users.get_user(db, user_id)
    result = await db.execute(
        delete(models.CartItem).where(models.CartItem.user_id == user_id).execution_options(synchronize_session="evaluate")
    )
    logger.info(f"Cart cleared for User {user_id} ({result.rowcount} items)")
    return result.rowcount


async def delete_for_product(db: AsyncSession, product_id: int) -> int:
    result = await db.execute(
        delete(models.CartItem)
        .where(models.CartItem.product_id == product_id)
        .execution_options(synchronize_session="evaluate")
    )
    return result.rowcount
