import logging
from typing import List

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

import models
from errors import NotFoundError, ValidationError
from schemas import OrderCreate, OrderUpdate
from services import users

logger = logging.getLogger(__name__)


def _order_query():
    return select(models.Order).options(selectinload(models.Order.items))


def parse_status(status: str) -> models.OrderStatus:
    try:
        return models.OrderStatus(status.strip().upper())
    except ValueError:
        allowed = ", ".join(s.value for s in models.OrderStatus)
        raise ValidationError(f"Unknown order status '{status}'. Allowed: {allowed}")


async def list_orders(db: AsyncSession) -> List[models.Order]:
    result = await db.execute(_order_query().order_by(models.Order.created_at.desc(), models.Order.id.desc()))
    return result.scalars().all()


async def get_order(db: AsyncSession, order_id: int) -> models.Order:
    result = await db.execute(
        _order_query().where(models.Order.id == order_id).execution_options(populate_existing=True)
    )
    db_order = result.scalars().first()
    if db_order is None:
        logger.warning(f"Order with ID {order_id} not found.")
        raise NotFoundError("Order not found")
    return db_order


async def list_by_user(db: AsyncSession, user_id: int) -> List[models.Order]:
    await users.get_user(db, user_id)
    result = await db.execute(
        _order_query().where(models.Order.user_id == user_id).order_by(models.Order.created_at.desc(), models.Order.id.desc())
    )
    return result.scalars().all()


async def list_by_status(db: AsyncSession, status: str) -> List[models.Order]:
    order_status = parse_status(status)
    result = await db.execute(
        _order_query().where(models.Order.status == order_status.value).order_by(models.Order.id)
    )
    return result.scalars().all()


async def create_order(db: AsyncSession, user_id: int, order_in: OrderCreate) -> models.Order:
    """
    Creates an order for a user.
    - Every item's price is frozen from the product's current price.
    - With items present, `total_amount` is the sum of price x quantity.
    """
    await users.get_user(db, user_id)

    priced_items = []
    for item_in in order_in.items:
        db_product = await db.get(models.Product, item_in.product_id)
        if db_product is None:
            raise NotFoundError(f"Product with id {item_in.product_id} not found")
        priced_items.append((db_product, item_in.quantity))

    if priced_items:
        total_amount = sum((product.price or 0) * quantity for product, quantity in priced_items)
    else:
        total_amount = order_in.total_amount or 0

    db_order = models.Order(
        user_id=user_id,
        status=order_in.status.value,
        address=order_in.address,
        payment_method=order_in.payment_method,
        total_amount=round(total_amount, 2),
    )
    db.add(db_order)
    await db.flush()

    for db_product, quantity in priced_items:
        await create_item(
            db,
            models.OrderItem(order_id=db_order.id, product_id=db_product.id, quantity=quantity, price=db_product.price),
        )

    logger.info(f"Order created: ID {db_order.id} for User {user_id} ({len(priced_items)} items)")
    return await get_order(db, db_order.id)


async def update_order(db: AsyncSession, order_id: int, order_in: OrderUpdate) -> models.Order:
    db_order = await get_order(db, order_id)
    update_data = order_in.model_dump(exclude_unset=True)
    if update_data.get("status") is not None:
        update_data["status"] = parse_status(update_data["status"]).value

    for key, value in update_data.items():
        if value is None and key in ("status", "total_amount"):
            continue
        setattr(db_order, key, value)

    await db.flush()
    logger.info(f"Order ID {order_id} updated (status: {db_order.status})")
    return await get_order(db, order_id)


async def delete_order(db: AsyncSession, order_id: int) -> None:
    db_order = await get_order(db, order_id)
    # Items belong to the order and are removed with it
    await db.delete(db_order)
    await db.flush()
    logger.info(f"Order deleted: ID {order_id}")


# --- Order items ---
async def create_item(db: AsyncSession, item: models.OrderItem) -> models.OrderItem:
    db.add(item)
    await db.flush()
    return item


async def list_items_for_order(db: AsyncSession, order_id: int) -> List[models.OrderItem]:
    result = await db.execute(
        select(models.OrderItem).where(models.OrderItem.order_id == order_id).order_by(models.OrderItem.id)
    )
    return result.scalars().all()


async def list_items_for_product(db: AsyncSession, product_id: int) -> List[models.OrderItem]:
    result = await db.execute(
        select(models.OrderItem).where(models.OrderItem.product_id == product_id).order_by(models.OrderItem.id)
    )
    return result.scalars().all()


async def delete_item(db: AsyncSession, item_id: int) -> None:
    db_item = await db.get(models.OrderItem, item_id)
    if db_item is None:
        raise NotFoundError("Order item not found")
    await db.delete(db_item)
    await db.flush()


async def delete_items_for_product(db: AsyncSession, product_id: int) -> int:
    # Removes the product from order history as well
    result = await db.execute(
        delete(models.OrderItem)
        .where(models.OrderItem.product_id == product_id)
        .execution_options(synchronize_session="evaluate")
    )
    return result.rowcount
