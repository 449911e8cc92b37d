import logging
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

import models
from errors import ConflictError, NotFoundError, ValidationError
from schemas import ReviewCreate
from services import users

logger = logging.getLogger(__name__)


def _review_query():
    return select(models.Review).options(selectinload(models.Review.user))


async def _get_product(db: AsyncSession, product_id: int) -> models.Product:
    db_product = await db.get(models.Product, product_id)
    if db_product is None:
        raise NotFoundError(f"Product with id {product_id} not found")
    return db_product


async def list_reviews(db: AsyncSession) -> List[models.Review]:
    result = await db.execute(_review_query().order_by(models.Review.created_at.desc(), models.Review.id.desc()))
    return result.scalars().all()


async def list_by_product(db: AsyncSession, product_id: int) -> List[models.Review]:
    await _get_product(db, product_id)
    result = await db.execute(
        _review_query().where(models.Review.product_id == product_id).order_by(models.Review.created_at.desc(), models.Review.id.desc())
    )
    return result.scalars().all()


async def list_by_user(db: AsyncSession, user_id: int) -> List[models.Review]:
    await users.get_user(db, user_id)
    result = await db.execute(
        _review_query().where(models.Review.user_id == user_id).order_by(models.Review.created_at.desc(), models.Review.id.desc())
    )
    return result.scalars().all()


async def create_review(db: AsyncSession, user_id: int, product_id: int, review_in: ReviewCreate) -> models.Review:
    """
    Creates a review of a product by a user.
    - Validates that the user and product exist.
    - A user can review a product only once.
    """
    if not (1 <= review_in.rating <= 5):
        raise ValidationError("Rating must be between 1 and 5")

    await users.get_user(db, user_id)
    await _get_product(db, product_id)

    existing_review = await db.execute(
        select(models.Review).where(models.Review.user_id == user_id, models.Review.product_id == product_id)
    )
    if existing_review.scalars().first():
        raise ConflictError("User has already reviewed this product")

    db_review = models.Review(user_id=user_id, product_id=product_id, rating=review_in.rating, comment=review_in.comment)
    db.add(db_review)
    await db.flush()
    logger.info(f"Review created: ID {db_review.id} for Product {product_id} by User {user_id}")

    result = await db.execute(
        _review_query().where(models.Review.id == db_review.id).execution_options(populate_existing=True)
    )
    return result.scalars().one()


async def delete_review(db: AsyncSession, review_id: int) -> None:
    db_review = await db.get(models.Review, review_id)
    if db_review is None:
        logger.warning(f"Review with ID {review_id} not found.")
        raise NotFoundError("Review not found")
    await db.delete(db_review)
    await db.flush()
    logger.info(f"Review deleted: ID {review_id}")
