import logging
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

import models

logger = logging.getLogger(__name__)


# --- Product images ---
async def create_image(db: AsyncSession, image: models.ProductImage) -> models.ProductImage:
    db.add(image)
    await db.flush()
    logger.info(f"Product image created: ID {image.id} for Product {image.product_id}")
    return image


async def list_images(db: AsyncSession, product_id: int) -> List[models.ProductImage]:
    result = await db.execute(
        select(models.ProductImage)
        .where(models.ProductImage.product_id == product_id)
        .order_by(models.ProductImage.order_index, models.ProductImage.id)
    )
    return result.scalars().all()


async def delete_image(db: AsyncSession, image: models.ProductImage) -> None:
    await db.delete(image)
    await db.flush()


# --- Product files (STL, OBJ, ...) ---
async def create_file(db: AsyncSession, product_file: models.ProductFile) -> models.ProductFile:
    db.add(product_file)
    await db.flush()
    logger.info(f"Product file created: ID {product_file.id} for Product {product_file.product_id}")
    return product_file


async def list_files(db: AsyncSession, product_id: int) -> List[models.ProductFile]:
    result = await db.execute(
        select(models.ProductFile).where(models.ProductFile.product_id == product_id).order_by(models.ProductFile.id)
    )
    return result.scalars().all()


async def delete_file(db: AsyncSession, product_file: models.ProductFile) -> None:
    await db.delete(product_file)
