import logging
import re
import unicodedata
from typing import List, Optional
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

import models
from errors import NotFoundError, ValidationError
from schemas import CategoryCreate, CategoryUpdate, TagCreate, TagUpdate

logger = logging.getLogger(__name__)


def slugify(value: Optional[str]) -> str:
    condensed = " ".join(str(value or "").split()).lower()
    ascii_name = unicodedata.normalize("NFKD", condensed).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_name).strip("-")
    if not slug:
        # Names without any ASCII letters (e.g. Cyrillic) still need a stable handle
        slug = uuid4().hex
    return slug


# --- Categories ---
async def list_categories(db: AsyncSession) -> List[models.Category]:
    result = await db.execute(select(models.Category).order_by(models.Category.id))
    return result.scalars().all()


async def get_category(db: AsyncSession, category_id: int) -> models.Category:
    db_category = await db.get(models.Category, category_id)
    if db_category is None:
        logger.warning(f"Category with ID {category_id} not found.")
        raise NotFoundError("Category not found")
    return db_category


async def find_category(db: AsyncSession, category_id: Optional[int]) -> Optional[models.Category]:
    if category_id is None:
        return None
    return await db.get(models.Category, category_id)


async def get_category_by_slug(db: AsyncSession, slug: str) -> models.Category:
    result = await db.execute(select(models.Category).where(models.Category.slug == slug))
    db_category = result.scalars().first()
    if db_category is None:
        raise NotFoundError("Category not found")
    return db_category


async def list_children(db: AsyncSession, category_id: int) -> List[models.Category]:
    await get_category(db, category_id)
    result = await db.execute(
        select(models.Category).where(models.Category.parent_id == category_id).order_by(models.Category.id)
    )
    return result.scalars().all()


async def create_category(db: AsyncSession, category_in: CategoryCreate) -> models.Category:
    if category_in.parent_id is not None:
        await get_category(db, category_in.parent_id)
    db_category = models.Category(
        name=category_in.name.strip(),
        slug=category_in.slug or slugify(category_in.name),
        parent_id=category_in.parent_id,
    )
    db.add(db_category)
    await db.flush()
    logger.info(f"Category created: {db_category.name} (ID: {db_category.id})")
    return db_category


async def update_category(db: AsyncSession, category_id: int, category_in: CategoryUpdate) -> models.Category:
    db_category = await get_category(db, category_id)
    update_data = category_in.model_dump(exclude_unset=True)

    if "parent_id" in update_data and update_data["parent_id"] is not None:
        if update_data["parent_id"] == category_id:
            raise ValidationError("A category cannot be its own parent")
        # Walk up from the new parent; meeting this category again would close a cycle
        ancestor_id = update_data["parent_id"]
        while ancestor_id is not None:
            if ancestor_id == category_id:
                raise ValidationError("A category cannot be moved under its own descendant")
            ancestor_id = (await get_category(db, ancestor_id)).parent_id

    for key, value in update_data.items():
        if key == "name" and value is None:
            continue
        setattr(db_category, key, value)

    await db.flush()
    logger.info(f"Category updated: {db_category.name} (ID: {db_category.id})")
    return db_category


async def delete_category(db: AsyncSession, category_id: int) -> None:
    db_category = await get_category(db, category_id)
    await db.delete(db_category)
    await db.flush()
    logger.info(f"Category deleted: ID {category_id}")


# --- Tags ---
async def list_tags(db: AsyncSession) -> List[models.Tag]:
    result = await db.execute(select(models.Tag).order_by(models.Tag.id))
    return result.scalars().all()


async def get_tag(db: AsyncSession, tag_id: int) -> models.Tag:
    db_tag = await db.get(models.Tag, tag_id)
    if db_tag is None:
        logger.warning(f"Tag with ID {tag_id} not found.")
        raise NotFoundError("Tag not found")
    return db_tag


async def get_tag_by_slug(db: AsyncSession, slug: str) -> models.Tag:
    result = await db.execute(select(models.Tag).where(models.Tag.slug == slug))
    db_tag = result.scalars().first()
    if db_tag is None:
        raise NotFoundError("Tag not found")
    return db_tag


async def create_tag(db: AsyncSession, tag_in: TagCreate) -> models.Tag:
    db_tag = models.Tag(name=tag_in.name.strip(), slug=tag_in.slug or slugify(tag_in.name))
    db.add(db_tag)
    await db.flush()
    logger.info(f"Tag created: {db_tag.name} (ID: {db_tag.id})")
    return db_tag


async def update_tag(db: AsyncSession, tag_id: int, tag_in: TagUpdate) -> models.Tag:
    db_tag = await get_tag(db, tag_id)
    for key, value in tag_in.model_dump(exclude_unset=True).items():
        if key == "name" and value is None:
            continue
        setattr(db_tag, key, value)
    await db.flush()
    logger.info(f"Tag updated: {db_tag.name} (ID: {db_tag.id})")
    return db_tag


async def delete_tag(db: AsyncSession, tag_id: int) -> None:
    db_tag = await get_tag(db, tag_id)
    # Association rows in product_tag go with the tag
    await db.delete(db_tag)
    await db.flush()
    logger.info(f"Tag deleted: ID {tag_id}")
