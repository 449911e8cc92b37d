"""
Product lifecycle: create, update and delete with dependent-entity consistency.

Dependent rows (images, files, cart items, reviews, order items) are removed
explicitly before the product itself, because the schema does not cascade on
delete. Image and review removal is best-effort: each row runs in its own
SAVEPOINT, and a failure is logged and recorded in a `CleanupReport` while
the surrounding transaction carries on.
"""
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

import models
from errors import NotFoundError, OperationFailedError, ShopError
from schemas import CategoryRef, ProductCreate, ProductUpdate
from services import cart, catalog, media, orders, reviews

logger = logging.getLogger(__name__)


@dataclass
class CleanupFailure:
    kind: str
    item_id: Optional[int]
    error: str


@dataclass
class CleanupReport:
    product_id: int
    failures: List[CleanupFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def record(self, kind: str, item_id: Optional[int], error: Exception) -> None:
        self.failures.append(CleanupFailure(kind=kind, item_id=item_id, error=str(error)))


async def _best_effort(
    db: AsyncSession,
    report: CleanupReport,
    kind: str,
    item_id: Optional[int],
    action: Callable[[], Awaitable[object]],
) -> None:
    try:
        async with db.begin_nested():
            await action()
    except Exception as e:
        logger.warning(f"Warning: failed to process {kind} {item_id} of Product {report.product_id}: {e}")
        report.record(kind, item_id, e)


# --- Queries ---
def _product_query():
    return select(models.Product).options(
        selectinload(models.Product.category),
        selectinload(models.Product.images),
        selectinload(models.Product.files),
        selectinload(models.Product.tags),
    )


async def _load_product(db: AsyncSession, product_id: int) -> Optional[models.Product]:
    result = await db.execute(
        _product_query().where(models.Product.id == product_id).execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def list_products(db: AsyncSession) -> List[models.Product]:
    result = await db.execute(_product_query().order_by(models.Product.id))
    return result.scalars().all()


async def get_product(db: AsyncSession, product_id: int) -> models.Product:
    db_product = await _load_product(db, product_id)
    if db_product is None:
        logger.warning(f"Product with ID {product_id} not found.")
        raise NotFoundError("Product not found")
    return db_product


async def list_by_category(db: AsyncSession, category_id: int) -> List[models.Product]:
    await catalog.get_category(db, category_id)
    result = await db.execute(
        _product_query().where(models.Product.category_id == category_id).order_by(models.Product.id)
    )
    return result.scalars().all()


async def search_by_title(db: AsyncSession, keyword: str) -> List[models.Product]:
    result = await db.execute(
        _product_query().where(models.Product.title.icontains(keyword, autoescape=True)).order_by(models.Product.id)
    )
    return result.scalars().all()


# --- Create ---
async def create_product(db: AsyncSession, product_in: ProductCreate) -> models.Product:
    """
    Persists the product first to obtain its id, then its images and files.
    Category and tags are resolved by id and must exist.
    """
    db_category = None
    if product_in.category is not None and product_in.category.id is not None:
        db_category = await catalog.get_category(db, product_in.category.id)
    db_tags = [await catalog.get_tag(db, tag_id) for tag_id in product_in.tag_ids]

    data = product_in.model_dump(exclude={"category", "tag_ids", "images", "files"})
    db_product = models.Product(**data, category_id=db_category.id if db_category else None, tags=db_tags)
    db.add(db_product)
    await db.flush()

    for image_in in product_in.images:
        await media.create_image(
            db,
            models.ProductImage(
                product_id=db_product.id,
                image_url=image_in.image_url,
                alt_text=image_in.alt_text,
                order_index=image_in.order_index,
            ),
        )
    for file_in in product_in.files:
        await media.create_file(db, models.ProductFile(product_id=db_product.id, **file_in.model_dump()))
    await db.flush()

    logger.info(f"Product created: {db_product.title} (ID: {db_product.id})")
    return await get_product(db, db_product.id)


# --- Update ---
def _apply_patch(db_product: models.Product, patch: ProductUpdate) -> None:
    if patch.title is not None and patch.title.strip():
        db_product.title = patch.title.strip()
    if patch.currency is not None and patch.currency.strip():
        db_product.currency = patch.currency.strip()
    for key in ("description", "price", "stock", "material", "dimensions", "weight", "main_image_url"):
        value = getattr(patch, key)
        if value is not None:
            setattr(db_product, key, value)


async def _resolve_category(db: AsyncSession, ref: Optional[CategoryRef]) -> Optional[models.Category]:
    # Missing or unknown category clears it; a PUT without a category is not "leave unchanged"
    if ref is None or ref.id is None:
        return None
    return await catalog.find_category(db, ref.id)


async def _replace_images(db: AsyncSession, db_product: models.Product, patch: ProductUpdate, report: CleanupReport) -> None:
    for image_in in patch.images or []:
        if image_in is None or not image_in.image_url or not image_in.image_url.strip():
            continue
        alt_text = image_in.alt_text if image_in.alt_text and image_in.alt_text.strip() else None
        if alt_text is None:
            alt_text = f"{db_product.title} - Image" if db_product.title else "Product Image"
        # Always a new row, never a reused id
        new_image = models.ProductImage(
            product_id=db_product.id,
            image_url=image_in.image_url.strip(),
            alt_text=alt_text,
            order_index=image_in.order_index if image_in.order_index is not None else 0,
        )
        await _best_effort(db, report, "image", None, lambda image=new_image: media.create_image(db, image))


async def update_product(db: AsyncSession, product_id: int, patch: ProductUpdate) -> models.Product:
    """
    Updates a product and replaces all of its images.
    - Existing images are always deleted; only patch images with a URL are recreated.
    - Omitting `category` (or naming an unknown one) clears the category.
    """
    try:
        db_product = await db.get(models.Product, product_id)
        if db_product is None:
            raise NotFoundError("Product not found")

        report = CleanupReport(product_id=product_id)
        for image in await media.list_images(db, product_id):
            await _best_effort(db, report, "image", image.id, lambda image=image: media.delete_image(db, image))

        _apply_patch(db_product, patch)
        db_category = await _resolve_category(db, patch.category)
        db_product.category_id = db_category.id if db_category else None
        await db.flush()

        await _replace_images(db, db_product, patch, report)
        if not report.ok:
            logger.warning(f"Product {product_id} updated with {len(report.failures)} skipped image operations")

        logger.info(f"Product updated: {db_product.title} (ID: {db_product.id})")
        reloaded = await _load_product(db, product_id)
        return reloaded if reloaded is not None else db_product
    except ShopError:
        raise
    except Exception as e:
        logger.exception(f"Error updating product {product_id}")
        raise OperationFailedError(f"Failed to update product: {e}") from e


# --- Delete ---
async def delete_product(db: AsyncSession, product_id: int) -> CleanupReport:
    """
    Deletes a product after its images, files, cart items, reviews and order items.
    The caller's transaction covers the whole sequence.
    """
    db_product = await db.get(models.Product, product_id)
    if db_product is None:
        raise NotFoundError(f"Product not found with ID: {product_id}")

    report = CleanupReport(product_id=product_id)
    try:
        for image in await media.list_images(db, product_id):
            await _best_effort(db, report, "image", image.id, lambda image=image: media.delete_image(db, image))
        await db.flush()

        for product_file in await media.list_files(db, product_id):
            await media.delete_file(db, product_file)
        await db.flush()

        removed_cart_items = await cart.delete_for_product(db, product_id)
        await db.flush()

        for review in await reviews.list_by_product(db, product_id):
            await _best_effort(db, report, "review", review.id, lambda review=review: reviews.delete_review(db, review.id))
        await db.flush()

        removed_order_items = await orders.delete_items_for_product(db, product_id)
        await db.flush()

        # Collections may still hold rows deleted above; reload them so the cascade only sees live rows
        await db.refresh(db_product, attribute_names=["images", "files", "tags"])
        await db.delete(db_product)
        await db.flush()
    except ShopError:
        raise
    except Exception as e:
        logger.exception(f"Error deleting product {product_id}")
        raise OperationFailedError(f"Failed to delete product: {e}") from e

    logger.info(
        f"Product deleted: ID {product_id} "
        f"(cart items: {removed_cart_items}, order items: {removed_order_items}, skipped: {len(report.failures)})"
    )
    return report
