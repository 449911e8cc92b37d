import asyncio
import logging
import random
from faker import Faker
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

# Import models and database session
import models
from database import AsyncSessionFactory, init_db
from schemas import (
    CategoryCreate, CategoryRef, TagCreate, UserCreate,
    ProductCreate, ProductImageCreate, ProductFileCreate,
    OrderCreate, OrderItemCreate, ReviewCreate,
)
from services import catalog, orders, products, reviews, users

logger = logging.getLogger(__name__)

fake = Faker()
# Faker.seed(0) # Optional: for reproducible fake data

CATEGORY_TREE = {
    "Figurines": ["Fantasy", "Sci-Fi", "Animals"],
    "Home & Decor": ["Vases", "Lamps", "Planters"],
    "Tabletop Games": ["Terrain", "Miniatures"],
    "Tools & Parts": ["Brackets", "Replacement Parts"],
}
TAG_NAMES = ["bestseller", "new", "eco", "handmade", "gift", "limited", "printable"]
MATERIALS = ["PLA", "PETG", "ABS", "Resin", "Nylon", "Wood"]
CURRENCIES = ["EUR", "USD"]
PAYMENT_METHODS = ["card", "paypal", "bank_transfer", "cash_on_delivery"]


# --- Helper Functions for Data Generation ---

async def create_fake_categories(db: AsyncSession) -> list[models.Category]:
    """Creates the top-level categories and one level of children; returns the leaves."""
    leaves = []
    for parent_name, child_names in CATEGORY_TREE.items():
        parent = await catalog.create_category(db, CategoryCreate(name=parent_name))
        for child_name in child_names:
            leaves.append(await catalog.create_category(db, CategoryCreate(name=child_name, parent_id=parent.id)))
    logger.info(f"Generated {len(CATEGORY_TREE)} categories with {len(leaves)} subcategories.")
    return leaves


async def create_fake_tags(db: AsyncSession) -> list[models.Tag]:
    tags = [await catalog.create_tag(db, TagCreate(name=name)) for name in TAG_NAMES]
    logger.info(f"Generated {len(tags)} tags.")
    return tags


async def create_fake_users(db: AsyncSession, count: int = 10) -> list[models.User]:
    """
    Registers fake users through the user service so passwords are hashed.
    The first one becomes ADMIN unless an admin already exists.
    """
    make_admin = await users.count_admins(db) == 0
    created = []
    for i in range(count):
        user_in = UserCreate(
            username=fake.unique.user_name(),
            email=fake.unique.email(),
            password=fake.password(length=12),
            name=fake.name(),
            phone=fake.phone_number()[:30],
            role=models.Role.ADMIN.value if make_admin and i == 0 else None,
        )
        created.append(await users.register(db, user_in))
    logger.info(f"Generated {len(created)} users.")
    return created


async def create_fake_products(
    db: AsyncSession,
    categories: list[models.Category],
    tags: list[models.Tag],
    count: int = 20,
) -> list[models.Product]:
    """Generates products with images, an optional printable file and a few tags."""
    created = []
    for _ in range(count):
        title = fake.catch_phrase()
        product_in = ProductCreate(
            title=title,
            description=fake.text(max_nb_chars=200),
            price=round(random.uniform(5.0, 250.0), 2),
            currency=random.choice(CURRENCIES),
            stock=random.randint(0, 200),
            material=random.choice(MATERIALS),
            dimensions=f"{random.randint(2, 40)}x{random.randint(2, 40)}x{random.randint(2, 40)} cm",
            weight=round(random.uniform(0.05, 3.0), 2),
            main_image_url=fake.image_url(),
            category=CategoryRef(id=random.choice(categories).id) if categories else None,
            tag_ids=[tag.id for tag in random.sample(tags, k=min(len(tags), random.randint(0, 3)))],
            images=[
                ProductImageCreate(image_url=fake.image_url(), alt_text=f"{title} - Image {i + 1}", order_index=i)
                for i in range(random.randint(1, 3))
            ],
            files=[
                ProductFileCreate(file_url=fake.uri(), file_type="STL", downloadable=True)
            ] if random.random() < 0.3 else [],
        )
        created.append(await products.create_product(db, product_in))
    logger.info(f"Generated {len(created)} products.")
    return created


async def create_fake_orders(
    db: AsyncSession,
    user_list: list[models.User],
    product_list: list[models.Product],
    orders_per_user: int = 2,
) -> list[models.Order]:
    if not user_list or not product_list:
        logger.info("Cannot create orders without users and products.")
        return []

    created = []
    for user_obj in user_list:
        for _ in range(random.randint(0, orders_per_user)):
            picked = random.sample(product_list, k=min(len(product_list), random.randint(1, 3)))
            order_in = OrderCreate(
                status=random.choice(list(models.OrderStatus)),
                address=fake.address(),
                payment_method=random.choice(PAYMENT_METHODS),
                items=[OrderItemCreate(product_id=p.id, quantity=random.randint(1, 4)) for p in picked],
            )
            created.append(await orders.create_order(db, user_obj.id, order_in))
    logger.info(f"Generated {len(created)} orders.")
    return created


async def create_fake_reviews(
    db: AsyncSession,
    user_list: list[models.User],
    product_list: list[models.Product],
    reviews_per_product: int = 2,
) -> list[models.Review]:
    if not user_list or not product_list:
        logger.info("Cannot create reviews without users and products.")
        return []

    created = []
    for product in product_list:
        # Distinct reviewers, since a user reviews a product only once
        reviewers = random.sample(user_list, k=min(len(user_list), random.randint(0, reviews_per_product)))
        for user_obj in reviewers:
            review_in = ReviewCreate(
                rating=random.randint(1, 5),
                comment=fake.paragraph(nb_sentences=random.randint(1, 3)) if random.choice([True, False]) else None,
            )
            created.append(await reviews.create_review(db, user_obj.id, product.id, review_in))
    logger.info(f"Generated {len(created)} reviews.")
    return created


# --- Main Data Generation Function ---
async def generate_initial_data(
    session_factory=AsyncSessionFactory,
    count_users: int = 20,
    count_products: int = 50,
    count_orders_per_user: int = 2,
    count_reviews_per_product: int = 2,
) -> bool:
    """
    Populates an empty catalog with demo data in a single transaction.
    Returns False (and writes nothing) when products already exist.
    """
    async with session_factory() as db:
        result = await db.execute(select(models.Product.id).limit(1))
        if result.scalar_one_or_none() is not None:
            logger.info("Products already exist. Skipping demo data generation.")
            return False

        logger.info("Starting demo data generation...")
        try:
            categories = await create_fake_categories(db)
            tags = await create_fake_tags(db)
            user_list = await create_fake_users(db, count_users)
            product_list = await create_fake_products(db, categories, tags, count_products)
            await create_fake_orders(db, user_list, product_list, count_orders_per_user)
            await create_fake_reviews(db, user_list, product_list, count_reviews_per_product)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("An error occurred during demo data generation")
            raise

    logger.info("Demo data generation completed successfully.")
    return True


# --- Script Execution (for standalone generation) ---
if __name__ == "__main__":
    # This allows running `python data_generator.py` to populate the DB.
    # Ensure your DB is running and accessible.
    logging.basicConfig(level=logging.INFO)

    async def main_standalone():
        await init_db()
        await generate_initial_data(count_users=50, count_products=200)

    asyncio.run(main_standalone())
