import logging
from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI, HTTPException, Depends, Query, Path, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

import config
# Import database-related modules
from database import init_db, get_async_session, engine
from errors import register_exception_handlers
# Import Pydantic models (schemas)
from schemas import (
    UserCreate, User, UserUpdate,
    LoginRequest, TokenResponse,
    CategoryCreate, Category, CategoryUpdate,
    TagCreate, Tag, TagUpdate,
    ProductCreate, Product, ProductUpdate,
    CartItemCreate, CartItem, CartItemUpdate,
    OrderCreate, Order, OrderUpdate,
    ReviewCreate, Review,
)
from security import TokenClaims, TokenService, get_token_service, require_principal
from services import auth, cart, catalog, orders, products, reviews, users
from data_generator import generate_initial_data

# --- Logging Setup ---
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


# --- Lifespan Management for DB ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application startup: Initializing database...")
    await init_db()
    logger.info("Database tables checked/created.")

    if config.SEED_DEMO_DATA:
        # Skips by itself when the catalog already has products
        await generate_initial_data()

    yield  # Application is running

    await engine.dispose()
    logger.info("Database engine disposed.")
    logger.info("Application shutdown complete.")


app = FastAPI(
    title="Webshop API",
    description="E-commerce backend: catalog, cart, orders, reviews and JWT authentication.",
    version="1.0.0",
    lifespan=lifespan,
)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Authorization"],
)

register_exception_handlers(app)


# --- API Endpoints ---

# --- Auth Endpoints ---
@app.post("/api/auth/login", response_model=TokenResponse, tags=["Auth"])
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_async_session),
    tokens: TokenService = Depends(get_token_service),
):
    """
    Exchange a username and password for a bearer token.
    - Answers 401 with "Invalid username" or "Invalid password".
    """
    token = await auth.login(db, tokens, credentials.username, credentials.password)
    return TokenResponse(token=token)


# --- User Endpoints ---
@app.post("/api/users", response_model=User, status_code=201, tags=["Users"])
async def create_user(user_in: UserCreate, db: AsyncSession = Depends(get_async_session)):
    """
    Register a new user.
    - **username** and **email**: Must be unique.
    - **role**: USER (default) or ADMIN; only one ADMIN may exist.
    """
    db_user = await users.register(db, user_in)
    await db.commit()
    return db_user


@app.get("/api/users", response_model=List[User], tags=["Users"])
async def read_users(
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    return await users.list_users(db)


@app.get("/api/users/{user_id}", response_model=User, tags=["Users"])
async def read_user(
    user_id: int = Path(..., title="The ID of the user to get", ge=1),
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    return await users.get_user(db, user_id)


@app.put("/api/users/{user_id}", response_model=User, tags=["Users"])
async def update_user(
    user_id: int,
    user_in: UserUpdate,
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    """
    Update an existing user.
    Allows partial updates; an empty password leaves the current one in place.
    """
    db_user = await users.update_user(db, user_id, user_in)
    await db.commit()
    return db_user


@app.delete("/api/users/{user_id}", status_code=204, tags=["Users"])
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    await users.delete_user(db, user_id)
    await db.commit()
    return Response(status_code=204)


# --- Category Endpoints ---
@app.get("/api/categories", response_model=List[Category], tags=["Categories"])
async def read_categories(db: AsyncSession = Depends(get_async_session)):
    return await catalog.list_categories(db)


@app.post("/api/categories", response_model=Category, status_code=201, tags=["Categories"])
async def create_category(category_in: CategoryCreate, db: AsyncSession = Depends(get_async_session)):
    """
    Create a category.
    - **slug**: Derived from the name when omitted.
    - **parent_id**: Must reference an existing category.
    """
    db_category = await catalog.create_category(db, category_in)
    await db.commit()
    return db_category


@app.get("/api/categories/{category_id}", response_model=Category, tags=["Categories"])
async def read_category(category_id: int = Path(..., ge=1), db: AsyncSession = Depends(get_async_session)):
    return await catalog.get_category(db, category_id)


@app.get("/api/categories/{category_id}/children", response_model=List[Category], tags=["Categories"])
async def read_category_children(category_id: int = Path(..., ge=1), db: AsyncSession = Depends(get_async_session)):
    return await catalog.list_children(db, category_id)


@app.put("/api/categories/{category_id}", response_model=Category, tags=["Categories"])
async def update_category(category_id: int, category_in: CategoryUpdate, db: AsyncSession = Depends(get_async_session)):
    db_category = await catalog.update_category(db, category_id, category_in)
    await db.commit()
    return db_category


@app.delete("/api/categories/{category_id}", status_code=204, tags=["Categories"])
async def delete_category(category_id: int, db: AsyncSession = Depends(get_async_session)):
    """
    Delete a category.
    Its products and child categories are kept and lose the reference.
    """
    await catalog.delete_category(db, category_id)
    await db.commit()
    return Response(status_code=204)


# --- Tag Endpoints ---
@app.get("/api/tags", response_model=List[Tag], tags=["Tags"])
async def read_tags(
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    return await catalog.list_tags(db)


@app.post("/api/tags", response_model=Tag, status_code=201, tags=["Tags"])
async def create_tag(
    tag_in: TagCreate,
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    db_tag = await catalog.create_tag(db, tag_in)
    await db.commit()
    return db_tag


@app.get("/api/tags/{tag_id}", response_model=Tag, tags=["Tags"])
async def read_tag(
    tag_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    return await catalog.get_tag(db, tag_id)


@app.put("/api/tags/{tag_id}", response_model=Tag, tags=["Tags"])
async def update_tag(
    tag_id: int,
    tag_in: TagUpdate,
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    db_tag = await catalog.update_tag(db, tag_id, tag_in)
    await db.commit()
    return db_tag


@app.delete("/api/tags/{tag_id}", status_code=204, tags=["Tags"])
async def delete_tag(
    tag_id: int,
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    await catalog.delete_tag(db, tag_id)
    await db.commit()
    return Response(status_code=204)


# --- Product Endpoints ---
@app.get("/api/products", response_model=List[Product], tags=["Products"])
async def read_products(db: AsyncSession = Depends(get_async_session)):
    """
    Retrieve all products.
    - Eagerly loads category, images, files and tags.
    """
    return await products.list_products(db)


# Declared before /api/products/{product_id} so "search" is not parsed as an id
@app.get("/api/products/search", response_model=List[Product], tags=["Products"])
async def search_products(
    q: str = Query(..., min_length=1, description="Case-insensitive substring of the product title"),
    db: AsyncSession = Depends(get_async_session),
):
    return await products.search_by_title(db, q)


@app.get("/api/products/category/{category_id}", response_model=List[Product], tags=["Products"])
async def read_products_by_category(category_id: int = Path(..., ge=1), db: AsyncSession = Depends(get_async_session)):
    return await products.list_by_category(db, category_id)


@app.get("/api/products/{product_id}", response_model=Product, tags=["Products"])
async def read_product(
    product_id: int = Path(..., title="The ID of the product to get", ge=1),
    db: AsyncSession = Depends(get_async_session),
):
    return await products.get_product(db, product_id)


@app.post("/api/products", response_model=Product, status_code=201, tags=["Products"])
async def create_product(product_in: ProductCreate, db: AsyncSession = Depends(get_async_session)):
    """
    Create a new product together with its images and files.
    - **category.id** and **tag_ids**: Must reference existing rows.
    """
    db_product = await products.create_product(db, product_in)
    await db.commit()
    return db_product


@app.put("/api/products/{product_id}", response_model=Product, tags=["Products"])
async def update_product(product_id: int, product_in: ProductUpdate, db: AsyncSession = Depends(get_async_session)):
    """
    Update an existing product.
    - All current images are replaced by the ones in the request (none if omitted).
    - A request without a resolvable **category** clears the product's category.
    """
    db_product = await products.update_product(db, product_id, product_in)
    await db.commit()
    return db_product


@app.delete("/api/products/{product_id}", status_code=204, tags=["Products"])
async def delete_product(product_id: int, db: AsyncSession = Depends(get_async_session)):
    """
    Delete a product with its images, files, cart items, reviews and order items.
    """
    report = await products.delete_product(db, product_id)
    await db.commit()
    if not report.ok:
        logger.warning(f"Product {product_id} deleted with {len(report.failures)} skipped cleanup steps")
    return Response(status_code=204)


# --- Cart Endpoints ---
@app.get("/api/cart/{user_id}", response_model=List[CartItem], tags=["Cart"])
async def read_cart(
    user_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    return await cart.get_cart(db, user_id)


@app.post("/api/cart/{user_id}", response_model=CartItem, status_code=201, tags=["Cart"])
async def add_cart_item(
    user_id: int,
    item_in: CartItemCreate,
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    """
    Add a product to the user's cart.
    - The current product price is frozen into **price_at_add**.
    """
    db_item = await cart.add_to_cart(db, user_id, item_in)
    await db.commit()
    return db_item


# Declared before /api/cart/{user_id}/{item_id}, which would otherwise match "clear"
@app.delete("/api/cart/clear/{user_id}", status_code=204, tags=["Cart"])
async def clear_cart(
    user_id: int,
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    await cart.clear_cart(db, user_id)
    await db.commit()
    return Response(status_code=204)


@app.put("/api/cart/{user_id}/{item_id}", response_model=CartItem, tags=["Cart"])
async def update_cart_item(
    user_id: int,
    item_id: int,
    item_in: CartItemUpdate,
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    db_item = await cart.update_quantity(db, user_id, item_id, item_in.quantity)
    await db.commit()
    return db_item


@app.delete("/api/cart/{user_id}/{item_id}", status_code=204, tags=["Cart"])
async def remove_cart_item(
    user_id: int,
    item_id: int,
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    await cart.remove_item(db, user_id, item_id)
    await db.commit()
    return Response(status_code=204)


# --- Order Endpoints ---
@app.get("/api/orders", response_model=List[Order], tags=["Orders"])
async def read_orders(
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    return await orders.list_orders(db)


@app.get("/api/orders/detail/{order_id}", response_model=Order, tags=["Orders"])
async def read_order(
    order_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    return await orders.get_order(db, order_id)


@app.get("/api/orders/status/{status}", response_model=List[Order], tags=["Orders"])
async def read_orders_by_status(
    status: str,
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    """
    Retrieve orders in a given status (NEW, PROCESSING, SHIPPED, COMPLETED, CANCELED).
    """
    return await orders.list_by_status(db, status)


@app.get("/api/orders/{user_id}", response_model=List[Order], tags=["Orders"])
async def read_user_orders(
    user_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    return await orders.list_by_user(db, user_id)


@app.post("/api/orders/{user_id}", response_model=Order, status_code=201, tags=["Orders"])
async def create_order(
    user_id: int,
    order_in: OrderCreate,
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    """
    Create a new order for a user.
    - Validates that the user and every `product_id` exist.
    - Item prices are frozen and `total_amount` is computed from them.
    """
    db_order = await orders.create_order(db, user_id, order_in)
    await db.commit()
    return db_order


@app.put("/api/orders/{order_id}", response_model=Order, tags=["Orders"])
async def update_order(
    order_id: int,
    order_in: OrderUpdate,
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    db_order = await orders.update_order(db, order_id, order_in)
    await db.commit()
    return db_order


@app.delete("/api/orders/{order_id}", status_code=204, tags=["Orders"])
async def delete_order(
    order_id: int,
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    await orders.delete_order(db, order_id)
    await db.commit()
    return Response(status_code=204)


# --- Review Endpoints ---
@app.get("/api/reviews", response_model=List[Review], tags=["Reviews"])
async def read_reviews(db: AsyncSession = Depends(get_async_session)):
    return await reviews.list_reviews(db)


@app.get("/api/reviews/product/{product_id}", response_model=List[Review], tags=["Reviews"])
async def read_reviews_for_product(product_id: int = Path(..., ge=1), db: AsyncSession = Depends(get_async_session)):
    """
    Retrieve reviews for a specific product, newest first.
    - Eagerly loads related User information for each review.
    """
    return await reviews.list_by_product(db, product_id)


@app.get("/api/reviews/user/{user_id}", response_model=List[Review], tags=["Reviews"])
async def read_reviews_by_user(
    user_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    return await reviews.list_by_user(db, user_id)


@app.post("/api/reviews/{user_id}/{product_id}", response_model=Review, status_code=201, tags=["Reviews"])
async def create_review(
    user_id: int,
    product_id: int,
    review_in: ReviewCreate,
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    """
    Create a new review for a product by a user.
    - **rating**: Between 1 and 5.
    - A user can review a product only once.
    """
    db_review = await reviews.create_review(db, user_id, product_id, review_in)
    await db.commit()
    return db_review


@app.delete("/api/reviews/{review_id}", status_code=204, tags=["Reviews"])
async def delete_review(
    review_id: int,
    db: AsyncSession = Depends(get_async_session),
    principal: TokenClaims = Depends(require_principal),
):
    await reviews.delete_review(db, review_id)
    await db.commit()
    return Response(status_code=204)


# --- Health Check Endpoint ---
@app.get("/health", status_code=200, tags=["Health"])
async def health_check(db: AsyncSession = Depends(get_async_session)):
    """
    Performs a health check on the API and its database.
    """
    try:
        await db.execute(select(1))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        raise HTTPException(status_code=503, detail={"status": "unhealthy", "database": "error"})
    return {"status": "healthy", "database": "ok"}


if __name__ == "__main__":
    # For production, use Uvicorn: uvicorn main:app --host 0.0.0.0 --port 8000
    import uvicorn
    logger.info("Starting application with Uvicorn (for local testing only)...")
    uvicorn.run(app, host="0.0.0.0", port=8000)
