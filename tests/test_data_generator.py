from sqlalchemy import func
from sqlalchemy.future import select

import models
from data_generator import CATEGORY_TREE, TAG_NAMES, generate_initial_data
from services import users


async def _count(session, model):
    return (await session.execute(select(func.count()).select_from(model))).scalar_one()


async def test_generates_demo_data_once(session_factory):
    created = await generate_initial_data(
        session_factory, count_users=3, count_products=4, count_orders_per_user=1, count_reviews_per_product=2
    )

    assert created is True
    async with session_factory() as session:
        assert await _count(session, models.Product) == 4
        assert await _count(session, models.User) == 3
        assert await _count(session, models.Tag) == len(TAG_NAMES)
        assert await _count(session, models.Category) == len(CATEGORY_TREE) + sum(map(len, CATEGORY_TREE.values()))
        assert await _count(session, models.ProductImage) >= 4
        assert await users.count_admins(session) == 1

        result = await session.execute(select(models.Product).where(models.Product.category_id.is_(None)))
        assert result.scalars().all() == []

    assert await generate_initial_data(session_factory, count_users=3, count_products=4) is False
    async with session_factory() as session:
        assert await _count(session, models.Product) == 4
