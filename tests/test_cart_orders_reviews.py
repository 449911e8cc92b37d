import pytest
from sqlalchemy import func
from sqlalchemy.future import select

import models
from errors import ConflictError, NotFoundError, ValidationError
from schemas import CartItemCreate, OrderCreate, OrderItemCreate, OrderUpdate, ReviewCreate
from services import cart, orders, reviews


# --- Cart ---
async def test_adding_same_product_merges_quantity(db, make_user, make_product):
    user = await make_user()
    product = await make_product(price=9.5)

    first = await cart.add_to_cart(db, user.id, CartItemCreate(product_id=product.id, quantity=2))
    second = await cart.add_to_cart(db, user.id, CartItemCreate(product_id=product.id, quantity=3))

    assert second.id == first.id
    assert second.quantity == 5
    assert second.price_at_add == 9.5
    assert second.product.title == "Dragon"
    assert len(await cart.get_cart(db, user.id)) == 1


async def test_add_to_cart_unknown_product_or_user(db, make_user):
    user = await make_user()

    with pytest.raises(NotFoundError):
        await cart.add_to_cart(db, user.id, CartItemCreate(product_id=404))
    with pytest.raises(NotFoundError):
        await cart.get_cart(db, 404)


async def test_update_and_remove_only_own_items(db, make_user, make_product):
    alice = await make_user("alice")
    bob = await make_user("bob")
    product = await make_product()
    item = await cart.add_to_cart(db, alice.id, CartItemCreate(product_id=product.id))

    assert (await cart.update_quantity(db, alice.id, item.id, 4)).quantity == 4
    with pytest.raises(NotFoundError):
        await cart.update_quantity(db, bob.id, item.id, 1)
    with pytest.raises(NotFoundError):
        await cart.remove_item(db, bob.id, item.id)

    await cart.remove_item(db, alice.id, item.id)
    assert await cart.get_cart(db, alice.id) == []


async def test_clear_cart(db, make_user, make_product):
    user = await make_user()
    for title in ("Dragon", "Vase", "Lamp"):
        product = await make_product(title=title)
        await cart.add_to_cart(db, user.id, CartItemCreate(product_id=product.id))

    assert await cart.clear_cart(db, user.id) == 3
    assert await cart.get_cart(db, user.id) == []


# --- Orders ---
async def test_create_order_freezes_prices_and_computes_total(db, make_user, make_product):
    user = await make_user()
    dragon = await make_product(title="Dragon", price=10.0)
    vase = await make_product(title="Vase", price=2.25)

    order = await orders.create_order(
        db,
        user.id,
        OrderCreate(
            address="Main street 1",
            total_amount=1.0,
            items=[OrderItemCreate(product_id=dragon.id, quantity=2), OrderItemCreate(product_id=vase.id, quantity=4)],
        ),
    )

    assert order.status == "NEW"
    assert order.total_amount == 29.0
    assert sorted((i.product_id, i.price, i.quantity) for i in order.items) == [
        (dragon.id, 10.0, 2),
        (vase.id, 2.25, 4),
    ]


async def test_create_order_without_items_keeps_given_total(db, make_user):
    user = await make_user()

    order = await orders.create_order(db, user.id, OrderCreate(total_amount=15.0, payment_method="card"))

    assert order.total_amount == 15.0
    assert order.items == []


async def test_create_order_unknown_product(db, make_user):
    user = await make_user()

    with pytest.raises(NotFoundError):
        await orders.create_order(db, user.id, OrderCreate(items=[OrderItemCreate(product_id=404)]))


async def test_order_status_update_and_listing(db, make_user):
    user = await make_user()
    order = await orders.create_order(db, user.id, OrderCreate())

    updated = await orders.update_order(db, order.id, OrderUpdate(status="shipped", address="New address"))

    assert updated.status == "SHIPPED"
    assert updated.address == "New address"
    assert [o.id for o in await orders.list_by_status(db, "SHIPPED")] == [order.id]
    assert await orders.list_by_status(db, "new") == []
    assert [o.id for o in await orders.list_by_user(db, user.id)] == [order.id]


async def test_unknown_order_status_is_rejected(db, make_user):
    user = await make_user()
    order = await orders.create_order(db, user.id, OrderCreate())

    with pytest.raises(ValidationError, match="Unknown order status"):
        await orders.update_order(db, order.id, OrderUpdate(status="lost"))
    with pytest.raises(ValidationError):
        await orders.list_by_status(db, "lost")


async def test_delete_order_removes_its_items(db, make_user, make_product):
    user = await make_user()
    product = await make_product()
    order = await orders.create_order(db, user.id, OrderCreate(items=[OrderItemCreate(product_id=product.id)]))
    await db.commit()

    await orders.delete_order(db, order.id)
    await db.commit()

    with pytest.raises(NotFoundError):
        await orders.get_order(db, order.id)
    assert (await db.execute(select(func.count()).select_from(models.OrderItem))).scalar_one() == 0


# --- Reviews ---
async def test_create_review_and_list(db, make_user, make_product):
    user = await make_user()
    product = await make_product()

    review = await reviews.create_review(db, user.id, product.id, ReviewCreate(rating=4, comment="Nice print"))

    assert review.user.username == "alice"
    assert review.product_id == product.id
    assert [r.id for r in await reviews.list_by_product(db, product.id)] == [review.id]
    assert [r.id for r in await reviews.list_by_user(db, user.id)] == [review.id]
    assert len(await reviews.list_reviews(db)) == 1


async def test_user_reviews_a_product_only_once(db, make_user, make_product):
    user = await make_user()
    product = await make_product()
    await reviews.create_review(db, user.id, product.id, ReviewCreate(rating=4))

    with pytest.raises(ConflictError, match="already reviewed"):
        await reviews.create_review(db, user.id, product.id, ReviewCreate(rating=1))


async def test_review_rating_out_of_range(db, make_user, make_product):
    user = await make_user()
    product = await make_product()

    with pytest.raises(ValidationError, match="between 1 and 5"):
        await reviews.create_review(db, user.id, product.id, ReviewCreate.model_construct(rating=9, comment=None))


async def test_review_for_unknown_product(db, make_user):
    user = await make_user()

    with pytest.raises(NotFoundError):
        await reviews.create_review(db, user.id, 404, ReviewCreate(rating=3))
    with pytest.raises(NotFoundError):
        await reviews.list_by_product(db, 404)


async def test_delete_review(db, make_user, make_product):
    user = await make_user()
    product = await make_product()
    review = await reviews.create_review(db, user.id, product.id, ReviewCreate(rating=2))

    await reviews.delete_review(db, review.id)

    assert await reviews.list_by_product(db, product.id) == []
    with pytest.raises(NotFoundError):
        await reviews.delete_review(db, review.id)


async def test_order_item_helpers(db, make_user, make_product):
    user = await make_user()
    dragon = await make_product(title="Dragon", price=10.0)
    vase = await make_product(title="Vase", price=2.0)
    order = await orders.create_order(db, user.id, OrderCreate(items=[OrderItemCreate(product_id=dragon.id)]))

    extra = await orders.create_item(
        db, models.OrderItem(order_id=order.id, product_id=vase.id, quantity=3, price=vase.price)
    )

    assert [i.product_id for i in await orders.list_items_for_order(db, order.id)] == [dragon.id, vase.id]
    assert [i.id for i in await orders.list_items_for_product(db, vase.id)] == [extra.id]

    await orders.delete_item(db, extra.id)
    assert await orders.list_items_for_product(db, vase.id) == []
    with pytest.raises(NotFoundError):
        await orders.delete_item(db, extra.id)

    assert await orders.delete_items_for_product(db, dragon.id) == 1
    assert await orders.list_items_for_order(db, order.id) == []
