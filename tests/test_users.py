import pytest
from sqlalchemy import func
from sqlalchemy.future import select

import models
from errors import ConflictError, NotFoundError
from schemas import CartItemCreate, UserCreate, UserUpdate
from security import verify_password
from services import cart, users


async def _count_users(db, username):
    result = await db.execute(select(func.count(models.User.id)).where(models.User.username == username))
    return result.scalar_one()


async def test_register_defaults_to_user_role_and_hashes_password(db, make_user):
    user = await make_user("alice", password="s3cret")
    await db.commit()

    assert user.id is not None
    assert user.role == "USER"
    assert user.password_hash != "s3cret"
    assert verify_password("s3cret", user.password_hash)


async def test_register_rejects_taken_username(db, make_user):
    await make_user("alice")
    await db.commit()

    with pytest.raises(ConflictError, match="Username already taken"):
        await users.register(db, UserCreate(username="alice", email="other@mail.com", password="pw"))

    assert await _count_users(db, "alice") == 1


async def test_register_rejects_taken_email(db, make_user):
    await make_user("alice")

    with pytest.raises(ConflictError, match="Email already registered"):
        await users.register(db, UserCreate(username="bob", email="alice@mail.com", password="pw"))


async def test_only_one_admin_can_register(db, make_user):
    admin = await make_user("root", role="admin")
    await db.commit()
    assert admin.role == "ADMIN"

    with pytest.raises(ConflictError, match="Only one admin is allowed"):
        await make_user("root2", role="ADMIN")

    assert await users.count_admins(db) == 1
    assert await _count_users(db, "root2") == 0


def test_role_is_validated_by_schema():
    with pytest.raises(ValueError):
        UserCreate(username="x", email="x@mail.com", password="pw", role="superuser")
    assert UserCreate(username="x", email="x@mail.com", password="pw", role=" ").role is None


async def test_update_only_touches_supplied_fields(db, make_user):
    user = await make_user("alice")
    user.name = "Alice"
    old_hash = user.password_hash
    await db.commit()

    updated = await users.update_user(db, user.id, UserUpdate(phone="+31 6 1234", password=""))

    assert updated.name == "Alice"
    assert updated.phone == "+31 6 1234"
    assert updated.password_hash == old_hash


async def test_update_rehashes_non_empty_password(db, make_user):
    user = await make_user("alice", password="old")

    updated = await users.update_user(db, user.id, UserUpdate(password="new-password"))

    assert verify_password("new-password", updated.password_hash)
    assert not verify_password("old", updated.password_hash)


async def test_update_rejects_username_of_another_user(db, make_user):
    await make_user("alice")
    bob = await make_user("bob")

    with pytest.raises(ConflictError, match="Username already taken"):
        await users.update_user(db, bob.id, UserUpdate(username="alice"))


async def test_update_keeps_own_username_and_email(db, make_user):
    alice = await make_user("alice")

    updated = await users.update_user(db, alice.id, UserUpdate(username="alice", email="alice@mail.com"))

    assert updated.username == "alice"


async def test_promotion_to_admin_is_blocked_when_one_exists(db, make_user):
    await make_user("root", role="ADMIN")
    bob = await make_user("bob")

    with pytest.raises(ConflictError, match="Only one admin is allowed"):
        await users.update_user(db, bob.id, UserUpdate(role="admin"))


async def test_admin_can_resubmit_own_role(db, make_user):
    root = await make_user("root", role="ADMIN")

    updated = await users.update_user(db, root.id, UserUpdate(role="ADMIN", name="Root"))

    assert updated.role == "ADMIN"
    assert updated.name == "Root"


async def test_promotion_allowed_after_demoting_admin(db, make_user):
    root = await make_user("root", role="ADMIN")
    bob = await make_user("bob")

    await users.update_user(db, root.id, UserUpdate(role="USER"))
    promoted = await users.update_user(db, bob.id, UserUpdate(role="ADMIN"))

    assert promoted.role == "ADMIN"
    assert await users.count_admins(db) == 1


async def test_update_unknown_user(db):
    with pytest.raises(NotFoundError):
        await users.update_user(db, 999, UserUpdate(name="Ghost"))


async def test_delete_user(db, make_user):
    user = await make_user("alice")
    await db.commit()

    await users.delete_user(db, user.id)
    await db.commit()

    with pytest.raises(NotFoundError):
        await users.get_user(db, user.id)


async def test_delete_user_with_cart_items_is_rejected(db, make_user, make_product):
    user = await make_user("alice")
    product = await make_product()
    await cart.add_to_cart(db, user.id, CartItemCreate(product_id=product.id, quantity=1))
    await db.commit()

    with pytest.raises(ConflictError):
        await users.delete_user(db, user.id)
