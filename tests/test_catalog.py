import pytest

from errors import NotFoundError, ValidationError
from schemas import CategoryCreate, CategoryRef, CategoryUpdate, TagCreate, TagUpdate
from services import catalog, products


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Home & Decor", "home-decor"),
        ("  Tabletop   Games ", "tabletop-games"),
        ("Café Crème", "cafe-creme"),
    ],
)
def test_slugify(name, expected):
    assert catalog.slugify(name) == expected


def test_slugify_falls_back_for_non_ascii_names():
    slug = catalog.slugify("Фигурки")
    assert len(slug) == 32
    assert slug != catalog.slugify("Фигурки")


async def test_create_category_with_parent_and_children(db, make_category):
    parent = await make_category("Figurines")
    child = await make_category("Sci-Fi", parent_id=parent.id)

    assert parent.slug == "figurines"
    assert child.parent_id == parent.id
    assert [c.name for c in await catalog.list_children(db, parent.id)] == ["Sci-Fi"]
    assert (await catalog.get_category_by_slug(db, "sci-fi")).id == child.id


async def test_create_category_with_unknown_parent(db):
    with pytest.raises(NotFoundError):
        await catalog.create_category(db, CategoryCreate(name="Orphan", parent_id=77))


async def test_category_cannot_be_its_own_parent(db, make_category):
    category = await make_category()

    with pytest.raises(ValidationError):
        await catalog.update_category(db, category.id, CategoryUpdate(parent_id=category.id))


async def test_category_cannot_move_under_its_descendant(db, make_category):
    root = await make_category("Figurines")
    child = await make_category("Fantasy", parent_id=root.id)
    grandchild = await make_category("Dragons", parent_id=child.id)

    with pytest.raises(ValidationError, match="own descendant"):
        await catalog.update_category(db, root.id, CategoryUpdate(parent_id=grandchild.id))

    assert (await catalog.get_category(db, root.id)).parent_id is None
    moved = await catalog.update_category(db, grandchild.id, CategoryUpdate(parent_id=root.id))
    assert moved.parent_id == root.id


async def test_update_category_keeps_unsent_fields(db, make_category):
    category = await make_category("Figurines")

    updated = await catalog.update_category(db, category.id, CategoryUpdate(slug="minis"))

    assert updated.name == "Figurines"
    assert updated.slug == "minis"


async def test_delete_category_detaches_products_and_children(db, make_category, make_product):
    parent = await make_category("Figurines")
    child = await make_category("Animals", parent_id=parent.id)
    product = await make_product(category=CategoryRef(id=parent.id))
    await db.commit()

    await catalog.delete_category(db, parent.id)
    await db.commit()

    assert (await products.get_product(db, product.id)).category is None
    assert (await catalog.get_category(db, child.id)).parent_id is None
    with pytest.raises(NotFoundError):
        await catalog.get_category(db, parent.id)


async def test_tag_lifecycle(db, make_product):
    tag = await catalog.create_tag(db, TagCreate(name="Limited Edition"))
    assert tag.slug == "limited-edition"
    assert (await catalog.get_tag_by_slug(db, "limited-edition")).id == tag.id

    tag = await catalog.update_tag(db, tag.id, TagUpdate(name="Limited"))
    assert tag.name == "Limited"
    assert tag.slug == "limited-edition"

    product = await make_product(tag_ids=[tag.id])
    await db.commit()

    await catalog.delete_tag(db, tag.id)
    await db.commit()

    assert (await products.get_product(db, product.id)).tags == []
    assert await catalog.list_tags(db) == []
