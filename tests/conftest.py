import os

# Configure the app before any of its modules read the environment
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET"] = "test-secret-key-0123456789-test-secret-key"
os.environ["SEED_DEMO_DATA"] = "false"

import pytest
from httpx import ASGITransport, AsyncClient

import main
import models  # noqa: F401  (registers the tables on Base.metadata)
from database import build_engine, build_session_factory, get_async_session, init_db
from schemas import CategoryCreate, ProductCreate, UserCreate
from security import get_token_service
from services import catalog, products, users


@pytest.fixture
async def engine(tmp_path):
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_async_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    main.app.dependency_overrides[get_async_session] = override_get_async_session
    async with AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test") as ac:
        yield ac
    main.app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    token = get_token_service().issue(1, "tester", "USER")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(db):
    async def _make_user(username="alice", role=None, password="secret123"):
        user_in = UserCreate(username=username, email=f"{username}@mail.com", password=password, role=role)
        return await users.register(db, user_in)

    return _make_user


@pytest.fixture
def make_category(db):
    async def _make_category(name="Figurines", parent_id=None):
        return await catalog.create_category(db, CategoryCreate(name=name, parent_id=parent_id))

    return _make_category


@pytest.fixture
def make_product(db):
    async def _make_product(title="Dragon", price=10.0, **kwargs):
        return await products.create_product(db, ProductCreate(title=title, price=price, **kwargs))

    return _make_product
