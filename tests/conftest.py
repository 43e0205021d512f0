"""
Pytest configuration and fixtures for DineAI tests.

Every test gets its own SQLite file (through aiosqlite) with restaurant R1
seeded: two floors, tables 1-6 on the ground floor and T1 on the terrace,
and a small menu.
"""

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dineai.core.config import get_settings
from dineai.database import create_engine_from_url, init_db
from dineai.models import Floor, MenuItem, Restaurant, RestaurantTable, TableStatus
from dineai.services.counters import OrderCounterAllocator
from dineai.services.knowledge import NullKnowledgeBase
from dineai.services.menu import DatabaseMenuCatalog, MenuService
from dineai.services.orders import OrderLifecycleEngine
from dineai.services.tables import TableStateEngine
from dineai.services.tools import build_dispatcher

RESTAURANT_ID = "R1"
OTHER_RESTAURANT_ID = "R2"


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """
    Fresh settings per test. Concurrent SQLite writers surface as lock
    errors, so the store retries get more room than in production.
    """
    monkeypatch.setenv("ENV_MODE", "development")
    monkeypatch.setenv("RESTAURANT_TIMEZONE", "UTC")
    monkeypatch.setenv("TRANSACTION_MAX_RETRIES", "50")
    monkeypatch.setenv("TRANSACTION_RETRY_BACKOFF", "0.01")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_engine_from_url(f"sqlite+aiosqlite:///{tmp_path / 'dineai.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def seeded(session_factory):
    """Restaurant R1 with floors, tables and menu; tax disabled."""
    async with session_factory() as session:
        async with session.begin():
            session.add(Restaurant(
                id=RESTAURANT_ID,
                name="Spice Route",
                address="12 MG Road",
                phone="+91 98450 00000",
                hours="11:00-23:00",
                cuisine="North Indian",
                tax_settings={"enabled": False},
            ))
            ground = Floor(id="floor-ground", restaurant_id=RESTAURANT_ID, name="Ground", position=0)
            terrace = Floor(id="floor-terrace", restaurant_id=RESTAURANT_ID, name="Terrace", position=1)
            session.add_all([ground, terrace])
            for number in range(1, 7):
                session.add(RestaurantTable(
                    restaurant_id=RESTAURANT_ID,
                    floor_id=ground.id,
                    name=str(number),
                    capacity=4,
                    status=TableStatus.AVAILABLE,
                ))
            session.add(RestaurantTable(
                restaurant_id=RESTAURANT_ID,
                floor_id=terrace.id,
                name="T1",
                capacity=2,
                status=TableStatus.AVAILABLE,
            ))
            session.add_all([
                MenuItem(restaurant_id=RESTAURANT_ID, name="Paneer Tikka", price=Decimal("200.00"),
                         category="starters", is_veg=True, short_code="PT"),
                MenuItem(restaurant_id=RESTAURANT_ID, name="Butter Chicken", price=Decimal("320.00"),
                         category="mains", is_veg=False,
                         variants=[{"name": "Half", "price": 180.0}, {"name": "Full", "price": 320.0}]),
                MenuItem(restaurant_id=RESTAURANT_ID, name="Garlic Naan", price=Decimal("60.00"),
                         category="breads", is_veg=True),
                MenuItem(restaurant_id=RESTAURANT_ID, name="Naan", price=Decimal("40.00"),
                         category="breads", is_veg=True),
                MenuItem(restaurant_id=RESTAURANT_ID, name="Mango Lassi", price=Decimal("90.00"),
                         category="drinks", is_veg=True, is_available=False),
                MenuItem(restaurant_id=RESTAURANT_ID, name="Old Special", price=Decimal("150.00"),
                         category="mains", is_deleted=True),
            ])
    return RESTAURANT_ID


async def set_tax_settings(session_factory, tax_settings):
    async with session_factory() as session:
        async with session.begin():
            restaurant = await session.get(Restaurant, RESTAURANT_ID)
            restaurant.tax_settings = tax_settings


@pytest.fixture
def catalog(session_factory):
    return DatabaseMenuCatalog(session_factory)


@pytest.fixture
def tables(session_factory):
    return TableStateEngine(session_factory)


@pytest.fixture
def counters(session_factory, test_settings):
    return OrderCounterAllocator(session_factory, test_settings)


@pytest.fixture
def orders(session_factory, tables, counters, catalog, test_settings):
    return OrderLifecycleEngine(session_factory, tables, counters, catalog, test_settings)


@pytest.fixture
def menu(catalog, test_settings):
    return MenuService(catalog, test_settings)


@pytest.fixture
def dispatcher(session_factory, catalog, test_settings):
    return build_dispatcher(
        session_factory, catalog, knowledge=NullKnowledgeBase(), settings=test_settings
    )
