import pytest
import pytest_asyncio
from tortoise import Tortoise

from app.core.db import init_db
from app.schemas.order import OrderItemRequest
from app.services.order_index import OrderIndexProjector
from app.services.order_repository import OrderRepository
from app.testing.testing_mocks import FakeElasticsearch


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory SQLite database per test."""
    await init_db(db_url="sqlite://:memory:")
    yield
    await Tortoise.close_connections()


@pytest.fixture
def repository():
    return OrderRepository()


@pytest.fixture
def fake_es():
    return FakeElasticsearch()


@pytest.fixture
def projector(fake_es):
    return OrderIndexProjector(fake_es, index_name="orders")


@pytest.fixture
def widget_items():
    return [
        OrderItemRequest(product_id="prod-1", product_name="Blue Widget", price=1500, quantity=2),
        OrderItemRequest(product_id="prod-2", product_name="Red Widget", price=1500, quantity=1),
    ]
