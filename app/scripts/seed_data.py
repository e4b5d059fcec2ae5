# scripts/seed_data.py
import asyncio
from elasticsearch import AsyncElasticsearch

from app.core.config import ELASTICSEARCH_INDEX, ELASTICSEARCH_URL
from app.core.db import close_db, init_db
from app.schemas.order import OrderItemRequest
from app.services.order_index import OrderIndexProjector
from app.services.order_repository import OrderRepository

DEMO_ORDERS = [
    ("cust-demo-1", [("prod-1", "Gaming Laptop", 149900, 1), ("prod-2", "Wireless Mouse", 2999, 2)]),
    ("cust-demo-1", [("prod-3", "Desk Lamp", 4500, 1)]),
    ("cust-demo-2", [("prod-2", "Wireless Mouse", 2999, 1), ("prod-4", "USB-C Cable", 999, 3)]),
]


async def seed(repository: OrderRepository, projector: OrderIndexProjector):
    await projector.ensure_index()

    for customer_id, items in DEMO_ORDERS:
        order = await repository.create(
            customer_id,
            [
                OrderItemRequest(product_id=pid, product_name=name, price=price, quantity=qty)
                for pid, name, price, qty in items
            ],
        )
        # Written straight to the index, the API's event listeners are not running here
        await projector.index_order(order)
        print("Order:", order.uuid, order.customer_id, order.total)

    print("Orders seeded.")


async def main():
    await init_db()
    es = AsyncElasticsearch(ELASTICSEARCH_URL)
    try:
        await seed(OrderRepository(), OrderIndexProjector(es, ELASTICSEARCH_INDEX))
    finally:
        await es.close()
        await close_db()

if __name__ == "__main__":
    asyncio.run(main())
