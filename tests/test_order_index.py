import pytest
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from app.core.exceptions import IndexDocumentNotFoundError, IndexPropagationError, IndexSearchError
from app.models.order import OrderStatus
from app.schemas.order import OrderItemRecord, OrderRecord
from app.services.order_index import (
    OrderIndexProjector,
    document_version,
    extract_sources,
    extract_total,
    order_from_document,
    prepare_order_document,
)
from app.testing.testing_mocks import FakeElasticsearch, api_error, conflict_error


def make_order(customer_id="cust-1", status=OrderStatus.PENDING, created_at=None) -> OrderRecord:
    order_uuid = str(uuid4())
    created_at = created_at or datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    items = [
        OrderItemRecord(
            id=1, uuid=str(uuid4()), order_uuid=order_uuid, product_id="prod-1",
            product_name="Blue Widget", price=1500, quantity=2, subtotal=3000,
        ),
        OrderItemRecord(
            id=2, uuid=str(uuid4()), order_uuid=order_uuid, product_id="prod-2",
            product_name="Red Widget", price=1500, quantity=1, subtotal=1500,
        ),
    ]
    return OrderRecord(
        id=7, uuid=order_uuid, customer_id=customer_id, status=status, total=4500,
        created_at=created_at, updated_at=created_at, items=items,
    )


def test_prepare_order_document_shape():
    order = make_order()
    document = prepare_order_document(order)

    assert set(document) == {"uuid", "customerId", "status", "total", "createdAt", "updatedAt", "items"}
    assert document["status"] == "PENDING"
    assert document["createdAt"] == "2024-05-01T12:30:00+00:00"
    assert set(document["items"][0]) == {"uuid", "productId", "productName", "price", "quantity", "subtotal"}
    assert isinstance(document["total"], int)


@pytest.mark.asyncio
async def test_round_trip_through_index(projector):
    order = make_order()

    await projector.index_order(order)
    found = await projector.find_one_by_uuid(order.uuid)

    # Internal ids are not part of the document
    assert found.model_dump(exclude={"id": True, "items": {"__all__": {"id"}}}) == \
        order.model_dump(exclude={"id": True, "items": {"__all__": {"id"}}})


def test_order_from_document_accepts_zulu_timestamps():
    document = prepare_order_document(make_order())
    document["createdAt"] = "2024-05-01T12:30:00.000Z"

    order = order_from_document(document)
    assert order.created_at == datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_update_order_overwrites_document(projector, fake_es):
    order = make_order()
    await projector.index_order(order)

    await projector.update_order(order.model_copy(update={"status": OrderStatus.SHIPPED}))

    assert fake_es.documents["orders"][order.uuid]["status"] == "SHIPPED"
    assert len(fake_es.documents["orders"]) == 1


@pytest.mark.asyncio
async def test_delete_order_is_idempotent(projector, fake_es):
    order = make_order()
    await projector.index_order(order)

    await projector.delete_order(order.uuid)
    await projector.delete_order(order.uuid)

    assert order.uuid not in fake_es.documents["orders"]


@pytest.mark.asyncio
async def test_write_failures_raise_propagation_error(projector, fake_es):
    fake_es.fail_with = api_error(500, "shard failure")
    order = make_order()

    with pytest.raises(IndexPropagationError) as exc_info:
        await projector.index_order(order)
    assert exc_info.value.operation == "index"
    assert exc_info.value.order_uuid == order.uuid

    with pytest.raises(IndexPropagationError):
        await projector.delete_order(order.uuid)


@pytest.mark.asyncio
async def test_find_one_by_uuid_distinguishes_absence_from_failure(projector, fake_es):
    with pytest.raises(IndexDocumentNotFoundError):
        await projector.find_one_by_uuid(str(uuid4()))

    fake_es.fail_with = ConnectionRefusedError("ECONNREFUSED")
    with pytest.raises(IndexSearchError):
        await projector.find_one_by_uuid(str(uuid4()))


@pytest.mark.asyncio
async def test_find_all_returns_empty_page(projector):
    result = await projector.find_all()

    assert result.data == []
    assert result.total == 0
    assert result.pages == 0


@pytest.mark.asyncio
async def test_find_all_sorts_and_paginates(projector, fake_es):
    older = make_order(created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    newer = make_order(created_at=datetime(2024, 2, 1, tzinfo=timezone.utc))
    await projector.index_order(older)
    await projector.index_order(newer)

    result = await projector.find_all(page=1, limit=1)

    assert [o.uuid for o in result.data] == [newer.uuid]
    assert result.total == 2
    assert result.pages == 2
    assert fake_es.search_calls[-1]["from"] == 0
    assert fake_es.search_calls[-1]["size"] == 1


@pytest.mark.asyncio
async def test_find_by_customer_zero_hits_is_not_found(projector):
    await projector.index_order(make_order(customer_id="cust-1"))

    with pytest.raises(IndexDocumentNotFoundError):
        await projector.find_by_customer("cust-x")

    result = await projector.find_by_customer("cust-1")
    assert result.total == 1


@pytest.mark.asyncio
async def test_ensure_index_creates_mapping_once(projector, fake_es):
    await projector.ensure_index()
    await projector.ensure_index()

    mappings = fake_es.indices.created["orders"]
    assert mappings["properties"]["items"]["type"] == "nested"
    assert mappings["properties"]["uuid"]["type"] == "keyword"


@pytest.mark.asyncio
async def test_wrapped_body_and_numeric_total_are_supported():
    es = FakeElasticsearch(wrap_body=True, numeric_total=True)
    projector = OrderIndexProjector(es)
    order = make_order()
    await projector.index_order(order)

    result = await projector.find_all()

    assert result.total == 1
    assert result.data[0].uuid == order.uuid


def test_extract_total_variants():
    assert extract_total({"hits": {"total": 5, "hits": []}}) == 5
    assert extract_total({"hits": {"total": {"value": 7, "relation": "eq"}, "hits": []}}) == 7
    assert extract_total({"body": {"hits": {"total": {"value": 3, "relation": "gte"}, "hits": []}}}) == 3
    assert extract_total({}) == 0
    assert extract_sources({"hits": {"hits": [{"_id": "a"}, {"_id": "b", "_source": {"uuid": "b"}}]}}) == [{"uuid": "b"}]


@pytest.mark.asyncio
async def test_writes_are_versioned_by_updated_at(projector, fake_es):
    order = make_order()

    await projector.index_order(order)

    assert document_version(order) == int(order.updated_at.timestamp() * 1_000_000)
    assert fake_es.versions["orders"][order.uuid] == document_version(order)


@pytest.mark.asyncio
async def test_stale_write_does_not_overwrite_newer_document(projector, fake_es):
    order = make_order()
    newer = order.model_copy(
        update={"status": OrderStatus.SHIPPED, "updated_at": order.updated_at + timedelta(seconds=5)}
    )
    await projector.update_order(newer)

    # The older state arrives late and is skipped without raising
    await projector.update_order(order.model_copy(update={"status": OrderStatus.PROCESSING}))

    assert fake_es.documents["orders"][order.uuid]["status"] == "SHIPPED"
    assert (await projector.find_one_by_uuid(order.uuid)).status == OrderStatus.SHIPPED


@pytest.mark.asyncio
async def test_version_conflict_is_not_a_propagation_error(projector, fake_es):
    fake_es.fail_with = conflict_error("abc")

    await projector.index_order(make_order())
