import math
import pytest

from app.models.order import OrderStatus
from app.schemas.order import OrderCreateRequest, OrderItemRequest, OrderUpdateRequest
from app.services.order_helpers import (
    build_order_item_values,
    calculate_order_total,
    is_modifiable,
    validate_order_create,
    validate_order_items,
    validate_order_update,
)
from app.services.pagination import (
    create_paginated_result,
    get_pagination_params,
    get_search_pagination_params,
    total_pages,
)


def item(price=1500, quantity=1, product_id="prod-1", product_name="Widget"):
    return OrderItemRequest(product_id=product_id, product_name=product_name, price=price, quantity=quantity)


@pytest.mark.parametrize(
    "status, expected",
    [
        (OrderStatus.PENDING, True),
        (OrderStatus.PROCESSING, True),
        (OrderStatus.SHIPPED, True),
        (OrderStatus.DELIVERED, False),
        (OrderStatus.CANCELED, False),
    ],
)
def test_is_modifiable(status, expected):
    assert is_modifiable(status) is expected


def test_calculate_order_total():
    assert calculate_order_total([item(1500, 2), item(1500, 1)]) == 4500
    assert calculate_order_total([]) == 0
    assert calculate_order_total(None) == 0


def test_build_order_item_values_derives_subtotal():
    values = build_order_item_values([item(10, 2, "p1"), item(20, 1, "p2")])

    assert [v["subtotal"] for v in values] == [20, 20]
    assert values[0]["product_id"] == "p1"


def test_validate_order_items_lists_every_violation():
    errors = validate_order_items([item(), item(price=-5, quantity=0, product_id="", product_name="")])

    assert errors == [
        "Item #2 must have a product ID",
        "Item #2 must have a product name",
        "Item #2 must have a positive price",
        "Item #2 must have a positive integer quantity",
    ]


def test_validate_order_create():
    assert validate_order_create(OrderCreateRequest(customer_id="cust-1", items=[item()])) == []
    assert validate_order_create(OrderCreateRequest(customer_id=" ", items=[])) == [
        "Customer ID must not be empty",
        "Order must have at least one item",
    ]


def test_validate_order_update_only_checks_present_fields():
    assert validate_order_update(OrderUpdateRequest(status=OrderStatus.SHIPPED)) == []
    assert validate_order_update(OrderUpdateRequest(items=[])) == ["Order must have at least one item"]


def test_pagination_defaults():
    params = get_pagination_params()
    assert (params.page, params.limit, params.skip) == (1, 10, 0)

    params = get_pagination_params(3, 20)
    assert params.skip == 40

    search_params = get_search_pagination_params(3, 20)
    assert (search_params.from_, search_params.size) == (40, 20)


@pytest.mark.parametrize("total, limit", [(0, 10), (1, 10), (10, 10), (11, 10), (99, 7)])
def test_pagination_law(total, limit):
    pages = total_pages(total, limit)

    assert pages == math.ceil(total / limit)
    assert (pages == 0) == (total == 0)


def test_create_paginated_result():
    result = create_paginated_result(["a", "b"], total=12, page=1, limit=5)

    assert result.pages == 3
    assert result.data == ["a", "b"]
