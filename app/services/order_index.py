import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from elasticsearch import AsyncElasticsearch, ConflictError, NotFoundError

from app.core.config import ELASTICSEARCH_INDEX
from app.core.exceptions import IndexDocumentNotFoundError, IndexPropagationError, IndexSearchError
from app.schemas.order import OrderItemRecord, OrderRecord, PaginatedResult
from app.services.pagination import create_paginated_result, get_search_pagination_params

log = logging.getLogger(__name__)

CREATED_AT_DESC = [{"createdAt": {"order": "desc"}}]

ORDER_INDEX_MAPPINGS = {
    "properties": {
        "uuid": {"type": "keyword"},
        "customerId": {"type": "keyword"},
        "status": {"type": "keyword"},
        "total": {"type": "long"},
        "createdAt": {"type": "date"},
        "updatedAt": {"type": "date"},
        "items": {
            "type": "nested",
            "properties": {
                "uuid": {"type": "keyword"},
                "productId": {"type": "keyword"},
                "productName": {"type": "text", "fields": {"keyword": {"type": "keyword"}}},
                "price": {"type": "long"},
                "quantity": {"type": "integer"},
                "subtotal": {"type": "long"},
            },
        },
    }
}


# ----------- Document helpers -----------

def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def document_version(order: OrderRecord) -> Optional[int]:
    """External document version: updated_at in microseconds. Later writes carry higher versions."""
    if order.updated_at is None:
        return None
    return int(order.updated_at.timestamp() * 1_000_000)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    # fromisoformat does not accept the trailing 'Z' before 3.11
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def prepare_order_document(order: OrderRecord) -> Dict[str, Any]:
    """Flattens an order and its items into the index document shape."""
    return {
        "uuid": order.uuid,
        "customerId": order.customer_id,
        "status": order.status.value,
        "total": order.total,
        "createdAt": _isoformat(order.created_at),
        "updatedAt": _isoformat(order.updated_at),
        "items": [
            {
                "uuid": item.uuid,
                "productId": item.product_id,
                "productName": item.product_name,
                "price": item.price,
                "quantity": item.quantity,
                "subtotal": item.subtotal,
            }
            for item in order.items
        ],
    }


def order_from_document(document: Dict[str, Any]) -> OrderRecord:
    """Rebuilds the read model from an index document. Internal ids are not part of the document."""
    order_uuid = document["uuid"]
    return OrderRecord(
        uuid=order_uuid,
        customer_id=document["customerId"],
        status=document["status"],
        total=document["total"],
        created_at=_parse_timestamp(document.get("createdAt")),
        updated_at=_parse_timestamp(document.get("updatedAt")),
        items=[
            OrderItemRecord(
                uuid=item.get("uuid") or str(item.get("id", "")),
                order_uuid=order_uuid,
                product_id=item["productId"],
                product_name=item["productName"],
                price=item["price"],
                quantity=item["quantity"],
                subtotal=item["subtotal"],
            )
            for item in document.get("items") or []
        ],
    )


# ----------- Response helpers -----------

def response_body(response: Any) -> Dict[str, Any]:
    """
    Normalizes a search response. Accepts the client's ObjectApiResponse,
    a plain dict, or a dict wrapped as {"body": {...}}.
    """
    body = getattr(response, "body", response)
    if isinstance(body, dict) and "hits" not in body and isinstance(body.get("body"), dict):
        body = body["body"]
    return body or {}


def extract_total(response: Any) -> int:
    """Total hits, either a bare number or {"value": n, "relation": "eq"}."""
    total = response_body(response).get("hits", {}).get("total", 0)
    if isinstance(total, dict):
        return int(total.get("value", 0))
    return int(total or 0)


def extract_sources(response: Any) -> List[Dict[str, Any]]:
    hits = response_body(response).get("hits", {}).get("hits", [])
    return [hit["_source"] for hit in hits if hit.get("_source")]


class OrderIndexProjector:
    """
    Keeps one document per order in the index store, keyed by uuid.
    Raises on every failure; falling back is the caller's job.
    """

    def __init__(self, es: AsyncElasticsearch, index_name: str = ELASTICSEARCH_INDEX):
        self.es = es
        self.index_name = index_name

    async def ensure_index(self) -> None:
        if await self.es.indices.exists(index=self.index_name):
            return
        await self.es.indices.create(index=self.index_name, mappings=ORDER_INDEX_MAPPINGS)
        log.info(f"Created Elasticsearch index '{self.index_name}'")

    # ----------- Writes -----------

    async def index_order(self, order: OrderRecord) -> None:
        await self._put(order, "index")

    async def update_order(self, order: OrderRecord) -> None:
        # Same idempotent "put current state" as index_order
        await self._put(order, "update")

    async def delete_order(self, order_uuid: str) -> None:
        try:
            await self.es.delete(index=self.index_name, id=order_uuid)
            log.info(f"Order {order_uuid} removed from Elasticsearch")
        except NotFoundError:
            log.info(f"Order {order_uuid} was not in Elasticsearch, nothing to remove")
        except Exception as e:
            log.error(f"Failed to remove order {order_uuid} from Elasticsearch: {e}")
            raise IndexPropagationError("delete", order_uuid, e) from e

    async def _put(self, order: OrderRecord, operation: str) -> None:
        version = document_version(order)
        versioning = {} if version is None else {"version": version, "version_type": "external_gte"}
        try:
            await self.es.index(
                index=self.index_name,
                id=order.uuid,
                document=prepare_order_document(order),
                **versioning,
            )
            log.info(f"Order {order.uuid} written to Elasticsearch ({operation})")
        except ConflictError:
            # A newer state of this order is already indexed
            log.info(f"Skipped stale {operation} of order {order.uuid} (version {version})")
        except Exception as e:
            log.error(f"Failed to {operation} order {order.uuid} in Elasticsearch: {e}")
            raise IndexPropagationError(operation, order.uuid, e) from e

    # ----------- Reads -----------

    async def find_one_by_uuid(self, order_uuid: str) -> OrderRecord:
        response = await self._search(f"order {order_uuid}", query={"term": {"uuid": order_uuid}}, size=1)
        sources = extract_sources(response)
        if not sources:
            raise IndexDocumentNotFoundError(order_uuid)
        return self._to_orders(f"order {order_uuid}", sources[:1])[0]

    async def find_all(self, page: Optional[int] = None, limit: Optional[int] = None) -> PaginatedResult:
        params = get_search_pagination_params(page, limit)
        response = await self._search(
            "all orders",
            query={"match_all": {}},
            sort=CREATED_AT_DESC,
            from_=params.from_,
            size=params.size,
        )
        data = self._to_orders("all orders", extract_sources(response))
        return create_paginated_result(data, extract_total(response), params.page, params.limit)

    async def find_by_customer(
        self, customer_id: str, page: Optional[int] = None, limit: Optional[int] = None
    ) -> PaginatedResult:
        params = get_search_pagination_params(page, limit)
        response = await self._search(
            f"customer {customer_id} orders",
            query={"term": {"customerId": customer_id}},
            sort=CREATED_AT_DESC,
            from_=params.from_,
            size=params.size,
        )
        sources = extract_sources(response)
        # Zero hits for a customer means absence, unlike find_all
        if not sources:
            raise IndexDocumentNotFoundError(customer_id, resource_type="Customer orders")
        data = self._to_orders(f"customer {customer_id} orders", sources)
        return create_paginated_result(data, extract_total(response), params.page, params.limit)

    async def _search(self, search_type: str, **body) -> Any:
        try:
            return await self.es.search(index=self.index_name, **body)
        except Exception as e:
            log.error(f"Failed to search {search_type} in Elasticsearch: {e}")
            raise IndexSearchError(search_type, e) from e

    @staticmethod
    def _to_orders(search_type: str, sources: List[Dict[str, Any]]) -> List[OrderRecord]:
        try:
            return [order_from_document(source) for source in sources]
        except (KeyError, ValueError) as e:
            log.error(f"Malformed order document returned for {search_type}: {e}")
            raise IndexSearchError(search_type, e) from e
