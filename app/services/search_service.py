import logging
import re
from datetime import date
from typing import Any, Dict, List, Optional, Union

from elasticsearch import AsyncElasticsearch, ConnectionError as ESConnectionError, ConnectionTimeout

from app.core.config import ELASTICSEARCH_INDEX, MAX_LIMIT
from app.core.exceptions import (
    InvalidDateRangeError,
    InvalidItemsQueryError,
    InvalidSearchParametersError,
    SearchExecutionError,
    SearchServiceUnavailableError,
)
from app.models.order import OrderStatus
from app.schemas.search import OrderSearchFilters, SearchResult
from app.services.order_index import CREATED_AT_DESC, extract_sources, extract_total, prepare_order_document
from app.services.pagination import get_search_pagination_params, total_pages

log = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# ----------- Validation -----------

def validate_pagination(page: Optional[int] = None, limit: Optional[int] = None) -> None:
    if page is not None and page < 1:
        raise InvalidSearchParametersError("Page must be greater than or equal to 1")
    if limit is not None and not 1 <= limit <= MAX_LIMIT:
        raise InvalidSearchParametersError(f"Limit must be between 1 and {MAX_LIMIT}")


def _validate_date(value: str, label: str) -> None:
    if not DATE_PATTERN.match(value):
        raise InvalidDateRangeError(f"'{label}' date must use the YYYY-MM-DD format")
    try:
        date.fromisoformat(value)
    except ValueError:
        raise InvalidDateRangeError(f"'{label}' date is not a valid calendar date")


def validate_date_range(date_from: Optional[str] = None, date_to: Optional[str] = None) -> None:
    if not date_from and not date_to:
        raise InvalidDateRangeError("At least one of 'from' or 'to' must be provided")
    if date_from:
        _validate_date(date_from, "from")
    if date_to:
        _validate_date(date_to, "to")
    if date_from and date_to and date_from > date_to:
        raise InvalidDateRangeError("'from' date must be before or equal to 'to' date")


def require_text(value: Optional[str], label: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidSearchParametersError(f"{label} must not be empty")
    return str(value).strip()


def parse_status(status: Union[OrderStatus, str]) -> OrderStatus:
    try:
        return OrderStatus(str(getattr(status, "value", status)).upper())
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise InvalidSearchParametersError(f"Status must be one of: {allowed}")


def parse_items_query(items_query: Optional[str]) -> List[str]:
    """Comma separated product names, e.g. "laptop, wireless mouse"."""
    if items_query is None or not items_query.strip():
        raise InvalidItemsQueryError("Items query must not be empty")
    terms = [term.strip() for term in items_query.split(",")]
    terms = [term for term in terms if term]
    if not terms:
        raise InvalidItemsQueryError("Items query must contain at least one product name")
    return terms


# ----------- Query builders -----------

def build_search_request(index: str, query: Dict[str, Any], page: Optional[int], limit: Optional[int]) -> Dict[str, Any]:
    params = get_search_pagination_params(page, limit)
    return {
        "index": index,
        "query": query,
        "sort": CREATED_AT_DESC,
        "from": params.from_,
        "size": params.size,
    }


def build_date_range_query(date_from: Optional[str], date_to: Optional[str]) -> Dict[str, Any]:
    bounds = {}
    if date_from:
        bounds["gte"] = date_from
    if date_to:
        # Date-only upper bound is rounded up to the end of that day
        bounds["lte"] = date_to
    return {"range": {"createdAt": bounds}}


def build_nested_items_query(query: Dict[str, Any]) -> Dict[str, Any]:
    return {"nested": {"path": "items", "query": query}}


def build_items_query(terms: List[str]) -> Dict[str, Any]:
    return build_nested_items_query({
        "bool": {
            "should": [{"match_phrase": {"items.productName": term}} for term in terms],
            "minimum_should_match": 1,
        }
    })


def is_unavailable_error(error: BaseException) -> bool:
    if isinstance(error, (ESConnectionError, ConnectionTimeout)):
        return True
    meta = getattr(error, "meta", None)
    return getattr(meta, "status", None) == 503


class SearchService:
    """
    Typed search filters over the order index.
    Every filter validates its input before any call to the index store.
    """

    def __init__(self, es: AsyncElasticsearch, repository=None, index_name: str = ELASTICSEARCH_INDEX):
        self.es = es
        self.repository = repository
        self.index_name = index_name

    async def find_by_uuid(self, uuid: str, page: Optional[int] = None, limit: Optional[int] = None) -> SearchResult:
        validate_pagination(page, limit)
        uuid = require_text(uuid, "UUID")
        return await self._run(
            {"term": {"uuid": uuid}}, OrderSearchFilters(uuid=uuid), page, limit
        )

    async def find_by_status(
        self, status: Union[OrderStatus, str], page: Optional[int] = None, limit: Optional[int] = None
    ) -> SearchResult:
        validate_pagination(page, limit)
        status = parse_status(status)
        return await self._run(
            {"term": {"status": status.value}}, OrderSearchFilters(status=status), page, limit
        )

    async def find_by_date_range(
        self,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> SearchResult:
        validate_pagination(page, limit)
        validate_date_range(date_from, date_to)
        return await self._run(
            build_date_range_query(date_from, date_to),
            OrderSearchFilters(date_from=date_from, date_to=date_to),
            page,
            limit,
        )

    async def find_by_product_id(
        self, product_id: str, page: Optional[int] = None, limit: Optional[int] = None
    ) -> SearchResult:
        validate_pagination(page, limit)
        product_id = require_text(product_id, "Product ID")
        return await self._run(
            build_nested_items_query({"term": {"items.productId": product_id}}),
            OrderSearchFilters(product_id=product_id),
            page,
            limit,
        )

    async def find_by_product_name(
        self, product_name: str, page: Optional[int] = None, limit: Optional[int] = None
    ) -> SearchResult:
        validate_pagination(page, limit)
        product_name = require_text(product_name, "Product name")
        return await self._run(
            build_nested_items_query({"match": {"items.productName": product_name}}),
            OrderSearchFilters(product_name=product_name),
            page,
            limit,
        )

    async def find_by_customer_id(
        self, customer_id: str, page: Optional[int] = None, limit: Optional[int] = None
    ) -> SearchResult:
        validate_pagination(page, limit)
        customer_id = require_text(customer_id, "Customer ID")
        return await self._run(
            {"term": {"customerId": customer_id}}, OrderSearchFilters(customer_id=customer_id), page, limit
        )

    async def find_by_items(
        self, items_query: str, page: Optional[int] = None, limit: Optional[int] = None
    ) -> SearchResult:
        validate_pagination(page, limit)
        terms = parse_items_query(items_query)
        return await self._run(build_items_query(terms), OrderSearchFilters(item_terms=terms), page, limit)

    # ----------- Execution -----------

    async def _run(
        self, query: Dict[str, Any], filters: OrderSearchFilters, page: Optional[int], limit: Optional[int]
    ) -> SearchResult:
        request = build_search_request(self.index_name, query, page, limit)
        try:
            return await self.execute(request)
        except SearchServiceUnavailableError as e:
            if self.repository is None:
                raise
            log.warning(f"Search index unavailable, serving from database: {e.details}")
            return await self._search_database(filters, page, limit)

    async def execute(self, request: Dict[str, Any]) -> SearchResult:
        kwargs = dict(request)
        from_ = kwargs.pop("from", 0)
        size = kwargs.get("size") or 1
        try:
            response = await self.es.search(from_=from_, **kwargs)
        except Exception as e:
            if is_unavailable_error(e):
                log.error(f"Elasticsearch unavailable: {e}")
                raise SearchServiceUnavailableError(str(e)) from e
            log.error(f"Search execution failed: {e}")
            raise SearchExecutionError(str(e)) from e

        total = extract_total(response)
        return SearchResult(
            items=extract_sources(response),
            total=total,
            page=from_ // size + 1,
            limit=size,
            total_pages=total_pages(total, size),
        )

    async def _search_database(
        self, filters: OrderSearchFilters, page: Optional[int], limit: Optional[int]
    ) -> SearchResult:
        result = await self.repository.search(filters, page, limit)
        return SearchResult(
            items=[prepare_order_document(order) for order in result.data],
            total=result.total,
            page=result.page,
            limit=result.limit,
            total_pages=result.pages,
        )
