from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from app.models.order import OrderStatus


class OrderSearchFilters(BaseModel):
    """Typed criteria shared by the index query builders and the database fallback."""
    uuid: Optional[str] = None
    status: Optional[OrderStatus] = None
    customer_id: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    product_id: Optional[str] = None
    product_name: Optional[str] = None
    item_terms: List[str] = Field(default_factory=list)


class SearchResult(BaseModel):
    """Search response envelope. Items are order documents in the index shape."""
    items: List[Dict[str, Any]]
    total: int
    page: int
    limit: int
    total_pages: int
