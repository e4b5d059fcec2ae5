# app/models/__init__.py
from .order import Order, OrderItem, OrderStatus, FINAL_STATUSES
from .reconciliation import OrderReconciliation, ReconciliationOperationType, ReconciliationStatus

# Export all models
__all__ = [
    "Order",
    "OrderItem",
    "OrderStatus",
    "FINAL_STATUSES",
    "OrderReconciliation",
    "ReconciliationOperationType",
    "ReconciliationStatus",
]
