from enum import Enum
from tortoise import fields, models


class ReconciliationStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSED = "PROCESSED"
    FAILED = "FAILED"


class ReconciliationOperationType(str, Enum):
    INDEX = "INDEX"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class OrderReconciliation(models.Model):
    """
    Tracks an index-store operation that failed after the transactional write succeeded.
    References the order by UUID only: the row may already be gone when this is replayed.
    """
    id = fields.IntField(primary_key=True)
    order_uuid = fields.UUIDField()
    operation_type = fields.CharEnumField(ReconciliationOperationType)
    status = fields.CharEnumField(ReconciliationStatus, default=ReconciliationStatus.PENDING)
    error_message = fields.TextField(null=True)
    attempts = fields.IntField(default=0)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "order_reconciliation"
        indexes = [
            ("order_uuid",),  # Lookups by order
            ("status", "created_at"),  # Poller: oldest pending first
        ]
