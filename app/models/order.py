from enum import Enum
from uuid import uuid4
from tortoise import fields, models


class OrderStatus(str, Enum):
    PENDING = "PENDING"  # Initial state, set at creation
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"  # Terminal
    CANCELED = "CANCELED"  # Terminal


# Terminal states: no field updates, no cancellation
FINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELED})


class Order(models.Model):
    id = fields.IntField(primary_key=True)  # Internal, never exposed
    uuid = fields.UUIDField(unique=True, default=uuid4)  # Public id, also the index document id
    customer_id = fields.CharField(max_length=64)
    status = fields.CharEnumField(OrderStatus, default=OrderStatus.PENDING)
    total = fields.IntField(default=0)  # Minor currency units (cents)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "orders"
        indexes = [
            ("customer_id",),            # Customer order history
            ("status",),                 # Status-based filtering
            ("created_at",),             # Default sort
            ("customer_id", "created_at"),  # Composite: customer page ordered by time
        ]


class OrderItem(models.Model):
    id = fields.IntField(primary_key=True)
    uuid = fields.UUIDField(unique=True, default=uuid4)
    order = fields.ForeignKeyField("models.Order", related_name="items", on_delete=fields.CASCADE)
    product_id = fields.CharField(max_length=64)
    product_name = fields.CharField(max_length=255)  # Snapshot at order time
    price = fields.IntField()
    quantity = fields.IntField()
    subtotal = fields.IntField()  # price * quantity

    class Meta:
        table = "order_items"
        indexes = [
            ("product_id",),  # Product lookups on the fallback search path
        ]
