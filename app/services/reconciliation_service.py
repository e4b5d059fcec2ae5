import logging
from typing import Optional

from app.core.config import BATCH_SIZE, MAX_ATTEMPTS
from app.core.exceptions import OrderNotFoundError
from app.models.reconciliation import (
    OrderReconciliation,
    ReconciliationOperationType,
    ReconciliationStatus,
)

log = logging.getLogger(__name__)


def resolve_operation_type(operation: str) -> ReconciliationOperationType:
    """Maps a free-text operation kind to the enum. Unknown kinds are recorded as INDEX."""
    normalized = (operation or "").strip().upper()
    try:
        return ReconciliationOperationType(normalized)
    except ValueError:
        log.warning(f"Unknown reconciliation operation '{operation}', recording it as INDEX")
        return ReconciliationOperationType.INDEX


class ReconciliationService:
    """
    Durable record of index operations that did not reach the index store,
    and the replay job that brings the index back in line with the database.
    """

    def __init__(self, projector=None, repository=None):
        self.projector = projector
        self.repository = repository

    async def record_failed_operation(
        self, operation: str, order_uuid: str, error_message: str = ""
    ) -> Optional[OrderReconciliation]:
        """Persists a PENDING record. Never raises: losing a record must not fail the caller."""
        operation_type = resolve_operation_type(operation)
        try:
            record = await OrderReconciliation.create(
                order_uuid=order_uuid,
                operation_type=operation_type,
                status=ReconciliationStatus.PENDING,
                error_message=error_message,
            )
        except Exception:
            log.exception(
                f"Could not record failed {operation_type.value} operation for order {order_uuid}"
            )
            return None

        log.warning(
            f"Recorded failed {operation_type.value} operation for order {order_uuid}: {error_message}"
        )
        return record

    async def process_failed_operations(
        self, batch_size: int = BATCH_SIZE, max_attempts: int = MAX_ATTEMPTS
    ) -> int:
        """
        Replays PENDING records oldest first against the index store.
        Returns the number of records marked PROCESSED in this run.
        """
        if self.projector is None or self.repository is None:
            raise RuntimeError("Reconciliation replay needs both a projector and a repository")

        records = (
            await OrderReconciliation.filter(status=ReconciliationStatus.PENDING)
            .order_by("created_at", "id")
            .limit(batch_size)
        )
        if not records:
            return 0

        log.info(f"Replaying {len(records)} pending reconciliation records")
        processed = 0
        for record in records:
            try:
                await self._replay(record)
            except Exception as e:
                record.attempts += 1
                record.error_message = str(e)
                if record.attempts >= max_attempts:
                    record.status = ReconciliationStatus.FAILED
                    log.error(
                        f"Giving up on {record.operation_type.value} for order {record.order_uuid} "
                        f"after {record.attempts} attempts: {e}"
                    )
                else:
                    log.warning(
                        f"Replay of {record.operation_type.value} for order {record.order_uuid} "
                        f"failed (attempt {record.attempts}/{max_attempts}): {e}"
                    )
                await record.save(update_fields=["attempts", "error_message", "status", "updated_at"])
                continue

            record.status = ReconciliationStatus.PROCESSED
            await record.save(update_fields=["status", "updated_at"])
            processed += 1

        return processed

    async def _replay(self, record: OrderReconciliation) -> None:
        order_uuid = str(record.order_uuid)

        if record.operation_type == ReconciliationOperationType.DELETE:
            await self.projector.delete_order(order_uuid)
            return

        # INDEX and UPDATE both push the current database state
        try:
            order = await self.repository.find_one_by_uuid(order_uuid)
        except OrderNotFoundError:
            log.info(f"Order {order_uuid} no longer exists, removing it from the index instead")
            await self.projector.delete_order(order_uuid)
            return

        await self.projector.update_order(order)
