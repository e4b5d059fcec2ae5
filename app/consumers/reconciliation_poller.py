import asyncio
import logging

from elasticsearch import AsyncElasticsearch

from app.core.config import BATCH_SIZE, ELASTICSEARCH_TIMEOUT, ELASTICSEARCH_URL, MAX_ATTEMPTS, POLLING_INTERVAL
from app.core.db import close_db, init_db
from app.core.logging_config import setup_logging
from app.services.order_index import OrderIndexProjector
from app.services.order_repository import OrderRepository
from app.services.reconciliation_service import ReconciliationService

log = logging.getLogger(__name__)


async def poll_reconciliation_records(service: ReconciliationService) -> int:
    """
    Replays one batch of PENDING reconciliation records against the index store.
    """
    processed = await service.process_failed_operations(batch_size=BATCH_SIZE, max_attempts=MAX_ATTEMPTS)
    if processed:
        log.info(f"Reconciled {processed} order(s) with the index")
    return processed


async def start_reconciliation_poller():
    """Main loop for the poller service."""
    setup_logging()
    await init_db(generate_schemas=False)

    es = AsyncElasticsearch(ELASTICSEARCH_URL, request_timeout=ELASTICSEARCH_TIMEOUT)
    service = ReconciliationService(projector=OrderIndexProjector(es), repository=OrderRepository())
    log.info("--- Reconciliation Poller Service Started ---")

    try:
        while True:
            try:
                await poll_reconciliation_records(service)
            except Exception as e:
                log.error(f"Poller encountered a critical error: {e}")

            await asyncio.sleep(POLLING_INTERVAL)
    finally:
        await es.close()
        await close_db()


if __name__ == "__main__":
    try:
        asyncio.run(start_reconciliation_poller())
    except KeyboardInterrupt:
        log.info("Poller service stopped.")
