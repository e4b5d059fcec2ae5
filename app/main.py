import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, status
from elasticsearch import AsyncElasticsearch
from app.core.db import init_db, close_db
from app.core.logging_config import setup_logging
from app.api.v1.orders import router as orders_router
from app.api.v1.search import router as search_router
from app.core.config import PROJECT_NAME, VERSION, ELASTICSEARCH_URL, ELASTICSEARCH_TIMEOUT
from app.core.exception_handlers import setup_exception_handlers
from app.consumers.index_listener import IndexProjectionListener
from app.events.order_events import OrderEventsPublisher
from app.events.publisher import EventPublisher
from app.services.order_index import OrderIndexProjector
from app.services.order_repository import OrderRepository
from app.services.order_service import OrderService
from app.services.reconciliation_service import ReconciliationService
from app.services.search_service import SearchService

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles startup and shutdown events."""
    setup_logging()
    log.info(f"Starting {PROJECT_NAME} v{VERSION}...")
    await init_db() # Connect to DB and generate schemas

    es = AsyncElasticsearch(ELASTICSEARCH_URL, request_timeout=ELASTICSEARCH_TIMEOUT)
    projector = OrderIndexProjector(es)
    try:
        await projector.ensure_index()
    except Exception as e:
        # Reads fall back to the database until the index store is reachable
        log.error(f"Could not prepare Elasticsearch index, starting without it: {e}")

    publisher = EventPublisher()
    publisher.start()

    repository = OrderRepository()
    recorder = ReconciliationService(projector=projector, repository=repository)
    app.state.order_service = OrderService(
        repository,
        projector=projector,
        listeners=[IndexProjectionListener(projector, recorder), OrderEventsPublisher(publisher)],
    )
    app.state.search_service = SearchService(es, repository=repository)

    yield

    await app.state.order_service.drain()
    await publisher.stop()
    await es.close()
    await close_db()
    log.info(f"{PROJECT_NAME} stopped.")

app = FastAPI(
    title=PROJECT_NAME,
    version=VERSION,
    lifespan=lifespan,
    # Configure API documentation and paths
    docs_url="/docs",
    redoc_url="/redoc"
)

# Include routers for modular API structure
app.include_router(orders_router, prefix="/api/v1/orders", tags=["Orders"])
app.include_router(search_router, prefix="/api/v1/search", tags=["Search"])


setup_exception_handlers(app)

@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Simple health check endpoint."""
    return {"status": "ok", "app_name": PROJECT_NAME}
