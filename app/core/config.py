import os

# Database Configuration
# Uses default credentials for local Docker Compose setup
DB_URL = os.getenv("DATABASE_URL", "postgres://user:password@db:5432/orders_db")

# Application Metadata
PROJECT_NAME = "Order Management Service"
VERSION = "1.0.0"
SERVICE_SOURCE = os.getenv("SERVICE_SOURCE", "order-service")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Elasticsearch (read-optimized index store)
ELASTICSEARCH_URL = os.getenv("ELASTICSEARCH_URL", "http://elasticsearch:9200")
ELASTICSEARCH_INDEX = os.getenv("ELASTICSEARCH_INDEX", "orders")
ELASTICSEARCH_TIMEOUT = float(os.getenv("ELASTICSEARCH_TIMEOUT", 5))

# Kafka (order lifecycle events)
KAFKA_BROKERS = os.getenv("KAFKA_BROKERS", "kafka:29092")
KAFKA_CLIENT_ID = os.getenv("KAFKA_CLIENT_ID", "order-service")
ORDER_EVENTS_TOPIC = os.getenv("ORDER_EVENTS_TOPIC", "order-events")
KAFKA_TOPIC_PARTITIONS = int(os.getenv("KAFKA_TOPIC_PARTITIONS", 3))
KAFKA_REPLICATION_FACTOR = int(os.getenv("KAFKA_REPLICATION_FACTOR", 1))
KAFKA_TOPIC_RETENTION_MS = os.getenv("KAFKA_TOPIC_RETENTION_MS", "604800000")  # 7 days

KAFKA_STARTUP_DELAY = float(os.getenv("KAFKA_STARTUP_DELAY", 20)) # Broker usually boots after the API
KAFKA_MAX_CONNECT_ATTEMPTS = int(os.getenv("KAFKA_MAX_CONNECT_ATTEMPTS", 10))
KAFKA_RETRY_DELAY = float(os.getenv("KAFKA_RETRY_DELAY", 5))
KAFKA_RECONNECT_DELAY = float(os.getenv("KAFKA_RECONNECT_DELAY", 1))
KAFKA_RETRY_BACKOFF = float(os.getenv("KAFKA_RETRY_BACKOFF", 1.5))
KAFKA_MAX_RETRY_DELAY = float(os.getenv("KAFKA_MAX_RETRY_DELAY", 30))
KAFKA_QUEUE_RETRY_DELAY = float(os.getenv("KAFKA_QUEUE_RETRY_DELAY", 5))
KAFKA_MAX_QUEUE_SIZE = int(os.getenv("KAFKA_MAX_QUEUE_SIZE", 10000))

# Pagination
DEFAULT_PAGE = 1
DEFAULT_LIMIT = int(os.getenv("DEFAULT_LIMIT", 10))
MAX_LIMIT = 100

# Reconciliation Poller Configuration (replays failed index operations)
POLLING_INTERVAL = int(os.getenv("POLLING_INTERVAL", 30)) # Poller checks for pending records every N seconds
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", 5)) # Max replays before a record is marked FAILED
BATCH_SIZE = int(os.getenv("BATCH_SIZE", 50)) # How many records to fetch per poll
