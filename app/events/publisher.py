import asyncio
import json
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, Optional, Set

from aiokafka import AIOKafkaProducer
from aiokafka.admin import AIOKafkaAdminClient, NewTopic
from aiokafka.errors import (
    KafkaConnectionError,
    KafkaTimeoutError,
    LeaderNotAvailableError,
    NodeNotReadyError,
    NotLeaderForPartitionError,
    TopicAlreadyExistsError,
)

from app.core.config import (
    KAFKA_BROKERS,
    KAFKA_CLIENT_ID,
    KAFKA_MAX_CONNECT_ATTEMPTS,
    KAFKA_MAX_QUEUE_SIZE,
    KAFKA_MAX_RETRY_DELAY,
    KAFKA_QUEUE_RETRY_DELAY,
    KAFKA_RECONNECT_DELAY,
    KAFKA_REPLICATION_FACTOR,
    KAFKA_RETRY_BACKOFF,
    KAFKA_RETRY_DELAY,
    KAFKA_STARTUP_DELAY,
    KAFKA_TOPIC_PARTITIONS,
    KAFKA_TOPIC_RETENTION_MS,
)
from app.core.exceptions import EventPublishError

log = logging.getLogger(__name__)

TRANSIENT_ERROR_TYPES = (
    KafkaConnectionError,
    KafkaTimeoutError,
    LeaderNotAvailableError,
    NodeNotReadyError,
    NotLeaderForPartitionError,
)
TRANSIENT_ERROR_MARKERS = ("ECONNREFUSED", "not connected", "leadership election")


@dataclass
class QueuedMessage:
    """An outbound message waiting for the broker."""
    topic: str
    value: Dict[str, Any]
    key: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)


def is_transient_error(error: BaseException) -> bool:
    """Connection-class failures are worth retrying; anything else is a poison message."""
    if isinstance(error, TRANSIENT_ERROR_TYPES):
        return True
    message = str(error).lower()
    return any(marker.lower() in message for marker in TRANSIENT_ERROR_MARKERS)


def default_producer_factory() -> AIOKafkaProducer:
    return AIOKafkaProducer(
        bootstrap_servers=KAFKA_BROKERS,
        client_id=KAFKA_CLIENT_ID,
        value_serializer=lambda value: json.dumps(value, default=str).encode("utf-8"),
        key_serializer=lambda key: key.encode("utf-8") if key is not None else None,
    )


def default_admin_factory() -> AIOKafkaAdminClient:
    return AIOKafkaAdminClient(bootstrap_servers=KAFKA_BROKERS, client_id=f"{KAFKA_CLIENT_ID}-admin")


class EventPublisher:
    """
    Fire-and-forget publisher for the message bus.

    publish() never blocks on the broker and never raises. While the producer is
    not connected, messages wait in a bounded in-memory queue owned by this
    instance; a background task reconnects with exponential backoff and drains
    the queue in FIFO order once the connection is up. A process normally owns
    exactly one publisher, created in the application lifespan.
    """

    def __init__(
        self,
        producer_factory: Callable[[], Any] = default_producer_factory,
        admin_factory: Callable[[], Any] = default_admin_factory,
        max_connect_attempts: int = KAFKA_MAX_CONNECT_ATTEMPTS,
        retry_delay: float = KAFKA_RETRY_DELAY,
        reconnect_delay: float = KAFKA_RECONNECT_DELAY,
        retry_backoff: float = KAFKA_RETRY_BACKOFF,
        max_retry_delay: float = KAFKA_MAX_RETRY_DELAY,
        queue_retry_delay: float = KAFKA_QUEUE_RETRY_DELAY,
        max_queue_size: int = KAFKA_MAX_QUEUE_SIZE,
        startup_delay: float = KAFKA_STARTUP_DELAY,
    ):
        self.producer_factory = producer_factory
        self.admin_factory = admin_factory
        self.max_connect_attempts = max_connect_attempts
        self.retry_delay = retry_delay
        self.reconnect_delay = reconnect_delay
        self.retry_backoff = retry_backoff
        self.max_retry_delay = max_retry_delay
        self.queue_retry_delay = queue_retry_delay
        self.max_queue_size = max_queue_size
        self.startup_delay = startup_delay

        self.queue: Deque[QueuedMessage] = deque()
        self.connected = False
        self.connect_attempts = 0
        self.known_topics: Set[str] = set()

        self._producer = None
        self._processing = False
        self._connect_task: Optional[asyncio.Task] = None
        self._retry_task: Optional[asyncio.Task] = None
        self._send_futures: Set[asyncio.Future] = set()
        self._background: Set[asyncio.Future] = set()

    # ----------- Lifecycle -----------

    def start(self) -> None:
        """Schedules the first connection attempt. Must be called from a running loop."""
        log.info(f"Kafka publisher starting, first connection attempt in {self.startup_delay}s")
        self._schedule_connect(self.startup_delay)

    async def stop(self) -> None:
        for task in (self._connect_task, self._retry_task):
            if task and not task.done():
                task.cancel()
        self._connect_task = None
        self._retry_task = None

        if self.connected and self.queue:
            log.info(f"Flushing {len(self.queue)} queued messages before shutdown")
            await self._process_queue()
        if self.queue:
            log.warning(f"Discarding {len(self.queue)} unsent messages on shutdown")

        producer, self._producer = self._producer, None
        self.connected = False
        if producer is not None:
            try:
                await producer.flush()
                await producer.stop()
            except Exception as e:
                log.error(f"Error while stopping Kafka producer: {e}")
        log.info("Kafka publisher stopped")

    # ----------- Publishing -----------

    async def publish(
        self,
        topic: str,
        message: Dict[str, Any],
        key: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        queued = QueuedMessage(topic=topic, value=message, key=key, headers=dict(headers or {}))

        if not self.connected:
            self._enqueue(queued)
            if not self._connecting:
                # A new publish revives a reconnect loop that had given up
                self.connect_attempts = 0
                self._schedule_connect(0)
            return

        try:
            await self._do_publish(queued)
        except Exception as e:
            self._handle_publish_failure(queued, e)

    async def _do_publish(self, queued: QueuedMessage) -> None:
        if self._producer is None:
            raise EventPublishError("Kafka producer not connected")

        await self._ensure_topic(queued.topic)
        headers = [(name, str(value).encode("utf-8")) for name, value in queued.headers.items()]
        producer = self._producer
        # send() only enqueues in the producer batch; delivery is reported on the future
        future = await producer.send(queued.topic, value=queued.value, key=queued.key, headers=headers)
        self._send_futures.add(future)
        future.add_done_callback(lambda fut, msg=queued, p=producer: self._on_delivery(fut, msg, p))

    def _on_delivery(self, future: asyncio.Future, queued: QueuedMessage, producer=None) -> None:
        self._send_futures.discard(future)
        if future.cancelled():
            log.warning(f"Delivery to {queued.topic} cancelled (key={queued.key})")
            return
        error = future.exception()
        if error is None:
            return
        if not is_transient_error(error):
            log.error(f"Delivery to {queued.topic} failed (key={queued.key}): {error}")
            return

        log.warning(f"Delivery to {queued.topic} failed with a transient error, re-queuing message: {error}")
        self._enqueue(queued)
        if producer is not None and producer is self._producer:
            self._mark_disconnected()
        elif self.connected:
            # Failure reported by a producer that was already replaced
            self._schedule_retry()

    def _handle_publish_failure(self, queued: QueuedMessage, error: BaseException) -> None:
        if is_transient_error(error):
            log.warning(f"Transient error publishing to {queued.topic}, re-queuing message: {error}")
            self._enqueue(queued)
            self._mark_disconnected()
            return
        log.error(f"Dropping message for {queued.topic} (key={queued.key}): {error}")

    def _enqueue(self, queued: QueuedMessage) -> None:
        if self.max_queue_size and len(self.queue) >= self.max_queue_size:
            dropped = self.queue.popleft()
            log.warning(
                f"Kafka queue full ({self.max_queue_size}), dropping oldest message for {dropped.topic}"
            )
        self.queue.append(queued)
        log.info(f"Queued message for {queued.topic} (queue size: {len(self.queue)})")

    async def _ensure_topic(self, topic: str) -> None:
        """Create-if-absent, cached per topic. Failures are logged; the send decides."""
        if topic in self.known_topics:
            return

        admin = self.admin_factory()
        try:
            await admin.start()
            existing = await admin.list_topics()
            if topic not in existing:
                log.info(f"Creating Kafka topic '{topic}'")
                await admin.create_topics([
                    NewTopic(
                        name=topic,
                        num_partitions=KAFKA_TOPIC_PARTITIONS,
                        replication_factor=KAFKA_REPLICATION_FACTOR,
                        topic_configs={"retention.ms": KAFKA_TOPIC_RETENTION_MS},
                    )
                ])
            self.known_topics.add(topic)
        except TopicAlreadyExistsError:
            self.known_topics.add(topic)
        except Exception as e:
            log.error(f"Could not ensure Kafka topic '{topic}': {e}")
        finally:
            try:
                await admin.close()
            except Exception as e:
                log.debug(f"Error closing Kafka admin client: {e}")

    # ----------- Connection management -----------

    @property
    def _connecting(self) -> bool:
        return self._connect_task is not None and not self._connect_task.done()

    def _schedule_connect(self, delay: float) -> None:
        if self._connecting:
            return
        self._connect_task = asyncio.create_task(self._connect_loop(delay))

    def _mark_disconnected(self) -> None:
        was_connected = self.connected
        self.connected = False
        producer, self._producer = self._producer, None
        if producer is not None:
            task = asyncio.ensure_future(self._close_producer(producer))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
        if was_connected:
            log.warning("Kafka connection lost, reconnecting")
        self.connect_attempts = 0
        self._schedule_connect(self.reconnect_delay)

    async def _connect_loop(self, initial_delay: float) -> None:
        if initial_delay:
            await asyncio.sleep(initial_delay)

        delay = self.retry_delay
        while not self.connected:
            self.connect_attempts += 1
            try:
                await self._connect()
            except Exception as e:
                if self.connect_attempts >= self.max_connect_attempts:
                    log.error(
                        f"Failed to connect to Kafka after {self.connect_attempts} attempts: {e}. "
                        "Operating without Kafka."
                    )
                    return
                log.warning(
                    f"Kafka connection attempt {self.connect_attempts}/{self.max_connect_attempts} failed: {e}. "
                    f"Retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
                delay = min(delay * self.retry_backoff, self.max_retry_delay)
                continue

            log.info(f"Connected to Kafka after {self.connect_attempts} attempt(s)")
            self.connect_attempts = 0

        if self.queue:
            await self._process_queue()

    async def _connect(self) -> None:
        producer = self.producer_factory()
        try:
            await producer.start()
        except Exception:
            try:
                await producer.stop()
            except Exception as e:
                log.debug(f"Error cleaning up Kafka producer: {e}")
            raise
        self._producer = producer
        self.connected = True

    # ----------- Queue drain -----------

    async def _process_queue(self) -> None:
        if self._processing:
            return
        if not self.connected:
            self._schedule_connect(0)
            return

        self._processing = True
        try:
            pending = len(self.queue)
            log.info(f"Draining {pending} queued Kafka messages")
            requeued: Deque[QueuedMessage] = deque()
            while self.queue and self.connected:
                queued = self.queue.popleft()
                try:
                    await self._do_publish(queued)
                except Exception as e:
                    if is_transient_error(e):
                        log.warning(f"Transient error draining message for {queued.topic}: {e}")
                        requeued.append(queued)
                    else:
                        log.error(f"Dropping queued message for {queued.topic} (key={queued.key}): {e}")
            # Failed messages go back in front of anything published meanwhile
            self.queue.extendleft(reversed(requeued))
        finally:
            self._processing = False

        if self.queue:
            self._schedule_retry()

    def _schedule_retry(self) -> None:
        if self._retry_task is not None and not self._retry_task.done():
            return
        self._retry_task = asyncio.create_task(self._retry_after_delay())

    async def _retry_after_delay(self) -> None:
        await asyncio.sleep(self.queue_retry_delay)
        await self._process_queue()

    async def _close_producer(self, producer) -> None:
        try:
            await producer.stop()
        except Exception as e:
            log.debug(f"Error closing stale Kafka producer: {e}")
