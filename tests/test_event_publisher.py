import asyncio
import pytest
from aiokafka.errors import KafkaConnectionError, KafkaTimeoutError, LeaderNotAvailableError

from app.core.exceptions import EventPublishError
from app.events.publisher import EventPublisher, QueuedMessage, is_transient_error
from app.testing.testing_mocks import FakeKafkaAdmin, FakeKafkaProducer


def make_publisher(producers, topics=None, **overrides):
    """Publisher wired to fakes. `producers` are handed out in order, the last one is reused."""
    producers = list(producers)
    topics = topics if topics is not None else set()
    admin_calls = []

    def producer_factory():
        return producers.pop(0) if len(producers) > 1 else producers[0]

    def admin_factory():
        admin = FakeKafkaAdmin(topics)
        admin_calls.append(admin)
        return admin

    params = dict(
        max_connect_attempts=3,
        retry_delay=0,
        reconnect_delay=0,
        queue_retry_delay=0,
        startup_delay=0,
    )
    params.update(overrides)
    publisher = EventPublisher(producer_factory=producer_factory, admin_factory=admin_factory, **params)
    publisher.admin_calls = admin_calls
    return publisher


@pytest.mark.parametrize(
    "error, expected",
    [
        (KafkaConnectionError(), True),
        (LeaderNotAvailableError(), True),
        (ConnectionError("connect ECONNREFUSED 127.0.0.1:9092"), True),
        (EventPublishError("Kafka producer not connected"), True),
        (RuntimeError("There is no leader for this topic-partition as we are in the middle of a leadership election"), True),
        (ValueError("message too large"), False),
    ],
)
def test_is_transient_error(error, expected):
    assert is_transient_error(error) is expected


@pytest.mark.asyncio
async def test_messages_queue_until_connected_then_drain_in_order():
    producer = FakeKafkaProducer()
    publisher = make_publisher([producer])

    await publisher.publish("order-events", {"n": 1}, key="order-a")
    await publisher.publish("order-events", {"n": 2}, key="order-b")
    assert len(publisher.queue) == 2

    await publisher._connect_task

    assert publisher.connected
    assert [m["value"] for m in producer.sent] == [{"n": 1}, {"n": 2}]
    assert producer.sent[0]["key"] == "order-a"
    assert len(publisher.queue) == 0
    await publisher.stop()


@pytest.mark.asyncio
async def test_topic_is_created_once():
    topics = set()
    publisher = make_publisher([FakeKafkaProducer()], topics=topics)
    publisher.start()
    await publisher._connect_task

    await publisher.publish("order-events", {"n": 1})
    await publisher.publish("order-events", {"n": 2})

    assert topics == {"order-events"}
    assert len(publisher.admin_calls) == 1
    await publisher.stop()


@pytest.mark.asyncio
async def test_headers_are_sent_as_bytes():
    producer = FakeKafkaProducer()
    publisher = make_publisher([producer])
    publisher.start()
    await publisher._connect_task

    await publisher.publish("order-events", {"n": 1}, key="order-a", headers={"source": "order-service"})

    assert producer.sent[0]["headers"] == {"source": b"order-service"}
    await publisher.stop()


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts_and_next_publish_retries():
    failing = [FakeKafkaProducer(start_errors=[KafkaConnectionError()]) for _ in range(3)]
    healthy = FakeKafkaProducer()
    publisher = make_publisher(failing + [healthy], max_connect_attempts=3)

    await publisher.publish("order-events", {"n": 1})
    await publisher._connect_task

    # Operating without Kafka; the message is kept
    assert not publisher.connected
    assert publisher.connect_attempts == 3
    assert len(publisher.queue) == 1

    await publisher.publish("order-events", {"n": 2})
    await publisher._connect_task

    assert publisher.connected
    assert [m["value"] for m in healthy.sent] == [{"n": 1}, {"n": 2}]
    await publisher.stop()


@pytest.mark.asyncio
async def test_transient_send_failure_requeues_and_reconnects():
    producer = FakeKafkaProducer(send_errors=[KafkaConnectionError()])
    publisher = make_publisher([producer])
    publisher.start()
    await publisher._connect_task

    await publisher.publish("order-events", {"n": 1})
    assert not publisher.connected
    assert len(publisher.queue) == 1

    await publisher._connect_task

    assert publisher.connected
    assert [m["value"] for m in producer.sent] == [{"n": 1}]
    await publisher.stop()


@pytest.mark.asyncio
async def test_non_transient_failure_is_dropped():
    producer = FakeKafkaProducer(send_errors=[ValueError("message too large")])
    publisher = make_publisher([producer])
    publisher.start()
    await publisher._connect_task

    await publisher.publish("order-events", {"n": 1})

    assert publisher.connected
    assert len(publisher.queue) == 0
    assert producer.sent == []
    await publisher.stop()


@pytest.mark.asyncio
async def test_queue_is_bounded_and_drops_oldest():
    publisher = make_publisher([FakeKafkaProducer()], max_queue_size=2)

    for n in range(3):
        await publisher.publish("order-events", {"n": n})

    assert [m.value for m in publisher.queue] == [{"n": 1}, {"n": 2}]
    await publisher.stop()


@pytest.mark.asyncio
async def test_do_publish_without_producer_raises():
    publisher = make_publisher([FakeKafkaProducer()])

    with pytest.raises(EventPublishError):
        await publisher._do_publish(QueuedMessage(topic="order-events", value={}))


@pytest.mark.asyncio
async def test_stop_flushes_and_stops_producer():
    producer = FakeKafkaProducer()
    publisher = make_publisher([producer])
    publisher.start()
    await publisher._connect_task

    await publisher.stop()

    assert producer.flushed
    assert producer.stopped
    assert not publisher.connected


@pytest.mark.asyncio
async def test_failed_delivery_with_transient_error_requeues_and_reconnects():
    producer = FakeKafkaProducer(delivery_errors=[KafkaTimeoutError("connect ECONNREFUSED 127.0.0.1:9092")])
    publisher = make_publisher([producer])
    publisher.start()
    await publisher._connect_task

    await publisher.publish("order-events", {"n": 1}, key="order-a")
    await asyncio.sleep(0)  # delivery callback

    assert not publisher.connected
    assert [m.value for m in publisher.queue] == [{"n": 1}]

    await publisher._connect_task

    assert publisher.connected
    assert [m["value"] for m in producer.sent] == [{"n": 1}]
    assert len(publisher.queue) == 0
    await publisher.stop()


@pytest.mark.asyncio
async def test_failed_delivery_with_other_error_is_dropped():
    producer = FakeKafkaProducer(delivery_errors=[ValueError("message too large")])
    publisher = make_publisher([producer])
    publisher.start()
    await publisher._connect_task

    await publisher.publish("order-events", {"n": 1})
    await asyncio.sleep(0)

    assert publisher.connected
    assert len(publisher.queue) == 0
    assert producer.sent == []
    await publisher.stop()
