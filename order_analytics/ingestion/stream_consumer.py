"""
Kafka Stream Consumer

Ingress adapter between the order/payment topics and the aggregation engine:
- Envelope decoding and validation
- Correlation ID extraction (headers, then payload, then synthesized)
- Per-message outcome classification
- Manual offset commits driven by that outcome
- Processing timeout per unit of work
- Metrics and observability

Delivery policy is at-most-one-attempt by default: every message is
committed after one try, whatever the outcome, and one bad message never
stops the loop. Redelivery of recoverable failures can be switched on with
``KAFKA_REDELIVER_ON_FAILURE``; it is always safe because the ledger makes
reprocessing idempotent.
"""

import asyncio
import json
import signal
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

import structlog
from aiokafka import AIOKafkaConsumer, TopicPartition
from aiokafka.errors import KafkaConnectionError, KafkaError
from prometheus_client import Counter, Histogram
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from order_analytics.aggregation.engine import AggregationEngine
from order_analytics.aggregation.events import OrderEvent
from order_analytics.config.settings import KafkaSettings, Settings, get_settings
from order_analytics.database.connection import Database

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

EVENTS_CONSUMED = Counter(
    "analytics_events_consumed_total",
    "Total number of messages consumed, by outcome",
    ["topic", "outcome"],
)

EVENT_PROCESSING_TIME = Histogram(
    "analytics_event_processing_seconds",
    "Time spent applying one event to the read model",
    ["event_type"],
)


# =============================================================================
# OUTCOMES
# =============================================================================

class MessageOutcome(str, Enum):
    """Result of handling one message"""
    SUCCESS = "success"
    DUPLICATE = "duplicate"
    FAILED_RECOVERABLE = "failed_recoverable"
    FAILED_FATAL = "failed_fatal"


def should_acknowledge(outcome: MessageOutcome, redeliver_on_failure: bool = False) -> bool:
    """
    Decide whether a message's offset is committed.

    Only recoverable failures (storage errors, timeouts) can be held back for
    redelivery, and only when the consumer is configured for it. Fatal
    failures would fail again, so they are always committed.
    """
    if outcome is MessageOutcome.FAILED_RECOVERABLE:
        return not redeliver_on_failure
    return True


# =============================================================================
# ENVELOPE DECODING
# =============================================================================

CORRELATION_HEADERS = ("x-correlation-id", "correlationId")


def decode_value(raw: Optional[bytes]) -> Dict[str, Any]:
    """
    Decode a message value into a JSON object.

    Raises:
        ValueError: Empty value, invalid UTF-8/JSON, or a non-object document
    """
    if not raw:
        raise ValueError("Empty message value")
    data = json.loads(raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def extract_correlation_id(
    headers: Optional[Iterable[Tuple[str, Optional[bytes]]]],
    payload: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Pick the correlation ID for a message.

    Header values win over ``correlationId`` in the payload; when neither is
    present a new UUID is generated.
    """
    found: Dict[str, str] = {}
    for key, value in headers or ():
        if not value:
            continue
        if isinstance(value, (bytes, bytearray)):
            value = value.decode("utf-8", errors="replace")
        found.setdefault(key, str(value))

    for name in CORRELATION_HEADERS:
        if found.get(name):
            return found[name]

    if payload and payload.get("correlationId"):
        return str(payload["correlationId"])

    return str(uuid.uuid4())


# =============================================================================
# STREAM CONSUMER
# =============================================================================

@dataclass
class ConsumerConfig:
    """Kafka consumer configuration"""
    topics: List[str]
    group_id: str = "analytics-service"
    client_id: str = "analytics-service"
    bootstrap_servers: str = "localhost:9092"
    auto_offset_reset: str = "latest"
    session_timeout_ms: int = 30000
    heartbeat_interval_ms: int = 3000
    processing_timeout_seconds: float = 25.0
    redeliver_on_failure: bool = False

    @classmethod
    def from_settings(cls, kafka: KafkaSettings) -> "ConsumerConfig":
        return cls(
            topics=kafka.topics,
            group_id=kafka.consumer_group,
            client_id=kafka.client_id,
            bootstrap_servers=kafka.bootstrap_servers,
            auto_offset_reset=kafka.auto_offset_reset,
            session_timeout_ms=kafka.session_timeout_ms,
            heartbeat_interval_ms=kafka.heartbeat_interval_ms,
            processing_timeout_seconds=kafka.processing_timeout_seconds,
            redeliver_on_failure=kafka.redeliver_on_failure,
        )


class StreamConsumer:
    """
    Kafka consumer feeding the aggregation engine.

    Features:
    - Multi-topic consumption (order and payment events)
    - Manual commits, one message at a time
    - Outcome-driven acknowledgement (see ``should_acknowledge``)
    - Graceful shutdown

    Example:
        consumer = StreamConsumer(engine, ConsumerConfig.from_settings(settings.kafka))
        await consumer.start()
    """

    def __init__(
        self,
        engine: AggregationEngine,
        config: ConsumerConfig,
        kafka_consumer: Optional[AIOKafkaConsumer] = None,
    ):
        self.engine = engine
        self.config = config
        self._consumer = kafka_consumer
        self._running = False

    @property
    def status(self) -> str:
        return "connected" if self._running else "disconnected"

    def _create_consumer(self) -> AIOKafkaConsumer:
        """Create and configure Kafka consumer"""
        return AIOKafkaConsumer(
            *self.config.topics,
            bootstrap_servers=self.config.bootstrap_servers,
            group_id=self.config.group_id,
            client_id=self.config.client_id,
            auto_offset_reset=self.config.auto_offset_reset,
            enable_auto_commit=False,
            session_timeout_ms=self.config.session_timeout_ms,
            heartbeat_interval_ms=self.config.heartbeat_interval_ms,
        )

    async def handle_message(self, message: Any) -> MessageOutcome:
        """
        Decode, validate and apply one message.

        Never raises for problems with the message or its processing; the
        returned outcome carries the result instead.
        """
        context = {
            "topic": message.topic,
            "partition": message.partition,
            "offset": message.offset,
        }

        try:
            data = decode_value(message.value)
        except ValueError as e:
            logger.error("Failed to decode message", error=str(e), **context)
            return self._record(message.topic, MessageOutcome.FAILED_FATAL)

        correlation_id = extract_correlation_id(message.headers, data)

        try:
            event = OrderEvent.model_validate(data)
        except ValidationError as e:
            logger.warning(
                "Event validation failed",
                error=str(e),
                event_type=data.get("type"),
                correlation_id=correlation_id,
                **context,
            )
            return self._record(message.topic, MessageOutcome.FAILED_FATAL)

        start_time = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                self.engine.process_event(event, correlation_id),
                timeout=self.config.processing_timeout_seconds,
            )
        except (SQLAlchemyError, asyncio.TimeoutError) as e:
            logger.error(
                "Failed to process message",
                error=str(e) or type(e).__name__,
                error_type=type(e).__name__,
                correlation_id=correlation_id,
                **context,
            )
            outcome = MessageOutcome.FAILED_RECOVERABLE
        except Exception as e:
            logger.exception(
                "Unexpected error processing message",
                error=str(e),
                correlation_id=correlation_id,
                **context,
            )
            outcome = MessageOutcome.FAILED_FATAL
        else:
            outcome = MessageOutcome.SUCCESS if result.applied else MessageOutcome.DUPLICATE

        event_label = event.kind.value if event.kind else "unknown"
        EVENT_PROCESSING_TIME.labels(event_type=event_label).observe(time.perf_counter() - start_time)
        return self._record(message.topic, outcome)

    def _record(self, topic: str, outcome: MessageOutcome) -> MessageOutcome:
        EVENTS_CONSUMED.labels(topic=topic, outcome=outcome.value).inc()
        return outcome

    async def acknowledge(self, message: Any, outcome: MessageOutcome) -> bool:
        """
        Commit past the message, or rewind to it for redelivery.

        Returns:
            True if the offset was committed
        """
        partition = TopicPartition(message.topic, message.partition)

        if not should_acknowledge(outcome, self.config.redeliver_on_failure):
            logger.info(
                "Leaving message for redelivery",
                topic=message.topic,
                partition=message.partition,
                offset=message.offset,
                outcome=outcome.value,
            )
            self._consumer.seek(partition, message.offset)
            return False

        try:
            await self._consumer.commit({partition: message.offset + 1})
        except KafkaError as e:
            # The group rebalanced; the new owner redelivers, the ledger dedups
            logger.warning("Offset commit failed", error=str(e), topic=message.topic, offset=message.offset)
            return False
        return True

    async def start(self) -> None:
        """Start consuming events until stopped"""
        logger.info(
            "Starting stream consumer",
            topics=self.config.topics,
            group_id=self.config.group_id,
            redeliver_on_failure=self.config.redeliver_on_failure,
        )

        if self._consumer is None:
            self._consumer = self._create_consumer()

        try:
            await self._consumer.start()
            self._running = True

            async for message in self._consumer:
                outcome = await self.handle_message(message)
                await self.acknowledge(message, outcome)
                if not self._running:
                    break

        except KafkaConnectionError as e:
            logger.exception(
                "Kafka connection error, consumer stopped",
                error=str(e),
                bootstrap_servers=self.config.bootstrap_servers,
            )
            raise

        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop the consumer gracefully"""
        if self._consumer is None:
            return
        was_running = self._running
        self._running = False
        if was_running:
            await self._consumer.stop()
            logger.info("Stream consumer stopped")


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================

def create_stream_consumer(database: Database, settings: Optional[Settings] = None) -> StreamConsumer:
    """Create a stream consumer wired to an aggregation engine on ``database``"""
    settings = settings or get_settings()
    engine = AggregationEngine(database)
    return StreamConsumer(engine, ConsumerConfig.from_settings(settings.kafka))


async def run_consumer(settings: Optional[Settings] = None) -> None:
    """Run the consumer on its own, without the HTTP API"""
    settings = settings or get_settings()
    database = Database(settings.database)
    await database.connect()

    consumer = create_stream_consumer(database, settings)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda: asyncio.ensure_future(consumer.stop()))

    try:
        await consumer.start()
    finally:
        await database.close()


def main() -> None:
    """Console entry point: ``order-analytics-consumer``"""
    from order_analytics.config.logging import configure_logging

    configure_logging()
    asyncio.run(run_consumer())
