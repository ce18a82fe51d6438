"""
Data Ingestion Module
"""
from .stream_consumer import (
    ConsumerConfig,
    MessageOutcome,
    StreamConsumer,
    create_stream_consumer,
    should_acknowledge,
)

__all__ = [
    "ConsumerConfig",
    "MessageOutcome",
    "StreamConsumer",
    "create_stream_consumer",
    "should_acknowledge",
]
