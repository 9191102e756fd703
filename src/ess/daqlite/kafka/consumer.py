# SPDX-License-Identifier: BSD-3-Clause
# Copyright (c) 2024 Scipp contributors (https://github.com/scipp)
from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from enum import Enum
from typing import Any, Protocol

import confluent_kafka as kafka
import structlog
from confluent_kafka import KafkaError
from confluent_kafka.error import KafkaException

from ..config.models import KafkaConfig

logger = structlog.get_logger(__name__)


class BrokerConnectionError(ConnectionError):
    """Failure to create or subscribe the consumer. The feed cannot be read."""


class KafkaMessage(Protocol):
    """Subset of :py:class:`confluent_kafka.Message` used by the consumer."""

    def error(self) -> Any | None: ...

    def value(self) -> bytes | None: ...

    def topic(self) -> str | None: ...


class BrokerClient(Protocol):
    def receive(self, timeout: float) -> KafkaMessage | None:
        """Block up to ``timeout`` seconds for the next message."""


class ReceiveStatus(str, Enum):
    """Classification of the outcome of a receive call."""

    __slots__ = ()
    TIMED_OUT = "timed_out"
    PARTITION_EOF = "partition_eof"
    UNKNOWN_TOPIC = "unknown_topic"
    ERROR = "error"
    DATA = "data"


_UNKNOWN_TOPIC_CODES = frozenset(
    {
        KafkaError._UNKNOWN_TOPIC,
        KafkaError._UNKNOWN_PARTITION,
        KafkaError.UNKNOWN_TOPIC_OR_PART,
    }
)


def classify(message: KafkaMessage | None) -> ReceiveStatus:
    """Classify a received message, ``None`` meaning nothing arrived in time."""
    if message is None:
        return ReceiveStatus.TIMED_OUT
    error = message.error()
    if error is None:
        return ReceiveStatus.DATA
    code = error.code()
    if code == KafkaError._TIMED_OUT:
        return ReceiveStatus.TIMED_OUT
    if code == KafkaError._PARTITION_EOF:
        return ReceiveStatus.PARTITION_EOF
    if code in _UNKNOWN_TOPIC_CODES:
        return ReceiveStatus.UNKNOWN_TOPIC
    return ReceiveStatus.ERROR


class KafkaBrokerClient(BrokerClient):
    """Receives messages one at a time from a subscribed Kafka consumer."""

    def __init__(self, consumer: kafka.Consumer) -> None:
        self._consumer = consumer

    def receive(self, timeout: float) -> KafkaMessage | None:
        return self._consumer.poll(timeout=timeout)


def validate_topics_exist(consumer: kafka.Consumer, topics: list[str]) -> None:
    """Check if all topics exist and are accessible."""
    logger.debug("validating_topics", topics=topics)
    try:
        cluster_metadata = consumer.list_topics(timeout=5.0)
    except KafkaException as e:
        logger.exception("topic_metadata_fetch_failed")
        raise BrokerConnectionError(f"Failed to fetch topic metadata: {e}") from e
    missing_topics = [
        topic for topic in topics if topic not in cluster_metadata.topics
    ]
    if missing_topics:
        logger.error("topics_not_found", missing_topics=missing_topics)
        raise BrokerConnectionError(f"Topics not found: {missing_topics}")
    logger.info("topics_validated", topic_count=len(topics))


@contextmanager
def make_consumer_from_config(
    config: KafkaConfig,
) -> Generator[kafka.Consumer, None, None]:
    """
    Create a consumer subscribed to the configured topic.

    Every consumer joins its own randomly named group, so independent viewers each
    receive the complete stream.

    Raises
    ------
    BrokerConnectionError:
        If the consumer cannot be created or subscribed.
    """
    consumer_config = config.to_consumer_config()
    try:
        consumer = kafka.Consumer(consumer_config)
    except KafkaException as e:
        logger.exception("kafka_consumer_creation_failed", broker=config.broker)
        raise BrokerConnectionError(f"Failed to create consumer: {e}") from e
    try:
        validate_topics_exist(consumer, [config.topic])
        try:
            consumer.subscribe([config.topic])
        except KafkaException as e:
            logger.exception("kafka_subscribe_failed", topic=config.topic)
            raise BrokerConnectionError(
                f"Failed to subscribe consumer to '{config.topic}': {e}"
            ) from e
        logger.info(
            "kafka_consumer_created",
            broker=config.broker,
            topic=config.topic,
            group_id=consumer_config['group.id'],
        )
        yield consumer
    finally:
        consumer.close()
