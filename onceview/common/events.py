"""Notification event envelope and the Kafka producer used by the outbox.

Events are keyed by owner id so one owner's notifications land on a single
partition and are consumed in the order they were created.
"""

import json
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from aiokafka import AIOKafkaProducer
from pydantic import BaseModel, Field

from onceview.common.config import settings


class EventEnvelope(BaseModel):
    """Wire shape of every event onceview publishes."""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    event_type: str
    aggregate_id: str
    occurred_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    trace_id: str
    payload: dict[str, Any]

    @property
    def partition_key(self) -> bytes:
        return str(self.payload.get("owner_id") or self.aggregate_id).encode("utf-8")


def _serialize(event: dict) -> bytes:
    return json.dumps(event, separators=(",", ":")).encode("utf-8")


class KafkaBus:
    """Producer started on first publish and stopped with the app."""

    def __init__(self, bootstrap_servers: str | None = None) -> None:
        self.bootstrap_servers = bootstrap_servers or settings.kafka_bootstrap_servers
        self._producer: AIOKafkaProducer | None = None

    async def producer(self) -> AIOKafkaProducer:
        if self._producer is None:
            producer = AIOKafkaProducer(
                bootstrap_servers=self.bootstrap_servers,
                value_serializer=_serialize,
                acks="all",
            )
            await producer.start()
            self._producer = producer
        return self._producer

    async def publish(self, topic: str, event: EventEnvelope) -> None:
        producer = await self.producer()
        await producer.send_and_wait(topic, event.model_dump(), key=event.partition_key)

    async def close(self) -> None:
        if self._producer is not None:
            await self._producer.stop()
            self._producer = None
