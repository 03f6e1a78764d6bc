import asyncio
import logging
import uuid
from collections import defaultdict
from typing import Any

from pydantic import ValidationError

from specforge.config import (
    GCP_PROJECT_ID,
    GCP_PUBSUB_SUBSCRIPTION_PREFIX,
    GCP_PUBSUB_TOPIC,
)
from specforge.models.events import TransformationEvent

logger = logging.getLogger(__name__)

try:  # Optional dependency for GCP Pub/Sub
    from google.cloud import pubsub_v1  # type: ignore
except ImportError:  # pragma: no cover - optional dependency
    pubsub_v1 = None

EVENT_QUEUE_SIZE = 256


class TransformationEventBus:
    """Fans transformation events out to per-hospital and global subscribers.

    A subscription key of ``None`` means every hospital. Queues are bounded;
    a slow subscriber loses events rather than holding up a pipeline run.
    """

    def __init__(self, queue_size: int = EVENT_QUEUE_SIZE) -> None:
        self.queue_size = queue_size
        self._queues: dict[str | None, set[asyncio.Queue]] = defaultdict(set)

    def subscribe(self, hospital_id: str | None = None) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._queues[hospital_id].add(queue)
        return queue

    def subscribe_all(self) -> asyncio.Queue:
        return self.subscribe(None)

    def unsubscribe(self, hospital_id: str | None, queue: asyncio.Queue) -> None:
        queues = self._queues.get(hospital_id)
        if queues is None:
            return
        queues.discard(queue)
        if not queues:
            del self._queues[hospital_id]

    def unsubscribe_all(self, queue: asyncio.Queue) -> None:
        self.unsubscribe(None, queue)

    async def publish(self, event: TransformationEvent) -> None:
        self._deliver(event.payload())

    def _deliver(self, payload: dict[str, Any]) -> None:
        hospital_id = payload.get("hospital_id")
        targets = self._queues.get(hospital_id, set()) | self._queues.get(None, set())
        for queue in targets:
            try:
                queue.put_nowait(payload)
            except asyncio.QueueFull:
                logger.warning(
                    "Dropped %s for %s: subscriber queue full",
                    payload.get("type"),
                    payload.get("transformation_id"),
                )


class PubSubEventBus(TransformationEventBus):
    """Publishes through a Pub/Sub topic so every instance sees every run.

    Each local subscription gets its own Pub/Sub subscription, filtered on the
    ``hospital_id`` message attribute when it is scoped to one hospital.
    """

    def __init__(self, project_id: str, topic: str, queue_size: int = EVENT_QUEUE_SIZE) -> None:
        super().__init__(queue_size)
        self._project_id = project_id
        self._publisher = pubsub_v1.PublisherClient()  # type: ignore[union-attr]
        self._subscriber = pubsub_v1.SubscriberClient()  # type: ignore[union-attr]
        if topic.startswith("projects/"):
            self._topic_path = topic
        else:
            self._topic_path = self._publisher.topic_path(project_id, topic)
        self._streams: dict[asyncio.Queue, tuple[str, Any]] = {}

    def subscribe(self, hospital_id: str | None = None) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        sub_path = self._subscriber.subscription_path(
            self._project_id, f"{GCP_PUBSUB_SUBSCRIPTION_PREFIX}-{uuid.uuid4().hex}"
        )
        request: dict[str, Any] = {"name": sub_path, "topic": self._topic_path}
        if hospital_id:
            request["filter"] = f'attributes.hospital_id="{hospital_id}"'
        self._subscriber.create_subscription(request=request)

        loop = asyncio.get_running_loop()

        def _on_message(message) -> None:
            message.ack()
            try:
                event = TransformationEvent.model_validate_json(message.data)
            except ValidationError:
                logger.warning("Dropping malformed transformation event on %s", sub_path)
                return
            loop.call_soon_threadsafe(self._offer, queue, event.payload())

        future = self._subscriber.subscribe(sub_path, callback=_on_message)
        self._streams[queue] = (sub_path, future)
        return queue

    def unsubscribe(self, hospital_id: str | None, queue: asyncio.Queue) -> None:
        stream = self._streams.pop(queue, None)
        if stream is None:
            return
        sub_path, future = stream
        future.cancel()
        try:
            self._subscriber.delete_subscription(request={"subscription": sub_path})
        except Exception as exc:
            logger.warning("Failed to delete subscription %s: %s", sub_path, exc)

    @staticmethod
    def _offer(queue: asyncio.Queue, payload: dict[str, Any]) -> None:
        try:
            queue.put_nowait(payload)
        except asyncio.QueueFull:
            logger.warning("Dropped %s for %s: subscriber queue full", payload["type"], payload["transformation_id"])

    async def publish(self, event: TransformationEvent) -> None:
        try:
            self._publisher.publish(
                self._topic_path,
                event.model_dump_json(exclude_none=True).encode("utf-8"),
                hospital_id=event.hospital_id,
                event_type=event.type,
            )
        except Exception as exc:
            logger.error("Failed to publish %s for %s: %s", event.type, event.transformation_id, exc)


if GCP_PROJECT_ID and GCP_PUBSUB_TOPIC and pubsub_v1 is not None:
    logger.info("Using GCP Pub/Sub event bus for transformation events")
    event_bus: TransformationEventBus = PubSubEventBus(GCP_PROJECT_ID, GCP_PUBSUB_TOPIC)
else:
    if GCP_PROJECT_ID or GCP_PUBSUB_TOPIC:
        logger.warning("Pub/Sub config set but google-cloud-pubsub not installed; falling back to in-memory bus")
    event_bus = TransformationEventBus()
