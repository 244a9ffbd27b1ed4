"""
Publish/subscribe plumbing for booking push events.

Topics are either ``bookings:all`` (every connected client) or
``bookings:owner:<user_id>`` (one owner's room). Delivery is best-effort:
nothing is retried or persisted, clients re-fetch state on reconnect.

- ``ChannelHub`` keeps the subscriptions of this process.
- ``InMemoryBroadcaster`` dispatches straight into the hub.
- ``RedisBroadcaster`` publishes to Redis; ``relay_redis_events`` feeds
  messages from every instance back into the local hub.
- ``FallbackBroadcaster`` degrades to local delivery when the primary fails.
"""
import asyncio
import json
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import redis
import redis.asyncio as redis_async

from app.core.config import settings
from app.core.metrics import PUSH_SUBSCRIBERS

logger = logging.getLogger(__name__)

ALL_TOPIC = "bookings:all"
OWNER_TOPIC_PREFIX = "bookings:owner:"

Deliver = Callable[[dict[str, Any]], None]


def owner_topic(owner_id: int) -> str:
    return f"{OWNER_TOPIC_PREFIX}{owner_id}"


@dataclass(eq=False)
class Subscription:
    owner_id: int
    deliver: Deliver


class ChannelHub:
    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, owner_id: int, deliver: Deliver) -> Subscription:
        subscription = Subscription(owner_id=owner_id, deliver=deliver)
        with self._lock:
            self._subscriptions.append(subscription)
            PUSH_SUBSCRIBERS.set(len(self._subscriptions))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
            PUSH_SUBSCRIBERS.set(len(self._subscriptions))

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def reset(self) -> None:
        with self._lock:
            self._subscriptions.clear()
            PUSH_SUBSCRIBERS.set(0)

    def dispatch(self, topic: str, event: dict[str, Any]) -> int:
        """Deliver ``event`` to the subscribers of ``topic``; returns the delivery count."""
        with self._lock:
            subscriptions = list(self._subscriptions)

        if topic == ALL_TOPIC:
            targets = subscriptions
        elif topic.startswith(OWNER_TOPIC_PREFIX):
            try:
                owner_id = int(topic[len(OWNER_TOPIC_PREFIX):])
            except ValueError:
                logger.warning("push_dispatch_skipped topic=%s reason=bad_owner_id", topic)
                return 0
            targets = [sub for sub in subscriptions if sub.owner_id == owner_id]
        else:
            logger.warning("push_dispatch_skipped topic=%s reason=unknown_topic", topic)
            return 0

        delivered = 0
        for subscription in targets:
            try:
                subscription.deliver(event)
                delivered += 1
            except Exception:
                logger.exception(
                    "push_delivery_failed topic=%s owner_id=%s", topic, subscription.owner_id
                )
        return delivered


class Broadcaster(ABC):
    @abstractmethod
    def publish(self, topic: str, event: dict[str, Any]) -> None:
        raise NotImplementedError


class InMemoryBroadcaster(Broadcaster):
    def __init__(self, hub: ChannelHub) -> None:
        self._hub = hub

    def publish(self, topic: str, event: dict[str, Any]) -> None:
        self._hub.dispatch(topic, event)


class RedisBroadcaster(Broadcaster):
    def __init__(self, redis_url: str, prefix: str) -> None:
        self._client = redis.Redis.from_url(
            redis_url,
            socket_connect_timeout=0.2,
            socket_timeout=0.2,
            decode_responses=True,
        )
        self._prefix = prefix

    def publish(self, topic: str, event: dict[str, Any]) -> None:
        self._client.publish(f"{self._prefix}:{topic}", json.dumps(event, default=str))


class FallbackBroadcaster(Broadcaster):
    def __init__(self, primary: Broadcaster, fallback: Broadcaster) -> None:
        self._primary = primary
        self._fallback = fallback

    def publish(self, topic: str, event: dict[str, Any]) -> None:
        try:
            self._primary.publish(topic, event)
        except Exception:
            logger.warning("push_primary_unavailable topic=%s falling back to local delivery", topic)
            self._fallback.publish(topic, event)


async def relay_redis_events(hub: ChannelHub, redis_url: str, prefix: str, retry_seconds: float = 1.0) -> None:
    """Forward events published by any instance into ``hub`` until cancelled."""
    pattern = f"{prefix}:*"
    while True:
        client = redis_async.Redis.from_url(redis_url, decode_responses=True)
        pubsub = client.pubsub()
        try:
            await pubsub.psubscribe(pattern)
            logger.info("push_relay_subscribed pattern=%s", pattern)
            async for message in pubsub.listen():
                if message.get("type") != "pmessage":
                    continue
                topic = message["channel"][len(prefix) + 1:]
                try:
                    event = json.loads(message["data"])
                except (TypeError, ValueError):
                    logger.warning("push_relay_bad_payload topic=%s", topic)
                    continue
                hub.dispatch(topic, event)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("push_relay_failed retry_in=%.1fs", retry_seconds)
            await asyncio.sleep(retry_seconds)
        finally:
            await pubsub.aclose()
            await client.aclose()


def _build_broadcaster(hub: ChannelHub) -> Broadcaster:
    backend = settings.broadcast_backend.strip().lower()
    local = InMemoryBroadcaster(hub)
    if backend == "redis":
        redis_broadcaster = RedisBroadcaster(
            redis_url=settings.broadcast_redis_url,
            prefix=settings.broadcast_channel_prefix,
        )
        return FallbackBroadcaster(primary=redis_broadcaster, fallback=local)
    return local


channel_hub = ChannelHub()
broadcaster: Broadcaster = _build_broadcaster(channel_hub)
