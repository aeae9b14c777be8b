"""Redis pub/sub implementation of RealtimeChannel.

Each room maps to a Redis channel ``<prefix>:<room>``; the websocket gateway
in front of the app subscribes to the rooms of its connected users and
forwards events. The channel is an explicitly created and closed handle
owned by the dispatcher, not a module-level singleton.

Reconnect policy: a publish that hits a connection error drops the pool's
connections and retries up to ``reconnect_attempts`` times with linear
backoff, then raises TransientExternalError.
"""

import asyncio
import json
from typing import Any, AsyncIterator, Optional

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from config import RealtimeSettings
from errors import TransientExternalError
from shared.logging import get_logger

log = get_logger(__name__)

_SERVICE = "realtime"


class RedisRoomSubscription:
    def __init__(self, pubsub: aioredis.client.PubSub, channel: str) -> None:
        self._pubsub = pubsub
        self._channel = channel

    async def listen(self) -> AsyncIterator[dict[str, Any]]:
        async for message in self._pubsub.listen():
            if message.get("type") != "message":
                continue
            try:
                yield json.loads(message["data"])
            except (TypeError, ValueError):
                log.warning("realtime_message_undecodable", channel=self._channel)

    async def aclose(self) -> None:
        await self._pubsub.unsubscribe(self._channel)
        await self._pubsub.aclose()


class RedisRealtimeChannel:
    def __init__(
        self,
        redis_client: aioredis.Redis,
        settings: Optional[RealtimeSettings] = None,
        owns_client: bool = False,
    ) -> None:
        settings = settings or RealtimeSettings()
        self._redis = redis_client
        self._prefix = settings.realtime_channel_prefix
        self._reconnect_attempts = settings.realtime_reconnect_attempts
        self._reconnect_backoff = settings.realtime_reconnect_backoff_seconds
        self._owns_client = owns_client
        self._subscriptions: set[RedisRoomSubscription] = set()
        self._closed = False

    @classmethod
    def from_url(
        cls, redis_uri: str, settings: Optional[RealtimeSettings] = None
    ) -> "RedisRealtimeChannel":
        client = aioredis.from_url(redis_uri, decode_responses=True)
        return cls(client, settings, owns_client=True)

    def _channel(self, room: str) -> str:
        return f"{self._prefix}:{room}"

    async def emit(self, room: str, event: str, payload: dict[str, Any]) -> bool:
        if self._closed:
            raise TransientExternalError("Realtime channel is closed", service=_SERVICE)
        message = json.dumps({"event": event, "room": room, "payload": payload}, default=str)
        channel = self._channel(room)

        attempt = 0
        while True:
            try:
                receivers = await self._redis.publish(channel, message)
                log.debug(
                    "realtime_event_emitted",
                    room=room,
                    event_name=event,
                    receivers=receivers,
                )
                return True
            except (RedisConnectionError, RedisTimeoutError) as e:
                attempt += 1
                if attempt > self._reconnect_attempts:
                    log.error(
                        "realtime_reconnect_exhausted",
                        room=room,
                        attempts=attempt,
                        error=str(e),
                    )
                    raise TransientExternalError(
                        "Realtime channel unavailable", service=_SERVICE, details=str(e)
                    ) from e
                log.warning(
                    "realtime_reconnecting", room=room, attempt=attempt, error=str(e)
                )
                await self._redis.connection_pool.disconnect()
                await asyncio.sleep(self._reconnect_backoff * attempt)

    async def join_room(self, room: str) -> RedisRoomSubscription:
        channel = self._channel(room)
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)
        subscription = RedisRoomSubscription(pubsub, channel)
        self._subscriptions.add(subscription)
        return subscription

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        for subscription in list(self._subscriptions):
            await subscription.aclose()
        self._subscriptions.clear()
        if self._owns_client:
            await self._redis.aclose()


class _EmptySubscription:
    async def listen(self) -> AsyncIterator[dict[str, Any]]:
        return
        yield  # pragma: no cover

    async def aclose(self) -> None:
        return None


class NullRealtimeChannel:
    """Used when Redis is not configured: events are logged and dropped.

    emit() returns False so callers never count a dropped event as delivered.
    """

    async def emit(self, room: str, event: str, payload: dict[str, Any]) -> bool:
        log.debug(
            "realtime_event_dropped",
            room=room,
            event_name=event,
            reason="not_configured",
        )
        return False

    async def join_room(self, room: str) -> _EmptySubscription:
        return _EmptySubscription()

    async def aclose(self) -> None:
        return None
