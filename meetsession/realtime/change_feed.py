# Redis Pub/Sub row-change feed for meet sessions
# Publish after every committed write; subscribers get the full session snapshot.
# Delivery is at-least-once, so subscribers drop consecutive identical payloads.

import asyncio
import inspect
from typing import AsyncGenerator, Awaitable, Callable, Optional, Union

from meetsession.core.logger import get_logger
from meetsession.schemas.session import MeetSession

logger = get_logger(__name__)

CHANNEL_PREFIX = "meet_session:"
CHANNEL_SUFFIX = ":changes"
HEARTBEAT_INTERVAL = 15.0
POLL_TIMEOUT = 1.0

OnUpdate = Callable[[MeetSession], Union[None, Awaitable[None]]]


def channel_for(session_id: str) -> str:
    return f"{CHANNEL_PREFIX}{session_id}{CHANNEL_SUFFIX}"


class Subscription:
    """
    One live listener on a session's change channel, running as its own task.
    cancel() stops the task and releases the pub/sub connection.
    """

    def __init__(self, redis_client, session_id: str, on_update: OnUpdate):
        self.session_id = session_id
        self._redis = redis_client
        self._on_update = on_update
        self._last_payload: Optional[str] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "Subscription":
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self

    async def cancel(self) -> None:
        """Stop listening. Safe on a task that already ended, including one that failed."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.warning("Subscription for session %s had already failed", self.session_id, exc_info=True)

    async def _deliver(self, data: str) -> None:
        if data == self._last_payload:
            return  # duplicate notification
        self._last_payload = data
        try:
            session = MeetSession.model_validate_json(data)
        except ValueError:
            logger.warning("Dropping malformed change payload for session %s", self.session_id)
            return
        try:
            result = self._on_update(session)
            if inspect.isawaitable(result):
                await result
        except Exception:
            # one bad update must not end the subscription
            logger.error("Change callback failed for session %s", self.session_id, exc_info=True)

    async def _run(self) -> None:
        channel = channel_for(self.session_id)
        pubsub = self._redis.pubsub()
        try:
            await pubsub.subscribe(channel)
            while True:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=POLL_TIMEOUT)
                if message and message.get("type") == "message":
                    await self._deliver(message.get("data") or "")
        except asyncio.CancelledError:
            raise
        except Exception:
            # Redis gone: end the task so `active` turns False and streams can close
            logger.warning("Change feed for session %s stopped", self.session_id, exc_info=True)
        finally:
            try:
                await pubsub.unsubscribe(channel)
                await pubsub.aclose()
            except Exception:
                logger.warning("Pub/sub for session %s not released cleanly", self.session_id, exc_info=True)


class RedisChangeFeed:
    """Publishes session snapshots and hands out subscriptions. The Redis client is injected."""

    def __init__(self, redis_client):
        self._redis = redis_client

    async def publish(self, session: MeetSession) -> None:
        """Called after commit. A failed publish leaves the write in place and is only logged."""
        payload = session.model_dump_json()
        try:
            await self._redis.publish(channel_for(session.id), payload)
        except Exception:
            logger.warning("Change notification for session %s not published", session.id, exc_info=True)

    def subscribe(self, session_id: str, on_update: OnUpdate) -> Subscription:
        return Subscription(self._redis, session_id, on_update).start()


class SessionWatcher:
    """
    Holds at most one subscription. Watching another session (or the same one again)
    cancels the previous subscription first, so repeated loads never leak listeners.
    """

    def __init__(self, subscribe: Callable[[str, OnUpdate], Subscription]):
        self._subscribe = subscribe
        self._current: Optional[Subscription] = None

    @property
    def current(self) -> Optional[Subscription]:
        return self._current

    async def watch(self, session_id: str, on_update: OnUpdate) -> Subscription:
        await self.stop()
        self._current = self._subscribe(session_id, on_update)
        return self._current

    async def stop(self) -> None:
        if self._current is not None:
            await self._current.cancel()
            self._current = None


async def stream_session_events(
    subscribe: Callable[[str, OnUpdate], Subscription],
    session_id: str,
    initial: Optional[MeetSession] = None,
    heartbeat_interval: float = HEARTBEAT_INTERVAL,
) -> AsyncGenerator[str, None]:
    """
    SSE body for GET /sessions/{id}/stream: `session_updated` events plus `: ping`
    heartbeats. Long-lived connection, so the subscription is always released. The
    stream ends once the subscription has died, letting the client reconnect.
    """
    queue: "asyncio.Queue[MeetSession]" = asyncio.Queue()
    subscription = subscribe(session_id, queue.put_nowait)
    try:
        if initial is not None:
            yield _sse_event(initial)
        while True:
            try:
                session = await asyncio.wait_for(queue.get(), timeout=heartbeat_interval)
            except asyncio.TimeoutError:
                if not subscription.active:
                    logger.warning("Change feed for session %s is gone, closing stream", session_id)
                    return
                yield ": ping\n\n"
                continue
            yield _sse_event(session)
    except asyncio.CancelledError:
        pass
    finally:
        await subscription.cancel()


def _sse_event(session: MeetSession) -> str:
    return f"event: session_updated\ndata: {session.model_dump_json()}\n\n"
