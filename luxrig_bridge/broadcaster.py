"""
Status broadcaster.

Owns the set of live WebSocket subscribers and pushes full status snapshots
to them: one on connect, then one every broadcast interval. The periodic task
lives and dies with the application lifespan.

Protocol:
    Server sends: {"type": "status", "data": <snapshot>}
    Client may send: {"type": "status"} to pull a fresh snapshot,
                     {"type": "ping"} to get {"type": "pong"}
"""

import asyncio
import json
import logging
import uuid
from enum import Enum
from typing import Awaitable, Callable, Optional

from fastapi import WebSocket, WebSocketDisconnect

from .aggregator import AggregatedSnapshot

logger = logging.getLogger(__name__)


class SubscriberState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class Subscriber:
    """One live push connection. Holds nothing but the connection handle."""

    def __init__(self, websocket: WebSocket):
        self.id = uuid.uuid4().hex[:8]
        self.websocket = websocket
        self.state = SubscriberState.CONNECTING
        # One frame at a time: broadcasts and replies share the socket
        self._send_lock = asyncio.Lock()
        # Set once a send fails or times out; the frame may be half written
        self._send_failed = False

    @property
    def is_open(self) -> bool:
        return self.state == SubscriberState.OPEN

    async def send(self, text: str, timeout: float) -> None:
        """Send one frame. Raises on failure or timeout."""
        async with self._send_lock:
            if self._send_failed:
                raise ConnectionError(f"Subscriber {self.id} had a failed send")
            try:
                await asyncio.wait_for(self.websocket.send_text(text), timeout)
            except Exception:
                self._send_failed = True
                raise

    async def close(self) -> None:
        if self.state == SubscriberState.CLOSED:
            return
        self.state = SubscriberState.CLOSED
        try:
            await self.websocket.close()
        except Exception as e:
            # Already gone on the client side
            logger.debug("Subscriber %s close: %s", self.id, e)


class SubscriberRegistry:
    """Set of open subscribers, safe to mutate while a broadcast iterates."""

    def __init__(self):
        self._subscribers: set[Subscriber] = set()
        self._lock = asyncio.Lock()

    async def add(self, subscriber: Subscriber) -> None:
        async with self._lock:
            self._subscribers.add(subscriber)

    async def remove(self, subscriber: Subscriber) -> None:
        async with self._lock:
            self._subscribers.discard(subscriber)

    async def snapshot(self) -> list[Subscriber]:
        async with self._lock:
            return list(self._subscribers)

    def __len__(self) -> int:
        return len(self._subscribers)


class StatusBroadcaster:
    """Pushes aggregated status snapshots to every open subscriber."""

    def __init__(
        self,
        snapshot_factory: Callable[[], Awaitable[AggregatedSnapshot]],
        interval: float = 5.0,
        send_timeout: float = 2.0,
        registry: Optional[SubscriberRegistry] = None,
    ):
        self._snapshot_factory = snapshot_factory
        self.interval = interval
        self.send_timeout = send_timeout
        self.registry = registry or SubscriberRegistry()
        self._task: Optional[asyncio.Task] = None

    @property
    def subscriber_count(self) -> int:
        return len(self.registry)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Start the periodic broadcast task."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(), name="status-broadcaster")
        logger.info("Status broadcaster started (every %.1fs)", self.interval)

    async def stop(self) -> None:
        """Cancel the periodic task and close every subscriber."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        for subscriber in await self.registry.snapshot():
            await self.disconnect(subscriber)
        logger.info("Status broadcaster stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.publish_status()
            except Exception as e:
                logger.error("Periodic broadcast failed: %s", e, exc_info=True)

    # =========================================================================
    # Subscribers
    # =========================================================================

    async def connect(self, websocket: WebSocket) -> Subscriber:
        """
        Accept a connection and send it the initial snapshot.

        The subscriber only joins the broadcast set after the initial
        snapshot has been sent, so it is always the first frame it sees.
        """
        subscriber = Subscriber(websocket)
        await websocket.accept()
        subscriber.state = SubscriberState.OPEN

        try:
            await self.send_status(subscriber)
        except Exception as e:
            logger.warning("Initial status to %s failed: %s", subscriber.id, e)
            await subscriber.close()
            return subscriber

        await self.registry.add(subscriber)
        logger.info("Client %s connected to stream (%d total)", subscriber.id, len(self.registry))
        return subscriber

    async def disconnect(self, subscriber: Subscriber) -> None:
        await self.registry.remove(subscriber)
        await subscriber.close()
        logger.info("Client %s disconnected (%d remaining)", subscriber.id, len(self.registry))

    # =========================================================================
    # Sending
    # =========================================================================

    @staticmethod
    def status_message(snapshot: AggregatedSnapshot) -> dict:
        return {"type": "status", "data": snapshot.to_dict()}

    async def send_status(self, subscriber: Subscriber) -> None:
        """Send a fresh snapshot to one subscriber."""
        snapshot = await self._snapshot_factory()
        text = json.dumps(self.status_message(snapshot))
        await subscriber.send(text, self.send_timeout)

    async def broadcast(self, message: dict) -> int:
        """
        Send one message to every open subscriber.

        Serialized once. Sends run concurrently with a per-send timeout; a
        subscriber that fails or times out is closed and removed.

        Returns:
            Number of subscribers the message was delivered to
        """
        text = json.dumps(message)
        subscribers = [s for s in await self.registry.snapshot() if s.is_open]
        if not subscribers:
            return 0

        results = await asyncio.gather(
            *(s.send(text, self.send_timeout) for s in subscribers),
            return_exceptions=True,
        )

        delivered = 0
        for subscriber, result in zip(subscribers, results):
            if isinstance(result, BaseException):
                logger.warning("Dropping subscriber %s: %r", subscriber.id, result)
                await self.disconnect(subscriber)
            else:
                delivered += 1
        return delivered

    async def publish_status(self) -> int:
        """Broadcast a fresh snapshot, skipping the upstream queries when nobody listens."""
        if not len(self.registry):
            return 0
        snapshot = await self._snapshot_factory()
        return await self.broadcast(self.status_message(snapshot))

    # =========================================================================
    # WebSocket endpoint
    # =========================================================================

    async def handle(self, websocket: WebSocket) -> None:
        """Serve one WebSocket connection until it closes."""
        subscriber = await self.connect(websocket)
        if not subscriber.is_open:
            return

        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError:
                    await subscriber.send(
                        json.dumps({"type": "error", "message": "Invalid JSON"}),
                        self.send_timeout,
                    )
                    continue

                kind = data.get("type") if isinstance(data, dict) else None
                if kind == "status":
                    await self.send_status(subscriber)
                elif kind == "ping":
                    await subscriber.send(json.dumps({"type": "pong"}), self.send_timeout)
                else:
                    await subscriber.send(
                        json.dumps({"type": "error", "message": f"Unknown message type: {kind}"}),
                        self.send_timeout,
                    )
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.warning("Stream error for %s: %s", subscriber.id, e)
        finally:
            await self.disconnect(subscriber)
