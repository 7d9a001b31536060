"""
Status broadcaster tests with in-memory WebSockets.
"""

import asyncio
import json

import pytest
from fastapi import WebSocketDisconnect

from luxrig_bridge.aggregator import AggregatedSnapshot
from luxrig_bridge.broadcaster import (
    StatusBroadcaster,
    Subscriber,
    SubscriberRegistry,
    SubscriberState,
)


class FakeWebSocket:
    def __init__(self, incoming=None, fail_send=False, send_delay=0.0):
        self.sent: list[dict] = []
        self.accepted = False
        self.closed = False
        self.incoming = list(incoming or [])
        self.fail_send = fail_send
        self.send_delay = send_delay

    async def accept(self):
        self.accepted = True

    async def send_text(self, text):
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.fail_send:
            raise ConnectionResetError("peer went away")
        self.sent.append(json.loads(text))

    async def receive_text(self):
        if not self.incoming:
            raise WebSocketDisconnect(code=1000)
        return self.incoming.pop(0)

    async def close(self):
        self.closed = True


class SnapshotCounter:
    """Snapshot factory that numbers each snapshot it builds."""

    def __init__(self):
        self.calls = 0

    async def __call__(self) -> AggregatedSnapshot:
        self.calls += 1
        return AggregatedSnapshot(timestamp=f"t{self.calls}", services={})


def make_broadcaster(**kwargs):
    factory = SnapshotCounter()
    kwargs.setdefault("interval", 60.0)
    kwargs.setdefault("send_timeout", 0.5)
    return StatusBroadcaster(snapshot_factory=factory, **kwargs), factory


class TestRegistry:
    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self):
        registry = SubscriberRegistry()
        first = Subscriber(FakeWebSocket())
        await registry.add(first)

        snapshot = await registry.snapshot()
        await registry.remove(first)

        assert snapshot == [first]
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        ws = FakeWebSocket()
        subscriber = Subscriber(ws)
        subscriber.state = SubscriberState.OPEN

        await subscriber.close()
        ws.closed = False
        await subscriber.close()

        assert subscriber.state == SubscriberState.CLOSED
        assert ws.closed is False


class OverlapTrackingWebSocket(FakeWebSocket):
    """Records the most sends ever in flight at once."""

    def __init__(self):
        super().__init__(send_delay=0.01)
        self.in_flight = 0
        self.max_in_flight = 0

    async def send_text(self, text):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await super().send_text(text)
        finally:
            self.in_flight -= 1


class TestSubscriberSend:
    @pytest.mark.asyncio
    async def test_frames_never_interleave(self):
        ws = OverlapTrackingWebSocket()
        subscriber = Subscriber(ws)
        subscriber.state = SubscriberState.OPEN

        await asyncio.gather(*(subscriber.send(json.dumps({"n": n}), 1.0) for n in range(5)))

        assert ws.max_in_flight == 1
        assert sorted(m["n"] for m in ws.sent) == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_no_sends_after_timeout(self):
        ws = FakeWebSocket(send_delay=1.0)
        subscriber = Subscriber(ws)
        subscriber.state = SubscriberState.OPEN

        with pytest.raises(asyncio.TimeoutError):
            await subscriber.send(json.dumps({"type": "status"}), 0.01)
        ws.send_delay = 0.0
        with pytest.raises(ConnectionError):
            await subscriber.send(json.dumps({"type": "pong"}), 1.0)

        assert ws.sent == []

    @pytest.mark.asyncio
    async def test_reply_during_broadcast_is_serialized(self):
        broadcaster, _ = make_broadcaster()
        ws = OverlapTrackingWebSocket()
        subscriber = await broadcaster.connect(ws)

        await asyncio.gather(
            broadcaster.publish_status(),
            subscriber.send(json.dumps({"type": "pong"}), 1.0),
        )

        assert ws.max_in_flight == 1
        assert [m["type"] for m in ws.sent].count("status") == 2


class TestConnect:
    @pytest.mark.asyncio
    async def test_initial_snapshot_then_periodic(self):
        broadcaster, factory = make_broadcaster()
        ws = FakeWebSocket()

        subscriber = await broadcaster.connect(ws)
        assert ws.accepted
        assert subscriber.is_open
        assert ws.sent == [{"type": "status", "data": {
            "timestamp": "t1", "services": {}, "system": {}, "agents": [],
        }}]

        delivered = await broadcaster.publish_status()

        assert delivered == 1
        assert [m["data"]["timestamp"] for m in ws.sent] == ["t1", "t2"]

    @pytest.mark.asyncio
    async def test_failed_initial_send_never_joins(self):
        broadcaster, _ = make_broadcaster()
        ws = FakeWebSocket(fail_send=True)

        subscriber = await broadcaster.connect(ws)

        assert subscriber.state == SubscriberState.CLOSED
        assert ws.closed
        assert broadcaster.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_disconnected_receives_nothing(self):
        broadcaster, _ = make_broadcaster()
        ws = FakeWebSocket()
        subscriber = await broadcaster.connect(ws)

        await broadcaster.disconnect(subscriber)
        await broadcaster.publish_status()

        assert len(ws.sent) == 1
        assert ws.closed
        assert broadcaster.subscriber_count == 0


class TestBroadcast:
    @pytest.mark.asyncio
    async def test_no_subscribers_skips_snapshot(self):
        broadcaster, factory = make_broadcaster()

        assert await broadcaster.publish_status() == 0
        assert factory.calls == 0

    @pytest.mark.asyncio
    async def test_failing_subscriber_is_dropped(self):
        broadcaster, _ = make_broadcaster()
        good = FakeWebSocket()
        bad = FakeWebSocket()
        await broadcaster.connect(good)
        await broadcaster.connect(bad)
        bad.fail_send = True

        delivered = await broadcaster.publish_status()

        assert delivered == 1
        assert len(good.sent) == 2
        assert bad.closed
        assert broadcaster.subscriber_count == 1

    @pytest.mark.asyncio
    async def test_slow_subscriber_does_not_block_others(self):
        broadcaster, _ = make_broadcaster(send_timeout=0.05)
        fast = FakeWebSocket()
        slow = FakeWebSocket()
        await broadcaster.connect(fast)
        await broadcaster.connect(slow)
        slow.send_delay = 5.0

        delivered = await asyncio.wait_for(broadcaster.broadcast({"type": "ping"}), timeout=1.0)

        assert delivered == 1
        assert fast.sent[-1] == {"type": "ping"}
        assert slow.closed
        assert broadcaster.subscriber_count == 1

    @pytest.mark.asyncio
    async def test_every_subscriber_gets_same_snapshot(self):
        broadcaster, factory = make_broadcaster()
        sockets = [FakeWebSocket() for _ in range(3)]
        for ws in sockets:
            await broadcaster.connect(ws)
        calls_before = factory.calls

        await broadcaster.publish_status()

        assert factory.calls == calls_before + 1
        assert len({ws.sent[-1]["data"]["timestamp"] for ws in sockets}) == 1


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_periodic_task_publishes(self):
        broadcaster, _ = make_broadcaster(interval=0.01)
        ws = FakeWebSocket()
        await broadcaster.connect(ws)

        broadcaster.start()
        await asyncio.sleep(0.1)
        await broadcaster.stop()

        assert len(ws.sent) >= 2
        assert ws.closed
        assert broadcaster.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        broadcaster, _ = make_broadcaster()
        await broadcaster.stop()
        assert broadcaster.subscriber_count == 0


class TestHandle:
    @pytest.mark.asyncio
    async def test_client_messages(self):
        broadcaster, _ = make_broadcaster()
        ws = FakeWebSocket(incoming=[
            json.dumps({"type": "ping"}),
            json.dumps({"type": "status"}),
            "not json",
            json.dumps({"type": "bogus"}),
        ])

        await broadcaster.handle(ws)

        types = [m["type"] for m in ws.sent]
        assert types == ["status", "pong", "status", "error", "error"]
        assert ws.sent[4]["message"] == "Unknown message type: bogus"
        assert ws.closed
        assert broadcaster.subscriber_count == 0
