import asyncio

import pytest
from sqlalchemy.exc import OperationalError

from app.application.schemas import ShipmentUpdateEvent
from app.application.streaming import ShipmentUpdateStream, StreamRegistry
from app.domain.models import ShipmentStatus

PENDING = ShipmentStatus.PENDING
PROCESSING = ShipmentStatus.PROCESSING
SHIPPED = ShipmentStatus.SHIPPED
IN_TRANSIT = ShipmentStatus.IN_TRANSIT
DELIVERED = ShipmentStatus.DELIVERED
CANCELLED = ShipmentStatus.CANCELLED

def snapshot(status):
    return ShipmentUpdateEvent(
        shipment_id=1, status=status, location="Hub A", timestamp="2024-05-01T10:00:00Z"
    )

def store_down():
    return OperationalError("SELECT shipments", {}, Exception("connection refused"))

class ScriptedReader:
    """Returns the scripted results in order, repeating the last one."""

    def __init__(self, *script):
        self.script = list(script)
        self.calls = 0

    def __call__(self, shipment_id):
        self.calls += 1
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        return item

def make_stream(reader, **kwargs):
    kwargs.setdefault("poll_interval", 0.01)
    kwargs.setdefault("read_backoff", 0)
    kwargs.setdefault("registry", StreamRegistry())
    return ShipmentUpdateStream(1, reader, **kwargs)

async def collect(stream):
    return [event async for event in stream.events()]

def statuses(events):
    return [e.status for e in events]

def test_already_shipped_emits_immediately_then_on_each_change():
    reader = ScriptedReader(
        snapshot(SHIPPED), snapshot(SHIPPED), snapshot(IN_TRANSIT), snapshot(IN_TRANSIT), snapshot(DELIVERED)
    )
    events = asyncio.run(collect(make_stream(reader)))

    assert statuses(events) == [SHIPPED, IN_TRANSIT, DELIVERED]
    # no tick after the terminal event
    assert reader.calls == 5

def test_pending_shipment_emits_its_current_state_first():
    reader = ScriptedReader(snapshot(PENDING), snapshot(PENDING), snapshot(CANCELLED))
    events = asyncio.run(collect(make_stream(reader)))
    assert statuses(events) == [PENDING, CANCELLED]

def test_terminal_shipment_emits_once_and_closes():
    reader = ScriptedReader(snapshot(DELIVERED))
    events = asyncio.run(collect(make_stream(reader)))
    assert statuses(events) == [DELIVERED]
    assert reader.calls == 1

def test_stream_closes_when_shipment_disappears():
    reader = ScriptedReader(snapshot(PENDING), None)
    events = asyncio.run(collect(make_stream(reader)))
    assert statuses(events) == [PENDING]
    assert reader.calls == 2

def test_transient_read_failures_skip_the_tick():
    reader = ScriptedReader(
        snapshot(PENDING),
        store_down(), store_down(),   # whole tick lost
        store_down(), snapshot(PROCESSING),  # recovered on retry
        snapshot(DELIVERED),
    )
    events = asyncio.run(collect(make_stream(reader, read_attempts=2)))
    assert statuses(events) == [PENDING, PROCESSING, DELIVERED]
    assert reader.calls == 6

def test_unexpected_errors_are_not_swallowed():
    reader = ScriptedReader(ValueError("bad row"))
    with pytest.raises(ValueError):
        asyncio.run(collect(make_stream(reader)))

def test_cancel_interrupts_the_wait_without_emitting():
    registry = StreamRegistry()
    reader = ScriptedReader(snapshot(PENDING), snapshot(SHIPPED))
    stream = make_stream(reader, poll_interval=30, registry=registry)
    received = []

    async def scenario():
        async def consume():
            async for event in stream.events():
                received.append(event)

        task = asyncio.create_task(consume())
        while not received:
            await asyncio.sleep(0.01)
        assert len(registry) == 1
        stream.cancel()
        await asyncio.wait_for(task, timeout=2)

    asyncio.run(scenario())
    assert statuses(received) == [PENDING]
    assert reader.calls == 1
    assert stream.cancelled
    assert len(registry) == 0

def test_cancelled_before_start_never_reads():
    reader = ScriptedReader(snapshot(PENDING))
    stream = make_stream(reader)
    stream.cancel()
    assert asyncio.run(collect(stream)) == []
    assert reader.calls == 0

def test_task_cancellation_propagates_and_unregisters():
    registry = StreamRegistry()
    reader = ScriptedReader(snapshot(PENDING))
    stream = make_stream(reader, poll_interval=30, registry=registry)

    async def scenario():
        task = asyncio.create_task(collect(stream))
        while reader.calls == 0:
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert len(registry) == 0

def test_registry_cancels_all_streams():
    registry = StreamRegistry()
    streams = [
        make_stream(ScriptedReader(snapshot(PENDING)), poll_interval=30, registry=registry)
        for _ in range(2)
    ]

    async def scenario():
        tasks = [asyncio.create_task(collect(s)) for s in streams]
        while any(s.last_seen is None for s in streams):
            await asyncio.sleep(0.01)
        assert len(registry) == 2
        assert registry.cancel_all() == 2
        return await asyncio.wait_for(asyncio.gather(*tasks), timeout=2)

    results = asyncio.run(scenario())
    assert [statuses(r) for r in results] == [[PENDING], [PENDING]]
    assert len(registry) == 0
