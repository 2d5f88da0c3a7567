"""
Live shipment tracking.

A ShipmentUpdateStream polls one shipment and yields a ShipmentUpdateEvent
each time its status changes. The first successful read always yields the
current state, so a subscriber starts from a known point. The stream ends
after yielding DELIVERED or CANCELLED, when the shipment disappears, or when
it is cancelled (``cancel()`` or task cancellation on client disconnect).
"""

import asyncio
from typing import AsyncIterator, Callable, Optional, Set
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool
from shared.core import get_logger
from app.domain.lifecycle import is_terminal
from app.domain.models import ShipmentStatus
from .schemas import ShipmentUpdateEvent

logger = get_logger(__name__)

SnapshotReader = Callable[[int], Optional[ShipmentUpdateEvent]]

# Returned by _read when every attempt in a tick failed
_SKIPPED = object()

class StreamRegistry:
    """Tracks live streams so shutdown can cancel them and metrics can count them."""

    def __init__(self):
        self._streams: Set["ShipmentUpdateStream"] = set()

    def add(self, stream: "ShipmentUpdateStream") -> None:
        self._streams.add(stream)

    def discard(self, stream: "ShipmentUpdateStream") -> None:
        self._streams.discard(stream)

    def cancel_all(self) -> int:
        streams = list(self._streams)
        for stream in streams:
            stream.cancel()
        return len(streams)

    def __len__(self) -> int:
        return len(self._streams)

active_streams = StreamRegistry()

class ShipmentUpdateStream:
    def __init__(
        self,
        shipment_id: int,
        reader: SnapshotReader,
        poll_interval: float = 5.0,
        read_attempts: int = 3,
        read_backoff: float = 0.2,
        registry: Optional[StreamRegistry] = None,
    ):
        self.shipment_id = shipment_id
        self._reader = reader
        self.poll_interval = poll_interval
        self.read_attempts = max(1, read_attempts)
        self.read_backoff = read_backoff
        self._registry = registry if registry is not None else active_streams
        self._cancelled = asyncio.Event()
        self.last_seen: Optional[ShipmentStatus] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    async def _wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; True if cancellation arrived meanwhile."""
        if self._cancelled.is_set():
            return True
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def _read(self):
        for attempt in range(1, self.read_attempts + 1):
            try:
                return await run_in_threadpool(self._reader, self.shipment_id)
            except SQLAlchemyError as e:
                logger.warning(
                    f"Stream read failed for shipment {self.shipment_id} "
                    f"(attempt {attempt}/{self.read_attempts}): {e}"
                )
                if attempt < self.read_attempts and await self._wait(self.read_backoff * attempt):
                    break
        return _SKIPPED

    async def events(self) -> AsyncIterator[ShipmentUpdateEvent]:
        self._registry.add(self)
        logger.info(f"Starting shipment update stream for: {self.shipment_id}")
        try:
            while not self._cancelled.is_set():
                snapshot = await self._read()
                if self._cancelled.is_set():
                    break
                if snapshot is None:
                    logger.info(f"Shipment {self.shipment_id} no longer exists, closing stream")
                    break
                if snapshot is not _SKIPPED and snapshot.status != self.last_seen:
                    self.last_seen = snapshot.status
                    yield snapshot
                    if is_terminal(snapshot.status):
                        logger.info(
                            f"Shipment {self.shipment_id} reached {snapshot.status.value}, closing stream"
                        )
                        break
                if await self._wait(self.poll_interval):
                    break
        except asyncio.CancelledError:
            logger.info(f"Stream for shipment {self.shipment_id} cancelled by caller")
            raise
        finally:
            self._registry.discard(self)
