"""
Tracking Session

Cancellable periodic task that reads an ambulance's device location and
feeds it to the LocationFeed. The first sample is sent immediately on
start, then one every interval. After stop() nothing more is sent.

The sleep function is injectable so tests can drive ticks without
waiting on the wall clock.
"""

from typing import Any, Awaitable, Callable, Dict, Optional
import asyncio

from ..errors import DispatchError, LocationUnavailable
from .location_feed import LocationFeed, LocationSample, TrackingUpdate


class TrackingSession:
    """
    Periodic location publishing for one ambulance

    `source` is any object with `async read() -> LocationSample`
    (raising LocationUnavailable when the device cannot provide one).

    Usage:
        session = TrackingSession(feed, "amb-001", device)
        session.start()
        ...
        await session.stop()
    """

    def __init__(
        self,
        feed: LocationFeed,
        ambulance_id: str,
        source,
        interval_seconds: float = 10,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None
    ):
        self.feed = feed
        self.ambulance_id = ambulance_id
        self.source = source
        self.interval_seconds = interval_seconds
        self._sleep = sleep or asyncio.sleep

        self._task: Optional[asyncio.Task] = None
        self._stopped = False

        # Statistics
        self.ticks = 0
        self.sent = 0
        self.failures = 0
        self.last_update: Optional[TrackingUpdate] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Start periodic tracking (no-op if already running)"""
        if self.is_running:
            return
        self._stopped = False
        self._task = asyncio.create_task(self._run())
        print(f"[TRACKING] Tracking started for {self.ambulance_id} (every {self.interval_seconds}s)")

    async def stop(self):
        """Stop tracking; no sample is sent after this returns"""
        self._stopped = True
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                print(f"[ERROR] Tracking task for {self.ambulance_id} ended with: {e!r}")
        print(f"[TRACKING] Tracking stopped for {self.ambulance_id}")

    async def tick(self) -> Optional[TrackingUpdate]:
        """Read one sample and publish it"""
        if self._stopped:
            return None

        self.ticks += 1
        try:
            sample: LocationSample = await self.source.read()
        except LocationUnavailable as e:
            self.failures += 1
            print(f"[TRACKING] Location unavailable for {self.ambulance_id}: {e.message}")
            return None
        except Exception as e:
            # Device read failed (timeout, I/O); try again next interval
            self.failures += 1
            print(f"[TRACKING] Location read failed for {self.ambulance_id}: {e!r}")
            return None

        if self._stopped:
            return None

        try:
            update = await self.feed.ingest(self.ambulance_id, sample)
        except DispatchError as e:
            self.failures += 1
            print(f"[TRACKING] Failed to publish location for {self.ambulance_id}: {e.message}")
            return None

        if update is not None:
            self.sent += 1
            self.last_update = update
        return update

    async def _run(self):
        while not self._stopped:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.failures += 1
                print(f"[ERROR] Tracking tick failed for {self.ambulance_id}: {e!r}")
            if self._stopped:
                break
            await self._sleep(self.interval_seconds)

    def get_statistics(self) -> Dict[str, Any]:
        return {
            'ambulanceId': self.ambulance_id,
            'running': self.is_running,
            'intervalSeconds': self.interval_seconds,
            'ticks': self.ticks,
            'sent': self.sent,
            'failures': self.failures,
        }


class TrackingRegistry:
    """One tracking session per ambulance, stoppable as a group"""

    def __init__(self, feed: LocationFeed, interval_seconds: float = 10, sleep=None):
        self.feed = feed
        self.interval_seconds = interval_seconds
        self._sleep = sleep
        self.sessions: Dict[str, TrackingSession] = {}

    async def start(self, ambulance_id: str, source) -> TrackingSession:
        session = self.sessions.get(ambulance_id)
        if session is not None and session.source is not source:
            await session.stop()
            session = None
        if session is None:
            session = TrackingSession(
                self.feed, ambulance_id, source,
                interval_seconds=self.interval_seconds,
                sleep=self._sleep
            )
            self.sessions[ambulance_id] = session
        session.start()
        return session

    async def stop(self, ambulance_id: str):
        session = self.sessions.pop(ambulance_id, None)
        if session is not None:
            await session.stop()

    async def stop_all(self):
        for ambulance_id in list(self.sessions):
            await self.stop(ambulance_id)
