"""
Live Tracking Tests

Location feed publishing with case context, and the periodic tracking
session driven by an injected sleep.
"""

import asyncio
import json
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from conftest import FakeGeocoder
from lifeline.cases import CaseEvent, CaseStore, TransitionContext
from lifeline.errors import LocationUnavailable, NotFound
from lifeline.fleet import FleetRegistry
from lifeline.models import (
    AmbulanceSnapshot,
    AmbulanceStatus,
    EmergencyCase,
    GeoPoint,
    HospitalSnapshot,
    Location,
    PatientInfo,
)
from lifeline.tracking import (
    LocationFeed,
    LocationSample,
    TrackingRegistry,
    TrackingSession,
)
from lifeline.services import GeocodingService


HOSPITAL = HospitalSnapshot(
    id="hosp-001",
    name="St. John's Hospital",
    location=GeoPoint(lat=12.9352, lng=77.6146),
)


class ScriptedSource:
    """Device source returning queued samples (or errors)"""

    def __init__(self, *readings):
        self.readings = list(readings)
        self.reads = 0

    async def read(self):
        self.reads += 1
        reading = self.readings.pop(0) if self.readings else LocationSample(lat=12.95, lng=77.60)
        if isinstance(reading, Exception):
            raise reading
        return reading


class ManualSleep:
    """Sleep that blocks until the test releases it"""

    def __init__(self):
        self.calls = []
        self._event = asyncio.Event()

    async def __call__(self, delay):
        self.calls.append(delay)
        await self._event.wait()
        self._event.clear()

    def release(self):
        self._event.set()


async def settle():
    """Let background tasks run until they block"""
    for _ in range(20):
        await asyncio.sleep(0)


@pytest.fixture
def fleet(store, retry):
    return FleetRegistry(store, retry)


@pytest.fixture
def cases(store, retry):
    return CaseStore(store, retry)


async def bound_case(cases, fleet, patient_data, with_hospital=True):
    """Case dispatched to amb-001 (optionally accepted by a hospital first)"""
    case = await cases.create(EmergencyCase(
        patient=PatientInfo(**patient_data),
        location=Location(lat=12.9716, lng=77.5946),
    ))
    if with_hospital:
        await cases.apply_transition(
            case.id, CaseEvent.ACCEPT, TransitionContext(hospital_id="hosp-001"),
            changes={"hospital_info": HOSPITAL}
        )
    await fleet.bind_case("amb-001", case.id)
    result = await cases.apply_transition(
        case.id, CaseEvent.DISPATCH, TransitionContext(ambulance_id="amb-001"),
        changes={"ambulance_info": AmbulanceSnapshot(id="amb-001")}
    )
    return result.after


# ============================================
# Location Sample Tests
# ============================================

class TestLocationSample:

    def test_from_dict_aliases(self):
        sample = LocationSample.from_dict({"latitude": "12.95", "longitude": 77.6, "accuracy": 8})
        assert sample.lat == 12.95
        assert sample.lng == 77.6
        assert sample.accuracy == 8

    def test_missing_position(self):
        assert not LocationSample.from_dict({"lat": 12.95}).has_position


# ============================================
# Location Feed Tests
# ============================================

class TestLocationFeed:
    """Test sample ingestion"""

    @pytest.mark.asyncio
    async def test_idle_ambulance_location(self, fleet, cases, make_ambulance):
        await fleet.register(make_ambulance("amb-001"))
        feed = LocationFeed(fleet, cases, geocoder=FakeGeocoder("Hosur Road, Bengaluru"))

        update = await feed.ingest("amb-001", LocationSample(lat=12.95, lng=77.60, timestamp=500.0))

        assert update.geocoded
        assert update.case_id is None
        assert update.ambulance.location.address == "Hosur Road, Bengaluru"
        assert update.ambulance.location.last_updated == 500.0
        assert update.ambulance.destination is None
        assert update.ambulance.status == AmbulanceStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_sample_without_position_dropped(self, fleet, cases, make_ambulance):
        await fleet.register(make_ambulance("amb-001", lat=12.97, lng=77.59))
        feed = LocationFeed(fleet, cases)

        assert await feed.ingest("amb-001", LocationSample(lat=None, lng=None)) is None
        assert await feed.ingest("amb-001", LocationSample(lat=95.0, lng=77.6)) is None
        assert (await fleet.require("amb-001")).location.lat == 12.97
        assert feed.get_statistics()["rejected"] == 2

    @pytest.mark.asyncio
    async def test_geocode_failure_still_publishes(self, fleet, cases, make_ambulance):
        await fleet.register(make_ambulance("amb-001"))
        feed = LocationFeed(fleet, cases, geocoder=FakeGeocoder(fail=True), placeholder_address="Location Update")

        update = await feed.ingest("amb-001", LocationSample(lat=12.95, lng=77.60))

        assert not update.geocoded
        assert update.ambulance.location.address == "Location Update"
        assert update.ambulance.location.lat == 12.95

    @pytest.mark.asyncio
    async def test_garbled_geocoder_body_still_publishes(self, fleet, cases, make_ambulance):
        await fleet.register(make_ambulance("amb-001"))
        geocoder = GeocodingService()
        response = MagicMock(status=200)
        response.json = AsyncMock(side_effect=json.JSONDecodeError("Expecting value", "<html>", 0))
        geocoder._session = MagicMock()
        geocoder._session.get.return_value.__aenter__ = AsyncMock(return_value=response)
        geocoder._session.get.return_value.__aexit__ = AsyncMock(return_value=False)

        with patch.object(geocoder, "initialize", new=AsyncMock()):
            feed = LocationFeed(fleet, cases, geocoder=geocoder, placeholder_address="Location Update")
            update = await feed.ingest("amb-001", LocationSample(lat=12.95, lng=77.60))

        assert not update.geocoded
        assert update.ambulance.location.lat == 12.95
        assert update.ambulance.location.address == "Location Update"
        assert feed.get_statistics()["geocodeFailures"] == 1

    @pytest.mark.asyncio
    async def test_case_context_towards_hospital(self, fleet, cases, make_ambulance, patient_data):
        await fleet.register(make_ambulance("amb-001"))
        case = await bound_case(cases, fleet, patient_data)
        feed = LocationFeed(fleet, cases)

        update = await feed.ingest("amb-001", LocationSample(lat=12.95, lng=77.60))

        assert update.case_id == case.id
        assert update.ambulance.destination.name == "St. John's Hospital"
        assert update.eta_minutes == 4
        assert update.ambulance.destination.eta == "4 min"
        assert update.ambulance.severity.value == "critical"
        assert update.ambulance.status == AmbulanceStatus.EN_ROUTE

    @pytest.mark.asyncio
    async def test_self_dispatch_heads_to_pickup(self, fleet, cases, make_ambulance, patient_data):
        await fleet.register(make_ambulance("amb-001"))
        await bound_case(cases, fleet, patient_data, with_hospital=False)
        feed = LocationFeed(fleet, cases, pickup_label="Patient pickup")

        update = await feed.ingest("amb-001", LocationSample(lat=12.9716, lng=77.5946))
        assert update.ambulance.destination.name == "Patient pickup"
        assert update.eta_minutes == 0

    @pytest.mark.asyncio
    async def test_context_cleared_after_release(self, fleet, cases, make_ambulance, patient_data):
        await fleet.register(make_ambulance("amb-001"))
        case = await bound_case(cases, fleet, patient_data)
        feed = LocationFeed(fleet, cases)
        await feed.ingest("amb-001", LocationSample(lat=12.95, lng=77.60))

        await cases.apply_transition(case.id, CaseEvent.CANCEL)
        await fleet.release("amb-001", case.id)
        update = await feed.ingest("amb-001", LocationSample(lat=12.951, lng=77.601))

        assert update.case_id is None
        assert update.ambulance.destination is None
        assert update.ambulance.severity is None

    @pytest.mark.asyncio
    async def test_observers_notified(self, fleet, cases, make_ambulance):
        await fleet.register(make_ambulance("amb-001"))
        feed = LocationFeed(fleet, cases)
        async_observer = AsyncMock()
        broken_observer = MagicMock(side_effect=RuntimeError("boom"))
        feed.add_observer(broken_observer)
        feed.add_observer(async_observer)

        update = await feed.ingest("amb-001", LocationSample(lat=12.95, lng=77.60))

        async_observer.assert_awaited_once_with(update)
        feed.remove_observer(async_observer)
        assert feed.get_statistics()["observers"] == 1

    @pytest.mark.asyncio
    async def test_unknown_ambulance(self, fleet, cases):
        feed = LocationFeed(fleet, cases)
        with pytest.raises(NotFound):
            await feed.ingest("amb-404", LocationSample(lat=12.95, lng=77.60))


# ============================================
# Tracking Session Tests
# ============================================

class TestTrackingSession:
    """Test periodic publishing"""

    @pytest.mark.asyncio
    async def test_first_sample_sent_immediately(self, fleet, cases, make_ambulance):
        await fleet.register(make_ambulance("amb-001"))
        feed = LocationFeed(fleet, cases)
        sleep = ManualSleep()
        session = TrackingSession(feed, "amb-001", ScriptedSource(), interval_seconds=10, sleep=sleep)

        session.start()
        await settle()

        assert session.sent == 1
        assert sleep.calls == [10]

        sleep.release()
        await settle()
        assert session.sent == 2

        await session.stop()
        assert not session.is_running

    @pytest.mark.asyncio
    async def test_nothing_sent_after_stop(self, fleet, cases, make_ambulance):
        await fleet.register(make_ambulance("amb-001"))
        feed = LocationFeed(fleet, cases)
        sleep = ManualSleep()
        source = ScriptedSource()
        session = TrackingSession(feed, "amb-001", source, sleep=sleep)

        session.start()
        await settle()
        await session.stop()
        sent = session.sent

        sleep.release()
        await settle()
        assert session.sent == sent
        assert await session.tick() is None

    @pytest.mark.asyncio
    async def test_location_unavailable_skipped(self, fleet, cases, make_ambulance):
        await fleet.register(make_ambulance("amb-001"))
        feed = LocationFeed(fleet, cases)
        source = ScriptedSource(LocationUnavailable("Permission denied"), LocationSample(lat=12.95, lng=77.60))
        session = TrackingSession(feed, "amb-001", source)

        assert await session.tick() is None
        assert session.failures == 1
        assert (await session.tick()) is not None
        assert session.sent == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [asyncio.TimeoutError(), OSError("GPS device busy")])
    async def test_device_read_error_does_not_stop_session(self, fleet, cases, make_ambulance, error):
        await fleet.register(make_ambulance("amb-001"))
        feed = LocationFeed(fleet, cases)
        sleep = ManualSleep()
        source = ScriptedSource(error, LocationSample(lat=12.95, lng=77.60))
        session = TrackingSession(feed, "amb-001", source, sleep=sleep)

        session.start()
        await settle()
        assert source.reads == 1
        assert session.sent == 0
        assert session.failures == 1
        assert session.is_running

        sleep.release()
        await settle()
        assert source.reads == 2
        assert session.sent == 1

        await session.stop()

    @pytest.mark.asyncio
    async def test_stop_after_loop_crashed(self, fleet, cases, make_ambulance):
        await fleet.register(make_ambulance("amb-001"))
        feed = LocationFeed(fleet, cases)
        sleep = AsyncMock(side_effect=RuntimeError("timer gone"))
        session = TrackingSession(feed, "amb-001", ScriptedSource(), sleep=sleep)

        session.start()
        await settle()
        assert not session.is_running

        await session.stop()
        assert session._task is None
        assert await session.tick() is None

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_stop_session(self, fleet, cases):
        feed = LocationFeed(fleet, cases)
        session = TrackingSession(feed, "amb-404", ScriptedSource())

        assert await session.tick() is None
        assert session.failures == 1
        assert session.get_statistics()["ticks"] == 1


class TestTrackingRegistry:
    """Test per-ambulance session management"""

    @pytest.mark.asyncio
    async def test_start_replace_and_stop_all(self, fleet, cases, make_ambulance):
        await fleet.register(make_ambulance("amb-001"))
        feed = LocationFeed(fleet, cases)
        registry = TrackingRegistry(feed, interval_seconds=5, sleep=ManualSleep())

        first = await registry.start("amb-001", ScriptedSource())
        assert await registry.start("amb-001", first.source) is first

        second = await registry.start("amb-001", ScriptedSource())
        assert second is not first
        assert not first.is_running
        assert second.interval_seconds == 5

        await registry.stop_all()
        assert registry.sessions == {}
        assert not second.is_running


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
