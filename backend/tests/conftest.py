"""
Shared fixtures for the dispatch tests

Coordinates are around central Bengaluru.
"""

import pytest
import time

from lifeline.cases import CaseStore
from lifeline.dispatch import DispatchCoordinator
from lifeline.errors import GeoLookupFailed
from lifeline.fleet import FleetRegistry
from lifeline.hospitals import HospitalDirectory
from lifeline.matching import RouteScorer
from lifeline.models import Ambulance, AmbulanceLocation, GeoPoint, Hospital
from lifeline.store import InMemoryDocumentStore, RetryPolicy


# MG Road, patient pickup
INCIDENT = {"lat": 12.9716, "lng": 77.5946}

# St. John's, Koramangala
HOSPITAL_POINT = {"lat": 12.9352, "lng": 77.6146}

# Ambulance parked near Shanti Nagar
AMBULANCE_POINT = {"lat": 12.9500, "lng": 77.6000}


async def no_sleep(delay):
    """Backoff sleep that returns immediately"""
    return None


class FakeGeocoder:
    """Reverse geocoder returning a fixed address (or failing)"""

    def __init__(self, address="MG Road, Bengaluru", fail=False):
        self.address = address
        self.fail = fail
        self.calls = 0

    async def reverse(self, lat, lng):
        self.calls += 1
        if self.fail:
            raise GeoLookupFailed("Geocoding disabled")
        return self.address


@pytest.fixture
def patient_data():
    """Patient as entered by the crew"""
    return {
        "name": "Ravi Kumar",
        "age": 54,
        "gender": "male",
        "symptoms": "Chest pain, shortness of breath",
        "severity": "critical",
    }


@pytest.fixture
def incident_location():
    return dict(INCIDENT)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def retry():
    """Retry policy that never waits"""
    return RetryPolicy(attempts=3, base_delay=0, max_delay=0, sleep=no_sleep)


@pytest.fixture
def make_hospital():
    """Factory for hospital registry entries"""
    def _make(hospital_id="hosp-001", lat=HOSPITAL_POINT["lat"], lng=HOSPITAL_POINT["lng"], beds=5, **kwargs):
        return Hospital(
            id=hospital_id,
            name=kwargs.pop("name", f"Hospital {hospital_id}"),
            address=kwargs.pop("address", "Sarjapur Road, Bengaluru"),
            contact=kwargs.pop("contact", "+91 80 2206 5000"),
            location=GeoPoint(lat=lat, lng=lng),
            total_beds=kwargs.pop("total_beds", max(beds, 10)),
            available_beds=beds,
            **kwargs
        )
    return _make


@pytest.fixture
def make_ambulance():
    """Factory for fleet entries"""
    def _make(ambulance_id="amb-001", lat=None, lng=None, last_updated=None, **kwargs):
        location = None
        if lat is not None and lng is not None:
            location = AmbulanceLocation(
                lat=lat,
                lng=lng,
                last_updated=last_updated if last_updated is not None else time.time()
            )
        return Ambulance(
            id=ambulance_id,
            driver_name=kwargs.pop("driver_name", f"Driver {ambulance_id}"),
            vehicle_number=kwargs.pop("vehicle_number", f"KA01-{ambulance_id[-3:].upper()}"),
            location=location,
            **kwargs
        )
    return _make


@pytest.fixture
def build_coordinator(store, retry):
    """Async factory wiring a coordinator over the in-memory store"""
    async def _build(geocoder=None, routing_provider=None, ws_emitter=None, clock=time.time, doc_store=None):
        doc_store = doc_store or store
        cases = CaseStore(doc_store, retry, clock=clock)
        fleet = FleetRegistry(doc_store, retry)
        hospitals = HospitalDirectory(doc_store, retry)
        await fleet.load()
        return DispatchCoordinator(
            cases, fleet, hospitals,
            route_scorer=RouteScorer(routing_provider),
            geocoder=geocoder,
            ws_emitter=ws_emitter,
            tracking_sleep=no_sleep,
            clock=clock
        )
    return _build
