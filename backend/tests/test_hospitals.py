"""
Hospital Directory Tests

Registry and idempotent bed reservation.
"""

import asyncio
import pytest

from lifeline.errors import NotFound, ValidationError
from lifeline.hospitals import HospitalDirectory


@pytest.fixture
def directory(store, retry):
    return HospitalDirectory(store, retry)


class TestHospitalDirectory:
    """Test hospital registry operations"""

    @pytest.mark.asyncio
    async def test_register_and_get(self, directory, make_hospital):
        await directory.register(make_hospital("hosp-001"))
        await directory.register(make_hospital("hosp-002"))

        hospital = await directory.require("hosp-001")
        assert hospital.available_beds == 5
        assert len(await directory.all()) == 2
        assert await directory.get("hosp-999") is None

    @pytest.mark.asyncio
    async def test_reregister_keeps_live_beds(self, directory, make_hospital):
        await directory.register(make_hospital("hosp-001", beds=5))
        await directory.reserve_bed("hosp-001", "case-1")

        hospital = await directory.register(make_hospital("hosp-001", name="St. John's Medical College", beds=5))

        assert hospital.name == "St. John's Medical College"
        assert hospital.available_beds == 4
        assert hospital.admitted_case_ids == ["case-1"]
        assert (await directory.reserve_bed("hosp-001", "case-1")).available_beds == 4

    @pytest.mark.asyncio
    async def test_require_missing(self, directory):
        with pytest.raises(NotFound):
            await directory.require("hosp-999")

    @pytest.mark.asyncio
    async def test_reserve_bed(self, directory, make_hospital):
        await directory.register(make_hospital("hosp-001", beds=5))

        hospital = await directory.reserve_bed("hosp-001", "case-1")
        assert hospital.available_beds == 4
        assert hospital.admitted_case_ids == ["case-1"]

    @pytest.mark.asyncio
    async def test_reserve_bed_is_idempotent_per_case(self, directory, make_hospital):
        await directory.register(make_hospital("hosp-001", beds=5))

        await directory.reserve_bed("hosp-001", "case-1")
        hospital = await directory.reserve_bed("hosp-001", "case-1")
        assert hospital.available_beds == 4

    @pytest.mark.asyncio
    async def test_concurrent_reservations_for_distinct_cases(self, directory, make_hospital):
        await directory.register(make_hospital("hosp-001", beds=5))

        await asyncio.gather(*(directory.reserve_bed("hosp-001", f"case-{i}") for i in range(3)))

        hospital = await directory.require("hosp-001")
        assert hospital.available_beds == 2
        assert sorted(hospital.admitted_case_ids) == ["case-0", "case-1", "case-2"]

    @pytest.mark.asyncio
    async def test_beds_never_negative(self, directory, make_hospital):
        await directory.register(make_hospital("hosp-001", beds=0))

        hospital = await directory.reserve_bed("hosp-001", "case-1")
        assert hospital.available_beds == 0
        assert hospital.admitted_case_ids == ["case-1"]

    @pytest.mark.asyncio
    async def test_set_beds(self, directory, make_hospital):
        await directory.register(make_hospital("hosp-001", beds=5))

        hospital = await directory.set_beds("hosp-001", 12)
        assert hospital.available_beds == 12

        with pytest.raises(ValidationError):
            await directory.set_beds("hosp-001", -1)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
