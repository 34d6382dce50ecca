"""
Hospital Directory

Hospital registry and the best-effort bed reservation that follows a
case acceptance. The reservation is keyed by case id, so re-driving it
after a partial failure never takes a second bed.
"""

from typing import List, Optional

from ..errors import NotFound, PreconditionFailed, ValidationError
from ..models.hospital import Hospital
from ..store import HOSPITALS, DocumentStore, RetryPolicy, doc_path


class HospitalDirectory:
    """Registry of hospitals and their bed counts"""

    MAX_ATTEMPTS = 5

    def __init__(
        self,
        store: DocumentStore,
        retry: Optional[RetryPolicy] = None
    ):
        self.store = store
        self.retry = retry or RetryPolicy()

    async def register(self, hospital: Hospital) -> Hospital:
        """
        Create or refresh a hospital entry

        Re-registering keeps the live bed count and the admitted case
        ledger of an existing entry; beds change only through
        reserve_bed() and set_beds().
        """
        existing = await self.get(hospital.id)
        if existing is not None:
            hospital = hospital.model_copy(update={
                'available_beds': existing.available_beds,
                'admitted_case_ids': existing.admitted_case_ids,
            })

        doc = await self.retry.run(
            lambda: self.store.set(doc_path(HOSPITALS, hospital.id), hospital.to_document()),
            f"register hospital {hospital.id}"
        )
        print(f"[DISPATCH] Hospital registered: {hospital.id} ({hospital.name}, {hospital.available_beds} beds)")
        return Hospital.from_document(doc)

    async def get(self, hospital_id: str) -> Optional[Hospital]:
        doc = await self.retry.run(
            lambda: self.store.get(doc_path(HOSPITALS, hospital_id)),
            f"read hospital {hospital_id}"
        )
        return Hospital.from_document(doc) if doc else None

    async def require(self, hospital_id: str) -> Hospital:
        hospital = await self.get(hospital_id)
        if hospital is None:
            raise NotFound(f"Hospital not found: {hospital_id}", details={'hospitalId': hospital_id})
        return hospital

    async def all(self) -> List[Hospital]:
        docs = await self.retry.run(lambda: self.store.query(HOSPITALS), "query hospitals")
        return [Hospital.from_document(d) for d in docs]

    async def reserve_bed(self, hospital_id: str, case_id: str) -> Hospital:
        """
        Take one bed for an accepted case

        Idempotent per case id. The count never drops below zero; a
        reservation against a full hospital is recorded and logged as
        overbooked rather than rejected, since the case is already bound.
        """
        path = doc_path(HOSPITALS, hospital_id)

        for _ in range(self.MAX_ATTEMPTS):
            hospital = await self.require(hospital_id)
            if case_id in hospital.admitted_case_ids:
                return hospital

            if hospital.available_beds <= 0:
                print(f"[WARN] Hospital {hospital_id} overbooked by case {case_id}")

            try:
                doc = await self.retry.run(
                    lambda: self.store.update(
                        path,
                        {
                            'available_beds': max(0, hospital.available_beds - 1),
                            'admitted_case_ids': hospital.admitted_case_ids + [case_id],
                        },
                        expected={
                            'available_beds': hospital.available_beds,
                            'admitted_case_ids': hospital.admitted_case_ids,
                        }
                    ),
                    f"reserve bed {hospital_id}"
                )
            except PreconditionFailed:
                continue

            updated = Hospital.from_document(doc)
            print(f"[DISPATCH] Bed reserved at {hospital_id} for {case_id} ({updated.available_beds} left)")
            return updated

        raise PreconditionFailed(path, {'admitted_case_ids': f"without {case_id}"})

    async def set_beds(self, hospital_id: str, available_beds: int) -> Hospital:
        """Manual bed count correction by hospital staff"""
        if available_beds < 0:
            raise ValidationError("available_beds must be >= 0", details={"hospitalId": hospital_id})
        await self.require(hospital_id)
        doc = await self.retry.run(
            lambda: self.store.update(doc_path(HOSPITALS, hospital_id), {'available_beds': available_beds}),
            f"set beds {hospital_id}"
        )
        return Hospital.from_document(doc)
