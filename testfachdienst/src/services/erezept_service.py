"""
Prescription service exposing CRUD-style operations.

Wraps the repository with the duplicate and not-found semantics the REST
and STOMP layers share. Lookups that find nothing return None instead of
raising.
"""

from typing import List, Optional

import structlog

from shared.tracing import trace_function
from testfachdienst.src.models.erezept import Erezept, ErezeptStatus
from testfachdienst.src.repositories.erezept_repo import DuplicatePrescriptionError, ErezeptRepository

logger = structlog.get_logger(__name__)


class ErezeptService:
    """Application service for prescriptions."""

    def __init__(self, repository: ErezeptRepository):
        self.repository = repository

    @trace_function("erezept.find_all")
    async def find_all(self) -> List[Erezept]:
        return await self.repository.find_all()

    @trace_function("erezept.find_by_id")
    async def find_by_id(self, erezept_id: int) -> Optional[Erezept]:
        return await self.repository.find_by_id(erezept_id)

    @trace_function("erezept.find_by_prescription_id")
    async def find_by_prescription_id(self, prescription_id: str) -> Optional[Erezept]:
        return await self.repository.find_by_prescription_id(prescription_id)

    @trace_function("erezept.create")
    async def create(self, prescription: Erezept) -> Optional[Erezept]:
        """
        Store a prescription when its business identifier is unique.

        Args:
            prescription: Unsaved prescription

        Returns:
            Saved prescription, or None if the prescription_id already exists
        """
        if await self.exists_by_prescription_id(prescription.prescription_id):
            logger.info("erezept_create_duplicate", prescription_id=prescription.prescription_id)
            return None

        try:
            created = await self.repository.save(prescription)
        except DuplicatePrescriptionError:
            return None

        logger.info("erezept_created", id=created.id, prescription_id=created.prescription_id)
        return created

    @trace_function("erezept.update")
    async def update(self, erezept_id: int, update_data: Erezept) -> Optional[Erezept]:
        """
        Apply the mutable fields of ``update_data`` to a stored prescription.

        Only medication name, dosage, expiry and status change; identifiers
        and the issue date are kept.

        Args:
            erezept_id: Identifier of the prescription to update
            update_data: New field values

        Returns:
            Updated prescription, or None if it does not exist
        """
        existing = await self.repository.find_by_id(erezept_id)
        if existing is None:
            return None

        existing.medication_name = update_data.medication_name
        existing.dosage = update_data.dosage
        existing.expires_at = update_data.expires_at
        existing.status = update_data.status or ErezeptStatus.CREATED

        updated = await self.repository.save(existing)
        logger.info("erezept_updated", id=updated.id, status=updated.status.value)
        return updated

    @trace_function("erezept.delete_if_exists")
    async def delete_if_exists(self, erezept_id: int) -> bool:
        """Delete a prescription; return False if there was none."""
        if not await self.repository.exists_by_id(erezept_id):
            return False
        await self.repository.delete_by_id(erezept_id)
        logger.info("erezept_deleted", id=erezept_id)
        return True

    async def save(self, prescription: Erezept) -> Erezept:
        return await self.repository.save(prescription)

    async def delete_by_id(self, erezept_id: int) -> None:
        await self.repository.delete_by_id(erezept_id)

    async def exists_by_id(self, erezept_id: int) -> bool:
        return await self.repository.exists_by_id(erezept_id)

    async def exists_by_prescription_id(self, prescription_id: Optional[str]) -> bool:
        if prescription_id is None:
            return False
        return await self.repository.exists_by_prescription_id(prescription_id)
