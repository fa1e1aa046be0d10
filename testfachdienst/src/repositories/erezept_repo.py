"""
Prescription repository for database operations.

Provides async CRUD operations for prescriptions using SQLAlchemy's asyncio
API. Every public method runs in its own transaction.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

import structlog
from sqlalchemy import delete, exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from testfachdienst.src.models.erezept import Erezept

logger = structlog.get_logger(__name__)


class DuplicatePrescriptionError(ValueError):
    """Raised when a prescription_id is already taken."""

    def __init__(self, prescription_id: str):
        super().__init__(f"PrescriptionId '{prescription_id}' already exists")
        self.prescription_id = prescription_id


class ErezeptRepository:
    """Repository for prescription database operations."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize prescription repository.

        Args:
            session_factory: SQLAlchemy async session factory
        """
        self.session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """
        Context manager for database transactions.

        Yields:
            AsyncSession bound to an open transaction
        """
        async with self.session_factory() as session:
            async with session.begin():
                yield session

    async def find_all(self) -> List[Erezept]:
        async with self.transaction() as session:
            result = await session.scalars(select(Erezept).order_by(Erezept.id))
            return list(result)

    async def find_by_id(self, erezept_id: int) -> Optional[Erezept]:
        async with self.transaction() as session:
            erezept = await session.get(Erezept, erezept_id)
            if erezept is None:
                logger.debug("erezept_not_found", id=erezept_id)
            return erezept

    async def find_by_prescription_id(self, prescription_id: str) -> Optional[Erezept]:
        """
        Locate a prescription by its external identifier.

        Args:
            prescription_id: Unique business identifier

        Returns:
            Prescription or None if not found
        """
        async with self.transaction() as session:
            return await session.scalar(
                select(Erezept).where(Erezept.prescription_id == prescription_id)
            )

    async def exists_by_id(self, erezept_id: int) -> bool:
        async with self.transaction() as session:
            return bool(await session.scalar(select(exists().where(Erezept.id == erezept_id))))

    async def exists_by_prescription_id(self, prescription_id: str) -> bool:
        async with self.transaction() as session:
            return bool(
                await session.scalar(
                    select(exists().where(Erezept.prescription_id == prescription_id))
                )
            )

    async def save(self, erezept: Erezept) -> Erezept:
        """
        Insert a new prescription or update an existing one.

        Entities with an ``id`` are merged into the stored row, others are
        inserted and get a generated ``id``.

        Args:
            erezept: Entity to store

        Returns:
            The stored entity

        Raises:
            DuplicatePrescriptionError: If the prescription_id is taken
        """
        try:
            async with self.transaction() as session:
                if erezept.id is None:
                    session.add(erezept)
                    stored = erezept
                else:
                    stored = await session.merge(erezept)
                await session.flush()

            logger.debug("erezept_saved", id=stored.id, prescription_id=stored.prescription_id)
            return stored

        except IntegrityError as e:
            message = str(e.orig).lower()
            if "prescription_id" in message or "unique" in message:
                logger.warning("prescription_id_already_exists", prescription_id=erezept.prescription_id)
                raise DuplicatePrescriptionError(erezept.prescription_id) from e
            raise

    async def delete_by_id(self, erezept_id: int) -> None:
        async with self.transaction() as session:
            await session.execute(delete(Erezept).where(Erezept.id == erezept_id))
