"""
Unit tests for ErezeptService and ErezeptRepository.

Runs against an in-memory SQLite database per test.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from testfachdienst.src.config import Settings
from testfachdienst.src.database import build_engine, build_session_factory, init_schema, ping
from testfachdienst.src.models.erezept import Erezept, ErezeptStatus, ensure_utc
from testfachdienst.src.repositories.erezept_repo import DuplicatePrescriptionError, ErezeptRepository
from testfachdienst.src.services.erezept_service import ErezeptService


def make_erezept(prescription_id: str = "RX-1", **overrides) -> Erezept:
    now = datetime.now(timezone.utc)
    values = dict(
        medication_name="Ibuprofen 400 mg",
        dosage="1 tablet, 3x daily",
        issued_at=now - timedelta(days=1),
        expires_at=now + timedelta(days=30),
        status=ErezeptStatus.CREATED,
        patient_id="PAT-1",
        practitioner_id="PRAC-1",
        prescription_id=prescription_id,
    )
    values.update(overrides)
    return Erezept(**values)


@pytest_asyncio.fixture
async def engine():
    engine = build_engine(Settings(_env_file=None, database_url="sqlite+aiosqlite:///:memory:"))
    await init_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def repository(engine) -> ErezeptRepository:
    return ErezeptRepository(build_session_factory(engine))


@pytest.fixture
def service(repository) -> ErezeptService:
    return ErezeptService(repository)


class TestErezeptRepository:

    @pytest.mark.asyncio
    async def test_save_generates_id(self, repository):
        saved = await repository.save(make_erezept())

        assert saved.id is not None
        assert await repository.exists_by_id(saved.id)
        assert await repository.exists_by_prescription_id("RX-1")

    @pytest.mark.asyncio
    async def test_duplicate_prescription_id_raises(self, repository):
        await repository.save(make_erezept("RX-DUP"))

        with pytest.raises(DuplicatePrescriptionError) as exc_info:
            await repository.save(make_erezept("RX-DUP"))

        assert exc_info.value.prescription_id == "RX-DUP"

    @pytest.mark.asyncio
    async def test_find_all_is_ordered_by_id(self, repository):
        first = await repository.save(make_erezept("RX-A"))
        second = await repository.save(make_erezept("RX-B"))

        assert [item.id for item in await repository.find_all()] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_find_by_prescription_id(self, repository):
        saved = await repository.save(make_erezept("RX-FIND"))

        found = await repository.find_by_prescription_id("RX-FIND")

        assert found.id == saved.id
        assert await repository.find_by_prescription_id("RX-MISSING") is None

    @pytest.mark.asyncio
    async def test_delete_by_id(self, repository):
        saved = await repository.save(make_erezept())

        await repository.delete_by_id(saved.id)

        assert await repository.find_by_id(saved.id) is None

    @pytest.mark.asyncio
    async def test_ping(self, engine):
        assert await ping(engine) is True


class TestErezeptService:

    @pytest.mark.asyncio
    async def test_create_returns_saved_entity(self, service):
        created = await service.create(make_erezept("RX-NEW"))

        assert created is not None
        assert created.id is not None
        assert created.status == ErezeptStatus.CREATED

    @pytest.mark.asyncio
    async def test_create_duplicate_returns_none(self, service):
        await service.create(make_erezept("RX-TWICE"))

        assert await service.create(make_erezept("RX-TWICE")) is None
        assert len(await service.find_all()) == 1

    @pytest.mark.asyncio
    async def test_update_changes_only_mutable_fields(self, service):
        created = await service.create(make_erezept("RX-UPD"))
        new_expiry = datetime.now(timezone.utc) + timedelta(days=365)

        updated = await service.update(
            created.id,
            make_erezept(
                "RX-OTHER",
                medication_name="Paracetamol 500 mg",
                dosage="2 tablets",
                expires_at=new_expiry,
                status=ErezeptStatus.DISPENSED,
                patient_id="PAT-OTHER",
                practitioner_id="PRAC-OTHER",
                issued_at=datetime(2020, 1, 1, tzinfo=timezone.utc),
            ),
        )

        assert updated.medication_name == "Paracetamol 500 mg"
        assert updated.dosage == "2 tablets"
        assert updated.status == ErezeptStatus.DISPENSED
        assert updated.prescription_id == "RX-UPD"
        assert updated.patient_id == "PAT-1"
        assert updated.practitioner_id == "PRAC-1"
        assert ensure_utc(updated.issued_at) == ensure_utc(created.issued_at)

    @pytest.mark.asyncio
    async def test_update_without_status_sets_created(self, service):
        created = await service.create(make_erezept("RX-STATUS", status=ErezeptStatus.SIGNED))

        updated = await service.update(created.id, make_erezept("RX-STATUS", status=None))

        assert updated.status == ErezeptStatus.CREATED

    @pytest.mark.asyncio
    async def test_update_missing_returns_none(self, service):
        assert await service.update(999, make_erezept()) is None

    @pytest.mark.asyncio
    async def test_delete_if_exists(self, service):
        created = await service.create(make_erezept())

        assert await service.delete_if_exists(created.id) is True
        assert await service.delete_if_exists(created.id) is False

    @pytest.mark.asyncio
    async def test_exists_by_prescription_id_handles_none(self, service):
        assert await service.exists_by_prescription_id(None) is False
