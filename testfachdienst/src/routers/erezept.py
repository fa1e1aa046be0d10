"""
Prescription REST router.

Provides CRUD endpoints below ``/api/erezept``. Stored prescriptions are
identified by their numeric ``id``; ``prescriptionId`` is the unique
business key and can be used for lookups as well.
"""

from typing import List

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status

from shared.metrics import setup_metrics
from testfachdienst.src.config import Settings
from testfachdienst.src.dependencies import get_app_settings, get_erezept_service
from testfachdienst.src.models.erezept import ErezeptRequest, ErezeptResponse
from testfachdienst.src.services.erezept_service import ErezeptService

logger = structlog.get_logger(__name__)

PRESCRIPTION_ID_EXISTS = "PrescriptionId already exists"

router = APIRouter(
    prefix="/api/erezept",
    tags=["E-Rezept"],
    responses={404: {"description": "Not Found"}},
)


def _record(operation: str, outcome: str) -> None:
    setup_metrics().erezept.operations.labels(channel="rest", operation=operation, outcome=outcome).inc()


@router.get(
    "",
    response_model=List[ErezeptResponse],
    summary="List all prescriptions",
)
async def list_erezepte(
    service: ErezeptService = Depends(get_erezept_service),
) -> List[ErezeptResponse]:
    _record("list", "success")
    return [ErezeptResponse.model_validate(item) for item in await service.find_all()]


@router.get(
    "/{erezept_id}",
    response_model=ErezeptResponse,
    summary="Get prescription by id",
)
async def get_erezept(
    erezept_id: int,
    service: ErezeptService = Depends(get_erezept_service),
) -> ErezeptResponse:
    erezept = await service.find_by_id(erezept_id)
    if erezept is None:
        _record("read", "not_found")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prescription not found")
    _record("read", "success")
    return ErezeptResponse.model_validate(erezept)


@router.get(
    "/by-prescription/{prescription_id}",
    response_model=ErezeptResponse,
    summary="Get prescription by prescriptionId",
)
async def get_erezept_by_prescription_id(
    prescription_id: str,
    service: ErezeptService = Depends(get_erezept_service),
) -> ErezeptResponse:
    erezept = await service.find_by_prescription_id(prescription_id)
    if erezept is None:
        _record("read", "not_found")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prescription not found")
    _record("read", "success")
    return ErezeptResponse.model_validate(erezept)


@router.post(
    "",
    response_model=ErezeptResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create prescription",
    description="""
    Create a prescription. A missing status defaults to CREATED; a supplied
    ``id`` is ignored.

    **Error Responses:**
    - 409: prescriptionId already exists
    - 422: Validation error
    """,
    responses={409: {"description": PRESCRIPTION_ID_EXISTS}},
)
async def create_erezept(
    request: ErezeptRequest,
    response: Response,
    service: ErezeptService = Depends(get_erezept_service),
    settings: Settings = Depends(get_app_settings),
) -> ErezeptResponse:
    created = await service.create(request.to_entity())
    if created is None:
        _record("create", "conflict")
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=PRESCRIPTION_ID_EXISTS)

    response.headers["Location"] = f"{settings.normalized_context_path}/api/erezept/{created.id}"
    _record("create", "success")
    return ErezeptResponse.model_validate(created)


@router.put(
    "/{erezept_id}",
    response_model=ErezeptResponse,
    summary="Update prescription",
    description="""
    Update medication name, dosage, expiry and status of a prescription.
    Identifiers and the issue date are not changed.
    """,
)
async def update_erezept(
    erezept_id: int,
    request: ErezeptRequest,
    service: ErezeptService = Depends(get_erezept_service),
) -> ErezeptResponse:
    updated = await service.update(erezept_id, request.to_entity())
    if updated is None:
        _record("update", "not_found")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prescription not found")
    _record("update", "success")
    return ErezeptResponse.model_validate(updated)


@router.delete(
    "/{erezept_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete prescription",
)
async def delete_erezept(
    erezept_id: int,
    service: ErezeptService = Depends(get_erezept_service),
) -> Response:
    if not await service.delete_if_exists(erezept_id):
        _record("delete", "not_found")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prescription not found")
    _record("delete", "success")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
