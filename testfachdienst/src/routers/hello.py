"""Public greeting endpoint."""

from fastapi import APIRouter, Depends

from testfachdienst.src.dependencies import get_hello_service
from testfachdienst.src.models.messages import HelloZetaResource
from testfachdienst.src.services.hello_service import HelloZetaService

router = APIRouter(tags=["Hello ZETA"])


@router.get("/hellozeta", response_model=HelloZetaResource, summary="Say hello")
async def hello_zeta(service: HelloZetaService = Depends(get_hello_service)) -> HelloZetaResource:
    return service.get_hello_zeta_resource()
