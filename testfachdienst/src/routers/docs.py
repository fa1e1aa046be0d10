"""AsyncAPI document endpoint for the STOMP API."""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from testfachdienst.src.config import Settings
from testfachdienst.src.dependencies import get_app_settings, get_destinations
from testfachdienst.src.ws.asyncapi import build_asyncapi_document
from testfachdienst.src.ws.destinations import StompDestinations

router = APIRouter(tags=["Documentation"])


@router.get("/asyncapi.json", summary="AsyncAPI document for STOMP channels")
async def asyncapi(
    settings: Settings = Depends(get_app_settings),
    destinations: StompDestinations = Depends(get_destinations),
) -> Dict[str, Any]:
    return build_asyncapi_document(
        destinations,
        title=settings.app_name,
        version=settings.app_version,
        websocket_path=settings.websocket_path,
    )
