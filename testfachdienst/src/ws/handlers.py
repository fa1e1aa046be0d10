"""
STOMP message handlers for prescriptions.

Handlers are addressed relative to the application prefix
(e.g. ``/app/erezept.read.5``). The return value of a handler is sent to
the caller on its user queue; create and update also broadcast the stored
prescription on the prescription topic. Failures are mapped to a
WebSocketErrorResponse on the same user queue.
"""

import json
import re
from typing import Any, Awaitable, Callable, List, Optional, Pattern, Tuple

import structlog
from fastapi import HTTPException, status

from shared.metrics import ErezeptMetrics
from shared.runtime import exit_on_out_of_memory
from testfachdienst.src.models.erezept import (
    DeletedResponse,
    ErezeptRequest,
    ErezeptResponse,
    ErezeptStatus,
)
from testfachdienst.src.repositories.erezept_repo import DuplicatePrescriptionError
from testfachdienst.src.services.erezept_service import ErezeptService
from testfachdienst.src.ws.broker import SimpleBroker, StompSession
from testfachdienst.src.ws.destinations import StompDestinations
from testfachdienst.src.ws.errors import MessageConversionError, map_exception

logger = structlog.get_logger(__name__)

Handler = Callable[..., Awaitable[Any]]


def parse_payload(body: bytes) -> ErezeptRequest:
    """
    Read a prescription payload from a frame body.

    Raises:
        MessageConversionError: If the body is not a JSON object
        pydantic.ValidationError: If fields are missing or invalid
    """
    try:
        data = json.loads(body.decode("utf-8")) if body else None
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MessageConversionError(f"Could not read JSON payload: {e}") from e
    if not isinstance(data, dict):
        raise MessageConversionError("Payload must be a JSON object")
    return ErezeptRequest.model_validate(data)


def not_found(erezept_id: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"ERezept with id={erezept_id} not found",
    )


def prescription_conflict(prescription_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"ERezept with prescriptionId={prescription_id} already exists",
    )


class ErezeptMessageHandlers:
    """Dispatches application destinations to prescription operations."""

    def __init__(
        self,
        service: ErezeptService,
        broker: SimpleBroker,
        destinations: StompDestinations,
        metrics: Optional[ErezeptMetrics] = None,
        exit_on_oom: bool = False,
    ):
        self.service = service
        self.exit_on_oom = exit_on_oom
        self.broker = broker
        self.destinations = destinations
        self.metrics = metrics
        self.routes: List[Tuple[str, Pattern[str], Handler]] = [
            ("create", re.compile(r"erezept\.create"), self.create),
            ("list", re.compile(r"erezept\.list"), self.list_all),
            ("read", re.compile(r"erezept\.read\.(?P<erezept_id>-?\d+)"), self.read),
            ("update", re.compile(r"erezept\.update\.(?P<erezept_id>-?\d+)"), self.update),
            ("delete", re.compile(r"erezept\.delete\.(?P<erezept_id>-?\d+)"), self.delete),
        ]

    def resolve(self, key: str) -> Optional[Tuple[str, Handler, dict]]:
        for operation, pattern, handler in self.routes:
            match = pattern.fullmatch(key)
            if match:
                kwargs = {name: int(value) for name, value in match.groupdict().items()}
                return operation, handler, kwargs
        return None

    def _record(self, operation: str, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.operations.labels(channel="stomp", operation=operation, outcome=outcome).inc()

    async def dispatch(self, session: StompSession, key: str, body: bytes) -> bool:
        """
        Run the handler for ``key`` and reply to the caller.

        Returns:
            False if no handler matches the key
        """
        resolved = self.resolve(key)
        if resolved is None:
            logger.warning("stomp_no_handler", session=session.session_id, destination=key)
            return False

        operation, handler, kwargs = resolved
        reply_destination = self.destinations.user_reply_destination
        try:
            result = await handler(body=body, **kwargs)
        except Exception as e:
            if self.exit_on_oom:
                exit_on_out_of_memory(e)
            self._record(operation, "error")
            await self.broker.send_to_user(session, reply_destination, map_exception(e))
            return True

        self._record(operation, "success")
        await self.broker.send_to_user(session, reply_destination, result)
        return True

    async def create(self, body: bytes) -> ErezeptResponse:
        """Create a prescription; a supplied id or prescriptionId must not exist yet."""
        request = parse_payload(body)
        logger.info("stomp_erezept_create_received", prescription_id=request.prescription_id)

        if request.id is not None and await self.service.exists_by_id(request.id):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"ERezept with id={request.id} already exists",
            )
        if await self.service.exists_by_prescription_id(request.prescription_id):
            raise prescription_conflict(request.prescription_id)

        to_save = request.to_entity()
        to_save.status = ErezeptStatus.CREATED
        try:
            created = await self.service.save(to_save)
        except DuplicatePrescriptionError:
            raise prescription_conflict(request.prescription_id) from None

        response = ErezeptResponse.model_validate(created)
        topic = self.destinations.erezept_topic
        logger.info("stomp_erezept_created", id=created.id, broadcast_destination=topic)
        await self.broker.broadcast(topic, response)
        return response

    async def list_all(self, body: bytes) -> List[ErezeptResponse]:
        logger.info("stomp_erezept_list_received")
        return [ErezeptResponse.model_validate(item) for item in await self.service.find_all()]

    async def read(self, body: bytes, erezept_id: int) -> ErezeptResponse:
        logger.info("stomp_erezept_read_received", id=erezept_id)
        existing = await self.service.find_by_id(erezept_id)
        if existing is None:
            raise not_found(erezept_id)
        return ErezeptResponse.model_validate(existing)

    async def update(self, body: bytes, erezept_id: int) -> ErezeptResponse:
        """
        Replace the fields of a stored prescription.

        The original issue date is kept; a missing status keeps the stored one.
        """
        request = parse_payload(body)
        logger.info("stomp_erezept_update_received", id=erezept_id)
        existing = await self.service.find_by_id(erezept_id)
        if existing is None:
            raise not_found(erezept_id)

        if (
            request.prescription_id != existing.prescription_id
            and await self.service.exists_by_prescription_id(request.prescription_id)
        ):
            raise prescription_conflict(request.prescription_id)

        existing.medication_name = request.medication_name
        existing.dosage = request.dosage
        existing.expires_at = request.expires_at
        existing.patient_id = request.patient_id
        existing.practitioner_id = request.practitioner_id
        existing.prescription_id = request.prescription_id
        existing.status = request.status or existing.status

        try:
            saved = await self.service.save(existing)
        except DuplicatePrescriptionError:
            raise prescription_conflict(request.prescription_id) from None

        response = ErezeptResponse.model_validate(saved)
        topic = self.destinations.erezept_topic
        logger.info("stomp_erezept_updated", id=saved.id, broadcast_destination=topic)
        await self.broker.broadcast(topic, response)
        return response

    async def delete(self, body: bytes, erezept_id: int) -> DeletedResponse:
        logger.info("stomp_erezept_delete_received", id=erezept_id)
        if not await self.service.exists_by_id(erezept_id):
            raise not_found(erezept_id)
        await self.service.delete_by_id(erezept_id)
        logger.info("stomp_erezept_deleted", id=erezept_id)
        return DeletedResponse(id=erezept_id)
