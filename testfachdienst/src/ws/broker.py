"""
In-memory STOMP broker.

Keeps the open sessions and their subscriptions, delivers MESSAGE frames to
every subscriber of a destination (broadcast) or to the subscriptions of a
single session (user replies). The registry is only mutated on the event
loop; each session serializes its own writes.
"""

import asyncio
import itertools
from typing import Any, Dict, List, Optional

import structlog
from pydantic_core import to_json
from starlette.websockets import WebSocket, WebSocketDisconnect

from shared.metrics import WebSocketMetrics
from testfachdienst.src.ws.frames import MESSAGE, StompFrame, encode_frame

logger = structlog.get_logger(__name__)

JSON_CONTENT_TYPE = "application/json"


def to_json_body(payload: Any) -> bytes:
    """Serialize models, lists of models and dicts with camelCase aliases."""
    if isinstance(payload, bytes):
        return payload
    return to_json(payload, by_alias=True)


class StompSession:
    """One connected STOMP client."""

    def __init__(self, session_id: str, websocket: WebSocket, protocol: Optional[str] = None):
        self.session_id = session_id
        self.websocket = websocket
        self.protocol = protocol
        self.version: Optional[str] = None
        self.subscriptions: Dict[str, str] = {}
        self._send_lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self.version is not None

    async def send_frame(self, frame: StompFrame) -> None:
        data = encode_frame(frame)
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            # binary bodies go out as binary WebSocket messages
            text = None
        async with self._send_lock:
            if text is None:
                await self.websocket.send_bytes(data)
            else:
                await self.websocket.send_text(text)

    def subscription_ids_for(self, destination: str) -> List[str]:
        return [sub_id for sub_id, dest in self.subscriptions.items() if dest == destination]


class SimpleBroker:
    """Routes MESSAGE frames to subscribed sessions."""

    def __init__(self, metrics: Optional[WebSocketMetrics] = None):
        self.metrics = metrics
        self.sessions: Dict[str, StompSession] = {}
        self._message_ids = itertools.count(1)

    def register(self, session: StompSession) -> None:
        self.sessions[session.session_id] = session
        if self.metrics is not None:
            self.metrics.sessions_active.inc()

    def unregister(self, session: StompSession) -> None:
        if self.sessions.pop(session.session_id, None) is not None and self.metrics is not None:
            self.metrics.sessions_active.dec()
        session.subscriptions.clear()

    def subscribe(self, session: StompSession, subscription_id: str, destination: str) -> None:
        session.subscriptions[subscription_id] = destination
        logger.debug(
            "stomp_subscribed",
            session=session.session_id,
            subscription=subscription_id,
            destination=destination,
        )

    def unsubscribe(self, session: StompSession, subscription_id: str) -> bool:
        return session.subscriptions.pop(subscription_id, None) is not None

    def _message_frame(
        self, destination: str, subscription_id: str, body: bytes, content_type: str
    ) -> StompFrame:
        return StompFrame(
            command=MESSAGE,
            headers={
                "destination": destination,
                "subscription": subscription_id,
                "message-id": f"{next(self._message_ids)}",
                "content-type": content_type,
            },
            body=body,
        )

    async def _deliver(
        self, session: StompSession, destination: str, body: bytes, content_type: str
    ) -> int:
        delivered = 0
        for subscription_id in session.subscription_ids_for(destination):
            frame = self._message_frame(destination, subscription_id, body, content_type)
            try:
                await session.send_frame(frame)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                logger.warning(
                    "stomp_delivery_failed",
                    session=session.session_id,
                    destination=destination,
                    error=str(e),
                )
                self.unregister(session)
                break
            delivered += 1

        if delivered and self.metrics is not None:
            self.metrics.messages_sent.labels(destination=destination).inc(delivered)
        return delivered

    async def broadcast(
        self, destination: str, payload: Any, content_type: str = JSON_CONTENT_TYPE
    ) -> int:
        """
        Send a payload to every subscriber of ``destination``.

        Returns:
            Number of MESSAGE frames delivered
        """
        body = to_json_body(payload)
        delivered = 0
        for session in list(self.sessions.values()):
            delivered += await self._deliver(session, destination, body, content_type)
        logger.debug("stomp_broadcast", destination=destination, delivered=delivered)
        return delivered

    async def send_to_user(
        self,
        session: StompSession,
        destination: str,
        payload: Any,
        content_type: str = JSON_CONTENT_TYPE,
    ) -> int:
        """Send a payload to the subscriptions of a single session."""
        return await self._deliver(session, destination, to_json_body(payload), content_type)
