"""
STOMP over WebSocket endpoint.

Accepts the WebSocket upgrade with a negotiated STOMP subprotocol, then
reads frames until the client disconnects, sends DISCONNECT, or sends a
malformed frame (answered with ERROR before closing).
"""

import uuid
from typing import Iterable, Optional

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from shared.metrics import WebSocketMetrics
from testfachdienst.src.ws.broker import SimpleBroker, StompSession
from testfachdienst.src.ws.destinations import StompDestinations
from testfachdienst.src.ws.frames import (
    ABORT,
    ACK,
    BEGIN,
    COMMIT,
    CONNECT,
    CONNECTED,
    DISCONNECT,
    NACK,
    RECEIPT,
    SEND,
    STOMP,
    SUBSCRIBE,
    UNSUBSCRIBE,
    FrameParseError,
    StompFrame,
    error_frame,
    parse_frames,
)
from testfachdienst.src.ws.handlers import ErezeptMessageHandlers

logger = structlog.get_logger(__name__)

SUPPORTED_SUBPROTOCOLS = ("v12.stomp", "v11.stomp", "v10.stomp")
SUPPORTED_VERSIONS = ("1.2", "1.1", "1.0")
PROTOCOL_ERROR_CLOSE_CODE = 1002
MESSAGE_TOO_BIG_CLOSE_CODE = 1009


def negotiate_subprotocol(requested: Iterable[str]) -> Optional[str]:
    """Pick the newest STOMP subprotocol the client offers."""
    offered = {protocol.strip() for protocol in requested}
    for protocol in SUPPORTED_SUBPROTOCOLS:
        if protocol in offered:
            return protocol
    return None


def negotiate_version(accept_version: Optional[str]) -> Optional[str]:
    """Pick the newest STOMP version in an ``accept-version`` header; absent means 1.0."""
    if not accept_version:
        return "1.0"
    offered = {version.strip() for version in accept_version.split(",")}
    for version in SUPPORTED_VERSIONS:
        if version in offered:
            return version
    return None


class _CloseSession(Exception):
    def __init__(self, code: int = 1000):
        super().__init__(code)
        self.code = code


class StompEndpoint:
    """Serves one STOMP session per WebSocket connection."""

    def __init__(
        self,
        broker: SimpleBroker,
        handlers: ErezeptMessageHandlers,
        destinations: StompDestinations,
        server_name: str,
        max_frame_bytes: int = 64 * 1024,
        metrics: Optional[WebSocketMetrics] = None,
    ):
        self.broker = broker
        self.handlers = handlers
        self.destinations = destinations
        self.server_name = server_name
        self.max_frame_bytes = max_frame_bytes
        self.metrics = metrics

    def _log_handshake(self, websocket: WebSocket) -> None:
        headers = websocket.headers
        client = websocket.client
        logger.info(
            "ws_handshake_start",
            uri=str(websocket.url),
            remote=f"{client.host}:{client.port}" if client else None,
            host=headers.get("host"),
            x_forwarded_for=headers.get("x-forwarded-for"),
            x_forwarded_proto=headers.get("x-forwarded-proto"),
            origin=headers.get("origin"),
            subprotocol=headers.get("sec-websocket-protocol"),
            extensions=headers.get("sec-websocket-extensions"),
            version=headers.get("sec-websocket-version"),
        )

    def _log_frame(self, session: StompSession, frame: StompFrame) -> None:
        if self.metrics is not None:
            self.metrics.frames_received.labels(command=frame.command).inc()

        if frame.command in (CONNECT, STOMP):
            logger.info(
                "stomp_frame_received",
                command=frame.command,
                session=session.session_id,
                host=frame.header("host"),
                accept_version=frame.header("accept-version"),
            )
        elif frame.command == SUBSCRIBE:
            logger.info(
                "stomp_frame_received",
                command=frame.command,
                session=session.session_id,
                destination=frame.header("destination"),
                id=frame.header("id"),
            )
        else:
            logger.info(
                "stomp_frame_received",
                command=frame.command,
                session=session.session_id,
                destination=frame.header("destination"),
            )

    async def __call__(self, websocket: WebSocket) -> None:
        self._log_handshake(websocket)

        subprotocol = negotiate_subprotocol(websocket.scope.get("subprotocols", []))
        await websocket.accept(subprotocol=subprotocol)
        logger.info("ws_handshake_success", uri=str(websocket.url), subprotocol=subprotocol)

        session = StompSession(uuid.uuid4().hex, websocket, protocol=subprotocol)
        self.broker.register(session)
        logger.info("ws_session_established", id=session.session_id, protocol=subprotocol)

        close_code = 1000
        try:
            close_code = await self._receive_loop(session)
        finally:
            self.broker.unregister(session)
            logger.info("ws_session_closed", id=session.session_id, code=close_code)

    async def _receive_loop(self, session: StompSession) -> int:
        websocket = session.websocket
        while True:
            try:
                message = await websocket.receive()
            except WebSocketDisconnect as e:
                return e.code

            if message["type"] == "websocket.disconnect":
                return message.get("code", 1000)

            data = message.get("bytes") or (message.get("text") or "").encode("utf-8")
            try:
                if len(data) > self.max_frame_bytes:
                    await session.send_frame(
                        error_frame("Frame too large", f"Maximum frame size is {self.max_frame_bytes} bytes")
                    )
                    raise _CloseSession(MESSAGE_TOO_BIG_CLOSE_CODE)

                try:
                    frames = parse_frames(data)
                except FrameParseError as e:
                    logger.warning("stomp_malformed_frame", session=session.session_id, error=str(e))
                    await session.send_frame(error_frame("Malformed frame", str(e)))
                    raise _CloseSession(PROTOCOL_ERROR_CLOSE_CODE) from e

                for frame in frames:
                    await self.handle_frame(session, frame)

            except _CloseSession as close:
                await websocket.close(code=close.code)
                return close.code

    async def _send_receipt(self, session: StompSession, frame: StompFrame) -> None:
        receipt = frame.header("receipt")
        if receipt is not None:
            await session.send_frame(StompFrame(command=RECEIPT, headers={"receipt-id": receipt}))

    async def _protocol_error(self, session: StompSession, frame: StompFrame, message: str) -> None:
        logger.warning("stomp_protocol_error", session=session.session_id, command=frame.command, error=message)
        await session.send_frame(error_frame(message, receipt_id=frame.header("receipt")))
        raise _CloseSession(PROTOCOL_ERROR_CLOSE_CODE)

    async def handle_frame(self, session: StompSession, frame: StompFrame) -> None:
        """Apply one client frame to the session."""
        self._log_frame(session, frame)

        if frame.command in (CONNECT, STOMP):
            await self._connect(session, frame)
            return

        if not session.connected:
            await self._protocol_error(session, frame, "Session is not connected")

        if frame.command == SUBSCRIBE:
            destination, subscription_id = frame.header("destination"), frame.header("id")
            if not destination or subscription_id is None:
                await self._protocol_error(session, frame, "SUBSCRIBE requires destination and id headers")
            self.broker.subscribe(session, subscription_id, destination)

        elif frame.command == UNSUBSCRIBE:
            subscription_id = frame.header("id")
            if subscription_id is None:
                await self._protocol_error(session, frame, "UNSUBSCRIBE requires an id header")
            self.broker.unsubscribe(session, subscription_id)

        elif frame.command == SEND:
            destination = frame.header("destination")
            if not destination:
                await self._protocol_error(session, frame, "SEND requires a destination header")
            await self._route_send(session, destination, frame)

        elif frame.command == DISCONNECT:
            await self._send_receipt(session, frame)
            raise _CloseSession(1000)

        elif frame.command in (ACK, NACK, BEGIN, COMMIT, ABORT):
            logger.debug("stomp_frame_ignored", command=frame.command, session=session.session_id)

        else:
            await self._protocol_error(session, frame, f"Unexpected command {frame.command}")

        await self._send_receipt(session, frame)

    async def _connect(self, session: StompSession, frame: StompFrame) -> None:
        version = negotiate_version(frame.header("accept-version"))
        if version is None:
            await self._protocol_error(
                session, frame, f"Supported protocol versions are {','.join(reversed(SUPPORTED_VERSIONS))}"
            )

        session.version = version
        await session.send_frame(
            StompFrame(
                command=CONNECTED,
                headers={
                    "version": version,
                    "heart-beat": "0,0",
                    "server": self.server_name,
                    "session": session.session_id,
                },
            )
        )
        await self._send_receipt(session, frame)

    async def _route_send(self, session: StompSession, destination: str, frame: StompFrame) -> None:
        key = self.destinations.application_suffix(destination)
        if key is not None:
            await self.handlers.dispatch(session, key, frame.body)
            return

        if self.destinations.is_broker_destination(destination):
            content_type = frame.header("content-type") or "text/plain"
            await self.broker.broadcast(destination, frame.body, content_type=content_type)
            return

        logger.warning("stomp_send_unroutable", session=session.session_id, destination=destination)
