"""
Integration tests for STOMP over WebSocket.

A real STOMP session is opened against the in-process application through
the TestClient WebSocket support. Frames are written and read as text.
"""

import json
from typing import Dict

import pytest
from starlette.websockets import WebSocketDisconnect

from testfachdienst.src.ws.frames import StompFrame, encode_frame, parse_frames

REPLY = "/user/queue/erezept"
TOPIC = "/topic/erezept"


def send(ws, command: str, headers: Dict[str, str] = None, body: bytes = b"") -> None:
    ws.send_text(encode_frame(StompFrame(command, headers or {}, body)).decode("utf-8"))


def receive(ws) -> StompFrame:
    frames = parse_frames(ws.receive_text())
    assert len(frames) == 1
    return frames[0]


def connect(ws) -> StompFrame:
    send(ws, "CONNECT", {"accept-version": "1.1,1.2", "host": "localhost"})
    return receive(ws)


def subscribe(ws, destination: str, subscription_id: str) -> None:
    send(ws, "SUBSCRIBE", {"id": subscription_id, "destination": destination, "receipt": f"r-{subscription_id}"})
    receipt = receive(ws)
    assert receipt.command == "RECEIPT"
    assert receipt.header("receipt-id") == f"r-{subscription_id}"


def send_json(ws, destination: str, payload=None) -> None:
    body = json.dumps(payload).encode("utf-8") if payload is not None else b""
    send(ws, "SEND", {"destination": destination, "content-type": "application/json"}, body)


@pytest.fixture
def stomp(client):
    with client.websocket_connect("/ws", subprotocols=["v12.stomp"]) as ws:
        connected = connect(ws)
        assert connected.command == "CONNECTED"
        subscribe(ws, REPLY, "reply")
        yield ws


class TestStompSession:

    def test_connect_negotiates_version(self, client):
        with client.websocket_connect("/ws", subprotocols=["v11.stomp", "v12.stomp"]) as ws:
            assert ws.accepted_subprotocol == "v12.stomp"

            connected = connect(ws)

            assert connected.command == "CONNECTED"
            assert connected.header("version") == "1.2"
            assert connected.header("heart-beat") == "0,0"
            assert connected.header("session")

    def test_unsupported_version_is_rejected(self, client):
        with client.websocket_connect("/ws") as ws:
            send(ws, "CONNECT", {"accept-version": "2.0"})

            error = receive(ws)

            assert error.command == "ERROR"
            with pytest.raises(WebSocketDisconnect):
                ws.receive_text()

    def test_frame_before_connect_is_rejected(self, client):
        with client.websocket_connect("/ws") as ws:
            send(ws, "SUBSCRIBE", {"id": "0", "destination": TOPIC})

            error = receive(ws)

            assert error.command == "ERROR"
            assert error.header("message") == "Session is not connected"

    def test_malformed_frame_closes_session(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("HELLO\n\n\x00")

            error = receive(ws)

            assert error.command == "ERROR"
            assert error.header("message") == "Malformed frame"
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_text()
            assert exc_info.value.code == 1002

    def test_disconnect_sends_receipt(self, stomp):
        send(stomp, "DISCONNECT", {"receipt": "bye"})

        receipt = receive(stomp)

        assert receipt.command == "RECEIPT"
        assert receipt.header("receipt-id") == "bye"

    def test_heartbeat_is_ignored(self, stomp):
        stomp.send_text("\n")
        send_json(stomp, "/app/erezept.list")

        assert json.loads(receive(stomp).text) == []

    def test_binary_body_is_relayed_as_bytes(self, stomp):
        subscribe(stomp, "/topic/binary", "binary")

        stomp.send_bytes(b"SEND\ndestination:/topic/binary\ncontent-length:2\n\n\xff\xfe\x00")

        [message] = parse_frames(stomp.receive_bytes())
        assert message.command == "MESSAGE"
        assert message.header("subscription") == "binary"
        assert message.body == b"\xff\xfe"

        send_json(stomp, "/app/erezept.list")
        assert json.loads(receive(stomp).text) == []


class TestErezeptMessages:

    def test_create_replies_and_broadcasts(self, stomp, erezept_payload):
        subscribe(stomp, TOPIC, "topic")

        send_json(stomp, "/app/erezept.create", erezept_payload("RX-WS-1", status="SIGNED"))

        broadcast = receive(stomp)
        reply = receive(stomp)
        assert broadcast.header("destination") == TOPIC
        assert broadcast.header("subscription") == "topic"
        assert reply.header("destination") == REPLY
        assert reply.header("subscription") == "reply"
        assert reply.header("content-type") == "application/json"

        created = json.loads(reply.text)
        assert json.loads(broadcast.text) == created
        assert created["prescriptionId"] == "RX-WS-1"
        assert created["status"] == "CREATED"

    def test_read_update_delete(self, stomp, erezept_payload):
        send_json(stomp, "/app/erezept.create", erezept_payload("RX-WS-2"))
        created = json.loads(receive(stomp).text)

        send_json(stomp, f"/app/erezept.read.{created['id']}")
        assert json.loads(receive(stomp).text) == created

        send_json(
            stomp,
            f"/app/erezept.update.{created['id']}",
            erezept_payload("RX-WS-2", dosage="2 tablets", status="DISPENSED"),
        )
        updated = json.loads(receive(stomp).text)
        assert updated["dosage"] == "2 tablets"
        assert updated["status"] == "DISPENSED"
        assert updated["issuedAt"] == created["issuedAt"]

        send_json(stomp, f"/app/erezept.delete.{created['id']}")
        assert json.loads(receive(stomp).text) == {"id": created["id"], "status": "deleted"}

        send_json(stomp, "/app/erezept.list")
        assert json.loads(receive(stomp).text) == []

    def test_read_missing_replies_with_error(self, stomp):
        send_json(stomp, "/app/erezept.read.999")

        error = json.loads(receive(stomp).text)

        assert error["status"] == 404
        assert error["message"] == "ERezept with id=999 not found"
        assert error["timestamp"]

    def test_duplicate_create_replies_with_conflict(self, stomp, erezept_payload):
        send_json(stomp, "/app/erezept.create", erezept_payload("RX-WS-DUP"))
        receive(stomp)

        send_json(stomp, "/app/erezept.create", erezept_payload("RX-WS-DUP"))

        assert json.loads(receive(stomp).text)["status"] == 409

    def test_invalid_payload_replies_with_validation_errors(self, stomp, erezept_payload):
        send_json(stomp, "/app/erezept.create", erezept_payload(medicationName=""))

        error = json.loads(receive(stomp).text)

        assert error["status"] == 400
        assert error["message"] == "Validation failed"
        assert "medicationName" in error["details"]["errors"]

    def test_non_json_body_replies_with_format_error(self, stomp):
        send(stomp, "SEND", {"destination": "/app/erezept.create"}, b"not json")

        error = json.loads(receive(stomp).text)

        assert error["status"] == 400
        assert error["message"] == "Invalid message format or missing required fields"

    def test_rest_and_stomp_share_storage(self, client, stomp, erezept_payload):
        created = client.post("/api/erezept", json=erezept_payload("RX-REST")).json()

        send_json(stomp, "/app/erezept.list")

        assert [item["id"] for item in json.loads(receive(stomp).text)] == [created["id"]]


class TestContextPathDestinations:

    def test_destinations_are_prefixed(self, context_client, erezept_payload):
        with context_client.websocket_connect("/achelos_testfachdienst/ws", subprotocols=["v12.stomp"]) as ws:
            connect(ws)
            subscribe(ws, "/achelos_testfachdienst/user/queue/erezept", "reply")

            send_json(ws, "/achelos_testfachdienst/app/erezept.create", erezept_payload("RX-CTX"))
            reply = receive(ws)

            assert reply.header("destination") == "/achelos_testfachdienst/user/queue/erezept"
            assert json.loads(reply.text)["prescriptionId"] == "RX-CTX"
