"""
AsyncAPI 3.0 document describing the STOMP channels.

Payload schemas are generated from the same Pydantic models the handlers
use, so the document cannot drift from the wire format.
"""

from typing import Any, Dict

from pydantic.json_schema import models_json_schema

from testfachdienst.src.models.erezept import DeletedResponse, ErezeptRequest, ErezeptResponse
from testfachdienst.src.models.messages import WebSocketErrorResponse
from testfachdienst.src.ws.destinations import StompDestinations

REF_TEMPLATE = "#/components/schemas/{model}"


def _schema_ref(name: str) -> Dict[str, str]:
    return {"$ref": f"#/components/schemas/{name}"}


def _message(name: str, schema: str, description: str) -> Dict[str, Any]:
    return {
        "name": name,
        "contentType": "application/json",
        "description": description,
        "payload": _schema_ref(schema),
    }


def build_asyncapi_document(
    destinations: StompDestinations,
    title: str,
    version: str,
    websocket_path: str = "/ws",
) -> Dict[str, Any]:
    """
    Build the AsyncAPI document for the prescription STOMP API.

    Args:
        destinations: Prefix resolver for the configured context path
        title: Service title
        version: Service version
        websocket_path: Path of the STOMP endpoint below the context path
    """
    _, definitions = models_json_schema(
        [
            (ErezeptRequest, "validation"),
            (ErezeptResponse, "serialization"),
            (DeletedResponse, "serialization"),
            (WebSocketErrorResponse, "serialization"),
        ],
        by_alias=True,
        ref_template=REF_TEMPLATE,
    )

    app_prefix = destinations.application_prefixes[0]
    reply = destinations.user_reply_destination
    topic = destinations.erezept_topic

    channels: Dict[str, Any] = {
        "erezeptCreate": {
            "address": f"{app_prefix}/erezept.create",
            "messages": {"erezept": _message("erezept", "ErezeptRequest", "New prescription")},
        },
        "erezeptList": {
            "address": f"{app_prefix}/erezept.list",
            "messages": {"empty": {"name": "empty", "description": "No payload"}},
        },
        "erezeptRead": {
            "address": f"{app_prefix}/erezept.read.{{id}}",
            "parameters": {"id": {"description": "Prescription id"}},
            "messages": {"empty": {"name": "empty", "description": "No payload"}},
        },
        "erezeptUpdate": {
            "address": f"{app_prefix}/erezept.update.{{id}}",
            "parameters": {"id": {"description": "Prescription id"}},
            "messages": {"erezept": _message("erezept", "ErezeptRequest", "Replacement values")},
        },
        "erezeptDelete": {
            "address": f"{app_prefix}/erezept.delete.{{id}}",
            "parameters": {"id": {"description": "Prescription id"}},
            "messages": {"empty": {"name": "empty", "description": "No payload"}},
        },
        "erezeptReply": {
            "address": reply,
            "messages": {
                "erezept": _message("erezept", "ErezeptResponse", "Stored prescription"),
                "deleted": _message("deleted", "DeletedResponse", "Delete confirmation"),
                "error": _message("error", "WebSocketErrorResponse", "Handler failure"),
            },
        },
        "erezeptTopic": {
            "address": topic,
            "messages": {
                "erezept": _message("erezept", "ErezeptResponse", "Created or updated prescription"),
            },
        },
    }

    operations: Dict[str, Any] = {}
    for channel in ("erezeptCreate", "erezeptList", "erezeptRead", "erezeptUpdate", "erezeptDelete"):
        operations[f"send{channel[0].upper()}{channel[1:]}"] = {
            "action": "receive",
            "channel": {"$ref": f"#/channels/{channel}"},
            "reply": {"channel": {"$ref": "#/channels/erezeptReply"}},
        }
    operations["publishErezeptTopic"] = {
        "action": "send",
        "channel": {"$ref": "#/channels/erezeptTopic"},
    }

    return {
        "asyncapi": "3.0.0",
        "info": {
            "title": title,
            "version": version,
            "description": "Prescription operations over STOMP on WebSocket",
        },
        "servers": {
            "stomp": {
                "host": "localhost",
                "pathname": destinations.with_context_path(websocket_path),
                "protocol": "stomp",
                "protocolVersion": "1.2",
            }
        },
        "defaultContentType": "application/json",
        "channels": channels,
        "operations": operations,
        "components": {"schemas": definitions.get("$defs", {})},
    }
