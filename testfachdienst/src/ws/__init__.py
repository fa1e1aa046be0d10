"""STOMP over WebSocket messaging."""

from testfachdienst.src.ws.asyncapi import build_asyncapi_document
from testfachdienst.src.ws.broker import SimpleBroker, StompSession
from testfachdienst.src.ws.destinations import StompDestinations
from testfachdienst.src.ws.endpoint import StompEndpoint
from testfachdienst.src.ws.errors import MessageConversionError, map_exception
from testfachdienst.src.ws.handlers import ErezeptMessageHandlers

__all__ = [
    "ErezeptMessageHandlers",
    "MessageConversionError",
    "SimpleBroker",
    "StompDestinations",
    "StompEndpoint",
    "StompSession",
    "build_asyncapi_document",
    "map_exception",
]
