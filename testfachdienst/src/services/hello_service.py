"""Greeting service for the public /hellozeta endpoint."""

import structlog

from testfachdienst.src.models.messages import HelloZetaResource

logger = structlog.get_logger(__name__)

DEFAULT_GREETING = "Hello ZETA!"


class HelloZetaService:

    def get_hello_zeta_resource(self) -> HelloZetaResource:
        logger.debug("hello_zeta_resource_requested")
        return HelloZetaResource(message=DEFAULT_GREETING)
