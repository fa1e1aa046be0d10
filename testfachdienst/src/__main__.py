"""
Run the Testfachdienst with uvicorn.

Starts the main server (optionally with TLS) and, when the management port
differs, a second server for health and metrics in the same event loop.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

import structlog
import uvicorn

from shared.logging import configure_logging
from shared.runtime import install_out_of_memory_hooks
from testfachdienst.src.config import Settings, get_settings
from testfachdienst.src.main import create_app
from testfachdienst.src.management import create_management_app

logger = structlog.get_logger(__name__)


def build_servers(settings: Settings) -> List[uvicorn.Server]:
    """Create the uvicorn servers for the configured ports."""
    app = create_app(settings)

    main_config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        log_config=None,
        access_log=False,
        ssl_certfile=settings.ssl_certfile,
        ssl_keyfile=settings.ssl_keyfile,
        ssl_keyfile_password=settings.ssl_keyfile_password,
        ssl_ca_certs=settings.ssl_ca_certs,
    )
    servers = [uvicorn.Server(main_config)]

    if settings.separate_management_port:
        management_config = uvicorn.Config(
            create_management_app(app),
            host=settings.host,
            port=settings.management_port,
            log_level=settings.log_level.lower(),
            log_config=None,
            access_log=False,
            lifespan="off",
        )
        servers.append(uvicorn.Server(management_config))

    return servers


async def serve(settings: Settings) -> None:
    if settings.exit_on_out_of_memory:
        install_out_of_memory_hooks(asyncio.get_running_loop())

    servers = build_servers(settings)
    logger.info(
        "starting_uvicorn_servers",
        host=settings.host,
        port=settings.port,
        management_port=settings.management_port if settings.separate_management_port else None,
        tls=settings.tls_enabled,
    )
    await asyncio.gather(*(server.serve() for server in servers))


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="testfachdienst", description="Run the Testfachdienst")
    parser.add_argument("--host", help="Bind host (overrides TESTFACHDIENST_HOST)")
    parser.add_argument("--port", type=int, help="Main port (overrides TESTFACHDIENST_PORT)")
    parser.add_argument("--management-port", type=int, help="Management port")
    args = parser.parse_args(argv)

    overrides = {
        key: value
        for key, value in (
            ("host", args.host),
            ("port", args.port),
            ("management_port", args.management_port),
        )
        if value is not None
    }
    settings = get_settings().model_copy(update=overrides) if overrides else get_settings()

    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.log_format == "json",
        service_name=settings.app_name,
        environment=settings.environment,
    )

    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt_received")
    return 0


if __name__ == "__main__":
    sys.exit(main())
